"""
Tests for the internal helpers.

This module verifies:
- The Unset sentinel (singleton, falsy, copy-stable, sealed).
- coalesce() only replacing the sentinel.
- mirror() properties freezing containers on the way out.
- snapshot() deep copies.
- IntrospectableType typenames, mirrored properties and repr.
"""
import copy
import unittest
from types import MappingProxyType
from unittest import TestCase

from flagbind.utils import *


class Holder:
    items = mirror("items")
    pairs = mirror("pairs")

    def __init__(self):
        self._items = ["a"]
        self._pairs = {"k": "v"}


class UnsetTest(TestCase):
    """
    Test suite for the `Unset` sentinel.
    """

    def testSingleton(self) -> None:
        self.assertIs(UnsetType(), Unset)

    def testFalsy(self) -> None:
        self.assertFalse(Unset)
        self.assertNotEqual(Unset, None)
        self.assertEqual(repr(Unset), "Unset")

    def testCopiesPreserveIdentity(self) -> None:
        self.assertIs(copy.copy(Unset), Unset)
        self.assertIs(copy.deepcopy({"x": Unset})["x"], Unset)

    def testFinal(self) -> None:
        with self.assertRaises(TypeError):
            type("Derived", (UnsetType,), {})

    def testUnionWithTypes(self) -> None:
        self.assertIsInstance(Unset, str | Unset)
        self.assertIsInstance("text", str | Unset)


class HelpersTest(TestCase):
    """
    Test suite for coalesce(), mirror(), rename() and snapshot().
    """

    def testCoalesce(self) -> None:
        self.assertEqual(coalesce(Unset, 3), 3)
        self.assertEqual(coalesce(0, 3), 0)
        self.assertIsNone(coalesce(Unset))

    def testMirrorFreezes(self) -> None:
        holder = Holder()
        self.assertEqual(holder.items, ("a",))
        self.assertIsInstance(holder.pairs, MappingProxyType)
        with self.assertRaises(AttributeError):
            holder.items = []

    def testRename(self) -> None:
        @rename("renamed")
        def original():
            pass

        self.assertEqual(original.__name__, "renamed")
        self.assertEqual(original.__qualname__, "renamed")

    def testSnapshotIsDeep(self) -> None:
        source = {"list": [1, 2]}
        copied = snapshot(source)
        copied["list"].append(3)
        self.assertEqual(source, {"list": [1, 2]})


class Sample(metaclass=IntrospectableType):
    __introspectable__ = ("name", "items")

    def __init__(self):
        self._name = "sample"
        self._items = ["a"]


class DisplayType(IntrospectableType):
    def __displayed__(cls):
        return ("name",)


class Displayed(metaclass=DisplayType):
    __introspectable__ = ("name", "items")

    def __init__(self):
        self._name = "shown"
        self._items = []


class IntrospectableTypeTest(TestCase):
    """
    Test suite for the `IntrospectableType` metaclass.
    """

    def testTypename(self) -> None:
        self.assertEqual(Sample.__typename__, "sample")
        self.assertEqual(DisplayType("CommandGroup", (), {}).__typename__, "command-group")

    def testMirroredProperties(self) -> None:
        sample = Sample()
        self.assertEqual(sample.items, ("a",))
        with self.assertRaises(AttributeError):
            sample.name = "other"

    def testRepr(self) -> None:
        self.assertEqual(repr(Sample()), "sample(name='sample', items=('a',))")

    def testSubclassNarrowsDisplayedFields(self) -> None:
        self.assertEqual(list(Displayed().__rich_repr__()), [("name", "shown")])
        self.assertEqual(repr(Displayed()), "displayed(name='shown')")


if __name__ == "__main__":
    unittest.main()
