"""
Flags module tests (token scanning, coercion, accumulation and precedence).

Scope
- Validate -name=value / -name value / --name forms and scan termination.
- Validate faults for unknown flags, bad values and missing values.
- Validate list/map accumulation and the map finalization pass.
- Validate default < environment < explicit flag precedence.

Conventions
- Test method names follow CamelCase per project convention.
- Every FlagSet gets an explicit environment mapping (never os.environ).
"""
import copy
import unittest
from dataclasses import dataclass
from unittest import TestCase

from flagbind import (
    SQUASH,
    FlagParseError,
    FlagSet,
    HelpRequested,
    UnknownFlagError,
    flag,
    parse_bool,
    parse_int,
)


@dataclass
class Object:
    string1: str = flag("string1", "")
    string2: str = flag("string2", "")


@dataclass
class Flags:
    string: str = flag("string", "", usage="a string")
    integer: int = flag("int", 0)
    boolean: bool = flag("bool", False, env="BOOL")
    items: list[str] = flag("list", factory=list)
    nested: Object = flag("nested", factory=Object)
    squashed: Object = flag(SQUASH, factory=Object)
    pairs: dict[str, str] = flag("map", factory=dict)


@dataclass
class Environment:
    name: str = flag("name", "default", env="NAME")
    count: int = flag("count", 1, env="COUNT")
    debug: bool = flag("debug", False, env="DEBUG")
    tags: list[str] = flag("tag", factory=lambda: ["base"], env="TAGS")
    labels: dict[str, str] = flag("label", factory=dict, env="LABELS")


def unmarshal(tokens, defaults=None, environ=None):
    defaults = Flags() if defaults is None else defaults
    destination = copy.deepcopy(defaults)
    remaining = FlagSet(defaults, environ={} if environ is None else environ).unmarshal(tokens, destination)
    return destination, remaining


class TestParsing(TestCase):
    """Behavioral tests for token scanning."""

    def testNoTokensKeepsDefaults(self):
        defaults = Flags(string="preset", integer=7, items=["x"], pairs={"k": "v"})
        record, remaining = unmarshal([], defaults)
        self.assertEqual(record, defaults)
        self.assertEqual(remaining, [])

    def testEqualsAndSpacedForms(self):
        record, _ = unmarshal(["-string=a", "-int", "42"])
        self.assertEqual(record.string, "a")
        self.assertEqual(record.integer, 42)

    def testDoubleDashIsEquivalent(self):
        record, _ = unmarshal(["--string", "b", "--bool"])
        self.assertEqual(record.string, "b")
        self.assertTrue(record.boolean)

    def testBoolTakesNoSeparateValue(self):
        record, remaining = unmarshal(["-bool", "false"])
        self.assertTrue(record.boolean)
        self.assertEqual(remaining, ["false"])

    def testBoolExplicitValue(self):
        record, _ = unmarshal(["-bool=false"], Flags(boolean=True))
        self.assertFalse(record.boolean)

    def testIntegerPrefixes(self):
        record, _ = unmarshal(["-int=0x10"])
        self.assertEqual(record.integer, 16)

    def testLastOccurrenceWins(self):
        record, _ = unmarshal(["-string=a", "-string=b"])
        self.assertEqual(record.string, "b")

    def testStopsAtFirstNonFlag(self):
        record, remaining = unmarshal(["-string=a", "file", "-int=3"])
        self.assertEqual(record.string, "a")
        self.assertEqual(record.integer, 0)
        self.assertEqual(remaining, ["file", "-int=3"])

    def testTerminatorIsConsumed(self):
        _, remaining = unmarshal(["-string=a", "--", "-int=3"])
        self.assertEqual(remaining, ["-int=3"])

    def testSingleDashIsPositional(self):
        _, remaining = unmarshal(["-", "rest"])
        self.assertEqual(remaining, ["-", "rest"])

    def testNestedAndSquashedNames(self):
        record, _ = unmarshal(["-nested.string1=n", "-string1=s"])
        self.assertEqual(record.nested.string1, "n")
        self.assertEqual(record.squashed.string1, "s")

    def testDefaultsRecordIsNotMutated(self):
        defaults = Flags()
        unmarshal(["-string=a", "-list=x", "-nested.string2=y"], defaults)
        self.assertEqual(defaults, Flags())


class TestFaults(TestCase):
    """User-facing flag faults."""

    def testUnknownFlagRaises(self):
        with self.assertRaises(UnknownFlagError) as context:
            unmarshal(["-missing=1"])
        self.assertEqual(str(context.exception), "flag provided but not defined: -missing")
        self.assertEqual(context.exception.token, "-missing=1")

    def testInvalidIntegerRaises(self):
        with self.assertRaises(FlagParseError) as context:
            unmarshal(["-int=four"])
        self.assertEqual(context.exception.flag, "int")
        self.assertEqual(context.exception.value, "four")

    def testIntegerGrammar(self):
        record, _ = unmarshal(["-int=010"])
        self.assertEqual(record.integer, 8)
        for value in (" 7 ", "\u0661\u0662", "09"):
            with self.subTest(value=value), self.assertRaises(FlagParseError):
                unmarshal(["-int=" + value])

    def testInvalidBoolRaises(self):
        with self.assertRaises(FlagParseError):
            unmarshal(["-bool=maybe"])

    def testMissingValueRaises(self):
        with self.assertRaises(FlagParseError):
            unmarshal(["-string"])

    def testBadSyntaxRaises(self):
        with self.assertRaises(FlagParseError):
            unmarshal(["-=value"])

    def testHelpRaises(self):
        with self.assertRaises(HelpRequested) as context:
            unmarshal(["-help"])
        self.assertIn("-string string", str(context.exception))
        self.assertIn("a string", str(context.exception))


class TestAccumulation(TestCase):
    """List and map accumulation."""

    def testListAppendsInOrder(self):
        record, _ = unmarshal(["-list=1,2", "-list=3"])
        self.assertEqual(record.items, ["1", "2", "3"])

    def testListKeepsDuplicates(self):
        record, _ = unmarshal(["-list=a", "-list=a"])
        self.assertEqual(record.items, ["a", "a"])

    def testListDefaultReplacedOnFirstOccurrence(self):
        record, _ = unmarshal(["-list=b"], Flags(items=["a"]))
        self.assertEqual(record.items, ["b"])

    def testListDefaultStandsWithoutOccurrence(self):
        record, _ = unmarshal([], Flags(items=["a"]))
        self.assertEqual(record.items, ["a"])

    def testMapLastKeyWins(self):
        record, _ = unmarshal(["-map=a=1", "-map=a=2"])
        self.assertEqual(record.pairs, {"a": "2"})

    def testMapPairsAndBareKeys(self):
        record, _ = unmarshal(["-map=a=1,b", "-map=c=x=y"])
        self.assertEqual(record.pairs, {"a": "1", "b": "", "c": "x=y"})


class TestPrecedence(TestCase):
    """default < environment < explicit flag."""

    def testDefaultsWithoutEnvironment(self):
        record, _ = unmarshal([], Environment(), {})
        self.assertEqual(record, Environment())

    def testEnvironmentOverridesDefault(self):
        environ = {"NAME": "env", "COUNT": "5", "DEBUG": "true"}
        record, _ = unmarshal([], Environment(), environ)
        self.assertEqual(record.name, "env")
        self.assertEqual(record.count, 5)
        self.assertTrue(record.debug)

    def testFlagOverridesEnvironment(self):
        environ = {"NAME": "env", "COUNT": "5"}
        record, _ = unmarshal(["-name=flag", "-count=9"], Environment(), environ)
        self.assertEqual(record.name, "flag")
        self.assertEqual(record.count, 9)

    def testUncoercibleEnvironmentIsIgnored(self):
        environ = {"DEBUG": "maybe", "COUNT": "lots"}
        record, _ = unmarshal([], Environment(), environ)
        self.assertFalse(record.debug)
        self.assertEqual(record.count, 1)

    def testNonAsciiEnvironmentIntegerIsIgnored(self):
        record, _ = unmarshal([], Environment(), {"COUNT": "\u0661\u0662"})
        self.assertEqual(record.count, 1)

    def testEnvironmentListAndMap(self):
        environ = {"TAGS": "x,y", "LABELS": "a=1,b=2"}
        record, _ = unmarshal([], Environment(), environ)
        self.assertEqual(record.tags, ["x", "y"])
        self.assertEqual(record.labels, {"a": "1", "b": "2"})

    def testUsageShowsEnvironmentDefault(self):
        usage = FlagSet(Environment(), environ={"NAME": "env"}).usage()
        self.assertIn('(default "env")', usage)
        self.assertIn('(env "NAME")', usage)

    def testUsageRendersBoolDefaultLowercase(self):
        usage = FlagSet(Environment(), environ={"DEBUG": "1"}).usage()
        self.assertIn('(default true)', usage)
        self.assertNotIn('True', usage)


class TestCoercion(TestCase):
    """Strict scalar parsing helpers."""

    def testParseBool(self):
        for text in ("1", "t", "T", "true", "TRUE", "True"):
            self.assertTrue(parse_bool(text))
        for text in ("0", "f", "F", "false", "FALSE", "False"):
            self.assertFalse(parse_bool(text))
        with self.assertRaises(ValueError):
            parse_bool("yes")

    def testParseIntDecimalOnly(self):
        self.assertEqual(parse_int("-12", 10), -12)
        self.assertEqual(parse_int("010", 10), 10)
        with self.assertRaises(ValueError):
            parse_int("0x10", 10)
        with self.assertRaises(ValueError):
            parse_int("1_000", 10)

    def testParseIntLiterals(self):
        self.assertEqual(parse_int("0"), 0)
        self.assertEqual(parse_int("010"), 8)
        self.assertEqual(parse_int("-0x1F"), -31)
        self.assertEqual(parse_int("+0o17"), 15)
        self.assertEqual(parse_int("0b101"), 5)
        self.assertEqual(parse_int("1_000"), 1000)

    def testParseIntRejects(self):
        for text in (" 7 ", "7 ", "", "-", "09", "0x", "1__0", "1_", "١٢", "７"):
            with self.subTest(text=text), self.assertRaises(ValueError):
                parse_int(text)
        with self.assertRaises(ValueError):
            parse_int("١٢", 10)

    def testParseIntRange(self):
        self.assertEqual(parse_int("9223372036854775807"), (1 << 63) - 1)
        self.assertEqual(parse_int("-9223372036854775808"), -1 << 63)
        with self.assertRaises(ValueError):
            parse_int("9223372036854775808")


if __name__ == "__main__":
    unittest.main()
