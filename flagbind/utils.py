"""
Small internal helpers shared by the flagbind modules.

Scope
- Unset / UnsetType: the "not provided" sentinel, distinct from None.
- coalesce(): materialize a default only for Unset.
- rename(): give dynamically built callables stable names.
- mirror(): publish a private backing field as a read-only property.
- IntrospectableType: metaclass publishing __introspectable__ fields and a repr.
"""
import builtins
import copy
import functools
import re
from collections.abc import Mapping, Sequence, Set
from types import MappingProxyType
from typing import final


@final
class UnsetType:
    """
    sentinel type for values that were not provided.

    - falsy, but never equal to None, 0 or "".
    - one instance per process (see __new__).
    - sealed, subclassing raises TypeError.
    """

    def __or__(self, other, /):
        try:
            return type(self) | other
        except TypeError:
            return NotImplemented

    def __ror__(self, other, /):
        try:
            return other | type(self)
        except TypeError:
            return NotImplemented

    @functools.cache
    def __new__(cls):
        return super().__new__(cls)

    def __bool__(self):
        return False

    def __repr__(self):
        return "Unset"

    def __copy__(self):
        return self

    def __deepcopy__(self, memo, /):
        return self

    def __init_subclass__(cls, **options):
        raise TypeError("type 'UnsetType' is not an acceptable base type")


def coalesce(object, default=None, /):
    """
    return 'object' unless it is Unset, in which case return 'default'.

    falsy values such as None, 0, "" or [] are preserved; only the sentinel is
    replaced.
    """
    return object if object is not Unset else default


def rename(*parameters):
    """
    set __name__/__qualname__ on a callable.

    forms
    - rename(callable, name) -> callable (renamed in place)
    - rename(name) -> decorator
    """
    match len(parameters):
        case 2:
            callable, name = parameters
            if not builtins.callable(callable):
                raise TypeError("rename() first argument must be callable")
            if not isinstance(name, str):
                raise TypeError("rename() second argument must be a string")
            try:
                callable.__qualname__ = name
                callable.__name__ = name
            except (AttributeError, TypeError):
                raise TypeError("rename() first argument must be a updatable callable") from None
            return callable
        case 1:
            name, = parameters
            if not isinstance(name, str):
                raise TypeError("@rename() argument must be a string")

            def wrapper(callable):
                if not builtins.callable(callable):
                    raise TypeError("@rename() must be applied to a callable")
                return rename(callable, name)

            return rename(wrapper, "rename")
        case _:
            raise TypeError("rename takes 1 to 2 arguments but %d were given" % len(parameters))


def _freeze(object):
    # Shallow read-only view of containers; records and scalars pass through.
    if isinstance(object, Sequence) and not isinstance(object, str | bytes | bytearray):
        return tuple(object)
    elif isinstance(object, Mapping):
        return MappingProxyType(dict(object))
    elif isinstance(object, Set):
        return frozenset(object)
    return object


def mirror(name, /):
    """
    read-only property serving self._<name>, containers frozen on the way out.
    """
    if not isinstance(name, str):
        raise TypeError("mirror() argument must be a string")

    @rename(name)
    def getter(self):
        return _freeze(getattr(self, "_" + name))

    return property(getter)


class IntrospectableType(type):
    """
    metaclass for introspectable types.

    - __typename__ is derived from the class name (camel-case split with hyphens)
      and used in configuration messages.
    - every name in __introspectable__ is exposed as a read-only property that
      mirrors the private "_<name>" attribute.
    - __repr__/__rich_repr__ list the fields named by __displayed__().
    """
    __introspectable__ = ()

    def __new__(cls, name, bases, namespace, **options):
        self = super().__new__(
            cls,
            name,
            bases,
            namespace | {
                "__typename__": re.sub(r"(?<!^)(?=[A-Z])", r"-", name).lower(),
            } | {
                name: mirror(name) for name in namespace.get("__introspectable__", ())
            },
        )

        @rename("__repr__")
        def __repr__(self):
            return "%s(%s)" % (
                type(self).__typename__,
                ", ".join("%s=%r" % pair for pair in self.__rich_repr__()),
            )
        self.__repr__ = __repr__

        @rename("__rich_repr__")
        def __rich_repr__(self):
            for name in type(self).__displayed__():
                yield name, getattr(self, name)
        self.__rich_repr__ = __rich_repr__

        return self

    def __displayed__(cls):
        return cls.__introspectable__


def snapshot(object, /):
    """
    deep copy used for defaults; a record is never shared between two parses.
    """
    return copy.deepcopy(object)


Unset = UnsetType()


__all__ = (
    "coalesce",
    "rename",
    "mirror",
    "snapshot",
    "IntrospectableType",
    "UnsetType",
    "Unset",
)
