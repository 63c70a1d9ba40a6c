"""
flagbind flags: the flag registry and token parser.

A FlagSet is built from a prefilled "defaults" record. Each call to unmarshal()
walks the record schema, registers one value holder per leaf field, scans the
tokens, and finally writes every holder back into the destination record.

Precedence, per leaf field
    explicit flag  >  environment variable  >  default from the record

The environment is consulted before any token is read, so the listing printed
by help shows the environment override as the default. Environment values that
do not coerce (e.g. "maybe" for a bool) are ignored and the default stands.

Token syntax (getopt-like)
- "-name=value" or "-name value"; "--name" is the same as "-name".
- bool flags take no separate value: "-debug" or "-debug=false".
- scanning stops at the first token that is not a flag; "--" is consumed and
  stops scanning too. whatever is left is returned to the caller.

Accumulating kinds
- string lists: every occurrence is split on "," and appended (order kept,
  duplicates kept).
- string maps: every occurrence is split on "," into "key=value" (or bare "key")
  pairs appended in encounter order; the mapping is built once, at the end, so
  later pairs overwrite earlier ones.
"""
import logging
import os
import re
from abc import ABC, abstractmethod

from .faults import *
from .records import Kind, isrecord, walk
from .utils import *

logger = logging.getLogger(__name__)

_TRUTHY = frozenset(("1", "t", "T", "TRUE", "true", "True"))
_FALSY = frozenset(("0", "f", "F", "FALSE", "false", "False"))


def parse_bool(text, /):
    """
    strict boolean parsing ("1", "t", "true", "TRUE", "True" and their false
    counterparts); anything else is a ValueError.
    """
    if text in _TRUTHY:
        return True
    if text in _FALSY:
        return False
    raise ValueError("invalid syntax")


_INTEGER = re.compile(
    r"""
    (?P<sign>[+-]?)
    (?:
        0[xX](?P<hexadecimal>_?[0-9a-fA-F](?:_?[0-9a-fA-F])*)
      | 0[oO](?P<octal>_?[0-7](?:_?[0-7])*)
      | 0[bB](?P<binary>_?[01](?:_?[01])*)
      | 0(?P<legacy>_?[0-7](?:_?[0-7])*)
      | (?P<decimal>0|[1-9](?:_?[0-9])*)
    )
    """,
    re.VERBOSE | re.ASCII,
)
_DECIMAL = re.compile(r"(?P<sign>[+-]?)(?P<decimal>[0-9]+)", re.ASCII)
_RADIXES = (("hexadecimal", 16), ("octal", 8), ("binary", 2), ("legacy", 8), ("decimal", 10))

# 64-bit signed range
_MINIMUM, _MAXIMUM = -1 << 63, (1 << 63) - 1


def parse_int(text, /, base=0):
    """
    integer parsing with the getopt/Go literal grammar.

    base 0 (flag values) takes an optional sign, then 0x/0o/0b prefixes, a
    leading "0" for octal or plain decimal; "_" may separate digits. base 10
    (environment values) takes an optional sign and ASCII digits only. values
    outside the 64-bit signed range are rejected.
    """
    if (match := (_DECIMAL if base == 10 else _INTEGER).fullmatch(text)) is None:
        raise ValueError("invalid syntax")
    groups = match.groupdict()
    for group, radix in _RADIXES:
        if (digits := groups.get(group)) is not None:
            break
    value = int(digits.replace("_", ""), radix)
    if match["sign"] == "-":
        value = -value
    if not _MINIMUM <= value <= _MAXIMUM:
        raise ValueError("value out of range")
    return value


class Value(ABC):
    """
    a registered flag slot. set() receives the raw text of one occurrence.
    """
    boolean = False
    typename = "value"

    def __init__(self, default, /):
        self.default = default

    @abstractmethod
    def set(self, text, /): ...

    @abstractmethod
    def get(self): ...


class StringValue(Value):
    typename = "string"

    def __init__(self, default, /):
        super().__init__(default)
        self.value = default

    def set(self, text, /):
        self.value = text

    def get(self):
        return self.value


class BoolValue(Value):
    boolean = True
    typename = "bool"

    def __init__(self, default, /):
        super().__init__(default)
        self.value = default

    def set(self, text, /):
        self.value = parse_bool(text)

    def get(self):
        return self.value


class IntegerValue(Value):
    typename = "int"

    def __init__(self, default, /):
        super().__init__(default)
        self.value = default

    def set(self, text, /):
        self.value = parse_int(text)

    def get(self):
        return self.value


class ListValue(Value):
    """
    accumulates comma separated items; the default stands until the first
    occurrence.
    """
    typename = "list"

    def __init__(self, default, /):
        super().__init__(default)
        self.items = []
        self.touched = False

    def set(self, text, /):
        self.items.extend(text.split(","))
        self.touched = True

    def get(self):
        if not self.touched:
            return snapshot(self.default)
        return list(self.items)


class MapValue(Value):
    """
    accumulates "key=value" pairs; the mapping itself is only assembled in get().
    """
    typename = "map"

    def __init__(self, default, /):
        super().__init__(default)
        self.pairs = []
        self.touched = False

    def set(self, text, /):
        for entry in text.split(","):
            key, _, value = entry.partition("=")
            self.pairs.append((key, value))
        self.touched = True

    def get(self):
        if not self.touched:
            return snapshot(self.default)
        mapping = {}
        for key, value in self.pairs:
            mapping[key] = value
        return mapping


_VALUES = {
    Kind.STRING: StringValue,
    Kind.BOOL: BoolValue,
    Kind.INTEGER: IntegerValue,
    Kind.STRING_LIST: ListValue,
    Kind.STRING_MAP: MapValue,
}


def lookup(descriptor, environ, /):
    """
    the starting value of a leaf field: the record default, overridden by the
    descriptor's environment variable when it is set and coerces cleanly.
    """
    default = snapshot(descriptor.default)
    if not descriptor.env or (text := environ.get(descriptor.env)) is None:
        return default

    match descriptor.kind:
        case Kind.STRING:
            return text
        case Kind.BOOL:
            try:
                return parse_bool(text)
            except ValueError:
                logger.debug("ignoring %s=%r for flag -%s: not a boolean", descriptor.env, text, descriptor.name)
                return default
        case Kind.INTEGER:
            try:
                return parse_int(text, 10)
            except ValueError:
                logger.debug("ignoring %s=%r for flag -%s: not an integer", descriptor.env, text, descriptor.name)
                return default
        case Kind.STRING_LIST | Kind.STRING_MAP:
            value = _VALUES[descriptor.kind](default)
            value.set(text)
            return value.get()
    return default


def _render_default(value):
    if isinstance(value, bool):
        return "true" if value else "false"
    if isinstance(value, str):
        return '"%s"' % value
    if isinstance(value, list):
        return ",".join(map(str, value))
    if isinstance(value, dict):
        return ",".join("%s=%s" % pair for pair in value.items())
    return str(value)


class FlagSet:
    """
    flag registry for one record type, built from its prefilled defaults.

    the registry itself is rebuilt on every unmarshal() and discarded
    afterwards; the FlagSet only keeps the defaults and the environment store.
    """

    def __init__(self, defaults, /, name=Unset, *, environ=Unset):
        if not isrecord(defaults):
            raise ConfigurationError(f"expected record type, got: {type(defaults).__qualname__}")
        self._defaults = defaults
        self._name = coalesce(name, type(defaults).__name__.lower())
        self._environ = environ

    @property
    def defaults(self):
        return self._defaults

    @property
    def name(self):
        return self._name

    @property
    def environ(self):
        return coalesce(self._environ, os.environ)

    def descriptors(self, destination=Unset):
        """
        the flag descriptors of the record, bound to 'destination' (a scratch
        copy of the defaults when omitted).
        """
        destination = coalesce(destination, snapshot(self._defaults))
        return walk(type(self._defaults), destination, "", None, defaults=self._defaults)

    def _registry(self, descriptors):
        registry = {}
        for descriptor in descriptors:
            registry[descriptor.name] = _VALUES[descriptor.kind](lookup(descriptor, self.environ))
        return registry

    def usage(self, descriptors=Unset):
        """
        plain text listing of every flag, its kind, usage and effective default.
        """
        if descriptors is Unset:
            descriptors = self.descriptors()
        registry = self._registry(descriptors)
        lines = ["usage of %s:" % self._name]
        for descriptor in sorted(descriptors, key=lambda x: x.name):
            value = registry[descriptor.name]
            lines.append("  -%s" % descriptor.name + ("" if value.boolean else " " + value.typename))
            detail = descriptor.full_usage()
            if (default := value.default) not in (None, "", 0, False, [], {}):
                detail = ("%s (default %s)" % (detail, _render_default(default))).strip()
            if detail:
                lines.append("        " + detail)
        return "\n".join(lines) + "\n"

    def unmarshal(self, tokens, destination, /):
        """
        parse 'tokens' into 'destination' and return the unconsumed tokens.

        steps
        - walk the schema (ConfigurationError on cycles/duplicates/mismatch).
        - seed every flag slot with default, then environment override.
        - scan the tokens (UnknownFlagError, FlagParseError, HelpRequested).
        - apply setters leaves first.
        """
        descriptors = walk(type(self._defaults), destination, "", None, defaults=self._defaults)
        registry = self._registry(descriptors)
        tokens = list(tokens)

        while tokens:
            token = tokens[0]
            if len(token) < 2 or token[0] != "-":
                break

            dashes = 2 if token[1] == "-" else 1
            if token == "--":
                tokens.pop(0)
                break

            name = token[dashes:]
            if not name or name[0] in "-=":
                raise FlagParseError(
                    "bad flag syntax: %s" % token,
                    flag=name,
                    value=token,
                    hint="flags look like -name=value or -name value",
                )
            tokens.pop(0)

            value = None
            if "=" in name:
                name, value = name.split("=", 1)

            if (slot := registry.get(name)) is None:
                if name in ("h", "help"):
                    raise HelpRequested(self.usage(descriptors))
                raise UnknownFlagError(
                    "flag provided but not defined: -%s" % name,
                    token=token,
                    hint="run with -help to list the available flags",
                )

            if slot.boolean and value is None:
                value = "true"
            elif value is None:
                if not tokens:
                    raise FlagParseError(
                        "flag needs an argument: -%s" % name,
                        flag=name,
                        hint="pass a value: -%s=<value>" % name,
                    )
                value = tokens.pop(0)

            try:
                slot.set(value)
            except ValueError as error:
                raise FlagParseError(
                    'invalid value "%s" for flag -%s: %s' % (value, name, error),
                    flag=name,
                    value=value,
                    hint="expected a %s value" % slot.typename,
                ) from None

        # leaves first
        for descriptor in reversed(descriptors):
            descriptor.setter(registry[descriptor.name].get())

        return tokens


__all__ = (
    "parse_bool",
    "parse_int",
    "Value",
    "StringValue",
    "BoolValue",
    "IntegerValue",
    "ListValue",
    "MapValue",
    "lookup",
    "FlagSet",
)
