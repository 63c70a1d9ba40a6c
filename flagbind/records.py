"""
flagbind records: field annotations and the schema walker.

Configuration records are plain dataclasses. A field takes part in flag binding
only when it was declared with flag() or argument(); everything else is left
alone (not exposed, not validated, not bound).

    @dataclass
    class Object:
        string1: str = flag("string1", "", usage="nested string")

    @dataclass
    class Flags:
        path: str = argument("file", "")
        verbose: bool = flag("verbose", False, env="VERBOSE")
        tags: list[str] = flag("tag", factory=list)
        nested: Object = flag("nested", factory=Object)      # -nested.string1
        squashed: Object = flag(SQUASH, factory=Object)      # -string1

Schema walk
- walk() turns a record type into a flat, ordered list of FlagDescriptor, one
  per leaf field, recursing into nested records. nested names are dotted
  ("nested.string1") unless the field is squashed.
- descriptors come out in declaration order, children of a nested record where
  the record field sits; nested records get no descriptor of their own. setters
  are meant to be applied in reverse (leaves first).
- cycles (a record reachable from itself) and duplicate flag names are
  ConfigurationError, raised during the walk.
"""
import collections.abc
import dataclasses
import functools
import logging
import re
import sys
import types
import typing
from enum import Enum

from .faults import ConfigurationError
from .utils import *

logger = logging.getLogger(__name__)

SQUASH = "-"
"""flag name that flattens a nested record into its parent's namespace."""

_METADATA = "flagbind"


class Kind(Enum):
    """
    value kinds a leaf field can bind to.
    """
    STRING = "string"
    BOOL = "bool"
    INTEGER = "integer"
    STRING_LIST = "string-list"
    STRING_MAP = "string-string-map"


class Tag(metaclass=IntrospectableType):
    """
    annotation payload stored in a dataclass field's metadata.

    a tag is either a flag (name, usage, env, rules) or a positional argument
    (name, usage, rules). the flag name SQUASH marks a squashed nested record.
    """
    __introspectable__ = (
        "name",
        "usage",
        "env",
        "rules",
        "positional",
    )

    def __init__(self, name, /, usage=Unset, env=Unset, validate=Unset, *, positional=False):
        typename = type(self).__typename__

        if not isinstance(name, str):
            raise ConfigurationError(f"{typename} 'name' must be a string")
        elif not (name := name.strip()):
            raise ConfigurationError(f"{typename} 'name' must be provided")

        if positional:
            if not re.fullmatch(r"[^\s\[\].=-][^\s\[\]=]*", name) or name.endswith("..."):
                raise ConfigurationError(f"{typename} argument name {name!r} is not valid")
        elif name != SQUASH and not re.fullmatch(r"[^\s=-][^\s=]*", name):
            raise ConfigurationError(f"{typename} flag name {name!r} is not valid")

        if not isinstance(usage, str | Unset):
            raise ConfigurationError(f"{typename} 'usage' must be a string")

        if not isinstance(env, str | Unset):
            raise ConfigurationError(f"{typename} 'env' must be a string")
        elif isinstance(env, str) and (not env.strip() or "=" in env):
            raise ConfigurationError(f"{typename} 'env' {env!r} is not a valid variable name")
        elif positional and env:
            raise ConfigurationError(f"{typename} positional argument {name!r} cannot read the environment")

        if not isinstance(validate, str | Unset):
            raise ConfigurationError(f"{typename} 'validate' must be a string")

        self._name = name
        self._usage = coalesce(usage, "").strip()
        self._env = env.strip() if env else None
        self._rules = coalesce(validate, "").strip()
        self._positional = bool(positional)

    @property
    def squashed(self):
        return not self._positional and self._name == SQUASH


def _field(tag, default, factory):
    if default is not Unset and factory is not Unset:
        raise ConfigurationError(f"{type(tag).__typename__} {tag.name!r} cannot take both a default and a factory")
    options = {"metadata": {_METADATA: tag}}
    if default is not Unset:
        options["default"] = default
    if factory is not Unset:
        options["default_factory"] = factory
    return dataclasses.field(**options)


def flag(name, default=Unset, /, *, factory=Unset, usage=Unset, env=Unset, validate=Unset):
    """
    declare a dataclass field bound to the flag -<name>.

    parameters
    - name: flag name, or SQUASH for a nested record flattened into its parent.
    - default / factory: the field default (mutually exclusive, as in dataclasses).
    - usage: help text shown in the flag listing.
    - env: environment variable that overrides the default when set.
    - validate: declarative rules, e.g. "required,file=exists".
    """
    return _field(Tag(name, usage, env, validate), default, factory)


def argument(name, default=Unset, /, *, factory=Unset, usage=Unset, validate=Unset):
    """
    declare a dataclass field bound positionally, through the [name] placeholder
    of the command name ("cmd [file] [rest...]").
    """
    return _field(Tag(name, usage, Unset, validate, positional=True), default, factory)


def tagof(field, /):
    """
    the Tag declared on a dataclass field, or None.
    """
    tag = field.metadata.get(_METADATA)
    return tag if isinstance(tag, Tag) else None


def _unwrap(annotation):
    # Optional[T] / T | None -> T
    if typing.get_origin(annotation) in (typing.Union, types.UnionType):
        members = [member for member in typing.get_args(annotation) if member is not type(None)]
        if len(members) == 1:
            return members[0]
    return annotation


def kindof(annotation, /):
    """
    map a field annotation to a Kind, or None when the annotation is not a leaf.
    """
    annotation = _unwrap(annotation)

    # bool before int: bool is an int subclass
    if annotation is bool:
        return Kind.BOOL
    if annotation is int:
        return Kind.INTEGER
    if annotation is str:
        return Kind.STRING

    origin = typing.get_origin(annotation) or annotation
    arguments = typing.get_args(annotation)

    if origin in (list, collections.abc.Sequence, collections.abc.MutableSequence):
        return Kind.STRING_LIST if arguments in ((), (str,)) else None
    if origin in (dict, collections.abc.Mapping, collections.abc.MutableMapping):
        return Kind.STRING_MAP if arguments in ((), (str, str)) else None
    return None


def recordof(annotation, value=None, /):
    """
    the nested record type of a field: its dataclass annotation, or the type of
    its dataclass default (fields typed with an abstract capability).
    """
    annotation = _unwrap(annotation)
    if isinstance(annotation, type) and dataclasses.is_dataclass(annotation):
        return annotation
    if dataclasses.is_dataclass(value) and not isinstance(value, type):
        return type(value)
    return None


def _resolve(schema, annotation):
    if not isinstance(annotation, str):
        return annotation
    module = sys.modules.get(schema.__module__)
    try:
        return eval(annotation, dict(vars(module)) if module else {}, dict(vars(schema)))
    except (NameError, AttributeError, SyntaxError, TypeError):
        return Unset


def hintsof(schema, /):
    """
    resolved annotations of a record type.

    when the class does not resolve as a whole (records declared in a function
    under postponed annotations), every field is resolved on its own and an
    annotation that still does not resolve maps to Unset.
    """
    try:
        return typing.get_type_hints(schema)
    except (NameError, TypeError) as error:
        logger.debug("annotations of %s do not resolve (%s), resolving field by field", schema.__qualname__, error)
    return {field.name: _resolve(schema, field.type) for field in dataclasses.fields(schema)}


def _fallback(field):
    # type of the declared default, for fields whose annotation does not resolve
    if field.default is not dataclasses.MISSING:
        return type(field.default)
    if field.default_factory is not dataclasses.MISSING:
        return type(field.default_factory())
    return None


def isrecord(object, /):
    return dataclasses.is_dataclass(object) and not isinstance(object, type)


@dataclasses.dataclass(frozen=True)
class FlagDescriptor:
    """
    one leaf field of a record, ready to be registered as a flag.

    setter writes the final value back into the destination record; it is only
    called once every token was parsed.
    """
    name: str
    kind: Kind
    default: typing.Any
    env: str | None = None
    usage: str = ""
    rules: str = ""
    path: tuple[str, ...] = ()
    setter: typing.Callable[[typing.Any], None] = dataclasses.field(default=None, repr=False, compare=False)

    def full_usage(self):
        if not self.env:
            return self.usage
        return '%s (env "%s")' % (self.usage, self.env) if self.usage else '(env "%s")' % self.env


def _collect(schema, destination, defaults, prefix, path, visiting, collected):
    if not (isinstance(schema, type) and dataclasses.is_dataclass(schema)):
        raise ConfigurationError(f"expected a record type, got: {schema!r}")
    if not isinstance(destination, schema):
        raise ConfigurationError(
            f"expected {schema.__qualname__} destination, got: {type(destination).__qualname__}"
        )
    if schema.__dataclass_params__.frozen:
        raise ConfigurationError(f"record type {schema.__qualname__} must not be frozen")
    if schema in visiting:
        raise ConfigurationError(f"cycle in flag types found for type: {schema.__qualname__}")

    visiting.add(schema)
    hints = hintsof(schema)

    for field in dataclasses.fields(schema):
        if (tag := tagof(field)) is None or tag.positional:
            continue

        default = getattr(defaults, field.name)
        if (annotation := hints.get(field.name, field.type)) is Unset:
            annotation = type(default)

        if (kind := kindof(annotation)) is not None:
            if tag.squashed:
                raise ConfigurationError(f"field {schema.__qualname__}.{field.name} cannot be squashed, it is not a record")
            collected.append(FlagDescriptor(
                prefix + tag.name,
                kind,
                default,
                tag.env,
                tag.usage,
                tag.rules,
                (*path, field.name),
                functools.partial(setattr, destination, field.name),
            ))
            logger.debug("registered flag -%s (%s)", prefix + tag.name, kind.value)
            continue

        if (record := recordof(annotation, default)) is None:
            logger.debug("field %s.%s has no flag kind, skipped", schema.__qualname__, field.name)
            continue

        if not isinstance(child := getattr(destination, field.name), record):
            try:
                child = record()
            except TypeError as error:
                raise ConfigurationError(
                    f"nested record {record.__qualname__} at {schema.__qualname__}.{field.name} needs defaults for every field"
                ) from error
            setattr(destination, field.name, child)
        if not isinstance(default, record):
            default = child

        _collect(
            record,
            child,
            default,
            prefix if tag.squashed else prefix + tag.name + ".",
            (*path, field.name),
            visiting,
            collected,
        )

    visiting.discard(schema)
    return collected


def walk(schema, destination, prefix="", visiting=None, /, *, defaults=Unset):
    """
    collect the flag descriptors of 'schema', bound to 'destination'.

    parameters
    - schema: a (non-frozen) dataclass type.
    - destination: an instance of schema; setters write into it.
    - prefix: dotted prefix for every collected name ("" at the top).
    - visiting: record types already on the current recursion chain.
    - defaults: instance providing default values (the destination itself when
      omitted).

    errors
    - ConfigurationError: destination does not match schema, cyclic record
      types, duplicate flag names, squashed leaf fields.
    """
    collected = _collect(
        schema,
        destination,
        coalesce(defaults, destination),
        prefix,
        (),
        set() if visiting is None else visiting,
        [],
    )

    seen = set()
    for descriptor in collected:
        if descriptor.name in seen:
            raise ConfigurationError(f"flag redefined: {descriptor.name}")
        seen.add(descriptor.name)

    return collected


def arguments(schema, /):
    """
    positional fields of a record type: {argument name: (attribute, kind)}.

    only top-level fields declared with argument() take part.
    """
    hints = hintsof(schema)
    found = {}
    for field in dataclasses.fields(schema):
        if (tag := tagof(field)) is None or not tag.positional:
            continue
        if tag.name in found:
            raise ConfigurationError(f"argument redefined: {tag.name}")
        if (annotation := hints.get(field.name, field.type)) is Unset:
            annotation = _fallback(field)
        found[tag.name] = (field.name, kindof(annotation))
    return found


__all__ = (
    "SQUASH",
    "Kind",
    "Tag",
    "FlagDescriptor",
    "flag",
    "argument",
    "tagof",
    "kindof",
    "recordof",
    "isrecord",
    "walk",
    "arguments",
)
