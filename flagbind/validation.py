"""
flagbind validation: declarative per-field rules.

Rules are declared on the field annotation, comma separated, with an optional
"=param" each:

    path: str = flag("path", "", validate="required,file=absolute,file=exists")

Validator.validate(record) visits every annotated field (nested records
included, unannotated fields never), runs its rules in order and stops at the
first failing rule of a field. Failures are collected into a FieldErrors
exception carrying one FieldError per offending field; the dispatcher turns
those into user-facing lines.

Built-in rules
- required        value is not empty (None, "", 0, False, [], {})
- omitempty       skip the remaining rules when the value is empty
- file=absolute   path is absolute
- file=exists     path exists
- file=not_exists path does not exist
- resource_path   "^[^/]{3,}(/[^/]+)*$"
- target_path     "^[^/]{1,}(/[^/]+)*$"
- oneof=a b c     value is one of the space separated choices
- min=n / max=n   bounds on integers, on the length of strings, lists and maps

file, resource_path and target_path accept the empty string; combine them with
required to reject it.
"""
import dataclasses
import logging
import os.path
import re
import typing
from types import MappingProxyType

from .faults import ConfigurationError
from .records import isrecord, tagof
from .utils import *

logger = logging.getLogger(__name__)


@dataclasses.dataclass(frozen=True)
class FieldError:
    """
    one failed rule on one field.

    - namespace: record type plus attribute path ("Flags.nested.path").
    - name: dotted flag name, or the argument name for positional fields.
    - rule / param: the failing rule and its parameter ("" when none).
    - value: the offending value.
    - positional: the field is bound positionally.
    """
    namespace: str
    name: str
    rule: str
    param: str
    value: typing.Any
    positional: bool = False

    @property
    def spec(self):
        return self.rule + ("=" + self.param if self.param else "")


class FieldErrors(Exception):
    """
    structured result of a failed validation, one FieldError per field.
    """

    def __init__(self, errors, /):
        self.errors = tuple(errors)
        super().__init__("\n".join(
            "field %r failed on the %r rule" % (error.namespace, error.spec) for error in self.errors
        ))

    def __iter__(self):
        return iter(self.errors)

    def __len__(self):
        return len(self.errors)


def _empty(value):
    if value is None:
        return True
    if isrecord(value):
        return False
    return not value


def _required(value, param):
    return not _empty(value)


def _file(value, param):
    if not value:
        return True
    match param:
        case "absolute":
            return os.path.isabs(value)
        case "exists":
            return os.path.exists(value)
        case "not_exists":
            return not os.path.exists(value)
    raise ConfigurationError(f"rule 'file' does not support {param!r}")


def _pattern(pattern):
    compiled = re.compile(pattern)

    def rule(value, param):
        if not value:
            return True
        return bool(compiled.fullmatch(str(value)))
    return rule


def _oneof(value, param):
    return str(value) in param.split()


def _measure(value):
    if value is None:
        return 0
    if isinstance(value, int) and not isinstance(value, bool):
        return value
    return len(value)


def _bound(compare):
    def rule(value, param):
        try:
            limit = int(param)
        except ValueError:
            raise ConfigurationError(f"rule bound {param!r} is not an integer") from None
        return compare(_measure(value), limit)
    return rule


class Validator:
    """
    registry of named rules plus the record visitor.
    """

    def __init__(self):
        self._rules = {}
        self._parsed = {}
        self.register("required", _required)
        self.register("file", _file)
        self.register("resource_path", _pattern(r"[^/]{3,}(/[^/]+)*"))
        self.register("target_path", _pattern(r"[^/]{1,}(/[^/]+)*"))
        self.register("oneof", _oneof)
        self.register("min", _bound(lambda value, limit: value >= limit))
        self.register("max", _bound(lambda value, limit: value <= limit))

    @property
    def rules(self):
        return MappingProxyType(self._rules)

    def register(self, name, rule, /):
        """
        register (or replace) a rule: rule(value, param) -> bool.
        """
        if not isinstance(name, str) or not re.fullmatch(r"[A-Za-z_]\w*", name):
            raise ConfigurationError(f"rule name {name!r} is not valid")
        if name == "omitempty":
            raise ConfigurationError("rule name 'omitempty' is reserved")
        if not callable(rule):
            raise ConfigurationError(f"rule {name!r} must be callable")
        self._rules[name] = rule
        self._parsed.clear()
        return rule

    def parse(self, rules, /):
        """
        split a declaration into ((name, param), ...); unknown names are a
        ConfigurationError.
        """
        if rules in self._parsed:
            return self._parsed[rules]
        parsed = []
        for entry in filter(None, map(str.strip, rules.split(","))):
            name, _, param = entry.partition("=")
            if name != "omitempty" and name not in self._rules:
                raise ConfigurationError(f"undefined validation rule {name!r}")
            parsed.append((name, param))
        self._parsed[rules] = parsed = tuple(parsed)
        return parsed

    def _visit(self, record, namespace, prefix, errors):
        for field in dataclasses.fields(record):
            if (tag := tagof(field)) is None:
                continue
            value = getattr(record, field.name)

            if not tag.positional and isrecord(value):
                self._visit(
                    value,
                    namespace + "." + field.name,
                    prefix if tag.squashed else prefix + tag.name + ".",
                    errors,
                )
                continue

            for name, param in self.parse(tag.rules):
                if name == "omitempty":
                    if _empty(value):
                        break
                    continue
                if not self._rules[name](value, param):
                    errors.append(FieldError(
                        namespace + "." + field.name,
                        tag.name if tag.positional else prefix + tag.name,
                        name,
                        param,
                        value,
                        tag.positional,
                    ))
                    break

    def validate(self, record, /):
        """
        check every annotated field of 'record'; raise FieldErrors on failure.

        anything that is not a record (None, a token list) passes.
        """
        if not isrecord(record):
            return
        errors = []
        self._visit(record, type(record).__name__, "", errors)
        if errors:
            logger.debug("validation of %s failed on %d field(s)", type(record).__name__, len(errors))
            raise FieldErrors(errors)


validator = Validator()


def validate(record, /):
    """
    the default validation collaborator (module-level Validator).
    """
    validator.validate(record)


def register(name, rule, /):
    return validator.register(name, rule)


__all__ = (
    "FieldError",
    "FieldErrors",
    "Validator",
    "validator",
    "validate",
    "register",
)
