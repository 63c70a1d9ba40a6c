"""
flagbind command layer: the command forest and the dispatcher.

What this module provides
- Command: a named leaf bound to a defaults record and an execute callable.
  the name may carry positional placeholders, "add [file] [rest...]".
- CommandGroup: a named subtree of commands without behavior of its own.
- Commands: the forest plus the dispatcher (run).
- Context: the execution context handed to execute(context, record).

Dispatch, over (forest, argv, parents)
1. fewer than len(parents) + 2 tokens: UsageError listing the forest.
2. "@path" at the command position, no argument file loaded yet: expand it
   (see flagbind.argfiles), apply its environment and dispatch again with the
   rewritten vector. a second "@path" is looked up as a plain command name.
3. otherwise the first node whose first name word matches the token
   (case-insensitive) wins:
   - a group: dispatch into its children with the token appended to parents.
   - a command: parse flags, bind positionals, validate, prepare, execute.
   - nothing: UsageError.

Commands(shell=True) prints faults to stderr and exits with status 1 instead
of raising them. ConfigurationError is never caught.

Example
    @dataclass
    class Flags:
        path: str = argument("file", "", validate="required")
        rest: list[str] = argument("rest", factory=list)
        verbose: bool = flag("verbose", False, env="VERBOSE")

    def add(context, flags):
        ...

    Commands(
        Command("add [file] [rest...]", Flags(), add, usage="add a file"),
        CommandGroup("remote", Command("list", None, lambda context, _: ...)),
        shell=True,
    ).run(sys.argv)
"""
import dataclasses
import inspect
import logging
import os
import re
import sys
from collections.abc import MutableMapping
from typing import NamedTuple

from .argfiles import ArgFile, apply, expand
from .faults import *
from .flags import FlagSet
from .records import Kind, arguments, isrecord
from .utils import *
from .validation import FieldErrors, validate as _default_validate

logger = logging.getLogger(__name__)

_PLACEHOLDER = re.compile(r"\[(?P<name>[^\s\[\]=]+?)(?P<variadic>\.\.\.)?\]")


@dataclasses.dataclass(frozen=True)
class Context:
    """
    execution context of one dispatch.

    - parents: names of the groups matched on the way to the command.
    - remaining: tokens left after flag parsing and positional binding.
    - argfile: the ArgFile loaded during this dispatch, or None.
    - environ: environment store used for overrides and argfile assignments.
    """
    parents: tuple[str, ...] = ()
    remaining: tuple[str, ...] = ()
    argfile: ArgFile | None = None
    environ: MutableMapping[str, str] = dataclasses.field(
        default_factory=lambda: os.environ, repr=False, compare=False
    )


def remaining(context, /):
    """
    the tokens left over for the executed command.
    """
    return tuple(context.remaining)


class Parameter(NamedTuple):
    name: str
    variadic: bool
    attribute: str | None


class NodeType(IntrospectableType):
    """
    metaclass for command forest nodes; __rich_repr__ yields __displayable__
    (or __introspectable__) pairs.
    """
    __displayable__ = Unset

    def __displayed__(cls):
        return coalesce(cls.__displayable__, cls.__introspectable__)


def _checkname(cls, name):
    if not isinstance(name, str):
        raise ConfigurationError(f"{cls.__typename__} 'name' must be a string")
    elif not (name := " ".join(name.split())):
        raise ConfigurationError(f"{cls.__typename__} 'name' cannot be empty")
    elif name.startswith(("-", "@")):
        raise ConfigurationError(f"{cls.__typename__} name {name!r} cannot start with '-' or '@'")
    return name


def _checkusage(cls, usage):
    if not isinstance(usage, str | Unset):
        raise ConfigurationError(f"{cls.__typename__} 'usage' must be a string")
    return coalesce(usage, "").strip()


def _checkcallable(cls, name, object, arity, description):
    if not callable(object):
        raise ConfigurationError(f"{cls.__typename__} {name!r} must be callable")
    try:
        signature = inspect.signature(object)
    except (TypeError, ValueError):
        # builtins without an inspectable signature are taken on trust
        return object
    try:
        signature.bind(*(None,) * arity)
    except TypeError:
        raise ConfigurationError(
            f"{cls.__typename__} {name!r} is not a function of type {description}"
        ) from None
    return object


class Node(metaclass=NodeType):
    """
    common part of Command and CommandGroup: a name and its usage text.
    """

    @property
    def keyword(self):
        """
        the first word of the name, the token the dispatcher matches against.
        """
        return self._name.split()[0]

    def matches(self, token, /):
        return self.keyword.lower() == token.lower()


class Command(Node):
    """
    a leaf of the command forest.

    parameters
    - name: "<keyword> [arg] [rest...]"; every placeholder names a field declared
      with argument() on the defaults record, a "..." placeholder (string list)
      must be the last one.
    - defaults: prefilled record, copied for every dispatch. None means no flags
      (every token is remaining), a list means the record is the raw token list.
    - execute: execute(context, record); its return value is returned by run().
    - usage: one-line description shown in the forest listing.
    - prepare: prepare(record), called after validation succeeded; may raise
      FieldErrors or a CommandException to reject the record.
    """
    __introspectable__ = (
        "name",
        "usage",
        "defaults",
        "execute",
        "prepare",
        "parameters",
    )

    __displayable__ = (
        "name",
        "usage",
        "parameters",
    )

    def __init__(self, name, defaults, execute, /, usage=Unset, prepare=Unset):
        cls = type(self)
        name = _checkname(cls, name)
        keyword, *placeholders = name.split()

        if defaults is not None and not isinstance(defaults, list) and not isrecord(defaults):
            raise ConfigurationError(
                f"{cls.__typename__} {keyword!r} defaults must be a record, a list or None, "
                f"got: {type(defaults).__qualname__}"
            )

        parameters = []
        declared = arguments(type(defaults)) if isrecord(defaults) else {}
        for index, placeholder in enumerate(placeholders):
            if not (match := _PLACEHOLDER.fullmatch(placeholder)):
                raise ConfigurationError(f"{cls.__typename__} {keyword!r} placeholder {placeholder!r} is not valid")
            argname, variadic = match["name"], bool(match["variadic"])
            if variadic and index != len(placeholders) - 1:
                raise ConfigurationError(f"{cls.__typename__} {keyword!r} variadic placeholder {placeholder!r} must be the last one")
            if any(parameter.name == argname for parameter in parameters):
                raise ConfigurationError(f"{cls.__typename__} {keyword!r} placeholder {placeholder!r} is repeated")

            attribute = None
            if isrecord(defaults):
                if argname not in declared:
                    raise ConfigurationError(
                        f"{cls.__typename__} {keyword!r} placeholder {placeholder!r} has no argument() field "
                        f"on {type(defaults).__qualname__}"
                    )
                attribute, kind = declared.pop(argname)
                expected = Kind.STRING_LIST if variadic else Kind.STRING
                if kind is not expected:
                    raise ConfigurationError(
                        f"{cls.__typename__} {keyword!r} argument {argname!r} must be a "
                        f"{'list of strings' if variadic else 'string'}"
                    )
            parameters.append(Parameter(argname, variadic, attribute))

        if declared:
            raise ConfigurationError(
                f"{cls.__typename__} {keyword!r} arguments {', '.join(map(repr, declared))} have no placeholder in the name"
            )

        self._name = name
        self._usage = _checkusage(cls, usage)
        self._defaults = defaults
        self._execute = _checkcallable(cls, "execute", execute, 2, "(context, record)")
        self._prepare = coalesce(prepare, None)
        if self._prepare is not None:
            _checkcallable(cls, "prepare", self._prepare, 1, "(record)")
        self._parameters = tuple(parameters)

        # schema errors (cycles, duplicate flags, frozen records) surface at registration
        if isrecord(defaults):
            FlagSet(defaults, keyword, environ={}).descriptors()

    def flagset(self, environ=Unset, /):
        """
        the FlagSet of this command, or None when the defaults are not a record.
        """
        if not isrecord(self._defaults):
            return None
        return FlagSet(self._defaults, self.keyword, environ=environ)

    def bind(self, record, tokens, /):
        """
        bind leftover tokens to the positional fields of 'record', left to right.

        a single placeholder takes one token, a variadic one takes everything
        left. missing tokens leave defaults untouched; the unbound rest is
        returned.
        """
        tokens = list(tokens)
        for parameter in self._parameters:
            if not tokens:
                break
            if parameter.attribute is None:
                continue
            if parameter.variadic:
                setattr(record, parameter.attribute, tokens)
                tokens = []
                break
            setattr(record, parameter.attribute, tokens.pop(0))
        return tokens


class CommandGroup(Node):
    """
    a named subtree of the forest; its children are dispatched with the group
    name appended to the context parents.
    """
    __introspectable__ = (
        "name",
        "usage",
        "children",
    )

    def __init__(self, name, /, *children, usage=Unset):
        cls = type(self)
        name = _checkname(cls, name)
        if len(name.split()) != 1:
            raise ConfigurationError(f"{cls.__typename__} name {name!r} cannot carry placeholders")
        for child in children:
            if not isinstance(child, Node):
                raise ConfigurationError(f"{cls.__typename__} {name!r} children must be commands or command groups")

        self._name = name
        self._usage = _checkusage(cls, usage)
        self._children = children


def _display(value):
    if isinstance(value, list | tuple):
        return ",".join(map(str, value))
    if isinstance(value, dict):
        return ",".join("%s=%s" % pair for pair in value.items())
    return str(value)


def _violation(error):
    if error.positional:
        subject = "argument [%s]" % error.name
    else:
        subject = "flag -%s" % error.name
    return 'invalid value "%s" for %s: validation failed for rule \'%s\'' % (
        _display(error.value), subject, error.spec
    )


class Commands(metaclass=NodeType):
    """
    the command forest and its dispatcher.

    options
    - shell: print faults (rich, stderr) and exit(1) instead of raising them.
    - colorful / fancy: rich styling and panels for printed faults.
    - environ: environment store (os.environ when omitted).
    - validate: validation collaborator, validate(record) raising FieldErrors.
    """
    __introspectable__ = (
        "nodes",
        "shell",
        "colorful",
        "fancy",
    )

    def __init__(self, *nodes, shell=False, colorful=False, fancy=False, environ=Unset, validate=Unset):
        for node in nodes:
            if not isinstance(node, Node):
                raise ConfigurationError(f"{type(self).__typename__} nodes must be commands or command groups")
        self._nodes = nodes
        self._shell = bool(shell)
        self._colorful = bool(colorful)
        self._fancy = bool(fancy)
        self._environ = environ
        self._validate = coalesce(validate, _default_validate)
        if not callable(self._validate):
            raise ConfigurationError(f"{type(self).__typename__} 'validate' must be callable")

    @property
    def environ(self):
        return coalesce(self._environ, os.environ)

    def usage(self, argv=Unset, parents=(), nodes=Unset, /):
        """
        the listing of one forest level: every node name and its usage text,
        in declaration order, padded to a common column.
        """
        argv = coalesce(argv, sys.argv)
        nodes = coalesce(nodes, self._nodes)
        program = " ".join((argv[0] if argv else os.path.basename(sys.argv[0]), *parents))

        width = max((len(node.name) for node in nodes), default=0)
        width = width + width % 4 + 4

        description = "usage: %s [command] [args]\n\n" % program
        for node in nodes:
            if node.usage:
                description += "  " + node.name.ljust(width) + node.usage + "\n"
            else:
                description += "  " + node.name + "\n"
        return description

    def run(self, argv=Unset, context=Unset, /):
        """
        dispatch 'argv' (sys.argv when omitted; argv[0] is the program) and
        return what the executed command returned.
        """
        argv = list(coalesce(argv, sys.argv))
        context = coalesce(context, Context(environ=self.environ))
        try:
            return self._dispatch(argv, context, self._nodes)
        except CommandException as fault:
            trigger(fault, shell=self._shell, colorful=self._colorful, fancy=self._fancy)

    def _dispatch(self, argv, context, nodes):
        depth = len(context.parents)
        if len(argv) < depth + 2:
            raise UsageError(self.usage(argv, context.parents, nodes))

        token = argv[depth + 1]
        if token.startswith("@") and context.argfile is None:
            expansion = expand(argv, depth + 1, context.environ)
            apply(expansion.environment, context.environ)
            return self._dispatch(expansion.argv, dataclasses.replace(context, argfile=expansion.argfile), nodes)

        for node in nodes:
            if not node.matches(token):
                continue
            if isinstance(node, CommandGroup):
                logger.debug("entering group %s (parents: %s)", node.name, " ".join(context.parents) or "-")
                return self._dispatch(argv, dataclasses.replace(context, parents=(*context.parents, node.keyword)), node.children)
            logger.debug("dispatching to %s (parents: %s)", node.name, " ".join(context.parents) or "-")
            return self._execute(node, argv[depth + 2:], context)

        raise UsageError(
            self.usage(argv, context.parents, nodes),
            hint="unknown command %r" % token,
        )

    def _execute(self, command, tokens, context):
        flagset = command.flagset(context.environ)

        if isrecord(command.defaults):
            record = snapshot(command.defaults)
            leftover = command.bind(record, flagset.unmarshal(tokens, record))
        elif command.defaults is None:
            record, leftover = None, list(tokens)
        else:
            record, leftover = list(tokens), []

        try:
            self._validate(record)
            if command.prepare is not None:
                command.prepare(record)
        except FieldErrors as errors:
            if not tokens and flagset is not None:
                raise HelpRequested(flagset.usage()) from errors
            lines = [_violation(error) for error in errors]
            raise ValidationError(
                "\n".join(lines),
                lines=lines,
                violations=errors.errors,
                hint="run '%s -help' to list the available flags" % command.keyword,
            ) from errors

        context = dataclasses.replace(context, remaining=tuple(leftover))
        return command.execute(context, record)


__all__ = (
    "Context",
    "Parameter",
    "Command",
    "CommandGroup",
    "Commands",
    "remaining",
)
