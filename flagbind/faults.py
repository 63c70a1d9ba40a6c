"""
flagbind faults (user-facing errors) and their rendering.

Scope
- FaultCode: stable numeric identifiers for every user-facing fault, grouped by
  domain (dispatch, flags, validation, argument files).
- CommandException: base type carrying a message plus options; knows how to
  render itself through rich and how to surface itself (raise or print+exit).
- ConfigurationError: programmer mistakes (bad schema, bad command wiring). it is
  deliberately NOT a CommandException, the dispatcher never catches it.
- trigger(): central entry point to surface any fault.

Shell vs library mode
- options["shell"] False (default): the fault is raised to the caller.
- options["shell"] True: the fault is printed to stderr and the process exits
  with status 1.

Host hooks (read from __main__, all optional)
- __styles__: palette overrides for the rich renderer.
- __codes__: mapping FaultCode -> custom label.
- __prog__: program name shown in fault headers.
"""
import os.path
import sys
from collections import defaultdict
from enum import IntEnum
from types import MappingProxyType

from rich.console import Console, Group
from rich.panel import Panel
from rich.text import Text

from .utils import Unset

console = Console(stderr=True)


class FaultCode(IntEnum):
    """
    canonical fault codes (stable identifiers).

    grouping
    - dispatch (211xx): USAGE
    - flags (2111x): UNKNOWN_FLAG, FLAG_PARSE, HELP_REQUESTED
    - validation (2112x): VALIDATION
    - argument files (2113x): ARGFILE
    """
    # --- dispatch ---
    USAGE                       = 21101

    # --- flags ---
    UNKNOWN_FLAG                = 21111
    FLAG_PARSE                  = 21112
    HELP_REQUESTED              = 21113

    # --- validation ---
    VALIDATION                  = 21121

    # --- argument files ---
    ARGFILE                     = 21131

    def normalize(self):
        """
        host-normalized label for this code (__codes__ in __main__), or the number.
        """
        return str(getattr(sys.modules.get("__main__"), "__codes__", {}).get(self, self.value))


class ConfigurationError(TypeError):
    """
    the command forest or a record schema is wired incorrectly.

    raised for duplicate flag names, cyclic record types, destinations that do
    not match their schema and malformed execute/prepare callables. never
    rendered, never caught by the dispatcher.
    """


def _program():
    main = sys.modules.get("__main__")
    return getattr(main, "__prog__", os.path.basename(sys.argv[0]) if sys.argv and sys.argv[0] else "flagbind")


class CommandException(Exception):
    """
    base class for faults caused by user input.

    options are free-form; the renderer understands title, code, hint, shell,
    colorful and fancy. subclasses expose their payload as properties.
    """
    __title__ = "command error"
    __code__ = FaultCode.USAGE

    def __init__(self, message=Unset, /, **options):
        assert isinstance(message, str | Unset)
        super().__init__(message)
        self.message = message
        self.options = MappingProxyType(options)

    def __str__(self):
        return self.message if self.message is not Unset else ""

    @property
    def code(self):
        return self.options.get("code", type(self).__code__)

    @property
    def title(self):
        return self.options.get("title", type(self).__title__)

    @property
    def hint(self):
        return self.options.get("hint")

    def __rich__(self):
        main = sys.modules.get("__main__")
        colorful = self.options.get("colorful", False)

        styles = defaultdict(str, {
            "prog-name": "bold #E6E6F0",
            "code": "bold #00E5FF",
            "error-title": "bold #FF4DA6",
            "error-message": "#C8C8D0",
            "hint-arrow": "#9CE19C dim",
            "hint": "italic #9CE19C",
        } | getattr(main, "__styles__", {}))

        def text(fragment, style=""):
            if not fragment:
                return Text("")
            if not colorful:
                return Text(str(fragment))
            return Text(str(fragment), styles[style])

        header = Text.assemble(
            "[ ",
            text(_program(), "prog-name"),
            " | ",
            text(self.code.normalize(), "code"),
            " | ",
            text(self.title.title(), "error-title"),
            " ]"
        )
        body = self._body(text)

        renders = [body]
        if self.hint:
            renders.append(Text.assemble(text(" -> ", "hint-arrow"), text(self.hint, "hint")))

        if self.options.get("fancy", False):
            return Panel(Group(*renders), title=header, title_align="left")
        return Group(header, *renders)

    def _body(self, text):
        return text(str(self), "error-message")

    def __trigger__(self):
        if not self.options.get("shell", False):
            raise self from self.__cause__
        console.print(self)
        sys.exit(1)

    def __replace__(self, *unused, **overrides):
        assert not unused, "positional arguments are not allowed"
        replaced = type(self)(self.message, **{**self.options, **overrides})
        replaced.__cause__ = self.__cause__
        return replaced


class UsageError(CommandException):
    """
    terminal usage state of the dispatcher: the message is the usage listing.
    """
    __title__ = "usage"
    __code__ = FaultCode.USAGE

    def _body(self, text):
        return Text(str(self).rstrip("\n"))


class UnknownFlagError(CommandException):
    __title__ = "unknown flag"
    __code__ = FaultCode.UNKNOWN_FLAG

    @property
    def token(self):
        return self.options.get("token")


class FlagParseError(CommandException):
    __title__ = "invalid flag value"
    __code__ = FaultCode.FLAG_PARSE

    @property
    def flag(self):
        return self.options.get("flag")

    @property
    def value(self):
        return self.options.get("value")


class HelpRequested(CommandException):
    """
    the user asked for (or needs to see) the flag listing of a command.
    """
    __title__ = "help"
    __code__ = FaultCode.HELP_REQUESTED

    def _body(self, text):
        return Text(str(self).rstrip("\n"))


class ValidationError(CommandException):
    """
    aggregate of rule violations, one formatted line per offending field.
    """
    __title__ = "invalid flags"
    __code__ = FaultCode.VALIDATION

    @property
    def lines(self):
        return tuple(self.options.get("lines", str(self).splitlines()))

    @property
    def violations(self):
        return tuple(self.options.get("violations", ()))

    def _body(self, text):
        return Text("\n").join(text(line, "error-message") for line in self.lines)


class ArgFileError(CommandException):
    """
    the @argfile could not be read, decoded or applied to the environment.
    """
    __title__ = "bad argument file"
    __code__ = FaultCode.ARGFILE

    @property
    def path(self):
        return self.options.get("path")


def trigger(fault, /, **options):
    """
    surface a fault with the given runtime options.

    contract
    - fault must provide __trigger__ and __replace__ methods.
    - options (shell, colorful, fancy, ...) are merged into the fault first.
    - in shell mode the fault is rendered and the process exits; otherwise the
      fault is raised.
    """
    if (
        not hasattr(fault, "__trigger__") or
        not callable(fault.__trigger__) or
        not hasattr(fault, "__replace__") or
        not callable(fault.__replace__)
    ):
        raise TypeError("trigger() argument must have a __trigger__ and __replace__ methods")
    fault.__replace__(**options).__trigger__()


__all__ = (
    "FaultCode",
    "ConfigurationError",
    "CommandException",
    "UsageError",
    "UnknownFlagError",
    "FlagParseError",
    "HelpRequested",
    "ValidationError",
    "ArgFileError",
    "trigger",
)
