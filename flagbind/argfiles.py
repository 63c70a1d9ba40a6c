"""
flagbind argument files: a whole invocation described in JSON.

    { "command": ["subcommand", ...],
      "args":    ["-flag=value", ...],
      "env":     ["KEY=VALUE", ...] }

An "@path" token in command position is replaced by the file's command tokens
followed by its args; tokens that followed "@path" in the invocation are kept after
them. env entries are assigned in order and their values are expanded with
expandenv() against the current environment, so an entry may read a variable
set by an earlier entry. args are expanded after every env entry.

expand() does not touch the process environment: it returns the assignments
alongside the rewritten vector, and the dispatcher applies them. Those
assignments are process-wide and never rolled back; the executed command and
anything it calls can read them.
"""
import dataclasses
import json
import logging
import re
from collections import ChainMap
from typing import NamedTuple

from .faults import ArgFileError

logger = logging.getLogger(__name__)

_VARIABLE = re.compile(
    r"""
    \$(?:
        \{(?P<braced>[^}]*)\}
      | (?P<unterminated>\{)
      | (?P<special>[*#$@!?0-9-])
      | (?P<named>[A-Za-z_][A-Za-z0-9_]*)
    )
    """,
    re.VERBOSE | re.ASCII,
)


def _substitute(environ):
    def substitute(match):
        name = match["named"] or match["special"] or match["braced"]
        return environ.get(name, "") if name else ""
    return substitute


def expandenv(text, environ, /):
    """
    replace $VAR and ${VAR} with values from 'environ', with shell rules:

    - unset variables expand to the empty string.
    - "$" followed by one special character (a digit or one of *#$@!?-) names
      that single-character variable: "a$1b" is "ab" when $1 is unset.
    - "${}" and an unterminated "${" are dropped, the text after "${" is kept.
    - a "$" followed by anything else is kept.
    """
    return _VARIABLE.sub(_substitute(environ), text)


def _strings(payload, key, path):
    value = payload.get(key)
    if value is None:
        return ()
    if not isinstance(value, list) or not all(isinstance(item, str) for item in value):
        raise ArgFileError(
            "could not read @argfile, err: %r must be a list of strings" % key,
            path=path,
            hint="see the argument file format: command, args and env are lists of strings",
        )
    return tuple(value)


@dataclasses.dataclass(frozen=True)
class ArgFile:
    """
    a loaded argument file.
    """
    command: tuple[str, ...] = ()
    args: tuple[str, ...] = ()
    env: tuple[str, ...] = ()
    path: str | None = dataclasses.field(default=None, compare=False)

    @classmethod
    def load(cls, path, /):
        """
        read and decode an argument file; every failure is an ArgFileError.
        """
        try:
            with open(path, encoding="utf-8") as stream:
                data = stream.read()
        except OSError as error:
            raise ArgFileError(
                "could not open @argfile, err: %s" % error,
                path=path,
                hint="check that the file after '@' exists and is readable",
            ) from error

        try:
            payload = json.loads(data)
        except json.JSONDecodeError as error:
            raise ArgFileError(
                "could not read @argfile, err: %s" % error,
                path=path,
                hint="the argument file must be a JSON object",
            ) from error

        if not isinstance(payload, dict):
            raise ArgFileError(
                "could not read @argfile, err: expected a JSON object",
                path=path,
                hint="the argument file must be a JSON object",
            )

        return cls(
            _strings(payload, "command", path),
            _strings(payload, "args", path),
            _strings(payload, "env", path),
            path,
        )

    def assignments(self, environ, /):
        """
        the env entries as an ordered {key: expanded value} mapping, each value
        expanded against 'environ' overlaid with the earlier entries.
        """
        assigned = {}
        overlay = ChainMap(assigned, environ)
        for entry in self.env:
            key, separator, value = entry.partition("=")
            if not separator or not key.strip() or "\0" in entry:
                raise ArgFileError(
                    "failed to apply environment variable %r from @argfile" % entry,
                    path=self.path,
                    hint="environment entries look like KEY=VALUE",
                )
            assigned[key] = expandenv(value, overlay)
        return assigned


class Expansion(NamedTuple):
    argv: list
    environment: dict
    argfile: ArgFile


def expand(argv, index, environ, /):
    """
    load the "@path" token at argv[index] and return the rewritten vector.

    argv[:index] + file command + file args (expanded) + argv[index + 1:]
    """
    argfile = ArgFile.load(argv[index][1:])
    environment = argfile.assignments(environ)
    overlay = ChainMap(environment, environ)

    rewritten = [
        *argv[:index],
        *argfile.command,
        *(expandenv(arg, overlay) for arg in argfile.args),
        *argv[index + 1:],
    ]
    logger.debug("expanded @%s: command=%r env=%r", argfile.path, argfile.command, list(environment))
    return Expansion(rewritten, environment, argfile)


def apply(environment, environ, /):
    """
    write the assignments of an expansion into the environment store.
    """
    for key, value in environment.items():
        try:
            environ[key] = value
        except (ValueError, OSError) as error:
            raise ArgFileError(
                "failed to apply environment variable %s from @argfile: %s" % (key, error),
                hint="environment entries look like KEY=VALUE",
            ) from error


__all__ = (
    "ArgFile",
    "Expansion",
    "expandenv",
    "expand",
    "apply",
)
