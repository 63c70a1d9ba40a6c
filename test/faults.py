"""
Faults module tests (payloads, rendering and trigger).

Conventions
- Test method names follow CamelCase per project convention.
- Rendering is captured with a recording rich Console.
"""
import sys
import unittest
from unittest import TestCase, mock

from rich.console import Console

from flagbind import (
    ArgFileError,
    CommandException,
    FaultCode,
    FlagParseError,
    UsageError,
    ValidationError,
    trigger,
)


def render(fault):
    console = Console(record=True, width=120, color_system=None)
    console.print(fault)
    return console.export_text()


class TestPayloads(TestCase):
    """Options exposed as properties."""

    def testDefaultsFromClass(self):
        fault = FlagParseError("bad", flag="int", value="x")
        self.assertIs(fault.code, FaultCode.FLAG_PARSE)
        self.assertEqual(fault.title, "invalid flag value")
        self.assertEqual((fault.flag, fault.value), ("int", "x"))
        self.assertIsNone(fault.hint)

    def testValidationLinesFallBackToMessage(self):
        fault = ValidationError("first\nsecond")
        self.assertEqual(fault.lines, ("first", "second"))
        self.assertEqual(fault.violations, ())

    def testReplaceKeepsCause(self):
        cause = OSError("denied")
        try:
            raise ArgFileError("could not open @argfile, err: denied", path="x") from cause
        except ArgFileError as fault:
            replaced = fault.__replace__(shell=False)
        self.assertIs(replaced.__cause__, cause)
        self.assertEqual(replaced.path, "x")


class TestRendering(TestCase):
    """rich rendering."""

    def testHeaderAndHint(self):
        with mock.patch.object(sys.modules["__main__"], "__prog__", "tool", create=True):
            text = render(UsageError("usage: tool [command] [args]\n", hint="pick a command"))
        self.assertIn("[ tool | 21101 | Usage ]", text)
        self.assertIn("usage: tool [command] [args]", text)
        self.assertIn("pick a command", text)

    def testCustomCodes(self):
        codes = {FaultCode.VALIDATION: "E-VALID"}
        with mock.patch.object(sys.modules["__main__"], "__codes__", codes, create=True):
            text = render(ValidationError("line"))
        self.assertIn("E-VALID", text)

    def testFancyPanel(self):
        text = render(CommandException("boom", fancy=True))
        self.assertIn("boom", text)
        self.assertIn("╭", text)


class TestTrigger(TestCase):
    """trigger() in library and shell mode."""

    def testRaisesOutsideShell(self):
        with self.assertRaises(UsageError) as context:
            trigger(UsageError("usage"), colorful=True)
        self.assertTrue(context.exception.options["colorful"])

    def testShellPrintsAndExits(self):
        with mock.patch("flagbind.faults.console") as console:
            with self.assertRaises(SystemExit) as context:
                trigger(UsageError("usage"), shell=True)
        self.assertEqual(context.exception.code, 1)
        console.print.assert_called_once()

    def testRejectsNonFaults(self):
        with self.assertRaises(TypeError):
            trigger(ValueError("plain"))


if __name__ == "__main__":
    unittest.main()
