"""
Flag set behavioral tests (specs, parsing, faults, usage block).

Conventions
- Test method names follow CamelCase per project convention.
- Every flag set writes its reports to an in-memory buffer.
"""

from __future__ import annotations

import io
import unittest
import warnings
from unittest import TestCase

from conch import Option, Flag, FlagSet
from conch.faults import (
    MalformedFlagError,
    UnknownFlagError,
    FlagAssignmentError,
    FlagValueRequiredError,
    DuplicatedFlagError,
    InvalidFlagValueError,
    InvalidChoiceError,
    DeprecatedFlagWarning,
)


def _flagset():
    flags = FlagSet("tool")
    flags.output = io.StringIO()
    flags.option("-n", "--name", descr="target name")
    flags.option("--count", type=int, default=1)
    flags.option("--mode", choices=("fast", "slow"))
    flags.flag("-v", "--verbose")
    return flags


class TestSpecs(TestCase):
    """Option/Flag construction."""

    def testNamesAreOrderedShortsFirst(self):
        self.assertEqual(Flag("--verbose", "-v").names, ("-v", "--verbose"))

    def testMalformedNamesRaise(self):
        with self.assertRaises(ValueError):
            Flag("verbose")
        with self.assertRaises(ValueError):
            Option("--1st")
        with self.assertRaises(TypeError):
            Flag()

    def testMetavarAndChoicesAreExclusive(self):
        with self.assertRaises(TypeError):
            Option("--mode", metavar="MODE", choices=("a", "b"))

    def testDuplicatedChoicesRaise(self):
        with self.assertRaises(ValueError):
            Option("--mode", choices=("a", "a"))

    def testFlagDefaultsToFalse(self):
        self.assertIs(Flag("-v").default, False)

    def testDuplicatedNameInSetRaises(self):
        flags = FlagSet("tool")
        flags.flag("-v", "--verbose")
        with self.assertRaises(ValueError):
            flags.option("--verbose")


class TestParsing(TestCase):
    """FlagSet.parse behavior."""

    def testInterspersedPositionals(self):
        flags = _flagset()
        self.assertEqual(flags.parse(["a", "-v", "--name", "x", "b"]), ["a", "b"])
        self.assertTrue(flags.parsed)
        self.assertEqual(flags["--name"], "x")
        self.assertEqual(flags["-n"], "x")
        self.assertTrue(flags.get("--verbose"))
        self.assertTrue(flags.changed("-v"))
        self.assertFalse(flags.changed("--count"))

    def testDefaults(self):
        flags = _flagset()
        flags.parse([])
        self.assertEqual(flags["--count"], 1)
        self.assertIsNone(flags["--name"])
        self.assertIs(flags["-v"], False)

    def testInlineValueAndConversion(self):
        flags = _flagset()
        flags.parse(["--count=3", "--mode=slow"])
        self.assertEqual(flags["--count"], 3)
        self.assertEqual(flags["--mode"], "slow")

    def testNegativeNumberValue(self):
        flags = _flagset()
        flags.parse(["--count", "-3"])
        self.assertEqual(flags["--count"], -3)

    def testTerminator(self):
        flags = _flagset()
        self.assertEqual(flags.parse(["-v", "--", "--name", "-"]), ["--name", "-"])
        self.assertFalse(flags.changed("--name"))

    def testParseResetsState(self):
        flags = _flagset()
        flags.parse(["-v", "a"])
        self.assertEqual(flags.parse(["b"]), ["b"])
        self.assertFalse(flags.changed("-v"))

    def testClusteredShorthands(self):
        flags = _flagset()
        self.assertEqual(flags.parse(["-vn", "prod", "a"]), ["a"])
        self.assertTrue(flags["--verbose"])
        self.assertEqual(flags["--name"], "prod")

    def testAttachedShorthandValue(self):
        flags = _flagset()
        flags.parse(["-nprod"])
        self.assertEqual(flags["--name"], "prod")
        flags.parse(["-vn=stage"])
        self.assertEqual(flags["--name"], "stage")
        self.assertTrue(flags["-v"])

    def testUnknownShorthandInCluster(self):
        flags = _flagset()
        with self.assertRaises(UnknownFlagError) as context:
            flags.parse(["-vx"])
        self.assertEqual(context.exception.options["input"], "-vx")

    def testUnknownFlagKeyRaisesKeyError(self):
        with self.assertRaises(KeyError):
            _flagset()["--missing"]


class TestFaults(TestCase):
    """FlagError subclasses and the written report."""

    def testUnknownFlag(self):
        flags = _flagset()
        with self.assertRaises(UnknownFlagError) as context:
            flags.parse(["--verbos"])
        self.assertEqual(context.exception.options["suggestions"][0], "--verbose")
        report = flags.output.getvalue()
        self.assertIn("error: unknown flag '--verbos' at first position", report)
        self.assertIn("usage of tool:", report)
        self.assertIn("--verbose", report)

    def testMalformedFlag(self):
        with self.assertRaises(MalformedFlagError):
            _flagset().parse(["---v"])

    def testFlagAssignment(self):
        with self.assertRaises(FlagAssignmentError):
            _flagset().parse(["--verbose=yes"])

    def testValueRequired(self):
        with self.assertRaises(FlagValueRequiredError):
            _flagset().parse(["--name"])
        with self.assertRaises(FlagValueRequiredError):
            _flagset().parse(["--name", "-v"])

    def testDuplicated(self):
        with self.assertRaises(DuplicatedFlagError) as context:
            _flagset().parse(["-v", "--verbose"])
        self.assertIn("second position", context.exception.message)

    def testInvalidValue(self):
        with self.assertRaises(InvalidFlagValueError) as context:
            _flagset().parse(["--count", "many"])
        self.assertIsInstance(context.exception.__cause__, ValueError)

    def testInvalidChoice(self):
        with self.assertRaises(InvalidChoiceError):
            _flagset().parse(["--mode", "medium"])

    def testDeprecatedFlagWarns(self):
        flags = FlagSet("tool")
        flags.flag("--old", deprecated=True)
        with warnings.catch_warnings(record=True) as caught:
            warnings.simplefilter("always")
            flags.parse(["--old"])
        self.assertTrue(any(isinstance(warning.message, DeprecatedFlagWarning) for warning in caught))
        self.assertTrue(flags["--old"])


class TestUsages(TestCase):
    """usages() block layout."""

    def testAlignedColumns(self):
        self.assertEqual(_flagset().usages().splitlines(), [
            "  -n, --name <name>     target name",
            "  --count <count>       (default 1)",
            "  --mode {fast,slow}",
            "  -v, --verbose",
        ])

    def testHiddenSpecsAreSkipped(self):
        flags = FlagSet("tool")
        flags.flag("--secret", hidden=True)
        self.assertEqual(flags.usages(), "")


if __name__ == "__main__":
    unittest.main()
