"""
Command tree behavioral tests (registry, resolution, flags binding, help).

Scope
- Validate registration order, replacement and deletion.
- Validate greedy resolution, alias lookup and leftovers.
- Validate lazily created flag sets and their private error buffers.
- Validate both help layouts and the subcommand table.

Conventions
- Test method names follow CamelCase per project convention.
- Tests use the public API (Command, command) and compare help lines with
  trailing spaces stripped.
"""

from __future__ import annotations

import unittest
from unittest import TestCase

from conch import Command, command, Flag, FlagError, UnknownFlagError, MissingHelpCommandError


def _lines(text):
    return [line.rstrip() for line in text.splitlines()]


def _tree():
    root = Command("app")
    root.add_command(Command("help", help="show help"))
    root.add_command(Command("status", help="show status"))
    return root


class TestRegistry(TestCase):
    """Registry operations on a detached tree."""

    def testChildrenSortedByName(self):
        root = Command("app")
        for name in ("zeta", "alpha", "mid"):
            root.add_command(Command(name))
        self.assertEqual([child.name for child in root.children()], ["alpha", "mid", "zeta"])
        self.assertEqual(root.children(), root.children())

    def testAddReturnsChildAndSetsParent(self):
        root = Command("app")
        child = root.add_command(Command("status"))
        self.assertIs(child.parent, root)
        self.assertIsNone(root.parent)
        self.assertEqual([node.name for node in child.path], ["app", "status"])

    def testAddThenDeleteRestoresChildren(self):
        root = _tree()
        before = root.children()
        root.add_command(Command("deploy"))
        root.delete_command("deploy")
        self.assertEqual(root.children(), before)

    def testDeleteUnknownIsNoop(self):
        root = _tree()
        before = root.children()
        root.delete_command("missing")
        self.assertEqual(root.children(), before)

    def testDeleteDetachesChild(self):
        root = _tree()
        status, _ = root.find_command(["status"])
        root.delete_command("status")
        self.assertIsNone(status.parent)
        self.assertEqual(root.find_command(["status"]), (None, ["status"]))

    def testReplaceMakesOldChildUnreachable(self):
        root = _tree()
        old, _ = root.find_command(["status"])
        new = root.add_command(Command("status", help="new status"))
        found, rest = root.find_command(["status"])
        self.assertIs(found, new)
        self.assertEqual(rest, [])
        self.assertIsNone(old.parent)
        self.assertEqual(len(root.children()), 2)

    def testHasSubcommand(self):
        node = Command("node")
        self.assertFalse(node.has_subcommand())
        node.add_command(Command("help"))
        self.assertFalse(node.has_subcommand())
        node.delete_command("help")
        node.add_command(Command("status"))
        self.assertTrue(node.has_subcommand())
        node.add_command(Command("help"))
        self.assertTrue(node.has_subcommand())

    def testMoveToAnotherParent(self):
        one, two = Command("one"), Command("two")
        leaf = one.add_command(Command("leaf"))
        two.add_command(leaf)
        self.assertIs(leaf.parent, two)
        self.assertEqual(one.find_command(["leaf"]), (None, ["leaf"]))
        one.delete_command("leaf")
        self.assertIs(leaf.parent, two)
        self.assertEqual(two.find_command(["leaf"]), (leaf, []))

    def testAttachUnderDescendantRaises(self):
        root = Command("app")
        group = root.add_command(Command("group"))
        with self.assertRaises(ValueError):
            group.add_command(root)
        with self.assertRaises(ValueError):
            group.add_command(group)

    def testAddRejectsNonCommand(self):
        with self.assertRaises(TypeError):
            Command("app").add_command("status")


class TestMetadata(TestCase):
    """Construction-time validation and the command() factory."""

    def testNameIsTrimmedAndRequired(self):
        self.assertEqual(Command("  status ").name, "status")
        with self.assertRaises(ValueError):
            Command("   ")
        with self.assertRaises(ValueError):
            Command("two words")
        with self.assertRaises(TypeError):
            Command(42)

    def testAliasesValidated(self):
        self.assertEqual(Command("deploy", aliases=["d", "dep"]).aliases, ("d", "dep"))
        with self.assertRaises(TypeError):
            Command("deploy", aliases="d")
        with self.assertRaises(ValueError):
            Command("deploy", aliases=("d", "d"))

    def testHandlerMustBeCallable(self):
        with self.assertRaises(TypeError):
            Command("status", "not callable")

    def testDecoratorUsesDocstring(self):
        root = Command("app")

        @root.command(aliases=("st",))
        def status(context):
            """
            show status

            Prints the current status of every service.
            """

        self.assertIsInstance(status, Command)
        self.assertEqual(status.name, "status")
        self.assertEqual(status.help, "show status")
        self.assertTrue(status.long_help.startswith("show status\n\nPrints"))
        self.assertIs(status.parent, root)

    def testDirectFactory(self):
        def handler(context):
            pass

        node = command(handler, name="run", help="run it")
        self.assertEqual(node.name, "run")
        self.assertIs(node.handler, handler)
        self.assertIsNone(node.long_help)
        self.assertIsNone(node.parent)

    def testFactoryRejectsUnknownMetadata(self):
        with self.assertRaises(TypeError):
            command(lambda context: None, name="run", descr="nope")


class TestResolution(TestCase):
    """find_command greedy resolution."""

    def testExactMatch(self):
        root = _tree()
        status, rest = root.find_command(["status"])
        self.assertEqual(status.name, "status")
        self.assertEqual(rest, [])

    def testLeftoverTokens(self):
        root = _tree()
        status, rest = root.find_command(["status", "extra"])
        self.assertEqual(status.name, "status")
        self.assertEqual(rest, ["extra"])

    def testUnknownFirstToken(self):
        self.assertEqual(_tree().find_command(["bogus"]), (None, ["bogus"]))

    def testEmptyTokens(self):
        self.assertEqual(_tree().find_command([]), (None, []))

    def testAliasLookup(self):
        root = _tree()
        deploy = root.add_command(Command("deploy", aliases=("d",)))
        self.assertEqual(root.find_command(["d"]), (deploy, []))

    def testNameWinsOverAlias(self):
        root = Command("app")
        root.add_command(Command("other", aliases=("x",)))
        x = root.add_command(Command("x"))
        self.assertIs(root.find_command(["x"])[0], x)

    def testAliasCollisionFirstRegisteredWins(self):
        root = Command("app")
        first = root.add_command(Command("first", aliases=("f",)))
        root.add_command(Command("second", aliases=("f",)))
        for _ in range(10):
            self.assertIs(root.find_command(["f"])[0], first)

    def testDeepestNode(self):
        root = Command("app")
        remote = root.add_command(Command("remote"))
        add = remote.add_command(Command("add"))
        self.assertEqual(root.find_command(["remote", "add"]), (add, []))
        self.assertEqual(root.find_command(["remote", "add", "origin"]), (add, ["origin"]))
        self.assertEqual(root.find_command(["remote", "rm"]), (remote, ["rm"]))

    def testStringIsRejected(self):
        with self.assertRaises(TypeError):
            _tree().find_command("status")


class TestFlags(TestCase):
    """Flag binding on command nodes."""

    def testFlagsAreLazyAndStable(self):
        node = Command("deploy")
        self.assertEqual(node.flag_errors, "")
        flags = node.flags
        self.assertIs(node.flags, flags)
        self.assertEqual(flags.name, "deploy")

    def testParseWithoutFlagsReturnsInput(self):
        node = Command("deploy")
        self.assertEqual(node.parse_flags(["--anything", "x"]), ["--anything", "x"])

    def testParseReturnsPositionals(self):
        node = Command("deploy")
        node.flags.add(Flag("-f", "--force"))
        self.assertEqual(node.parse_flags(["prod", "--force"]), ["prod"])
        self.assertTrue(node.flags["-f"])

    def testErrorsGoToPrivateBuffer(self):
        one, two = Command("one"), Command("two")
        one.flags.flag("--force")
        two.flags.flag("--quiet")
        with self.assertRaises(UnknownFlagError):
            one.parse_flags(["--forse"])
        self.assertIn("unknown flag '--forse'", one.flag_errors)
        self.assertIn("did you mean '--force'?", one.flag_errors)
        self.assertIn("usage of one:", one.flag_errors)
        self.assertEqual(two.flag_errors, "")

    def testFlagErrorIsRecoverable(self):
        node = Command("one")
        node.flags.flag("--force")
        with self.assertRaises(FlagError):
            node.parse_flags(["--force=yes"])
        self.assertEqual(node.parse_flags(["--force"]), [])


class TestHelp(TestCase):
    """help_text() layouts."""

    def testRootHelp(self):
        lines = _lines(_tree().help_text())
        self.assertEqual(lines[:4], ["show help", "", "Usage:", "    app [options]"])
        self.assertIn("Commands:", lines)
        self.assertIn("  help      show help", lines)
        self.assertIn("  status    show status", lines)

    def testRootHelpRequiresHelpCommand(self):
        root = Command("app")
        root.add_command(Command("status", help="show status"))
        with self.assertRaises(MissingHelpCommandError):
            root.help_text()

    def testNodeHelpPrefersLongHelp(self):
        root = _tree()
        group = root.add_command(Command("group", help="short summary", long_help="Group of things."))
        group.add_command(Command("b", help="help b"))
        group.add_command(Command("a", help="help a"))
        text = group.help_text()
        lines = _lines(text)
        self.assertEqual(lines[0], "Group of things.")
        self.assertNotIn("short summary", text)
        self.assertIn("    app group [options]", lines)
        self.assertIn("Flags:", lines)
        self.assertIn("  a    help a", lines)
        self.assertIn("  b    help b", lines)
        self.assertLess(text.index("help a"), text.index("help b"))

    def testNodeHelpFallsBackToHelp(self):
        root = _tree()
        status, _ = root.find_command(["status"])
        lines = _lines(status.help_text())
        self.assertEqual(lines[0], "show status")
        self.assertNotIn("Commands:", lines)

    def testNodeHelpWithoutDescription(self):
        root = _tree()
        bare = root.add_command(Command("bare"))
        lines = _lines(bare.help_text())
        self.assertEqual(lines[:2], ["Usage:", "    app bare [options]"])

    def testNodeHelpListsFlags(self):
        root = _tree()
        status, _ = root.find_command(["status"])
        status.flags.flag("-v", "--verbose", descr="be loud")
        self.assertIn("  -v, --verbose    be loud", _lines(status.help_text()))

    def testHelpDoesNotCreateFlags(self):
        root = _tree()
        status, _ = root.find_command(["status"])
        status.help_text()
        self.assertEqual(status.parse_flags(["--unknown"]), ["--unknown"])

    def testHelpIsNotWrapped(self):
        root = _tree()
        long_help = " ".join(["word"] * 30)
        summary = " ".join(["x"] * 60)
        group = root.add_command(Command("group", long_help=long_help))
        group.add_command(Command("a", help=summary))
        group.add_command(Command("b", help="help b"))
        self.assertEqual(group.help_text().splitlines(), [
            long_help,
            "",
            "Usage:",
            "    app group [options]",
            "",
            "Flags:",
            "",
            "Commands:",
            "  a    " + summary,
            "  b    help b",
        ])

    def testDetachedLeafUsesCommandLayout(self):
        node = command(lambda context: None, name="run", help="run it")
        self.assertEqual(node.help_text().splitlines()[:4], ["run it", "", "Usage:", "    run [options]"])

    def testNestedPath(self):
        root = _tree()
        remote = root.add_command(Command("remote", help="manage remotes"))
        add = remote.add_command(Command("add", help="add a remote"))
        self.assertIn("    app remote add [options]", _lines(add.help_text()))


if __name__ == "__main__":
    unittest.main()
