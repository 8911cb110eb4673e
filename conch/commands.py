"""
Conch command layer: the command tree of an interactive shell.

What this module provides
- Command: one node of the tree. A node carries its own metadata (name, aliases,
  help, long_help), an optional handler, an optional completer, a registry of
  child commands and, on demand, a FlagSet for its option flags.
  • Registry: add_command / delete_command / children / has_subcommand.
  • Resolution: find_command(tokens) walks the tree greedily and returns the
    deepest matching node plus the tokens it did not consume.
  • Flags: `flags` is created on first access and reports parse errors into a
    private buffer (`flag_errors`), so two commands never mix their messages.
  • Help: help_text() renders plain text; __rich__ renders the same layout with
    the palette (overridable via __main__.__styles__).
  • Completion: complete(args) defers to the completer or lists child names.

- command(...): build a Command from a handler callable (or a decorator that will).

Resolution rules
- Exact child names win over aliases.
- Aliases are scanned in registration order, so when two siblings claim the same
  alias the first registered one resolves.
- Resolution never fails: an unknown first token yields (None, tokens).

Help layout
- The tree root renders the "help" command's summary followed by
  "<shell> [options]"; it requires a "help" command to be reachable and raises
  MissingHelpCommandError otherwise.
- Any other node renders long_help (or help), "<shell> <path> [options]" and the
  flag usage block.
- Both append a "Commands:" table (sorted by name) when the node has listable
  subcommands.

Quick start
    from conch import Command

    root = Command("app")
    root.add_command(Command("help", help="Display help"))

    @root.command(aliases=("st",))
    def status(context):
        \"\"\"show status\"\"\"

    root.find_command(["st", "--verbose"])  # (status, ['--verbose'])
"""
import functools
import inspect
import io
import logging
import operator
import re
from collections.abc import Iterable

from rich.console import Group
from rich.padding import Padding
from rich.table import Table
from rich.text import Text

from .faults import MissingHelpCommandError
from .flags import FlagSet
from .utils import *

logger = logging.getLogger(__name__)


class CommandType(type):
    """
    Metaclass that makes commands introspectable.

    - __typename__ is derived from the class name for consistent messages.
    - Every name in __introspectable__ becomes a read-only property backed by
      "_{name}" (see mirror()).
    - __displayable__ narrows what __repr__/__rich_repr__ show; parent and root
      are left out so a repr never walks the tree.
    """
    __introspectable__ = ()
    __displayable__ = Unset

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
                ", ".join(map(functools.partial(operator.mod, "%s=%r"), self.__rich_repr__())),
            )
        self.__repr__ = __repr__

        @rename("__rich_repr__")
        def __rich_repr__(self):
            for name in coalesce(type(self).__displayable__, type(self).__introspectable__):
                yield name, getattr(self, name)
        self.__rich_repr__ = __rich_repr__

        return self


def _process_strings(cls, metadata):
    """
    Normalize the scalar text fields of a command.

    - name: required, non-empty after trimming, no whitespace inside (it is
      matched against a single token).
    - help: Unset | str, trimmed, non-empty when provided.
    - long_help: Unset | str, cleaned with inspect.cleandoc, non-empty when provided.

    Unset values become None.
    """
    if not isinstance(name := metadata["name"], str):
        raise TypeError(f"{cls.__typename__} 'name' must be a string")
    elif not (name := name.strip()):
        raise ValueError(f"{cls.__typename__} 'name' cannot be empty")
    elif any(char.isspace() for char in name):
        raise ValueError(f"{cls.__typename__} 'name' cannot contain whitespace")
    metadata["name"] = name

    for field in ("help", "long_help"):
        if not isinstance(object := metadata[field], str | Unset):
            raise TypeError(f"{cls.__typename__} {field!r} must be a string")
        elif isinstance(object, str) and not (object := inspect.cleandoc(object)):
            raise ValueError(f"{cls.__typename__} {field!r} cannot be empty")
        metadata[field] = coalesce(object)


def _process_aliases(cls, metadata):
    """
    Normalize aliases into a tuple of unique, trimmed, non-empty strings,
    preserving the given order.
    """
    if isinstance(aliases := metadata["aliases"], str) or not isinstance(aliases, Iterable):
        raise TypeError(f"{cls.__typename__} 'aliases' must be an iterable of strings")
    sanitized = []
    for alias in aliases:
        if not isinstance(alias, str):
            raise TypeError(f"{cls.__typename__} 'aliases' must be an iterable of strings")
        elif not (alias := alias.strip()):
            raise ValueError(f"{cls.__typename__} 'aliases' cannot contain empty strings")
        elif alias in sanitized:
            raise ValueError(f"{cls.__typename__} 'aliases' cannot contain duplicates")
        sanitized.append(alias)
    metadata["aliases"] = tuple(sanitized)


def _process_callables(cls, metadata):
    for field in ("handler", "completer"):
        if metadata[field] is not None and not callable(metadata[field]):
            raise TypeError(f"{cls.__typename__} {field!r} must be callable")


def _propagate(command, root):
    """
    Point command and its whole subtree at root (a Shell, or Unset when detached).
    """
    stack = [command]
    while stack:
        node = stack.pop()
        node._root = root
        stack.extend(node._children.values())


def _detach(command):
    command._parent = Unset
    _propagate(command, Unset)


class Command(metaclass=CommandType):
    """
    A named node of the command tree.

    Ownership
    - A node owns its children exclusively; `parent` and `root` are plain,
      non-owning back-references kept up to date by add_command/delete_command.
    - `root` is the Shell the tree is mounted in (Unset when detached). It is only
      read for the shell's display name and for the tree-root identity check.

    Concurrency
    - No internal locking. Mutate the tree before dispatching starts, or serialize
      access externally.
    """

    __introspectable__ = (
        "name",
        "aliases",
        "handler",
        "help",
        "long_help",
        "completer",
        "parent",
        "root",
    )

    __displayable__ = (
        "name",
        "aliases",
        "help",
        "long_help",
    )

    def __init__(
            self,
            name,
            /,
            handler=None,
            *,
            aliases=(),
            help=Unset,
            long_help=Unset,
            completer=None,
    ):
        """
        Construct a detached command.

        Parameters
        - name: str
          Key among siblings and flag-set identifier.
        - handler: Callable[[Context], Any] | None
          Invoked on successful dispatch; None for pure grouping nodes.
        - aliases: Iterable[str]
          Alternate tokens resolving to this node within its parent.
        - help: str
          One-line summary (shown in the parent's "Commands:" table).
        - long_help: str
          Multi-line description; preferred over help in this node's help text.
        - completer: Callable[[list[str]], list[str]] | None
          Replaces the default completion (child names).

        Raises
        - TypeError/ValueError on malformed metadata.
        """
        metadata = {
            "name": name,
            "handler": handler,
            "aliases": aliases,
            "help": help,
            "long_help": long_help,
            "completer": completer,
        }
        _process_strings(type(self), metadata)
        _process_aliases(type(self), metadata)
        _process_callables(type(self), metadata)

        for name, object in metadata.items():
            setattr(self, "_" + name, object)

        self._parent = Unset
        self._root = Unset
        self._children = {}
        self._flags = Unset
        self._flag_errors = Unset

    @property
    def path(self):
        """
        The ancestry from the topmost node to this one, as a tuple.
        """
        path = [command := self]
        while command._parent:
            path.append(command := command._parent)
        return tuple(reversed(path))

    @property
    def shell_name(self):
        """
        The display name of the owning shell; for a detached tree, the name of its
        topmost node.
        """
        if self._root:
            return self._root.name
        return self.path[0].name

    def is_root(self):
        """
        Whether this node is the root of its tree: the owning shell's root node,
        or, when the tree is detached, a node with children but no parent. A
        detached leaf is an ordinary command.
        """
        if self._root:
            return self is self._root.root
        return not self._parent and bool(self._children)

    # ── Registry ─────────────────────────────────────────────────────────────

    def add_command(self, command, /):
        """
        Attach command as a child, keyed by its name, and return it.

        An existing child with the same name is replaced and detached; the
        replacement counts as a new registration for alias ordering.
        A command that belongs to another parent is moved: it is removed from
        that parent first, so every node keeps a single parent.

        Raises
        - TypeError when command is not a Command.
        - ValueError when command is this node or one of its ancestors.
        """
        if not isinstance(command, Command):
            raise TypeError(f"{type(self).__typename__} add_command() argument must be a command")

        if command in self.path:
            raise ValueError(f"{type(self).__typename__} cannot be attached under itself or its descendants")

        if command._parent and command._parent is not self:
            logger.debug("moving command %r from %r to %r", command.name, command._parent.name, self._name)
            command._parent.delete_command(command.name)

        if (previous := self._children.pop(command.name, None)) is not None and previous is not command:
            logger.debug("replacing command %r under %r", command.name, self._name)
            _detach(previous)

        self._children[command.name] = command
        command._parent = self
        _propagate(command, self._root)
        logger.debug("attached command %r under %r", command.name, self._name)
        return command

    def delete_command(self, name, /):
        """
        Detach the child registered under name; no-op when there is none.
        """
        if (command := self._children.pop(name, None)) is None:
            return
        _detach(command)
        logger.debug("deleted command %r from %r", name, self._name)

    def children(self):
        """
        Direct children sorted by name (display order; resolution is unaffected).
        """
        return sorted(self._children.values(), key=operator.attrgetter("name"))

    def has_subcommand(self):
        """
        Whether there is anything worth listing under "Commands:": more than one
        child, or a single child that is not the implicit "help" command.
        """
        if len(self._children) > 1:
            return True
        return bool(self._children) and "help" not in self._children

    def command(self, source=Unset, /, **metadata):
        """
        Create a command from a handler and attach it here (decorator-friendly).

        See the module-level command() for the accepted metadata.
        """
        return command(source, self, **metadata)

    # ── Resolution ───────────────────────────────────────────────────────────

    def _find_child(self, token):
        try:
            return self._children[token]
        except KeyError:
            pass

        for child in self._children.values():
            if token in child._aliases:
                return child
        return None

    def find_command(self, tokens, /):
        """
        Resolve tokens to the deepest matching descendant.

        Returns
        - (command, remaining): command is the last node matched (None when the
          first token matches nothing); remaining starts at the first token that
          did not match and is empty when every token was consumed.
        """
        if isinstance(tokens, str) or not isinstance(tokens, Iterable):
            raise TypeError(f"{type(self).__typename__} find_command() argument must be an iterable of strings")
        tokens = list(tokens)

        command = None
        current = self
        for index, token in enumerate(tokens):
            if (child := current._find_child(token)) is None:
                logger.debug("resolved %r to %r with %d token(s) left", tokens, getattr(command, "name", None), len(tokens) - index)
                return command, tokens[index:]
            command = current = child

        logger.debug("resolved %r to %r", tokens, getattr(command, "name", None))
        return command, []

    # ── Flags ────────────────────────────────────────────────────────────────

    @property
    def flags(self):
        """
        The command's FlagSet, created on first access. Its parse errors are
        written to a private buffer readable through `flag_errors`.
        """
        if self._flags is Unset:
            self._flags = FlagSet(self._name)
            if self._flag_errors is Unset:
                self._flag_errors = io.StringIO()
            self._flags.output = self._flag_errors
        return self._flags

    @property
    def flag_errors(self):
        return self._flag_errors.getvalue() if self._flag_errors else ""

    def parse_flags(self, arguments, /):
        """
        Parse arguments against this command's flags and return the positionals.

        Commands that never declared flags accept anything untouched. Failures
        raise FlagError (recoverable); the report also lands in `flag_errors`.
        """
        if self._flags is Unset:
            return list(arguments)
        return self._flags.parse(arguments)

    # ── Completion ───────────────────────────────────────────────────────────

    def complete(self, args, /):
        """
        Suggestions for the word after this command: the completer's answer when
        one is set, otherwise the sorted child names.
        """
        if self._completer is not None:
            return list(self._completer(list(args)))
        return [child.name for child in self.children()]

    # ── Help ─────────────────────────────────────────────────────────────────

    def _help_help(self):
        command, _ = self.find_command(["help"])
        if command is None:
            raise MissingHelpCommandError(f"no 'help' command is reachable from {self._name!r}")
        return command.help

    def _render_root_usage(self):
        """
        Root template: the help command's summary, then "<shell> [options]".

        Every template line is a tuple of (fragment, style) pairs.
        """
        return [
            ((self._help_help() or "", "description-section"),),
            (),
            (("Usage:", "usage-label"),),
            (("    ", ""), (self.shell_name, "program-name"), (" [options]", "")),
            (),
        ]

    def _render_command_usage(self):
        """
        Node template: description, "<shell> <path> [options]" and the flag block.
        """
        lines = []
        if description := self._long_help or self._help:
            lines.append(((description, "description-section"),))
            lines.append(())

        route = " ".join(node.name for node in self.path[1:])
        lines.append((("Usage:", "usage-label"),))
        lines.append((
            ("    ", ""),
            (self.shell_name, "program-name"),
            *(((" ", ""), (route, "usage-section")) if route else ()),
            (" [options]", ""),
        ))
        lines.append(())
        lines.append((("Flags:", "group-label"),))

        # rendering must not create the flag set
        if self._flags and (usages := self._flags.usages()):
            lines.append(((usages.rstrip("\n"), "flag-usage"),))
        lines.append(())
        return lines

    def _render_lines(self):
        if self.is_root():
            return self._render_root_usage()
        return self._render_command_usage()

    def _render(self, *, colorful):
        styles = stylesheet({
            "description-section": "italic #A3A3A3",  # Neutral gray
            "usage-label": "bold #00E6FF",  # CYAN → signature info color
            "program-name": "bold #FF4D94",  # MAGENTA-PINK → brand pop
            "usage-section": "bold #36C5F0",  # SKY-BLUE → softer than cyan
            "group-label": "bold #FFFFFF",  # Pure white headers
            "flag-usage": "#22C55E",  # GREEN for flags
            "children-title": "bold #FFFFFF",
            "children": "bold #36C5F0",  # Sky-blue subcommands
            "children-description": "#9CA3AF",
        })

        def styler(style):
            return styles[style] if colorful else ""

        renders = [
            Text.assemble(*((fragment, styler(style)) for fragment, style in line))
            for line in self._render_lines()
        ]

        if self.has_subcommand():
            renders.append(Text("Commands:", styler("children-title")))
            table = Table.grid(padding=(0, 4, 0, 0))
            table.add_column(no_wrap=True)
            table.add_column()
            for child in self.children():
                table.add_row(
                    Text(child.name, styler("children")),
                    Text(child.help or "", styler("children-description")),
                )
            renders.append(Padding(table, (0, 0, 0, 2), expand=False))

        return Group(*renders)

    def help_text(self):
        """
        The computed help of this command and its subcommands, as plain text.

        Nothing is wrapped: descriptions are kept verbatim and the "Commands:"
        table is aligned with spaces, whatever the terminal width.

        Raises
        - MissingHelpCommandError when called on the tree root and no "help"
          command is reachable from it.
        """
        lines = ["".join(fragment for fragment, _ in line) for line in self._render_lines()]

        if self.has_subcommand():
            lines.append("Commands:")
            children = self.children()
            indent = max(len(child.name) for child in children) + 4
            for child in children:
                lines.append(("  " + child.name.ljust(indent) + (child.help or "")).rstrip())

        return "\n".join(lines) + "\n"

    def __rich__(self):
        return self._render(colorful=getattr(self._root, "colorful", False))


def command(source=Unset, /, parent=Unset, **metadata):
    """
    Create a Command from a handler, or return a decorator that will.

    Invocation modes
    - Direct: command(handler, parent, name="x", help="...")
    - Decorator: @command(name="x") / @parent.command(aliases=("y",))

    Defaults
    - name: the handler's __name__.
    - help: the first line of the handler's docstring.
    - long_help: the whole docstring, when it spans more than one line.

    When parent is given, the new command is attached to it.
    """
    if not isinstance(parent, Command | Unset):
        raise TypeError("command() 'parent' must be a command")

    @rename("command")
    def wrapper(source, /):
        if not callable(source):
            raise TypeError("@command() must be applied to a callable")
        docstring = inspect.getdoc(source) or ""
        lines = docstring.splitlines()
        options = {
            "aliases": metadata.get("aliases", ()),
            "help": metadata.get("help", Unset if not lines else lines[0]),
            "long_help": metadata.get("long_help", Unset if len(lines) < 2 else docstring),
            "completer": metadata.get("completer"),
        }
        unknown = metadata.keys() - options.keys() - {"name"}
        if unknown:
            raise TypeError("command() got unexpected keyword arguments %s" % ", ".join(map(repr, sorted(unknown))))
        node = Command(metadata.get("name", getattr(source, "__name__", Unset)), source, **options)
        if parent:
            parent.add_command(node)
        return node

    return wrapper(source) if source is not Unset else wrapper


__all__ = (
    "Command",
    "command",
)

# Remove the internal metaclass from the module namespace to avoid accidental
# exposure in docs, autocompletion, or star-imports. Not part of the public API.
del CommandType
