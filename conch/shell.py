"""
Conch shell: the owning handle of a command tree and its dispatch contract.

A Shell owns the root node of the tree (same name as the shell) and registers
the default commands ("help", "exit", "quit"). Given a line of input it resolves
the deepest matching command, parses the leftover tokens against the command's
flags and calls the handler with a Context.

Faults raised along the way (unknown command, flag errors, handler errors) go
through trigger(): an interactive shell prints them and keeps going, a scripted
one (interactive=False) raises them.

The read-eval-print loop, line editing and signal handling live outside of this
package; a host loop only needs to feed lines to Shell.process() until
Shell.active turns false.
"""
import difflib
import logging
import os
import shlex
import sys
from collections.abc import Iterable
from warnings import catch_warnings, simplefilter

from rich.console import Console

from .commands import Command
from .faults import *
from .utils import *

logger = logging.getLogger(__name__)


def _help(context):
    """Display help"""
    if not context.args:
        return context.println(context.shell.root)
    command, rest = context.shell.find_command(context.args)
    if command is None or rest:
        return context.err(UnknownCommandError(
            "no help topic for %r" % " ".join(context.args),
            title="unknown help topic",
            code=FaultCode.UNKNOWN_COMMAND,
            input=context.args,
            hint="run 'help' to list the available commands",
            docs=getdoc(FaultCode.UNKNOWN_COMMAND),
        ))
    context.println(command)


def _exit(context):
    """Exit the program"""
    context.stop()


def _quit(context):
    """Quit the program"""
    context.stop()


class Context:
    """
    What a handler receives: the shell, the resolved command, the positional
    arguments left after flag parsing, and shortcuts to the shell's services.
    """

    def __init__(self, shell, command, args, /):
        self._shell = shell
        self._command = command
        self._args = list(args)

    shell = mirror("shell")
    command = mirror("command")
    args = mirror("args")

    def __repr__(self):
        return "context(command=%r, args=%r)" % (self._command.name, self._args)

    @property
    def flags(self):
        """
        The command's parsed FlagSet, or None when it declares no flags.
        """
        return coalesce(self._command._flags)

    def println(self, *objects):
        self._shell.println(*objects)

    def err(self, error, /):
        """
        Print an error without interrupting the handler.

        Accepts a CommandException (rendered as is), any other exception or a
        plain message (both wrapped into a DelegatedCommandError).
        """
        if not isinstance(error, CommandException):
            error = DelegatedCommandError(
                str(error),
                title="command error",
                code=FaultCode.DELEGATED_ERROR,
                hint="run 'help %s' for usage" % " ".join(node.name for node in self._command.path[1:]),
                docs=getdoc(FaultCode.DELEGATED_ERROR),
            )
        trigger(error, **self._shell.options | {"interactive": True})

    def stop(self):
        self._shell.stop()

    def help_text(self):
        return self._command.help_text()

    def get(self, key, default=None, /):
        return self._shell._values.get(key, default)

    def set(self, key, value, /):
        self._shell._values[key] = value

    def delete(self, key, /):
        self._shell._values.pop(key, None)

    def keys(self):
        return list(self._shell._values)


class Shell:
    """
    Owning handle of a command tree.

    Parameters
    - name: str
      Display name used in usage lines and fault headers; defaults to the
      basename of sys.argv[0].
    - console: rich Console used for output and rendered faults (a stdout
      console by default).
    - interactive: bool
      Print faults and keep going (True) or raise them (False).
    - fancy: bool
      Render faults inside panels.
    - colorful: bool
      Style help and faults with the palettes (see stylesheet()).
    """

    def __init__(self, name=Unset, /, *, console=Unset, interactive=True, fancy=False, colorful=False):
        name = coalesce(name, os.path.basename(sys.argv[0]) or "conch")
        if not isinstance(console, Console | Unset):
            raise TypeError("shell 'console' must be a rich console")
        for option, value in {"interactive": interactive, "fancy": fancy, "colorful": colorful}.items():
            if not isinstance(value, bool):
                raise TypeError(f"shell {option!r} must be a boolean")

        self._root = Command(name)
        self._root._root = self
        self._name = self._root.name
        self._console = coalesce(console, Console())
        self._interactive = interactive
        self._fancy = fancy
        self._colorful = colorful
        self._active = True
        self._values = {}

        self.add_command(Command("help", _help, help=_help.__doc__))
        self.add_command(Command("exit", _exit, help=_exit.__doc__))
        self.add_command(Command("quit", _quit, help=_quit.__doc__))

    name = mirror("name")
    root = mirror("root")
    console = mirror("console")
    interactive = mirror("interactive")
    fancy = mirror("fancy")
    colorful = mirror("colorful")
    active = mirror("active")
    values = mirror("values")

    def __repr__(self):
        return "shell(name=%r, interactive=%r)" % (self._name, self._interactive)

    def __rich__(self):
        return self._root

    @property
    def options(self):
        """
        Runtime options merged into every fault this shell triggers.
        """
        return {
            "prog": self._name,
            "console": self._console,
            "interactive": self._interactive,
            "fancy": self._fancy,
            "colorful": self._colorful,
        }

    # ── Tree delegation ──────────────────────────────────────────────────────

    def add_command(self, command, /):
        return self._root.add_command(command)

    def delete_command(self, name, /):
        self._root.delete_command(name)

    def children(self):
        return self._root.children()

    def find_command(self, tokens, /):
        return self._root.find_command(tokens)

    def command(self, source=Unset, /, **metadata):
        return self._root.command(source, **metadata)

    def help_text(self):
        return self._root.help_text()

    def complete(self, prompt, /):
        """
        Suggestions for the last (possibly empty) word of prompt.

        Every word but the last is resolved; when nothing resolves the root's
        children are offered. Suggestions are filtered by the typed prefix.
        """
        if not isinstance(prompt, str):
            raise TypeError("shell complete() argument must be a string")
        words = prompt.split()
        if prompt[-1:].isspace() or not words:
            prefix = ""
        else:
            prefix = words.pop()

        command, rest = self._root.find_command(words)
        node = command or self._root
        return [suggestion for suggestion in node.complete(rest) if suggestion.startswith(prefix)]

    # ── Dispatch ─────────────────────────────────────────────────────────────

    def println(self, *objects):
        self._console.print(*objects)

    def stop(self):
        logger.debug("stopping shell %r", self._name)
        self._active = False

    def _surface(self, warnings, route):
        """
        Re-trigger warnings recorded during flag parsing or a handler call with
        this shell's options. Foreign warnings become DelegatedCommandWarning.
        """
        for warning in map(lambda warning: warning.message, warnings):
            if not isinstance(warning, CommandWarning):
                warning = DelegatedCommandWarning(
                    str(warning),
                    title="command warning",
                    code=FaultCode.DELEGATED_WARNING,
                    category=type(warning),
                    hint="run 'help %s' for usage" % route,
                    docs=getdoc(FaultCode.DELEGATED_WARNING),
                )
            trigger(warning, **self.options)

    def dispatch(self, tokens, /):
        """
        Resolve tokens and run the matching command.

        Returns
        - True when a command was found (whether or not it succeeded), False for
          empty input or an unknown command in interactive mode.

        Raises
        - CommandException subclasses when not interactive.
        - MissingHelpCommandError whenever root help is rendered without "help".
        """
        if isinstance(tokens, str) or not isinstance(tokens, Iterable):
            raise TypeError("shell dispatch() argument must be an iterable of strings")
        if not (tokens := list(tokens)):
            return False

        command, rest = self._root.find_command(tokens)
        if command is None:
            logger.debug("no command matches %r", tokens[0])
            names = []
            for child in self._root.children():
                names.append(child.name)
                names.extend(child.aliases)
            suggestions = difflib.get_close_matches(tokens[0], names, 5)
            try:
                hint = "did you mean %r?" % suggestions[0]
            except IndexError:
                hint = "run 'help' to list the available commands"
            trigger(UnknownCommandError(
                "unknown command %r" % tokens[0],
                title="unknown command",
                code=FaultCode.UNKNOWN_COMMAND,
                input=tokens[0],
                suggestions=suggestions,
                hint=hint,
                docs=getdoc(FaultCode.UNKNOWN_COMMAND),
            ), **self.options)
            return False

        if command.handler is None:
            logger.debug("command %r has no handler, printing its help", command.name)
            self.println(command)
            return True

        route = " ".join(node.name for node in command.path[1:])
        try:
            with catch_warnings(record=True) as warnings:
                simplefilter("always")
                args = command.parse_flags(rest)
        except FlagError as fault:
            logger.debug("flag parsing failed for %r: %s", command.name, fault.message)
            trigger(fault, **self.options)
            return True
        finally:
            self._surface(warnings, route)

        logger.debug("dispatching %r with %r", command.name, args)
        try:
            try:
                with catch_warnings(record=True) as warnings:
                    simplefilter("always")
                    command.handler(Context(self, command, args))
            finally:
                self._surface(warnings, route)
        except MissingHelpCommandError:
            raise
        except CommandException as fault:
            trigger(fault, **self.options)
        except Exception as exception:
            trigger(DelegatedCommandError(
                str(exception) or type(exception).__name__,
                title="command failed",
                code=FaultCode.DELEGATED_ERROR,
                hint="run 'help %s' for usage" % route,
                docs=getdoc(FaultCode.DELEGATED_ERROR),
                cause=exception,
            ), **self.options)
        return True

    def process(self, prompt, /):
        """
        Tokenize prompt (a shell-like string, or an iterable of strings) and
        dispatch it. Returns what dispatch() returns.
        """
        if isinstance(prompt, str):
            try:
                tokens = shlex.split(prompt)
            except ValueError as exception:
                trigger(MalformedInputError(
                    "cannot split %r: %s" % (prompt, str(exception).lower()),
                    title="malformed input",
                    code=FaultCode.MALFORMED_INPUT,
                    input=prompt,
                    hint="close every quotation mark or escape it with a backslash",
                    docs=getdoc(FaultCode.MALFORMED_INPUT),
                    cause=exception,
                ), **self.options)
                return False
        elif isinstance(prompt, Iterable):
            tokens = []
            for token in prompt:
                if not isinstance(token, str):
                    raise TypeError("shell process() argument must be a string or an iterable of strings")
                if token := token.strip():
                    tokens.append(token)
        else:
            raise TypeError("shell process() argument must be a string or an iterable of strings")
        return self.dispatch(tokens)


def invoke(shell, prompt, /):
    """
    Run a single line through shell; convenience for scripts and tests.
    """
    if not isinstance(shell, Shell):
        raise TypeError("invoke() first argument must be a shell")
    return shell.process(prompt)


__all__ = (
    "Context",
    "Shell",
    "invoke",
)
