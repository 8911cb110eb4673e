"""
Conch faults (errors and warnings) and rendering.

Scope
- FaultCode: canonical, stable numeric identifiers for user-facing issues raised
  while routing a line to a command or parsing its flags.
- CommandException / CommandWarning: base types that carry message + options and
  know how to render themselves (rich) in a friendly, lowercased, actionable way.
- MissingHelpCommandError: the single fatal fault. The framework always registers
  a "help" command; its absence at root-help time is a setup bug, not input error.
- trigger(): central entry point to surface a fault (render when interactive,
  raise or warn otherwise).
- getdoc(): optional description lookup for a code from the host application.

Integration
- FlagSet.parse raises FlagError subclasses directly (callers decide what to do).
- Shell.dispatch routes every recoverable fault through trigger(fault, **ctx),
  so an interactive shell prints it and keeps going while a scripted one raises.
"""
import inspect
import warnings
from abc import ABC
from enum import IntEnum
from types import MappingProxyType

from rich.console import Console, Group
from rich.panel import Panel
from rich.text import Text

from .utils import Unset, stylesheet

console = Console(stderr=True)


class FaultCode(IntEnum):
    """
    canonical fault codes used across the shell (stable identifiers).

    grouping (by high-level domain)
    - routing (1110x)
      • UNKNOWN_COMMAND, MALFORMED_INPUT
    - flags (1111x)
      • MALFORMED_FLAG, UNKNOWN_FLAG, FLAG_ASSIGNMENT, FLAG_VALUE_REQUIRED,
        DUPLICATED_FLAG, INVALID_FLAG_VALUE, INVALID_CHOICE
    - delegated handler errors (1113x)
      • DELEGATED_ERROR
    - warnings (12xxx)
      • DEPRECATED_FLAG, DELEGATED_WARNING

    codes are discoverable (searchable in logs and docs) and normalized to a string
    via normalize() so hosts can remap them to friendlier labels.
    """
    # --- routing errors (11xxx) ---
    UNKNOWN_COMMAND      = 11101
    MALFORMED_INPUT      = 11102

    # --- flag errors (11xxx) ---
    MALFORMED_FLAG       = 11111
    UNKNOWN_FLAG         = 11112
    FLAG_ASSIGNMENT      = 11113
    FLAG_VALUE_REQUIRED  = 11114
    DUPLICATED_FLAG      = 11115
    INVALID_FLAG_VALUE   = 11116
    INVALID_CHOICE       = 11117

    # --- delegated errors (11xxx) ---
    DELEGATED_ERROR      = 11131

    # --- warnings (12xxx) ---
    DEPRECATED_FLAG      = 12112
    DELEGATED_WARNING    = 12131

    def normalize(self):
        """
        return a host-normalized string for this code.

        the host application can provide a __codes__ mapping in __main__ to
        override numeric ids with friendlier labels. without a mapping the
        numeric value is returned as a string.
        """
        return str(getattr(__import__("__main__"), "__codes__", {}).get(self, self.value))


def _render(fault, palette):
    """
    shared rich layout for exceptions and warnings: a header line, the message
    and a single hint (wrapped in a panel when fancy).
    """
    colorful = fault.options.get("colorful", False)
    fancy = fault.options.get("fancy", False)

    styles = stylesheet(palette)

    def styler(style):
        return styles[style] if colorful else ""

    def text(fragment, style=""):
        if not fragment:
            return Text("")
        if not colorful:
            return Text(str(fragment))
        if isinstance(fragment, Text):
            return fragment
        return Text(str(fragment), style)

    prog = text(getattr(__import__("__main__"), "__prog__", fault.options.get("prog", "conch")), styler("prog-name"))
    header = Text.assemble(
        "[ ",
        prog,
        " — ",
        text(fault.options["code"].normalize() if "code" in fault.options else "?", styler("code")),
        " | ",
        text(fault.options.get("title", type(fault).__name__).title(), styler("title")),
        " ]"
    )
    message = text(fault.message, styler("message"))
    hint = Text.assemble(text(" → ", styler("hint-arrow")), text(fault.options.get("hint"), styler("hint")))

    if fancy:
        return Panel(Group(message, hint), title=header, title_align="left")
    return Group(header, message, hint)


class CommandException(Exception):
    """
    Base for every recoverable fault raised by the shell core.

    Options (all optional, merged by trigger())
    - code: FaultCode, title: str, hint: str
    - prog: display name shown in the header (usually the shell name)
    - interactive: bool; when True the fault is printed instead of raised
    - fancy, colorful: rendering knobs
    - console: rich Console used when printing (defaults to stderr)
    - cause: exception chained as __cause__ when raised
    """

    def __init__(self, message=Unset, /, **options):
        assert isinstance(message, str | Unset)
        super().__init__(*(() if message is Unset else (message,)))
        self.message = message
        self.options = MappingProxyType(options)

    def __rich__(self):
        return _render(self, {
            "prog-name": "bold #E6E6F0",  # near-white program name
            "code": "bold #00E5FF",  # neon cyan fault code
            "title": "bold #FF4DA6",  # friendly pinky title
            "message": "#C8C8D0",  # soft light gray message
            "hint-arrow": "#9CE19C dim",  # gentle green arrow
            "hint": "italic #9CE19C",  # gentle green hint text
        })

    def __trigger__(self) -> None:
        if not self.options.get("interactive", False):
            raise self from self.options.get("cause")
        self.options.get("console", console).print(self)

    def __replace__(self, *unused, **overrides):
        assert not unused, "positional arguments are not allowed"
        return type(self)(self.message, **{**self.options, **overrides})


class UnknownCommandError(CommandException): ...
class MalformedInputError(CommandException): ...
class DelegatedCommandError(CommandException): ...


class FlagError(CommandException):
    """
    Base for flag parse failures. The flag set that raised it has already written
    a human-readable report to its output sink.
    """


class MalformedFlagError(FlagError): ...
class UnknownFlagError(FlagError): ...
class FlagAssignmentError(FlagError): ...
class FlagValueRequiredError(FlagError): ...
class DuplicatedFlagError(FlagError): ...
class InvalidFlagValueError(FlagError): ...
class InvalidChoiceError(FlagError): ...


class CommandWarning(ABC, Warning):
    def __init__(self, message=Unset, /, **options):
        assert isinstance(message, str | Unset)
        super().__init__(*(() if message is Unset else (message,)))
        self.message = message
        self.options = MappingProxyType(options)

    def __rich__(self):
        return _render(self, {
            "prog-name": "bold #E6E6F0",  # near-white program name
            "code": "bold #FFB400",  # amber fault code for warnings
            "title": "bold #FFC2E0",  # softer pinky title for warnings
            "message": "#D6D6DE",  # slightly lighter gray body
            "hint-arrow": "#B8EFAF dim",  # softer green arrow
            "hint": "italic #B8EFAF",  # softer green hint text
        })

    def __trigger__(self) -> None:
        if not self.options.get("interactive", False):
            return warnings.warn(self, stacklevel=len(inspect.stack()))
        self.options.get("console", console).print(self)

    def __replace__(self, *unused, **overrides):
        assert not unused, "positional arguments are not allowed"
        return type(self)(self.message, **{**self.options, **overrides})


class DeprecatedFlagWarning(CommandWarning): ...
class DelegatedCommandWarning(CommandWarning): ...


class MissingHelpCommandError(RuntimeError):
    """
    Fatal: the tree root was asked for its help text but no "help" command is
    reachable from it. Shell registers "help" by default; removing it breaks the
    root help contract. Never routed through trigger() and never swallowed.
    """


def trigger(fault, /, **options):
    """
    surface a fault with the given runtime options.

    contract
    - fault must provide __trigger__ and __replace__ methods (see base classes).
    - options are merged into a copy of the fault via __replace__(**options)
      before triggering.
    - interactive=True renders via rich; otherwise exceptions are raised and
      warnings are emitted through the warnings module.
    """
    if (
        not hasattr(fault, "__trigger__") or
        not callable(fault.__trigger__) or
        not hasattr(fault, "__replace__") or
        not callable(fault.__replace__)
    ):
        raise TypeError("trigger() argument must have a __trigger__ and __replace__ methods")
    fault.__replace__(**options).__trigger__()


def getdoc(code, /):
    """
    optional documentation fetch for a fault code.

    the host application may expose a __docs__ mapping in __main__ where keys are
    FaultCode instances and values are short documentation strings. returns None
    when nothing is registered.
    """
    if not isinstance(code, FaultCode):
        raise TypeError("getdoc() argument must be a fault-code")
    try:
        return getattr(__import__("__main__"), "__docs__", {})[code]
    except KeyError:
        return None


__all__ = (
    "CommandException",
    "UnknownCommandError",
    "MalformedInputError",
    "DelegatedCommandError",
    "FlagError",
    "MalformedFlagError",
    "UnknownFlagError",
    "FlagAssignmentError",
    "FlagValueRequiredError",
    "DuplicatedFlagError",
    "InvalidFlagValueError",
    "InvalidChoiceError",
    "CommandWarning",
    "DeprecatedFlagWarning",
    "DelegatedCommandWarning",
    "MissingHelpCommandError",
    "FaultCode",
    "trigger",
    "getdoc",
)
