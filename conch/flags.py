r"""
Conch flag specifications and flag sets.

Overview
- Specs
  • Option: named, value-bearing flag with one or more aliases (e.g., -o/--output).
  • Flag: named, presence-only switch (no payload), e.g., -v/--verbose.

- FlagSet
  • A named collection of specs owned by one command. Parses an argument list
    with flags interspersed among positionals, keeps the parsed values, and
    renders the "Flags:" usage block for help text.
  • Parse failures raise FlagError subclasses and are also written, as plain
    text, to the set's output sink so a command can keep a private error log.

Metadata (sanitized on construction)
- names: validated as shell-style identifiers r"--?[^\W\d_](-?[^\W_]+)*"; at least
  one; no duplicates. Display order is shorts first, then longs.
- descr: Unset | str (short help), non-empty when provided.
- metavar: Unset | str (Option only, label in usage), non-empty when provided.
- type: callable converter (Option only), default str.
- default: any value (Option only); flags default to False.
- choices: iterable of allowed converted values (Option only); duplicates rejected.
- hidden: suppressed from usage; deprecated: warns when used.

Parsing rules
- "--name value" and "--name=value" for options; "--name" for flags.
- a lone "--" ends flag parsing; every later token is positional.
- a lone "-" is positional.
- single-letter shorthands may be clustered: "-vf" is "-v -f"; an option in a
  cluster takes the rest of the token as its value ("-ofile", "-vo=file") or,
  when nothing is left, the next token ("-vo file").
- a negative number after an option is its value ("--count -3").

Quick example:
    >>> flags = FlagSet("deploy")
    >>> force = flags.flag("-f", "--force", descr="skip confirmation")
    >>> env = flags.option("-e", "--env", choices=("dev", "prod"), default="dev")
    >>> flags.parse(["web", "--env=prod", "-f"])
    ['web']
    >>> flags["--env"], flags["-f"]
    ('prod', True)
"""
import builtins
import difflib
import functools
import operator
import re
import sys
from collections import deque
from collections.abc import Iterable, Set

from rich.console import Console
from rich.text import Text

from .faults import *
from .utils import *


class ArgumentType(type):
    """
    Metaclass that makes flag specs introspectable.

    Responsibilities
    - Derive __typename__ from the class name (camel-case split with hyphens)
      for consistent labels in errors.
    - Expose every name listed in __introspectable__ as a read-only property
      backed by "_{name}" (see mirror()).
    - Provide stable __repr__/__rich_repr__ implementations.
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
            """
            Return a concise, stable representation with key metadata.

            Example
            - flag(names=('-v', '--verbose'), descr=None, ...)
            """
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


def _sanitize_metadata(cls, metadata, /):
    """
    Internal: validate names, descr and the visibility switches shared by every spec.

    Raises
    - TypeError: no names, a non-string name or descr.
    - ValueError: an empty or malformed name, duplicated names, an empty descr.
    """
    names = []
    if not metadata["names"]:
        raise TypeError(f"{cls.__typename__} must specify at least one name")

    for name in metadata["names"]:
        if not isinstance(name, str):
            raise TypeError(f"{cls.__typename__} names must be strings")
        elif not (name := name.strip()):
            raise ValueError(f"{cls.__typename__} names cannot be empty-strings")
        elif not re.fullmatch(r"--?[^\W\d_](-?[^\W_]+)*", name):
            raise ValueError(f"{cls.__typename__} names must be valid shell-style option names (unicodes are allowed)")
        elif name in names:
            raise ValueError(f"{cls.__typename__} names cannot contain duplicates")
        names.append(name)

    # shorts first, then longs; stable within each bucket
    metadata["names"] = tuple(sorted(names, key=lambda x: (x.startswith("--"), len(x))))

    if not isinstance(descr := metadata["descr"], str | Unset):
        raise TypeError(f"{cls.__typename__} 'descr' must be a string")
    elif isinstance(descr, str) and not (descr := descr.strip()):
        raise ValueError(f"{cls.__typename__} 'descr' cannot be empty")
    metadata["descr"] = coalesce(descr)

    metadata["hidden"] = bool(metadata["hidden"])
    metadata["deprecated"] = bool(metadata["deprecated"])


def _sanitize_parametric_metadata(cls, metadata, /):
    """
    Internal: validate metavar, type and choices of value-bearing specs.

    The default is intentionally left alone: any value (including None) is valid.
    """
    if not isinstance(metavar := metadata["metavar"], str | Unset):
        raise TypeError(f"{cls.__typename__} 'metavar' must be a string")
    elif isinstance(metavar, str) and not (metavar := metavar.strip()):
        raise ValueError(f"{cls.__typename__} 'metavar' cannot be empty")
    metadata["metavar"] = coalesce(metavar)

    if not callable(metadata["type"]):
        raise TypeError(f"{cls.__typename__} 'type' must be callable")

    if not isinstance(choices := metadata["choices"], Iterable) or isinstance(choices, str):
        raise TypeError(f"{cls.__typename__} 'choices' must be a non-string iterable")
    if not isinstance(choices, Set):
        sanitized = []
        for choice in choices:
            if choice in sanitized:
                raise ValueError(f"{cls.__typename__} 'choices' cannot contain duplicates")
            sanitized.append(choice)
        choices = tuple(sanitized)
    metadata["choices"] = choices

    if metadata["metavar"] and metadata["choices"]:
        raise TypeError(f"{cls.__typename__} cannot have both 'metavar' and 'choices'")


class Option(metaclass=ArgumentType):
    """
    Named, value-bearing flag specification.

    Accepts "--name value" and "--name=value". The raw token is converted with
    'type'; a ValueError/TypeError from the converter becomes an
    InvalidFlagValueError. When 'choices' is set, the converted value must be one
    of them.
    """

    __introspectable__ = (
        "names",
        "metavar",
        "type",
        "default",
        "choices",
        "descr",
        "hidden",
        "deprecated",
    )

    def __init__(
            self,
            *names,
            metavar=Unset,
            type=str,
            default=None,
            choices=(),
            descr=Unset,
            hidden=False,
            deprecated=False
    ):
        metadata = {
            "names": names,
            "metavar": metavar,
            "type": type,
            "default": default,
            "choices": choices,
            "descr": descr,
            "hidden": hidden,
            "deprecated": deprecated,
        }
        _sanitize_metadata(builtins.type(self), metadata)
        _sanitize_parametric_metadata(builtins.type(self), metadata)

        for name, object in metadata.items():
            setattr(self, "_" + name, object)


class Flag(metaclass=ArgumentType):
    """
    Named, presence-only flag specification. Parses to True when present and
    reads as False otherwise; "--name=value" is rejected.
    """

    __introspectable__ = (
        "names",
        "descr",
        "hidden",
        "deprecated",
    )

    def __init__(
            self,
            *names,
            descr=Unset,
            hidden=False,
            deprecated=False
    ):
        metadata = {
            "names": names,
            "descr": descr,
            "hidden": hidden,
            "deprecated": deprecated,
        }
        _sanitize_metadata(builtins.type(self), metadata)

        for name, object in metadata.items():
            setattr(self, "_" + name, object)

    @property
    def default(self):
        return False


@functools.cache
def _ordinal(number):
    """
    Return a human-friendly ordinal label for a 1-based position.

    1..10 are words ("first"…"tenth"); other numbers use numeric suffixes.
    """
    try:
        return {
            1: "first",
            2: "second",
            3: "third",
            4: "fourth",
            5: "fifth",
            6: "sixth",
            7: "seventh",
            8: "eighth",
            9: "ninth",
            10: "tenth",
        }[number]
    except KeyError:
        pass

    if 10 < number % 100 < 20:
        return f"{number}th"

    return f'{number}%s' % {1: "st", 2: "nd", 3: "rd"}.get(number % 10, "th")


class FlagSet:
    """
    Named set of flag specs plus the state of the last parse.

    The name identifies the owner (a command name) in reports. Errors are written
    to 'output' (sys.stderr unless replaced) before the FlagError is raised, so a
    caller may either catch the exception or read the sink.
    """

    def __init__(self, name, /):
        if not isinstance(name, str):
            raise TypeError("flag-set 'name' must be a string")
        elif not (name := name.strip()):
            raise ValueError("flag-set 'name' cannot be empty")
        self._name = name
        self._switches = {}
        self._specs = []
        self._values = {}
        self._args = []
        self._parsed = False
        self._output = Unset

    name = mirror("name")
    args = mirror("args")
    parsed = mirror("parsed")

    def __repr__(self):
        return "flag-set(name=%r, names=%r)" % (self._name, tuple(self._switches))

    @property
    def output(self):
        return coalesce(self._output, sys.stderr)

    @output.setter
    def output(self, output):
        if not hasattr(output, "write") or not callable(output.write):
            raise TypeError("flag-set 'output' must be a writable text stream")
        self._output = output

    def add(self, spec, /):
        """
        Register a spec under every one of its names and return it.

        Raises
        - TypeError when spec is not an Option or Flag.
        - ValueError when any of its names is already in use in this set.
        """
        if not isinstance(spec, Option | Flag):
            raise TypeError("flag-set add() argument must be an option or a flag")
        for name in spec.names:
            if name in self._switches:
                raise ValueError(f"flag-set name {name!r} is already in use")
        self._switches.update(dict.fromkeys(spec.names, spec))
        self._specs.append(spec)
        return spec

    def option(self, *names, **metadata):
        return self.add(Option(*names, **metadata))

    def flag(self, *names, **metadata):
        return self.add(Flag(*names, **metadata))

    def specs(self):
        return tuple(self._specs)

    def lookup(self, name, /):
        """
        Return the spec registered under name (any alias), or None.
        """
        return self._switches.get(name)

    def get(self, name, /):
        """
        Return the parsed value for name (any alias), or the spec's default.

        Raises KeyError for names that were never declared.
        """
        try:
            spec = self._switches[name]
        except KeyError:
            raise KeyError(f"unknown flag {name!r}") from None
        return self._values.get(spec, spec.default)

    __getitem__ = get

    def __contains__(self, name):
        return name in self._switches

    def changed(self, name, /):
        """
        Whether name (any alias) was present in the last parse.
        """
        try:
            return self._switches[name] in self._values
        except KeyError:
            raise KeyError(f"unknown flag {name!r}") from None

    def parse(self, arguments, /):
        """
        Parse arguments, storing flag values and collecting positionals.

        Returns
        - the positional arguments, in order.

        Raises
        - FlagError subclasses; the report is first written to 'output'.
        """
        if isinstance(arguments, str) or not isinstance(arguments, Iterable):
            raise TypeError("flag-set parse() argument must be an iterable of strings")

        self._values.clear()
        self._args.clear()
        self._parsed = False

        tokens = deque(arguments)
        index = 0
        pending = 0
        try:
            while tokens:
                token = tokens.popleft()
                # pieces of a short-flag cluster share the cluster's position
                if pending:
                    pending -= 1
                else:
                    index += 1
                if not isinstance(token, str):
                    raise TypeError("flag-set parse() argument must be an iterable of strings")

                if token == "--":
                    self._args.extend(tokens)
                    tokens.clear()
                    break
                if token == "-" or not token.startswith("-"):
                    self._args.append(token)
                    continue

                if (cluster := self._split_cluster(token)) is not None:
                    tokens.extendleft(reversed(cluster))
                    pending += len(cluster)
                    continue

                spec, input, value = self._resolve_token(token, index)

                if spec in self._values:
                    raise DuplicatedFlagError(
                        "flag %r at %s position was already provided" % (input, _ordinal(index)),
                        title="duplicated flag",
                        code=FaultCode.DUPLICATED_FLAG,
                        input=input,
                        index=index,
                        hint="keep a single %s; each flag can be specified only once" % input,
                        docs=getdoc(FaultCode.DUPLICATED_FLAG),
                    )

                if spec.deprecated:
                    trigger(DeprecatedFlagWarning(
                        "flag %r at %s position is deprecated" % (input, _ordinal(index)),
                        title="deprecated flag",
                        code=FaultCode.DEPRECATED_FLAG,
                        input=input,
                        index=index,
                        hint="check the usage of %r for current alternatives" % self._name,
                        docs=getdoc(FaultCode.DEPRECATED_FLAG),
                    ))

                if isinstance(spec, Flag):
                    self._values[spec] = True
                    continue

                if value is None:
                    if not tokens or (tokens[0].startswith("-") and not re.fullmatch(r"-\d[\d.]*", tokens[0])):
                        raise FlagValueRequiredError(
                            "option %r at %s position requires a value" % (input, _ordinal(index)),
                            title="missing option value",
                            code=FaultCode.FLAG_VALUE_REQUIRED,
                            input=input,
                            index=index,
                            hint="provide a value (e.g., %s=value)" % input,
                            docs=getdoc(FaultCode.FLAG_VALUE_REQUIRED),
                        )
                    value = tokens.popleft()
                    index += 1

                self._values[spec] = self._convert(spec, input, value, index)
        except FlagError as fault:
            self._report(fault)
            raise

        self._parsed = True
        return self.args

    def _split_cluster(self, token):
        """
        Expand a cluster of single-letter shorthands: "-vf" becomes "-v", "-f" and
        "-vofile" becomes "-v", "-o=file" (an option takes the rest of the token).

        Returns None when token is a declared name or is not made of declared
        shorthands.
        """
        if token.startswith("--") or len(token) < 3 or token.split("=", 1)[0] in self._switches:
            return None
        cluster = []
        for position, letter in enumerate(token[1:], 1):
            if (spec := self._switches.get("-" + letter)) is None:
                return None
            if isinstance(spec, Option):
                if rest := token[position + 1:].removeprefix("="):
                    cluster.append("-%s=%s" % (letter, rest))
                else:
                    cluster.append("-" + letter)
                return cluster
            cluster.append("-" + letter)
        return cluster

    def _resolve_token(self, token, index):
        """
        Split a flag-looking token into (spec, name, inline value or None).
        """
        match = re.fullmatch(r"(?P<input>--?[^\W\d_](-?[^\W_]+)*)(=(?P<value>[^\r\n]*))?", token)

        if not match:
            raise MalformedFlagError(
                "bad form of flag %r at %s position" % (token, _ordinal(index)),
                title="malformed flag",
                code=FaultCode.MALFORMED_FLAG,
                input=token,
                index=index,
                hint="use '--name', '--name value' or '--name=value'; put '--' before values that start with '-'",
                docs=getdoc(FaultCode.MALFORMED_FLAG),
            )

        input = match["input"]
        value = match["value"]

        try:
            spec = self._switches[input]
        except KeyError:
            suggestions = difflib.get_close_matches(input, self._switches.keys(), 5)
            try:
                hint = "did you mean %r?" % suggestions[0]
            except IndexError:
                hint = "check the flags accepted by %r" % self._name
            raise UnknownFlagError(
                "unknown flag %r at %s position" % (input, _ordinal(index)),
                title="unknown flag",
                code=FaultCode.UNKNOWN_FLAG,
                input=input,
                index=index,
                suggestions=suggestions,
                hint=hint,
                docs=getdoc(FaultCode.UNKNOWN_FLAG),
            ) from None

        if isinstance(spec, Flag) and value is not None:
            raise FlagAssignmentError(
                "flag %r at %s position cannot have an inline value" % (input, _ordinal(index)),
                title="flag cannot take a value",
                code=FaultCode.FLAG_ASSIGNMENT,
                input=input,
                index=index,
                hint="remove everything from '=' (for example: %s)" % input,
                docs=getdoc(FaultCode.FLAG_ASSIGNMENT),
            )

        return spec, input, value

    def _convert(self, spec, input, value, index):
        try:
            result = spec.type(value)
        except (ValueError, TypeError) as exception:
            raise InvalidFlagValueError(
                "invalid value %r for option %r at %s position" % (value, input, _ordinal(index)),
                title="invalid value",
                code=FaultCode.INVALID_FLAG_VALUE,
                input=input,
                index=index,
                hint="expected a value accepted by %s" % getattr(spec.type, "__name__", repr(spec.type)),
                docs=getdoc(FaultCode.INVALID_FLAG_VALUE),
                cause=exception,
            ) from exception

        if spec.choices and result not in spec.choices:
            raise InvalidChoiceError(
                "invalid choice %r for option %r at %s position" % (value, input, _ordinal(index)),
                title="invalid choice",
                code=FaultCode.INVALID_CHOICE,
                input=input,
                index=index,
                hint="choose one of %s" % ", ".join(map(repr, spec.choices)),
                docs=getdoc(FaultCode.INVALID_CHOICE),
            )
        return result

    def _report(self, fault):
        console = Console(file=self.output, color_system=None, highlight=False, soft_wrap=True)
        console.print(Text("error: %s" % fault.message))
        if hint := fault.options.get("hint"):
            console.print(Text(" → %s" % hint))
        console.print(Text("usage of %s:" % self._name))
        if usages := self.usages():
            console.print(Text(usages), end="")

    def rows(self):
        """
        Yield (spec, names, description) for every visible spec, in declaration order.

        names is the comma-joined alias list plus the option metavar; description
        carries the default and deprecation suffixes. Used by usages() and by the
        styled help renderer.
        """
        for spec in filter(lambda x: not x.hidden, self._specs):
            names = ", ".join(spec.names)
            if isinstance(spec, Option):
                if spec.choices:
                    metavar = "{%s}" % ",".join(map(str, spec.choices))
                else:
                    metavar = coalesce(spec.metavar) or "<%s>" % spec.names[-1].lstrip("-")
                names += " " + metavar

            descr = spec.descr or ""
            if isinstance(spec, Option) and spec.default is not None:
                descr = ("%s (default %r)" % (descr, spec.default)).lstrip()
            if spec.deprecated:
                descr = ("%s (deprecated)" % descr).lstrip()
            yield spec, names, descr

    def usages(self):
        """
        Return the formatted usage block: one line per visible spec, descriptions
        aligned in a second column. Empty string when nothing is visible.
        """
        rows = list(self.rows())
        if not rows:
            return ""
        padding = 2
        indent = max(len(names) for _, names, _ in rows) + padding * 2
        lines = []
        for _, names, descr in rows:
            line = " " * padding + names
            if descr:
                line = line.ljust(indent + padding) + descr
            lines.append(line)
        return "\n".join(lines) + "\n"


__all__ = (
    "Option",
    "Flag",
    "FlagSet",
)

# Remove the internal metaclass from the module namespace to avoid accidental
# exposure in docs, autocompletion, or star-imports. Not part of the public API.
del ArgumentType
