"""
Commodore faults (dispatch errors, registration errors) and rendering.

Scope
- FaultCode: canonical, stable numeric identifiers for every dispatch failure and
  setup error. Codes are grouped by domain so logs and searches stay predictable.
- DispatchError: base of the dispatch taxonomy. Every failure of one invocation is
  one of its subclasses, returned as data by the dispatcher (never raised to the
  caller) and carrying structured options so nothing needs string parsing.
- RegistrationError: setup-time error (construction or registration), raised
  eagerly as a ValueError and never produced during dispatch.
- Violation / Reason: the closed kinds of constraint violations and registration
  conflicts.
- getdoc(): optional description lookup for a code from the host application.

Taxonomy
- routing: UnknownCommandError, UnknownSubcommandError, DisabledCommandError
- arguments: MissingArgumentError, ArgumentTypeError, ArgumentResolutionError
- constraints: ConstraintViolation (kind ∈ Violation)
- handler: HandlerFailure (occurs strictly after a successful dispatch; callers
  should not present it as a usage error)

Handler results
- Failed: an exception a handler returns instead of raising to report a failed
  run. Any exception returned by a handler is normalized to HandlerFailure, the
  same as a raised one.

Rendering
- Every DispatchError is a rich renderable (__rich__) made of a header
  "[ prog — code | title ]", a one-sentence message and a single hint.
- Rendering knobs (fancy panels, colors, program label) go through render().
- Host applications may define __prog__, __styles__, __codes__ and __docs__ in
  __main__ to relabel, restyle and document faults.
"""
import inspect
from collections import defaultdict
from enum import Enum, IntEnum
from types import MappingProxyType

from rich.console import Group
from rich.panel import Panel
from rich.text import Text

from .utils import *


class FaultCode(IntEnum):
    """
    canonical fault codes used across the pipeline (stable identifiers).

    grouping
    - routing (1110x)
      • UNKNOWN_COMMAND, UNKNOWN_SUBCOMMAND, DISABLED_COMMAND
    - arguments (1111x)
      • MISSING_ARGUMENT, ARGUMENT_TYPE, ARGUMENT_RESOLUTION
    - constraints (1112x)
      • AUTH, ENVIRONMENT, PERMISSION, SPECIFIC, COOLDOWN, GUARD
    - handler (1113x)
      • HANDLER_FAILURE
    - registration (1114x)
      • DUPLICATE_NAME, DUPLICATE_ALIAS, DUPLICATE_SHORT_FLAG

    normalize() allows host remapping to custom labels while keeping code-stability.
    """
    # --- routing errors ---
    UNKNOWN_COMMAND             = 11101
    UNKNOWN_SUBCOMMAND          = 11102
    DISABLED_COMMAND            = 11103

    # --- argument binding errors ---
    MISSING_ARGUMENT            = 11111
    ARGUMENT_TYPE               = 11112
    ARGUMENT_RESOLUTION         = 11113

    # --- constraint violations ---
    AUTH                        = 11121
    ENVIRONMENT                 = 11122
    PERMISSION                  = 11123
    SPECIFIC                    = 11124
    COOLDOWN                    = 11125
    GUARD                       = 11126

    # --- handler failures ---
    HANDLER_FAILURE             = 11131

    # --- registration errors (setup only) ---
    DUPLICATE_NAME              = 11141
    DUPLICATE_ALIAS             = 11142
    DUPLICATE_SHORT_FLAG        = 11143

    def normalize(self):
        """
        return a host-normalized string for this code.

        the host application can provide a __codes__ mapping in __main__
        to override numeric ids with friendlier labels. when no mapping
        is present, the numeric value is returned as a string.
        """
        return str(getattr(__import__("__main__"), "__codes__", {}).get(self, self.value))


class Violation(Enum):
    """
    kinds of constraint violations, in evaluation order.
    """
    AUTH = "auth"
    ENVIRONMENT = "environment"
    PERMISSION = "permission"
    SPECIFIC = "specific"
    COOLDOWN = "cooldown"
    GUARD = "guard"

    @property
    def code(self):
        return FaultCode[self.name]


class Reason(Enum):
    """
    kinds of registration conflicts.
    """
    DUPLICATE_NAME = "duplicate-name"
    DUPLICATE_ALIAS = "duplicate-alias"
    DUPLICATE_SHORT_FLAG = "duplicate-short-flag"

    @property
    def code(self):
        return FaultCode[self.name]


class DispatchError(Exception):
    """
    base of every per-invocation failure.

    contract
    - message: one lowercased sentence describing what happened.
    - options: read-only mapping with the structured payload (names, tokens,
      suggestions, detail ...) and the rendering metadata (code, title, hint).
    - subclasses expose the payload through named properties.
    """

    def __init__(self, message, /, **options):
        assert isinstance(message, str)
        super().__init__(message)
        self.message = message
        self.options = MappingProxyType(options)

    @property
    def code(self):
        return self.options["code"]

    @property
    def title(self):
        return self.options["title"]

    @property
    def hint(self):
        return self.options.get("hint")

    def render(self, *, fancy=False, colorful=True, prog=Unset, width=None):
        """
        build a rich renderable for this fault.

        parameters
        - fancy: wrap the message and hint into a titled panel.
        - colorful: apply the palette (overridable through __main__.__styles__).
        - prog: label shown in the header; defaults to __main__.__prog__ or "commodore".
        - width: fixed panel width (fancy only); None lets the panel fill the console.
        """
        main = __import__("__main__")

        styles = defaultdict(str, {
            # header parts
            "prog-name": "bold #E6E6F0",  # near-white program name
            "code": "bold #00E5FF",  # neon cyan fault code
            "error-title": "bold #FF4DA6",  # friendly pinky title

            # body
            "error-message": "#C8C8D0",  # soft light gray message
            "hint-arrow": "#9CE19C dim",  # gentle green arrow
            "hint": "italic #9CE19C",  # gentle green hint text
        } | getattr(main, "__styles__", {}))

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

        prog = text(coalesce(prog, getattr(main, "__prog__", "commodore")), styler("prog-name"))

        header = Text.assemble(
            "[ ",
            prog,
            " — ",
            text(self.code.normalize(), styler("code")),
            " | ",
            text(self.title.title(), styler("error-title")),
            " ]"
        )
        message = text(self.message, styler("error-message"))
        body = [message]
        if self.hint:
            body.append(Text.assemble(text(" → ", styler("hint-arrow")), text(self.hint, styler("hint"))))

        if fancy:
            return Panel(Group(*body), title=header, title_align="left", width=width)

        return Group(header, *body)

    def __rich__(self):
        return self.render()


class UnknownCommandError(DispatchError):
    def __init__(self, attempted, /, suggestions=()):
        suggestions = tuple(suggestions)
        if suggestions:
            hint = "did you mean %r?" % suggestions[0]
        else:
            hint = "check the command name or ask for the command list"
        super().__init__(
            "unknown command %r" % attempted,
            code=FaultCode.UNKNOWN_COMMAND,
            title="unknown command",
            hint=hint,
            attempted=attempted,
            suggestions=suggestions,
            docs=getdoc(FaultCode.UNKNOWN_COMMAND),
        )

    @property
    def attempted(self):
        return self.options["attempted"]

    @property
    def suggestions(self):
        return self.options["suggestions"]


class UnknownSubcommandError(DispatchError):
    def __init__(self, parent, attempted, /, suggestions=()):
        suggestions = tuple(suggestions)
        if suggestions:
            hint = "did you mean '%s %s'?" % (parent, suggestions[0])
        else:
            hint = "'%s' needs one of its subcommands" % parent
        if attempted:
            message = "unknown subcommand %r of %r" % (attempted, parent)
        else:
            message = "missing subcommand of %r" % parent
        super().__init__(
            message,
            code=FaultCode.UNKNOWN_SUBCOMMAND,
            title="unknown subcommand",
            hint=hint,
            parent=parent,
            attempted=attempted,
            suggestions=suggestions,
            docs=getdoc(FaultCode.UNKNOWN_SUBCOMMAND),
        )

    @property
    def parent(self):
        return self.options["parent"]

    @property
    def attempted(self):
        return self.options["attempted"]

    @property
    def suggestions(self):
        return self.options["suggestions"]


class DisabledCommandError(DispatchError):
    def __init__(self, name, /, cause=None):
        super().__init__(
            "command %r is currently disabled" % name,
            code=FaultCode.DISABLED_COMMAND,
            title="disabled command",
            hint="try again later",
            name=name,
            cause=cause,
            docs=getdoc(FaultCode.DISABLED_COMMAND),
        )
        self.__cause__ = cause

    @property
    def name(self):
        return self.options["name"]

    @property
    def cause(self):
        return self.options["cause"]


class MissingArgumentError(DispatchError):
    def __init__(self, name, /, index=Unset):
        if index is Unset:
            message = "missing required argument %r" % name
        else:
            message = "missing required argument %r at %s position" % (name, ordinal(index))
        super().__init__(
            message,
            code=FaultCode.MISSING_ARGUMENT,
            title="missing argument",
            hint="pass a value for %r or use --%s=<value>" % (name, name),
            name=name,
            index=coalesce(index),
            docs=getdoc(FaultCode.MISSING_ARGUMENT),
        )

    @property
    def name(self):
        return self.options["name"]


class ArgumentTypeError(DispatchError):
    def __init__(self, name, expected, received, /):
        label = getattr(expected, "label", str(expected))
        if received is True:
            message = "flag '--%s' needs a value of type %s" % (name, label)
            hint = "use the form --%s=<value>" % name
        else:
            message = "argument %r expects %s but received %r" % (name, label, received)
            hint = "pass %s for %r" % (label, name)
        super().__init__(
            message,
            code=FaultCode.ARGUMENT_TYPE,
            title="invalid argument",
            hint=hint,
            name=name,
            expected=expected,
            received=received,
            docs=getdoc(FaultCode.ARGUMENT_TYPE),
        )

    @property
    def name(self):
        return self.options["name"]

    @property
    def expected(self):
        return self.options["expected"]

    @property
    def received(self):
        return self.options["received"]


class ArgumentResolutionError(DispatchError):
    def __init__(self, name, token, /, cause=None):
        if token is None:
            message = "could not compute a default for argument %r" % name
        else:
            message = "could not find anything matching %r for argument %r" % (token, name)
        super().__init__(
            message,
            code=FaultCode.ARGUMENT_RESOLUTION,
            title="unresolved argument",
            hint="check the spelling or mention the target directly",
            name=name,
            token=token,
            cause=cause,
            docs=getdoc(FaultCode.ARGUMENT_RESOLUTION),
        )

    @property
    def name(self):
        return self.options["name"]

    @property
    def token(self):
        return self.options["token"]

    @property
    def cause(self):
        return self.options["cause"]


_VIOLATIONS = {
    Violation.AUTH: (
        "your authorization level is too low",
        "ask an administrator for a higher authorization level",
    ),
    Violation.ENVIRONMENT: (
        "this command cannot be used here",
        "use it in a %(required)s",
    ),
    Violation.PERMISSION: (
        "missing %(side)s %(noun)s: %(names)s",
        "grant the missing %(noun)s and try again",
    ),
    Violation.SPECIFIC: (
        "this command is restricted to specific users",
        "ask one of the allowed users to run it",
    ),
    Violation.COOLDOWN: (
        "this command is on cooldown",
        "wait %(wait)s before using it again",
    ),
    Violation.GUARD: (
        "this command cannot run right now",
        "check the command requirements",
    ),
}


class ConstraintViolation(DispatchError):
    """
    a rejected invocation; only the first failing check is ever reported.

    detail (read-only mapping) per kind
    - AUTH: required, actual
    - ENVIRONMENT: required (Environment), actual (Surface)
    - PERMISSION: side ("issuer" | "self"), missing (frozenset)
    - SPECIFIC: allowed (frozenset)
    - COOLDOWN: remaining (milliseconds)
    - GUARD: index (0-based), guard (the predicate), cause (exception or None)
    """

    def __init__(self, kind, /, **detail):
        if not isinstance(kind, Violation):
            raise TypeError("constraint violation kind must be a Violation")
        message, hint = _VIOLATIONS[kind]
        values = defaultdict(str, detail)
        if kind is Violation.PERMISSION:
            missing = sorted(map(str, detail.get("missing", ())))
            values["noun"] = "permission" if len(missing) == 1 else pluralize("permission")
            values["names"] = ", ".join(missing)
        elif kind is Violation.COOLDOWN:
            seconds = max(1, -(-detail.get("remaining", 0) // 1000))
            values["wait"] = "%d %s" % (seconds, "second" if seconds == 1 else pluralize("second"))
        elif kind is Violation.ENVIRONMENT:
            values["required"] = getattr(detail.get("required"), "place", "different channel")
        super().__init__(
            message % values,
            code=kind.code,
            title="%s restriction" % kind.value,
            hint=hint % values,
            kind=kind,
            detail=MappingProxyType(detail),
            docs=getdoc(kind.code),
        )

    @property
    def kind(self):
        return self.options["kind"]

    @property
    def detail(self):
        return self.options["detail"]

    @property
    def remaining(self):
        return self.detail.get("remaining")

    @property
    def index(self):
        return self.detail.get("index")


class HandlerFailure(DispatchError):
    def __init__(self, cause, /, command=Unset):
        name = getattr(command, "name", None)
        super().__init__(
            "%s failed while running: %s" % (
                "command %r" % name if name else "the command",
                str(cause) or type(cause).__name__
            ),
            code=FaultCode.HANDLER_FAILURE,
            title="command failure",
            hint="this is not a usage problem; try again or report it",
            cause=cause,
            command=coalesce(command),
            docs=getdoc(FaultCode.HANDLER_FAILURE),
        )
        self.__cause__ = cause

    @property
    def cause(self):
        return self.options["cause"]


class Failed(Exception):
    """
    failed run reported by a handler's return value.

    a handler that cannot complete may return Failed("reason") instead of
    raising; the dispatcher turns it into HandlerFailure with this instance as
    cause. extra keyword options are kept read-only on .options.

        @command
        def kick(ctx, args):
            if not ctx.extra.get("member"):
                return Failed("nobody to kick")
    """

    def __init__(self, message="", /, **options):
        super().__init__(message)
        self.message = message
        self.options = MappingProxyType(options)


class RegistrationError(ValueError):
    """
    setup-time conflict raised while building or registering definitions.

    attributes
    - reason: Reason
    - name: the conflicting name, alias or short flag
    - owner: the definition (or argument) already holding the name, when known
    """

    def __init__(self, reason, name, /, owner=Unset):
        if not isinstance(reason, Reason):
            raise TypeError("registration error reason must be a Reason")
        self.reason = reason
        self.name = name
        self.owner = coalesce(owner)
        match reason:
            case Reason.DUPLICATE_NAME:
                message = "command name %r is already in use" % name
            case Reason.DUPLICATE_ALIAS:
                message = "command alias %r is already in use" % name
            case _:
                message = "short flag '-%s' is already in use" % name
        if self.owner is not None:
            message += " by %r" % getattr(self.owner, "name", self.owner)
        super().__init__(message)

    @property
    def code(self):
        return self.reason.code


def getdoc(code, /):
    """
    optional documentation fetch for a fault code.

    lookup
    - the host application may expose a __docs__ mapping in __main__ where keys
      are FaultCode instances and values are short documentation strings.
    - when not found, returns None (renderers treat docs as optional).
    """
    if not isinstance(code, FaultCode):
        raise TypeError("getdoc() argument must be a fault-code")
    try:
        return getattr(__import__("__main__"), "__docs__", {})[code]
    except KeyError:
        return None


def describe(fault, /):
    """
    flatten a fault into a plain dictionary (for logs, json payloads or tests).

    the keys are the fault's structured options minus rendering metadata, plus
    "code" (int), "type" (class name) and "message".
    """
    if not isinstance(fault, DispatchError):
        raise TypeError("describe() argument must be a dispatch error")
    payload = {
        name: object for name, object in fault.options.items()
        if name not in ("code", "title", "hint", "docs")
    }
    if isinstance(payload.get("detail"), MappingProxyType):
        payload["detail"] = dict(payload["detail"])
    for name, object in list(payload.items()):
        if isinstance(object, Enum):
            payload[name] = object.value
        elif inspect.isclass(object) or callable(object) and not isinstance(object, BaseException):
            payload[name] = getattr(object, "__qualname__", repr(object))
    return {"type": type(fault).__name__, "code": int(fault.code), "message": fault.message} | payload


__all__ = (
    "FaultCode",
    "Violation",
    "Reason",
    "DispatchError",
    "UnknownCommandError",
    "UnknownSubcommandError",
    "DisabledCommandError",
    "MissingArgumentError",
    "ArgumentTypeError",
    "ArgumentResolutionError",
    "ConstraintViolation",
    "HandlerFailure",
    "Failed",
    "RegistrationError",
    "getdoc",
    "describe",
)
