r"""
Commodore argument specifications and the typed resolver.

Overview
- Kind: the closed set of primitive argument types
  (string, integer, unsigned-integer, non-zero-integer, boolean).
- Argument: one slot of a command schema (name, type, required, default, short
  flag, description). Validated eagerly; read-only afterwards.
- Arguments: the resolved, read-only record handed to handlers. It always holds
  exactly one entry per schema slot; optional slots without a value hold `absent`.
- Types: registry of custom argument types. A custom type is an identifier bound
  to a resolver(token, ctx) that may look things up through ctx.lookup and
  returns the domain object, or NotFound (None works too). "snowflake" (an
  all-digits platform id) is registered out of the box.
- resolve(): binds a positional stream and a flag map to a schema.
- schema(): compact pattern form, e.g. {"role": "!string", "member": "!:member"}.

Binding rules (per slot, in declared order)
1. a flag named after the slot (--name or its short -x) wins, regardless of where
   it appeared on the line;
2. otherwise the next unconsumed positional token is taken;
3. with nothing left: required → MissingArgumentError, default → default (callable
   defaults receive the context), otherwise → absent;
4. the raw text is converted per the slot type; the first failure aborts the whole
   resolution and nothing is bound.

Extra positional tokens are ignored; with single=True the last slot instead takes
every remaining positional token rejoined with single spaces.

Quick example:
    >>> greet = (Argument("name", required=True), Argument("loud", type=Kind.BOOLEAN, flag="l"))
    >>> tokens = tokenize("-l alice", greet)
    >>> await resolve(positionals(tokens), flags(tokens), greet, ctx)
    arguments(name='alice', loud=True)
"""
import enum
import functools
import logging
import re
from collections import deque
from collections.abc import Mapping, Iterable

from rich.text import Text

from .absent import absent
from .faults import *
from .utils import *

logger = logging.getLogger(__name__)


class Kind(enum.Enum):
    """
    primitive argument types.
    """
    STRING = "string"
    INTEGER = "integer"
    UNSIGNED = "unsigned-integer"
    NONZERO = "non-zero-integer"
    BOOLEAN = "boolean"

    @property
    def label(self):
        """
        article-prefixed wording used in fault messages.
        """
        return {
            Kind.STRING: "a string",
            Kind.INTEGER: "an integer",
            Kind.UNSIGNED: "an unsigned integer",
            Kind.NONZERO: "a non-zero integer",
            Kind.BOOLEAN: "a boolean (true or false)",
        }[self]


# Spellings accepted for the primitive kinds (schema patterns and type=...).
_KINDS = {
    "string": Kind.STRING,
    "str": Kind.STRING,
    "integer": Kind.INTEGER,
    "int": Kind.INTEGER,
    "number": Kind.INTEGER,
    "unsigned-integer": Kind.UNSIGNED,
    "unsigned": Kind.UNSIGNED,
    "non-zero-integer": Kind.NONZERO,
    "nonzero": Kind.NONZERO,
    "boolean": Kind.BOOLEAN,
    "bool": Kind.BOOLEAN,
    "state": Kind.BOOLEAN,
    str: Kind.STRING,
    int: Kind.INTEGER,
    bool: Kind.BOOLEAN,
}

_INTEGER = re.compile(r"[+-]?[0-9]+")


NotFound = type("not-found-type", (), {
    "__module__": None,
    "__slots__": (),
    "__repr__": lambda self: "NotFound",
    "__bool__": lambda self: False,
    "__doc__": "returned by custom type resolvers when the token matches nothing",
    "__new__": functools.cache(lambda cls: super(type, cls).__new__(cls)),
})()


class Argument(metaclass=Reflective):
    """
    One slot of a command schema.

    Fields
    - name: unique within the schema; also the long flag (--name).
    - type: a Kind, or the identifier of a custom type registered in Types.
      Kind spellings ("integer", "bool", int ...) are accepted and normalized.
    - required: a missing required argument fails the dispatch.
    - default: literal value, or callable(ctx) (sync or async) evaluated per
      dispatch. Not allowed on required arguments.
    - flag: optional single-character short flag (-x).
    - descr: short description for help output.
    """

    __introspectable__ = (
        "name",
        "type",
        "required",
        "default",
        "flag",
        "descr",
    )

    def __new__(
            cls,
            name,
            /,
            type=Kind.STRING,
            required=False,
            default=Unset,
            flag=Unset,
            descr=Unset,
    ):
        if not isinstance(name, str):
            raise TypeError(f"{cls.__typename__} 'name' must be a string")
        elif not re.fullmatch(r"[^\W\d][\w-]*", name := name.strip()):
            raise ValueError(f"{cls.__typename__} 'name' must be an identifier-like word, got {name!r}")

        if isinstance(type, Kind):
            pass
        elif type in _KINDS:
            type = _KINDS[type]
        elif isinstance(type, str) and type.strip():
            type = type.strip()
        else:
            raise TypeError(f"{cls.__typename__} 'type' must be a kind or a custom type identifier")

        if required and default is not Unset:
            raise ValueError(f"{cls.__typename__} {name!r} cannot be required and have a default")

        if flag is not Unset:
            if not isinstance(flag, str):
                raise TypeError(f"{cls.__typename__} 'flag' must be a string")
            elif len(flag) != 1 or flag.isspace() or flag in "-=\"'`":
                raise ValueError(f"{cls.__typename__} 'flag' must be a single character, got {flag!r}")

        if not isinstance(descr, str | Text | Unset):
            raise TypeError(f"{cls.__typename__} 'descr' must be a string")
        elif isinstance(descr, str) and not (descr := descr.strip()):
            raise ValueError(f"{cls.__typename__} 'descr' cannot be empty")

        self = super().__new__(cls)
        self._name = name
        self._type = type
        self._required = bool(required)
        self._default = default
        self._flag = coalesce(flag)
        self._descr = coalesce(descr)
        return self

    @property
    def custom(self):
        """
        whether the slot delegates to a custom type resolver.
        """
        return isinstance(self.type, str)

    @property
    def label(self):
        """
        usage fragment: <name>, [name] or [--name|-x] for booleans.
        """
        if self.type is Kind.BOOLEAN and not self.required:
            return "[--%s%s]" % (self.name, "|-" + self.flag if self.flag else "")
        return ("<%s>" if self.required else "[%s]") % self.name


class Arguments(Mapping):
    """
    read-only record of resolved argument values.

    supports mapping access (args["name"]) and attribute access (args.name).
    """
    __slots__ = ("_values",)

    def __init__(self, values=(), /):
        object.__setattr__(self, "_values", dict(values))

    def __getitem__(self, name):
        return self._values[name]

    def __iter__(self):
        return iter(self._values)

    def __len__(self):
        return len(self._values)

    def __getattr__(self, name):
        try:
            return object.__getattribute__(self, "_values")[name]
        except KeyError:
            raise AttributeError(f"no argument named {name!r}") from None

    def __setattr__(self, name, value):
        raise AttributeError("arguments are read-only")

    def present(self, name, /):
        """
        whether name received a value (parsed or defaulted).
        """
        return self._values[name] is not absent

    def __repr__(self):
        return "arguments(%s)" % ", ".join("%s=%r" % item for item in self._values.items())

    def __rich_repr__(self):
        yield from self._values.items()


def snowflake(token, ctx, /):
    """
    resolver for platform ids: the token itself when it is all ASCII digits.
    """
    return token if token.isascii() and token.isdigit() else NotFound


class Types:
    """
    registry of custom argument types.

    Resolvers are called as resolver(token, ctx) and may be coroutine functions.
    They return the domain object, or NotFound/None when the token matches
    nothing. Identifiers cannot shadow the primitive kind spellings.

    With builtin=True (the default) "snowflake" comes pre-registered; it needs
    no lookup, only an all-digits id.
    """

    def __init__(self, builtin=True):
        self._resolvers = {}
        if builtin:
            self.register("snowflake", snowflake)

    def register(self, identifier, resolver=Unset, /):
        """
        register resolver under identifier; without resolver, return a decorator.

        raises
        - TypeError: identifier is not a string or resolver is not callable.
        - ValueError: identifier is empty, a primitive kind, or already taken.
        """
        if not isinstance(identifier, str):
            raise TypeError("argument type identifier must be a string")
        elif not (identifier := identifier.strip()):
            raise ValueError("argument type identifier cannot be empty")
        elif identifier in _KINDS:
            raise ValueError(f"argument type identifier {identifier!r} is a primitive kind")

        if resolver is Unset:
            return rename(functools.partial(self.register, identifier), "register")

        if not callable(resolver):
            raise TypeError("argument type resolver must be callable")
        if self._resolvers.setdefault(identifier, resolver) is not resolver:
            raise ValueError(f"argument type {identifier!r} is already registered")
        logger.debug("registered argument type %r -> %s", identifier, getattr(resolver, "__qualname__", resolver))
        return resolver

    def unregister(self, identifier, /):
        return self._resolvers.pop(identifier, None) is not None

    def __contains__(self, identifier):
        return identifier in self._resolvers

    def __iter__(self):
        return iter(self._resolvers)

    def __len__(self):
        return len(self._resolvers)

    async def resolve(self, identifier, token, ctx, /):
        """
        run the resolver for identifier; KeyError when it is not registered.
        """
        return await awaitable(self._resolvers[identifier](token, ctx))


def sanitize(schema, /):
    """
    validate a schema: argument instances only, unique names, unique short flags.

    returns
    - tuple[Argument, ...]

    raises
    - TypeError for non-Argument entries, ValueError for duplicated names and
      RegistrationError(DUPLICATE_SHORT_FLAG) for duplicated short flags.
    """
    if not isinstance(schema, Iterable) or isinstance(schema, str):
        raise TypeError("schema must be an iterable of arguments")
    names = {}
    shorts = {}
    for argument in (schema := tuple(schema)):
        if not isinstance(argument, Argument):
            raise TypeError("schema entries must be arguments")
        if names.setdefault(argument.name, argument) is not argument:
            raise ValueError(f"argument name {argument.name!r} is declared twice")
        if argument.flag and shorts.setdefault(argument.flag, argument) is not argument:
            raise RegistrationError(Reason.DUPLICATE_SHORT_FLAG, argument.flag, owner=shorts[argument.flag])
    return schema


def schema(patterns, /):
    """
    build a schema from compact patterns.

    grammar
    - "!" prefix marks the argument required.
    - ":identifier" names a custom type; otherwise a kind spelling is expected
      ("string", "integer", "number", "unsigned", "nonzero", "boolean", "state" ...).
    - Argument instances are accepted as-is.

    example
    - schema({"role": "!string", "member": "!:member", "silent": "boolean"})
    """
    if not isinstance(patterns, Mapping):
        raise TypeError("schema() argument must be a mapping")

    arguments = []
    for name, pattern in patterns.items():
        if isinstance(pattern, Argument):
            if pattern.name != name:
                raise ValueError(f"schema key {name!r} does not match argument {pattern.name!r}")
            arguments.append(pattern)
            continue
        if not isinstance(pattern, str):
            raise TypeError(f"schema pattern for {name!r} must be a string")
        required = pattern.startswith("!")
        body = pattern.removeprefix("!").strip()
        if body.startswith(":"):
            type = body[1:]
        elif body in _KINDS:
            type = _KINDS[body]
        else:
            raise ValueError(f"schema pattern {pattern!r} for {name!r} names no known kind")
        arguments.append(Argument(name, type=type, required=required))
    return sanitize(arguments)


def _integer(argument, raw):
    if not _INTEGER.fullmatch(raw):
        raise ArgumentTypeError(argument.name, argument.type, raw)
    value = int(raw)
    if argument.type is Kind.UNSIGNED and value < 0:
        raise ArgumentTypeError(argument.name, argument.type, raw)
    if argument.type is Kind.NONZERO and value == 0:
        raise ArgumentTypeError(argument.name, argument.type, raw)
    return value


async def _convert(argument, raw, ctx, types):
    """
    convert one raw value (str, or True for a bare flag) per the slot type.
    """
    if raw is True:
        if argument.type is Kind.BOOLEAN:
            return True
        # a bare flag carries no text for any other type
        raise ArgumentTypeError(argument.name, argument.type, True)

    match argument.type:
        case Kind.STRING:
            return raw
        case Kind.INTEGER | Kind.UNSIGNED | Kind.NONZERO:
            return _integer(argument, raw)
        case Kind.BOOLEAN:
            try:
                return {"true": True, "false": False}[raw.lower()]
            except KeyError:
                raise ArgumentTypeError(argument.name, argument.type, raw) from None

    try:
        value = await types.resolve(argument.type, raw, ctx)
    except (KeyError, AttributeError) as error:
        if types is not None and argument.type in types:
            raise ArgumentResolutionError(argument.name, raw, cause=error) from error
        logger.debug("argument %r uses unregistered type %r", argument.name, argument.type)
        raise ArgumentResolutionError(argument.name, raw, cause=LookupError(argument.type)) from None
    except Exception as error:
        raise ArgumentResolutionError(argument.name, raw, cause=error) from error

    if value is None or value is NotFound:
        raise ArgumentResolutionError(argument.name, raw)
    return value


async def _fallback(argument, ctx):
    """
    evaluate the default of an argument that received no token.

    a callable default that raises is reported as ArgumentResolutionError with
    token None and the error as cause.
    """
    if not callable(default := argument.default):
        return default
    try:
        return await awaitable(default(ctx))
    except Exception as error:
        logger.debug("default of argument %r raised %s", argument.name, type(error).__name__)
        raise ArgumentResolutionError(argument.name, None, cause=error) from error


async def resolve(positionals, flags, schema, ctx, /, types=None, single=False):
    """
    bind tokens to schema and return an Arguments record.

    parameters
    - positionals: Iterable[str], the positional token stream in order.
    - flags: Mapping[str, str | True], flag values keyed by argument name.
    - schema: Iterable[Argument], in declared order.
    - ctx: invocation context, forwarded to defaults and custom resolvers.
    - types: Types registry for custom identifiers.
    - single: fold every remaining positional token into the last slot.

    raises
    - MissingArgumentError, ArgumentTypeError, ArgumentResolutionError.
    """
    positionals = deque(positionals)
    flags = dict(flags)
    schema = tuple(schema)
    values = {}

    for index, argument in enumerate(schema, 1):
        if argument.name in flags:
            raw = flags.pop(argument.name)
        elif positionals:
            if single and index == len(schema):
                raw = " ".join(positionals)
                positionals.clear()
            else:
                raw = positionals.popleft()
        elif argument.required:
            raise MissingArgumentError(argument.name, index)
        elif argument.default is not Unset:
            values[argument.name] = await _fallback(argument, ctx)
            continue
        else:
            values[argument.name] = absent
            continue

        values[argument.name] = await _convert(argument, raw, ctx, types)

    if flags:
        logger.debug("ignoring flags that match no argument: %s", ", ".join(sorted(flags)))
    return Arguments(values)


__all__ = (
    "Kind",
    "Argument",
    "Arguments",
    "Types",
    "snowflake",
    "NotFound",
    "sanitize",
    "schema",
    "resolve",
)
