"""
Commodore command definitions: build, nest and describe commands.

What this module provides
- Command: a top-level command definition.
- Subcommand: a nested definition, reachable only through its parent.
  The two form a closed variant: which one a definition is gets fixed when it is
  built, never inferred later from its shape. Neither can be subclassed.
- command(...) / subcommand(...): factories that build a definition from a
  handler, directly or as decorators.
- Definition.subcommand(...): build a child and attach it in one step.

Definition fields
- name: canonical name (case-insensitive); defaults to the handler's __name__.
- aliases: alternative names (case-insensitive).
- descr: short description; defaults to the first docstring line of the handler.
- arguments: ordered schema (Argument instances, or a mapping of compact
  patterns, see arguments.schema).
- constraints: Constraints (defaults to an unrestricted set).
- subcommands: child Subcommand definitions.
- enabled: predicate () -> bool (sync or async); None means always enabled.
- single: the last (string) argument swallows the rest of the line.
- handler: handler(ctx, arguments) -> value (sync or async). A definition with
  children may have no handler; it then only routes to its children.

Everything is validated while the definition is built. Once a definition is
registered, its whole tree is sealed and no more children can be attached.

Quick start
    from commodore import command, Argument, Constraints, Kind

    @command(aliases=("p",), constraints=Constraints(cooldown=5000))
    def ping(ctx, args):
        "Check that the bot is alive"
        return "pong"

    role = command(None, name="role", descr="Manage member roles")

    @role.subcommand(arguments=(Argument("role", required=True), Argument("member", type="member", required=True)))
    async def add(ctx, args):
        ...
"""
import inspect
import re
from collections.abc import Iterable, Mapping

from rich.text import Text

from .arguments import Kind, sanitize, schema
from .constraints import Constraints
from .faults import *
from .utils import *


def _sanitize_identity(cls, metadata):
    """
    validate and normalize name, aliases and descr.

    - name: non-empty word without whitespace (letters, digits, '-', '_').
    - aliases: same shape; case-insensitive duplicates (including the name) are
      rejected as RegistrationError(DUPLICATE_ALIAS).
    - descr: non-empty after trimming; defaults to the handler docstring.
    """
    if not isinstance(name := metadata["name"], str):
        raise TypeError(f"{cls.__typename__} 'name' must be a string")
    elif not re.fullmatch(r"[^\W_][\w-]*", name := name.strip()):
        raise ValueError(f"{cls.__typename__} name {name!r} must be a single word")
    metadata["name"] = name

    if isinstance(aliases := metadata["aliases"], str) or not isinstance(aliases, Iterable):
        raise TypeError(f"{cls.__typename__} 'aliases' must be an iterable of strings")
    seen = {name.lower()}
    sanitized = []
    for alias in aliases:
        if not isinstance(alias, str):
            raise TypeError(f"{cls.__typename__} aliases must be strings")
        elif not re.fullmatch(r"[^\W_][\w-]*", alias := alias.strip()):
            raise ValueError(f"{cls.__typename__} alias {alias!r} must be a single word")
        elif alias.lower() in seen:
            raise RegistrationError(Reason.DUPLICATE_ALIAS, alias)
        seen.add(alias.lower())
        sanitized.append(alias)
    metadata["aliases"] = tuple(sanitized)

    if not isinstance(descr := metadata["descr"], str | Text | Unset):
        raise TypeError(f"{cls.__typename__} 'descr' must be a string")
    elif isinstance(descr, str) and not (descr := descr.strip()):
        raise ValueError(f"{cls.__typename__} 'descr' cannot be empty")
    metadata["descr"] = coalesce(descr)


def _sanitize_semantics(cls, metadata):
    """
    validate handler, arguments, constraints, enabled and single.
    """
    if metadata["handler"] is not None and not callable(metadata["handler"]):
        raise TypeError(f"{cls.__typename__} handler must be callable")

    if isinstance(arguments := metadata["arguments"], Mapping):
        metadata["arguments"] = schema(arguments)
    else:
        metadata["arguments"] = sanitize(arguments)

    if not isinstance(constraints := coalesce(metadata["constraints"], Constraints()), Constraints):
        raise TypeError(f"{cls.__typename__} 'constraints' must be a constraint set")
    metadata["constraints"] = constraints

    if isinstance(enabled := metadata["enabled"], bool):
        metadata["enabled"] = None if enabled else (lambda: False)
    elif enabled is not Unset and not callable(enabled):
        raise TypeError(f"{cls.__typename__} 'enabled' must be a callable or a boolean")
    else:
        metadata["enabled"] = coalesce(enabled)

    if metadata["single"] and (not metadata["arguments"] or metadata["arguments"][-1].type is not Kind.STRING):
        raise ValueError(f"{cls.__typename__} with 'single' must end with a string argument")


class Definition(metaclass=Reflective):
    """
    Shared body of Command and Subcommand.

    Lifecycle
    - Built from a handler (or None for a pure routing node) and metadata;
      everything is validated immediately.
    - Children are attached while building or through .subcommand(); each level
      rejects names/aliases already used by a sibling.
    - Registration seals the tree (see Registry.register).
    """

    __introspectable__ = (
        "name",
        "aliases",
        "descr",
        "arguments",
        "constraints",
        "children",
        "handler",
        "enabled",
        "single",
        "parent",
    )

    __displayable__ = (
        "name",
        "aliases",
        "descr",
        "arguments",
        "constraints",
        "children",
        "single",
    )

    def __init_subclass__(cls, **options):
        if cls.__module__ != __name__:
            raise TypeError(f"type {cls.__mro__[1].__name__!r} is not an acceptable base type")
        super().__init_subclass__(**options)

    def __new__(
            cls,
            handler=None,
            /,
            name=Unset,
            aliases=(),
            descr=Unset,
            arguments=(),
            constraints=Unset,
            subcommands=(),
            enabled=Unset,
            single=False,
    ):
        if cls is Definition:
            raise TypeError("definitions are built as a command or a subcommand")

        metadata = {
            "handler": handler,
            "name": coalesce(name, getattr(handler, "__name__", Unset)),
            "aliases": aliases,
            "descr": coalesce(descr, (handler is not None and inspect.getdoc(handler) or "").strip().partition("\n")[0] or Unset),
            "arguments": arguments,
            "constraints": constraints,
            "enabled": enabled,
            "single": bool(single),
        }
        if metadata["name"] is Unset:
            raise TypeError(f"{cls.__typename__} needs a name when the handler has none")
        _sanitize_identity(cls, metadata)
        _sanitize_semantics(cls, metadata)

        self = super().__new__(cls)
        for name, object in metadata.items():
            setattr(self, "_" + name, object)
        self._parent = None
        self._children = []
        self._index = {}
        self._sealed = False

        if isinstance(subcommands, Subcommand) or not isinstance(subcommands, Iterable):
            raise TypeError(f"{cls.__typename__} 'subcommands' must be an iterable of subcommands")
        for child in subcommands:
            self.attach(child)
        return self

    @property
    def names(self):
        """
        canonical name followed by every alias.
        """
        return (self.name,) + self.aliases

    @property
    def root(self):
        child, parent = self, self.parent
        while parent:
            child, parent = parent, parent.parent
        return child

    @property
    def path(self):
        """
        ancestry from the top-level command down to this definition.
        """
        path = [command := self]
        while command.parent:
            path.append(command := command.parent)
        return tuple(reversed(path))

    @property
    def qualname(self):
        """
        lowercased route of canonical names, e.g. "role add".
        """
        return " ".join(step.name.lower() for step in self.path)

    @property
    def sealed(self):
        return self._sealed

    @property
    def minimum(self):
        """
        number of required arguments.
        """
        return sum(argument.required for argument in self.arguments)

    @property
    def maximum(self):
        """
        number of declared arguments.
        """
        return len(self.arguments)

    @property
    def usage(self):
        """
        one-line usage, e.g. "role add <role> <member> [--silent|-s]".
        """
        parts = [" ".join(step.name for step in self.path)]
        if self.children and self.handler is None:
            parts.append("<%s>" % "|".join(child.name for child in self.children))
        parts.extend(argument.label for argument in self.arguments)
        if self.single and self.arguments:
            parts[-1] += "..."
        return " ".join(parts)

    def child(self, token, /):
        """
        the child whose name or alias matches token (case-insensitive), or None.
        """
        return self._index.get(token.lower())

    def attach(self, child, /):
        """
        attach a Subcommand under this definition.

        raises
        - TypeError: child is not a Subcommand, already has a parent, or this
          tree is already registered.
        - RegistrationError: a sibling already uses one of the child's names.
        """
        if not isinstance(child, Subcommand):
            raise TypeError(f"{type(self).__typename__} children must be subcommands")
        if child.parent is not None:
            raise TypeError(f"subcommand {child.name!r} is already attached to {child.parent.name!r}")
        if self._sealed:
            raise TypeError(f"{type(self).__typename__} {self.name!r} is registered; it cannot take new subcommands")

        for index, name in enumerate(child.names):
            if (owner := self._index.get(name.lower())) is not None:
                reason = Reason.DUPLICATE_NAME if not index else Reason.DUPLICATE_ALIAS
                raise RegistrationError(reason, name, owner=owner)

        child._parent = self
        self._children.append(child)
        self._index.update(dict.fromkeys((name.lower() for name in child.names), child))
        return child

    def subcommand(self, source=Unset, /, *args, **kwargs):
        """
        build a Subcommand and attach it here (direct or decorator form).

        - self.subcommand(handler, name=..., ...) -> Subcommand
        - @self.subcommand(name=..., ...)
        - self.subcommand(None, name=...) attaches a handler-less routing node.
        - self.subcommand(existing_subcommand) attaches it as-is.
        """
        if isinstance(source, Subcommand):
            if args or kwargs:
                raise TypeError("subcommand() takes no metadata when attaching an existing subcommand")
            return self.attach(source)
        if source is None:
            return self.attach(Subcommand(None, *args, **kwargs))

        @rename("subcommand")
        def wrapper(source, /):
            if not callable(source):
                raise TypeError("@subcommand() must be applied to a callable")
            return self.attach(Subcommand(source, *args, **kwargs))

        return wrapper(source) if source is not Unset else wrapper

    def walk(self):
        """
        yield this definition and every descendant, depth-first.
        """
        yield self
        for child in self._children:
            yield from child.walk()

    async def available(self):
        """
        evaluate the enabled predicate.
        """
        if self.enabled is None:
            return True
        return bool(await awaitable(self.enabled()))

    def _seal(self, sealed=True):
        for definition in self.walk():
            definition._sealed = sealed

    def __call__(self, ctx, arguments, /):
        if self.handler is None:
            raise TypeError(f"{type(self).__typename__} {self.name!r} only routes to its subcommands")
        return self.handler(ctx, arguments)


class Command(Definition):
    """
    top-level command definition (the only kind a registry accepts).
    """


class Subcommand(Definition):
    """
    nested command definition (only reachable through its parent).
    """


def command(source=Unset, /, *args, **kwargs):
    """
    Create a Command, or return a decorator that creates one.

    Invocation modes
    - Direct:     ping = command(handler, name="ping", ...)
    - Group:      role = command(None, name="role", descr="...")  (no handler)
    - Decorator:  @command(aliases=("p",)) def ping(ctx, args): ...
                  @command def ping(ctx, args): ...
    """
    @rename("command")
    def wrapper(source, /):
        if not callable(source):
            raise TypeError("@command() must be applied to a callable")
        return Command(source, *args, **kwargs)

    if source is None:
        return Command(None, *args, **kwargs)
    return wrapper(source) if source is not Unset else wrapper


def subcommand(source=Unset, /, *args, **kwargs):
    """
    Create a detached Subcommand (to pass through subcommands=...), or a decorator.
    """
    @rename("subcommand")
    def wrapper(source, /):
        if not callable(source):
            raise TypeError("@subcommand() must be applied to a callable")
        return Subcommand(source, *args, **kwargs)

    if source is None:
        return Subcommand(None, *args, **kwargs)
    return wrapper(source) if source is not Unset else wrapper


__all__ = (
    "Command",
    "Subcommand",
    "command",
    "subcommand",
)
