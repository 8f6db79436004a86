"""
Command registry: canonical names, aliases and subcommand trees.

Every name and alias is unique across the whole registry, case-insensitively,
including the names used inside subcommand trees. Conflicts are reported while
registering, never while dispatching.

Routing is a greedy walk: the first token selects a top-level command, and each
following token descends into a matching child until one matches nothing. There
is no backtracking.
"""
import difflib
import logging
from collections import namedtuple

from .commands import Command
from .faults import *
from .utils import *

logger = logging.getLogger(__name__)


Route = namedtuple("Route", ("command", "consumed"))
Route.__doc__ = "outcome of a greedy chain lookup: the deepest definition and how many tokens named it"


class Registry:
    """
    holds top-level commands and indexes every name in their trees.

    - register(command): add a Command (and its subcommands); seals the tree.
    - unregister(name): remove a top-level command by name or alias.
    - resolve(name): top-level lookup by name or alias.
    - resolve_chain(tokens): greedy lookup through subcommands.
    - suggest(token, level): close names for error hints.
    """

    def __init__(self, commands=()):
        self._commands = {}
        self._names = {}
        for command in commands:
            self.register(command)

    def register(self, command, /):
        """
        add command to the registry.

        raises
        - TypeError: command is not a top-level Command, is already
          registered, or holds a definition with neither handler nor subcommands.
        - RegistrationError: a name or alias of the tree is already in use, by
          another command or by another definition of the same tree.
        """
        if not isinstance(command, Command):
            raise TypeError("registry only accepts top-level commands")
        if command.sealed:
            raise TypeError(f"command {command.name!r} is already registered")

        claimed = {}
        for definition in command.walk():
            for index, name in enumerate(definition.names):
                key = name.lower()
                owner = self._names.get(key, claimed.get(key))
                if owner is not None and owner is not definition:
                    reason = Reason.DUPLICATE_NAME if not index else Reason.DUPLICATE_ALIAS
                    raise RegistrationError(reason, name, owner=owner)
                claimed[key] = definition
            if definition.handler is None and not definition.children:
                raise TypeError(f"{type(definition).__typename__} {definition.name!r} has neither a handler nor subcommands")

        command._seal()
        self._commands[command.name.lower()] = command
        self._names.update(claimed)
        logger.debug(
            "registered command %r (%d definitions, %d names)",
            command.name, sum(1 for _ in command.walk()), len(claimed)
        )
        return command

    def unregister(self, name, /):
        """
        remove the top-level command named name (or aliased as name).

        returns whether something was removed; the removed tree is unsealed so it
        can be edited and registered again.
        """
        if (command := self.resolve(name)) is None:
            return False
        del self._commands[command.name.lower()]
        for definition in command.walk():
            for alias in definition.names:
                self._names.pop(alias.lower(), None)
        command._seal(False)
        logger.debug("unregistered command %r", command.name)
        return True

    def resolve(self, name, /):
        """
        top-level command for name or alias (case-insensitive), or None.
        """
        if not isinstance(name, str):
            return None
        command = self._names.get(name.lower())
        return command if isinstance(command, Command) else None

    def resolve_chain(self, tokens, /):
        """
        greedy descent through subcommands.

        returns
        - Route(command, consumed): the deepest matched definition and the number
          of leading tokens it consumed; Route(None, 0) for an unknown first token.
        """
        tokens = list(tokens)
        if not tokens or (command := self.resolve(tokens[0])) is None:
            return Route(None, 0)
        consumed = 1
        while consumed < len(tokens) and (child := command.child(tokens[consumed])) is not None:
            command = child
            consumed += 1
        return Route(command, consumed)

    def suggest(self, token, level=Unset, /, limit=3):
        """
        names close to token, at the top level or among level's children.
        """
        if level is Unset or level is None:
            candidates = [alias for command in self for alias in command.names]
        else:
            candidates = [alias for child in level.children for alias in child.names]
        lowered = {candidate.lower(): candidate for candidate in candidates}
        matches = difflib.get_close_matches(token.lower(), lowered, n=limit, cutoff=0.6)
        return tuple(lowered[match] for match in matches)

    def __iter__(self):
        return iter(tuple(self._commands.values()))

    def __len__(self):
        return len(self._commands)

    def __contains__(self, item):
        if isinstance(item, str):
            return self.resolve(item) is not None
        return any(command is item for command in self._commands.values())

    def __repr__(self):
        return "registry(%s)" % ", ".join(map(repr, self._commands))


__all__ = (
    "Route",
    "Registry",
)
