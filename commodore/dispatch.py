"""
Commodore dispatcher: raw line in, Outcome out.

Pipeline (first failure wins; every failure is returned as data)
1. prefix:       a line not starting with the prefix, or empty after it, is not
                 a command (dispatch returns None).
2. split:        quote-aware word split of the remainder.
3. route:        greedy lookup through the registry (UnknownCommandError,
                 UnknownSubcommandError for a handler-less group).
4. enabled:      the enabled predicate of every definition on the route
                 (DisabledCommandError, also when the predicate raises).
5. constraints:  Evaluator.evaluate (ConstraintViolation).
6. arguments:    the words after the routed chain are tokenized with the
                 definition's schema and bound (argument errors).
7. handler:      handler(ctx, arguments), awaited when needed; a raised or
                 returned exception (see faults.Failed) becomes HandlerFailure.

Usage
    dispatcher = Dispatcher(prefix="!")
    dispatcher.register_command(ping)
    outcome = await dispatcher.dispatch("!ping", ctx)
    if outcome is not None and not outcome.ok:
        ...
"""
import logging
from collections import namedtuple

from .arguments import Types, resolve
from .constraints import Evaluator
from .faults import *
from .registry import Registry
from .tokens import flags, positionals, split, tokenize
from .utils import *

logger = logging.getLogger(__name__)


class Outcome(namedtuple("Outcome", ("command", "arguments", "value", "fault"), defaults=(None, None, None, None))):
    """
    result of one dispatch.

    - command: the routed definition (None when routing failed).
    - arguments: the bound Arguments (None when binding was not reached).
    - value: the handler's return value.
    - fault: the DispatchError describing the failure, or None.
    """
    __slots__ = ()

    @property
    def ok(self):
        return self.fault is None


class Dispatcher:
    """
    routes raw lines to registered handlers.

    parameters
    - registry: command Registry (a new empty one by default).
    - types: custom argument Types (a new empty one by default).
    - evaluator: constraint Evaluator, owner of the cooldown table.
    - prefix: command prefix, or an iterable of accepted prefixes.
    """

    def __init__(self, registry=Unset, types=Unset, evaluator=Unset, prefix="!"):
        if not isinstance(registry := coalesce(registry, Registry()), Registry):
            raise TypeError("dispatcher 'registry' must be a registry")
        if not isinstance(types := coalesce(types, Types()), Types):
            raise TypeError("dispatcher 'types' must be an argument type registry")
        if not isinstance(evaluator := coalesce(evaluator, Evaluator()), Evaluator):
            raise TypeError("dispatcher 'evaluator' must be an evaluator")

        prefixes = (prefix,) if isinstance(prefix, str) else tuple(prefix)
        if not prefixes or not all(isinstance(prefix, str) and prefix for prefix in prefixes):
            raise ValueError("dispatcher 'prefix' must be a non-empty string or strings")

        self._registry = registry
        self._types = types
        self._evaluator = evaluator
        # longest first so "!!" wins over "!"
        self._prefixes = tuple(sorted(prefixes, key=len, reverse=True))

    @property
    def registry(self):
        return self._registry

    @property
    def types(self):
        return self._types

    @property
    def evaluator(self):
        return self._evaluator

    @property
    def prefixes(self):
        return self._prefixes

    def register_command(self, command, /):
        return self._registry.register(command)

    def unregister_command(self, name, /):
        return self._registry.unregister(name)

    def register_type(self, identifier, resolver=Unset, /):
        return self._types.register(identifier, resolver)

    def strip(self, line, /):
        """
        the line without its prefix, or None when it carries none.
        """
        for prefix in self._prefixes:
            if line.startswith(prefix):
                return line[len(prefix):]
        return None

    async def dispatch(self, line, ctx, /):
        """
        run line through the pipeline.

        returns
        - None when line is not a command.
        - Outcome otherwise; outcome.fault holds the first failure.
        """
        if not isinstance(line, str):
            raise TypeError("dispatch() line must be a string")
        if (body := self.strip(line)) is None:
            return None
        if not (words := split(body)):
            return None

        command = arguments = None
        try:
            command, consumed = await self._route(words)
            await self._evaluator.evaluate(command, ctx)
            tokens = tokenize(words[consumed:], command.arguments)
            arguments = await resolve(
                positionals(tokens),
                flags(tokens),
                command.arguments,
                ctx,
                types=self._types,
                single=command.single,
            )
        except DispatchError as fault:
            logger.debug("dispatch of %r rejected with %s (%d)", line, type(fault).__name__, fault.code)
            return Outcome(command, arguments, None, fault)

        try:
            value = await awaitable(command(ctx, arguments))
        except Exception as error:
            logger.debug("handler of %r raised %s", command.qualname, type(error).__name__, exc_info=True)
            return Outcome(command, arguments, None, HandlerFailure(error, command=command))

        if isinstance(value, BaseException):
            logger.debug("handler of %r returned %s", command.qualname, type(value).__name__)
            return Outcome(command, arguments, None, HandlerFailure(value, command=command))

        logger.debug("dispatched %r", command.qualname)
        return Outcome(command, arguments, value)

    async def _route(self, words):
        names = [word.text for word in words]
        command, consumed = self._registry.resolve_chain(names)
        if command is None:
            raise UnknownCommandError(names[0], suggestions=self._registry.suggest(names[0]))
        if command.handler is None:
            attempted = names[consumed] if consumed < len(names) else ""
            raise UnknownSubcommandError(
                command.qualname,
                attempted,
                suggestions=self._registry.suggest(attempted, command) if attempted else (),
            )
        for definition in command.path:
            try:
                available = await definition.available()
            except Exception as error:
                logger.debug("enabled predicate of %r raised %s", definition.qualname, type(error).__name__)
                raise DisabledCommandError(definition.qualname, cause=error) from error
            if not available:
                raise DisabledCommandError(definition.qualname)
        return command, consumed


__all__ = (
    "Outcome",
    "Dispatcher",
)
