"""
Commodore constraints: who may run a command, where, and how often.

Overview
- Environment: ANYWHERE | GUILD_ONLY | DM_ONLY.
- RestrictGroup: well-known groups (server owner/moderator, bot owner) that can
  appear in allow-lists and in a context's group memberships.
- Constraints: the immutable constraint set attached to a command.
- Cooldowns: the cooldown table, keyed by (command, user), holding the time (ms)
  of the last accepted invocation. It is the only structure the pipeline mutates
  while dispatches run concurrently, so every read-compare-write on it happens
  under one lock.
- Evaluator: runs the checks in a fixed order and stops at the first failure.

Evaluation order
1. authorization level        → Violation.AUTH
2. environment (surface)      → Violation.ENVIRONMENT
3. issuer, then bot permissions → Violation.PERMISSION
4. specific allow-list        → Violation.SPECIFIC
5. cooldown                   → Violation.COOLDOWN (record untouched)
6. guards, in order           → Violation.GUARD

Cooldown bookkeeping
- Step 5 claims the slot atomically (check-and-set). When a guard then rejects
  the invocation, the claim is released and the previous timestamp restored, so
  only accepted invocations ever leave a stamp behind. While guards run, a second
  invocation by the same user sees the claim and is rejected.
"""
import enum
import logging
import threading
import time
from collections import namedtuple
from collections.abc import Iterable

from .context import Surface
from .faults import *
from .utils import *

logger = logging.getLogger(__name__)


class Environment(enum.Enum):
    """
    where a command may be invoked.
    """
    ANYWHERE = "anywhere"
    GUILD_ONLY = "guild-only"
    DM_ONLY = "dm-only"

    @property
    def place(self):
        """
        wording used by fault hints.
        """
        return {
            Environment.ANYWHERE: "channel",
            Environment.GUILD_ONLY: "server channel",
            Environment.DM_ONLY: "direct message",
        }[self]

    def admits(self, surface, /):
        match self:
            case Environment.GUILD_ONLY:
                return surface is Surface.GUILD
            case Environment.DM_ONLY:
                return surface is Surface.DIRECT
            case _:
                return True


class RestrictGroup(enum.Enum):
    """
    common groups usable in allow-lists.
    """
    SERVER_OWNER = "server-owner"
    SERVER_MODERATOR = "server-moderator"
    BOT_OWNER = "bot-owner"


def _tokens(cls, metadata, field):
    if isinstance(value := metadata[field], str) or not isinstance(value, Iterable):
        raise TypeError(f"{cls.__typename__} {field!r} must be an iterable of tokens")
    metadata[field] = frozenset(value)


class Constraints(metaclass=Reflective):
    """
    constraint set of a command.

    Fields
    - auth: minimum authorization level (default 0).
    - environment: Environment (default ANYWHERE).
    - issuer_permissions / self_permissions: permission tokens the issuer / the
      bot must hold.
    - specific: allow-list of user or group identifiers (RestrictGroup allowed);
      empty means unrestricted.
    - cooldown: milliseconds between accepted invocations per user (0 = none).
    - guards: predicates guard(ctx, command) -> bool (sync or async).
    """

    __introspectable__ = (
        "auth",
        "environment",
        "issuer_permissions",
        "self_permissions",
        "specific",
        "cooldown",
        "guards",
    )

    def __new__(
            cls,
            auth=0,
            environment=Environment.ANYWHERE,
            issuer_permissions=(),
            self_permissions=(),
            specific=(),
            cooldown=0,
            guards=(),
    ):
        metadata = {
            "auth": auth,
            "environment": environment,
            "issuer_permissions": issuer_permissions,
            "self_permissions": self_permissions,
            "specific": specific,
            "cooldown": cooldown,
            "guards": guards,
        }
        if not isinstance(auth, int) or isinstance(auth, bool):
            raise TypeError(f"{cls.__typename__} 'auth' must be an integer")
        if not isinstance(environment, Environment):
            raise TypeError(f"{cls.__typename__} 'environment' must be an environment")
        if not isinstance(cooldown, int) or isinstance(cooldown, bool):
            raise TypeError(f"{cls.__typename__} 'cooldown' must be an integer (milliseconds)")
        elif cooldown < 0:
            raise ValueError(f"{cls.__typename__} 'cooldown' cannot be negative")

        _tokens(cls, metadata, "issuer_permissions")
        _tokens(cls, metadata, "self_permissions")
        _tokens(cls, metadata, "specific")

        if not isinstance(guards, Iterable):
            raise TypeError(f"{cls.__typename__} 'guards' must be an iterable of callables")
        if not all(map(callable, guards := tuple(guards))):
            raise TypeError(f"{cls.__typename__} 'guards' must be callables")
        metadata["guards"] = guards

        self = super().__new__(cls)
        for name, object in metadata.items():
            setattr(self, "_" + name, object)
        return self


Stamp = namedtuple("Stamp", ("key", "previous", "stamped", "remaining"))
Stamp.__doc__ = """
result of a cooldown claim.

- key: (command, user)
- previous: timestamp held before the claim (None when there was none)
- stamped: timestamp written by the claim (None when rejected)
- remaining: milliseconds left on the cooldown (0 when the claim succeeded)
"""


class Cooldowns:
    """
    cooldown table: (command, user) → (last accepted timestamp, cooldown).

    Thread-safe; every operation holds the table lock for its whole
    read-compare-write so two invocations of one key are never both accepted.
    Entries are never deleted by dispatch; expired ones are swept lazily every
    `sweep_every` claims.
    """

    def __init__(self, sweep_every=256):
        self._records = {}
        self._lock = threading.Lock()
        self._claims = 0
        self._sweep_every = sweep_every

    def claim(self, command, user, cooldown, now, /):
        """
        check the cooldown for (command, user) at now and stamp it if free.
        """
        key = (command, user)
        with self._lock:
            self._claims += 1
            if self._sweep_every and not self._claims % self._sweep_every:
                self._sweep(now)
            previous, _ = self._records.get(key, (None, cooldown))
            if previous is not None and (elapsed := now - previous) < cooldown:
                return Stamp(key, previous, None, cooldown - elapsed)
            self._records[key] = (now, cooldown)
            return Stamp(key, previous, now, 0)

    def release(self, stamp, /):
        """
        undo a successful claim, unless a later claim already replaced it.
        """
        if stamp.stamped is None:
            return
        with self._lock:
            current, cooldown = self._records.get(stamp.key, (None, 0))
            if current != stamp.stamped:
                return
            if stamp.previous is None:
                del self._records[stamp.key]
            else:
                self._records[stamp.key] = (stamp.previous, cooldown)

    def last(self, command, user, /):
        """
        timestamp of the last accepted invocation, or None.
        """
        with self._lock:
            return self._records.get((command, user), (None, 0))[0]

    def reset(self, command=Unset, user=Unset, /):
        """
        forget records matching command and/or user (everything when both Unset).
        """
        with self._lock:
            for key in [
                key for key in self._records
                if command in (Unset, key[0]) and user in (Unset, key[1])
            ]:
                del self._records[key]

    def sweep(self, now, /):
        """
        drop every record whose cooldown has elapsed at now.
        """
        with self._lock:
            self._sweep(now)

    def _sweep(self, now):
        expired = [key for key, (stamp, cooldown) in self._records.items() if now - stamp >= cooldown]
        for key in expired:
            del self._records[key]
        if expired:
            logger.debug("swept %d expired cooldown records", len(expired))

    def __len__(self):
        return len(self._records)


def _milliseconds():
    return time.monotonic_ns() // 1_000_000


class Evaluator:
    """
    evaluates a command's constraints against an invocation context.

    parameters
    - cooldowns: the Cooldowns table this evaluator owns (a new one by default).
    - clock: callable returning the current time in milliseconds.
    """

    def __init__(self, cooldowns=Unset, clock=Unset):
        if not callable(clock := coalesce(clock, _milliseconds)):
            raise TypeError("evaluator 'clock' must be callable")
        if not isinstance(cooldowns := coalesce(cooldowns, Cooldowns()), Cooldowns):
            raise TypeError("evaluator 'cooldowns' must be a cooldown table")
        self._cooldowns = cooldowns
        self._clock = clock

    @property
    def cooldowns(self):
        return self._cooldowns

    async def evaluate(self, command, ctx, /):
        """
        run every check in order; raise ConstraintViolation on the first failure.

        on success the cooldown record (if any) holds the acceptance time.
        """
        constraints = command.constraints

        if ctx.auth < constraints.auth:
            raise ConstraintViolation(Violation.AUTH, required=constraints.auth, actual=ctx.auth)

        if not constraints.environment.admits(ctx.surface):
            raise ConstraintViolation(Violation.ENVIRONMENT, required=constraints.environment, actual=ctx.surface)

        if missing := constraints.issuer_permissions - ctx.permissions:
            raise ConstraintViolation(Violation.PERMISSION, side="issuer", missing=missing)
        if missing := constraints.self_permissions - ctx.self_permissions:
            raise ConstraintViolation(Violation.PERMISSION, side="self", missing=missing)

        if constraints.specific and not constraints.specific & ctx.identities:
            raise ConstraintViolation(Violation.SPECIFIC, allowed=constraints.specific)

        stamp = None
        if constraints.cooldown:
            stamp = self._cooldowns.claim(command.qualname, ctx.user, constraints.cooldown, self._clock())
            if stamp.remaining:
                raise ConstraintViolation(Violation.COOLDOWN, remaining=stamp.remaining)

        for index, guard in enumerate(constraints.guards):
            try:
                allowed = await awaitable(guard(ctx, command))
                cause = None
            except Exception as error:
                allowed = False
                cause = error
            if not allowed:
                if stamp is not None:
                    self._cooldowns.release(stamp)
                logger.debug("guard %d of %r denied user %r", index, command.qualname, ctx.user)
                raise ConstraintViolation(Violation.GUARD, index=index, guard=guard, cause=cause)


__all__ = (
    "Environment",
    "RestrictGroup",
    "Constraints",
    "Stamp",
    "Cooldowns",
    "Evaluator",
)
