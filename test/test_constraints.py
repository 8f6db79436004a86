"""
Constraint evaluation and cooldown bookkeeping tests.

Scope
- Constraints construction rules.
- Evaluator order (auth, environment, permissions, allow-list, cooldown, guards).
- Cooldown gating with an injected clock, including guard rollback.
- Cooldowns table administration and atomic claims under threads.

Conventions
- Test method names follow CamelCase per project convention.
- Time is driven by a fake millisecond clock; nothing sleeps.
"""
import asyncio
import threading
import unittest
from unittest import IsolatedAsyncioTestCase, TestCase

from commodore import (
    Command,
    ConstraintViolation,
    Constraints,
    Context,
    Cooldowns,
    Environment,
    Evaluator,
    RestrictGroup,
    Surface,
    Violation,
)
from commodore.utils import Unset


def noop(ctx, args):
    return None


class Clock:
    def __init__(self, now=0):
        self.now = now

    def __call__(self):
        return self.now


class TestContext(TestCase):
    """The invocation context."""

    def testIdentities(self):
        ctx = Context("u1", groups={RestrictGroup.SERVER_MODERATOR})
        self.assertEqual(ctx.identities, frozenset({"u1", RestrictGroup.SERVER_MODERATOR}))

    def testSurfaceChecked(self):
        with self.assertRaises(TypeError):
            Context("u1", surface="guild")

    def testExtraIsReadOnly(self):
        ctx = Context("u1", extra={"channel": 7})
        with self.assertRaises(TypeError):
            ctx.extra["channel"] = 8


class TestConstraints(TestCase):
    """Construction rules of Constraints."""

    def testDefaultsAreUnrestricted(self):
        constraints = Constraints()
        self.assertEqual(constraints.auth, 0)
        self.assertIs(constraints.environment, Environment.ANYWHERE)
        self.assertEqual(constraints.issuer_permissions, frozenset())
        self.assertEqual(constraints.cooldown, 0)
        self.assertEqual(constraints.guards, ())

    def testNegativeCooldownRejected(self):
        with self.assertRaises(ValueError):
            Constraints(cooldown=-1)

    def testBooleanAuthRejected(self):
        with self.assertRaises(TypeError):
            Constraints(auth=True)

    def testEnvironmentMustBeEnum(self):
        with self.assertRaises(TypeError):
            Constraints(environment="guild-only")

    def testGuardsMustBeCallable(self):
        with self.assertRaises(TypeError):
            Constraints(guards=(noop, "nope"))

    def testPermissionStringRejected(self):
        with self.assertRaises(TypeError):
            Constraints(issuer_permissions="ban")

    def testTokenSetsFrozen(self):
        self.assertEqual(Constraints(specific=["a", "a", "b"]).specific, frozenset({"a", "b"}))


class TestEvaluatorOrder(IsolatedAsyncioTestCase):
    """The first failing check, in fixed order, is the one reported."""

    def setUp(self):
        self.evaluator = Evaluator(clock=Clock())

    async def violation(self, constraints, ctx):
        command = Command(noop, name="probe", constraints=constraints)
        with self.assertRaises(ConstraintViolation) as context:
            await self.evaluator.evaluate(command, ctx)
        return context.exception

    async def testAuthBeforePermissions(self):
        fault = await self.violation(
            Constraints(auth=5, issuer_permissions={"ban"}),
            Context("u1", auth=0),
        )
        self.assertIs(fault.kind, Violation.AUTH)
        self.assertEqual(fault.detail["required"], 5)

    async def testEnvironment(self):
        fault = await self.violation(
            Constraints(environment=Environment.GUILD_ONLY),
            Context("u1", surface=Surface.DIRECT),
        )
        self.assertIs(fault.kind, Violation.ENVIRONMENT)
        self.assertIn("server channel", fault.hint)

    async def testDirectOnly(self):
        fault = await self.violation(Constraints(environment=Environment.DM_ONLY), Context("u1"))
        self.assertIs(fault.kind, Violation.ENVIRONMENT)

    async def testIssuerPermissionsNamed(self):
        fault = await self.violation(
            Constraints(issuer_permissions={"ban", "kick"}),
            Context("u1", permissions={"kick"}),
        )
        self.assertIs(fault.kind, Violation.PERMISSION)
        self.assertEqual(fault.detail["side"], "issuer")
        self.assertEqual(fault.detail["missing"], frozenset({"ban"}))

    async def testSelfPermissionsAfterIssuer(self):
        fault = await self.violation(
            Constraints(issuer_permissions={"kick"}, self_permissions={"manage-roles"}),
            Context("u1", permissions={"kick"}),
        )
        self.assertEqual(fault.detail["side"], "self")

    async def testSpecificAllowList(self):
        fault = await self.violation(Constraints(specific={"u2"}), Context("u1"))
        self.assertIs(fault.kind, Violation.SPECIFIC)

    async def testSpecificAcceptsUserOrGroup(self):
        constraints = Constraints(specific={"u2", RestrictGroup.BOT_OWNER})
        command = Command(noop, name="probe", constraints=constraints)
        await self.evaluator.evaluate(command, Context("u2"))
        await self.evaluator.evaluate(command, Context("u3", groups={RestrictGroup.BOT_OWNER}))

    async def testEverythingSatisfied(self):
        command = Command(noop, name="probe", constraints=Constraints(
            auth=2,
            environment=Environment.GUILD_ONLY,
            issuer_permissions={"ban"},
            self_permissions={"ban"},
        ))
        await self.evaluator.evaluate(command, Context(
            "u1", auth=3, permissions={"ban", "kick"}, self_permissions={"ban"},
        ))


class TestCooldownGating(IsolatedAsyncioTestCase):
    """Cooldown gating with an injected clock."""

    def setUp(self):
        self.clock = Clock()
        self.evaluator = Evaluator(clock=self.clock)
        self.command = Command(noop, name="ping", constraints=Constraints(cooldown=5000))

    async def testGating(self):
        await self.evaluator.evaluate(self.command, Context("u1"))

        self.clock.now = 2000
        with self.assertRaises(ConstraintViolation) as context:
            await self.evaluator.evaluate(self.command, Context("u1"))
        self.assertIs(context.exception.kind, Violation.COOLDOWN)
        self.assertEqual(context.exception.remaining, 3000)
        self.assertIn("3 seconds", context.exception.hint)

        # a different user is unaffected
        await self.evaluator.evaluate(self.command, Context("u2"))

        self.clock.now = 6000
        await self.evaluator.evaluate(self.command, Context("u1"))
        self.assertEqual(self.evaluator.cooldowns.last("ping", "u1"), 6000)

    async def testRejectionLeavesRecordUntouched(self):
        await self.evaluator.evaluate(self.command, Context("u1"))
        self.clock.now = 4999
        with self.assertRaises(ConstraintViolation):
            await self.evaluator.evaluate(self.command, Context("u1"))
        self.assertEqual(self.evaluator.cooldowns.last("ping", "u1"), 0)
        self.clock.now = 5000
        await self.evaluator.evaluate(self.command, Context("u1"))

    async def testNoCooldownNoRecord(self):
        command = Command(noop, name="free")
        await self.evaluator.evaluate(command, Context("u1"))
        await self.evaluator.evaluate(command, Context("u1"))
        self.assertEqual(len(self.evaluator.cooldowns), 0)

    async def testGuardRejectionReleasesClaim(self):
        allowed = [False]
        command = Command(noop, name="ping", constraints=Constraints(
            cooldown=5000,
            guards=(lambda ctx, command: True, lambda ctx, command: allowed[0]),
        ))
        with self.assertRaises(ConstraintViolation) as context:
            await self.evaluator.evaluate(command, Context("u1"))
        self.assertIs(context.exception.kind, Violation.GUARD)
        self.assertEqual(context.exception.index, 1)
        self.assertIsNone(self.evaluator.cooldowns.last("ping", "u1"))

        allowed[0] = True
        await self.evaluator.evaluate(command, Context("u1"))
        self.assertEqual(self.evaluator.cooldowns.last("ping", "u1"), 0)

    async def testRaisingGuardIsADenial(self):
        def guard(ctx, command):
            raise RuntimeError("boom")

        command = Command(noop, name="ping", constraints=Constraints(guards=(guard,)))
        with self.assertRaises(ConstraintViolation) as context:
            await self.evaluator.evaluate(command, Context("u1"))
        self.assertIs(context.exception.kind, Violation.GUARD)
        self.assertIsInstance(context.exception.detail["cause"], RuntimeError)

    async def testAsyncGuard(self):
        async def guard(ctx, command):
            return ctx.user == "u1"

        command = Command(noop, name="ping", constraints=Constraints(guards=(guard,)))
        await self.evaluator.evaluate(command, Context("u1"))
        with self.assertRaises(ConstraintViolation):
            await self.evaluator.evaluate(command, Context("u2"))

    async def testConcurrentInvocationsAcceptOnlyOne(self):
        gate = asyncio.Event()

        async def guard(ctx, command):
            await gate.wait()
            return True

        command = Command(noop, name="ping", constraints=Constraints(cooldown=5000, guards=(guard,)))

        async def attempt():
            try:
                await self.evaluator.evaluate(command, Context("u1"))
            except ConstraintViolation as fault:
                return fault
            return None

        first = asyncio.ensure_future(attempt())
        second = asyncio.ensure_future(attempt())
        await asyncio.sleep(0)
        gate.set()
        results = await asyncio.gather(first, second)
        self.assertEqual(sum(result is None for result in results), 1)
        self.assertEqual(
            [result.kind for result in results if result is not None],
            [Violation.COOLDOWN],
        )


class TestCooldowns(TestCase):
    """Direct use of the cooldown table."""

    def testClaimAndRelease(self):
        table = Cooldowns()
        stamp = table.claim("ping", "u1", 1000, 10)
        self.assertEqual((stamp.previous, stamp.stamped, stamp.remaining), (None, 10, 0))
        table.release(stamp)
        self.assertIsNone(table.last("ping", "u1"))

    def testReleaseRestoresPrevious(self):
        table = Cooldowns()
        table.claim("ping", "u1", 1000, 0)
        stamp = table.claim("ping", "u1", 1000, 1500)
        table.release(stamp)
        self.assertEqual(table.last("ping", "u1"), 0)

    def testReleaseIgnoresReplacedRecord(self):
        table = Cooldowns()
        stale = table.claim("ping", "u1", 1000, 0)
        table.reset()
        table.claim("ping", "u1", 1000, 20)
        table.release(stale)
        self.assertEqual(table.last("ping", "u1"), 20)

    def testReset(self):
        table = Cooldowns()
        table.claim("ping", "u1", 1000, 0)
        table.claim("ping", "u2", 1000, 0)
        table.claim("pong", "u1", 1000, 0)
        table.reset("ping")
        self.assertEqual(len(table), 1)
        table.reset()
        self.assertEqual(len(table), 0)

    def testResetByUser(self):
        table = Cooldowns()
        table.claim("ping", "u1", 1000, 0)
        table.claim("pong", "u1", 1000, 0)
        table.claim("pong", "u2", 1000, 0)
        table.reset(Unset, "u1")
        self.assertEqual(len(table), 1)
        self.assertEqual(table.last("pong", "u2"), 0)

    def testSweepDropsExpired(self):
        table = Cooldowns()
        table.claim("ping", "u1", 1000, 0)
        table.claim("pong", "u1", 5000, 0)
        table.sweep(2000)
        self.assertIsNone(table.last("ping", "u1"))
        self.assertEqual(table.last("pong", "u1"), 0)

    def testLazySweep(self):
        table = Cooldowns(sweep_every=2)
        table.claim("ping", "u1", 10, 0)
        table.claim("ping", "u2", 10, 100)
        self.assertEqual(len(table), 1)

    def testThreadedClaimsAcceptOnlyOne(self):
        table = Cooldowns()
        barrier = threading.Barrier(16)
        stamps = []

        def worker():
            barrier.wait()
            stamps.append(table.claim("ping", "u1", 5000, 0))

        threads = [threading.Thread(target=worker) for _ in range(16)]
        for thread in threads:
            thread.start()
        for thread in threads:
            thread.join()
        self.assertEqual(sum(stamp.stamped is not None for stamp in stamps), 1)


if __name__ == "__main__":
    unittest.main()
