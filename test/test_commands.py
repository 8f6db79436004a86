"""
Command definition tests.

Scope
- Construction defaults (name from handler, description from docstring).
- Validation of names, aliases, arguments and the single-argument fold.
- Subcommand trees: attaching, sibling conflicts, qualified names and usage.
- The closed Command/Subcommand variant.

Conventions
- Test method names follow CamelCase per project convention.
"""
import unittest
from unittest import IsolatedAsyncioTestCase, TestCase

from commodore import (
    Argument,
    Command,
    Constraints,
    Kind,
    Reason,
    RegistrationError,
    Subcommand,
    command,
    subcommand,
)
from commodore.commands import Definition


def ping(ctx, args):
    """Check that the bot is alive.

    Longer explanation that never reaches the summary.
    """
    return "pong"


class TestDefinition(TestCase):
    """Construction rules shared by both variants."""

    def testNameAndDescrFromHandler(self):
        definition = Command(ping)
        self.assertEqual(definition.name, "ping")
        self.assertEqual(definition.descr, "Check that the bot is alive.")

    def testExplicitMetadataWins(self):
        definition = Command(ping, name="pong", descr="Other")
        self.assertEqual((definition.name, definition.descr), ("pong", "Other"))

    def testDefaultConstraints(self):
        self.assertIsInstance(Command(ping).constraints, Constraints)

    def testHandlerlessNeedsName(self):
        with self.assertRaises(TypeError):
            Command(None)

    def testNameMustBeOneWord(self):
        with self.assertRaises(ValueError):
            Command(ping, name="two words")

    def testAliasRepeatingNameRejected(self):
        with self.assertRaises(RegistrationError) as context:
            Command(ping, aliases=("PING",))
        self.assertIs(context.exception.reason, Reason.DUPLICATE_ALIAS)

    def testAliasesMustNotBeAString(self):
        with self.assertRaises(TypeError):
            Command(ping, aliases="p")

    def testDuplicateShortFlagsRejected(self):
        with self.assertRaises(RegistrationError):
            Command(ping, arguments=(Argument("a", flag="x"), Argument("b", flag="x")))

    def testCompactArguments(self):
        definition = Command(ping, arguments={"role": "!string", "member": "!:member"})
        self.assertEqual([argument.name for argument in definition.arguments], ["role", "member"])

    def testSingleNeedsTrailingString(self):
        with self.assertRaises(ValueError):
            Command(ping, arguments=(Argument("n", type=Kind.INTEGER),), single=True)
        with self.assertRaises(ValueError):
            Command(ping, single=True)
        self.assertTrue(Command(ping, arguments=(Argument("text"),), single=True).single)

    def testMinimumAndMaximum(self):
        definition = Command(ping, arguments=(
            Argument("a", required=True),
            Argument("b", required=True),
            Argument("c"),
        ))
        self.assertEqual((definition.minimum, definition.maximum), (2, 3))

    def testDefinitionIsAbstract(self):
        with self.assertRaises(TypeError):
            Definition(ping)

    def testVariantIsClosed(self):
        with self.assertRaises(TypeError):
            class Custom(Command):
                pass

    def testCallableForwardsToHandler(self):
        self.assertEqual(Command(ping)(None, None), "pong")


class TestFactories(TestCase):
    """command() and subcommand() in their direct and decorator forms."""

    def testBareDecorator(self):
        @command
        def hello(ctx, args):
            return "hi"

        self.assertIsInstance(hello, Command)
        self.assertEqual(hello.name, "hello")

    def testDecoratorWithMetadata(self):
        @command(aliases=("p",), constraints=Constraints(cooldown=5000))
        def pinger(ctx, args):
            return "pong"

        self.assertEqual(pinger.aliases, ("p",))
        self.assertEqual(pinger.constraints.cooldown, 5000)

    def testGroupFactory(self):
        role = command(None, name="role", descr="Manage member roles")
        self.assertIsNone(role.handler)

    def testDetachedSubcommand(self):
        @subcommand(name="add")
        def add(ctx, args):
            return "added"

        self.assertIsInstance(add, Subcommand)
        role = command(None, name="role", subcommands=(add,))
        self.assertIs(role.child("ADD"), add)
        self.assertIs(add.parent, role)

    def testDecoratorRejectsNonCallable(self):
        with self.assertRaises(TypeError):
            command(aliases=("x",))("not callable")


class TestTrees(TestCase):
    """Subcommand trees."""

    def setUp(self):
        self.role = command(None, name="role", descr="Manage member roles")

        @self.role.subcommand(aliases=("give",), arguments=(
            Argument("role", required=True),
            Argument("member", type="member", required=True),
            Argument("silent", type=Kind.BOOLEAN, flag="s"),
        ))
        def add(ctx, args):
            return "added"

        self.add = add

    def testQualifiedName(self):
        self.assertEqual(self.add.qualname, "role add")
        self.assertEqual(self.add.path, (self.role, self.add))
        self.assertIs(self.add.root, self.role)

    def testChildLookupByAlias(self):
        self.assertIs(self.role.child("give"), self.add)
        self.assertIsNone(self.role.child("remove"))

    def testUsage(self):
        self.assertEqual(self.add.usage, "role add <role> <member> [--silent|-s]")
        self.assertEqual(self.role.usage, "role <add>")

    def testSiblingConflict(self):
        with self.assertRaises(RegistrationError) as context:
            self.role.subcommand(lambda ctx, args: None, name="Give")
        self.assertIs(context.exception.reason, Reason.DUPLICATE_NAME)

    def testOnlySubcommandsAttach(self):
        with self.assertRaises(TypeError):
            self.role.attach(Command(ping))

    def testAttachOnce(self):
        other = command(None, name="rank")
        with self.assertRaises(TypeError):
            other.attach(self.add)

    def testWalk(self):
        self.assertEqual(list(self.role.walk()), [self.role, self.add])

    def testChildrenExposedAsTuple(self):
        self.assertEqual(self.role.children, (self.add,))


class TestAvailability(IsolatedAsyncioTestCase):
    """The enabled predicate."""

    async def testDefaultEnabled(self):
        self.assertTrue(await Command(ping).available())

    async def testBooleanShortcut(self):
        self.assertFalse(await Command(ping, enabled=False).available())

    async def testAsyncPredicate(self):
        async def enabled():
            return False

        self.assertFalse(await Command(ping, enabled=enabled).available())


if __name__ == "__main__":
    unittest.main()
