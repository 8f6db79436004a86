"""
Invocation context handed to constraint checks, custom resolvers and handlers.

The chat-platform collaborator builds one Context per inbound message. The
pipeline only reads it; nothing here is process-wide or mutable, so handlers
receive everything (including the current guild/channel selection) explicitly.

Fields
- user: identifier of the invoking user.
- auth: the user's authorization level (from the collaborator's auth store).
- surface: Surface.GUILD for server channels, Surface.DIRECT for private messages.
- permissions: permission tokens the issuer holds in this surface.
- self_permissions: permission tokens the bot holds in this surface.
- groups: group memberships (role identifiers, RestrictGroup members).
- lookup: opaque handle custom argument resolvers use to find domain objects.
- extra: free mapping for collaborator data (message, channel, guild ...).
"""
import enum
from collections import namedtuple
from types import MappingProxyType


class Surface(enum.Enum):
    """
    kind of place a message arrived from.
    """
    GUILD = "guild"
    DIRECT = "direct"


_Context = namedtuple("Context", (
    "user",
    "auth",
    "surface",
    "permissions",
    "self_permissions",
    "groups",
    "lookup",
    "extra",
), defaults=(0, Surface.GUILD, frozenset(), frozenset(), frozenset(), None, MappingProxyType({})))


class Context(_Context):
    __slots__ = ()

    def __new__(
            cls,
            user,
            auth=0,
            surface=Surface.GUILD,
            permissions=frozenset(),
            self_permissions=frozenset(),
            groups=frozenset(),
            lookup=None,
            extra=MappingProxyType({}),
    ):
        if not isinstance(surface, Surface):
            raise TypeError("context 'surface' must be a Surface")
        if not isinstance(auth, int) or isinstance(auth, bool):
            raise TypeError("context 'auth' must be an integer")
        return super().__new__(
            cls,
            user,
            auth,
            surface,
            frozenset(permissions),
            frozenset(self_permissions),
            frozenset(groups),
            lookup,
            MappingProxyType(dict(extra)),
        )

    @property
    def identities(self):
        """
        the user identifier together with every group membership.
        """
        return self.groups | {self.user}


__all__ = (
    "Surface",
    "Context",
)
