"""Domain models for the command-dispatch pipeline.

Load-time configuration:
    CommandSpec: pydantic model enumerating every descriptor field
        and its default. Accepts snake_case and camelCase keys.

Runtime types:
    CommandDescriptor, InboundMessage, Interaction, Reply

Outcomes:
    RejectionKind, Rejection, Authorized, DispatchOutcome

Enums:
    ChannelKind, InteractionKind, OutcomeKind
"""

from dataclasses import dataclass, field
from enum import Enum
from typing import Any, Awaitable, Callable, FrozenSet, List, Optional, Set, Tuple, Union

from pydantic import BaseModel, ConfigDict, Field, field_validator

# Handler signature: (message_or_interaction, args) -> None | Awaitable[None]
CommandHandler = Callable[..., Union[None, Awaitable[None]]]

ADMINISTRATOR = "ADMINISTRATOR"


class ChannelKind(str, Enum):
    """Where a text message was sent."""
    GUILD = "guild"
    DIRECT = "direct"


class InteractionKind(str, Enum):
    """Discriminant of a structured interaction."""
    COMMAND = "command"
    BUTTON = "button"
    SELECT = "select"


def normalize_permissions(value: Union[str, List[str], Tuple[str, ...], None]) -> Tuple[str, ...]:
    """Upper-case permission names, keep declaration order, drop duplicates."""
    if value is None:
        return ()
    if isinstance(value, str):
        value = [value]
    seen: List[str] = []
    for name in value:
        upper = str(name).strip().upper()
        if upper and upper not in seen:
            seen.append(upper)
    return tuple(seen)


class CommandSpec(BaseModel):
    """Load-time configuration for a single text command."""

    model_config = ConfigDict(populate_by_name=True, extra="ignore")

    name: str = Field(..., min_length=1, description="Unique command name")
    aliases: List[str] = Field(default_factory=list)
    args: int = Field(default=0, ge=0, description="Required argument count, 0 = unchecked")
    usage: Optional[str] = Field(default=None, description="Usage hint shown on misuse")
    cooldown: int = Field(default=1, ge=0, description="Per-user cooldown in seconds, 0 = default")
    guild_only: bool = Field(default=False, alias="guildOnly")
    dms_only: bool = Field(default=False, alias="dmsOnly")
    owners_only: bool = Field(default=False, alias="ownersOnly")
    permissions: Optional[Union[str, List[str]]] = None
    bot_permissions: Optional[Union[str, List[str]]] = Field(default=None, alias="botPermissions")
    blocked_users: List[str] = Field(default_factory=list, alias="blockedUsers")
    unblocked_users: List[str] = Field(default_factory=list, alias="unblockedUsers")
    description: str = ""

    @field_validator("blocked_users", "unblocked_users", mode="before")
    @classmethod
    def _ids_as_strings(cls, value: Any) -> Any:
        if isinstance(value, (list, tuple, set)):
            return [str(v) for v in value]
        return value

    def to_descriptor(self, handler: CommandHandler) -> "CommandDescriptor":
        """Build the runtime descriptor bound to ``handler``."""
        return CommandDescriptor(
            name=self.name,
            handler=handler,
            aliases=frozenset(self.aliases),
            args=self.args,
            usage=self.usage,
            cooldown=self.cooldown,
            guild_only=self.guild_only,
            dms_only=self.dms_only,
            owners_only=self.owners_only,
            permissions=normalize_permissions(self.permissions),
            bot_permissions=normalize_permissions(self.bot_permissions),
            blocked_users=set(self.blocked_users),
            unblocked_users=set(self.unblocked_users),
            description=self.description,
        )


@dataclass
class CommandDescriptor:
    """A registered text command.

    Only ``blocked_users`` and ``unblocked_users`` may change after
    registration; an unblocked user overrides any block-list.
    """
    name: str
    handler: CommandHandler
    aliases: FrozenSet[str] = frozenset()
    args: int = 0
    usage: Optional[str] = None
    cooldown: int = 1
    guild_only: bool = False
    dms_only: bool = False
    owners_only: bool = False
    permissions: Tuple[str, ...] = ()
    bot_permissions: Tuple[str, ...] = ()
    blocked_users: Set[str] = field(default_factory=set)
    unblocked_users: Set[str] = field(default_factory=set)
    description: str = ""

    def __post_init__(self) -> None:
        self.name = self.name.casefold()
        self.aliases = frozenset(a.casefold() for a in self.aliases)
        self.permissions = normalize_permissions(self.permissions)
        self.bot_permissions = normalize_permissions(self.bot_permissions)
        # 0 (or unset) falls back to the default window rather than disabling it
        self.cooldown = self.cooldown or 1


@dataclass
class InboundMessage:
    """A text message as delivered by the platform client.

    Permission snapshots are None when the platform could not compute
    them (e.g. direct messages); a None snapshot never satisfies a
    permission requirement.
    """
    content: str
    author_id: str
    author_name: str = ""
    channel_kind: ChannelKind = ChannelKind.GUILD
    user_permissions: Optional[FrozenSet[str]] = None
    bot_permissions: Optional[FrozenSet[str]] = None
    author_is_bot: bool = False
    is_webhook: bool = False
    raw: Any = None

    def __post_init__(self) -> None:
        # Platform clients may hand over integer snowflakes
        self.author_id = str(self.author_id)


@dataclass
class Interaction:
    """A structured (non-text) inbound event."""
    kind: InteractionKind
    key: str
    user_id: str
    user_name: str = ""
    raw: Any = None

    def __post_init__(self) -> None:
        self.user_id = str(self.user_id)


@dataclass
class Reply:
    """A rendered response ready for the platform's send primitive."""
    text: str
    title: Optional[str] = None
    private: bool = False


class RejectionKind(str, Enum):
    """Outcome of a failed guard, or of a failed handler."""
    UNKNOWN = "unknown"
    BLOCKED = "blocked"
    COOLDOWN = "cooldown"
    WRONG_CONTEXT = "wrong_context"
    OWNERS_ONLY = "owners_only"
    MISSING_USER_PERMISSION = "missing_user_permission"
    MISSING_BOT_PERMISSION = "missing_bot_permission"
    USAGE_MISMATCH = "usage_mismatch"
    HANDLER_ERROR = "handler_error"


@dataclass
class Rejection:
    """A rejection and the details its response template needs."""
    kind: RejectionKind
    command: str
    descriptor: Optional[CommandDescriptor] = None
    remaining: Optional[float] = None
    required_context: Optional[ChannelKind] = None
    permissions: Tuple[str, ...] = ()
    usage: Optional[str] = None
    error: Optional[str] = None
    owner_count: int = 0


@dataclass
class Authorized:
    """All guards passed; the handler may run with ``args``.

    ``invoked`` is the token as typed, which may be an alias.
    """
    descriptor: CommandDescriptor
    args: List[str]
    invoked: str = ""


class OutcomeKind(str, Enum):
    """Terminal action taken for one inbound event."""
    IGNORED = "ignored"
    REJECTED = "rejected"
    EXECUTED = "executed"
    FAILED = "failed"


@dataclass
class DispatchOutcome:
    """Exactly one terminal action per inbound event."""
    kind: OutcomeKind
    command: Optional[str] = None
    args: List[str] = field(default_factory=list)
    rejection: Optional[Rejection] = None
    error: Optional[Exception] = None
    reply: Optional[Reply] = None
