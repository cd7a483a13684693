"""Fixed-order authorization guards for text commands.

Guard order defines precedence and must not change:

    1. unknown command          -> UNKNOWN
    2. block-list               -> BLOCKED
    3. active cooldown          -> COOLDOWN
    4. guild-only / dms-only    -> WRONG_CONTEXT
    5. owners-only              -> OWNERS_ONLY
    6. invoker permissions      -> MISSING_USER_PERMISSION
    7. bot permissions          -> MISSING_BOT_PERMISSION
    8. argument arity           -> USAGE_MISMATCH

The first failing guard short-circuits. When every guard passes the
cooldown for (command, invoker) is recorded.
"""

from typing import Callable, Iterable, List, Optional, Set, Tuple, Union

import structlog

from .cooldowns import CooldownTracker
from .models import (
    ADMINISTRATOR,
    Authorized,
    ChannelKind,
    CommandDescriptor,
    InboundMessage,
    Rejection,
    RejectionKind,
)
from .registry import CommandRegistry
from .responses import pluralize

logger = structlog.get_logger("commandwire.dispatch")

Guard = Callable[
    [CommandDescriptor, str, List[str], InboundMessage, str, float],
    Optional[Rejection],
]


def has_permissions(snapshot: Optional[Iterable[str]], required: Tuple[str, ...]) -> bool:
    """Whether a permission snapshot satisfies ``required``.

    A missing snapshot never does; ADMINISTRATOR implies every permission.
    """
    if not required:
        return True
    if snapshot is None:
        return False
    granted = {p.upper() for p in snapshot}
    if ADMINISTRATOR in granted:
        return True
    return all(p in granted for p in required)


def usage_hint(descriptor: CommandDescriptor, prefix: str, invoked: Optional[str] = None) -> str:
    """Usage string shown on arity mismatch, e.g. ``!ban <2 required arguments>``.

    ``invoked`` replaces the command name so an alias echoes back as typed.
    """
    if descriptor.usage:
        suffix = " " + descriptor.usage
    elif descriptor.args:
        suffix = f" <{descriptor.args} required argument{pluralize(descriptor.args)}>"
    else:
        suffix = ""
    return f"{prefix}{invoked or descriptor.name}{suffix}"


class AuthorizationPipeline:
    """Runs the guard chain for one parsed command invocation.

    Args:
        registry: Command lookup table.
        cooldowns: Shared cooldown tracker.
        owners: User ids allowed to run owners-only commands.
        blocked_users: Bot-wide block-list. Held by reference so runtime
            updates by the owner of the set are seen immediately.
    """

    def __init__(
        self,
        registry: CommandRegistry,
        cooldowns: CooldownTracker,
        owners: Iterable[str] = (),
        blocked_users: Optional[Set[str]] = None,
    ):
        self.registry = registry
        self.cooldowns = cooldowns
        self.owners = frozenset(str(o) for o in owners)
        self.blocked_users: Set[str] = blocked_users if blocked_users is not None else set()
        self.guards: Tuple[Guard, ...] = (
            self._check_blocked,
            self._check_cooldown,
            self._check_context,
            self._check_owner,
            self._check_user_permissions,
            self._check_bot_permissions,
            self._check_arity,
        )

    def authorize(
        self,
        token: str,
        args: List[str],
        message: InboundMessage,
        prefix: str = "",
        now: Optional[float] = None,
    ) -> Union[Authorized, Rejection]:
        """Authorize ``token`` invoked with ``args`` by ``message``'s author."""
        if now is None:
            now = self.cooldowns.clock()

        invoked = token.casefold()
        descriptor = self.registry.resolve(invoked)
        if descriptor is None:
            return Rejection(kind=RejectionKind.UNKNOWN, command=invoked)

        for guard in self.guards:
            rejection = guard(descriptor, invoked, args, message, prefix, now)
            if rejection is not None:
                logger.debug(
                    "command_rejected",
                    command=descriptor.name,
                    user=message.author_id,
                    reason=rejection.kind.value,
                )
                return rejection

        self.cooldowns.record(descriptor.name, message.author_id, now, descriptor.cooldown)
        return Authorized(descriptor=descriptor, args=list(args), invoked=invoked)

    def is_owner(self, user_id: str) -> bool:
        return user_id in self.owners

    # --- Guards ---

    def _check_blocked(self, descriptor, invoked, args, message, prefix, now):
        user = message.author_id
        if user in descriptor.unblocked_users:
            return None
        if user in self.blocked_users or user in descriptor.blocked_users:
            return Rejection(kind=RejectionKind.BLOCKED, command=invoked, descriptor=descriptor)
        return None

    def _check_cooldown(self, descriptor, invoked, args, message, prefix, now):
        remaining = self.cooldowns.remaining(descriptor.name, message.author_id, now)
        if remaining is None:
            return None
        return Rejection(
            kind=RejectionKind.COOLDOWN,
            command=invoked,
            descriptor=descriptor,
            remaining=remaining,
        )

    def _check_context(self, descriptor, invoked, args, message, prefix, now):
        if descriptor.guild_only and message.channel_kind is not ChannelKind.GUILD:
            required = ChannelKind.GUILD
        elif descriptor.dms_only and message.channel_kind is not ChannelKind.DIRECT:
            required = ChannelKind.DIRECT
        else:
            return None
        return Rejection(
            kind=RejectionKind.WRONG_CONTEXT,
            command=invoked,
            descriptor=descriptor,
            required_context=required,
        )

    def _check_owner(self, descriptor, invoked, args, message, prefix, now):
        if not descriptor.owners_only or self.is_owner(message.author_id):
            return None
        return Rejection(
            kind=RejectionKind.OWNERS_ONLY,
            command=invoked,
            descriptor=descriptor,
            owner_count=len(self.owners),
        )

    def _check_user_permissions(self, descriptor, invoked, args, message, prefix, now):
        if has_permissions(message.user_permissions, descriptor.permissions):
            return None
        return Rejection(
            kind=RejectionKind.MISSING_USER_PERMISSION,
            command=invoked,
            descriptor=descriptor,
            permissions=descriptor.permissions,
        )

    def _check_bot_permissions(self, descriptor, invoked, args, message, prefix, now):
        if has_permissions(message.bot_permissions, descriptor.bot_permissions):
            return None
        return Rejection(
            kind=RejectionKind.MISSING_BOT_PERMISSION,
            command=invoked,
            descriptor=descriptor,
            permissions=descriptor.bot_permissions,
        )

    def _check_arity(self, descriptor, invoked, args, message, prefix, now):
        # 0 means unchecked, not "exactly zero arguments"
        if descriptor.args == 0 or descriptor.args == len(args):
            return None
        return Rejection(
            kind=RejectionKind.USAGE_MISMATCH,
            command=invoked,
            descriptor=descriptor,
            usage=usage_hint(descriptor, prefix, invoked),
        )
