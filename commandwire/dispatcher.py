"""Text-message dispatch: parse, authorize, then execute or reject.

Per inbound message exactly one terminal action happens: the handler
runs once, one rejection reply is sent, or the message is ignored
(bot/webhook author, no matching prefix, empty command token).

Handler failures are contained: they are logged and rendered as a
``command_error`` reply, never propagated to the platform client.
"""

import inspect
from enum import Enum
from typing import Any, Awaitable, Callable, Iterable, List, Optional, Sequence, Tuple, Union

import structlog

from .authorization import AuthorizationPipeline
from .cooldowns import CooldownTracker
from .exceptions import HandlerExecutionError
from .models import (
    Authorized,
    DispatchOutcome,
    InboundMessage,
    OutcomeKind,
    Rejection,
    RejectionKind,
    Reply,
)
from .registry import CommandRegistry
from .responses import ResponseResolver, render

logger = structlog.get_logger("commandwire.dispatch")

DEFAULT_PREFIXES = ("!",)

SendReply = Callable[[Any, Reply], Awaitable[None]]
MessageListener = Callable[[InboundMessage], Union[None, Awaitable[None]]]


class DispatchState(str, Enum):
    """Lifecycle of one inbound message."""
    RECEIVED = "received"
    PARSED = "parsed"
    AUTHORIZED = "authorized"
    EXECUTING = "executing"
    RESPOND_REJECTION = "respond_rejection"
    COMPLETED = "completed"


def parse_command(content: str, prefixes: Sequence[str]) -> Optional[Tuple[str, str, List[str]]]:
    """Split ``content`` into (prefix, command token, args).

    The first prefix in declaration order that starts ``content`` wins.
    Returns None when no prefix matches or the command token is empty.
    """
    for prefix in prefixes:
        if content.startswith(prefix):
            parts = content[len(prefix):].split()
            if not parts:
                return None
            return prefix, parts[0].casefold(), parts[1:]
    return None


async def call_handler(handler: Callable[..., Any], *args: Any) -> None:
    """Invoke a sync or async handler and wait for it to finish."""
    result = handler(*args)
    if inspect.isawaitable(result):
        await result


class DispatchEngine:
    """Runs inbound text messages through the authorization pipeline.

    Owns the bot-wide block-list. Like cooldowns it is shared across
    in-flight events with last-write-wins semantics.

    Args:
        registry: Command lookup table.
        cooldowns: Shared cooldown tracker.
        resolver: Response template resolver.
        send_reply: Coroutine ``(message, reply)`` delivering a reply in
            the message's channel.
        prefixes: Command prefixes, matched in order.
        owners: User ids allowed to run owners-only commands.
        blocked_users: Initial bot-wide block-list.
    """

    def __init__(
        self,
        registry: CommandRegistry,
        cooldowns: CooldownTracker,
        resolver: ResponseResolver,
        send_reply: SendReply,
        *,
        prefixes: Sequence[str] = DEFAULT_PREFIXES,
        owners: Iterable[str] = (),
        blocked_users: Iterable[str] = (),
    ):
        self.registry = registry
        self.resolver = resolver
        self.send_reply = send_reply
        self.prefixes: Tuple[str, ...] = tuple(prefixes)
        self.blocked_users = {str(u) for u in blocked_users}
        self.pipeline = AuthorizationPipeline(
            registry,
            cooldowns,
            owners=owners,
            blocked_users=self.blocked_users,
        )
        self._listeners: List[MessageListener] = []

    # --- Runtime block-list ---

    def block_user(self, user_id: str) -> None:
        self.blocked_users.add(str(user_id))
        logger.info("user_blocked", user=user_id)

    def unblock_user(self, user_id: str) -> None:
        self.blocked_users.discard(str(user_id))
        logger.info("user_unblocked", user=user_id)

    def add_listener(self, listener: MessageListener) -> None:
        """Register a hook that sees every message before it is parsed."""
        self._listeners.append(listener)

    # --- Dispatch ---

    async def dispatch(self, message: InboundMessage) -> DispatchOutcome:
        """Handle one inbound message. Never raises for handler failures."""
        self._trace(DispatchState.RECEIVED, message)
        await self._notify_listeners(message)

        if message.author_is_bot or message.is_webhook:
            return DispatchOutcome(kind=OutcomeKind.IGNORED)

        parsed = parse_command(message.content, self.prefixes)
        if parsed is None:
            return DispatchOutcome(kind=OutcomeKind.IGNORED)
        prefix, token, args = parsed
        self._trace(DispatchState.PARSED, message, command=token, arg_count=len(args))

        try:
            result = self.pipeline.authorize(token, args, message, prefix)
        except Exception as e:
            return await self._fail(message, prefix, token, args, e)

        if isinstance(result, Rejection):
            self._trace(DispatchState.RESPOND_REJECTION, message, command=token, reason=result.kind.value)
            reply = await self._respond(message, result, prefix)
            self._trace(DispatchState.COMPLETED, message, command=token)
            return DispatchOutcome(
                kind=OutcomeKind.REJECTED,
                command=token,
                args=args,
                rejection=result,
                reply=reply,
            )

        return await self._execute(message, result, prefix)

    async def _execute(self, message: InboundMessage, authorized: Authorized, prefix: str) -> DispatchOutcome:
        name = authorized.descriptor.name
        self._trace(DispatchState.AUTHORIZED, message, command=name)
        self._trace(DispatchState.EXECUTING, message, command=name)
        try:
            await call_handler(authorized.descriptor.handler, message, authorized.args)
        except Exception as e:
            return await self._fail(message, prefix, authorized.invoked or name, authorized.args, e)

        logger.info("command_executed", command=name, user=message.author_id)
        self._trace(DispatchState.COMPLETED, message, command=name)
        return DispatchOutcome(kind=OutcomeKind.EXECUTED, command=name, args=authorized.args)

    async def _fail(
        self,
        message: InboundMessage,
        prefix: str,
        command: str,
        args: List[str],
        exc: Exception,
    ) -> DispatchOutcome:
        error = HandlerExecutionError(str(exc), command=command, original=exc)
        logger.error(
            "handler_failed",
            command=command,
            user=message.author_id,
            error=str(exc),
            error_type=type(exc).__name__,
            exc_info=exc,
        )
        rejection = Rejection(kind=RejectionKind.HANDLER_ERROR, command=command, error=str(exc))
        reply = await self._respond(message, rejection, prefix)
        self._trace(DispatchState.COMPLETED, message, command=command)
        return DispatchOutcome(
            kind=OutcomeKind.FAILED,
            command=command,
            args=args,
            rejection=rejection,
            error=error,
            reply=reply,
        )

    async def _respond(self, message: InboundMessage, rejection: Rejection, prefix: str) -> Optional[Reply]:
        """Render and send one rejection reply; failures are logged only."""
        try:
            reply = render(rejection, self.resolver, prefix=prefix, author=message.author_name)
        except Exception as e:
            logger.error("reply_render_failed", command=rejection.command, error=str(e))
            return None
        try:
            await self.send_reply(message, reply)
        except Exception as e:
            logger.error(
                "reply_send_failed",
                command=rejection.command,
                error=str(e),
                error_type=type(e).__name__,
            )
        return reply

    async def _notify_listeners(self, message: InboundMessage) -> None:
        for listener in self._listeners:
            try:
                await call_handler(listener, message)
            except Exception as e:
                logger.error("message_listener_failed", error=str(e), error_type=type(e).__name__)

    def _trace(self, state: DispatchState, message: InboundMessage, **kw: Any) -> None:
        logger.debug("dispatch_state", state=state.value, user=message.author_id, **kw)
