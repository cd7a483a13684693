"""Routing for structured interactions: slash commands, buttons, selects.

Each kind has its own handler table. A missing handler is ignored
silently because the id space may be shared with other integrations.

Failure policy differs on purpose: a failing slash command gets a
private ``command_error`` reply, a failing button or select handler is
only logged.
"""

from typing import Awaitable, Callable, Dict, List, Optional, Union

import structlog

from .dispatcher import SendReply, call_handler
from .exceptions import DuplicateNameError, HandlerExecutionError, HandlerExecutionErrorSilent
from .models import (
    DispatchOutcome,
    Interaction,
    InteractionKind,
    OutcomeKind,
    Rejection,
    RejectionKind,
    Reply,
)
from .responses import ResponseResolver, render

logger = structlog.get_logger("commandwire.interactions")

InteractionHandler = Callable[[Interaction], Union[None, Awaitable[None]]]
InteractionListener = Callable[[Interaction], Union[None, Awaitable[None]]]


class InteractionRouter:
    """Routes interactions to one of three disjoint handler tables.

    Args:
        resolver: Response resolver for slash-command error replies.
        send_reply: Coroutine ``(interaction, reply)`` answering an
            interaction.
    """

    def __init__(self, resolver: ResponseResolver, send_reply: SendReply):
        self.resolver = resolver
        self.send_reply = send_reply
        self._tables: Dict[InteractionKind, Dict[str, InteractionHandler]] = {
            kind: {} for kind in InteractionKind
        }
        self._listeners: List[InteractionListener] = []

    def register_command(self, name: str, handler: InteractionHandler) -> None:
        """Register a slash command handler by command name."""
        self._register(InteractionKind.COMMAND, name, handler)

    def register_button(self, custom_id: str, handler: InteractionHandler) -> None:
        self._register(InteractionKind.BUTTON, custom_id, handler)

    def register_select(self, custom_id: str, handler: InteractionHandler) -> None:
        self._register(InteractionKind.SELECT, custom_id, handler)

    def add_listener(self, listener: InteractionListener) -> None:
        """Register a hook that sees every interaction before routing."""
        self._listeners.append(listener)

    def get(self, kind: InteractionKind, key: str) -> Optional[InteractionHandler]:
        return self._tables[kind].get(key)

    def keys(self, kind: InteractionKind) -> frozenset:
        return frozenset(self._tables[kind])

    def _register(self, kind: InteractionKind, key: str, handler: InteractionHandler) -> None:
        table = self._tables[kind]
        if key in table:
            raise DuplicateNameError(
                f"{kind.value} handler already registered: {key}",
                name=key,
                module="interactions",
                kind=kind.value,
            )
        table[key] = handler
        logger.debug("interaction_registered", kind=kind.value, key=key)

    async def route(self, interaction: Interaction) -> DispatchOutcome:
        """Run the handler registered for ``interaction``, if any."""
        for listener in self._listeners:
            try:
                await call_handler(listener, interaction)
            except Exception as e:
                logger.error("interaction_listener_failed", error=str(e), error_type=type(e).__name__)

        handler = self._tables[interaction.kind].get(interaction.key)
        if handler is None:
            logger.debug("interaction_unhandled", kind=interaction.kind.value, key=interaction.key)
            return DispatchOutcome(kind=OutcomeKind.IGNORED, command=interaction.key)

        try:
            await call_handler(handler, interaction)
        except Exception as e:
            return await self._fail(interaction, e)

        logger.info(
            "interaction_executed",
            kind=interaction.kind.value,
            key=interaction.key,
            user=interaction.user_id,
        )
        return DispatchOutcome(kind=OutcomeKind.EXECUTED, command=interaction.key)

    async def _fail(self, interaction: Interaction, exc: Exception) -> DispatchOutcome:
        if interaction.kind is not InteractionKind.COMMAND:
            error = HandlerExecutionErrorSilent(str(exc), command=interaction.key, original=exc)
            logger.error(
                "interaction_handler_failed",
                kind=interaction.kind.value,
                key=interaction.key,
                error=str(exc),
                error_type=type(exc).__name__,
                exc_info=exc,
            )
            return DispatchOutcome(kind=OutcomeKind.FAILED, command=interaction.key, error=error)

        error = HandlerExecutionError(
            str(exc), command=interaction.key, original=exc, module="interactions"
        )
        logger.error(
            "slash_command_failed",
            key=interaction.key,
            user=interaction.user_id,
            error=str(exc),
            error_type=type(exc).__name__,
            exc_info=exc,
        )
        rejection = Rejection(kind=RejectionKind.HANDLER_ERROR, command=interaction.key, error=str(exc))
        reply: Optional[Reply] = None
        try:
            reply = render(rejection, self.resolver, author=interaction.user_name, private=True)
            await self.send_reply(interaction, reply)
        except Exception as e:
            logger.error("interaction_reply_failed", key=interaction.key, error=str(e))
        return DispatchOutcome(
            kind=OutcomeKind.FAILED,
            command=interaction.key,
            rejection=rejection,
            error=error,
            reply=reply,
        )
