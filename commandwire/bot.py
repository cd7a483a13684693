"""Composition root for the command-dispatch core.

Builds the registry, cooldown tracker, response resolver, dispatch
engine and interaction router from a Config, and exposes the
load-time registration contract plus the two entry points a platform
client calls for each inbound event.

Key classes:
    CommandBot: Owns every core component for one bot instance.
"""

import random
from typing import Any, Callable, Dict, Mapping, Optional, Union

import structlog

from .config import Config, get_config
from .cooldowns import CooldownTracker
from .dispatcher import DispatchEngine, SendReply
from .exceptions import ConfigurationError
from .interactions import InteractionHandler, InteractionRouter
from .models import (
    CommandDescriptor,
    CommandHandler,
    CommandSpec,
    DispatchOutcome,
    InboundMessage,
    Interaction,
    InteractionKind,
)
from .registry import CommandRegistry
from .responses import ResponseResolver

logger = structlog.get_logger("commandwire.bot")


class CommandBot:
    """Text command and interaction dispatch for one bot.

    Registration happens before the platform client starts delivering
    events; afterwards only block-lists change.

    Args:
        send_reply: Coroutine ``(message, reply)`` posting a reply in the
            channel of a text message.
        send_interaction_reply: Coroutine ``(interaction, reply)``
            answering an interaction. Defaults to ``send_reply``.
        config: Settings source. Defaults to the global Config.
        rng: Random source for response template selection.
        clock: Monotonic clock for cooldowns.
    """

    def __init__(
        self,
        send_reply: SendReply,
        send_interaction_reply: Optional[SendReply] = None,
        config: Optional[Config] = None,
        rng: Optional[random.Random] = None,
        clock: Optional[Callable[[], float]] = None,
    ):
        self.config = config or get_config()
        self.config.validate()
        self.registry = CommandRegistry()
        self.cooldowns = CooldownTracker(clock) if clock else CooldownTracker()
        self.resolver = ResponseResolver(self.config.responses, rng=rng)
        self.engine = DispatchEngine(
            self.registry,
            self.cooldowns,
            self.resolver,
            send_reply,
            prefixes=self.config.prefixes,
            owners=self.config.owners,
            blocked_users=self.config.blocked_users,
        )
        self.interactions = InteractionRouter(
            self.resolver, send_interaction_reply or send_reply
        )
        logger.info(
            "bot_initialized",
            prefixes=list(self.engine.prefixes),
            owners=len(self.config.owners),
        )

    # --- Load-time registration ---

    def register_command(
        self,
        spec: Union[CommandSpec, CommandDescriptor, Mapping[str, Any]],
        handler: Optional[CommandHandler] = None,
    ) -> CommandDescriptor:
        """Register a text command.

        Args:
            spec: A ready descriptor, a CommandSpec, or a raw mapping in
                the load-time configuration format.
            handler: Required unless ``spec`` is already a descriptor.

        Raises:
            DuplicateNameError: On name or alias collision.
            ConfigurationError: If no handler is supplied.
        """
        if isinstance(spec, CommandDescriptor):
            return self.registry.register(spec)
        if handler is None:
            raise ConfigurationError("Command registered without a handler", setting_name="commands")
        if not isinstance(spec, CommandSpec):
            spec = CommandSpec.model_validate(dict(spec))
        return self.registry.register(spec.to_descriptor(handler))

    def command(self, name: str, **options: Any) -> Callable[[CommandHandler], CommandHandler]:
        """Decorator form of :meth:`register_command`."""
        def decorator(func: CommandHandler) -> CommandHandler:
            self.register_command(CommandSpec.model_validate({"name": name, **options}), func)
            return func
        return decorator

    def load_commands(self, handlers: Mapping[str, CommandHandler]) -> int:
        """Bind the ``commands:`` specs from settings to ``handlers`` by name.

        Returns:
            Number of commands registered.

        Raises:
            ConfigurationError: If a configured command has no handler.
        """
        count = 0
        for spec in self.config.commands:
            handler = handlers.get(spec.name)
            if handler is None:
                raise ConfigurationError(
                    f"No handler for configured command: {spec.name}",
                    setting_name="commands",
                )
            self.register_command(spec, handler)
            count += 1
        logger.info("commands_loaded", count=count)
        return count

    def register_slash_command(self, name: str, handler: InteractionHandler) -> None:
        self.interactions.register_command(name, handler)

    def register_button(self, custom_id: str, handler: InteractionHandler) -> None:
        self.interactions.register_button(custom_id, handler)

    def register_select(self, custom_id: str, handler: InteractionHandler) -> None:
        self.interactions.register_select(custom_id, handler)

    # --- Runtime ---

    def block_user(self, user_id: str) -> None:
        self.engine.block_user(user_id)

    def unblock_user(self, user_id: str) -> None:
        self.engine.unblock_user(user_id)

    async def handle_message(self, message: InboundMessage) -> DispatchOutcome:
        """Entry point for every inbound text message."""
        return await self.engine.dispatch(message)

    async def handle_interaction(self, interaction: Interaction) -> DispatchOutcome:
        """Entry point for every inbound interaction."""
        return await self.interactions.route(interaction)

    def summary(self) -> Dict[str, int]:
        """Counts of registered commands and interaction handlers."""
        return {
            "commands": len(self.registry),
            **{
                f"{kind.value}_handlers": len(self.interactions.keys(kind))
                for kind in InteractionKind
            },
        }

    def close(self) -> None:
        """Cancel pending cooldown eviction timers."""
        self.cooldowns.cancel_timers()
        logger.info("bot_stopped")
