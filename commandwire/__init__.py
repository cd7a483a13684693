"""Command-dispatch core for chat bots.

Resolves prefixed text commands through a fixed-order authorization
guard chain, routes slash-command/button/select interactions, and
renders templated rejection replies.
"""

from .authorization import AuthorizationPipeline
from .bot import CommandBot
from .cooldowns import CooldownTracker
from .dispatcher import DispatchEngine
from .exceptions import (
    CommandwireError,
    ConfigurationError,
    DuplicateNameError,
    HandlerExecutionError,
    HandlerExecutionErrorSilent,
)
from .interactions import InteractionRouter
from .models import (
    Authorized,
    ChannelKind,
    CommandDescriptor,
    CommandSpec,
    DispatchOutcome,
    InboundMessage,
    Interaction,
    InteractionKind,
    OutcomeKind,
    Rejection,
    RejectionKind,
    Reply,
)
from .registry import CommandRegistry
from .responses import ResponseResolver, format_duration, pluralize, render

__version__ = "1.0.0"

__all__ = [
    "AuthorizationPipeline",
    "Authorized",
    "ChannelKind",
    "CommandBot",
    "CommandDescriptor",
    "CommandRegistry",
    "CommandSpec",
    "CommandwireError",
    "ConfigurationError",
    "CooldownTracker",
    "DispatchEngine",
    "DispatchOutcome",
    "DuplicateNameError",
    "HandlerExecutionError",
    "HandlerExecutionErrorSilent",
    "InboundMessage",
    "Interaction",
    "InteractionKind",
    "InteractionRouter",
    "OutcomeKind",
    "Rejection",
    "RejectionKind",
    "Reply",
    "ResponseResolver",
    "format_duration",
    "pluralize",
    "render",
]
