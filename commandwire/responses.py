"""Templated rejection and notification messages.

A catalog maps each fixed key to a list of templates containing
``{{placeholder}}`` tokens. One template is picked uniformly at random
per resolution; supplied placeholders are substituted and unknown ones
are left verbatim, so rendering degrades instead of failing.
"""

import random
import re
from typing import Dict, List, Mapping, Optional

import structlog

from .models import ChannelKind, Rejection, RejectionKind, Reply

logger = structlog.get_logger("commandwire.dispatch")

DEFAULT_RESPONSES: Dict[str, List[str]] = {
    "command_unknown": ["This command doesn't exist"],
    "command_error": ["Something went wrong: ```{{error}}```"],
    "command_cooldown": [
        "Please wait `{{cooldown}}` second{{s}} before using this command again"
    ],
    "command_guild_only": ["This command can only be used in a server"],
    "command_dms_only": ["This command can only be used in DMs"],
    "command_owners_only": ["Only bot owners can use this command"],
    "command_blocked": ["You are blocked from using this command"],
    "command_no_permission": ["You don't have permission to use this command"],
    "command_no_bot_permission": ["I don't have permission to use this command"],
    "command_incorrect_usage": ["Please use this command correctly: `{{usage}}`"],
}

CATALOG_KEYS = frozenset(DEFAULT_RESPONSES)

_PLACEHOLDER = re.compile(r"\{\{(\w+)\}\}")

# Embed titles; other keys render without one.
_TITLES = {
    "command_unknown": "Unknown Command",
    "command_blocked": "Blocked",
    "command_error": "Error",
}

_KIND_KEYS = {
    RejectionKind.UNKNOWN: "command_unknown",
    RejectionKind.BLOCKED: "command_blocked",
    RejectionKind.COOLDOWN: "command_cooldown",
    RejectionKind.OWNERS_ONLY: "command_owners_only",
    RejectionKind.MISSING_USER_PERMISSION: "command_no_permission",
    RejectionKind.MISSING_BOT_PERMISSION: "command_no_bot_permission",
    RejectionKind.USAGE_MISMATCH: "command_incorrect_usage",
    RejectionKind.HANDLER_ERROR: "command_error",
}


def pluralize(count: float) -> str:
    """Suffix for a ``{{s}}`` placeholder: "" for exactly one, else "s"."""
    return "" if count == 1 else "s"


def format_duration(seconds: float) -> str:
    """Format seconds to one decimal, e.g. 1.0 -> "1", 0.3 -> ".3"."""
    text = f"{seconds:.1f}"
    if text.endswith(".0"):
        text = text[:-2]
    if text.startswith("0."):
        text = text[1:]
    return text


def catalog_key(rejection: Rejection) -> str:
    """The catalog key a rejection is rendered with."""
    if rejection.kind is RejectionKind.WRONG_CONTEXT:
        if rejection.required_context is ChannelKind.DIRECT:
            return "command_dms_only"
        return "command_guild_only"
    return _KIND_KEYS[rejection.kind]


class ResponseResolver:
    """Resolves catalog keys to rendered strings.

    Args:
        overrides: Per-key template lists replacing the defaults. Unknown
            keys are ignored; empty lists keep the default templates.
        rng: Random source for template selection (inject a seeded
            ``random.Random`` for deterministic output).
    """

    def __init__(
        self,
        overrides: Optional[Mapping[str, List[str]]] = None,
        rng: Optional[random.Random] = None,
    ):
        self.rng = rng or random.Random()
        self.catalog: Dict[str, List[str]] = {k: list(v) for k, v in DEFAULT_RESPONSES.items()}
        for key, templates in (overrides or {}).items():
            if key not in CATALOG_KEYS:
                logger.warning("response_key_unknown", key=key)
                continue
            if isinstance(templates, str):
                templates = [templates]
            if not templates:
                logger.warning("response_templates_empty", key=key)
                continue
            self.catalog[key] = [str(t) for t in templates]

    def resolve(self, key: str, placeholders: Optional[Mapping[str, object]] = None) -> str:
        """Pick a template for ``key`` and substitute ``placeholders``."""
        templates = self.catalog.get(key)
        if not templates:
            logger.warning("response_key_missing", key=key)
            return key
        template = self.rng.choice(templates)
        values = {name: str(value) for name, value in (placeholders or {}).items()}
        return _PLACEHOLDER.sub(lambda m: values.get(m.group(1), m.group(0)), template)


def render(
    rejection: Rejection,
    resolver: ResponseResolver,
    *,
    prefix: str = "",
    author: str = "",
    private: bool = False,
) -> Reply:
    """Render a rejection into the reply sent to the invoker."""
    key = catalog_key(rejection)
    values: Dict[str, object] = {"author": author, "command": rejection.command}

    if rejection.kind is RejectionKind.UNKNOWN:
        values = {"command": rejection.command, "prefix": prefix}
    elif rejection.kind is RejectionKind.COOLDOWN:
        remaining = rejection.remaining or 0.0
        values["cooldown"] = format_duration(remaining)
        values["s"] = pluralize(round(remaining, 1))
    elif rejection.kind is RejectionKind.OWNERS_ONLY:
        values["s"] = pluralize(rejection.owner_count)
    elif rejection.kind in (
        RejectionKind.MISSING_USER_PERMISSION,
        RejectionKind.MISSING_BOT_PERMISSION,
    ):
        values["permissions"] = ", ".join(rejection.permissions)
        values["s"] = pluralize(len(rejection.permissions))
    elif rejection.kind is RejectionKind.USAGE_MISMATCH:
        values["usage"] = rejection.usage or ""
    elif rejection.kind is RejectionKind.HANDLER_ERROR:
        values["error"] = rejection.error or ""

    return Reply(
        text=resolver.resolve(key, values),
        title=_TITLES.get(key),
        private=private,
    )
