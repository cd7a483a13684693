"""Name/alias lookup table for text commands.

Populated once at load time by an external loader. After that the
only mutation is a command's own block-list and allow-list sets.
"""

from typing import Dict, List, Optional

import structlog

from .exceptions import DuplicateNameError
from .models import CommandDescriptor

logger = structlog.get_logger("commandwire.registry")


class CommandRegistry:
    """Maps case-folded command names and aliases to descriptors.

    Names and aliases share one namespace: an alias may never equal
    another command's name or alias.
    """

    def __init__(self):
        self._commands: Dict[str, CommandDescriptor] = {}
        self._aliases: Dict[str, str] = {}

    def register(self, descriptor: CommandDescriptor) -> CommandDescriptor:
        """Register a descriptor under its name and aliases.

        Args:
            descriptor: Command to register.

        Returns:
            The registered descriptor.

        Raises:
            DuplicateNameError: If the name or any alias is already
                taken, or collides within the descriptor itself. The
                registry is unchanged when this is raised.
        """
        keys = [descriptor.name, *sorted(descriptor.aliases)]
        seen = set()
        for key in keys:
            if key in seen or key in self._commands or key in self._aliases:
                logger.error(
                    "command_name_conflict",
                    command=descriptor.name,
                    conflict=key,
                )
                raise DuplicateNameError(
                    f"Command name or alias already registered: {key}",
                    name=key,
                    command=descriptor.name,
                )
            seen.add(key)

        self._commands[descriptor.name] = descriptor
        for alias in descriptor.aliases:
            self._aliases[alias] = descriptor.name

        logger.debug(
            "command_registered",
            command=descriptor.name,
            aliases=sorted(descriptor.aliases),
        )
        return descriptor

    def resolve(self, token: str) -> Optional[CommandDescriptor]:
        """Look up a command by name or alias (case-insensitive)."""
        normalized = token.casefold()
        descriptor = self._commands.get(normalized)
        if descriptor is not None:
            return descriptor
        target = self._aliases.get(normalized)
        if target is not None:
            return self._commands.get(target)
        return None

    def get(self, name: str) -> Optional[CommandDescriptor]:
        """Look up a command by its primary name only."""
        return self._commands.get(name.casefold())

    def __contains__(self, token: str) -> bool:
        return self.resolve(token) is not None

    def __len__(self) -> int:
        return len(self._commands)

    @property
    def names(self) -> frozenset:
        """All registered primary names."""
        return frozenset(self._commands.keys())

    def all(self) -> List[CommandDescriptor]:
        """Registered descriptors in registration order."""
        return list(self._commands.values())

    def help_lines(self, prefix: str = "") -> List[str]:
        """One ``name (aliases) - description`` line per command."""
        lines = []
        for cmd in self._commands.values():
            aliases = f" ({', '.join(sorted(cmd.aliases))})" if cmd.aliases else ""
            description = f" - {cmd.description}" if cmd.description else ""
            lines.append(f"{prefix}{cmd.name}{aliases}{description}")
        return lines
