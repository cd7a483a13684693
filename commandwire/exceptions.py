"""Custom exception hierarchy for commandwire.

Only load-time and handler failures are exceptions. Authorization
failures are values (see ``models.Rejection``) and are never raised.
"""

from typing import Any, Optional


class CommandwireError(Exception):
    """Base exception for all commandwire errors.

    Attributes:
        message: Human-readable error description.
        module: Originating module name (e.g. "registry").
        context: Arbitrary key-value pairs for structured logging.
    """

    def __init__(
        self,
        message: str = "",
        *,
        module: Optional[str] = None,
        **context: Any,
    ) -> None:
        self.message = message
        self.module = module
        self.context = context
        super().__init__(message)

    def __str__(self) -> str:
        parts = [self.message or self.__class__.__name__]
        if self.module:
            parts.append(f"[module={self.module}]")
        if self.context:
            ctx = ", ".join(f"{k}={v}" for k, v in self.context.items())
            parts.append(f"({ctx})")
        return " ".join(parts)

    def __repr__(self) -> str:
        cls = self.__class__.__name__
        return f"{cls}({self.message!r}, module={self.module!r})"


class DuplicateNameError(CommandwireError):
    """A command name, alias or interaction id is already registered.

    Raised at load time and meant to abort startup.

    Attributes:
        name: The colliding name or alias.
    """

    def __init__(
        self,
        message: str = "",
        *,
        name: Optional[str] = None,
        module: Optional[str] = None,
        **context: Any,
    ) -> None:
        self.name = name
        super().__init__(message, module=module or "registry", name=name, **context)


class ConfigurationError(CommandwireError):
    """Invalid or missing configuration."""

    def __init__(
        self,
        message: str = "",
        *,
        setting_name: Optional[str] = None,
        module: Optional[str] = None,
        **context: Any,
    ) -> None:
        self.setting_name = setting_name
        super().__init__(message, module=module or "config", **context)


class HandlerExecutionError(CommandwireError):
    """A command handler raised while executing.

    Rendered to the user as a ``command_error`` reply on the text
    and slash-command paths.

    Attributes:
        command: Command name or interaction key that failed.
        original: The exception raised by the handler.
    """

    def __init__(
        self,
        message: str = "",
        *,
        command: Optional[str] = None,
        original: Optional[BaseException] = None,
        module: Optional[str] = None,
        **context: Any,
    ) -> None:
        self.command = command
        self.original = original
        super().__init__(
            message, module=module or "dispatcher", command=command, **context
        )


class HandlerExecutionErrorSilent(HandlerExecutionError):
    """A button or select handler raised. Logged only, never replied to."""

    def __init__(
        self,
        message: str = "",
        *,
        command: Optional[str] = None,
        original: Optional[BaseException] = None,
        module: Optional[str] = None,
        **context: Any,
    ) -> None:
        super().__init__(
            message,
            command=command,
            original=original,
            module=module or "interactions",
            **context,
        )
