"""Base error type shared by the inventory engine."""


class AppShelfError(Exception):
    """An error with a human-readable message and an optional underlying cause."""

    def __init__(self, message: str, *, cause: BaseException | None = None):
        super().__init__(message)
        self.message = message
        self.cause = cause
        if cause is not None:
            self.__cause__ = cause

    def __str__(self) -> str:
        if self.cause is not None:
            return f"{self.message} ({self.cause})"
        return self.message


class ToolError(AppShelfError):
    """An external tool exited unsuccessfully."""

    pass
