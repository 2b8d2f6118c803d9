from typing import Any


class MarkdownMapperError(ValueError):
    """Base exception for all md-mapper errors."""

    def __init__(self, message: str):
        super().__init__(message)

    def to_dict(self) -> dict[str, Any]:
        """Convert exception to a JSON-compatible dictionary for hosts."""
        return {"detail": str(self), "error": type(self).__name__}


class InvalidSettingsError(MarkdownMapperError):
    """Raised when a settings value fails validation or names an unknown field."""

    def __init__(self, message: str, *, fields: list[str] | None = None):
        super().__init__(message)
        self.fields = fields or []

    def to_dict(self) -> dict[str, Any]:
        return {**super().to_dict(), "fields": self.fields}


class InvalidBlockError(MarkdownMapperError):
    """Raised for block data that fails validation or breaks a tree invariant."""

    def __init__(self, message: str, *, problems: list[str] | None = None):
        super().__init__(message)
        self.problems = problems or []

    def to_dict(self) -> dict[str, Any]:
        return {**super().to_dict(), "problems": self.problems}


class PatchError(MarkdownMapperError):
    """Raised when an edit cannot be spliced into a single block's text.

    Internal to the updater, which catches it and falls back to reparsing.
    """

    def __init__(self, block_id: str, reason: str):
        super().__init__(f"Cannot patch block {block_id!r}: {reason}")
        self.block_id = block_id
        self.reason = reason

    def to_dict(self) -> dict[str, Any]:
        return {**super().to_dict(), "block_id": self.block_id, "reason": self.reason}
