"""Domain models for health diary notes."""

from dataclasses import dataclass, field
from datetime import datetime

from medication_tracker.clock import SYSTEM_CLOCK, Clock

MAX_CONTENT_LENGTH = 5000
DEFAULT_PREVIEW_LENGTH = 100
ELLIPSIS = "..."
_DAY_MS = 24 * 60 * 60 * 1000


@dataclass
class HealthDiary:
    """A free-text health note owned by a user.

    Content validity is a query, not a constraint: invalid content can be
    held in memory, and the repository refuses to persist it.
    """

    user_id: int = 0
    content: str | None = None
    created_at: int = 0
    updated_at: int = 0
    id: int = 0
    modified: bool = field(default=False, compare=False)
    clock: Clock = field(default=SYSTEM_CLOCK, compare=False, repr=False)

    def __post_init__(self) -> None:
        if not self.created_at:
            self.created_at = self.clock.now_ms()
        if not self.updated_at:
            self.updated_at = self.created_at

    def __hash__(self) -> int:
        return hash(
            (self.id, self.user_id, self.content, self.created_at, self.updated_at)
        )

    def __repr__(self) -> str:
        return (
            f"HealthDiary(id={self.id}, user_id={self.user_id}, "
            f"content={self.content_preview(50)!r}, "
            f"created_at={self.formatted_created_date()}, "
            f"updated_at={self.formatted_updated_date()}, "
            f"modified={self.modified})"
        )

    def set_content(self, content: str | None) -> None:
        """Replace the content and mark the note as edited."""
        self.content = content
        self.mark_as_updated()

    def mark_as_updated(self) -> None:
        """Bump the update timestamp without touching the content."""
        self.updated_at = self.clock.now_ms()
        self.modified = True

    def is_content_valid(self) -> bool:
        return (
            self.content is not None
            and bool(self.content.strip())
            and len(self.content) <= MAX_CONTENT_LENGTH
        )

    def content_preview(self, max_length: int = DEFAULT_PREVIEW_LENGTH) -> str:
        """Return the content, truncated with an ellipsis past ``max_length``."""
        if self.content is None:
            return ""
        if len(self.content) <= max_length:
            return self.content
        return self.content[:max_length] + ELLIPSIS

    def content_length(self) -> int:
        return len(self.content) if self.content else 0

    def formatted_created_date(self) -> str:
        return _format_ms(self.created_at, "%Y-%m-%d %H:%M")

    def formatted_updated_date(self) -> str:
        return _format_ms(self.updated_at, "%Y-%m-%d %H:%M")

    def short_created_date(self) -> str:
        return _format_ms(self.created_at, "%m-%d")

    def is_created_today(self) -> bool:
        """Return True when the note was created within the last 24 hours."""
        return self.clock.now_ms() - self.created_at < _DAY_MS


def _format_ms(timestamp_ms: int, pattern: str) -> str:
    return datetime.fromtimestamp(timestamp_ms / 1000).strftime(pattern)
