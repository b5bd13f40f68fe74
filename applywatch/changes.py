"""Change events produced when a polled account's state differs."""
from __future__ import annotations

from dataclasses import dataclass
from enum import Enum
from typing import Optional

from applywatch.collectors.progress import ApplicationProgress, UnknownStepError


class ChangeKind(Enum):
    UPDATED = "updated"
    REVOKED = "revoked"


@dataclass(frozen=True, slots=True)
class ChangeEvent:
    """Outcome of comparing a fresh snapshot with the cached one."""

    kind: ChangeKind
    progress: Optional[ApplicationProgress] = None

    @classmethod
    def updated(cls, progress: ApplicationProgress) -> "ChangeEvent":
        return cls(ChangeKind.UPDATED, progress)

    @classmethod
    def revoked(cls) -> "ChangeEvent":
        return cls(ChangeKind.REVOKED)

    def describe(self) -> str:
        """Short human readable summary used in notifications."""

        if self.kind is ChangeKind.REVOKED or self.progress is None:
            return "token expiry"
        try:
            step = self.progress.current_step()
        except UnknownStepError as exc:
            return f"{exc} error"
        return str(step) if step is not None else "empty"


__all__ = ["ChangeEvent", "ChangeKind"]
