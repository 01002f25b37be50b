"""
Data models for extraction results and the format registry.
"""

from __future__ import annotations

from dataclasses import dataclass
from enum import Enum
from typing import Any

from .errors import ExtractionError


@dataclass(slots=True, frozen=True)
class FormatInfo:
    """Static registry entry describing one supported document format."""

    name: str
    extensions: tuple[str, ...]
    content_type: str
    extractor: str


class ExtractionStatus(str, Enum):
    SUCCESS = "success"
    PARTIAL = "partial"
    FAILED = "failed"


@dataclass(slots=True, frozen=True)
class ExtractionResult:
    """Outcome of one extraction call.

    A ``PARTIAL`` result carries both the text gathered before the deadline and the
    timeout error. ``ok`` is only true for ``SUCCESS``; callers willing to accept
    truncated output read ``usable_text`` instead.
    """

    status: ExtractionStatus
    text: str = ""
    error: ExtractionError | None = None
    content_type: str = ""

    def __post_init__(self) -> None:
        if self.status is ExtractionStatus.SUCCESS and self.error is not None:
            raise ValueError("A successful result cannot carry an error")
        if self.status is not ExtractionStatus.SUCCESS and self.error is None:
            raise ValueError(f"A {self.status.value} result requires an error")

    @property
    def ok(self) -> bool:
        return self.status is ExtractionStatus.SUCCESS

    @property
    def partial(self) -> bool:
        return self.status is ExtractionStatus.PARTIAL

    @property
    def usable_text(self) -> str:
        if self.status is ExtractionStatus.FAILED:
            return ""
        return self.text

    @classmethod
    def success(cls, text: str, content_type: str) -> ExtractionResult:
        return cls(ExtractionStatus.SUCCESS, text=text, content_type=content_type)

    @classmethod
    def failure(cls, error: ExtractionError, content_type: str) -> ExtractionResult:
        return cls(ExtractionStatus.FAILED, error=error, content_type=content_type)

    @classmethod
    def partial_result(cls, text: str, error: ExtractionError, content_type: str) -> ExtractionResult:
        return cls(ExtractionStatus.PARTIAL, text=text, error=error, content_type=content_type)

    def to_dict(self) -> dict[str, Any]:
        return {
            "status": self.status.value,
            "content_type": self.content_type,
            "text": self.text,
            "error": self.error.to_dict() if self.error is not None else None,
        }
