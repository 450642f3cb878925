"""Shared error types for phrase phonemization."""

from __future__ import annotations

from dataclasses import dataclass
from typing import Any, Dict, Optional


@dataclass
class VocabularyError(KeyError):
    """Raised when a symbol has no token id in the voicebank vocabulary."""

    symbol: str
    vocabulary_path: Optional[str] = None

    def to_payload(self) -> Dict[str, Any]:
        payload: Dict[str, Any] = {
            "error_type": "VocabularyError",
            "symbol": self.symbol,
        }
        if self.vocabulary_path is not None:
            payload["vocabulary_path"] = self.vocabulary_path
        return payload

    def __str__(self) -> str:
        where = f" in {self.vocabulary_path}" if self.vocabulary_path else ""
        return f"unknown_symbol: '{self.symbol}' has no token id{where}"


@dataclass
class ModelOutputError(RuntimeError):
    """Raised when a model's inputs or outputs do not match the expected contract."""

    model_path: str
    detail: str

    def to_payload(self) -> Dict[str, Any]:
        return {
            "error_type": "ModelOutputError",
            "model_path": self.model_path,
            "detail": self.detail,
        }

    def __str__(self) -> str:
        return f"{self.detail}: model={self.model_path}"


@dataclass
class AlignmentError(ValueError):
    """Raised when a stretch window cannot be rescaled onto its anchors."""

    window_index: int
    start_index: int
    end_index: int
    target_ms: float
    detail: str = "zero_duration_window"

    def to_payload(self) -> Dict[str, Any]:
        return {
            "error_type": "AlignmentError",
            "window_index": int(self.window_index),
            "start_index": int(self.start_index),
            "end_index": int(self.end_index),
            "target_ms": float(self.target_ms),
            "detail": self.detail,
        }

    def __str__(self) -> str:
        return (
            f"{self.detail}: window={self.window_index} "
            f"phonemes=[{self.start_index}, {self.end_index}) target_ms={self.target_ms:.3f}"
        )


@dataclass
class PhraseCancelledError(RuntimeError):
    """Raised when processing is cancelled before a phrase starts."""

    phrase_index: int

    def __str__(self) -> str:
        return f"cancelled before phrase {self.phrase_index}"
