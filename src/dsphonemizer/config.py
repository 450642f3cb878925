from __future__ import annotations

"""Runtime settings loader from environment variables."""

from dataclasses import dataclass
import os


def _env_int(name: str, default: int) -> int:
    """Read an int env var with a default."""
    value = os.getenv(name)
    if value is None or value == "":
        return default
    return int(value)


def _env_float(name: str, default: float) -> float:
    """Read a float env var with a default."""
    value = os.getenv(name)
    if value is None or value == "":
        return default
    return float(value)


def _env_bool(name: str, default: bool) -> bool:
    """Read a boolean env var with a default."""
    value = os.getenv(name)
    if value is None or value == "":
        return default
    return value.lower() in {"1", "true", "yes"}


@dataclass(frozen=True)
class Settings:
    """Configuration values parsed from the environment."""
    device: str
    padding_ms: float
    allow_g2p: bool
    serialize_models: bool
    max_workers: int

    @classmethod
    def from_env(cls) -> "Settings":
        """Construct settings from environment variables."""
        device = os.getenv("DSPHONEMIZER_DEVICE", "cpu").strip().lower()
        padding_ms = _env_float("DSPHONEMIZER_PADDING_MS", 500.0)
        if padding_ms < 0:
            raise ValueError("DSPHONEMIZER_PADDING_MS must be non-negative.")
        max_workers = _env_int("DSPHONEMIZER_MAX_WORKERS", 1)
        if max_workers < 1:
            raise ValueError("DSPHONEMIZER_MAX_WORKERS must be at least 1.")
        return cls(
            device=device,
            padding_ms=padding_ms,
            allow_g2p=_env_bool("DSPHONEMIZER_ALLOW_G2P", True),
            serialize_models=_env_bool("DSPHONEMIZER_SERIALIZE_MODELS", False),
            max_workers=max_workers,
        )
