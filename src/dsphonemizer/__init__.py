"""DiffSinger phrase phonemizer: lyrics and notes to time-aligned phonemes."""

from .config import Settings
from .logging_utils import configure_logging
from .notes import Note, PhonemeAttribute
from .pipeline import DiffSingerPhonemizer
from .timeline import TempoEvent, TimeAxis

__all__ = [
    "DiffSingerPhonemizer",
    "Note",
    "PhonemeAttribute",
    "Settings",
    "TempoEvent",
    "TimeAxis",
    "configure_logging",
]

__version__ = "0.1.0"
