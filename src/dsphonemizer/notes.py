from __future__ import annotations

from dataclasses import dataclass, field
from typing import List, Optional, Sequence

# Position of a syllable group that has not been pinned to a note yet.
BEFORE_NOTE = -1

DEFAULT_PAUSE = "SP"


@dataclass(frozen=True)
class PhonemeAttribute:
    index: int
    voice_color: str = ""


@dataclass(frozen=True)
class Note:
    position: int
    duration: int
    tone: int
    lyric: str
    phonetic_hint: Optional[str] = None
    phoneme_attributes: Sequence[PhonemeAttribute] = ()

    @property
    def end(self) -> int:
        return self.position + self.duration


@dataclass(frozen=True)
class DsPhoneme:
    symbol: str
    speaker: str = ""


@dataclass
class SyllableGroup:
    """Phonemes pinned to one anchor position on the tick timeline."""
    position: int
    tone: int
    phonemes: List[DsPhoneme] = field(default_factory=list)


def is_vowel_extension(note: Note) -> bool:
    """Return True for notes that extend the previous vowel ("+~" / "+*")."""
    return note.lyric.startswith("+~") or note.lyric.startswith("+*")


def is_continuation(note: Note) -> bool:
    """Return True for any note whose lyric continues the previous word."""
    return note.lyric.startswith("+")
