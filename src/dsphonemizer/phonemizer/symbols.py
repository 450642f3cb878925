from __future__ import annotations

from typing import TYPE_CHECKING, List

from dsphonemizer.notes import DEFAULT_PAUSE, DsPhoneme, Note
from dsphonemizer.phonemizer.g2p import G2pCapability

if TYPE_CHECKING:
    from dsphonemizer.api.voicebank import Singer


class SymbolResolver:
    """Resolve a note's lyric or phonetic hint to symbols and speaker suffixes."""

    def __init__(self, g2p: G2pCapability, singer: Singer, default_pause: str = DEFAULT_PAUSE) -> None:
        self.g2p = g2p
        self.singer = singer
        self.default_pause = default_pause

    def get_symbols(self, note: Note) -> List[str]:
        """
        Resolve symbols in priority order:
          1. phonetic hint (invalid symbols dropped)
          2. dictionary query, as given then lowercased
          3. lyric treated as a phonetic hint
          4. default pause
        """
        if note.phonetic_hint:
            hinted = self._valid_split(note.phonetic_hint)
            if hinted:
                return hinted
        result = self.g2p.query(note.lyric)
        if result is None:
            result = self.g2p.query(note.lyric.lower())
        if result:
            return list(result)
        lyric_split = self._valid_split(note.lyric)
        if lyric_split:
            return lyric_split
        return [self.default_pause]

    def get_speaker_at_index(self, note: Note, index: int) -> str:
        color = ""
        for attr in note.phoneme_attributes:
            if attr.index == index:
                color = attr.voice_color or ""
                break
        for subbank in self.singer.subbanks:
            if subbank.color == color and note.tone in subbank.tone_set:
                return subbank.suffix
        return ""

    def get_ds_phonemes(self, note: Note) -> List[DsPhoneme]:
        return [
            DsPhoneme(symbol, self.get_speaker_at_index(note, index))
            for index, symbol in enumerate(self.get_symbols(note))
        ]

    def _valid_split(self, text: str) -> List[str]:
        return [s for s in text.split() if self.g2p.is_valid_symbol(s)]
