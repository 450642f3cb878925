from __future__ import annotations

from pathlib import Path
import re
from typing import TYPE_CHECKING, Dict, List, Optional, Protocol, Sequence, Set

import yaml

from dsphonemizer.logging_utils import get_logger

if TYPE_CHECKING:
    from g2p_en import G2p

logger = get_logger(__name__)

ARPABET_TO_VOICEBANK = {
    "AA": "aa",
    "AE": "ae",
    "AH": "ah",
    "AO": "ao",
    "AW": "aw",
    "AX": "ax",
    "AXR": "er",
    "AY": "ay",
    "B": "b",
    "CH": "ch",
    "D": "d",
    "DH": "dh",
    "DX": "dx",
    "EH": "eh",
    "ER": "er",
    "EY": "ey",
    "F": "f",
    "G": "g",
    "HH": "hh",
    "IH": "ih",
    "IX": "ih",
    "IY": "iy",
    "JH": "jh",
    "K": "k",
    "L": "l",
    "M": "m",
    "N": "n",
    "NG": "ng",
    "OW": "ow",
    "OY": "oy",
    "P": "p",
    "R": "r",
    "S": "s",
    "SH": "sh",
    "T": "t",
    "TH": "th",
    "UH": "uh",
    "UW": "uw",
    "UX": "uw",
    "V": "v",
    "W": "w",
    "Y": "y",
    "Z": "z",
    "ZH": "zh",
}

# Pause and breath are always accepted and open a syllable like a vowel.
PAUSE_SYMBOLS = ("SP", "AP")


class G2pCapability(Protocol):
    def query(self, lyric: str) -> Optional[List[str]]: ...

    def is_valid_symbol(self, symbol: str) -> bool: ...

    def is_vowel(self, symbol: str) -> bool: ...


class DsDictionaryG2p:
    """Grapheme-to-phoneme lookup backed by an OpenUtau dsdict.yaml.

    Words missing from the dictionary can optionally be resolved with
    g2p_en; its ARPABET output is only accepted when every mapped symbol is
    declared by the dictionary.
    """

    def __init__(
        self,
        dictionary_path: Path,
        *,
        language: str = "en",
        allow_g2p: bool = False,
    ) -> None:
        self.dictionary_path = Path(dictionary_path)
        self.language = language
        self.allow_g2p = allow_g2p
        self._symbols, self._vowels = self._load_symbol_types(self.dictionary_path)
        self._folded_symbols = {s.lower() for s in self._symbols}
        self._entries = self._load_entries(self.dictionary_path)
        self._g2p: Optional[G2p] = None

    def query(self, lyric: str) -> Optional[List[str]]:
        entry = self._entries.get(lyric)
        if entry is not None:
            return list(entry)
        if not self.allow_g2p:
            return None
        return self._query_g2p(lyric)

    def is_valid_symbol(self, symbol: str) -> bool:
        return symbol in self._symbols

    def is_vowel(self, symbol: str) -> bool:
        return symbol in self._vowels

    def _query_g2p(self, lyric: str) -> Optional[List[str]]:
        tokens = lyric.split()
        if tokens and all(t.lower() in self._folded_symbols for t in tokens):
            # Lyrics spelled in symbols (SP, AP, "k a"), in any case, are left to the caller.
            return None
        cleaned = re.sub(r"[^A-Za-z' ]+", "", lyric).strip().lower()
        if not cleaned:
            return None
        phones = [p for p in self._get_g2p()(cleaned) if re.search(r"[A-Za-z]", p)]
        mapped: List[str] = []
        for phone in phones:
            symbol = self._map_arpabet(phone)
            if symbol is None:
                logger.debug("g2p_unmapped lyric=%s phone=%s", lyric, phone)
                return None
            mapped.append(symbol)
        return mapped or None

    def _map_arpabet(self, phone: str) -> Optional[str]:
        base = ARPABET_TO_VOICEBANK.get(re.sub(r"[0-9]", "", phone).upper())
        if base is None:
            return None
        # Multilingual dictionaries prefix symbols with the language code (en/hh).
        for candidate in (f"{self.language}/{base}", base):
            if self.is_valid_symbol(candidate):
                return candidate
        return None

    def _get_g2p(self) -> G2p:
        if self._g2p is None:
            try:
                from g2p_en import G2p

                self._g2p = G2p()
            except LookupError as exc:
                raise RuntimeError(
                    "g2p_en requires the NLTK cmudict corpus. "
                    "Install it with: python -m nltk.downloader cmudict"
                ) from exc
        return self._g2p

    @staticmethod
    def _load_symbol_types(path: Path) -> tuple[Set[str], Set[str]]:
        data = yaml.safe_load(path.read_text(encoding="utf8"))
        entries = data.get("symbols", []) if isinstance(data, dict) else []
        symbols = set(PAUSE_SYMBOLS)
        vowels = set(PAUSE_SYMBOLS)
        for entry in entries:
            if not isinstance(entry, dict):
                continue
            symbol = str(entry.get("symbol", "")).strip()
            if not symbol:
                continue
            symbols.add(symbol)
            if str(entry.get("type", "")).strip().lower() == "vowel":
                vowels.add(symbol)
        return symbols, vowels

    @staticmethod
    def _load_entries(path: Path) -> Dict[str, List[str]]:
        data = yaml.safe_load(path.read_text(encoding="utf8"))
        entries = data.get("entries", []) if isinstance(data, dict) else []
        dictionary: Dict[str, List[str]] = {}
        for entry in entries:
            if not isinstance(entry, dict):
                continue
            grapheme = entry.get("grapheme")
            phonemes = entry.get("phonemes")
            if not grapheme or not phonemes:
                continue
            dictionary.setdefault(str(grapheme), [str(p) for p in phonemes])
        return dictionary


class G2pFallbacks:
    """Chain of G2P capabilities; the first one that answers wins."""

    def __init__(self, g2ps: Sequence[G2pCapability]) -> None:
        self.g2ps = list(g2ps)

    def query(self, lyric: str) -> Optional[List[str]]:
        for g2p in self.g2ps:
            result = g2p.query(lyric)
            if result is not None:
                return result
        return None

    def is_valid_symbol(self, symbol: str) -> bool:
        return any(g2p.is_valid_symbol(symbol) for g2p in self.g2ps)

    def is_vowel(self, symbol: str) -> bool:
        return any(g2p.is_vowel(symbol) for g2p in self.g2ps)


def load_g2p(root: Path, *, language: str = "en", allow_g2p: bool = False) -> G2pFallbacks:
    """Build the G2P chain from the dictionary files found under root."""
    g2ps: List[G2pCapability] = []
    paths = [Path(root) / name for name in ("dsdict.yaml", f"dsdict-{language}.yaml")]
    paths = [path for path in paths if path.exists()]
    for idx, path in enumerate(paths):
        # Only the last dictionary falls back to g2p_en so earlier misses reach later entries.
        use_g2p = allow_g2p and idx == len(paths) - 1
        try:
            g2ps.append(DsDictionaryG2p(path, language=language, allow_g2p=use_g2p))
        except (OSError, yaml.YAMLError):
            logger.exception("dictionary_load_failed path=%s", path)
    if not g2ps:
        logger.warning("dictionary_missing root=%s", root)
    return G2pFallbacks(g2ps)
