"""
Voicebank loading: dsconfig, vocabulary, singer subbanks.
"""

import re
from dataclasses import dataclass, field
from pathlib import Path
from typing import Any, Dict, FrozenSet, List, Optional, Sequence, Union

import yaml

from dsphonemizer.errors import VocabularyError
from dsphonemizer.logging_utils import get_logger

logger = get_logger(__name__)

_NOTE_NAMES = {"C": 0, "D": 2, "E": 4, "F": 5, "G": 7, "A": 9, "B": 11}
_TONE_NAME_RE = re.compile(r"^([A-Ga-g])([#b]?)(-?\d+)$")
_TONE_RANGE_RE = re.compile(r"^([A-Ga-g][#b]?-?\d+)(?:-([A-Ga-g][#b]?-?\d+))?$")
ALL_TONES: FrozenSet[int] = frozenset(range(0, 128))


@dataclass(frozen=True)
class DsConfig:
    phonemes: str
    linguistic: str
    dur: str
    speakers: Optional[List[str]] = None
    hidden_size: int = 256
    sample_rate: int = 44100
    hop_size: int = 512
    use_lang_id: bool = False
    languages: Optional[str] = None

    def frame_ms(self) -> float:
        return self.hop_size * 1000.0 / self.sample_rate


@dataclass(frozen=True)
class Subbank:
    color: str = ""
    suffix: str = ""
    tone_set: FrozenSet[int] = ALL_TONES


@dataclass(frozen=True)
class Singer:
    name: str
    location: Path
    subbanks: Sequence[Subbank] = field(default_factory=lambda: (Subbank(),))


class Vocabulary:
    """Ordered phoneme inventory; a symbol's token id is its position."""

    def __init__(self, symbols: Union[Sequence[str], Dict[str, int]], path: Optional[Path] = None):
        self.path = path
        if isinstance(symbols, dict):
            self._ids = {str(k): int(v) for k, v in symbols.items()}
        else:
            self._ids = {}
            for idx, symbol in enumerate(symbols):
                # First occurrence wins, like a list index lookup.
                self._ids.setdefault(str(symbol), idx)

    def __contains__(self, symbol: str) -> bool:
        return symbol in self._ids

    def __len__(self) -> int:
        return len(self._ids)

    def token_id(self, symbol: str) -> int:
        if symbol not in self._ids:
            raise VocabularyError(symbol, str(self.path) if self.path else None)
        return self._ids[symbol]

    def tokenize(self, symbols: Sequence[str]) -> List[int]:
        return [self.token_id(s) for s in symbols]


def resolve_dsdur_root(voicebank_path: Union[str, Path]) -> Path:
    """Return dsdur/ when it carries its own dsconfig.yaml, else the voicebank root."""
    path = Path(voicebank_path)
    if (path / "dsdur" / "dsconfig.yaml").exists():
        return path / "dsdur"
    return path


def load_voicebank_config(voicebank_path: Union[str, Path]) -> Dict[str, Any]:
    """
    Load the dsconfig.yaml from a voicebank directory.

    Args:
        voicebank_path: Directory holding dsconfig.yaml

    Returns:
        Config dict from dsconfig.yaml
    """
    config_path = Path(voicebank_path) / "dsconfig.yaml"
    if not config_path.exists():
        raise FileNotFoundError(f"dsconfig.yaml not found at {config_path}")
    data = yaml.safe_load(config_path.read_text(encoding="utf8"))
    if not isinstance(data, dict):
        raise ValueError(f"Invalid dsconfig.yaml format at {config_path}.")
    return data


def load_ds_config(root: Union[str, Path]) -> DsConfig:
    """Parse the duration-model fields of dsconfig.yaml into a DsConfig."""
    data = load_voicebank_config(root)
    missing = [key for key in ("phonemes", "linguistic", "dur") if not data.get(key)]
    if missing:
        raise ValueError(f"dsconfig.yaml at {root} is missing required keys: {missing}")
    speakers = data.get("speakers")
    return DsConfig(
        phonemes=str(data["phonemes"]),
        linguistic=str(data["linguistic"]),
        dur=str(data["dur"]),
        speakers=[str(s) for s in speakers] if speakers else None,
        hidden_size=int(data.get("hidden_size", 256)),
        sample_rate=int(data.get("sample_rate", 44100)),
        hop_size=int(data.get("hop_size", 512)),
        use_lang_id=bool(data.get("use_lang_id", False)),
        languages=str(data["languages"]) if data.get("languages") else None,
    )


def load_vocabulary(path: Union[str, Path]) -> Vocabulary:
    """
    Load the phoneme inventory.

    Plain text files list one symbol per line (token id = line index);
    .json/.yaml files map symbol -> token id.
    """
    path = Path(path)
    if not path.exists():
        raise FileNotFoundError(
            f"Phoneme inventory not found at {path}. "
            "Expected the file named by 'phonemes' in dsconfig.yaml."
        )
    text = path.read_text(encoding="utf8")
    if path.suffix.lower() in {".json", ".yaml", ".yml"}:
        data = yaml.safe_load(text)
        if isinstance(data, dict):
            return Vocabulary({str(k): int(v) for k, v in data.items()}, path=path)
        if isinstance(data, list):
            return Vocabulary([str(s) for s in data], path=path)
        raise ValueError(f"Invalid phoneme inventory format at {path}.")
    return Vocabulary([line.strip() for line in text.splitlines()], path=path)


def load_language_map(path: Union[str, Path]) -> Dict[str, int]:
    path = Path(path)
    if not path.exists():
        raise FileNotFoundError(
            f"Languages map not found at {path}. "
            "Expected a languages.json from the voicebank."
        )
    data = yaml.safe_load(path.read_text(encoding="utf8"))
    if not isinstance(data, dict):
        raise ValueError(f"Invalid languages.json format at {path}.")
    return {str(k): int(v) for k, v in data.items()}


def name_to_tone(name: str) -> int:
    """Convert a note name such as 'C4' or 'F#3' to a MIDI tone (C4 = 60)."""
    match = _TONE_NAME_RE.match(name.strip())
    if not match:
        raise ValueError(f"Invalid tone name '{name}'.")
    letter, accidental, octave = match.groups()
    tone = (int(octave) + 1) * 12 + _NOTE_NAMES[letter.upper()]
    if accidental == "#":
        tone += 1
    elif accidental == "b":
        tone -= 1
    return tone


def parse_tone_ranges(ranges: Optional[Sequence[str]]) -> FrozenSet[int]:
    """Expand tone range strings ('C1-B7', 'C4') into a set of MIDI tones."""
    if not ranges:
        return ALL_TONES
    tones = set()
    for entry in ranges:
        match = _TONE_RANGE_RE.match(str(entry).strip())
        if not match:
            raise ValueError(f"Invalid tone range '{entry}'.")
        start = name_to_tone(match.group(1))
        end = name_to_tone(match.group(2)) if match.group(2) else start
        tones.update(range(min(start, end), max(start, end) + 1))
    return frozenset(tones)


def load_singer(voicebank: Union[str, Path]) -> Singer:
    """
    Load singer metadata from character.yaml.

    Subbanks map a voice colour and tone range to a speaker suffix. A
    voicebank without subbanks gets one default subbank covering every tone.
    """
    path = Path(voicebank)
    if not path.is_dir():
        raise FileNotFoundError(f"Voicebank directory not found: {path}")
    name = path.name
    subbanks: List[Subbank] = []
    char_file = path / "character.yaml"
    if char_file.exists():
        char_data = yaml.safe_load(char_file.read_text(encoding="utf8")) or {}
        if not isinstance(char_data, dict):
            raise ValueError(f"Invalid character.yaml format at {char_file}.")
        name = str(char_data.get("name", path.name))
        for entry in char_data.get("subbanks") or []:
            if not isinstance(entry, dict):
                continue
            subbanks.append(
                Subbank(
                    color=str(entry.get("color", "") or ""),
                    suffix=str(entry.get("suffix", "") or ""),
                    tone_set=parse_tone_ranges(entry.get("tone_ranges")),
                )
            )
    if not subbanks:
        subbanks.append(Subbank())
    logger.debug("singer_loaded name=%s subbanks=%d path=%s", name, len(subbanks), path)
    return Singer(name=name, location=path, subbanks=tuple(subbanks))
