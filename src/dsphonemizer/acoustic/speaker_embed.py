from __future__ import annotations

"""Speaker embedding lookup for multi-speaker duration models."""

import threading
from collections import OrderedDict
from pathlib import Path
from typing import Optional, Sequence, Tuple

import numpy as np

from dsphonemizer.api.voicebank import DsConfig
from dsphonemizer.logging_utils import get_logger

logger = get_logger(__name__)


class SpeakerEmbedManager:
    """
    Lazily load the speaker embeddings declared in dsconfig.yaml and build
    per-phoneme embedding tensors.

    Phrase tensors are cached by the ordered tuple of speaker suffixes, least
    recently used first out once max_cached_phrases is exceeded. An empty or
    unknown suffix maps to the first declared speaker.
    """

    def __init__(self, config: DsConfig, root: Path, max_cached_phrases: int = 128) -> None:
        if not config.speakers:
            raise ValueError("SpeakerEmbedManager requires speakers in dsconfig.yaml.")
        self.config = config
        self.root = Path(root)
        self._embeds: Optional[np.ndarray] = None
        self.max_cached_phrases = max_cached_phrases
        self._phrase_cache: OrderedDict[Tuple[str, ...], np.ndarray] = OrderedDict()
        self._lock = threading.Lock()

    def speaker_embeds(self) -> np.ndarray:
        """Return the [num_speakers, hidden_size] embedding matrix."""
        with self._lock:
            if self._embeds is None:
                self._embeds = self._load_embeds()
            return self._embeds

    def speaker_index(self, suffix: str) -> int:
        if not suffix:
            return 0
        speakers = self.config.speakers or []
        for idx, entry in enumerate(speakers):
            if entry == suffix or Path(entry).name == suffix:
                return idx
        logger.warning("speaker_unknown suffix=%s default=%s", suffix, speakers[0])
        return 0

    def phrase_speaker_embed_by_phone(self, speakers: Sequence[str]) -> np.ndarray:
        """Return a [1, len(speakers), hidden_size] float32 tensor."""
        key = tuple(speakers)
        with self._lock:
            cached = self._phrase_cache.get(key)
            if cached is not None:
                self._phrase_cache.move_to_end(key)
                return cached
        embeds = self.speaker_embeds()
        indices = [self.speaker_index(s) for s in key]
        tensor = embeds[indices][None, :, :].astype(np.float32)
        with self._lock:
            self._phrase_cache[key] = tensor
            while len(self._phrase_cache) > self.max_cached_phrases:
                self._phrase_cache.popitem(last=False)
        return tensor

    def _load_embeds(self) -> np.ndarray:
        hidden_size = self.config.hidden_size
        rows = []
        for entry in self.config.speakers or []:
            embed_path = self.root / f"{entry}.emb"
            if not embed_path.exists():
                embed_path = self.root / entry
            if not embed_path.exists():
                raise FileNotFoundError(
                    f"Speaker embedding not found at {embed_path}. "
                    "Check the 'speakers' list in dsconfig.yaml."
                )
            data = np.frombuffer(embed_path.read_bytes(), dtype=np.float32)
            if data.shape[0] != hidden_size:
                raise ValueError(
                    f"Speaker embedding {embed_path} has {data.shape[0]} values, "
                    f"expected hidden_size={hidden_size}."
                )
            rows.append(data)
        logger.info("speaker_embeds_loaded count=%d root=%s", len(rows), self.root)
        return np.stack(rows, axis=0)
