from __future__ import annotations

import contextvars
import threading
import time
from concurrent.futures import Future, ThreadPoolExecutor
from pathlib import Path
from typing import Dict, List, Optional, Sequence, Union

from dsphonemizer.acoustic.model import DurationModel, LinguisticModel
from dsphonemizer.acoustic.speaker_embed import SpeakerEmbedManager
from dsphonemizer.api.alignment import align_positions
from dsphonemizer.api.emitter import PhonemeTicks, emit_phrase_result
from dsphonemizer.api.inference import (
    language_ids,
    load_duration_model,
    load_linguistic_model,
    predict_durations,
)
from dsphonemizer.api.phrase import assemble_phrase
from dsphonemizer.api.voicebank import (
    DsConfig,
    Singer,
    Vocabulary,
    load_ds_config,
    load_language_map,
    load_singer,
    load_vocabulary,
    resolve_dsdur_root,
)
from dsphonemizer.config import Settings
from dsphonemizer.errors import PhraseCancelledError
from dsphonemizer.logging_utils import get_logger, set_log_context
from dsphonemizer.notes import Note
from dsphonemizer.phonemizer.g2p import G2pCapability, load_g2p
from dsphonemizer.phonemizer.symbols import SymbolResolver
from dsphonemizer.timeline import TimeAxis

logger = get_logger(__name__)

Phrase = Sequence[Sequence[Note]]


class DiffSingerPhonemizer:
    """
    Phrase phonemizer driven by a DiffSinger duration model.

    A phrase is a list of words, each word a list of notes. The result maps
    each word's first note position to (symbol, tick offset) pairs.
    """

    def __init__(self, settings: Optional[Settings] = None):
        self.settings = settings or Settings.from_env()
        self.singer: Optional[Singer] = None
        self.root: Optional[Path] = None
        self.config: Optional[DsConfig] = None
        self.frame_ms = 0.0
        self.g2p: Optional[G2pCapability] = None
        self.vocabulary: Optional[Vocabulary] = None
        self.linguistic: Optional[LinguisticModel] = None
        self.duration: Optional[DurationModel] = None
        self.resolver: Optional[SymbolResolver] = None
        self._language_map: Dict[str, int] = {}
        self._speaker_embed_manager: Optional[SpeakerEmbedManager] = None
        self._speaker_lock = threading.Lock()

    @property
    def ready(self) -> bool:
        return self.resolver is not None and self.duration is not None

    def set_singer(self, singer: Union[Singer, str, Path]) -> bool:
        """
        Load dictionary, vocabulary and models for a singer.

        Loading failures are logged and leave the phonemizer unloaded; later
        phrases then produce no phonemes. Returns True when fully loaded.
        """
        self._reset()
        try:
            if not isinstance(singer, Singer):
                singer = load_singer(singer)
            self.singer = singer
            set_log_context(singer=singer.name)
            root = resolve_dsdur_root(singer.location)
            self.root = root
            self.config = load_ds_config(root)
            self.frame_ms = self.config.frame_ms()
            self.g2p = load_g2p(root, allow_g2p=self.settings.allow_g2p)
            self.vocabulary = load_vocabulary(root / self.config.phonemes)
            if self.config.use_lang_id and self.config.languages:
                self._language_map = load_language_map(root / self.config.languages)
            self.linguistic = load_linguistic_model(
                root, self.config, self.settings.device, self.settings.serialize_models
            )
            self.duration = load_duration_model(
                root, self.config, self.settings.device, self.settings.serialize_models
            )
        except Exception:
            # Any load failure leaves the singer unusable; surfaced through the log only.
            logger.exception("singer_load_failed singer=%s", getattr(singer, "location", singer))
            self._reset()
            return False
        self.resolver = SymbolResolver(self.g2p, singer)
        logger.info(
            "singer_loaded singer=%s root=%s frame_ms=%.4f vocabulary=%d speakers=%s",
            singer.name,
            root,
            self.frame_ms,
            len(self.vocabulary),
            self.config.speakers,
        )
        return True

    def _reset(self) -> None:
        self.singer = None
        self.root = None
        self.config = None
        self.g2p = None
        self.vocabulary = None
        self.linguistic = None
        self.duration = None
        self.resolver = None
        self._language_map = {}
        with self._speaker_lock:
            self._speaker_embed_manager = None

    def speaker_embed_manager(self) -> SpeakerEmbedManager:
        with self._speaker_lock:
            if self._speaker_embed_manager is None:
                self._speaker_embed_manager = SpeakerEmbedManager(self.config, self.root)
            return self._speaker_embed_manager

    def process_phrase(self, phrase: Phrase, time_axis: TimeAxis) -> Dict[int, PhonemeTicks]:
        """Phonemize and align a single phrase."""
        if not self.ready:
            logger.warning("phrase_skipped reason=singer_not_loaded")
            return {}
        start = time.monotonic()
        set_log_context(phrase_id=str(phrase[0][0].position) if phrase and phrase[0] else "-")
        layout = assemble_phrase(
            phrase, self.resolver, time_axis, padding_ms=self.settings.padding_ms
        )
        symbols = layout.symbols()
        languages = None
        if self.config.use_lang_id:
            languages = language_ids(symbols, self._language_map)
        spk_embed = None
        if self.config.speakers:
            spk_embed = self.speaker_embed_manager().phrase_speaker_embed_by_phone(layout.speakers())

        prediction = predict_durations(
            layout.tokens(self.vocabulary),
            layout.word_div(),
            layout.word_dur(time_axis, self.frame_ms),
            layout.ph_midi(),
            self.linguistic,
            self.duration,
            languages=languages,
            spk_embed=spk_embed,
        )
        positions = align_positions(prediction["durations"], layout.anchors(time_axis), self.frame_ms)
        result = emit_phrase_result(phrase, layout, positions, time_axis)
        logger.info(
            "phrase_processed words=%d groups=%d phonemes=%d elapsed_ms=%.2f",
            len(phrase),
            len(layout.groups),
            len(symbols),
            (time.monotonic() - start) * 1000.0,
        )
        return result

    def process_phrases(
        self,
        phrases: Sequence[Phrase],
        time_axis: TimeAxis,
        *,
        cancel_event: Optional[threading.Event] = None,
        max_workers: Optional[int] = None,
    ) -> Dict[int, PhonemeTicks]:
        """
        Process phrases in order and merge their results.

        cancel_event is checked before each phrase starts; a set event raises
        PhraseCancelledError and no further phrase begins.
        """
        workers = max_workers or self.settings.max_workers

        def run(index: int, phrase: Phrase) -> Dict[int, PhonemeTicks]:
            if cancel_event is not None and cancel_event.is_set():
                raise PhraseCancelledError(index)
            return self.process_phrase(phrase, time_axis)

        results: Dict[int, PhonemeTicks] = {}
        if workers <= 1:
            for index, phrase in enumerate(phrases):
                results.update(run(index, phrase))
            return results

        with ThreadPoolExecutor(max_workers=workers) as executor:
            # Each worker runs in a copy of the caller's context so log lines keep the singer.
            futures: List[Future] = [
                executor.submit(contextvars.copy_context().run, run, index, phrase)
                for index, phrase in enumerate(phrases)
            ]
            try:
                for future in futures:
                    results.update(future.result())
            except BaseException:
                for future in futures:
                    future.cancel()
                raise
        return results
