"""
Inference APIs for the linguistic encoder and duration predictor.
"""

from __future__ import annotations

import logging
import threading
from pathlib import Path
from typing import Any, Dict, List, Optional, Sequence, Tuple

import numpy as np

from dsphonemizer.acoustic.model import DurationModel, LinguisticModel
from dsphonemizer.api.voicebank import DsConfig
from dsphonemizer.errors import ModelOutputError
from dsphonemizer.logging_utils import get_logger, summarize_payload

logger = get_logger(__name__)


# Cache for loaded models
_model_cache: Dict[str, Any] = {}
_model_cache_lock = threading.Lock()


def _get_model(model_class, model_path: Path, device: str = "cpu", serialize: bool = False):
    """Get or create a cached model instance."""
    cache_key = f"{model_class.__name__}:{model_path}:{device}:{serialize}"
    with _model_cache_lock:
        if cache_key not in _model_cache:
            _model_cache[cache_key] = model_class(model_path, device, serialize)
        return _model_cache[cache_key]


def clear_model_cache() -> None:
    with _model_cache_lock:
        _model_cache.clear()


def load_linguistic_model(
    root: Path, config: DsConfig, device: str = "cpu", serialize: bool = False
) -> LinguisticModel:
    """Load the linguistic encoder named by dsconfig.yaml."""
    return _get_model(LinguisticModel, (Path(root) / config.linguistic).resolve(), device, serialize)


def load_duration_model(
    root: Path, config: DsConfig, device: str = "cpu", serialize: bool = False
) -> DurationModel:
    """Load the duration predictor named by dsconfig.yaml."""
    return _get_model(DurationModel, (Path(root) / config.dur).resolve(), device, serialize)


def language_ids(symbols: Sequence[str], language_map: Dict[str, int]) -> List[int]:
    """Resolve a language id per symbol from its "lang/phoneme" prefix (0 when absent)."""
    ids = []
    for symbol in symbols:
        code = symbol.split("/", 1)[0] if "/" in symbol else ""
        ids.append(language_map.get(code, 0))
    return ids


def _batch(values: Sequence[int]) -> np.ndarray:
    return np.array(values, dtype=np.int64)[None, :]


def encode(
    linguistic: LinguisticModel,
    tokens: Sequence[int],
    word_div: Sequence[int],
    word_dur: Sequence[int],
    *,
    languages: Optional[Sequence[int]] = None,
) -> Tuple[np.ndarray, np.ndarray]:
    """
    Run the linguistic encoder on one phrase.

    Args:
        linguistic: Encoder model
        tokens: Token id per phoneme
        word_div: Phoneme count per syllable group
        word_dur: Frames per syllable group
        languages: Language id per phoneme (only for use_lang_id voicebanks)

    Returns:
        (encoder_out, x_masks), both passed through unchanged to the duration model
    """
    if sum(int(x) for x in word_div) != len(tokens):
        raise ValueError(
            f"word_div sums to {sum(word_div)} but {len(tokens)} tokens were given."
        )
    if len(word_div) != len(word_dur):
        raise ValueError("word_div and word_dur must have the same length.")
    encoder_out, x_masks = linguistic.encode(
        _batch(tokens),
        _batch(word_div),
        _batch(word_dur),
        _batch(languages) if languages is not None else None,
    )
    if encoder_out.ndim < 2 or encoder_out.shape[0] != 1 or encoder_out.shape[1] != len(tokens):
        raise ModelOutputError(
            str(linguistic.model_path),
            f"encoder_out_shape_mismatch shape={list(encoder_out.shape)} tokens={len(tokens)}",
        )
    return encoder_out, x_masks


def predict_duration(
    duration: DurationModel,
    encoder_out: np.ndarray,
    x_masks: np.ndarray,
    ph_midi: Sequence[int],
    *,
    spk_embed: Optional[np.ndarray] = None,
) -> np.ndarray:
    """
    Predict one duration (in model frames) per phoneme.

    Returns:
        float64 array of shape [n_phonemes]
    """
    pred = duration.forward(encoder_out, x_masks, _batch(ph_midi), spk_embed)
    if pred.ndim == 2 and pred.shape[0] == 1:
        pred = pred[0]
    if pred.ndim != 1 or pred.shape[0] != len(ph_midi):
        raise ModelOutputError(
            str(duration.model_path),
            f"duration_shape_mismatch shape={list(pred.shape)} phonemes={len(ph_midi)}",
        )
    return pred.astype(np.float64)


def predict_durations(
    tokens: Sequence[int],
    word_div: Sequence[int],
    word_dur: Sequence[int],
    ph_midi: Sequence[int],
    linguistic: LinguisticModel,
    duration: DurationModel,
    *,
    languages: Optional[Sequence[int]] = None,
    spk_embed: Optional[np.ndarray] = None,
) -> Dict[str, Any]:
    """
    Run the encoder and duration predictor back to back.

    Returns:
        Dict with:
        - durations: Predicted frames per phoneme (list of float)
        - total_frames: Sum of predicted frames
    """
    if logger.isEnabledFor(logging.DEBUG):
        logger.debug(
            "predict_durations input=%s",
            summarize_payload(
                {
                    "tokens": list(tokens),
                    "word_div": list(word_div),
                    "word_dur": list(word_dur),
                    "ph_midi": list(ph_midi),
                    "languages": list(languages) if languages is not None else None,
                    "spk_embed": spk_embed,
                }
            ),
        )
    encoder_out, x_masks = encode(linguistic, tokens, word_div, word_dur, languages=languages)
    pred = predict_duration(duration, encoder_out, x_masks, ph_midi, spk_embed=spk_embed)
    result = {
        "durations": pred.tolist(),
        "total_frames": float(pred.sum()),
    }
    if logger.isEnabledFor(logging.DEBUG):
        logger.debug("predict_durations output=%s", summarize_payload(result))
    return result
