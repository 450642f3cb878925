"""
Phrase phonemization steps.

This module exposes the individual steps behind DiffSingerPhonemizer.
"""

from dsphonemizer.api.phrase import AlignmentAnchor, PhraseLayout, assemble_phrase
from dsphonemizer.api.inference import encode, predict_duration, predict_durations
from dsphonemizer.api.alignment import align_positions, stretch
from dsphonemizer.api.emitter import emit_phrase_result
from dsphonemizer.api.voicebank import load_singer, load_vocabulary

__all__ = [
    # Step 1: Phrase layout
    "assemble_phrase",
    "PhraseLayout",
    "AlignmentAnchor",
    # Step 2: Models
    "encode",
    "predict_duration",
    "predict_durations",
    # Step 3: Alignment
    "stretch",
    "align_positions",
    # Output
    "emit_phrase_result",
    # Voicebank
    "load_singer",
    "load_vocabulary",
]
