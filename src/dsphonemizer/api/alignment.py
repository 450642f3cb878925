"""Stretch predicted phoneme durations onto fixed note anchors."""

from __future__ import annotations

from typing import List, Sequence

import numpy as np

from dsphonemizer.api.phrase import AlignmentAnchor
from dsphonemizer.errors import AlignmentError


def stretch(source: Sequence[float], ratio: float, end_pos: float) -> List[float]:
    """
    Scale durations by ratio so that they end exactly at end_pos.

    Args:
        source: Phoneme durations, ms
        ratio: Scale factor
        end_pos: Target end position, ms

    Returns:
        Start position of each phoneme, ms
    """
    scaled = np.asarray(source, dtype=np.float64) * ratio
    if scaled.size == 0:
        return []
    start_pos = end_pos - float(scaled.sum())
    # The final cumulative value equals end_pos and belongs to the next window.
    starts = start_pos + np.concatenate(([0.0], np.cumsum(scaled)[:-1]))
    return starts.tolist()


def align_positions(
    durations: Sequence[float],
    anchors: Sequence[AlignmentAnchor],
    frame_ms: float,
) -> List[float]:
    """
    Compute an absolute ms position for every phoneme after the leading pause.

    Element k of the result is the position of phoneme k + 1. Phonemes before
    the first anchor keep their predicted length and are only shifted so they
    end on the anchor. Each later window [a_i, a_{i+1}) is rescaled so it
    starts on anchor i and ends on anchor i + 1.
    """
    if not anchors:
        raise ValueError("At least one alignment anchor is required.")
    frames = np.maximum(np.asarray(durations, dtype=np.float64), 0.0)
    if frames.shape[0] != anchors[-1].symbol_index:
        raise ValueError(
            f"{frames.shape[0]} durations do not match {anchors[-1].symbol_index} phonemes."
        )
    durations_ms = frames * frame_ms

    first = anchors[0]
    positions = stretch(durations_ms[1:first.symbol_index], 1.0, first.ms_position)
    for window_index, (curr, nxt) in enumerate(zip(anchors, anchors[1:]), start=1):
        group = durations_ms[curr.symbol_index:nxt.symbol_index]
        if group.size == 0:
            continue
        total = float(group.sum())
        target = nxt.ms_position - curr.ms_position
        if total <= 0.0:
            raise AlignmentError(
                window_index=window_index,
                start_index=curr.symbol_index,
                end_index=nxt.symbol_index,
                target_ms=target,
            )
        positions.extend(stretch(group, target / total, nxt.ms_position))
    return positions
