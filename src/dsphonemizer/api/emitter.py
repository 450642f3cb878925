"""Convert aligned phoneme positions back to per-note tick offsets."""

from __future__ import annotations

from typing import Dict, List, Sequence, Tuple

from dsphonemizer.api.phrase import PhraseLayout
from dsphonemizer.notes import Note, is_continuation
from dsphonemizer.timeline import TimeAxis

PhonemeTicks = List[Tuple[str, int]]


def emit_phrase_result(
    phrase: Sequence[Sequence[Note]],
    layout: PhraseLayout,
    positions: Sequence[float],
    time_axis: TimeAxis,
) -> Dict[int, PhonemeTicks]:
    """
    Map each word's first note position to its (symbol, tick offset) list.

    positions[k] is the ms position of phoneme k + 1. Words starting with a
    continuation lyric are skipped, as are empty symbols.
    """
    phonemes = layout.phonemes
    result: Dict[int, PhonemeTicks] = {}
    for word_index, word in enumerate(phrase):
        head = word[0]
        if is_continuation(head):
            continue
        note_ms = time_axis.tick_pos_to_ms_pos(head.position)
        note_result: PhonemeTicks = []
        start = layout.note_ph_index[word_index]
        end = layout.note_ph_index[word_index + 1]
        for ph_index in range(start, end):
            symbol = phonemes[ph_index].symbol
            if not symbol:
                continue
            note_result.append(
                (symbol, time_axis.ticks_between_ms_pos(note_ms, positions[ph_index - 1]))
            )
        result[head.position] = note_result
    return result
