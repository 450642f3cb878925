"""Phrase assembly: stitch word syllable groups into encoder-ready arrays."""

from __future__ import annotations

from dataclasses import dataclass
from typing import List, NamedTuple, Sequence

from dsphonemizer.api.voicebank import Vocabulary
from dsphonemizer.notes import DEFAULT_PAUSE, BEFORE_NOTE, DsPhoneme, Note, SyllableGroup
from dsphonemizer.phonemizer.symbols import SymbolResolver
from dsphonemizer.phonemizer.syllables import process_word
from dsphonemizer.timeline import TimeAxis

# Room before the first note for word-initial consonants, ms.
PADDING_MS = 500.0


class AlignmentAnchor(NamedTuple):
    symbol_index: int
    ms_position: float


@dataclass
class PhraseLayout:
    """
    Syllable groups of one phrase plus the per-word phoneme ranges.

    groups[0] is the leading pause group, groups[-1] the end-of-phrase
    sentinel with no phonemes. Word i owns phonemes
    [note_ph_index[i], note_ph_index[i + 1]).
    """
    groups: List[SyllableGroup]
    note_ph_index: List[int]

    @property
    def phonemes(self) -> List[DsPhoneme]:
        return [ph for group in self.groups for ph in group.phonemes]

    def symbols(self) -> List[str]:
        return [ph.symbol for ph in self.phonemes]

    def speakers(self) -> List[str]:
        return [ph.speaker for ph in self.phonemes]

    def tokens(self, vocabulary: Vocabulary) -> List[int]:
        return vocabulary.tokenize(self.symbols())

    def word_div(self) -> List[int]:
        return [len(group.phonemes) for group in self.groups[:-1]]

    def word_dur(self, time_axis: TimeAxis, frame_ms: float) -> List[int]:
        # Difference of cumulative frame counts so rounding never drifts.
        frames = [int(time_axis.tick_pos_to_ms_pos(g.position) / frame_ms) for g in self.groups]
        return [b - a for a, b in zip(frames, frames[1:])]

    def ph_midi(self) -> List[int]:
        return [group.tone for group in self.groups for _ in group.phonemes]

    def anchors(self, time_axis: TimeAxis) -> List[AlignmentAnchor]:
        """Cumulative phoneme count of each group paired with the next group's ms position."""
        result: List[AlignmentAnchor] = []
        count = 0
        for group, next_group in zip(self.groups, self.groups[1:]):
            count += len(group.phonemes)
            result.append(AlignmentAnchor(count, time_axis.tick_pos_to_ms_pos(next_group.position)))
        return result


def assemble_phrase(
    phrase: Sequence[Sequence[Note]],
    resolver: SymbolResolver,
    time_axis: TimeAxis,
    *,
    padding_ms: float = PADDING_MS,
) -> PhraseLayout:
    """
    Build the phrase layout for a list of words (each a list of notes).

    Each word's pre-vowel consonants join the group that is last at that
    point, so the first word's onset lands in the leading pause group.
    """
    if not phrase or not phrase[0]:
        raise ValueError("A phrase needs at least one word with one note.")
    first_note = phrase[0][0]
    groups = [
        SyllableGroup(
            BEFORE_NOTE,
            first_note.tone,
            [DsPhoneme(DEFAULT_PAUSE, resolver.get_speaker_at_index(first_note, 0))],
        )
    ]
    note_ph_index = [1]
    for word in phrase:
        word_groups = process_word(word, resolver)
        groups[-1].phonemes.extend(word_groups[0].phonemes)
        groups.extend(word_groups[1:])
        note_ph_index.append(note_ph_index[-1] + sum(len(g.phonemes) for g in word_groups))

    last_note = phrase[-1][-1]
    groups.append(SyllableGroup(last_note.end, last_note.tone))
    groups[0].position = time_axis.ms_pos_to_tick_pos(
        time_axis.tick_pos_to_ms_pos(groups[1].position) - padding_ms
    )
    return PhraseLayout(groups=groups, note_ph_index=note_ph_index)
