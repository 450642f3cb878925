from __future__ import annotations

from typing import List, Sequence

from dsphonemizer.notes import BEFORE_NOTE, Note, SyllableGroup, is_vowel_extension
from dsphonemizer.phonemizer.symbols import SymbolResolver


def process_word(notes: Sequence[Note], resolver: SymbolResolver) -> List[SyllableGroup]:
    """
    Distribute a word's phonemes across its notes.

    Only the first note is resolved; every vowel opens a new group at the
    next non-extension note. The first returned group is anchored at
    BEFORE_NOTE and holds the consonants preceding the first vowel. Vowels
    left over once the notes run out stay in the last opened group.
    """
    if not notes:
        raise ValueError("A word needs at least one note.")
    word_groups = [SyllableGroup(BEFORE_NOTE, notes[0].tone)]
    phonemes = resolver.get_ds_phonemes(notes[0])
    is_vowel = [resolver.g2p.is_vowel(p.symbol) for p in phonemes]
    carriers = [n for n in notes if not is_vowel_extension(n)]

    note_index = 0
    for phoneme, vowel in zip(phonemes, is_vowel):
        if vowel and note_index < len(carriers):
            note = carriers[note_index]
            word_groups.append(SyllableGroup(note.position, note.tone))
            note_index += 1
        word_groups[-1].phonemes.append(phoneme)
    return word_groups
