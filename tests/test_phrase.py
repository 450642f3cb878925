import pytest

from dsphonemizer.api.phrase import AlignmentAnchor, assemble_phrase
from dsphonemizer.api.voicebank import load_singer, load_vocabulary
from dsphonemizer.errors import VocabularyError
from dsphonemizer.notes import DsPhoneme, Note, PhonemeAttribute
from dsphonemizer.phonemizer.g2p import load_g2p
from dsphonemizer.phonemizer.symbols import SymbolResolver
from dsphonemizer.timeline import TempoEvent, TimeAxis


@pytest.fixture
def time_axis():
    # 125 bpm at 480 ticks per beat: one tick per millisecond.
    return TimeAxis([TempoEvent(position=0, bpm=125.0)])


@pytest.fixture
def resolver(voicebank):
    return SymbolResolver(load_g2p(voicebank), load_singer(voicebank))


def _phrase():
    return [
        [Note(position=1000, duration=500, tone=60, lyric="ka")],
        [Note(position=1500, duration=500, tone=62, lyric="na")],
    ]


def test_layout_of_two_word_phrase(resolver, time_axis):
    layout = assemble_phrase(_phrase(), resolver, time_axis)
    assert [g.position for g in layout.groups] == [500, 1000, 1500, 2000]
    assert layout.symbols() == ["SP", "k", "a", "n", "a"]
    assert layout.word_div() == [2, 2, 1]
    assert layout.word_dur(time_axis, 10.0) == [50, 50, 50]
    assert layout.ph_midi() == [60, 60, 60, 60, 62]
    assert layout.note_ph_index == [1, 3, 5]
    assert layout.groups[-1].phonemes == []


def test_tokens_follow_vocabulary_order(voicebank, resolver, time_axis):
    layout = assemble_phrase(_phrase(), resolver, time_axis)
    vocabulary = load_vocabulary(voicebank / "phonemes.txt")
    assert layout.tokens(vocabulary) == [0, 4, 2, 5, 2]


def test_anchors_pair_phoneme_counts_with_next_group(resolver, time_axis):
    layout = assemble_phrase(_phrase(), resolver, time_axis)
    assert layout.anchors(time_axis) == [
        AlignmentAnchor(2, 1000.0),
        AlignmentAnchor(4, 1500.0),
        AlignmentAnchor(5, 2000.0),
    ]


def test_leading_group_padding(resolver, time_axis):
    layout = assemble_phrase(_phrase(), resolver, time_axis, padding_ms=250.0)
    assert layout.groups[0].position == 750


def test_leading_group_may_start_before_zero(resolver, time_axis):
    phrase = [[Note(position=100, duration=400, tone=60, lyric="ka")]]
    layout = assemble_phrase(phrase, resolver, time_axis)
    assert layout.groups[0].position == -400
    assert layout.word_dur(time_axis, 10.0) == [50, 40]


def test_vowel_extension_shares_group(resolver, time_axis):
    phrase = [[
        Note(position=1000, duration=500, tone=60, lyric="sa"),
        Note(position=1500, duration=500, tone=60, lyric="+~"),
    ]]
    layout = assemble_phrase(phrase, resolver, time_axis)
    assert [g.position for g in layout.groups] == [500, 1000, 2000]
    assert layout.word_div() == [2, 1]
    assert layout.note_ph_index == [1, 3]


def test_leading_pause_uses_first_note_speaker(make_voicebank, time_axis):
    root = make_voicebank(subbanks=[{"color": ""}, {"color": "soft", "suffix": "soft"}])
    resolver = SymbolResolver(load_g2p(root), load_singer(root))
    phrase = [[
        Note(
            position=1000,
            duration=500,
            tone=60,
            lyric="ka",
            phoneme_attributes=(PhonemeAttribute(0, "soft"), PhonemeAttribute(1, "soft")),
        )
    ]]
    layout = assemble_phrase(phrase, resolver, time_axis)
    assert layout.speakers() == ["soft", "soft", "soft"]


def test_phoneme_outside_vocabulary_raises(voicebank, resolver, time_axis):
    phrase = [[Note(position=0, duration=480, tone=60, lyric="", phonetic_hint="k a")]]
    layout = assemble_phrase(phrase, resolver, time_axis)
    vocabulary = load_vocabulary(voicebank / "phonemes.txt")
    layout.groups[1].phonemes[0] = DsPhoneme("zz")
    with pytest.raises(VocabularyError) as excinfo:
        layout.tokens(vocabulary)
    assert excinfo.value.symbol == "zz"


def test_empty_phrase_rejected(resolver, time_axis):
    with pytest.raises(ValueError):
        assemble_phrase([], resolver, time_axis)
