import logging
import threading

import numpy as np
import pytest

from dsphonemizer.config import Settings
from dsphonemizer.errors import PhraseCancelledError
from dsphonemizer.logging_utils import LoggingContextFilter, clear_log_context, set_log_context
from dsphonemizer.notes import Note, PhonemeAttribute
from dsphonemizer.pipeline import DiffSingerPhonemizer
from dsphonemizer.timeline import TempoEvent, TimeAxis


def _settings(**overrides):
    values = dict(
        device="cpu",
        padding_ms=500.0,
        allow_g2p=False,
        serialize_models=False,
        max_workers=1,
    )
    values.update(overrides)
    return Settings(**values)


@pytest.fixture
def time_axis():
    return TimeAxis([TempoEvent(position=0, bpm=125.0)])


def _phrase(offset=0):
    return [
        [Note(position=offset + 1000, duration=500, tone=60, lyric="ka")],
        [Note(position=offset + 1500, duration=500, tone=62, lyric="na")],
    ]


@pytest.fixture
def phonemizer(voicebank, fake_ort):
    fake_ort.register_defaults(frames=10.0)
    phonemizer = DiffSingerPhonemizer(_settings())
    assert phonemizer.set_singer(voicebank)
    return phonemizer


def test_process_phrase_end_to_end(phonemizer, time_axis, fake_ort):
    result = phonemizer.process_phrase(_phrase(), time_axis)
    assert result == {
        1000: [("k", -100), ("a", 0)],
        1500: [("n", -250), ("a", 0)],
    }
    feeds = fake_ort.sessions["linguistic.onnx"].calls[-1]
    assert feeds["tokens"].tolist() == [[0, 4, 2, 5, 2]]
    assert feeds["word_div"].tolist() == [[2, 2, 1]]
    assert feeds["word_dur"].tolist() == [[50, 50, 50]]
    assert fake_ort.sessions["dur.onnx"].calls[-1]["ph_midi"].tolist() == [[60, 60, 60, 60, 62]]


def test_vowels_land_on_note_starts(phonemizer, time_axis):
    result = phonemizer.process_phrase(_phrase(), time_axis)
    for position, phonemes in result.items():
        assert dict(phonemes)["a"] == 0


def test_process_phrase_is_repeatable(phonemizer, time_axis):
    assert phonemizer.process_phrase(_phrase(), time_axis) == phonemizer.process_phrase(
        _phrase(), time_axis
    )


def test_phonetic_hint_overrides_lyric(phonemizer, time_axis):
    phrase = [[Note(position=1000, duration=500, tone=60, lyric="na", phonetic_hint="k a")]]
    result = phonemizer.process_phrase(phrase, time_axis)
    assert [symbol for symbol, _ in result[1000]] == ["k", "a"]


def test_continuation_word_is_not_emitted(phonemizer, time_axis):
    phrase = [
        [Note(position=1000, duration=500, tone=60, lyric="ka")],
        [Note(position=1500, duration=500, tone=60, lyric="+")],
    ]
    result = phonemizer.process_phrase(phrase, time_axis)
    assert list(result) == [1000]
    assert result[1000] == [("k", -100), ("a", 0)]


def test_failed_singer_load_yields_no_phonemes(make_voicebank, fake_ort, time_axis):
    root = make_voicebank()
    (root / "dur.onnx").unlink()
    fake_ort.register_defaults()
    phonemizer = DiffSingerPhonemizer(_settings())
    assert phonemizer.set_singer(root) is False
    assert not phonemizer.ready
    assert phonemizer.process_phrase(_phrase(), time_axis) == {}


def test_multi_speaker_feeds_speaker_embeddings(make_voicebank, fake_ort, time_axis):
    root = make_voicebank(
        speakers={"main": [1.0, 0.0, 0.0, 0.0], "soft": [0.0, 1.0, 0.0, 0.0]},
        subbanks=[{"color": "", "suffix": ""}, {"color": "soft", "suffix": "soft"}],
    )
    fake_ort.register_defaults(spk_embed=True)
    phonemizer = DiffSingerPhonemizer(_settings())
    assert phonemizer.set_singer(root)
    phrase = _phrase()
    phrase[1] = [
        Note(
            position=1500,
            duration=500,
            tone=62,
            lyric="na",
            phoneme_attributes=(PhonemeAttribute(1, "soft"),),
        )
    ]
    phonemizer.process_phrase(phrase, time_axis)
    spk_embed = fake_ort.sessions["dur.onnx"].calls[-1]["spk_embed"]
    assert spk_embed.shape == (1, 5, 4)
    assert spk_embed[0, :, 1].tolist() == [0.0, 0.0, 0.0, 0.0, 1.0]
    assert spk_embed.dtype == np.float32


def test_process_phrases_merges_results(phonemizer, time_axis):
    phrases = [_phrase(), _phrase(offset=2000)]
    result = phonemizer.process_phrases(phrases, time_axis)
    assert sorted(result) == [1000, 1500, 3000, 3500]
    assert result[3500] == [("n", -250), ("a", 0)]


def test_worker_pool_matches_sequential(phonemizer, time_axis):
    phrases = [_phrase(offset=2000 * i) for i in range(4)]
    sequential = phonemizer.process_phrases(phrases, time_axis)
    pooled = phonemizer.process_phrases(phrases, time_axis, max_workers=3)
    assert pooled == sequential


def test_cancel_before_next_phrase(phonemizer, time_axis):
    cancel = threading.Event()
    cancel.set()
    with pytest.raises(PhraseCancelledError) as excinfo:
        phonemizer.process_phrases([_phrase()], time_axis, cancel_event=cancel)
    assert excinfo.value.phrase_index == 0


def test_serialized_models_in_worker_pool(voicebank, fake_ort, time_axis):
    fake_ort.register_defaults(frames=10.0)
    phonemizer = DiffSingerPhonemizer(_settings(serialize_models=True, max_workers=3))
    assert phonemizer.set_singer(voicebank)
    assert phonemizer.duration._lock is not None
    phrases = [_phrase(offset=2000 * i) for i in range(4)]
    result = phonemizer.process_phrases(phrases, time_axis)
    assert result[7500] == [("n", -250), ("a", 0)]
    assert len(fake_ort.sessions["dur.onnx"].calls) == 4


def test_worker_threads_keep_log_context(phonemizer, time_axis, monkeypatch):
    seen = []
    process_phrase = phonemizer.process_phrase

    def recording(phrase, axis):
        record = logging.LogRecord("test", logging.INFO, __file__, 1, "msg", (), None)
        LoggingContextFilter().filter(record)
        seen.append(record.singer)
        return process_phrase(phrase, axis)

    monkeypatch.setattr(phonemizer, "process_phrase", recording)
    set_log_context(singer="Test Singer")
    try:
        phonemizer.process_phrases([_phrase(), _phrase(offset=2000)], time_axis, max_workers=2)
    finally:
        clear_log_context()
    assert seen == ["Test Singer", "Test Singer"]
