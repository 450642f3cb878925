from __future__ import annotations

import types
from pathlib import Path
from typing import Any, Callable, Dict, List, Optional, Sequence

import numpy as np
import onnxruntime as ort
import pytest
import yaml

from dsphonemizer.api import inference

VOCABULARY = ["SP", "AP", "a", "i", "k", "n", "s"]

DSDICT = {
    "symbols": [
        {"symbol": "a", "type": "vowel"},
        {"symbol": "i", "type": "vowel"},
        {"symbol": "k", "type": "stop"},
        {"symbol": "n", "type": "nasal"},
        {"symbol": "s", "type": "fricative"},
    ],
    "entries": [
        {"grapheme": "ka", "phonemes": ["k", "a"]},
        {"grapheme": "na", "phonemes": ["n", "a"]},
        {"grapheme": "sa", "phonemes": ["s", "a"]},
        {"grapheme": "kina", "phonemes": ["k", "i", "n", "a"]},
    ],
}


class FakeSession:
    """Stand-in for onnxruntime.InferenceSession with named inputs/outputs."""

    def __init__(
        self,
        path: str,
        inputs: Sequence[str],
        outputs: Sequence[str],
        fn: Callable[[Dict[str, Any]], Dict[str, Any]],
    ) -> None:
        self.path = path
        self._inputs = list(inputs)
        self._outputs = list(outputs)
        self._fn = fn
        self.calls: List[Dict[str, Any]] = []

    def get_inputs(self):
        return [types.SimpleNamespace(name=name) for name in self._inputs]

    def get_outputs(self):
        return [types.SimpleNamespace(name=name) for name in self._outputs]

    def run(self, output_names, feeds):
        self.calls.append(dict(feeds))
        produced = self._fn(feeds)
        return [produced[name] for name in output_names]


def linguistic_fn(feeds: Dict[str, Any]) -> Dict[str, Any]:
    n = feeds["tokens"].shape[1]
    return {
        "encoder_out": np.zeros((1, n, 4), dtype=np.float32),
        "x_masks": np.zeros((1, n), dtype=bool),
    }


def constant_duration_fn(frames: float) -> Callable[[Dict[str, Any]], Dict[str, Any]]:
    def fn(feeds: Dict[str, Any]) -> Dict[str, Any]:
        n = feeds["ph_midi"].shape[1]
        return {"ph_dur_pred": np.full((1, n), frames, dtype=np.float32)}

    return fn


class FakeOrt:
    """Registry of fake sessions keyed by model file name."""

    def __init__(self) -> None:
        self.registered: Dict[str, Dict[str, Any]] = {}
        self.sessions: Dict[str, FakeSession] = {}
        self.providers: Optional[List[str]] = None

    def register(self, name: str, inputs, outputs, fn) -> None:
        self.registered[name] = {"inputs": inputs, "outputs": outputs, "fn": fn}

    def register_defaults(self, *, spk_embed: bool = False, frames: float = 10.0) -> None:
        self.register(
            "linguistic.onnx",
            ["tokens", "word_div", "word_dur"],
            ["encoder_out", "x_masks"],
            linguistic_fn,
        )
        dur_inputs = ["encoder_out", "x_masks", "ph_midi"]
        if spk_embed:
            dur_inputs.append("spk_embed")
        self.register("dur.onnx", dur_inputs, ["ph_dur_pred"], constant_duration_fn(frames))

    def session(self, path, providers=None, sess_options=None) -> FakeSession:
        self.providers = providers
        entry = self.registered[Path(path).name]
        session = FakeSession(str(path), entry["inputs"], entry["outputs"], entry["fn"])
        self.sessions[Path(path).name] = session
        return session


@pytest.fixture
def fake_ort(monkeypatch) -> FakeOrt:
    fake = FakeOrt()
    monkeypatch.setattr(ort, "InferenceSession", fake.session)
    monkeypatch.setattr(ort, "get_available_providers", lambda: ["CPUExecutionProvider"])
    inference.clear_model_cache()
    yield fake
    inference.clear_model_cache()


def write_voicebank(
    root: Path,
    *,
    speakers: Optional[Dict[str, Sequence[float]]] = None,
    subbanks: Optional[List[Dict[str, Any]]] = None,
    dsdur: bool = False,
) -> Path:
    """Write a minimal voicebank: dsconfig, vocabulary, dictionary and model stubs."""
    root.mkdir(parents=True, exist_ok=True)
    model_dir = root / "dsdur" if dsdur else root
    model_dir.mkdir(parents=True, exist_ok=True)
    config: Dict[str, Any] = {
        "phonemes": "phonemes.txt",
        "linguistic": "linguistic.onnx",
        "dur": "dur.onnx",
        "hop_size": 441,
        "sample_rate": 44100,
    }
    if speakers:
        config["speakers"] = list(speakers.keys())
        config["hidden_size"] = len(next(iter(speakers.values())))
        for name, values in speakers.items():
            embed_path = model_dir / f"{name}.emb"
            embed_path.parent.mkdir(parents=True, exist_ok=True)
            embed_path.write_bytes(np.asarray(values, dtype=np.float32).tobytes())
    (model_dir / "dsconfig.yaml").write_text(yaml.safe_dump(config), encoding="utf8")
    (model_dir / "phonemes.txt").write_text("\n".join(VOCABULARY) + "\n", encoding="utf8")
    (model_dir / "dsdict.yaml").write_text(yaml.safe_dump(DSDICT), encoding="utf8")
    (model_dir / "linguistic.onnx").write_bytes(b"dummy")
    (model_dir / "dur.onnx").write_bytes(b"dummy")
    character: Dict[str, Any] = {"name": "Test Singer"}
    if subbanks is not None:
        character["subbanks"] = subbanks
    (root / "character.yaml").write_text(yaml.safe_dump(character), encoding="utf8")
    return root


@pytest.fixture
def voicebank(tmp_path) -> Path:
    return write_voicebank(tmp_path / "TestBank")


@pytest.fixture
def make_voicebank(tmp_path) -> Callable[..., Path]:
    def factory(name: str = "TestBank", **kwargs: Any) -> Path:
        return write_voicebank(tmp_path / name, **kwargs)

    return factory
