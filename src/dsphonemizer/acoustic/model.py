import threading
from pathlib import Path
from typing import Any, Dict, List, Optional, Tuple

import numpy as np
import onnxruntime as ort

from dsphonemizer.errors import ModelOutputError
from dsphonemizer.logging_utils import get_logger

logger = get_logger(__name__)


class DiffSingerModel:
    """Base class for DiffSinger ONNX models."""
    def __init__(self, model_path: Path, device: str = "cpu", serialize: bool = False):
        self.model_path = Path(model_path)
        self.device = device
        self.session = self._load_session()
        self.input_names = [node.name for node in self.session.get_inputs()]
        self.output_names = [node.name for node in self.session.get_outputs()]
        # Only taken when the runtime is not trusted with concurrent run() calls.
        self._lock: Optional[threading.Lock] = threading.Lock() if serialize else None

    def _load_session(self) -> ort.InferenceSession:
        if not self.model_path.exists():
            raise FileNotFoundError(f"Model not found at {self.model_path}")

        available = set(ort.get_available_providers())
        providers = ["CPUExecutionProvider"]
        if self.device == "cuda" and "CUDAExecutionProvider" in available:
            providers.insert(0, "CUDAExecutionProvider")
        elif self.device == "coreml" and "CoreMLExecutionProvider" in available:
            providers.insert(0, "CoreMLExecutionProvider")
        elif self.device not in ("cpu", ""):
            logger.warning(
                "provider_unavailable device=%s model=%s using=CPUExecutionProvider",
                self.device,
                self.model_path.name,
            )
        return ort.InferenceSession(str(self.model_path), providers=providers)

    def verify_input_names(self, inputs: Dict[str, Any]) -> None:
        missing = [name for name in self.input_names if name not in inputs]
        if missing:
            raise ModelOutputError(str(self.model_path), f"missing_inputs {missing}")

    def run(self, inputs: Dict[str, Any]) -> List[Any]:
        # Filter inputs that are not expected by the model
        filtered_inputs = {k: v for k, v in inputs.items() if k in self.input_names}
        self.verify_input_names(filtered_inputs)
        if self._lock is None:
            return self.session.run(self.output_names, filtered_inputs)
        with self._lock:
            return self.session.run(self.output_names, filtered_inputs)

    def run_named(self, inputs: Dict[str, Any]) -> Dict[str, Any]:
        outputs = self.run(inputs)
        if len(outputs) != len(self.output_names):
            raise ModelOutputError(
                str(self.model_path),
                f"output_count_mismatch expected={len(self.output_names)} got={len(outputs)}",
            )
        return dict(zip(self.output_names, outputs))

    def require_output(self, outputs: Dict[str, Any], name: str) -> np.ndarray:
        if name not in outputs:
            raise ModelOutputError(str(self.model_path), f"missing_output '{name}'")
        return np.asarray(outputs[name])


class LinguisticModel(DiffSingerModel):
    """
    Encoder model (linguistic.onnx).
    Inputs: tokens, word_div, word_dur, languages (optional)
    Outputs: encoder_out, x_masks
    """
    def encode(
        self,
        tokens: np.ndarray,
        word_div: np.ndarray,
        word_dur: np.ndarray,
        languages: Optional[np.ndarray] = None,
    ) -> Tuple[np.ndarray, np.ndarray]:
        inputs = {"tokens": tokens, "word_div": word_div, "word_dur": word_dur}
        if "languages" in self.input_names:
            inputs["languages"] = languages if languages is not None else np.zeros_like(tokens)
        outputs = self.run_named(inputs)
        return self.require_output(outputs, "encoder_out"), self.require_output(outputs, "x_masks")


class DurationModel(DiffSingerModel):
    """
    Duration Predictor (dur.onnx).
    Inputs: encoder_out, x_masks, ph_midi, spk_embed (multi-speaker only)
    Outputs: ph_dur_pred
    """
    def forward(
        self,
        encoder_out: np.ndarray,
        x_masks: np.ndarray,
        ph_midi: np.ndarray,
        spk_embed: Optional[np.ndarray] = None,
    ) -> np.ndarray:
        inputs = {
            "encoder_out": encoder_out,
            "x_masks": x_masks,
            "ph_midi": ph_midi,
        }
        if spk_embed is not None:
            if "spk_embed" not in self.input_names:
                raise ModelOutputError(str(self.model_path), "unexpected_input 'spk_embed'")
            inputs["spk_embed"] = spk_embed

        outputs = self.run(inputs)
        if not outputs:
            raise ModelOutputError(str(self.model_path), "missing_output duration")
        return np.asarray(outputs[0])  # duration frames
