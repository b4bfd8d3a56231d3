"""Wake-sound classifier backed by openwakeword.

Scores every 80ms frame against the loaded models. The console picks one
class out of the score vector (EngineConfig.wakesound_index), so scores are
returned in a stable label order.
"""

import logging
import os
from typing import Optional

import numpy as np

logger = logging.getLogger("wakefuse.wake")

FRAME_SAMPLES = 1280  # 80ms at 16kHz, openwakeword's expected frame size


def to_int16(frame: np.ndarray) -> np.ndarray:
    """float32 [-1, 1] → int16 PCM, the format openwakeword and Silero expect."""
    if frame.dtype == np.int16:
        return frame
    return (np.asarray(frame, dtype=np.float32) * 32767).clip(-32768, 32767).astype(np.int16)


class WakeSoundDetector:
    """Lazy-loading wrapper around an openwakeword Model.

    Usage:
        detector = WakeSoundDetector(["hey_jarvis"])
        detector.load()  # slow; run off the audio thread
        scores = detector.score(frame)  # aligned with detector.labels
    """

    def __init__(self, models: list[str], target_index: int = 0, threshold: float = 0.75):
        self._model_names = list(models)
        self._target_index = target_index
        self._threshold = threshold
        self._model = None
        self._labels: list[str] = []
        self._ready = False

    def load(self) -> bool:
        """Load (downloading pretrained models on first run). Returns True on success."""
        try:
            import openwakeword
            from openwakeword.model import Model as OWWModel

            model_paths = openwakeword.get_pretrained_model_paths("onnx")
            wants_pretrained = any(not os.path.exists(name) for name in self._model_names)
            if wants_pretrained and not any(os.path.exists(p) for p in model_paths):
                logger.info("Downloading openwakeword models (first time)...")
                from openwakeword.utils import download_models

                download_models()

            logger.info("Loading wake sound model(s): %s", ", ".join(self._model_names))
            self._model = OWWModel(
                wakeword_models=self._model_names,
                inference_framework="onnx",
            )
        except Exception as e:
            logger.error("Failed to load wake sound model: %s", e)
            return False

        self._labels = list(self._model.models.keys())
        self._ready = True
        logger.info("Wake sound model loaded.")
        target = self.target_label
        if target is None:
            logger.warning(
                "Wake sound index %d out of range (model has %d classes)",
                self._target_index,
                len(self._labels),
            )
        else:
            logger.info('Monitoring class index %d: "%s"', self._target_index, target)
        logger.info("Wake sound threshold: %.2f", self._threshold)
        return True

    @property
    def ready(self) -> bool:
        return self._ready

    @property
    def labels(self) -> list[str]:
        return list(self._labels)

    @property
    def target_label(self) -> Optional[str]:
        if 0 <= self._target_index < len(self._labels):
            return self._labels[self._target_index]
        return None

    def score(self, frame: np.ndarray) -> list[float]:
        """Score one frame. Returns one value per label (empty before load())."""
        if not self._ready:
            return []
        prediction = self._model.predict(to_int16(frame))
        return [float(prediction.get(label, 0.0)) for label in self._labels]

    def reset(self) -> None:
        """Clear the model's internal prediction buffer."""
        if self._model is not None:
            self._model.reset()
