"""Tests for perception/wake.py: openwakeword wrapper and PCM conversion."""

from unittest.mock import MagicMock, patch

import numpy as np
import pytest

from perception.wake import FRAME_SAMPLES, WakeSoundDetector, to_int16


def _mock_openwakeword(labels=("_background_", "snap", "clap")):
    """Build sys.modules entries standing in for the openwakeword package."""
    model = MagicMock()
    model.models = {label: object() for label in labels}
    model.predict.return_value = {label: 0.0 for label in labels}

    model_module = MagicMock(Model=MagicMock(return_value=model))
    utils_module = MagicMock()
    package = MagicMock(model=model_module, utils=utils_module)
    package.get_pretrained_model_paths.return_value = ["/models/hey_jarvis.onnx"]

    modules = {
        "openwakeword": package,
        "openwakeword.model": model_module,
        "openwakeword.utils": utils_module,
    }
    return modules, model


class TestToInt16:
    def test_scales_float_to_pcm(self):
        out = to_int16(np.array([0.0, 1.0, -1.0, 0.5], dtype=np.float32))
        assert out.dtype == np.int16
        assert out.tolist() == [0, 32767, -32767, 16383]

    def test_clips_out_of_range(self):
        out = to_int16(np.array([2.0, -2.0], dtype=np.float32))
        assert out.tolist() == [32767, -32768]

    def test_int16_passthrough(self):
        frame = np.array([1, 2, 3], dtype=np.int16)
        assert to_int16(frame) is frame


class TestWakeSoundDetector:
    def test_not_ready_scores_empty(self):
        detector = WakeSoundDetector(["clap"])
        assert not detector.ready
        assert detector.score(np.zeros(FRAME_SAMPLES, dtype=np.float32)) == []
        assert detector.labels == []
        assert detector.target_label is None

    def test_load_builds_onnx_model(self):
        modules, model = _mock_openwakeword()
        with patch.dict("sys.modules", modules), patch("perception.wake.os.path.exists", return_value=True):
            detector = WakeSoundDetector(["snap", "clap"], target_index=2)
            assert detector.load() is True

        modules["openwakeword.model"].Model.assert_called_once_with(
            wakeword_models=["snap", "clap"],
            inference_framework="onnx",
        )
        assert detector.ready
        assert detector.labels == ["_background_", "snap", "clap"]
        assert detector.target_label == "clap"

    def test_downloads_pretrained_models_when_missing(self):
        modules, _ = _mock_openwakeword()
        with patch.dict("sys.modules", modules), patch("perception.wake.os.path.exists", return_value=False):
            assert WakeSoundDetector(["hey_jarvis"]).load() is True
        modules["openwakeword.utils"].download_models.assert_called_once()

    def test_no_download_when_models_present(self):
        modules, _ = _mock_openwakeword()
        with patch.dict("sys.modules", modules), patch("perception.wake.os.path.exists", return_value=True):
            WakeSoundDetector(["hey_jarvis"]).load()
        modules["openwakeword.utils"].download_models.assert_not_called()

    def test_scores_follow_label_order(self):
        modules, model = _mock_openwakeword()
        model.predict.return_value = {"clap": 0.91, "_background_": 0.02}
        with patch.dict("sys.modules", modules), patch("perception.wake.os.path.exists", return_value=True):
            detector = WakeSoundDetector(["clap"])
            detector.load()

        scores = detector.score(np.zeros(FRAME_SAMPLES, dtype=np.float32))

        assert scores == pytest.approx([0.02, 0.0, 0.91])
        assert model.predict.call_args[0][0].dtype == np.int16

    def test_out_of_range_target_still_loads(self):
        modules, _ = _mock_openwakeword(labels=("clap",))
        with patch.dict("sys.modules", modules), patch("perception.wake.os.path.exists", return_value=True):
            detector = WakeSoundDetector(["clap"], target_index=4)
            assert detector.load() is True
        assert detector.target_label is None

    def test_load_failure_returns_false(self):
        modules, _ = _mock_openwakeword()
        modules["openwakeword.model"].Model.side_effect = RuntimeError("bad model file")
        with patch.dict("sys.modules", modules), patch("perception.wake.os.path.exists", return_value=True):
            detector = WakeSoundDetector(["clap"])
            assert detector.load() is False
        assert not detector.ready
        assert detector.score(np.zeros(FRAME_SAMPLES, dtype=np.float32)) == []

    def test_reset_clears_model_buffer(self):
        modules, model = _mock_openwakeword()
        with patch.dict("sys.modules", modules), patch("perception.wake.os.path.exists", return_value=True):
            detector = WakeSoundDetector(["clap"])
            detector.load()
        detector.reset()
        model.reset.assert_called_once()
