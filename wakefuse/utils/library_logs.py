"""Quiet third-party loggers so console output is only WakeFuse's own.

Model libraries log a lot at INFO during load and inference. The silencer
raises their level while a console runs and puts it back afterwards.
"""

import logging

NOISY_LIBRARIES = (
    "onnxruntime",
    "openwakeword",
    "faster_whisper",
    "ctranslate2",
    "httpx",
    "httpcore",
    "groq",
)


class LibraryLogSilencer:
    """Raises the level of known noisy library loggers; restore() undoes it."""

    def __init__(self, names: tuple[str, ...] = NOISY_LIBRARIES, level: int = logging.WARNING):
        self._names = names
        self._level = level
        self._saved: dict[str, int] = {}

    def install(self) -> None:
        if self._saved:
            return
        for name in self._names:
            lib_logger = logging.getLogger(name)
            self._saved[name] = lib_logger.level
            if lib_logger.getEffectiveLevel() < self._level:
                lib_logger.setLevel(self._level)

    def restore(self) -> None:
        for name, level in self._saved.items():
            logging.getLogger(name).setLevel(level)
        self._saved.clear()

    @property
    def installed(self) -> bool:
        return bool(self._saved)
