from __future__ import annotations

import logging
from io import BytesIO
from typing import Any, Optional

import soundfile as sf

LOG = logging.getLogger("interview.playback")


class SpeechPlayer:
    """Non-blocking playback of synthesized speech; stop() is safe at any time."""

    def __init__(self, backend: Optional[Any] = None) -> None:
        self._backend = backend
        self.is_speaking = False

    def _sd(self) -> Any:
        if self._backend is None:
            # Imported lazily so the package loads on machines without PortAudio.
            import sounddevice as sd

            self._backend = sd
        return self._backend

    def play(self, audio: bytes) -> None:
        self.stop()
        data, sample_rate = sf.read(BytesIO(audio), dtype="float32")
        self._sd().play(data, sample_rate)
        self.is_speaking = True
        LOG.info("Playing %.1fs of speech", len(data) / sample_rate)

    def stop(self) -> None:
        if not self.is_speaking:
            return
        try:
            self._sd().stop()
        except Exception as exc:
            LOG.warning("Stopping playback failed: %s", exc)
        finally:
            self.is_speaking = False
