"""
Transcription sources. The backend provider is the primary transcript; a local
faster-whisper model, when configured, gives a secondary one kept for comparison.
"""

from __future__ import annotations

import asyncio
import logging
from dataclasses import dataclass
from io import BytesIO
from typing import Any, List, Optional, Protocol

from voice_interview import config
from voice_interview.api import Usage

LOG = logging.getLogger("interview.transcription")


class PrimaryTranscriber(Protocol):
    async def transcribe(self, audio: bytes, filename: str = ...) -> Any: ...


class SecondaryTranscriber(Protocol):
    async def transcribe(self, audio: bytes) -> Optional[str]: ...


@dataclass
class TranscriptionResult:
    primary: str
    usage: Usage
    secondary: Optional[str] = None


class LocalWhisperTranscriber:
    """Runs faster-whisper in a worker thread, bounded by a timeout."""

    def __init__(
        self,
        model: Any = None,
        model_size: str = config.LOCAL_WHISPER_MODEL,
        device: str = config.LOCAL_WHISPER_DEVICE,
        timeout: float = config.LOCAL_TRANSCRIBE_TIMEOUT,
        language: str = "en",
    ) -> None:
        if model is None:
            from faster_whisper import WhisperModel

            compute_type = "int8" if device in ("cpu", "auto-cpu") else "float16"
            model = WhisperModel(model_size, device=device, compute_type=compute_type)
            LOG.info("Loaded local whisper %s on %s (%s)", model_size, device, compute_type)
        self.model = model
        self.timeout = timeout
        self.language = language

    def _run(self, audio: bytes) -> str:
        segments, _info = self.model.transcribe(
            BytesIO(audio),
            beam_size=4,
            language=self.language,
            vad_filter=True,
            condition_on_previous_text=False,
        )
        texts: List[str] = []
        for seg in segments:
            seg_text = seg.text.strip()
            if seg_text:
                texts.append(seg_text)
        return " ".join(texts).strip()

    async def transcribe(self, audio: bytes) -> Optional[str]:
        try:
            text = await asyncio.wait_for(asyncio.to_thread(self._run, audio), timeout=self.timeout)
        except asyncio.TimeoutError:
            LOG.warning("Local transcription timed out after %.0fs", self.timeout)
            return None
        except Exception as exc:
            LOG.warning("Local transcription failed: %s", exc)
            return None
        return text or None


class DualTranscriber:
    """Primary failures propagate; a missing or failing secondary is just None."""

    def __init__(self, primary: PrimaryTranscriber, secondary: Optional[SecondaryTranscriber] = None) -> None:
        self.primary = primary
        self.secondary = secondary

    async def transcribe(self, audio: bytes) -> TranscriptionResult:
        if self.secondary is None:
            transcript = await self.primary.transcribe(audio)
            return TranscriptionResult(primary=transcript.text, usage=transcript.usage)

        primary_task = asyncio.ensure_future(self.primary.transcribe(audio))
        secondary_task = asyncio.ensure_future(self.secondary.transcribe(audio))
        try:
            transcript = await primary_task
        except BaseException:
            secondary_task.cancel()
            raise
        try:
            secondary = await secondary_task
        except Exception as exc:
            LOG.warning("Secondary transcription failed: %s", exc)
            secondary = None
        return TranscriptionResult(primary=transcript.text, usage=transcript.usage, secondary=secondary)
