"""
Microphone recording with voice-activity detection.

The PortAudio callback only appends frames to a locked buffer; energy sampling,
the VAD decision and the hard ceiling all run on the asyncio loop.
"""

from __future__ import annotations

import asyncio
import logging
import threading
from collections import deque
from dataclasses import dataclass
from enum import Enum
from io import BytesIO
from typing import Any, Callable, Deque, List, Optional

import numpy as np
import soundfile as sf

from voice_interview.config import FFT_SIZE, MAX_RECORDING_SECONDS, SAMPLE_INTERVAL, SAMPLE_RATE
from voice_interview.errors import DeviceError
from voice_interview.vad import FrequencyAnalyser, VadState, VoiceActivityDetector, rms_energy

LOG = logging.getLogger("interview.recorder")

StreamFactory = Callable[[Callable[..., None], int], Any]


@dataclass
class AudioClip:
    data: bytes
    sample_rate: int
    duration: float

    def __len__(self) -> int:
        return len(self.data)


class RecorderState(str, Enum):
    IDLE = "idle"
    RECORDING = "recording"
    STOPPED = "stopped"


def sounddevice_stream(callback: Callable[..., None], sample_rate: int) -> Any:
    # Imported lazily so the package loads on machines without PortAudio.
    import sounddevice as sd

    return sd.InputStream(
        samplerate=sample_rate,
        channels=1,
        dtype="float32",
        blocksize=FFT_SIZE // 2,
        callback=callback,
    )


class AudioRecorder:
    """
    start() opens the input stream and begins sampling; on_silence_detected is
    called at most once per recording, by the VAD or by the max-duration
    timer, whichever comes first. stop() releases the device and returns the clip.
    """

    def __init__(
        self,
        on_silence_detected: Callable[[], None],
        stream_factory: StreamFactory = sounddevice_stream,
        sample_rate: int = SAMPLE_RATE,
        max_duration: float = MAX_RECORDING_SECONDS,
        sample_interval: float = SAMPLE_INTERVAL,
        detector: Optional[VoiceActivityDetector] = None,
        analyser: Optional[FrequencyAnalyser] = None,
    ) -> None:
        self.on_silence_detected = on_silence_detected
        self.stream_factory = stream_factory
        self.sample_rate = sample_rate
        self.max_duration = max_duration
        self.sample_interval = sample_interval
        self.detector = detector or VoiceActivityDetector()
        self.analyser = analyser or FrequencyAnalyser()
        self.state = RecorderState.IDLE

        self._lock = threading.Lock()
        self._chunks: List[np.ndarray] = []
        self._recent: Deque[np.ndarray] = deque()
        self._recent_len = 0
        self._stream: Any = None
        self._sampler: Optional[asyncio.Task] = None
        self._ceiling: Optional[asyncio.TimerHandle] = None
        self._silence_reported = False

    @property
    def is_recording(self) -> bool:
        return self.state is RecorderState.RECORDING

    @property
    def vad_state(self) -> VadState:
        return self.detector.state

    async def start(self) -> None:
        if self.is_recording:
            LOG.info("Recording already in progress")
            return
        with self._lock:
            self._chunks = []
            self._recent.clear()
            self._recent_len = 0
        self._silence_reported = False
        self.detector.reset()
        self.analyser.reset()

        try:
            self._stream = self.stream_factory(self._on_audio, self.sample_rate)
            self._stream.start()
        except Exception as exc:
            self._release_stream()
            self.detector.stop()
            raise DeviceError(f"Error accessing microphone: {exc}") from exc

        self.state = RecorderState.RECORDING
        loop = asyncio.get_running_loop()
        self._ceiling = loop.call_later(self.max_duration, self._on_ceiling)
        self._sampler = asyncio.create_task(self._sample_loop())
        LOG.info("Recording started (rate=%s, ceiling=%.0fs)", self.sample_rate, self.max_duration)

    def _on_audio(self, indata: np.ndarray, frames: int, time_info: Any, status: Any) -> None:
        if status:
            LOG.debug("input status: %s", status)
        frame = np.array(indata, dtype=np.float32).reshape(len(indata), -1)[:, 0]
        with self._lock:
            self._chunks.append(frame)
            self._recent.append(frame)
            self._recent_len += frame.size
            while self._recent and self._recent_len - self._recent[0].size >= self.analyser.fft_size:
                self._recent_len -= self._recent.popleft().size

    def _latest_samples(self) -> np.ndarray:
        with self._lock:
            if not self._recent:
                return np.zeros(0, dtype=np.float32)
            return np.concatenate(list(self._recent))

    def sample(self) -> bool:
        """Run one energy sample; True when it ended the answer."""
        if not self.is_recording or self._silence_reported:
            return False
        energy = rms_energy(self.analyser.byte_frequency_data(self._latest_samples()))
        if self.detector.update(energy):
            self._report_silence("silence")
            return True
        return False

    async def _sample_loop(self) -> None:
        while self.is_recording and not self._silence_reported:
            if self.sample():
                return
            await asyncio.sleep(self.sample_interval)

    def _on_ceiling(self) -> None:
        self._ceiling = None
        if self.is_recording:
            LOG.info("Maximum recording time reached (%.0fs)", self.max_duration)
            self._report_silence("max_duration")

    def _report_silence(self, reason: str) -> None:
        if self._silence_reported:
            return
        self._silence_reported = True
        self.detector.stop()
        if self._ceiling is not None:
            self._ceiling.cancel()
            self._ceiling = None
        LOG.debug("Reporting end of answer (%s)", reason)
        self.on_silence_detected()

    async def stop(self) -> Optional[AudioClip]:
        if not self.is_recording:
            return None
        self.state = RecorderState.STOPPED
        self.detector.stop()
        if self._ceiling is not None:
            self._ceiling.cancel()
            self._ceiling = None
        sampler, self._sampler = self._sampler, None
        if sampler is not None and sampler is not asyncio.current_task() and not sampler.done():
            sampler.cancel()
            try:
                await sampler
            except asyncio.CancelledError:
                pass
        self._release_stream()

        with self._lock:
            chunks, self._chunks = self._chunks, []
            self._recent.clear()
            self._recent_len = 0
        if not chunks:
            LOG.warning("Recording stopped with no audio captured")
            return None
        samples = np.concatenate(chunks)
        buf = BytesIO()
        sf.write(buf, samples, self.sample_rate, format="WAV", subtype="PCM_16")
        clip = AudioClip(data=buf.getvalue(), sample_rate=self.sample_rate, duration=samples.size / self.sample_rate)
        LOG.info("Recording stopped: %.1fs, %s bytes", clip.duration, len(clip))
        return clip

    def _release_stream(self) -> None:
        stream, self._stream = self._stream, None
        if stream is None:
            return
        for action in ("stop", "close"):
            try:
                getattr(stream, action)()
            except Exception as exc:
                LOG.warning("Failed to %s input stream: %s", action, exc)
