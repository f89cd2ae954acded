"""
Voice-activity detection for one recording.

FrequencyAnalyser turns the latest block of microphone samples into byte
magnitudes the way a browser AnalyserNode does; VoiceActivityDetector consumes
one energy value per sample tick and reports the end of a spoken answer.
"""

from __future__ import annotations

import logging
from enum import Enum

import numpy as np

from voice_interview.config import (
    FFT_SIZE,
    FRAMES_BEFORE_SILENCE_DETECTION,
    FRAMES_BEFORE_SPEECH_DETECTION,
    MAX_DECIBELS,
    MIN_DECIBELS,
    SILENCE_THRESHOLD,
    SMOOTHING_TIME_CONSTANT,
)

LOG = logging.getLogger("interview.vad")


class VadState(str, Enum):
    IDLE = "idle"
    AWAITING_SPEECH = "awaiting_speech"
    SPEAKING = "speaking"
    COOLDOWN_SILENCE = "cooldown_silence"
    STOPPED = "stopped"


class FrequencyAnalyser:
    def __init__(
        self,
        fft_size: int = FFT_SIZE,
        smoothing: float = SMOOTHING_TIME_CONSTANT,
        min_decibels: float = MIN_DECIBELS,
        max_decibels: float = MAX_DECIBELS,
    ) -> None:
        self.fft_size = fft_size
        self.smoothing = smoothing
        self.min_decibels = min_decibels
        self.max_decibels = max_decibels
        self._window = np.blackman(fft_size)
        self._previous = np.zeros(fft_size // 2)

    @property
    def bin_count(self) -> int:
        return self.fft_size // 2

    def reset(self) -> None:
        self._previous = np.zeros(self.bin_count)

    def byte_frequency_data(self, samples: np.ndarray) -> np.ndarray:
        """Map the most recent fft_size samples (float, -1..1) to 0..255 per frequency bin."""
        block = np.zeros(self.fft_size, dtype=np.float64)
        tail = np.asarray(samples, dtype=np.float64).ravel()[-self.fft_size:]
        if tail.size:
            block[-tail.size:] = tail
        spectrum = np.abs(np.fft.rfft(block * self._window))[: self.bin_count] / self.fft_size
        smoothed = self.smoothing * self._previous + (1.0 - self.smoothing) * spectrum
        self._previous = smoothed
        with np.errstate(divide="ignore"):
            decibels = 20.0 * np.log10(smoothed)
        scaled = 255.0 * (decibels - self.min_decibels) / (self.max_decibels - self.min_decibels)
        return np.clip(np.nan_to_num(scaled, neginf=0.0), 0, 255).astype(np.uint8)


def rms_energy(frequency_data: np.ndarray) -> float:
    if frequency_data.size == 0:
        return 0.0
    values = frequency_data.astype(np.float64)
    return float(np.sqrt(np.mean(values * values)))


class VoiceActivityDetector:
    """
    Counts consecutive speech and silence samples. Once speech has been
    confirmed (speech_frames in a row), the first run of silence_frames quiet
    samples ends the answer. Reports that at most once per reset().
    """

    def __init__(
        self,
        threshold: float = SILENCE_THRESHOLD,
        speech_frames: int = FRAMES_BEFORE_SPEECH_DETECTION,
        silence_frames: int = FRAMES_BEFORE_SILENCE_DETECTION,
    ) -> None:
        self.threshold = threshold
        self.speech_frames = speech_frames
        self.silence_frames = silence_frames
        self.state = VadState.IDLE
        self.consecutive_speech = 0
        self.consecutive_silence = 0
        self.speech_confirmed = False

    def reset(self) -> None:
        self.state = VadState.AWAITING_SPEECH
        self.consecutive_speech = 0
        self.consecutive_silence = 0
        self.speech_confirmed = False

    def stop(self) -> None:
        self.state = VadState.STOPPED

    def update(self, energy: float) -> bool:
        """Feed one energy sample; True exactly when the end of speech is detected."""
        if self.state in (VadState.IDLE, VadState.STOPPED):
            return False

        if energy > self.threshold:
            self.consecutive_silence = 0
            self.consecutive_speech += 1
            if not self.speech_confirmed and self.consecutive_speech >= self.speech_frames:
                self.speech_confirmed = True
                LOG.debug("Speech detected at level %.2f", energy)
            if self.speech_confirmed:
                self.state = VadState.SPEAKING
            return False

        self.consecutive_speech = 0
        self.consecutive_silence += 1
        if not self.speech_confirmed:
            return False
        self.state = VadState.COOLDOWN_SILENCE
        if self.consecutive_silence >= self.silence_frames:
            LOG.info("Silence detected after speech (%s quiet samples)", self.consecutive_silence)
            self.state = VadState.STOPPED
            return True
        return False
