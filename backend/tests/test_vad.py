from __future__ import annotations

import numpy as np

from voice_interview.vad import FrequencyAnalyser, VadState, VoiceActivityDetector, rms_energy

LOUD = 40.0
QUIET = 2.0


def _run(detector, energies):
    return [i for i, energy in enumerate(energies) if detector.update(energy)]


def _detector(**kwargs):
    detector = VoiceActivityDetector(**kwargs)
    detector.reset()
    return detector


def test_speech_then_silence_fires_exactly_once():
    detector = _detector()
    energies = [LOUD] * 5 + [QUIET] * 50 + [QUIET] * 100 + [LOUD] * 10 + [QUIET] * 60
    fired = _run(detector, energies)
    assert fired == [5 + 49]
    assert detector.state is VadState.STOPPED


def test_silence_only_never_fires():
    detector = _detector()
    assert _run(detector, [QUIET] * 1000) == []
    assert detector.state is VadState.AWAITING_SPEECH


def test_short_blips_do_not_confirm_speech():
    detector = _detector(speech_frames=3, silence_frames=5)
    energies = ([LOUD, LOUD] + [QUIET] * 10) * 20
    assert _run(detector, energies) == []
    assert detector.speech_confirmed is False


def test_resumed_speech_restarts_the_silence_count():
    detector = _detector(speech_frames=2, silence_frames=4)
    energies = [LOUD] * 2 + [QUIET] * 3 + [LOUD] + [QUIET] * 3
    assert _run(detector, energies) == []
    assert detector.state is VadState.COOLDOWN_SILENCE
    assert detector.update(QUIET) is True


def test_state_progression():
    detector = VoiceActivityDetector(speech_frames=2, silence_frames=2)
    assert detector.state is VadState.IDLE
    assert detector.update(LOUD) is False  # not started
    detector.reset()
    assert detector.state is VadState.AWAITING_SPEECH
    detector.update(LOUD)
    assert detector.state is VadState.AWAITING_SPEECH
    detector.update(LOUD)
    assert detector.state is VadState.SPEAKING
    detector.update(QUIET)
    assert detector.state is VadState.COOLDOWN_SILENCE
    assert detector.update(QUIET) is True
    assert detector.update(QUIET) is False


def test_threshold_is_exclusive():
    detector = _detector(threshold=10.0, speech_frames=1, silence_frames=1)
    detector.update(10.0)
    assert detector.speech_confirmed is False


def test_reset_clears_counters():
    detector = _detector(speech_frames=1, silence_frames=1)
    detector.update(LOUD)
    assert detector.update(QUIET) is True
    detector.reset()
    assert (detector.consecutive_speech, detector.consecutive_silence, detector.speech_confirmed) == (0, 0, False)
    assert _run(detector, [QUIET] * 5) == []


def test_analyser_energy_for_silence_and_tone():
    analyser = FrequencyAnalyser(smoothing=0.0)
    assert analyser.bin_count == 256
    silent = analyser.byte_frequency_data(np.zeros(512, dtype=np.float32))
    assert silent.shape == (256,)
    assert rms_energy(silent) == 0.0

    t = np.arange(512) / 16000
    tone = 0.5 * np.sin(2 * np.pi * 1000 * t)
    assert rms_energy(analyser.byte_frequency_data(tone)) > 10.0


def test_analyser_handles_short_and_empty_buffers():
    analyser = FrequencyAnalyser()
    assert rms_energy(analyser.byte_frequency_data(np.zeros(0))) == 0.0
    data = analyser.byte_frequency_data(np.ones(10) * 0.1)
    assert data.dtype == np.uint8
    assert rms_energy(np.zeros(0, dtype=np.uint8)) == 0.0
