from __future__ import annotations

import pytest

from conftest import wav_bytes
from voice_interview.playback import SpeechPlayer


class FakeOutput:
    def __init__(self):
        self.calls = []

    def play(self, data, sample_rate):
        self.calls.append(("play", len(data), sample_rate))

    def stop(self):
        self.calls.append(("stop",))


def test_play_decodes_wav_and_marks_speaking():
    output = FakeOutput()
    player = SpeechPlayer(backend=output)
    player.play(wav_bytes(0.25, 24000))
    assert output.calls == [("play", 6000, 24000)]
    assert player.is_speaking


def test_new_speech_interrupts_current_speech():
    output = FakeOutput()
    player = SpeechPlayer(backend=output)
    player.play(wav_bytes(0.1))
    player.play(wav_bytes(0.1))
    assert [c[0] for c in output.calls] == ["play", "stop", "play"]


def test_stop_only_touches_device_while_speaking():
    output = FakeOutput()
    player = SpeechPlayer(backend=output)
    player.stop()
    assert output.calls == []
    player.play(wav_bytes(0.1))
    player.stop()
    player.stop()
    assert [c[0] for c in output.calls] == ["play", "stop"]
    assert not player.is_speaking


def test_undecodable_audio_raises():
    player = SpeechPlayer(backend=FakeOutput())
    with pytest.raises(RuntimeError):
        player.play(b"not audio")
    assert not player.is_speaking


def test_stop_failure_is_logged_not_raised(caplog):
    class BrokenOutput(FakeOutput):
        def stop(self):
            raise RuntimeError("PortAudio not initialized")

    player = SpeechPlayer(backend=BrokenOutput())
    player.play(wav_bytes(0.1))
    player.stop()
    assert not player.is_speaking
    assert "Stopping playback failed" in caplog.text
