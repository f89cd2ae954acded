from __future__ import annotations

import asyncio

import numpy as np
import pytest

from conftest import wav_bytes
from test_recorder import FakeStream
from voice_interview import providers
from voice_interview.api import InterviewApiClient
from voice_interview.interview import InterviewSession
from voice_interview.playback import SpeechPlayer
from voice_interview.prompts import InterviewType
from voice_interview.tracker import User

TONE = (0.5 * np.sin(2 * np.pi * 440 * np.arange(8000) / 16000)).astype(np.float32)


class FakePlayer:
    def __init__(self):
        self.played = []
        self.stops = 0

    def play(self, audio):
        self.played.append(audio)

    def stop(self):
        self.stops += 1


class Setup:
    def __init__(self, transport, **kwargs):
        self.streams = []
        self.turns = []
        self.alerts = []
        self.player = FakePlayer()
        self.api = InterviewApiClient(base_url="http://test/api", transport=transport)
        self.session = InterviewSession(
            api=self.api,
            user=User("u-42", "candidate@example.com"),
            player=self.player,
            stream_factory=self._factory,
            on_turn=self.turns.append,
            alert=self.alerts.append,
            **kwargs,
        )

    def _factory(self, callback, sample_rate):
        stream = FakeStream(callback, sample_rate)
        self.streams.append(stream)
        return stream

    async def answer(self):
        await self.session.start_recording()
        self.streams[-1].push(TONE)
        return await self.session.stop_and_process()


@pytest.fixture
async def setup(database, fake_providers, asgi_transport):
    s = Setup(asgi_transport)
    yield s
    await s.api.aclose()


async def test_turn_round_trip_meters_into_backend(setup, fake_providers):
    result = await setup.answer()

    assert result.transcript == fake_providers.transcript
    assert result.response == "Good answer. Next question?"
    assert [m.role for m in setup.session.messages()] == ["user", "assistant"]
    assert setup.player.played and setup.player.played[0][:4] == b"RIFF"
    assert setup.turns == [result]

    stored = await setup.api.get_session(setup.session.session_id)
    assert stored["userId"] == "u-42"
    assert stored["interviewType"] == "software-engineer"
    assert stored["totalTokens"] == setup.session.total_tokens == result.tokens
    assert stored["completed"] is False


async def test_silence_detection_triggers_a_turn(setup):
    await setup.session.start_recording()
    setup.streams[-1].push(TONE)
    setup.session._on_silence_detected()
    await setup.session.wait_for_turn()
    assert len(setup.turns) == 1
    assert setup.turns[0].response == "Good answer. Next question?"


async def test_recording_interrupts_speech(setup):
    await setup.session.start_recording()
    assert setup.player.stops == 1
    await setup.session.recorder.stop()


async def test_end_interview_meters_feedback_and_completes(setup):
    await setup.answer()
    before = setup.session.total_tokens

    feedback = await setup.session.end_interview()

    assert feedback == "Solid communication."
    assert setup.session.total_tokens == before + 50
    stored = await setup.api.get_session(setup.session.session_id)
    assert stored["completed"] is True
    assert stored["totalTokens"] == before + 50


async def test_end_interview_without_answers_returns_none(setup, fake_providers):
    assert await setup.session.end_interview() is None
    assert not any(call[0] == "feedback" for call in fake_providers.calls)


async def test_feedback_failure_still_completes_session(setup, fake_providers):
    await setup.answer()
    fake_providers.fail.add("feedback")
    assert await setup.session.end_interview() is None
    stored = await setup.api.get_session(setup.session.session_id)
    assert stored["completed"] is True


async def test_switching_interview_type_starts_over(setup):
    await setup.answer()
    old_session = setup.session.session_id

    await setup.session.select_interview_type(InterviewType.TECHNICAL_PRODUCT_SUPPORT)

    assert setup.session.messages() == []
    assert setup.session.session_id is None
    assert setup.session.total_tokens == 0
    assert "product support" in setup.session.conversation.system_prompt
    assert (await setup.api.get_session(old_session))["completed"] is True

    await setup.answer()
    stored = await setup.api.get_session(setup.session.session_id)
    assert setup.session.session_id != old_session
    assert stored["interviewType"] == "technical-product-support"
    sessions = await setup.api.list_sessions("u-42")
    assert [s["id"] for s in sessions][:1] == [setup.session.session_id]
    assert len(sessions) == 2


async def test_job_description_shapes_the_prompt(setup):
    await setup.session.set_job_description("Platform engineer, Kubernetes")
    assert setup.session.conversation.system_prompt.endswith("Platform engineer, Kubernetes")
    assert len(setup.session.conversation) == 1


async def test_store_outage_does_not_block_the_interview(setup, monkeypatch):
    async def down(*args, **kwargs):
        from voice_interview.errors import TrackingError

        raise TrackingError("store unavailable")

    monkeypatch.setattr(setup.api, "create_session", down)
    result = await setup.answer()
    assert result is not None
    assert setup.session.session_id.startswith("local_")
    assert setup.session.total_tokens == result.tokens


def test_unknown_voice_is_rejected(asgi_transport):
    with pytest.raises(ValueError):
        Setup(asgi_transport, voice="robot")


async def test_end_interview_waits_for_the_answer_being_processed(setup, fake_providers):
    await setup.answer()
    await setup.session.start_recording()
    setup.streams[-1].push(TONE)
    setup.session._on_silence_detected()

    feedback = await setup.session.end_interview()

    assert feedback == "Solid communication."
    assert len(setup.turns) == 1
    feedback_request = [c for c in fake_providers.calls if c[0] == "feedback"][0][1]
    assert sum(m["role"] == "user" for m in feedback_request) == 2
    sessions = await setup.api.list_sessions("u-42")
    assert len(sessions) == 1
    assert sessions[0]["completed"] is True
    assert sessions[0]["totalTokens"] == setup.session.total_tokens


async def test_end_interview_refuses_while_a_turn_is_running(setup, fake_providers, monkeypatch):
    gate = asyncio.Event()

    async def slow_transcribe(audio, filename="audio.wav", content_type="audio/wav"):
        await gate.wait()
        return await fake_providers.transcribe(audio, filename, content_type)

    monkeypatch.setattr(providers, "transcribe", slow_transcribe)
    await setup.session.start_recording()
    setup.streams[-1].push(TONE)
    turn = asyncio.create_task(setup.session.stop_and_process())
    while not setup.session.is_processing:
        await asyncio.sleep(0)

    assert await setup.session.end_interview() is None
    assert not any(call[0] == "feedback" for call in fake_providers.calls)

    gate.set()
    assert await turn is not None
    sessions = await setup.api.list_sessions("u-42")
    assert len(sessions) == 1
    assert sessions[0]["completed"] is False


async def test_stop_speaking_survives_output_device_errors(setup):
    class Output:
        def play(self, data, sample_rate):
            pass

        def stop(self):
            raise RuntimeError("PortAudio not initialized")

    setup.session.player = SpeechPlayer(backend=Output())
    setup.session.player.play(wav_bytes(0.1))
    await setup.session.start_recording()
    assert setup.session.recorder.is_recording
    assert not setup.session.player.is_speaking
    await setup.session.new_interview()
