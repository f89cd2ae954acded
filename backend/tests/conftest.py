from __future__ import annotations

import os
import tempfile
from io import BytesIO

# Must be set before voice_interview.db builds its engine.
_DB_DIR = tempfile.mkdtemp(prefix="voice-interview-tests-")
os.environ["DATABASE_URL"] = f"sqlite+aiosqlite:///{os.path.join(_DB_DIR, 'test.db')}"
os.environ["OPENAI_API_KEY"] = "test-key"

import httpx  # noqa: E402
import numpy as np  # noqa: E402
import pytest  # noqa: E402
import soundfile as sf  # noqa: E402

from voice_interview import providers  # noqa: E402
from voice_interview.db import close_db, init_db  # noqa: E402
from voice_interview.main import app  # noqa: E402


def wav_bytes(seconds: float = 0.5, sample_rate: int = 16000) -> bytes:
    t = np.arange(int(seconds * sample_rate)) / sample_rate
    buf = BytesIO()
    sf.write(buf, 0.3 * np.sin(2 * np.pi * 440 * t), sample_rate, format="WAV", subtype="PCM_16")
    return buf.getvalue()


class FakeProviders:
    """Stands in for the OpenAI calls made by the backend."""

    def __init__(self) -> None:
        self.transcript = "I would start with a hash map."
        self.deltas = ["Good", " answer.", " Next question?"]
        self.chat_usage = None
        self.feedback = "Solid communication."
        self.feedback_usage = {"promptTokens": 40, "completionTokens": 10, "totalTokens": 50}
        self.fail = set()
        self.calls = []

    async def transcribe(self, audio, filename="audio.wav", content_type="audio/wav"):
        self.calls.append(("transcribe", len(audio)))
        if "transcribe" in self.fail:
            raise providers.ProviderError("transcription failed with status 500", status_code=500)
        return self.transcript

    async def stream_chat(self, messages):
        self.calls.append(("chat", messages))
        for delta in self.deltas:
            yield delta, None
        if "chat" in self.fail:
            raise providers.ProviderError("chat failed with status 429", status_code=429)
        if self.chat_usage:
            yield "", self.chat_usage

    async def complete_chat(self, messages):
        self.calls.append(("feedback", messages))
        if "feedback" in self.fail:
            raise providers.ProviderError("chat failed with status 500", status_code=500)
        return self.feedback, self.feedback_usage

    async def synthesize_speech(self, text, voice):
        self.calls.append(("speech", text, voice))
        if "speech" in self.fail:
            raise providers.ProviderError("speech failed with status 500", status_code=500)
        return wav_bytes(0.1)


@pytest.fixture
def fake_providers(monkeypatch):
    fake = FakeProviders()
    monkeypatch.setattr(providers, "transcribe", fake.transcribe)
    monkeypatch.setattr(providers, "stream_chat", fake.stream_chat)
    monkeypatch.setattr(providers, "complete_chat", fake.complete_chat)
    monkeypatch.setattr(providers, "synthesize_speech", fake.synthesize_speech)
    return fake


@pytest.fixture
async def database():
    await init_db(reset=True)
    yield
    await close_db()


@pytest.fixture
def asgi_transport():
    return httpx.ASGITransport(app=app)


@pytest.fixture
async def client(database, fake_providers, asgi_transport):
    async with httpx.AsyncClient(transport=asgi_transport, base_url="http://test") as http:
        yield http
