"""
Client for the interview backend: the three AI capabilities, feedback and the
session store. Every call returns its result together with a usage figure.
"""

from __future__ import annotations

import json
import logging
from dataclasses import dataclass, field
from typing import Any, AsyncIterator, Callable, Dict, List, Optional, Type, Union

import httpx

from voice_interview import config
from voice_interview.errors import (
    CompletionError,
    FeedbackError,
    InterviewError,
    SpeechError,
    TrackingError,
    TranscriptionError,
)
from voice_interview.prompts import FEEDBACK_PROMPT
from voice_interview.tokens import count_tokens

LOG = logging.getLogger("interview.api")


@dataclass
class Usage:
    prompt_tokens: int = 0
    completion_tokens: int = 0
    total_tokens: int = 0

    @classmethod
    def from_payload(cls, raw: Optional[Dict[str, Any]]) -> "Usage":
        raw = raw or {}
        return cls(
            prompt_tokens=int(raw.get("promptTokens") or 0),
            completion_tokens=int(raw.get("completionTokens") or 0),
            total_tokens=int(raw.get("totalTokens") or 0),
        )


@dataclass
class Transcript:
    text: str
    usage: Usage


@dataclass
class ChatDelta:
    """Accumulated assistant text so far."""

    text: str


@dataclass
class ChatResult:
    response: str
    usage: Usage = field(default_factory=Usage)


@dataclass
class SpeechAudio:
    audio: bytes
    usage: Usage


@dataclass
class Feedback:
    feedback: str
    usage: Usage


def _error_message(resp: httpx.Response, default: str) -> str:
    try:
        return resp.json().get("error") or default
    except (ValueError, AttributeError):
        return resp.text or default


def _decode(resp: httpx.Response, error: Type[InterviewError], action: str, expected: type = dict) -> Any:
    try:
        data = resp.json()
    except ValueError as exc:
        raise error(f"{action} returned a malformed response") from exc
    if not isinstance(data, expected):
        raise error(f"{action} returned an unexpected payload")
    return data


class InterviewApiClient:
    """Async client for the backend; owns one httpx.AsyncClient."""

    def __init__(
        self,
        base_url: str = config.API_BASE_URL,
        timeout: float = config.API_TIMEOUT,
        transport: Optional[httpx.AsyncBaseTransport] = None,
    ) -> None:
        self._client = httpx.AsyncClient(base_url=base_url.rstrip("/") + "/", timeout=timeout, transport=transport)

    async def aclose(self) -> None:
        await self._client.aclose()

    async def __aenter__(self) -> "InterviewApiClient":
        return self

    async def __aexit__(self, *exc_info: Any) -> None:
        await self.aclose()

    async def health(self) -> bool:
        try:
            resp = await self._client.get("health")
        except httpx.HTTPError:
            return False
        return resp.status_code == 200

    # -- AI capabilities -------------------------------------------------

    async def transcribe(self, audio: bytes, filename: str = "audio.wav") -> Transcript:
        try:
            resp = await self._client.post("openai/transcribe", files={"file": (filename, audio, "audio/wav")})
        except httpx.HTTPError as exc:
            raise TranscriptionError(f"transcription request failed: {exc}") from exc
        if resp.status_code != 200:
            raise TranscriptionError(_error_message(resp, "Failed to transcribe audio"))
        data = _decode(resp, TranscriptionError, "transcription")
        return Transcript(text=data.get("text") or "", usage=Usage.from_payload(data.get("usage")))

    async def stream_chat(self, messages: List[Dict[str, str]]) -> AsyncIterator[Union[ChatDelta, ChatResult]]:
        """
        Lazily yield ChatDelta events in arrival order, then exactly one ChatResult.
        Deltas never shrink: a snapshot shorter than the previous one is dropped.
        """
        latest = ""
        try:
            async with self._client.stream("POST", "openai/chat", json={"messages": messages}) as resp:
                if resp.status_code != 200:
                    await resp.aread()
                    raise CompletionError(_error_message(resp, "Failed to generate chat completion"))
                async for line in resp.aiter_lines():
                    if not line.startswith("data: "):
                        continue
                    try:
                        data = json.loads(line[len("data: "):])
                    except json.JSONDecodeError:
                        LOG.warning("Error parsing SSE data: %s", line[:200])
                        continue
                    if data.get("error"):
                        raise CompletionError(data["error"])
                    if data.get("done"):
                        yield ChatResult(response=data.get("response") or latest, usage=Usage.from_payload(data.get("usage")))
                        return
                    content = data.get("content")
                    if content and len(content) > len(latest):
                        latest = content
                        yield ChatDelta(text=content)
        except httpx.HTTPError as exc:
            raise CompletionError(f"chat request failed: {exc}") from exc
        raise CompletionError("chat stream ended without a final response")

    async def complete_chat(
        self, messages: List[Dict[str, str]], on_chunk: Optional[Callable[[str], None]] = None
    ) -> ChatResult:
        result: Optional[ChatResult] = None
        async for event in self.stream_chat(messages):
            if isinstance(event, ChatResult):
                result = event
            elif on_chunk is not None:
                on_chunk(event.text)
        if result is None:
            raise CompletionError("chat stream ended without a final response")
        return result

    async def synthesize_speech(self, text: str, voice: str = config.DEFAULT_VOICE) -> SpeechAudio:
        try:
            resp = await self._client.post("openai/speech", json={"text": text, "voice": voice})
        except httpx.HTTPError as exc:
            raise SpeechError(f"speech request failed: {exc}") from exc
        if resp.status_code != 200:
            raise SpeechError(_error_message(resp, "Failed to generate speech"))
        # The provider reports no usage for speech.
        return SpeechAudio(audio=resp.content, usage=Usage(total_tokens=count_tokens(text)))

    async def generate_feedback(self, messages: List[Dict[str, str]]) -> Feedback:
        request = list(messages) + [{"role": "system", "content": FEEDBACK_PROMPT}]
        try:
            resp = await self._client.post("openai/feedback", json={"messages": request})
        except httpx.HTTPError as exc:
            raise FeedbackError(f"feedback request failed: {exc}") from exc
        if resp.status_code != 200:
            raise FeedbackError(_error_message(resp, "Failed to generate feedback"))
        data = _decode(resp, FeedbackError, "feedback")
        return Feedback(feedback=data.get("feedback") or "", usage=Usage.from_payload(data.get("usage")))

    # -- session store ---------------------------------------------------

    async def _store_call(self, method: str, url: str, action: str, **kwargs: Any) -> httpx.Response:
        try:
            resp = await self._client.request(method, url, **kwargs)
        except httpx.HTTPError as exc:
            raise TrackingError(f"{action} failed: {exc}") from exc
        if resp.status_code != 200:
            raise TrackingError(_error_message(resp, f"{action} failed"))
        return resp

    async def create_session(self, user_id: str, user_email: Optional[str], interview_type: str) -> str:
        resp = await self._store_call(
            "POST",
            "sessions",
            "create session",
            json={"userId": user_id, "userEmail": user_email, "interviewType": interview_type},
        )
        session_id = _decode(resp, TrackingError, "create session").get("sessionId")
        if not session_id:
            raise TrackingError("create session returned no session id")
        return session_id

    async def update_session_tokens(self, session_id: str, token_count: int) -> None:
        await self._store_call(
            "POST", f"sessions/{session_id}/tokens", "update session tokens", json={"tokenCount": token_count}
        )

    async def complete_session(self, session_id: str) -> None:
        await self._store_call("POST", f"sessions/{session_id}/complete", "complete session")

    async def get_session(self, session_id: str) -> Optional[Dict[str, Any]]:
        """Return the stored session, or None when the store does not know the id."""
        try:
            resp = await self._client.get(f"sessions/{session_id}")
        except httpx.HTTPError as exc:
            raise TrackingError(f"get session failed: {exc}") from exc
        if resp.status_code == 404:
            return None
        if resp.status_code != 200:
            raise TrackingError(_error_message(resp, "get session failed"))
        return _decode(resp, TrackingError, "get session")

    async def list_sessions(self, user_id: str) -> List[Dict[str, Any]]:
        resp = await self._store_call("GET", f"users/{user_id}/sessions", "list sessions")
        return _decode(resp, TrackingError, "list sessions", expected=list)
