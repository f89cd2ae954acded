"""
Thin wrappers around the OpenAI REST endpoints the backend proxies.
Each call raises ProviderError on a missing key, transport failure or non-200 status.
"""

from __future__ import annotations

import json
import logging
from typing import Any, AsyncIterator, Dict, List, Optional, Tuple

import httpx

from voice_interview import config
from voice_interview.errors import ProviderError

LOG = logging.getLogger("interview.providers")


def _headers(content_type: Optional[str] = "application/json") -> Dict[str, str]:
    api_key = config.OPENAI_API_KEY
    if not api_key:
        raise ProviderError("OPENAI_API_KEY missing", status_code=500)
    headers = {"Authorization": f"Bearer {api_key}"}
    if content_type:
        headers["Content-Type"] = content_type
    return headers


def _usage_from_provider(raw: Optional[Dict[str, Any]]) -> Optional[Dict[str, int]]:
    if not raw:
        return None
    return {
        "promptTokens": int(raw.get("prompt_tokens") or 0),
        "completionTokens": int(raw.get("completion_tokens") or 0),
        "totalTokens": int(raw.get("total_tokens") or 0),
    }


async def transcribe(audio: bytes, filename: str = "audio.wav", content_type: str = "audio/wav") -> str:
    headers = _headers(content_type=None)
    files = {"file": (filename, audio, content_type)}
    data = {"model": config.OPENAI_TRANSCRIBE_MODEL}
    try:
        async with httpx.AsyncClient(timeout=config.OPENAI_TIMEOUT) as client:
            LOG.info("Calling OpenAI transcription: model=%s bytes=%s", config.OPENAI_TRANSCRIBE_MODEL, len(audio))
            resp = await client.post(
                f"{config.OPENAI_BASE_URL}/audio/transcriptions", headers=headers, files=files, data=data
            )
    except httpx.HTTPError as exc:
        raise ProviderError(f"transcription request failed: {exc}") from exc

    if resp.status_code != 200:
        LOG.warning("OpenAI transcription responded with %s: %s", resp.status_code, resp.text[:200])
        raise ProviderError(f"transcription failed with status {resp.status_code}", status_code=resp.status_code)
    return (resp.json().get("text") or "").strip()


async def stream_chat(messages: List[Dict[str, str]]) -> AsyncIterator[Tuple[str, Optional[Dict[str, int]]]]:
    """Yield (delta, usage) pairs; usage is only set on the provider's final usage chunk."""
    headers = _headers()
    payload = {
        "model": config.OPENAI_CHAT_MODEL,
        "messages": messages,
        "stream": True,
        "stream_options": {"include_usage": True},
    }
    try:
        async with httpx.AsyncClient(timeout=config.OPENAI_TIMEOUT) as client:
            LOG.info("Calling OpenAI chat (stream): model=%s messages=%s", config.OPENAI_CHAT_MODEL, len(messages))
            async with client.stream(
                "POST", f"{config.OPENAI_BASE_URL}/chat/completions", headers=headers, json=payload
            ) as resp:
                if resp.status_code != 200:
                    body = (await resp.aread()).decode("utf-8", errors="replace")
                    LOG.warning("OpenAI chat responded with %s: %s", resp.status_code, body[:200])
                    raise ProviderError(f"chat failed with status {resp.status_code}", status_code=resp.status_code)
                async for line in resp.aiter_lines():
                    if not line.startswith("data: "):
                        continue
                    data = line[len("data: "):].strip()
                    if data == "[DONE]":
                        break
                    try:
                        chunk = json.loads(data)
                    except json.JSONDecodeError:
                        LOG.warning("Skipping malformed chat chunk: %s", data[:200])
                        continue
                    choices = chunk.get("choices") or []
                    delta = (choices[0].get("delta") or {}).get("content") or "" if choices else ""
                    yield delta, _usage_from_provider(chunk.get("usage"))
    except httpx.HTTPError as exc:
        raise ProviderError(f"chat request failed: {exc}") from exc


async def complete_chat(messages: List[Dict[str, str]]) -> Tuple[str, Optional[Dict[str, int]]]:
    headers = _headers()
    payload = {"model": config.OPENAI_CHAT_MODEL, "messages": messages, "stream": False}
    try:
        async with httpx.AsyncClient(timeout=config.OPENAI_TIMEOUT) as client:
            LOG.info("Calling OpenAI chat: model=%s messages=%s", config.OPENAI_CHAT_MODEL, len(messages))
            resp = await client.post(f"{config.OPENAI_BASE_URL}/chat/completions", headers=headers, json=payload)
    except httpx.HTTPError as exc:
        raise ProviderError(f"chat request failed: {exc}") from exc

    if resp.status_code != 200:
        LOG.warning("OpenAI chat responded with %s: %s", resp.status_code, resp.text[:200])
        raise ProviderError(f"chat failed with status {resp.status_code}", status_code=resp.status_code)
    data = resp.json()
    choices = data.get("choices") or []
    content = (choices[0].get("message", {}).get("content") or "").strip() if choices else ""
    if not content:
        raise ProviderError("chat returned empty content")
    return content, _usage_from_provider(data.get("usage"))


async def synthesize_speech(text: str, voice: str) -> bytes:
    headers = _headers()
    payload = {
        "model": config.OPENAI_TTS_MODEL,
        "voice": voice,
        "input": text,
        "response_format": config.OPENAI_TTS_FORMAT,
    }
    try:
        async with httpx.AsyncClient(timeout=config.OPENAI_TIMEOUT) as client:
            LOG.info("Calling OpenAI speech: voice=%s text_len=%s", voice, len(text))
            resp = await client.post(f"{config.OPENAI_BASE_URL}/audio/speech", headers=headers, json=payload)
    except httpx.HTTPError as exc:
        raise ProviderError(f"speech request failed: {exc}") from exc

    if resp.status_code != 200:
        LOG.warning("OpenAI speech responded with %s: %s", resp.status_code, resp.text[:200])
        raise ProviderError(f"speech failed with status {resp.status_code}", status_code=resp.status_code)
    return resp.content
