"""
FastAPI backend for the voice mock-interview client.
Proxies transcription, streamed chat, speech and feedback calls to OpenAI and
keeps per-interview token metering in the session store.
"""

from __future__ import annotations

import json
import logging
import time
import uuid
from datetime import datetime
from typing import Any, AsyncIterator, Dict, List, Literal, Optional

from fastapi import FastAPI, File, UploadFile
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import Response, StreamingResponse
from pydantic import BaseModel, Field
from sqlalchemy import update
from sqlmodel import select

from voice_interview import config, providers
from voice_interview.db import close_db, get_session, init_db
from voice_interview.errors import ProviderError
from voice_interview.models import SessionRecord
from voice_interview.tokens import calculate_message_tokens, count_tokens

app = FastAPI(title="Voice Mock Interview", version="0.1.0")
LOG = logging.getLogger("interview")

SPEECH_MEDIA_TYPES = {
    "mp3": "audio/mpeg",
    "wav": "audio/wav",
    "opus": "audio/ogg",
    "aac": "audio/aac",
    "flac": "audio/flac",
    "pcm": "audio/L16",
}


@app.on_event("startup")
async def on_startup() -> None:
    await init_db()
    if not config.OPENAI_API_KEY:
        LOG.warning("OPENAI_API_KEY missing; provider endpoints will fail")


@app.on_event("shutdown")
async def on_shutdown() -> None:
    await close_db()


# CORS for local dev; adjust allowed origins for prod if needed.
app.add_middleware(
    CORSMiddleware,
    allow_origins=["*"],
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)


def _error(message: str, status_code: int = 500) -> Response:
    return Response(content=json.dumps({"error": message}), media_type="application/json", status_code=status_code)


def _sse(payload: Dict[str, Any]) -> str:
    return f"data: {json.dumps(payload)}\n\n"


@app.get("/api/health")
async def health() -> Dict[str, str]:
    return {"status": "ok", "message": "Server is running"}


class ChatMessage(BaseModel):
    role: Literal["system", "user", "assistant"]
    content: str


class ChatRequest(BaseModel):
    messages: List[ChatMessage]


class SpeechRequest(BaseModel):
    text: str
    voice: config.Voice = config.DEFAULT_VOICE


@app.post("/api/openai/transcribe")
async def transcribe_audio(file: UploadFile = File(...)) -> Any:
    payload = await file.read()
    if not payload:
        LOG.warning("Transcription received empty payload")
        return _error("empty_audio", status_code=400)

    started = time.perf_counter()
    try:
        text = await providers.transcribe(
            payload, filename=file.filename or "audio.wav", content_type=file.content_type or "audio/wav"
        )
    except ProviderError as exc:
        LOG.error("Error transcribing audio: %s", exc)
        return _error(str(exc), status_code=500)

    LOG.info("Transcribed %s bytes in %.0f ms", len(payload), (time.perf_counter() - started) * 1000)
    return {"text": text, "usage": {"totalTokens": count_tokens(text)}}


@app.post("/api/openai/chat")
async def chat_completion(payload: ChatRequest) -> StreamingResponse:
    messages = [m.model_dump() for m in payload.messages]

    async def events() -> AsyncIterator[str]:
        full_response = ""
        usage: Optional[Dict[str, int]] = None
        try:
            async for delta, chunk_usage in providers.stream_chat(messages):
                if chunk_usage:
                    usage = chunk_usage
                if not delta:
                    continue
                full_response += delta
                yield _sse({"content": full_response})
        except ProviderError as exc:
            LOG.error("Error generating chat completion: %s", exc)
            yield _sse({"error": str(exc)})
            return

        if usage is None:
            prompt_tokens = calculate_message_tokens(messages)
            completion_tokens = count_tokens(full_response)
            usage = {
                "promptTokens": prompt_tokens,
                "completionTokens": completion_tokens,
                "totalTokens": prompt_tokens + completion_tokens,
            }
        yield _sse({"done": True, "response": full_response, "usage": usage})

    return StreamingResponse(
        events(),
        media_type="text/event-stream",
        headers={"Cache-Control": "no-cache", "Connection": "keep-alive"},
    )


@app.post("/api/openai/speech")
async def speech_endpoint(payload: SpeechRequest) -> Response:
    text = payload.text.strip()
    if not text:
        return _error("empty_text", status_code=400)
    try:
        audio_bytes = await providers.synthesize_speech(text, payload.voice)
    except ProviderError as exc:
        LOG.error("Error generating speech: %s", exc)
        return _error(str(exc), status_code=500)
    media_type = SPEECH_MEDIA_TYPES.get(config.OPENAI_TTS_FORMAT, "application/octet-stream")
    return Response(content=audio_bytes, media_type=media_type)


@app.post("/api/openai/feedback")
async def feedback_endpoint(payload: ChatRequest) -> Any:
    messages = [m.model_dump() for m in payload.messages]
    try:
        feedback, usage = await providers.complete_chat(messages)
    except ProviderError as exc:
        LOG.error("Error generating feedback: %s", exc)
        return _error(str(exc), status_code=500)
    if usage is None:
        prompt_tokens = calculate_message_tokens(messages)
        completion_tokens = count_tokens(feedback)
        usage = {
            "promptTokens": prompt_tokens,
            "completionTokens": completion_tokens,
            "totalTokens": prompt_tokens + completion_tokens,
        }
    return {"feedback": feedback, "usage": usage}


class CreateSessionPayload(BaseModel):
    user_id: str = Field(..., alias="userId")
    user_email: Optional[str] = Field(default=None, alias="userEmail")
    interview_type: str = Field(..., alias="interviewType")


class TokenUpdatePayload(BaseModel):
    token_count: int = Field(..., alias="tokenCount", ge=0)


def _session_payload(row: SessionRecord) -> Dict[str, Any]:
    return {
        "id": row.id,
        "userId": row.user_id,
        "userEmail": row.user_email,
        "interviewType": row.interview_type,
        "startTime": row.start_time.isoformat() if row.start_time else None,
        "endTime": row.end_time.isoformat() if row.end_time else None,
        "totalTokens": row.total_tokens,
        "completed": row.completed,
    }


@app.post("/api/sessions")
async def create_session(payload: CreateSessionPayload) -> Dict[str, str]:
    session_id = str(uuid.uuid4())
    async with get_session() as session:
        session.add(
            SessionRecord(
                id=session_id,
                user_id=payload.user_id,
                user_email=payload.user_email,
                interview_type=payload.interview_type,
            )
        )
        await session.commit()
    LOG.info("Session created: id=%s user=%s type=%s", session_id, payload.user_id, payload.interview_type)
    return {"sessionId": session_id}


@app.post("/api/sessions/{session_id}/tokens")
async def update_session_tokens(session_id: str, payload: TokenUpdatePayload) -> Any:
    # Additive update in SQL so concurrent writers never lose an increment.
    stmt = (
        update(SessionRecord)
        .where(SessionRecord.id == session_id)
        .values(total_tokens=SessionRecord.total_tokens + payload.token_count)
    )
    async with get_session() as session:
        result = await session.execute(stmt)
        await session.commit()
    if result.rowcount == 0:
        return _error("Session not found", status_code=404)
    return {"success": True}


@app.post("/api/sessions/{session_id}/complete")
async def complete_session(session_id: str) -> Any:
    async with get_session() as session:
        row = await session.get(SessionRecord, session_id)
        if row is None:
            return _error("Session not found", status_code=404)
        if not row.completed:
            row.completed = True
            row.end_time = datetime.utcnow()
            session.add(row)
            await session.commit()
            LOG.info("Session completed: id=%s total_tokens=%s", session_id, row.total_tokens)
    return {"success": True}


@app.get("/api/sessions/{session_id}")
async def get_session_data(session_id: str) -> Any:
    async with get_session() as session:
        row = await session.get(SessionRecord, session_id)
    if row is None:
        return _error("Session not found", status_code=404)
    return _session_payload(row)


@app.get("/api/users/{user_id}/sessions")
async def list_user_sessions(user_id: str) -> List[Dict[str, Any]]:
    async with get_session() as session:
        rows = (
            await session.exec(
                select(SessionRecord)
                .where(SessionRecord.user_id == user_id)
                .order_by(SessionRecord.start_time.desc())
            )
        ).all()
    return [_session_payload(row) for row in rows]
