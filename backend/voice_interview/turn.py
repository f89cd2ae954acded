"""
One interview turn: stop capture, transcribe, ask the interviewer model,
speak the reply and meter usage. At most one turn runs at a time.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass
from typing import Any, Callable, Optional, Protocol

from voice_interview.config import DEFAULT_VOICE, MIN_CLIP_BYTES
from voice_interview.conversation import Conversation
from voice_interview.errors import CaptureError, CompletionError, TranscriptionError
from voice_interview.prompts import speakable_text
from voice_interview.recorder import AudioClip
from voice_interview.tracker import SessionContext, UsageTracker, User
from voice_interview.transcription import TranscriptionResult

LOG = logging.getLogger("interview.turn")


class Recorder(Protocol):
    async def stop(self) -> Optional[AudioClip]: ...


class Transcriber(Protocol):
    async def transcribe(self, audio: bytes) -> TranscriptionResult: ...


class Player(Protocol):
    def play(self, audio: bytes) -> None: ...

    def stop(self) -> None: ...


@dataclass
class TurnResult:
    transcript: str
    response: str
    tokens: int


class TurnController:
    """
    Owns the session context for one interview. process_turn() tags itself with
    the conversation generation it started in and drops its results if the
    conversation was reset while it was waiting on the network.
    """

    def __init__(
        self,
        recorder: Recorder,
        transcriber: Transcriber,
        api: Any,
        conversation: Conversation,
        tracker: UsageTracker,
        user: User,
        interview_type: str,
        player: Optional[Player] = None,
        voice: str = DEFAULT_VOICE,
        on_partial: Optional[Callable[[str], None]] = None,
        alert: Optional[Callable[[str], None]] = None,
        min_clip_bytes: int = MIN_CLIP_BYTES,
    ) -> None:
        self.recorder = recorder
        self.transcriber = transcriber
        self.api = api
        self.conversation = conversation
        self.tracker = tracker
        self.user = user
        self.interview_type = interview_type
        self.player = player
        self.voice = voice
        self.on_partial = on_partial
        self.alert = alert
        self.min_clip_bytes = min_clip_bytes
        self.session = SessionContext()
        self.is_processing = False

    async def process_turn(self) -> Optional[TurnResult]:
        if self.is_processing:
            LOG.info("Turn already in progress; ignoring request")
            return None
        self.is_processing = True
        generation = self.conversation.generation
        try:
            return await self._run_turn(generation)
        except CaptureError as exc:
            LOG.error("Capture failed: %s", exc)
            self._alert("No audio was recorded. Please check your microphone and try again.")
        except TranscriptionError as exc:
            LOG.warning("Transcription failed; turn dropped: %s", exc)
        except CompletionError as exc:
            LOG.error("Completion failed: %s", exc)
            self._alert("Error processing audio. Please try again.")
        finally:
            self.is_processing = False
        return None

    def _stale(self, generation: int) -> bool:
        if generation != self.conversation.generation:
            LOG.info("Conversation was reset during the turn; discarding result")
            return True
        return False

    async def _run_turn(self, generation: int) -> Optional[TurnResult]:
        clip = await self.recorder.stop()
        if clip is None:
            raise CaptureError("recording produced no audio clip")
        if len(clip) < self.min_clip_bytes:
            LOG.info("Clip too small (%s bytes); treating as noise", len(clip))
            return None

        transcription = await self.transcriber.transcribe(clip.data)
        if self._stale(generation):
            return None
        text = (transcription.primary or "").strip()
        if not text:
            LOG.info("Empty transcript; nothing to answer")
            return None
        tokens = await self._meter(transcription.usage.total_tokens, generation)
        if self._stale(generation):
            return None

        self.conversation.append_user(text, original_content=transcription.secondary)

        chat = await self.api.complete_chat(self.conversation.to_payload(), on_chunk=self._partial(generation))
        if self._stale(generation):
            return None
        self.conversation.append_assistant(chat.response)
        tokens += await self._meter(chat.usage.total_tokens, generation)

        tokens += await self._speak(chat.response, generation)
        return TurnResult(transcript=text, response=chat.response, tokens=tokens)

    def _partial(self, generation: int) -> Callable[[str], None]:
        def forward(text: str) -> None:
            if self.on_partial is not None and generation == self.conversation.generation:
                self.on_partial(text)

        return forward

    async def _speak(self, response: str, generation: int) -> int:
        text = speakable_text(response)
        if not text:
            return 0
        try:
            speech = await self.api.synthesize_speech(text, self.voice)
        except Exception as exc:
            LOG.warning("Speech synthesis failed: %s", exc)
            return 0
        if self._stale(generation):
            return 0
        tokens = await self._meter(speech.usage.total_tokens, generation)
        if self.player is not None and not self._stale(generation):
            try:
                self.player.play(speech.audio)
            except Exception as exc:
                LOG.warning("Speech playback failed: %s", exc)
        return tokens

    async def _meter(self, tokens: int, generation: int) -> int:
        if tokens <= 0 or generation != self.conversation.generation:
            return 0
        ctx = self.session
        had_session = ctx.session_id is not None
        try:
            await self.tracker.ensure_session(ctx, self.user, self.interview_type)
            if generation != self.conversation.generation:
                LOG.info("Conversation was reset while opening a session; dropping %s tokens", tokens)
                if not had_session:
                    # Opened for a conversation that no longer exists.
                    await self.tracker.complete_session(ctx)
                    self.tracker.reset_session(ctx)
                return 0
            await self.tracker.add_tokens(ctx, tokens)
        except Exception as exc:
            LOG.warning("Usage tracking failed (+%s tokens): %s", tokens, exc)
        return tokens

    def _alert(self, message: str) -> None:
        if self.alert is not None:
            self.alert(message)
