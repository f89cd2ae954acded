"""
Interview lifecycle on the client: interview type and job description,
recording with automatic end-of-answer detection, and end-of-interview feedback.
"""

from __future__ import annotations

import asyncio
import logging
from typing import Callable, List, Optional

from voice_interview.api import InterviewApiClient
from voice_interview.config import DEFAULT_VOICE, VOICES
from voice_interview.conversation import Conversation, ConversationMessage
from voice_interview.errors import FeedbackError
from voice_interview.playback import SpeechPlayer
from voice_interview.prompts import InterviewType, build_system_prompt
from voice_interview.recorder import AudioRecorder, StreamFactory, sounddevice_stream
from voice_interview.tracker import UsageTracker, User
from voice_interview.transcription import DualTranscriber, SecondaryTranscriber
from voice_interview.turn import TurnController, TurnResult

LOG = logging.getLogger("interview")


class InterviewSession:
    def __init__(
        self,
        api: InterviewApiClient,
        user: User,
        interview_type: InterviewType = InterviewType.SOFTWARE_ENGINEER,
        job_description: Optional[str] = None,
        voice: str = DEFAULT_VOICE,
        player: Optional[SpeechPlayer] = None,
        local_transcriber: Optional[SecondaryTranscriber] = None,
        stream_factory: StreamFactory = sounddevice_stream,
        on_partial: Optional[Callable[[str], None]] = None,
        on_turn: Optional[Callable[[Optional[TurnResult]], None]] = None,
        alert: Optional[Callable[[str], None]] = None,
    ) -> None:
        if voice not in VOICES:
            raise ValueError(f"Unknown voice {voice!r}; expected one of {', '.join(VOICES)}")
        self.api = api
        self.user = user
        self.interview_type = InterviewType(interview_type)
        self.job_description = job_description
        self.on_turn = on_turn
        self.player = player
        self.tracker = UsageTracker(api)
        self.conversation = Conversation(build_system_prompt(self.interview_type, job_description))
        self.recorder = AudioRecorder(on_silence_detected=self._on_silence_detected, stream_factory=stream_factory)
        self.controller = TurnController(
            recorder=self.recorder,
            transcriber=DualTranscriber(api, local_transcriber),
            api=api,
            conversation=self.conversation,
            tracker=self.tracker,
            user=user,
            interview_type=self.interview_type.value,
            player=player,
            voice=voice,
            on_partial=on_partial,
            alert=alert,
        )
        self._pending_turn: Optional[asyncio.Task] = None

    @property
    def total_tokens(self) -> int:
        return self.controller.session.total_tokens

    @property
    def session_id(self) -> Optional[str]:
        return self.controller.session.session_id

    @property
    def is_processing(self) -> bool:
        return self.controller.is_processing

    @property
    def voice(self) -> str:
        return self.controller.voice

    @voice.setter
    def voice(self, voice: str) -> None:
        if voice not in VOICES:
            raise ValueError(f"Unknown voice {voice!r}")
        self.controller.voice = voice

    def messages(self) -> List[ConversationMessage]:
        return self.conversation.transcript()

    async def start_recording(self) -> None:
        if self.controller.is_processing:
            LOG.info("Still processing the previous answer; not recording")
            return
        self.stop_speaking()
        await self.recorder.start()

    def _on_silence_detected(self) -> None:
        self._pending_turn = asyncio.create_task(self.stop_and_process())

    async def stop_and_process(self) -> Optional[TurnResult]:
        result = await self.controller.process_turn()
        if self.on_turn is not None:
            self.on_turn(result)
        return result

    async def wait_for_turn(self) -> None:
        if self._pending_turn is not None:
            await self._pending_turn
            self._pending_turn = None

    def stop_speaking(self) -> None:
        if self.player is not None:
            self.player.stop()

    async def select_interview_type(self, interview_type: InterviewType) -> None:
        self.interview_type = InterviewType(interview_type)
        await self.new_interview()

    async def set_job_description(self, job_description: Optional[str]) -> None:
        self.job_description = job_description
        await self.new_interview()

    async def new_interview(self) -> None:
        """Close out the current session and start over with a fresh conversation."""
        self.stop_speaking()
        await self.recorder.stop()
        await self.tracker.complete_session(self.controller.session)
        self.tracker.reset_session(self.controller.session)
        self.controller.interview_type = self.interview_type.value
        self.conversation.reset(build_system_prompt(self.interview_type, self.job_description))
        LOG.info("New %s interview", self.interview_type.value)

    async def end_interview(self) -> Optional[str]:
        """Generate feedback for the whole conversation, meter it and complete the session."""
        self.stop_speaking()
        await self.wait_for_turn()
        if self.controller.is_processing:
            LOG.info("Still processing the last answer; not ending the interview yet")
            return None
        await self.recorder.stop()
        if not self.conversation.transcript():
            LOG.info("Nothing to give feedback on")
            return None
        ctx = self.controller.session
        try:
            result = await self.api.generate_feedback(self.conversation.to_payload())
        except FeedbackError as exc:
            LOG.error("Error generating feedback: %s", exc)
            await self.tracker.complete_session(ctx)
            return None
        await self.tracker.ensure_session(ctx, self.user, self.interview_type.value)
        await self.tracker.add_tokens(ctx, result.usage.total_tokens)
        await self.tracker.complete_session(ctx)
        return result.feedback
