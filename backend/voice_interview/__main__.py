"""
Command line entry point.

    python -m voice_interview serve          # run the backend
    python -m voice_interview interview ...  # talk to it from the terminal
"""

from __future__ import annotations

import argparse
import asyncio
import logging
import sys
from typing import Callable, Optional

from voice_interview import config
from voice_interview.prompts import InterviewType

LOG = logging.getLogger("interview")

HELP_TEXT = (
    "[enter] answer   [s] stop answering now   [x] stop speech   "
    "[n] new interview   [f] finish + feedback   [q] quit"
)


def _serve(args: argparse.Namespace) -> int:
    import uvicorn

    uvicorn.run("voice_interview.main:app", host=args.host, port=args.port, log_level=args.log_level.lower())
    return 0


async def _interview(args: argparse.Namespace) -> int:
    from voice_interview.api import InterviewApiClient
    from voice_interview.errors import DeviceError
    from voice_interview.interview import InterviewSession
    from voice_interview.playback import SpeechPlayer
    from voice_interview.tracker import User
    from voice_interview.transcription import LocalWhisperTranscriber

    job_description: Optional[str] = None
    if args.job_description:
        with open(args.job_description, encoding="utf-8") as fh:
            job_description = fh.read()

    local = LocalWhisperTranscriber() if config.LOCAL_WHISPER_MODEL else None

    def show_partial(text: str) -> None:
        sys.stdout.write(f"\rInterviewer: {text}")
        sys.stdout.flush()

    def show_turn(result) -> None:
        if result is None:
            print("\n(nothing captured, try again)")
        else:
            print(f"\nYou said: {result.transcript}")
        print(HELP_TEXT)

    async with InterviewApiClient(base_url=args.api_base_url) as api:
        if not await api.health():
            LOG.warning("Backend at %s is not reachable", args.api_base_url)
        session = InterviewSession(
            api,
            User(id=args.user_id, email=args.email),
            interview_type=InterviewType(args.interview_type),
            job_description=job_description,
            voice=args.voice,
            player=SpeechPlayer(),
            local_transcriber=local,
            on_partial=show_partial,
            on_turn=show_turn,
            alert=lambda message: print(f"\n!! {message}"),
        )
        print(HELP_TEXT)
        reader = LineReader()
        while True:
            print("> ", end="", flush=True)
            command = await reader.readline()
            if command == "q":
                await session.new_interview()
                return 0
            if command == "x":
                session.stop_speaking()
            elif command == "n":
                await session.new_interview()
                print("Started a new interview.")
            elif command == "f":
                feedback = await session.end_interview()
                print(feedback or "(no feedback available)")
                print(f"Tokens used: {session.total_tokens}")
                await session.new_interview()
            elif command == "s":
                print("Not recording; press enter to answer.")
            elif command == "":
                try:
                    await session.start_recording()
                except DeviceError as exc:
                    print(f"!! {exc}. Please ensure you have granted microphone permissions.")
                    continue
                print("Listening... (pause to finish, or type s and enter)")
                await _wait_for_answer(session, reader)
            else:
                print(HELP_TEXT)


class LineReader:
    """
    Reads stdin in a worker thread. A read still pending when the caller stops
    waiting carries over to the next readline().
    """

    def __init__(self, read: Callable[[], str] = input) -> None:
        self._read = read
        self._task: Optional[asyncio.Future] = None

    def pending(self) -> asyncio.Future:
        if self._task is None:
            self._task = asyncio.ensure_future(asyncio.to_thread(self._read))
        return self._task

    async def readline(self) -> str:
        task = self.pending()
        try:
            return (await task).strip().lower()
        finally:
            self._task = None


async def _wait_for_answer(session, reader: LineReader, poll: float = 0.1) -> None:
    """Until the recording ends: [s] stops it and processes the answer, [x] silences the interviewer."""
    while session.recorder.is_recording:
        done, _ = await asyncio.wait({reader.pending()}, timeout=poll)
        if not done:
            continue
        command = await reader.readline()
        if command == "s":
            if session.recorder.is_recording and not session.is_processing:
                await session.stop_and_process()
        elif command == "x":
            session.stop_speaking()
    await session.wait_for_turn()


def main(argv: Optional[list] = None) -> int:
    parser = argparse.ArgumentParser(prog="voice_interview", description="Voice mock-interview service")
    parser.add_argument("--log-level", default="INFO")
    sub = parser.add_subparsers(dest="command", required=True)

    serve = sub.add_parser("serve", help="run the backend API")
    serve.add_argument("--host", default="0.0.0.0")
    serve.add_argument("--port", type=int, default=config.PORT)

    interview = sub.add_parser("interview", help="run an interview from the terminal")
    interview.add_argument("--user-id", required=True)
    interview.add_argument("--email", default=None)
    interview.add_argument(
        "--interview-type", choices=[t.value for t in InterviewType], default=InterviewType.SOFTWARE_ENGINEER.value
    )
    interview.add_argument("--job-description", help="path to a text file with the job description")
    interview.add_argument("--voice", choices=config.VOICES, default=config.DEFAULT_VOICE)
    interview.add_argument("--api-base-url", default=config.API_BASE_URL)

    args = parser.parse_args(argv)
    logging.basicConfig(level=args.log_level.upper(), format="%(asctime)s %(levelname)s %(name)s - %(message)s")

    if args.command == "serve":
        return _serve(args)
    try:
        return asyncio.run(_interview(args))
    except (KeyboardInterrupt, EOFError):
        return 0


if __name__ == "__main__":
    sys.exit(main())
