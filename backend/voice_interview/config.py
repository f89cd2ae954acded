from __future__ import annotations

import os
from typing import Literal, get_args

from dotenv import load_dotenv

load_dotenv()

OPENAI_API_KEY = os.getenv("OPENAI_API_KEY")
OPENAI_BASE_URL = os.getenv("OPENAI_BASE_URL", "https://api.openai.com/v1").rstrip("/")
OPENAI_CHAT_MODEL = os.getenv("OPENAI_CHAT_MODEL", "gpt-4o-mini")
OPENAI_TRANSCRIBE_MODEL = os.getenv("OPENAI_TRANSCRIBE_MODEL", "whisper-1")
OPENAI_TTS_MODEL = os.getenv("OPENAI_TTS_MODEL", "tts-1")
OPENAI_TTS_FORMAT = os.getenv("OPENAI_TTS_FORMAT", "wav")
OPENAI_TIMEOUT = float(os.getenv("OPENAI_TIMEOUT", "60"))

DATABASE_URL = os.getenv("DATABASE_URL", "sqlite+aiosqlite:///./data.db")
PORT = int(os.getenv("PORT", "3000"))

# Client side
API_BASE_URL = os.getenv("API_BASE_URL", f"http://localhost:{PORT}/api").rstrip("/")
API_TIMEOUT = float(os.getenv("API_TIMEOUT", "90"))
LOCAL_WHISPER_MODEL = os.getenv("LOCAL_WHISPER_MODEL", "")  # empty disables local transcription
LOCAL_WHISPER_DEVICE = os.getenv("LOCAL_WHISPER_DEVICE", "cpu")
LOCAL_TRANSCRIBE_TIMEOUT = float(os.getenv("LOCAL_TRANSCRIBE_TIMEOUT", "15"))

# Recording / VAD
SAMPLE_RATE = 16000
FFT_SIZE = 512
SMOOTHING_TIME_CONSTANT = 0.8
MIN_DECIBELS = -100.0
MAX_DECIBELS = -30.0
SILENCE_THRESHOLD = 10.0
FRAMES_BEFORE_SPEECH_DETECTION = 3
FRAMES_BEFORE_SILENCE_DETECTION = 50  # about one second at 60 samples/s
SAMPLE_INTERVAL = 1 / 60
MAX_RECORDING_SECONDS = float(os.getenv("MAX_RECORDING_SECONDS", "30"))
MIN_CLIP_BYTES = 1000

Voice = Literal["alloy", "echo", "fable", "onyx", "nova", "shimmer"]
VOICES = get_args(Voice)
DEFAULT_VOICE = os.getenv("DEFAULT_VOICE", "alloy")
