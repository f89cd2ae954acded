"""Voice-driven mock interviews: a FastAPI proxy backend and a microphone client."""

__version__ = "0.1.0"
