from __future__ import annotations

from dataclasses import dataclass
from typing import Dict, List, Literal, Optional

Role = Literal["system", "user", "assistant"]


@dataclass(frozen=True)
class ConversationMessage:
    role: Role
    content: str
    original_content: Optional[str] = None


class Conversation:
    """
    Append-only prompt context. The first message is always the system
    prompt; reset() drops everything else and bumps the generation so turns
    started before the reset can tell their results are stale.
    """

    def __init__(self, system_prompt: str) -> None:
        self.generation = 0
        self._messages: List[ConversationMessage] = [ConversationMessage("system", system_prompt)]

    @property
    def messages(self) -> List[ConversationMessage]:
        return list(self._messages)

    @property
    def system_prompt(self) -> str:
        return self._messages[0].content

    def __len__(self) -> int:
        return len(self._messages)

    def reset(self, system_prompt: str) -> int:
        self._messages = [ConversationMessage("system", system_prompt)]
        self.generation += 1
        return self.generation

    def append_user(self, content: str, original_content: Optional[str] = None) -> None:
        self._messages.append(ConversationMessage("user", content, original_content))

    def append_assistant(self, content: str) -> None:
        self._messages.append(ConversationMessage("assistant", content))

    def to_payload(self) -> List[Dict[str, str]]:
        """Messages as sent to the completion endpoint (original_content stripped)."""
        return [{"role": m.role, "content": m.content} for m in self._messages]

    def transcript(self) -> List[ConversationMessage]:
        return [m for m in self._messages if m.role != "system"]
