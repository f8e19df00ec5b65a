"""Turn Context - What a Model Backend Sees for One Chat Turn.

The context is assembled fresh for every request from persisted messages and
never cached:

    system prompt + company info + user info   -> instructions
    last N messages, oldest-first, role-mapped -> history
    current user message                        -> prompt (passed separately)

Backends translate this canonical shape into their provider's wire format.
"""

from __future__ import annotations

import json
from collections.abc import Sequence
from typing import Any

from pydantic import BaseModel, ConfigDict, Field

from .domain_type import ChatRole, MessageSender
from .domain_value import MessageId, StoredMessage, Tenant

CONTEXT_WINDOW = 10

DEFAULT_SYSTEM_PROMPT = "You are a helpful and professional virtual assistant."

CONDUCT_INSTRUCTIONS = """
Important instructions:
- Keep a professional but friendly tone
- If you don't know something, admit it honestly
- Give useful and specific answers
- If the request is outside your area of knowledge, suggest contacting a human
- Keep answers concise but complete
""".strip()

ROLE_BY_SENDER = {
    MessageSender.USER: ChatRole.USER,
    MessageSender.BOT: ChatRole.ASSISTANT,
}


class ContextMessage(BaseModel):
    """One prior utterance, already mapped to a prompt role."""

    role: ChatRole
    content: str

    model_config = ConfigDict(frozen=True)

    @classmethod
    def from_stored(cls, message: StoredMessage) -> ContextMessage:
        return cls(role=ROLE_BY_SENDER[message.sender], content=message.content)


class TurnContext(BaseModel):
    """Canonical, provider-neutral context for one turn."""

    system_prompt: str = ""
    company_info: str | None = None
    history: tuple[ContextMessage, ...] = ()
    user_info: dict[str, Any] = Field(default_factory=dict)

    model_config = ConfigDict(frozen=True)

    @classmethod
    def assemble(
        cls,
        *,
        tenant: Tenant,
        system_prompt: str,
        recent: Sequence[StoredMessage],
        exclude: MessageId | None = None,
        user_info: dict[str, Any] | None = None,
        window: int = CONTEXT_WINDOW,
    ) -> TurnContext:
        """Build context from recent messages.

        Args:
            tenant: Supplies the company display name
            system_prompt: Chatbot persona
            recent: Messages in creation order, oldest first
            exclude: The message being answered, kept out of the history
            user_info: Caller-supplied end-user metadata
            window: Maximum number of history messages kept (most recent)
        """
        prior = [m for m in recent if m.id != exclude]
        kept = prior[-window:] if window > 0 else []
        return cls(
            system_prompt=system_prompt,
            company_info=f"Company: {tenant.name}",
            history=tuple(ContextMessage.from_stored(m) for m in kept),
            user_info=user_info or {},
        )

    def instructions(self) -> str:
        """Full system text sent to the model."""
        sections = [self.system_prompt.strip() or DEFAULT_SYSTEM_PROMPT]
        if self.company_info:
            sections.append(f"Company information: {self.company_info}")
        if self.user_info:
            sections.append(f"User information: {json.dumps(self.user_info, sort_keys=True, default=str)}")
        sections.append(CONDUCT_INSTRUCTIONS)
        return "\n\n".join(sections)

    def transcript(self, message: str) -> str:
        """Single-prompt rendering of history plus the current message."""
        lines: list[str] = []
        if self.history:
            lines.append("Conversation history:")
            for turn in self.history:
                speaker = "User" if turn.role == ChatRole.USER else "Assistant"
                lines.append(f"{speaker}: {turn.content}")
            lines.append("")
        lines.append(f"User: {message}")
        lines.append("Assistant:")
        return "\n".join(lines)


__all__ = [
    "CONDUCT_INSTRUCTIONS",
    "CONTEXT_WINDOW",
    "DEFAULT_SYSTEM_PROMPT",
    "ContextMessage",
    "TurnContext",
]
