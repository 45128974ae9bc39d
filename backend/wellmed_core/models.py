from __future__ import annotations

from dataclasses import dataclass
from typing import Any, Iterator


TURN_STATES = {"denied", "answered"}


@dataclass(frozen=True)
class Message:
    role: str
    content: str
    kind: str = "turn"

    def as_payload(self) -> dict[str, str]:
        return {"role": self.role, "content": self.content}

    def as_record(self) -> dict[str, str]:
        return {"role": self.role, "content": self.content, "kind": self.kind}


class MessageLog:
    """Ordered transcript of one conversation.

    Messages are immutable, so ``snapshot`` only copies the list. Entries are
    appended in turn order; ``insert_at`` and ``replace_at`` exist only for the
    document-context slot right after the persona message.
    """

    def __init__(self, messages: list[Message] | None = None) -> None:
        self._messages: list[Message] = list(messages or [])

    def append(self, message: Message) -> None:
        self._messages.append(message)

    def insert_at(self, index: int, message: Message) -> None:
        self._messages.insert(index, message)

    def replace_at(self, index: int, message: Message) -> None:
        self._messages[index] = message

    def snapshot(self) -> list[Message]:
        return list(self._messages)

    def index_of(self, kind: str) -> int | None:
        for idx, message in enumerate(self._messages):
            if message.kind == kind:
                return idx
        return None

    def contains_marked(self, kind: str) -> bool:
        return self.index_of(kind) is not None

    def as_payload(self) -> list[dict[str, str]]:
        return [message.as_payload() for message in self._messages]

    def __len__(self) -> int:
        return len(self._messages)

    def __iter__(self) -> Iterator[Message]:
        return iter(list(self._messages))

    def __getitem__(self, index: int) -> Message:
        return self._messages[index]


@dataclass
class Session:
    id: str
    log: MessageLog
    document_context: str | None = None
    last_access: float = 0.0


@dataclass
class GenerationParams:
    model: str | None = None
    max_tokens: int | None = None
    temperature: float | None = None


@dataclass
class TurnResult:
    session_id: str
    outcome: str
    message: Message

    def __post_init__(self) -> None:
        if self.outcome not in TURN_STATES:
            raise ValueError(f"Unknown turn outcome: {self.outcome!r}")

    def as_envelope(self) -> dict[str, Any]:
        return {
            "session_id": self.session_id,
            "outcome": self.outcome,
            "messages": [self.message.as_payload()],
        }
