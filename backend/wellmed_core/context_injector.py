from __future__ import annotations

from .models import Message, MessageLog
from .prompts import DOCUMENT_CONTEXT_MARKER, DOCUMENT_CONTEXT_PREAMBLE

DEFAULT_MAX_CONTEXT_CHARS = 12000
_CONTEXT_SLOT = 1


def build_context_message(document_text: str, max_chars: int = DEFAULT_MAX_CONTEXT_CHARS) -> Message:
    excerpt = document_text.strip()[: max(1, max_chars)]
    return Message(
        role="system",
        content=f"{DOCUMENT_CONTEXT_MARKER} {DOCUMENT_CONTEXT_PREAMBLE}\n{excerpt}",
        kind="document_context",
    )


def _find_context(messages: MessageLog | list[Message]) -> int | None:
    if isinstance(messages, MessageLog):
        return messages.index_of("document_context")
    for idx, message in enumerate(messages):
        if message.kind == "document_context":
            return idx
    return None


class ContextInjector:
    def __init__(self, max_chars: int = DEFAULT_MAX_CONTEXT_CHARS) -> None:
        self.max_chars = max_chars

    def ensure_injected(self, messages: MessageLog | list[Message], document_text: str | None) -> None:
        """Place the document context right after the persona message.

        Works on the persisted log and on a plain snapshot list alike. Repeated
        calls with the same text leave ``messages`` untouched; a different text
        replaces the existing entry in place.
        """
        if not document_text or not document_text.strip():
            return
        context = build_context_message(document_text, self.max_chars)
        existing = _find_context(messages)
        if existing is None:
            slot = min(_CONTEXT_SLOT, len(messages))
            if isinstance(messages, MessageLog):
                messages.insert_at(slot, context)
            else:
                messages.insert(slot, context)
            return
        if messages[existing].content == context.content:
            return
        if isinstance(messages, MessageLog):
            messages.replace_at(existing, context)
        else:
            messages[existing] = context
