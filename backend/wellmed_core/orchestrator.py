from __future__ import annotations

import logging
from typing import Any, Protocol

from .classifier import TopicClassifier
from .context_injector import ContextInjector
from .errors import (
    ClassifierAmbiguous,
    ClassifierUnavailable,
    GenerationFailure,
    InternalFailure,
    InvalidInput,
    ProviderError,
    WellmedError,
)
from .models import GenerationParams, Message, TurnResult
from .prompts import REFUSAL_MESSAGE
from .session_store import SessionStore

logger = logging.getLogger(__name__)

MAX_SESSION_ID_LENGTH = 128


class GenerationClient(Protocol):
    async def generate(self, messages: list[dict[str, str]], params: GenerationParams | None = None) -> Message: ...


def validate_session_id(session_id: Any) -> str:
    if not isinstance(session_id, str) or not session_id.strip():
        raise InvalidInput("Missing session id.")
    candidate = session_id.strip()
    if len(candidate) > MAX_SESSION_ID_LENGTH:
        raise InvalidInput("Invalid session id.")
    return candidate


def validate_user_message(user_message: Any) -> Message:
    if isinstance(user_message, Message):
        role, content = user_message.role, user_message.content
    elif isinstance(user_message, dict):
        role, content = user_message.get("role"), user_message.get("content")
    else:
        raise InvalidInput("Message must be an object with role and content.")
    if role != "user":
        raise InvalidInput("Message role must be 'user'.")
    if not isinstance(content, str) or not content.strip():
        raise InvalidInput("Message content must be a non-empty string.")
    return Message(role="user", content=content)


class ConversationOrchestrator:
    def __init__(
        self,
        *,
        store: SessionStore,
        injector: ContextInjector,
        classifier: TopicClassifier,
        generation_client: GenerationClient,
    ) -> None:
        self.store = store
        self.injector = injector
        self.classifier = classifier
        self.generation_client = generation_client

    async def handle_turn(
        self,
        session_id: Any,
        user_message: Any,
        params: GenerationParams | None = None,
    ) -> TurnResult:
        """Run one turn: gate, record, and (when allowed) generate.

        Raises ``InvalidInput`` before touching the store, ``GenerationFailure``
        with the upstream status when the reply call fails (the user message
        stays logged), and ``InternalFailure`` for anything unexpected.
        """
        sid = validate_session_id(session_id)
        message = validate_user_message(user_message)

        async with self.store.lock_for(sid):
            try:
                return await self._run_turn(sid, message, params)
            except WellmedError:
                raise
            except Exception as exc:
                logger.exception("turn failed unexpectedly for session %s", sid)
                raise InternalFailure("Conversation pipeline error.") from exc

    async def _run_turn(self, session_id: str, message: Message, params: GenerationParams | None) -> TurnResult:
        session = self.store.get_or_create(session_id)
        document_text = session.document_context

        view = session.log.snapshot()
        self.injector.ensure_injected(view, document_text)
        view.append(message)

        if not await self._allowed(session_id, view):
            refusal = Message(role="assistant", content=REFUSAL_MESSAGE)
            session.log.append(message)
            session.log.append(refusal)
            return TurnResult(session_id=session_id, outcome="denied", message=refusal)

        self.injector.ensure_injected(session.log, document_text)
        session.log.append(message)
        try:
            reply = await self.generation_client.generate(session.log.as_payload(), params)
        except ProviderError as exc:
            logger.warning("generation failed for session %s (%s): %s", session_id, exc.status_code, exc.detail)
            raise GenerationFailure(exc.status_code, exc.detail) from exc

        reply = Message(role="assistant", content=reply.content)
        session.log.append(reply)
        return TurnResult(session_id=session_id, outcome="answered", message=reply)

    async def _allowed(self, session_id: str, view: list[Message]) -> bool:
        try:
            allowed = await self.classifier.classify(view)
        except ClassifierAmbiguous as exc:
            logger.warning("classifier answer ambiguous for session %s: %r; denying", session_id, exc.answer)
            return False
        except ClassifierUnavailable as exc:
            logger.warning("classifier unavailable for session %s: %s; denying", session_id, exc)
            return False
        logger.info("classifier verdict for session %s: %s", session_id, "allow" if allowed else "deny")
        return allowed
