from __future__ import annotations

import logging
from typing import Protocol

from .errors import ClassifierAmbiguous, ClassifierUnavailable, InvalidInput, ProviderError
from .models import Message
from .prompts import AFFIRMATIVE_TOKEN, CLASSIFIER_DIRECTIVE, NEGATIVE_TOKEN

logger = logging.getLogger(__name__)


class ClassificationClient(Protocol):
    async def classify(
        self,
        directive: str,
        messages: list[dict[str, str]],
        *,
        temperature: float,
        max_tokens: int,
        model: str | None,
    ) -> str: ...


def normalize_answer(answer: str | None) -> str:
    return (answer or "").strip().casefold()


class TopicClassifier:
    """Medical-domain gate for a single submitted turn.

    One remote call, no retry. Callers treat both failure types as a deny.
    """

    def __init__(
        self,
        client: ClassificationClient,
        *,
        directive: str = CLASSIFIER_DIRECTIVE,
        model: str | None = None,
        max_tokens: int = 1,
    ) -> None:
        self.client = client
        self.directive = directive
        self.model = model
        self.max_tokens = max_tokens

    async def classify(self, messages: list[Message]) -> bool:
        if not messages or messages[-1].role != "user":
            raise InvalidInput("Classifier input must end with the submitted user message.")
        try:
            answer = await self.client.classify(
                self.directive,
                [message.as_payload() for message in messages],
                temperature=0.0,
                max_tokens=self.max_tokens,
                model=self.model,
            )
        except ProviderError as exc:
            raise ClassifierUnavailable(f"Classifier call failed ({exc.status_code}): {exc.detail}") from exc

        verdict = normalize_answer(answer)
        if verdict == AFFIRMATIVE_TOKEN:
            return True
        if verdict == NEGATIVE_TOKEN:
            return False
        raise ClassifierAmbiguous(answer)
