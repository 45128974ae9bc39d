from .classifier import ClassificationClient, TopicClassifier
from .config import ProviderConfig, Settings, load_settings
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
from .models import TURN_STATES, GenerationParams, Message, MessageLog, Session, TurnResult
from .orchestrator import ConversationOrchestrator, GenerationClient
from .session_store import InMemorySessionBackend, SessionBackend, SessionStore

__all__ = [
    "TURN_STATES",
    "ClassificationClient",
    "ClassifierAmbiguous",
    "ClassifierUnavailable",
    "ContextInjector",
    "ConversationOrchestrator",
    "GenerationClient",
    "GenerationFailure",
    "GenerationParams",
    "InMemorySessionBackend",
    "InternalFailure",
    "InvalidInput",
    "Message",
    "MessageLog",
    "ProviderConfig",
    "ProviderError",
    "Session",
    "SessionBackend",
    "SessionStore",
    "Settings",
    "TopicClassifier",
    "TurnResult",
    "WellmedError",
    "load_settings",
]
