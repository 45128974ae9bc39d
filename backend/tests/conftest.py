from __future__ import annotations

import importlib
import sys
from pathlib import Path
from types import SimpleNamespace

import pytest
from fastapi.testclient import TestClient

BACKEND_DIR = Path(__file__).resolve().parents[1]
if str(BACKEND_DIR) not in sys.path:
    sys.path.insert(0, str(BACKEND_DIR))

from stub_clients import StubClassifierClient, StubGenerationClient  # noqa: E402

_PROVIDER_ENV_KEYS = (
    "GEMINI_API_KEY",
    "GOOGLE_API_KEY",
    "ANTHROPIC_API_KEY",
    "OPENROUTER_API_KEY",
    "OPENAI_API_KEY",
    "WELLMED_CHAT_PROVIDER",
)


@pytest.fixture
def backend_module(monkeypatch):
    # Keep CI deterministic; provider tests use httpx.MockTransport instead.
    for key in _PROVIDER_ENV_KEYS:
        monkeypatch.setenv(key, "")
    monkeypatch.setenv("WELLMED_SESSION_TTL_SECONDS", "0")

    if "main" in sys.modules:
        module = importlib.reload(sys.modules["main"])
    else:
        module = importlib.import_module("main")
    return module


@pytest.fixture
def client(backend_module):
    with TestClient(backend_module.app) as test_client:
        yield test_client


@pytest.fixture
def stubs(backend_module, monkeypatch):
    stub_set = SimpleNamespace(
        classifier=StubClassifierClient(["yes"]),
        generation=StubGenerationClient(["Rest, fluids, and acetaminophen can help with a fever."]),
    )
    monkeypatch.setattr(backend_module.container.classifier, "client", stub_set.classifier)
    monkeypatch.setattr(backend_module.container.orchestrator, "generation_client", stub_set.generation)
    return stub_set
