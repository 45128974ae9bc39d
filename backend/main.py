from __future__ import annotations

import logging
import os
import re
from pathlib import Path
from typing import Any

from fastapi import FastAPI, File, Form, HTTPException, UploadFile
from fastapi.middleware.cors import CORSMiddleware
from pydantic import BaseModel, Field

from wellmed_core import (
    ContextInjector,
    ConversationOrchestrator,
    GenerationFailure,
    GenerationParams,
    InternalFailure,
    InvalidInput,
    SessionStore,
    TopicClassifier,
    load_settings,
)
from wellmed_core.orchestrator import validate_session_id
from wellmed_tools import ProviderChatClient, extract_document_text, is_pdf_upload

_ENV_KEY_RE = re.compile(r"^[A-Za-z_][A-Za-z0-9_]*$")


def _load_local_env_file(path: Path) -> None:
    try:
        lines = path.read_text(encoding="utf-8").splitlines()
    except OSError:
        return
    for raw in lines:
        line = raw.strip()
        if not line or line.startswith("#") or "=" not in line:
            continue
        key, value = line.split("=", 1)
        key = key.strip()
        if not _ENV_KEY_RE.fullmatch(key):
            continue
        value = value.strip()
        if len(value) >= 2 and value[0] == value[-1] and value[0] in {"'", '"'}:
            value = value[1:-1]
        os.environ.setdefault(key, value)


def _bootstrap_local_env() -> None:
    repo_root = Path(__file__).resolve().parents[1]
    for candidate in (repo_root / ".env", repo_root / "backend/.env"):
        if candidate.exists():
            _load_local_env_file(candidate)


_bootstrap_local_env()

logging.basicConfig(
    level=os.getenv("WELLMED_LOG_LEVEL", "INFO").upper(),
    format="[%(asctime)s] %(levelname)s %(name)s - %(message)s",
)
logger = logging.getLogger("wellmed")


class ChatMessage(BaseModel):
    role: str | None = None
    content: str | None = None


class ChatRequest(BaseModel):
    session_id: str | None = None
    message: ChatMessage | None = None
    model: str | None = None
    max_tokens: int | None = Field(default=None, gt=0)
    temperature: float | None = Field(default=None, ge=0.0, le=2.0)


class DocumentContextPayload(BaseModel):
    text: str


class WellmedApp:
    def __init__(self) -> None:
        self.settings = load_settings()
        self.store = SessionStore(ttl_seconds=self.settings.session_ttl_seconds)
        self.injector = ContextInjector(max_chars=self.settings.document_context_max_chars)
        self.client = ProviderChatClient(self.settings)
        self.classifier = TopicClassifier(
            self.client,
            model=self.settings.classifier_model,
            max_tokens=self.settings.classifier_max_tokens,
        )
        self.orchestrator = ConversationOrchestrator(
            store=self.store,
            injector=self.injector,
            classifier=self.classifier,
            generation_client=self.client,
        )


container = WellmedApp()
app = FastAPI(title="Wellmed AI Backend")

app.add_middleware(
    CORSMiddleware,
    allow_origins=container.settings.allowed_origins,
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)

if not container.settings.providers:
    logger.warning("no chat provider key found in runtime env; chat turns will be denied")


def _session_id_or_400(session_id: str | None) -> str:
    try:
        return validate_session_id(session_id)
    except InvalidInput as exc:
        raise HTTPException(status_code=400, detail=str(exc)) from exc


def _select_upload(primary: UploadFile | None, fallback: UploadFile | None) -> UploadFile:
    upload = primary or fallback
    if upload is None:
        raise HTTPException(status_code=400, detail="No PDF file uploaded")
    return upload


def _normalize_upload_filename(upload: UploadFile, fallback_name: str) -> str:
    file_name = (upload.filename or "").strip()
    return file_name or fallback_name


async def _read_upload_bytes(upload: UploadFile, *, max_bytes: int, too_large_detail: str) -> bytes:
    raw = await upload.read(max_bytes + 1)
    if len(raw) > max_bytes:
        raise HTTPException(status_code=413, detail=too_large_detail)
    if not raw:
        raise HTTPException(status_code=400, detail="Uploaded file is empty.")
    return raw


def _generation_error_status(status_code: int) -> int:
    return status_code if 400 <= status_code < 600 else 502


@app.post("/api/chat")
async def chat(payload: ChatRequest) -> dict[str, Any]:
    params = GenerationParams(
        model=payload.model,
        max_tokens=payload.max_tokens,
        temperature=payload.temperature,
    )
    user_message = payload.message.model_dump() if payload.message else None
    try:
        result = await container.orchestrator.handle_turn(payload.session_id, user_message, params)
    except InvalidInput as exc:
        raise HTTPException(status_code=400, detail=str(exc)) from exc
    except GenerationFailure as exc:
        raise HTTPException(
            status_code=_generation_error_status(exc.status_code),
            detail={"error": "Generation service error", "details": exc.detail},
        ) from exc
    except InternalFailure as exc:
        raise HTTPException(status_code=500, detail="Internal Server Error") from exc
    return result.as_envelope()


@app.post("/api/analyze-pdf")
async def analyze_pdf(
    pdf: UploadFile | None = File(default=None),
    file: UploadFile | None = File(default=None),
    session_id: str | None = Form(default=None),
) -> dict[str, Any]:
    sid = _session_id_or_400(session_id) if session_id is not None else None
    upload = _select_upload(pdf, file)
    file_name = _normalize_upload_filename(upload, "document.pdf")
    mime_type = (upload.content_type or "").lower().strip()
    if not is_pdf_upload(file_name, mime_type):
        raise HTTPException(status_code=415, detail="Only PDF files are allowed")

    max_bytes = container.settings.max_document_bytes
    document_bytes = await _read_upload_bytes(
        upload,
        max_bytes=max_bytes,
        too_large_detail=f"PDF exceeds {max_bytes // (1024 * 1024)}MB limit.",
    )
    extracted = extract_document_text(file_name, mime_type or "application/pdf", document_bytes)
    if not extracted.text:
        raise HTTPException(status_code=422, detail="Unable to extract readable content from the uploaded file.")

    if sid is not None:
        container.store.set_document_context(sid, extracted.text)
    return {
        "success": True,
        "text": extracted.text,
        "pages": extracted.pages,
        "characters": extracted.characters,
        "info": extracted.info,
        "session_id": sid,
    }


@app.put("/api/sessions/{session_id}/document")
def put_session_document(session_id: str, payload: DocumentContextPayload) -> dict[str, Any]:
    sid = _session_id_or_400(session_id)
    if not payload.text.strip():
        raise HTTPException(status_code=400, detail="Document text is empty.")
    container.store.set_document_context(sid, payload.text)
    return {"session_id": sid, "characters": len(payload.text)}


@app.get("/api/sessions/{session_id}")
def get_session(session_id: str) -> dict[str, Any]:
    sid = _session_id_or_400(session_id)
    session = container.store.get(sid)
    if session is None:
        raise HTTPException(status_code=404, detail="Session not found")
    return {
        "session_id": session.id,
        "has_document": bool(session.document_context),
        "messages": [message.as_record() for message in session.log],
    }


@app.get("/api/health")
def health() -> dict[str, Any]:
    return {
        "status": "OK",
        "message": "Server is running",
        "environment": container.settings.environment,
        "sessions": len(container.store),
        "providers": [provider.provider for provider in container.settings.providers],
    }
