from __future__ import annotations

from wellmed_core import ContextInjector, Message, MessageLog
from wellmed_core.context_injector import build_context_message
from wellmed_core.prompts import DOCUMENT_CONTEXT_MARKER


def _log_with_turns() -> MessageLog:
    return MessageLog(
        [
            Message(role="system", content="persona", kind="persona"),
            Message(role="user", content="earlier question"),
            Message(role="assistant", content="earlier answer"),
        ]
    )


def test_blank_document_text_is_a_noop():
    log = _log_with_turns()
    injector = ContextInjector()
    injector.ensure_injected(log, None)
    injector.ensure_injected(log, "   ")
    assert len(log) == 3
    assert not log.contains_marked("document_context")


def test_context_is_inserted_right_after_persona_and_before_existing_turns():
    log = _log_with_turns()
    ContextInjector().ensure_injected(log, "Patient BP: 140/90")

    assert [message.kind for message in log] == ["persona", "document_context", "turn", "turn"]
    assert log[1].role == "system"
    assert log[1].content.startswith(DOCUMENT_CONTEXT_MARKER)
    assert "140/90" in log[1].content
    assert log[2].content == "earlier question"


def test_repeated_injection_is_idempotent():
    log = _log_with_turns()
    injector = ContextInjector()
    for _ in range(3):
        injector.ensure_injected(log, "Patient BP: 140/90")
    assert len(log) == 4
    assert sum(1 for message in log if message.kind == "document_context") == 1


def test_new_document_text_replaces_existing_entry_in_place():
    log = _log_with_turns()
    injector = ContextInjector()
    injector.ensure_injected(log, "Patient BP: 140/90")
    injector.ensure_injected(log, "Patient HbA1c: 7.2%")

    assert len(log) == 4
    assert log.index_of("document_context") == 1
    assert "7.2%" in log[1].content
    assert "140/90" not in log[1].content


def test_plain_snapshot_list_reaches_same_state_as_persisted_log():
    log = _log_with_turns()
    view = log.snapshot()
    injector = ContextInjector()
    injector.ensure_injected(view, "Patient BP: 140/90")
    injector.ensure_injected(log, "Patient BP: 140/90")

    assert view == log.snapshot()


def test_document_text_is_truncated_to_configured_bound():
    message = build_context_message("A" * 50 + "TAIL", max_chars=50)
    assert "A" * 50 in message.content
    assert "TAIL" not in message.content


def test_injection_into_persona_only_log_appends_at_slot_one():
    log = MessageLog([Message(role="system", content="persona", kind="persona")])
    ContextInjector(max_chars=10).ensure_injected(log, "0123456789overflow")
    assert len(log) == 2
    assert log[1].content.endswith("0123456789")
