#!/usr/bin/env python3
from __future__ import annotations

import importlib
import json
import os
import sys
from dataclasses import dataclass
from datetime import datetime, timezone
from pathlib import Path
from typing import Any

from fastapi.testclient import TestClient


@dataclass
class Scenario:
  name: str
  message: str
  expected_outcome: str
  document_text: str | None = None
  expected_substring: str | None = None


def run() -> int:
  repo_root = Path(__file__).resolve().parents[1]
  backend_dir = repo_root / "backend"
  if str(backend_dir) not in sys.path:
    sys.path.insert(0, str(backend_dir))

  backend_module = importlib.import_module("main")
  backend_module = importlib.reload(backend_module)
  providers = [provider.provider for provider in backend_module.container.settings.providers]
  if not providers:
    print("No chat provider key configured; every turn would be denied. Aborting smoke run.")
    return 2

  stamp = datetime.now(timezone.utc).strftime("%Y%m%d%H%M%S")

  scenarios = [
    Scenario(
      name="In-Domain Symptom Question",
      message="I have a fever, what should I take?",
      expected_outcome="answered",
    ),
    Scenario(
      name="Off-Topic Question Is Refused",
      message="What's the weather today?",
      expected_outcome="denied",
    ),
    Scenario(
      name="Medical Coding Question",
      message="Which CPT code covers an established patient office visit of moderate complexity?",
      expected_outcome="answered",
    ),
    Scenario(
      name="Document Grounded Answer",
      message="Is the blood pressure in my report high?",
      expected_outcome="answered",
      document_text="Patient BP: 140/90. Heart rate 78 bpm.",
      expected_substring="140",
    ),
  ]

  results: list[dict[str, Any]] = []

  with TestClient(backend_module.app) as client:
    for idx, scenario in enumerate(scenarios):
      session_id = f"smoke-{stamp}-{idx}"
      if scenario.document_text:
        client.put(f"/api/sessions/{session_id}/document", json={"text": scenario.document_text})

      response = client.post(
        "/api/chat",
        json={"session_id": session_id, "message": {"role": "user", "content": scenario.message}},
      )
      body: Any
      try:
        body = response.json()
      except json.JSONDecodeError:
        body = response.text

      outcome = body.get("outcome") if isinstance(body, dict) else None
      reply = ""
      if isinstance(body, dict) and body.get("messages"):
        reply = str(body["messages"][0].get("content") or "")

      scenario_result: dict[str, Any] = {
        "name": scenario.name,
        "session_id": session_id,
        "expected_outcome": scenario.expected_outcome,
        "actual_outcome": outcome,
        "status_code": response.status_code,
        "reply_preview": reply[:240],
      }
      scenario_result["pass"] = response.status_code == 200 and outcome == scenario.expected_outcome
      if scenario_result["pass"] and scenario.expected_substring:
        scenario_result["pass"] = scenario.expected_substring in reply
        if not scenario_result["pass"]:
          scenario_result["error"] = f"Reply does not reference `{scenario.expected_substring}`."
      elif not scenario_result["pass"]:
        scenario_result["error"] = "Unexpected outcome or status code."
      results.append(scenario_result)

  passed = sum(1 for item in results if item.get("pass"))
  failed = len(results) - passed
  timestamp = datetime.now(timezone.utc).isoformat()

  report_lines = [
    "# Chatbot E2E Smoke Report",
    "",
    f"- Timestamp (UTC): `{timestamp}`",
    f"- Providers: `{', '.join(providers)}`",
    f"- WELLMED_CHAT_PROVIDER: `{os.getenv('WELLMED_CHAT_PROVIDER')}`",
    f"- Total scenarios: `{len(results)}`",
    f"- Passed: `{passed}`",
    f"- Failed: `{failed}`",
    "",
    "## Scenario Results",
    "",
  ]

  for item in results:
    status = "PASS" if item.get("pass") else "FAIL"
    report_lines.append(f"### {status} - {item['name']}")
    report_lines.append(f"- Session: `{item['session_id']}`")
    report_lines.append(f"- Expected outcome: `{item['expected_outcome']}`")
    report_lines.append(f"- Actual outcome: `{item.get('actual_outcome')}`")
    report_lines.append(f"- Status code: `{item.get('status_code')}`")
    if item.get("error"):
      report_lines.append(f"- Error: `{item['error']}`")
    preview = item.get("reply_preview") or ""
    if preview:
      report_lines.append(f"- Reply preview: `{preview}`")
    report_lines.append("")

  report_path = repo_root / "CHATBOT_E2E_SMOKE_REPORT.md"
  report_path.write_text("\n".join(report_lines), encoding="utf-8")
  print(f"Wrote report: {report_path}")
  print(f"Passed {passed}/{len(results)} scenarios.")

  return 0 if failed == 0 else 1


if __name__ == "__main__":
  raise SystemExit(run())
