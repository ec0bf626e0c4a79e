#!/usr/bin/env python3
from __future__ import annotations

import importlib
import json
import os
import sys
import tempfile
from dataclasses import dataclass, field
from datetime import datetime, timezone
from pathlib import Path
from typing import Any

from fastapi.testclient import TestClient


@dataclass
class Scenario:
  name: str
  message: str
  expect_emergency: bool
  expect_context: bool | None = None
  upload: tuple[str, bytes, str] | None = None
  notes: list[str] = field(default_factory=list)


def disclaimer_count(text: str) -> int:
  return text.count("**Medical Disclaimer**")


def run() -> int:
  repo_root = Path(__file__).resolve().parents[1]
  backend_dir = repo_root / "backend"
  if str(backend_dir) not in sys.path:
    sys.path.insert(0, str(backend_dir))

  # Keep smoke data out of the developer database.
  work_dir = Path(tempfile.mkdtemp(prefix="medassist-smoke-"))
  os.environ.setdefault("MEDASSIST_DB_PATH", str(work_dir / "smoke.sqlite"))
  os.environ.setdefault("MEDASSIST_UPLOAD_DIR", str(work_dir / "uploads"))

  backend_module = importlib.import_module("main")
  backend_module = importlib.reload(backend_module)

  headers = {"Authorization": "Bearer smoke-user"}
  scenarios = [
    Scenario(
      name="Lab Report Follow-up",
      message="what does my hemoglobin result mean?",
      expect_emergency=False,
      expect_context=True,
      upload=("cbc.txt", b"Hemoglobin 9.2 g/dL, low\nWhite cell count 6.1 x10^9/L", "text/plain"),
    ),
    Scenario(
      name="Routine Symptom Question",
      message="I have had a dry cough for three days, what can I do?",
      expect_emergency=False,
    ),
    Scenario(
      name="Emergency Triage",
      message="My father collapsed and has crushing chest pain",
      expect_emergency=True,
    ),
  ]

  results: list[dict[str, Any]] = []

  with TestClient(backend_module.app) as client:
    health = client.get("/health").json()
    for scenario in scenarios:
      start = client.post("/chat/start", headers=headers, json={"title": f"Smoke: {scenario.name}"})
      scenario_result: dict[str, Any] = {"name": scenario.name, "start_status_code": start.status_code}
      if start.status_code != 200:
        scenario_result["pass"] = False
        scenario_result["error"] = f"/chat/start returned {start.status_code}"
        results.append(scenario_result)
        continue
      session_id = start.json()["session_id"]

      if scenario.upload is not None:
        upload = client.post(
          "/chat/upload",
          headers=headers,
          files={"file": scenario.upload},
          data={"session_id": session_id},
        )
        scenario_result["upload_status_code"] = upload.status_code
        if upload.status_code == 200:
          scenario_result["extraction_method"] = upload.json().get("extraction_method")

      reply = client.post(
        "/chat/message",
        headers=headers,
        json={"session_id": session_id, "message": scenario.message},
      )
      scenario_result["message_status_code"] = reply.status_code
      body: dict[str, Any] = reply.json() if reply.status_code == 200 else {}
      response_text = str(body.get("response_text") or "")
      scenario_result["response_preview"] = response_text[:240]
      scenario_result["severity"] = body.get("severity")
      scenario_result["is_emergency"] = body.get("is_emergency")
      scenario_result["context_found"] = body.get("context_found")

      checks = [
        reply.status_code == 200,
        body.get("is_emergency") is scenario.expect_emergency,
        disclaimer_count(response_text) == 1,
      ]
      if scenario.expect_context is not None:
        checks.append(body.get("context_found") is scenario.expect_context)
      scenario_result["pass"] = all(checks)
      if not scenario_result["pass"]:
        scenario_result["error"] = "Response did not match the expected triage, context, or disclaimer."
      results.append(scenario_result)

  passed = sum(1 for item in results if item.get("pass"))
  failed = len(results) - passed
  timestamp = datetime.now(timezone.utc).isoformat()

  report_lines = [
    "# Consultation Smoke Report",
    "",
    f"- Timestamp (UTC): `{timestamp}`",
    f"- Chat providers: `{health.get('chat_providers')}`",
    f"- Embedding space: `{health.get('knowledge', {}).get('embedding_space')}`",
    f"- Total scenarios: `{len(results)}`",
    f"- Passed: `{passed}`",
    f"- Failed: `{failed}`",
    "",
    "## Extraction Capabilities",
    "",
    "```json",
    json.dumps(health.get("capabilities"), indent=2, ensure_ascii=True),
    "```",
    "",
    "## Scenario Results",
    "",
  ]

  for item in results:
    status = "PASS" if item.get("pass") else "FAIL"
    report_lines.append(f"### {status} - {item['name']}")
    report_lines.append(f"- Message status code: `{item.get('message_status_code')}`")
    if "upload_status_code" in item:
      report_lines.append(f"- Upload status code: `{item['upload_status_code']}`")
      report_lines.append(f"- Extraction method: `{item.get('extraction_method')}`")
    report_lines.append(f"- Severity: `{item.get('severity')}`")
    report_lines.append(f"- Emergency: `{item.get('is_emergency')}`")
    report_lines.append(f"- Context found: `{item.get('context_found')}`")
    if item.get("error"):
      report_lines.append(f"- Error: `{item['error']}`")
    preview = item.get("response_preview") or ""
    if preview:
      report_lines.append(f"- Response preview: `{preview}`")
    report_lines.append("")

  report_path = repo_root / "CONSULTATION_SMOKE_REPORT.md"
  report_path.write_text("\n".join(report_lines), encoding="utf-8")
  print(f"Wrote report: {report_path}")
  print(f"Passed {passed}/{len(results)} scenarios.")

  return 0 if failed == 0 else 1


if __name__ == "__main__":
  raise SystemExit(run())
