#!/usr/bin/env python3
"""Regression tests: report export and the tool registry."""

import asyncio
import json

import pytest
from nullaudit.config import EngineConfig
from nullaudit.data_models import AuditSession, Finding, Location
from nullaudit.errors import ValidationError
from nullaudit.exports import export_report
from nullaudit.orchestrator import AuditOrchestrator
from nullaudit.tools import ToolRegistry

CODE = (
    'query = "SELECT * FROM users WHERE id = " + user_id\n'
    'el.innerHTML = "<b>" + name + "</b>"\n'
)


def _session() -> AuditSession:
    return AuditSession(
        id="audit_1_abc",
        project_id="proj-1",
        status="completed",
        findings=[
            Finding(
                id="consensus-SQL Injection-app.py-1",
                type="SQL Injection",
                severity="critical",
                confidence_score=0.9,
                evidence=["<script>alert(1)</script>"],
                location=Location("app.py", 1),
                description="Query built from input",
            ),
            Finding(id="f2", type="Insecure Randomness", severity="low", confidence_score=0.3),
        ],
        metadata={"consensus_score": 0.6},
    )


def _orchestrator() -> AuditOrchestrator:
    # No caller: every reviewer runs the heuristic scan
    return AuditOrchestrator(EngineConfig(retry_delay_ms=0, confidence_threshold=0.0))


# ============================================================================
# Report export
# ============================================================================

def test_json_export_includes_summary():
    report = export_report(_session(), "json")
    payload = json.loads(report.content)

    assert report.content_type == "application/json"
    assert payload["format"] == "json"
    assert payload["session"]["id"] == "audit_1_abc"
    assert payload["summary"]["critical"] == 1
    assert payload["summary"]["low"] == 1
    assert payload["summary"]["total_findings"] == 2
    assert "generated_at" in payload


def test_pdf_export_is_flagged_payload():
    report = export_report(_session(), "PDF")
    payload = json.loads(report.content)
    assert report.format == "pdf"
    assert payload["format"] == "pdf"


def test_html_export_escapes_content():
    report = export_report(_session(), "html")

    assert report.content_type == "text/html"
    assert "proj-1" in report.content
    assert "app.py:1" in report.content
    assert "<script>alert(1)</script>" not in report.content
    assert "&lt;script&gt;" in report.content


def test_sarif_export():
    report = export_report(_session(), "sarif")
    sarif = json.loads(report.content)

    assert sarif["version"] == "2.1.0"
    run = sarif["runs"][0]
    assert {rule["id"] for rule in run["tool"]["driver"]["rules"]} == {"SQLInjection", "InsecureRandomness"}
    first = run["results"][0]
    assert first["level"] == "error"
    assert first["locations"][0]["physicalLocation"]["region"]["startLine"] == 1
    assert "locations" not in run["results"][1]
    assert run["artifacts"] == [{"location": {"uri": "app.py", "uriBaseId": "ROOT"}}]


def test_unknown_format_rejected():
    with pytest.raises(ValidationError):
        export_report(_session(), "docx")


# ============================================================================
# Tool registry
# ============================================================================

def test_registry_lists_builtin_tools():
    registry = ToolRegistry(_orchestrator())
    names = {tool["name"] for tool in registry.list_tools()}
    assert names == {
        "analyze_code_security",
        "get_audit_session",
        "list_project_sessions",
        "get_report",
        "get_metrics",
    }


def test_tool_round_trip_through_engine():
    registry = ToolRegistry(_orchestrator())

    async def scenario():
        analyzed = await registry.invoke("analyze_code_security", {
            "project_id": "proj-1",
            "codebase": CODE,
            "targets": ["app.py"],
        })
        session_id = analyzed["result"]["session_id"]
        session = await registry.invoke("get_audit_session", {"session_id": session_id})
        listed = await registry.invoke("list_project_sessions", {"project_id": "proj-1"})
        report = await registry.invoke("get_report", {"session_id": session_id, "format": "sarif"})
        metrics = await registry.invoke("get_metrics", {})
        return analyzed, session, listed, report, metrics

    analyzed, session, listed, report, metrics = asyncio.run(scenario())

    assert analyzed["success"] is True
    assert analyzed["tool"] == "analyze_code_security"
    types = {f["type"] for f in analyzed["result"]["findings"]}
    assert {"SQL Injection", "Cross-Site Scripting (XSS)"} <= types
    assert session["result"]["status"] == "completed"
    assert len(listed["result"]) == 1
    assert report["result"]["format"] == "sarif"
    assert metrics["result"]["successful_audits"] == 1
    assert "cache" in metrics["result"]


def test_tool_errors_reported_in_envelope():
    registry = ToolRegistry(_orchestrator())

    async def scenario():
        missing = await registry.invoke("get_audit_session", {"session_id": "nope"})
        invalid = await registry.invoke("analyze_code_security", {"project_id": "p"})
        no_arg = await registry.invoke("get_report", {})
        unknown = await registry.invoke("delete_everything", {})
        return missing, invalid, no_arg, unknown

    missing, invalid, no_arg, unknown = asyncio.run(scenario())

    assert missing["success"] is False
    assert missing["error"]["code"] == "NOT_FOUND"
    assert invalid["error"]["code"] == "VALIDATION_ERROR"
    assert no_arg["error"]["context"]["field"] == "session_id"
    assert unknown["error"]["code"] == "UNKNOWN_TOOL"
    assert missing["id"] != invalid["id"]


if __name__ == "__main__":
    pytest.main([__file__, "-v"])
