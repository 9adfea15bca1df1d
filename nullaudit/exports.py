"""Report export for audit sessions: JSON, HTML, PDF payload and SARIF."""
import json
from dataclasses import dataclass
from datetime import datetime
from typing import Any, Dict, List

from jinja2 import Environment, PackageLoader, select_autoescape

from nullaudit import __version__
from nullaudit.data_models import AuditSession, Finding, summarize_findings
from nullaudit.errors import ValidationError

SUPPORTED_FORMATS = ("json", "html", "pdf", "sarif")

_env = Environment(
    loader=PackageLoader("nullaudit", "templates"),
    autoescape=select_autoescape(["html"]),
)


@dataclass
class ReportExport:
    format: str
    content_type: str
    content: str


def _report_payload(session: AuditSession, fmt: str) -> Dict[str, Any]:
    return {
        "session": session.to_dict(),
        "summary": summarize_findings(session.findings),
        "generated_at": datetime.now().isoformat(),
        "format": fmt,
    }


def export_report(session: AuditSession, fmt: str = "json") -> ReportExport:
    """
    Serialize a session plus its summary counts.

    Args:
        session: Session to export
        fmt: One of ``json``, ``html``, ``pdf`` or ``sarif``

    Returns:
        ReportExport with the rendered content
    """
    fmt = (fmt or "").lower()
    if fmt == "json":
        return ReportExport("json", "application/json", json.dumps(_report_payload(session, fmt), indent=2))
    if fmt == "html":
        return ReportExport("html", "text/html", export_html(session))
    if fmt == "pdf":
        # No binary rendering; consumers get the data flagged for PDF generation
        return ReportExport("pdf", "application/json", json.dumps(_report_payload(session, fmt), indent=2))
    if fmt == "sarif":
        return ReportExport("sarif", "application/sarif+json", json.dumps(export_sarif(session), indent=2))
    raise ValidationError(
        f"Unsupported report format '{fmt}', expected one of {', '.join(SUPPORTED_FORMATS)}",
        field="format",
    )


def export_html(session: AuditSession) -> str:
    template = _env.get_template("report.html")
    return template.render(
        session=session,
        summary=summarize_findings(session.findings),
        generated_at=datetime.now().isoformat(timespec="seconds"),
    )


def export_sarif(session: AuditSession) -> Dict[str, Any]:
    """Export session findings to SARIF format."""
    # SARIF version 2.1.0
    return {
        "version": "2.1.0",
        "$schema": "https://raw.githubusercontent.com/oasis-tcs/sarif-spec/master/Schemata/sarif-schema-2.1.0.json",
        "runs": [
            {
                "tool": {
                    "driver": {
                        "name": "NullAudit",
                        "version": __version__,
                        "rules": _build_sarif_rules(session.findings),
                    }
                },
                "results": _build_sarif_results(session.findings),
                "artifacts": _build_sarif_artifacts(session.findings),
                "properties": {
                    "session_id": session.id,
                    "project_id": session.project_id,
                    "status": session.status,
                },
            }
        ],
    }


def _rule_id(finding: Finding) -> str:
    return finding.type.replace(" ", "")


def _build_sarif_rules(findings: List[Finding]) -> List[Dict[str, Any]]:
    rules: Dict[str, Dict[str, Any]] = {}
    for finding in findings:
        rule_id = _rule_id(finding)
        if rule_id not in rules:
            rules[rule_id] = {
                "id": rule_id,
                "name": finding.type,
                "shortDescription": {"text": (finding.description or finding.type)[:200]},
                "properties": {
                    "severity": finding.severity,
                    "risk_categories": list(finding.risk_categories),
                },
            }
    return list(rules.values())


def _build_sarif_results(findings: List[Finding]) -> List[Dict[str, Any]]:
    results = []
    for finding in findings:
        result: Dict[str, Any] = {
            "ruleId": _rule_id(finding),
            "level": _severity_to_sarif_level(finding.severity),
            "message": {"text": finding.description or finding.type},
            "properties": {
                "confidence": finding.confidence_score,
                "evidence": list(finding.evidence),
                "compliance_violations": list(finding.compliance_violations),
            },
        }
        if finding.location:
            region = {"startLine": finding.location.line} if finding.location.line else {}
            result["locations"] = [
                {
                    "physicalLocation": {
                        "artifactLocation": {"uri": finding.location.file, "uriBaseId": "ROOT"},
                        "region": region,
                    }
                }
            ]
        results.append(result)
    return results


def _build_sarif_artifacts(findings: List[Finding]) -> List[Dict[str, Any]]:
    files = sorted({f.location.file for f in findings if f.location})
    return [{"location": {"uri": path, "uriBaseId": "ROOT"}} for path in files]


def _severity_to_sarif_level(severity: str) -> str:
    mapping = {
        "critical": "error",
        "high": "error",
        "medium": "warning",
        "low": "note",
    }
    return mapping.get(severity.lower(), "warning")
