"""Offline signature scanner used when a reviewer's model call is unusable.

Pure and deterministic: the same code always yields the same findings.
Confidence is scaled down by ``FALLBACK_CONFIDENCE_FACTOR`` so merge
logic weighs these matches below real model output.
"""

import re
from typing import Any, Dict, List, Optional

from nullaudit.data_models import Finding, Location

FALLBACK_CONFIDENCE_FACTOR = 0.6
DEFAULT_FILE = "codebase"

VULNERABILITY_SIGNATURES: List[Dict[str, Any]] = [
    {
        "type": "SQL Injection",
        "pattern": r"(SELECT|INSERT|UPDATE|DELETE)\b[^;\n]*(\$\{|\"\s*\+|'\s*\+|%s|\{\w+\})",
        "severity": "critical",
        "confidence": 0.8,
        "evidence": "Query text assembled from interpolated values",
        "risk_categories": ["data_breach", "auth_bypass"],
        "compliance_violations": ["OWASP-A03", "CWE-89"],
    },
    {
        "type": "Cross-Site Scripting (XSS)",
        "pattern": r"dangerouslySetInnerHTML|\.innerHTML\s*=|document\.write\s*\(",
        "severity": "high",
        "confidence": 0.75,
        "evidence": "Unescaped content written into the DOM",
        "risk_categories": ["xss", "client_side"],
        "compliance_violations": ["OWASP-A03", "CWE-79"],
    },
    {
        "type": "Code Injection",
        "pattern": r"\beval\s*\(|\bnew\s+Function\s*\(",
        "severity": "high",
        "confidence": 0.7,
        "evidence": "Dynamic code evaluation",
        "risk_categories": ["code_execution"],
        "compliance_violations": ["CWE-95"],
    },
    {
        "type": "Command Injection",
        "pattern": r"\bos\.system\s*\(|shell\s*=\s*True|child_process|\bexecSync\s*\(",
        "severity": "critical",
        "confidence": 0.7,
        "evidence": "Shell command built at runtime",
        "risk_categories": ["code_execution"],
        "compliance_violations": ["OWASP-A03", "CWE-78"],
    },
    {
        "type": "Sensitive Data Exposure",
        "pattern": r"(api[_-]?key|secret|password|token)\s*[:=]\s*['\"][^'\"]{6,}['\"]|sk_live_\w+",
        "severity": "medium",
        "confidence": 0.65,
        "evidence": "Hardcoded credential in source",
        "risk_categories": ["data_breach"],
        "compliance_violations": ["CWE-798"],
    },
    {
        "type": "Insecure Authentication",
        "pattern": r"\bmd5\s*\(|\bsha1\s*\(|hashlib\.(md5|sha1)\b|createHash\(\s*['\"](md5|sha1)['\"]",
        "severity": "high",
        "confidence": 0.6,
        "evidence": "Weak hash algorithm",
        "risk_categories": ["auth_bypass", "credential_theft"],
        "compliance_violations": ["OWASP-A02", "CWE-327"],
    },
    {
        "type": "Insecure Randomness",
        "pattern": r"Math\.random\s*\(|\brandom\.random\s*\(",
        "severity": "low",
        "confidence": 0.5,
        "evidence": "Non-cryptographic random source",
        "risk_categories": ["predictability"],
        "compliance_violations": ["CWE-338"],
    },
    {
        "type": "Reentrancy",
        "pattern": r"\.call\{\s*value\s*:|\.call\.value\s*\(",
        "severity": "critical",
        "confidence": 0.7,
        "evidence": "External call transferring value before state update",
        "risk_categories": ["fund_loss"],
        "compliance_violations": ["SWC-107"],
    },
]

_COMPILED = [
    (signature, re.compile(signature["pattern"], re.IGNORECASE | re.MULTILINE))
    for signature in VULNERABILITY_SIGNATURES
]


def _slug(text: str) -> str:
    return re.sub(r"[^a-z0-9]+", "-", text.lower()).strip("-")


def heuristic_scan(
    code: str,
    reviewer_id: Optional[str] = None,
    file_path: str = DEFAULT_FILE,
) -> List[Finding]:
    """Match ``code`` against the signature table, one finding per matching line."""
    findings: List[Finding] = []
    lines = code.splitlines() or [""]

    for signature, regex in _COMPILED:
        seen_lines = set()
        for match in regex.finditer(code):
            line_offset = code.count("\n", 0, match.start())
            line = line_offset + 1
            if line in seen_lines:
                continue
            seen_lines.add(line)
            snippet = lines[line_offset].strip() if line_offset < len(lines) else ""
            findings.append(
                Finding(
                    id=f"heuristic-{_slug(signature['type'])}-{line}",
                    type=signature["type"],
                    severity=signature["severity"],
                    confidence_score=round(signature["confidence"] * FALLBACK_CONFIDENCE_FACTOR, 4),
                    evidence=[signature["evidence"]],
                    location=Location(file=file_path, line=line),
                    risk_categories=list(signature["risk_categories"]),
                    compliance_violations=list(signature["compliance_violations"]),
                    description=f"Heuristic match: {signature['evidence'].lower()}",
                    reviewer_id=reviewer_id,
                    metadata={"source": "heuristic", "snippet": snippet[:200]},
                )
            )

    findings.sort(key=lambda f: (f.location.line, f.type))
    return findings
