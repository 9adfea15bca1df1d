import re
import time
import uuid
from typing import Optional

# Ordered: first matching signature wins.
_LANGUAGE_SIGNATURES = [
    ("solidity", re.compile(r"^\s*pragma\s+solidity\b|\bcontract\s+\w+\s*\{", re.MULTILINE)),
    ("python", re.compile(r"^\s*(def|class)\s+\w+.*:\s*$|^\s*import\s+\w+\s*$", re.MULTILINE)),
    ("go", re.compile(r"^\s*package\s+\w+\s*$|\bfunc\s+\w+\(", re.MULTILINE)),
    ("rust", re.compile(r"\bfn\s+\w+\s*\(|\blet\s+mut\b")),
    ("java", re.compile(r"\bpublic\s+(static\s+)?(class|void)\b")),
    ("php", re.compile(r"<\?php")),
    ("typescript", re.compile(r":\s*(string|number|boolean)\b|\binterface\s+\w+\s*\{")),
    ("javascript", re.compile(r"\b(const|let|var)\s+\w+\s*=|\bfunction\s+\w*\s*\(|=>")),
]


def now_ms() -> float:
    return time.time() * 1000.0


def clamp01(value: float) -> float:
    return max(0.0, min(1.0, value))


def generate_session_id() -> str:
    return f"audit_{int(now_ms())}_{uuid.uuid4().hex[:9]}"


def detect_language(code: str) -> Optional[str]:
    """Best-effort language guess used when a request names none."""
    for language, pattern in _LANGUAGE_SIGNATURES:
        if pattern.search(code):
            return language
    return None
