"""Request and wire schemas validated at the engine boundary."""

from typing import Any, Dict, List, Literal, Optional

from pydantic import BaseModel, ConfigDict, Field, field_validator

Depth = Literal["quick", "standard", "deep"]


class AuditOptions(BaseModel):
    """Per-request analysis options."""
    model_config = ConfigDict(frozen=True)

    depth: Depth = "standard"
    focus_areas: List[str] = Field(default_factory=list)
    enable_consensus: bool = True
    min_consensus_score: Optional[float] = Field(None, ge=0.0, le=1.0)


class AuditRequest(BaseModel):
    """An audit submission. Immutable once constructed."""
    model_config = ConfigDict(frozen=True)

    project_id: str = Field(..., description="Project the audit belongs to")
    codebase: str = Field(..., description="Source text to analyze")
    targets: List[str] = Field(default_factory=list, description="Files or symbols of interest")
    language: Optional[str] = None
    blockchain: Optional[str] = None
    options: AuditOptions = Field(default_factory=AuditOptions)

    @field_validator("project_id", "codebase")
    @classmethod
    def _not_blank(cls, value: str) -> str:
        if not value or not value.strip():
            raise ValueError("must be a non-empty string")
        return value


class LocationCandidate(BaseModel):
    file: str = ""
    line: Optional[int] = None


class FindingCandidate(BaseModel):
    """A finding as returned by the model-call capability (pre-stamping)."""
    id: Optional[str] = None
    type: str = Field(..., description="Vulnerability category (e.g. 'SQL Injection')")
    severity: str = "medium"
    confidence: Optional[float] = Field(None, ge=0.0, le=1.0, description="Model confidence score")
    description: str = ""
    evidence: List[str] = Field(default_factory=list)
    location: Optional[LocationCandidate] = None
    risk_categories: List[str] = Field(default_factory=list)
    compliance_violations: List[str] = Field(default_factory=list)
    metadata: Dict[str, Any] = Field(default_factory=dict)


class ModelCallResponse(BaseModel):
    """Body returned by ``call(reviewer_id, payload)``."""
    findings: List[FindingCandidate] = Field(default_factory=list)
    confidence: Optional[float] = Field(None, ge=0.0, le=1.0)
    cost: float = 0.0
