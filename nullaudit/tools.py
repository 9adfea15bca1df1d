"""MCP-style tools exposing the audit engine to external agents."""

import logging
import uuid
from abc import ABC, abstractmethod
from typing import TYPE_CHECKING, Any, Dict, List, Optional, Type

from nullaudit.errors import AuditError, ValidationError

if TYPE_CHECKING:
    from nullaudit.orchestrator import AuditOrchestrator

logger = logging.getLogger(__name__)


class AuditTool(ABC):
    """Base class for tools bound to one orchestrator."""

    tool_id: str = "tool"
    description: str = ""
    input_schema: Dict[str, Any] = {"type": "object", "properties": {}}

    def __init__(self, orchestrator: "AuditOrchestrator"):
        self.orchestrator = orchestrator

    @abstractmethod
    async def run(self, arguments: Dict[str, Any]) -> Any:
        """Execute the tool and return a JSON-serializable result."""

    def describe(self) -> Dict[str, Any]:
        return {
            "name": self.tool_id,
            "description": self.description,
            "inputSchema": self.input_schema,
        }


def _require(arguments: Dict[str, Any], name: str) -> Any:
    value = arguments.get(name)
    if value in (None, ""):
        raise ValidationError(f"Missing required argument '{name}'", field=name)
    return value


class AnalyzeCodeSecurityTool(AuditTool):
    tool_id = "analyze_code_security"
    description = "Run a multi-reviewer security audit over a codebase"
    input_schema = {
        "type": "object",
        "properties": {
            "project_id": {"type": "string"},
            "codebase": {"type": "string"},
            "targets": {"type": "array", "items": {"type": "string"}},
            "language": {"type": "string"},
            "blockchain": {"type": "string"},
            "options": {
                "type": "object",
                "properties": {
                    "depth": {"type": "string", "enum": ["quick", "standard", "deep"]},
                    "focus_areas": {"type": "array", "items": {"type": "string"}},
                    "enable_consensus": {"type": "boolean"},
                    "min_consensus_score": {"type": "number"},
                },
            },
        },
        "required": ["project_id", "codebase"],
    }

    async def run(self, arguments: Dict[str, Any]) -> Any:
        result = await self.orchestrator.run_audit(arguments)
        return result.to_dict()


class GetAuditSessionTool(AuditTool):
    tool_id = "get_audit_session"
    description = "Fetch one audit session by id"
    input_schema = {
        "type": "object",
        "properties": {"session_id": {"type": "string"}},
        "required": ["session_id"],
    }

    async def run(self, arguments: Dict[str, Any]) -> Any:
        return self.orchestrator.get_session(_require(arguments, "session_id")).to_dict()


class ListProjectSessionsTool(AuditTool):
    tool_id = "list_project_sessions"
    description = "List audit sessions for a project"
    input_schema = {
        "type": "object",
        "properties": {"project_id": {"type": "string"}},
        "required": ["project_id"],
    }

    async def run(self, arguments: Dict[str, Any]) -> Any:
        sessions = self.orchestrator.get_sessions_by_project(_require(arguments, "project_id"))
        return [s.to_dict() for s in sessions]


class GetReportTool(AuditTool):
    tool_id = "get_report"
    description = "Export an audit report as json, html, pdf or sarif"
    input_schema = {
        "type": "object",
        "properties": {
            "session_id": {"type": "string"},
            "format": {"type": "string", "enum": ["json", "html", "pdf", "sarif"]},
        },
        "required": ["session_id"],
    }

    async def run(self, arguments: Dict[str, Any]) -> Any:
        report = self.orchestrator.export_report(
            _require(arguments, "session_id"),
            arguments.get("format", "json"),
        )
        return {
            "format": report.format,
            "content_type": report.content_type,
            "content": report.content,
        }


class GetMetricsTool(AuditTool):
    tool_id = "get_metrics"
    description = "Engine counters and cache statistics"

    async def run(self, arguments: Dict[str, Any]) -> Any:
        return {
            **self.orchestrator.get_metrics(),
            "cache": self.orchestrator.cache.stats(),
        }


BUILTIN_TOOLS: List[Type[AuditTool]] = [
    AnalyzeCodeSecurityTool,
    GetAuditSessionTool,
    ListProjectSessionsTool,
    GetReportTool,
    GetMetricsTool,
]


class ToolRegistry:
    """Holds tools by ID and wraps invocations in a response envelope."""

    def __init__(self, orchestrator: "AuditOrchestrator", register_builtins: bool = True) -> None:
        self.orchestrator = orchestrator
        self._tools: Dict[str, AuditTool] = {}
        if register_builtins:
            for tool_cls in BUILTIN_TOOLS:
                self.register_class(tool_cls)

    def register(self, tool: AuditTool) -> None:
        self._tools[tool.tool_id] = tool

    def register_class(self, tool_cls: Type[AuditTool]) -> None:
        self.register(tool_cls(self.orchestrator))

    def get(self, tool_id: str) -> Optional[AuditTool]:
        return self._tools.get(tool_id)

    def list_tools(self) -> List[Dict[str, Any]]:
        return [tool.describe() for tool in self._tools.values()]

    async def invoke(self, tool_id: str, arguments: Optional[Dict[str, Any]] = None) -> Dict[str, Any]:
        """
        Invoke a tool.

        Engine errors are reported inside the envelope; anything else propagates.
        """
        envelope: Dict[str, Any] = {"id": f"call_{uuid.uuid4().hex[:12]}", "tool": tool_id}
        tool = self.get(tool_id)
        if tool is None:
            envelope.update(success=False, error={"code": "UNKNOWN_TOOL", "message": f"Unknown tool '{tool_id}'"})
            return envelope

        try:
            result = await tool.run(dict(arguments or {}))
        except AuditError as e:
            logger.warning(f"Tool {tool_id} failed: {e}")
            envelope.update(success=False, error=e.to_dict())
            return envelope

        envelope.update(success=True, result=result)
        return envelope
