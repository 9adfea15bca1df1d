"""Audit orchestration: admission, caching, reviewer fan-out, consensus."""

import asyncio
import copy
import logging
import time
from datetime import datetime
from typing import Any, Dict, List, Mapping, Optional, Union

from pydantic import ValidationError as PydanticValidationError

from nullaudit.cache import ResultCache, generate_cache_key
from nullaudit.config import EngineConfig
from nullaudit.consensus import ConsensusEngine, ConsensusResult, ReviewerWeights
from nullaudit.data_models import (
    AuditMetrics,
    AuditResult,
    AuditSession,
    Finding,
    HumanTask,
    ReviewerOutcome,
    summarize_findings,
)
from nullaudit.errors import (
    AllReviewersFailedError,
    AuditError,
    AuditTimeoutError,
    NotFoundError,
    RateLimitError,
    ValidationError,
)
from nullaudit.escalation import HumanReviewEscalator, PolicyEscalator
from nullaudit.events import EventBus, EventEmitter, ProgressPhase
from nullaudit.exports import ReportExport, export_report
from nullaudit.gate import AdmissionGate
from nullaudit.reviewers import ModelCaller, ReviewerInvoker
from nullaudit.schema import AuditRequest
from nullaudit.utils.helpers import detect_language, generate_session_id
from nullaudit.utils.retry import RetryConfig

logger = logging.getLogger(__name__)

AGENT_ID = "nullaudit-orchestrator"


def _validation_error_from_pydantic(error: PydanticValidationError) -> ValidationError:
    first = error.errors()[0]
    field = ".".join(str(part) for part in first.get("loc", ()))
    return ValidationError(f"Invalid audit request: {field}: {first.get('msg')}", field=field)


class AuditOrchestrator:
    """
    Runs audits end to end and owns all cross-request state.

    Each instance has its own admission gate, result cache, metrics and
    session registry; nothing is shared between instances.
    """

    def __init__(
        self,
        config: Optional[EngineConfig] = None,
        caller: Optional[ModelCaller] = None,
        escalator: Optional[HumanReviewEscalator] = None,
        event_bus: Optional[EventBus] = None,
        clock=time.time,
    ):
        """
        Initialize orchestrator.

        Args:
            config: Engine configuration (defaults apply when None)
            caller: Model-call capability; None sends every reviewer to the heuristic scan
            escalator: Human-review capability used when ``enable_hitl`` is set
            event_bus: Receives lifecycle and progress events
            clock: Seconds since epoch, shared by gate and cache
        """
        self.config = (config or EngineConfig()).validate()
        self.gate = AdmissionGate(self.config.rate_limit, clock=clock)
        self.cache: ResultCache[AuditResult] = ResultCache(self.config.cache_ttl_ms, clock=clock)
        self.invoker = ReviewerInvoker(
            caller,
            retry_config=RetryConfig.from_ms(self.config.max_retries, self.config.retry_delay_ms),
            enable_fallback=self.config.enable_fallback,
        )
        self.consensus = ConsensusEngine(
            ReviewerWeights(self.config.reviewer_weights, self.config.default_reviewer_weight)
        )
        self.escalator = escalator or PolicyEscalator()
        self.event_bus = event_bus or EventBus()
        self.metrics = AuditMetrics()
        self._sessions: Dict[str, AuditSession] = {}
        self._sweeper: Optional[asyncio.Task] = None

    # ------------------------------------------------------------------
    # Audit execution
    # ------------------------------------------------------------------

    def validate_request(self, request: Union[AuditRequest, Mapping[str, Any]]) -> AuditRequest:
        if not isinstance(request, AuditRequest):
            try:
                request = AuditRequest.model_validate(request)
            except PydanticValidationError as e:
                raise _validation_error_from_pydantic(e) from None

        if len(request.codebase) > self.config.max_code_length:
            raise ValidationError(
                f"Code exceeds maximum length of {self.config.max_code_length} characters",
                field="codebase",
                context={"project_id": request.project_id},
            )
        return request

    async def run_audit(
        self,
        request: Union[AuditRequest, Mapping[str, Any]],
        use_cache: bool = True,
    ) -> AuditResult:
        """
        Run one audit.

        Raises:
            ValidationError: Request shape is invalid (no session is created)
            RateLimitError: Admission denied
            AllReviewersFailedError: No reviewer produced usable output
            AuditTimeoutError: The audit exceeded ``timeout_ms``
        """
        audit_id = generate_session_id()
        emitter = EventEmitter(audit_id, self.event_bus)

        emitter.progress(ProgressPhase.VALIDATING, 0, "Validating request")
        request = self.validate_request(request)

        emitter.progress(ProgressPhase.ADMITTING, 10, "Checking admission")
        decision = self.gate.try_acquire()
        if not decision.allowed:
            logger.warning(
                f"Audit for project {request.project_id} rejected by admission gate, "
                f"retry after {decision.retry_after_ms}ms"
            )
            raise RateLimitError(decision.retry_after_ms, {"project_id": request.project_id})

        caching = self.config.enable_caching and use_cache
        cache_key = generate_cache_key(request, self.config.cache_key_code_chars)
        if caching:
            cached = self.cache.get(cache_key)
            if cached is not None:
                logger.info(f"Cache hit for project {request.project_id} (session {cached.session_id})")
                emitter.cache_hit(cache_key, cached.session_id)
                emitter.progress(ProgressPhase.DONE, 100, "Served from cache")
                return copy.deepcopy(cached)

        language = request.language or detect_language(request.codebase) or "unknown"
        session = AuditSession(
            id=audit_id,
            project_id=request.project_id,
            metadata={
                "models": list(self.config.models),
                "depth": request.options.depth,
                "language": language,
                "cache_key": cache_key,
            },
        )
        self._sessions[session.id] = session
        self.metrics.record_started()
        emitter.audit_started(request.project_id, self.config.models)
        logger.info(
            f"Audit {session.id} started for project {request.project_id} "
            f"with reviewers {self.config.models}"
        )

        started = time.monotonic()
        outcomes: Dict[str, ReviewerOutcome] = {}
        try:
            result = await asyncio.wait_for(
                self._execute(request, session, emitter, outcomes),
                timeout=self.config.timeout_ms / 1000.0,
            )
        except asyncio.TimeoutError:
            error = AuditTimeoutError(
                request.project_id,
                self.config.timeout_ms,
                session_id=session.id,
                pending_reviewers=[r for r in self.config.models if r not in outcomes],
            )
            self._fail(session, emitter, error, outcomes)
            raise error from None
        except AuditError as e:
            self._fail(session, emitter, e, outcomes)
            raise
        except Exception as e:
            logger.exception(f"Unexpected error in audit {session.id} (project {request.project_id})")
            self._fail(session, emitter, e, outcomes)
            raise

        duration_ms = int((time.monotonic() - started) * 1000)
        session.status = "completed"
        session.completed_at = datetime.now()
        session.metadata["duration_ms"] = duration_ms
        self.metrics.record_success(
            result.consensus_score,
            len(result.findings),
            sum(o.compute_cost for o in outcomes.values()),
        )

        if caching:
            self.cache.set(
                cache_key,
                copy.deepcopy(result),
                tags=[
                    f"project:{request.project_id}",
                    f"language:{language}",
                    f"depth:{request.options.depth}",
                ],
            )

        emitter.audit_completed(len(result.findings), result.consensus_score, duration_ms)
        emitter.progress(ProgressPhase.DONE, 100, "Audit complete")
        logger.info(
            f"Audit {session.id} completed: {len(result.findings)} finding(s), "
            f"consensus {result.consensus_score:.3f}, {duration_ms}ms"
        )
        return result

    async def _execute(
        self,
        request: AuditRequest,
        session: AuditSession,
        emitter: EventEmitter,
        outcomes: Dict[str, ReviewerOutcome],
    ) -> AuditResult:
        reviewers = list(self.config.models)
        emitter.progress(ProgressPhase.ANALYZING, 20, f"Running {len(reviewers)} reviewer(s)")

        async def run_reviewer(reviewer_id: str) -> ReviewerOutcome:
            emitter.reviewer_started(reviewer_id)
            outcome = await self.invoker.invoke(reviewer_id, request)
            outcomes[reviewer_id] = outcome
            if outcome.succeeded:
                emitter.reviewer_completed(
                    reviewer_id, len(outcome.findings), outcome.latency_ms, outcome.used_fallback
                )
                if outcome.used_fallback:
                    emitter.warning(
                        f"Reviewer {reviewer_id} used the heuristic scan",
                        {"reviewer_id": reviewer_id, "project_id": request.project_id},
                    )
            else:
                emitter.reviewer_failed(reviewer_id, outcome.error)
            emitter.progress(
                ProgressPhase.ANALYZING,
                20 + 60 * len(outcomes) / len(reviewers),
                f"Reviewer {reviewer_id} finished",
            )
            return outcome

        settled = await asyncio.gather(
            *(run_reviewer(reviewer_id) for reviewer_id in reviewers),
            return_exceptions=True,
        )

        results: List[ReviewerOutcome] = []
        for reviewer_id, item in zip(reviewers, settled):
            if isinstance(item, BaseException):
                logger.error(
                    f"Reviewer {reviewer_id} raised past the invoker for project "
                    f"{request.project_id}: {item}"
                )
                item = ReviewerOutcome(reviewer_id=reviewer_id, error=str(item))
                outcomes[reviewer_id] = item
            results.append(item)

        session.metadata["reviewers"] = {
            o.reviewer_id: {
                "succeeded": o.succeeded,
                "used_fallback": o.used_fallback,
                "attempts": o.attempts,
                "latency_ms": o.latency_ms,
                "findings_count": len(o.findings),
                "error": o.error,
            }
            for o in results
        }
        successful = [o for o in results if o.succeeded]
        failed = [o.reviewer_id for o in results if not o.succeeded]
        if not successful:
            raise AllReviewersFailedError(
                request.project_id,
                {o.reviewer_id: o.error or "unknown error" for o in results},
                session_id=session.id,
            )

        emitter.progress(ProgressPhase.MERGING, 85, "Merging reviewer findings")
        consensus = self._merge(request, successful)
        emitter.findings_merged(
            request.options.enable_consensus,
            len(consensus.merged_findings),
            consensus.consensus_score,
        )

        # Session keeps everything; the caller only sees findings above threshold
        session.findings = consensus.merged_findings
        threshold = request.options.min_consensus_score
        if threshold is None:
            threshold = self.config.confidence_threshold
        returned = [f for f in consensus.merged_findings if f.confidence_score >= threshold]
        session.metadata.update({
            "consensus_score": consensus.consensus_score,
            "confidence_threshold": threshold,
            "failed_reviewers": failed,
            "returned_findings": len(returned),
        })

        human_tasks = await self._escalate(returned, session) if self.config.enable_hitl else []

        return AuditResult(
            session_id=session.id,
            project_id=request.project_id,
            findings=returned,
            consensus_score=consensus.consensus_score,
            summary=summarize_findings(returned),
            reviewers_used=[o.reviewer_id for o in successful],
            failed_reviewers=failed,
            human_review_required=bool(human_tasks),
            human_tasks=human_tasks,
        )

    def _merge(self, request: AuditRequest, successful: List[ReviewerOutcome]) -> ConsensusResult:
        if request.options.enable_consensus:
            return self.consensus.merge(
                [o.findings for o in successful],
                [o.reviewer_id for o in successful],
            )

        findings = [f for o in successful for f in o.findings]
        findings.sort(key=lambda f: (-f.confidence_score, f.reviewer_id or "", f.id))
        return ConsensusResult(merged_findings=findings, consensus_score=0.0)

    async def _escalate(self, findings: List[Finding], session: AuditSession) -> List[HumanTask]:
        tasks: List[HumanTask] = []
        context = {
            "agent_id": AGENT_ID,
            "session_id": session.id,
            "project_id": session.project_id,
        }
        for finding in findings:
            try:
                task = await self.escalator.evaluate(finding, dict(context))
            except Exception as e:
                logger.warning(
                    f"Escalation failed for finding {finding.id} "
                    f"(session {session.id}, project {session.project_id}): {e}"
                )
                continue
            if task is not None:
                tasks.append(task)
                session.human_tasks.append(task)
        return tasks

    def _fail(
        self,
        session: AuditSession,
        emitter: EventEmitter,
        error: BaseException,
        outcomes: Dict[str, ReviewerOutcome],
    ) -> None:
        session.status = "failed"
        session.completed_at = datetime.now()
        session.metadata["error"] = error.to_dict() if isinstance(error, AuditError) else {
            "error": type(error).__name__,
            "message": str(error),
        }
        self.metrics.record_failure(sum(o.compute_cost for o in outcomes.values()))
        code = getattr(error, "code", "INTERNAL_ERROR")
        emitter.audit_failed(str(error), code)
        logger.error(f"Audit {session.id} failed for project {session.project_id}: {error}")

    # ------------------------------------------------------------------
    # Query surface
    # ------------------------------------------------------------------

    def get_session(self, session_id: str) -> AuditSession:
        session = self._sessions.get(session_id)
        if session is None:
            raise NotFoundError("Audit session", session_id)
        return copy.deepcopy(session)

    def get_all_sessions(self) -> List[AuditSession]:
        sessions = sorted(self._sessions.values(), key=lambda s: s.started_at)
        return [copy.deepcopy(s) for s in sessions]

    def get_sessions_by_project(self, project_id: str) -> List[AuditSession]:
        return [s for s in self.get_all_sessions() if s.project_id == project_id]

    def export_report(self, session_id: str, fmt: str = "json") -> ReportExport:
        return export_report(self.get_session(session_id), fmt)

    def get_metrics(self) -> Dict[str, Any]:
        return self.metrics.to_dict()

    # ------------------------------------------------------------------
    # Cache maintenance
    # ------------------------------------------------------------------

    def invalidate_project(self, project_id: str) -> int:
        return self.cache.invalidate_by_tags([f"project:{project_id}"])

    def start_cache_sweeper(self, interval_s: float = 60.0) -> asyncio.Task:
        """Start a background task sweeping expired cache entries."""
        if self._sweeper is not None and not self._sweeper.done():
            return self._sweeper

        async def _sweep_loop():
            while True:
                await asyncio.sleep(interval_s)
                self.cache.sweep()

        self._sweeper = asyncio.get_running_loop().create_task(_sweep_loop())
        return self._sweeper

    async def close(self) -> None:
        if self._sweeper is not None:
            self._sweeper.cancel()
            try:
                await self._sweeper
            except asyncio.CancelledError:
                pass
            self._sweeper = None
        if self.invoker.caller is not None:
            await self.invoker.caller.close()
