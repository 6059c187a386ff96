"""Pipeline coordinator - explicit gate state machine with a final audit.

START -> PRE_PROCESSING -> [GATE_0] -> GATE_1 .. GATE_5 -> FINAL_AUDIT -> DONE
"""

import logging
import time
from urllib.parse import urlparse

import requests

from config.defaults import DEFAULTS
from config.gates import GATES, DATA_PREPARATION, EXECUTION, FIXED_SEQUENCE, LEARNING
from core.decision import needs_data_preparation
from core.errors import ContractViolation, InputValidationError
from core.gate_executor import GateContext, GateExecutor
from core.invoker import WorkerInvoker
from core.quality import audit
from core.state import Phase, PipelineResult, PipelineState, Status
from core.store import StateStore
from utils.naming import slugify

logger = logging.getLogger(__name__)


def validate_request(request):
    """Fast-fail checks. Raises InputValidationError; touches no state."""
    issues = []
    if not request.user_story:
        issues.append("userStory must not be empty")
    parsed = urlparse(request.url or "")
    if parsed.scheme not in ("http", "https") or not parsed.netloc:
        issues.append(f"url is not a valid http(s) URL: {request.url!r}")
    if not request.acceptance_criteria or not any(c.strip() for c in request.acceptance_criteria):
        issues.append("acceptanceCriteria must contain at least one criterion")
    if not request.domain:
        issues.append("domain must not be empty")
    elif not slugify(request.domain):
        issues.append(f"domain has no usable characters: {request.domain!r}")
    if not request.feature:
        issues.append("feature must not be empty")
    elif not slugify(request.feature):
        issues.append(f"feature has no usable characters: {request.feature!r}")
    if issues:
        raise InputValidationError(issues)


def fetch_page_content(url, timeout=None):
    """Fetch the target page once; gates receive this cached copy."""
    response = requests.get(url, timeout=timeout or DEFAULTS["page_fetch_timeout"])
    response.raise_for_status()
    return response.text


def gate_sequence(data_preparation):
    if data_preparation:
        return [DATA_PREPARATION] + FIXED_SEQUENCE
    return list(FIXED_SEQUENCE)


class PipelineCoordinator:
    """Drives the gates in order until completion or the first FAILED gate.

    PARTIAL gates are recorded and the pipeline continues with their output
    passed through unchanged. The PipelineState is written through to the
    store after every transition.
    """

    def __init__(self, store=None, invoker=None, executor=None, fetch_page=None):
        self.store = store or StateStore()
        self.invoker = invoker or WorkerInvoker()
        self.executor = executor or GateExecutor(self.store, self.invoker)
        self.fetch_page = fetch_page or fetch_page_content

    def run(self, request, abort_event=None, resume=False) -> PipelineResult:
        """Run the pipeline for request.

        abort_event is checked between gates only. With resume=True an
        IN_PROGRESS state for the same request id picks up after its last
        completed gate.
        """
        started = time.monotonic()
        validate_request(request)

        state, results = self._start(request, resume)
        state.enter(Phase.PRE_PROCESSING)
        self._persist(state)

        page_content = self._load_page(request.url)
        if state.data_preparation is None:
            state.data_preparation = needs_data_preparation(request, page_content)
            self._persist(state)
        logger.info("Data preparation gate %s for %s/%s",
                    "enabled" if state.data_preparation else "skipped",
                    request.domain, request.feature)

        sequence = gate_sequence(state.data_preparation)
        context = GateContext(request=request, page_content=page_content)

        for gate in sequence:
            if gate in state.completed_gates:
                continue
            if abort_event is not None and abort_event.is_set():
                logger.info("Abort requested before gate %d", gate)
                return self._aborted(state, results, gate, started)

            state.begin_gate(gate)
            self._persist(state)

            result = self.executor.execute(gate, state, context)
            results[gate] = result

            if result.status == Status.FAILED:
                state.fail_gate(gate)
                self._persist(state)
                logger.warning("Gate %d (%s) failed: %s",
                               gate, GATES[gate]["name"], "; ".join(result.validation.issues))
                break

            state.complete_gate(gate)
            self._persist(state)
            if gate == LEARNING:
                self._record_learnings(state, results)

        return self._final_audit(request, state, results, sequence, started)

    def status(self, domain, feature):
        """Durable view of a pipeline: state plus per-gate summaries."""
        state = self.store.load_pipeline_state(domain, feature)
        if state is None:
            return None
        gates = {}
        for gate in GATES:
            result = self.store.load_gate_result(domain, feature, gate)
            if result is not None and gate in state.completed_gates + [state.failed_gate]:
                gates[result.name] = result.summary()
        return {"state": state.to_dict(), "gates": gates}

    # --- Internals ---

    def _persist(self, state):
        self.store.save_pipeline_state(state)

    def _start(self, request, resume):
        if resume:
            existing = self.store.load_pipeline_state(request.domain, request.feature)
            if (existing is not None
                    and existing.status == Status.IN_PROGRESS
                    and existing.request_id == request.request_id):
                results = {}
                for gate in existing.completed_gates:
                    result = self.store.load_gate_result(request.domain, request.feature, gate)
                    if result is None:
                        raise ContractViolation(f"Completed gate {gate} has no recorded result")
                    results[gate] = result
                logger.info("Resuming %s after gates %s", request.request_id, existing.completed_gates)
                return existing, results
        return PipelineState.for_request(request), {}

    def _load_page(self, url):
        try:
            return self.fetch_page(url) or ""
        except requests.RequestException as e:
            logger.warning("Could not fetch %s, continuing without page content: %s", url, e)
            return ""

    def _record_learnings(self, state, results):
        learning = results[LEARNING].output
        execution = results.get(EXECUTION)
        record = {
            "requestId": state.request_id,
            "learnings": learning.get("learnings", []),
            "healing": execution.output.get("healing", {}) if execution else {},
        }
        self.store.save_learnings(state.domain, state.feature, record)

    def _summaries(self, results):
        return {results[g].name: results[g].summary() for g in sorted(results)}

    def _aborted(self, state, results, next_gate, started):
        return PipelineResult(
            status=state.status,
            request_id=state.request_id,
            execution_time_ms=int((time.monotonic() - started) * 1000),
            gates=self._summaries(results),
            issues=[f"aborted before gate {next_gate} ({GATES[next_gate]['name']})"],
            aborted=True,
        )

    def _final_audit(self, request, state, results, sequence, started):
        halted = state.status == Status.FAILED
        if not halted:
            state.enter(Phase.FINAL_AUDIT)
            self._persist(state)

        report = audit(results, sequence, request.acceptance_criteria, halted=halted)
        state.finish(report["status"])
        self._persist(state)

        issues = []
        if state.failed_gate is not None:
            failed = results[state.failed_gate]
            issues.append(f"gate {failed.gate} ({failed.name}) failed")
            issues.extend(failed.validation.issues)
        issues.extend(report["issues"])

        elapsed_ms = int((time.monotonic() - started) * 1000)
        audit_key = self.store.save_audit(request.domain, request.feature, {
            "requestId": request.request_id,
            "status": state.status.value,
            "sequence": sequence,
            "completedGates": list(state.completed_gates),
            "failedGate": state.failed_gate,
            "gates": self._summaries(results),
            "qualityMetrics": report["metrics"],
            "deliverables": report["deliverables"],
            "issues": issues,
            "executionTimeMs": elapsed_ms,
        })

        logger.info("Pipeline %s finished %s (score %d)",
                    request.request_id, state.status.value, report["metrics"]["overallScore"])
        return PipelineResult(
            status=state.status,
            request_id=request.request_id,
            execution_time_ms=elapsed_ms,
            gates=self._summaries(results),
            deliverables=report["deliverables"],
            quality_metrics=report["metrics"],
            audit_trail=audit_key,
            failed_gate=state.failed_gate,
            issues=issues,
        )
