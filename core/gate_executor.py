"""Runs one gate: load upstream, invoke worker, validate, persist."""

import logging
from dataclasses import dataclass

from config.defaults import DEFAULTS
from config.gates import GATES, EXECUTION
from core.errors import ContractViolation, WorkerInvocationError
from core.healing import HealingLoop
from core.state import GateResult, PipelineRequest, Status, Validation
from core.validation import grade, merge_reported, validate

logger = logging.getLogger(__name__)

# Request fields each worker receives besides metadata and upstream artifacts.
_REQUEST_FIELDS = {
    0: ["userStory", "acceptanceCriteria", "dataRequirements"],
    1: ["userStory", "acceptanceCriteria", "dataRequirements"],
    2: ["acceptanceCriteria"],
    3: ["constraints", "authentication"],
    4: ["constraints", "authentication"],
    5: ["userStory", "acceptanceCriteria"],
}


@dataclass(frozen=True)
class GateContext:
    """Per-run inputs shared by every gate. Page content is fetched once."""
    request: PipelineRequest
    page_content: str = ""


def _invocation_failure(gate, worker, detail):
    return GateResult(
        gate=gate,
        worker_name=worker,
        status=Status.FAILED,
        output={},
        validation=Validation(score=0, issues=(f"invocation failure: {detail}",), passed=False),
    )


class GateExecutor:
    """Executes a single gate and reports SUCCESS, PARTIAL or FAILED.

    The result is persisted before it is returned. A missing required
    predecessor is a ContractViolation and propagates; worker faults become
    a FAILED result.
    """

    def __init__(self, store, invoker, healing_loop=None, max_runs=None):
        self.store = store
        self.invoker = invoker
        self.healing_loop = healing_loop
        self.max_runs = max_runs

    def execute(self, gate, state, context: GateContext) -> GateResult:
        spec = GATES[gate]
        upstream = self.load_upstream(gate, state)
        payload = self.build_payload(gate, context, upstream)

        if gate == EXECUTION:
            result = self._run_execution(gate, spec, payload, upstream, context)
        else:
            result = self._run_worker(gate, spec, payload, upstream, context)

        self.store.save_gate_result(state.domain, state.feature, result)
        logger.info("Gate %d (%s) -> %s score=%d",
                    gate, spec["name"], result.status.value, result.validation.score)
        return result

    def load_upstream(self, gate, state):
        """Return {gate: output} for required and completed optional predecessors."""
        upstream = {}
        spec = GATES[gate]
        wanted = list(spec["requires"]) + [
            g for g in spec["optional_inputs"] if g in state.completed_gates
        ]
        for g in wanted:
            if g not in state.completed_gates:
                raise ContractViolation(f"Gate {gate} requires gate {g}, which has not completed")
            result = self.store.load_gate_result(state.domain, state.feature, g)
            if result is None:
                raise ContractViolation(f"Gate {gate} requires gate {g}, but no result is recorded")
            upstream[g] = result.output
        return upstream

    def build_payload(self, gate, context, upstream):
        request = context.request
        request_dict = request.to_dict()
        payload = {
            "metadata": {
                "domain": request.domain,
                "feature": request.feature,
                "url": request.url,
                "request_id": request.request_id,
            },
            "gate": gate,
            "gate_name": GATES[gate]["name"],
            "upstream": {f"gate{g}": output for g, output in sorted(upstream.items())},
        }
        for name in _REQUEST_FIELDS.get(gate, []):
            payload[name] = request_dict[name]
        if GATES[gate]["needs_page"]:
            payload["page_content"] = context.page_content
        return payload

    def _timeout(self, context, default):
        return context.request.constraints.timeout or default

    def _run_worker(self, gate, spec, payload, upstream, context):
        worker = spec["worker"]
        try:
            response = self.invoker.invoke(
                worker, payload, timeout=self._timeout(context, DEFAULTS["worker_timeout"]))
        except WorkerInvocationError as e:
            logger.warning("Gate %d worker %s failed: %s", gate, worker, e.detail)
            return _invocation_failure(gate, worker, e.detail)

        validation = validate(gate, response.output, spec["profile"], upstream, context.request)
        validation = merge_reported(validation, response.validation)
        if response.status == "FAILED" and validation.passed:
            validation = Validation(
                score=validation.score,
                issues=validation.issues + ("worker reported FAILED status",),
                passed=False,
            )
        status = grade(validation, spec["profile"])
        # a worker's own PARTIAL is never promoted
        if response.status == "PARTIAL" and status == Status.SUCCESS:
            status = Status.PARTIAL
        return GateResult(gate=gate, worker_name=worker, status=status,
                          output=response.output, validation=validation)

    def _healing_for(self, context):
        if self.healing_loop is not None:
            return self.healing_loop
        constraints = context.request.constraints
        return HealingLoop(
            self.invoker,
            max_runs=self.max_runs,
            max_healing_attempts=constraints.retries,
            timeout=self._timeout(context, DEFAULTS["execution_timeout"]),
        )

    def _run_execution(self, gate, spec, payload, upstream, context):
        loop = self._healing_for(context)
        report = loop.run(payload)
        output = report.to_output()

        validation = validate(gate, output, spec["profile"], upstream, context.request)
        last = report.runs[-1] if report.runs else None
        if last is not None and not last.output and last.error.startswith("invocation failure"):
            validation = Validation(
                score=validation.score,
                issues=(last.error,) + validation.issues,
                passed=False,
            )
        return GateResult(
            gate=gate,
            worker_name=loop.executor_worker,
            status=grade(validation, spec["profile"]),
            output=output,
            validation=validation,
        )
