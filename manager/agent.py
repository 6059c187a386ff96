"""Pipeline Manager - classifies input, normalizes it and hands it to the coordinator."""

from dataclasses import replace

from agents.executor import PlaywrightExecutor
from agents.learning import LearningRecorder
from agents.llm_agent import LLMAgent
from config.gates import (
    GATES, DATA_PREPARATION, TEST_DESIGN, ELEMENT_MAPPING, CODE_GENERATION, EXECUTION,
)
from core.invoker import WorkerInvoker
from core.orchestrator import PipelineCoordinator
from core.state import Status
from core.store import StateStore
from manager.classifier import classify, normalize


def default_workers(output_dir=None):
    """The stock worker set, keyed by the worker names the gates expect."""
    def llm(gate, prompt_name, description, worker=None):
        deliverables = GATES[gate]["deliverables"] if worker is None else []
        return LLMAgent(
            name=worker or GATES[gate]["worker"],
            gate=gate,
            description=description,
            prompt_name=prompt_name,
            deliverable=deliverables[0] if deliverables else None,
            output_dir=output_dir,
        )

    workers = [
        llm(DATA_PREPARATION, "data_preparer", "Prepares input data records for data-driven tests"),
        llm(TEST_DESIGN, "test_designer", "Designs test cases from the user story and criteria"),
        llm(ELEMENT_MAPPING, "element_mapper", "Maps test steps to page locators"),
        llm(CODE_GENERATION, "code_generator", "Generates Playwright test code"),
        PlaywrightExecutor(report_dir=output_dir),
        llm(EXECUTION, "test_healer", "Repairs tests after a repeated failure",
            worker=GATES[EXECUTION]["healer"]),
        LearningRecorder(),
    ]
    return {w.name: w for w in workers}


class PipelineManager:
    def __init__(self, state_dir=None, workers=None, coordinator=None):
        if coordinator is None:
            invoker = WorkerInvoker(workers if workers is not None else default_workers())
            coordinator = PipelineCoordinator(store=StateStore(state_dir), invoker=invoker)
        self.coordinator = coordinator

    def list_workers(self):
        """Return (name, description) tuples for all registered workers."""
        invoker = self.coordinator.invoker
        return [(name, getattr(invoker.worker(name), "description", "")) for name in invoker.names()]

    def handle(self, raw, dry_run=False, resume=False, abort_event=None):
        """Classify raw input and, for pipeline requests, run the pipeline."""
        category, scores = classify(raw)
        result = {"category": category, "scores": scores}
        if category != "pipeline":
            return result

        request = normalize(raw)
        if resume and not (isinstance(raw, dict) and ("requestId" in raw or "request_id" in raw)):
            request = self._resumable(request)
        result["request"] = request.to_dict()
        if dry_run:
            result["dry_run"] = True
            return result

        outcome = self.coordinator.run(request, abort_event=abort_event, resume=resume)
        result["result"] = outcome.to_dict()
        return result

    def status(self, domain, feature):
        return self.coordinator.status(domain, feature)

    def _resumable(self, request):
        # A request re-submitted without its id adopts the one of the
        # interrupted run for the same domain/feature.
        state = self.coordinator.store.load_pipeline_state(request.domain, request.feature)
        if state is None or state.status != Status.IN_PROGRESS:
            return request
        return replace(request, request_id=state.request_id)
