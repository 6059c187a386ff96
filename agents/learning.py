"""Learning recorder - turns execution history into reusable lessons. Zero LLM calls."""

from agents.base import BaseAgent, response
from config.gates import LEARNING

LOW_CONFIDENCE = 70


class LearningRecorder(BaseAgent):
    """Collects what the run taught: healed and persistent failures, flaky
    tests, and selectors the mapper was unsure about."""

    name = "learning-recorder"
    description = "Records healing outcomes and weak locators for later runs"
    gate = LEARNING

    def run(self, payload):
        upstream = payload.get("upstream", {})
        execution = upstream.get("gate4", {})
        mapping = upstream.get("gate2", {})

        learnings = []
        learnings += self._healing_lessons(execution)
        learnings += self._flaky_lessons(execution)
        learnings += self._locator_lessons(mapping)

        summary = f"{len(learnings)} learning(s) recorded"
        if not learnings:
            summary = "clean run, nothing to record"
        return response("SUCCESS", {"learnings": learnings, "summary": summary})

    def _healing_lessons(self, execution):
        lessons = []
        healing = execution.get("healing", {}) or {}
        runs = execution.get("runs", []) or []
        final_passed = bool(execution.get("passed"))

        for attempt in healing.get("attempts", []) or []:
            signature = attempt.get("triggeringFailureSignature")
            error = next(
                (r.get("error", "") for r in runs if r.get("failureSignature") == signature), "")
            healed = attempt.get("outcome") == "SUCCESS" and final_passed
            lessons.append({
                "kind": "healed_failure" if healed else "persistent_failure",
                "signature": signature,
                "error": error,
                "attempt": attempt.get("attemptNumber"),
                "detail": attempt.get("detail", ""),
            })

        if not final_passed and not lessons and runs:
            last = runs[-1]
            lessons.append({
                "kind": "persistent_failure",
                "signature": last.get("failureSignature"),
                "error": last.get("error", ""),
                "failed_tests": last.get("failedTests", []),
            })
        return lessons

    def _flaky_lessons(self, execution):
        flaky = execution.get("flaky", 0) or 0
        if not flaky:
            return []
        return [{"kind": "flaky_tests", "count": flaky}]

    def _locator_lessons(self, mapping):
        lessons = []
        for m in mapping.get("mappings", []) or []:
            if not isinstance(m, dict):
                continue
            try:
                confidence = float(m.get("confidence", 0))
            except (TypeError, ValueError):
                confidence = 0.0
            if confidence < LOW_CONFIDENCE:
                lessons.append({
                    "kind": "weak_locator",
                    "step_id": m.get("step_id"),
                    "selector": m.get("selector"),
                    "confidence": confidence,
                })
        return lessons
