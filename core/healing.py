"""Execution retry loop with bounded healing on repeated identical failures."""

import hashlib
import logging
from dataclasses import dataclass, field

from config.defaults import DEFAULTS
from config.gates import EXECUTION, GATES
from core.errors import WorkerInvocationError
from core.state import HealingAttempt, RunOutcome, Status

logger = logging.getLogger(__name__)


def failure_signature(error, failed_tests):
    """Deterministic fingerprint of a failed run.

    Built from the error text and the set of failed test ids, so ordering
    and duplicates in the test list do not change it.
    """
    tests = sorted({str(t) for t in failed_tests or []})
    material = (error or "").strip() + "\n" + "\n".join(tests)
    return hashlib.sha256(material.encode("utf-8")).hexdigest()[:16]


@dataclass
class HealingReport:
    runs: list[RunOutcome] = field(default_factory=list)
    attempts: list[HealingAttempt] = field(default_factory=list)
    max_healing_attempts: int = 0

    @property
    def passed(self):
        return bool(self.runs) and self.runs[-1].passed

    @property
    def healing_succeeded(self):
        return self.passed and any(a.outcome == Status.SUCCESS for a in self.attempts)

    def to_output(self):
        """Gate output: the final run's output plus the run/heal history."""
        last = self.runs[-1] if self.runs else None
        output = dict(last.output) if last and last.output else {}
        output.setdefault("total", 0)
        output.setdefault("passed_count", 0)
        if last and last.error:
            output.setdefault("error", last.error)
        output["passed"] = self.passed
        output["runs"] = [r.to_dict() for r in self.runs]
        output["healing"] = {
            "attempts": [a.to_dict() for a in self.attempts],
            "attemptCount": len(self.attempts),
            "maxHealingAttempts": self.max_healing_attempts,
            "healingSucceeded": self.healing_succeeded,
        }
        return output


class HealingLoop:
    """Runs the execution worker up to max_runs times.

    Healing is triggered only when the two most recent runs failed with the
    same signature. Different signatures never trigger healing; the loop
    just keeps running. It stops on a passing run, when max_runs is spent,
    or once healing attempts are exhausted.
    """

    def __init__(self, invoker, executor_worker=None, healer_worker=None,
                 max_runs=None, max_healing_attempts=None, timeout=None):
        hard_max = DEFAULTS["hard_max_healing_attempts"]
        self.invoker = invoker
        self.executor_worker = executor_worker or GATES[EXECUTION]["worker"]
        self.healer_worker = healer_worker or GATES[EXECUTION]["healer"]
        self.max_runs = max_runs or DEFAULTS["max_runs"]
        if max_healing_attempts is None:
            max_healing_attempts = DEFAULTS["max_healing_attempts"]
        self.max_healing_attempts = max(0, min(max_healing_attempts, hard_max))
        self.timeout = timeout or DEFAULTS["execution_timeout"]

    def run(self, payload) -> HealingReport:
        report = HealingReport(max_healing_attempts=self.max_healing_attempts)
        patch = None

        for run_number in range(1, self.max_runs + 1):
            outcome = self._execute(payload, run_number, patch)
            report.runs.append(outcome)
            if outcome.passed:
                logger.info("Execution run %d passed", run_number)
                break
            logger.info("Execution run %d failed [%s]: %s",
                        run_number, outcome.failure_signature, outcome.error)

            if not self._is_repeat(report.runs):
                continue
            if len(report.attempts) >= self.max_healing_attempts:
                logger.info("Repeated failure with healing attempts exhausted")
                break

            attempt, new_patch = self._heal(payload, outcome, len(report.attempts) + 1)
            report.attempts.append(attempt)
            patch = new_patch or patch
            if attempt.outcome == Status.FAILED and len(report.attempts) >= self.max_healing_attempts:
                logger.info("Healing attempt %d failed, no attempts left", attempt.attempt_number)
                break

        return report

    @staticmethod
    def _is_repeat(runs):
        if len(runs) < 2:
            return False
        previous, latest = runs[-2], runs[-1]
        return (
            not previous.passed
            and not latest.passed
            and previous.failure_signature == latest.failure_signature
        )

    def _execute(self, payload, run_number, patch):
        run_payload = dict(payload, run=run_number)
        if patch:
            run_payload["healing_patch"] = patch
        try:
            response = self.invoker.invoke(self.executor_worker, run_payload, timeout=self.timeout)
        except WorkerInvocationError as e:
            error = f"invocation failure: {e.detail}"
            return RunOutcome(
                run_number=run_number,
                passed=False,
                failure_signature=failure_signature(error, []),
                error=error,
            )

        output = response.output
        failed_tests = tuple(str(t) for t in output.get("failed_tests", []) or [])
        if "passed" in output:
            passed = bool(output["passed"])
        else:
            passed = response.status == "SUCCESS" and not failed_tests
        if passed:
            return RunOutcome(run_number=run_number, passed=True, output=output)

        error = str(output.get("error") or "") or "execution failed"
        return RunOutcome(
            run_number=run_number,
            passed=False,
            failure_signature=failure_signature(error, failed_tests),
            error=error,
            failed_tests=failed_tests,
            output=output,
        )

    def _heal(self, payload, outcome, attempt_number):
        heal_payload = {
            "metadata": payload.get("metadata", {}),
            "gate": EXECUTION,
            "attempt": attempt_number,
            "max_attempts": self.max_healing_attempts,
            "failure": {
                "signature": outcome.failure_signature,
                "error": outcome.error,
                "failed_tests": list(outcome.failed_tests),
                "output": outcome.output,
            },
            "upstream": payload.get("upstream", {}),
        }
        logger.info("Healing attempt %d for signature %s", attempt_number, outcome.failure_signature)
        try:
            response = self.invoker.invoke(self.healer_worker, heal_payload, timeout=self.timeout)
        except WorkerInvocationError as e:
            attempt = HealingAttempt(
                attempt_number=attempt_number,
                triggering_failure_signature=outcome.failure_signature,
                outcome=Status.FAILED,
                detail=f"invocation failure: {e.detail}",
            )
            return attempt, None

        healed = response.status == "SUCCESS"
        attempt = HealingAttempt(
            attempt_number=attempt_number,
            triggering_failure_signature=outcome.failure_signature,
            outcome=Status.SUCCESS if healed else Status.FAILED,
            detail=str(response.output.get("summary", "")),
        )
        return attempt, (response.output if healed else None)
