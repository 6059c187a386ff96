"""Pipeline records shared by the coordinator, gate executor and state store."""

from __future__ import annotations

import uuid
from dataclasses import dataclass, field
from datetime import datetime, timezone
from enum import Enum

from config.gates import GATES
from core.errors import ContractViolation


class Status(str, Enum):
    IN_PROGRESS = "IN_PROGRESS"
    SUCCESS = "SUCCESS"
    PARTIAL = "PARTIAL"
    FAILED = "FAILED"


class Phase(str, Enum):
    START = "START"
    PRE_PROCESSING = "PRE_PROCESSING"
    GATE_0 = "GATE_0"
    GATE_1 = "GATE_1"
    GATE_2 = "GATE_2"
    GATE_3 = "GATE_3"
    GATE_4 = "GATE_4"
    GATE_5 = "GATE_5"
    FINAL_AUDIT = "FINAL_AUDIT"
    DONE = "DONE"


def gate_phase(gate: int) -> Phase:
    return Phase(f"GATE_{gate}")


def new_request_id() -> str:
    return uuid.uuid4().hex


def _now() -> str:
    return datetime.now(timezone.utc).isoformat()


def _pick(data, *keys, default=None):
    """Return the first present key; requests arrive camelCase or snake_case."""
    for key in keys:
        if key in data and data[key] is not None:
            return data[key]
    return default


@dataclass(frozen=True)
class DataRequirements:
    mode: str = "single"        # "single" | "data-driven"
    count: int = 1
    seed: int | None = None

    @classmethod
    def from_dict(cls, data: dict | None) -> DataRequirements:
        data = data or {}
        return cls(
            mode=str(_pick(data, "mode", "type", default="single")),
            count=int(_pick(data, "count", default=1)),
            seed=_pick(data, "seed"),
        )

    def to_dict(self) -> dict:
        return {"mode": self.mode, "count": self.count, "seed": self.seed}


@dataclass(frozen=True)
class Constraints:
    timeout: float | None = None    # seconds per worker call
    retries: int | None = None      # healing attempts, capped by the hard ceiling
    browsers: tuple[str, ...] = ("chromium",)

    @classmethod
    def from_dict(cls, data: dict | None) -> Constraints:
        data = data or {}
        browsers = _pick(data, "browsers", "browser", default=["chromium"])
        if isinstance(browsers, str):
            browsers = [browsers]
        return cls(
            timeout=_pick(data, "timeout"),
            retries=_pick(data, "retries"),
            browsers=tuple(browsers),
        )

    def to_dict(self) -> dict:
        return {"timeout": self.timeout, "retries": self.retries, "browsers": list(self.browsers)}


@dataclass(frozen=True)
class PipelineRequest:
    request_id: str
    domain: str
    feature: str
    url: str
    user_story: str
    acceptance_criteria: tuple[str, ...]
    data_requirements: DataRequirements = field(default_factory=DataRequirements)
    constraints: Constraints = field(default_factory=Constraints)
    authentication: dict = field(default_factory=dict)

    @classmethod
    def from_dict(cls, data: dict) -> PipelineRequest:
        criteria = _pick(data, "acceptanceCriteria", "acceptance_criteria", default=[])
        if isinstance(criteria, str):
            criteria = [criteria]
        return cls(
            request_id=_pick(data, "requestId", "request_id") or new_request_id(),
            domain=str(_pick(data, "domain", default="")).strip(),
            feature=str(_pick(data, "feature", default="")).strip(),
            url=str(_pick(data, "url", default="")).strip(),
            user_story=str(_pick(data, "userStory", "user_story", default="")).strip(),
            acceptance_criteria=tuple(str(c) for c in criteria),
            data_requirements=DataRequirements.from_dict(
                _pick(data, "dataRequirements", "data_requirements")),
            constraints=Constraints.from_dict(_pick(data, "constraints")),
            authentication=dict(_pick(data, "authentication", default={})),
        )

    def to_dict(self) -> dict:
        return {
            "requestId": self.request_id,
            "domain": self.domain,
            "feature": self.feature,
            "url": self.url,
            "userStory": self.user_story,
            "acceptanceCriteria": list(self.acceptance_criteria),
            "dataRequirements": self.data_requirements.to_dict(),
            "constraints": self.constraints.to_dict(),
            "authentication": dict(self.authentication),
        }


@dataclass
class PipelineState:
    domain: str
    feature: str
    request_id: str
    status: Status = Status.IN_PROGRESS
    current_gate: int = -1
    completed_gates: list[int] = field(default_factory=list)
    metadata: dict = field(default_factory=dict)     # snapshot of the request
    phase: Phase = Phase.START
    failed_gate: int | None = None
    data_preparation: bool | None = None             # GATE_0 decision, made once
    updated_at: str = ""

    @classmethod
    def for_request(cls, request: PipelineRequest) -> PipelineState:
        return cls(
            domain=request.domain,
            feature=request.feature,
            request_id=request.request_id,
            metadata=request.to_dict(),
        )

    def _require_in_progress(self):
        if self.status != Status.IN_PROGRESS:
            raise ContractViolation(f"Pipeline already terminated with {self.status.value}")

    def enter(self, phase: Phase):
        self._require_in_progress()
        self.phase = phase

    def begin_gate(self, gate: int):
        self._require_in_progress()
        if gate not in GATES:
            raise ContractViolation(f"Unknown gate {gate}")
        if gate < self.current_gate:
            raise ContractViolation(
                f"Gate {gate} would move current gate back from {self.current_gate}")
        missing = [g for g in GATES[gate]["requires"] if g not in self.completed_gates]
        if missing:
            raise ContractViolation(f"Gate {gate} started without predecessors {missing}")
        self.current_gate = gate
        self.phase = gate_phase(gate)

    def complete_gate(self, gate: int):
        self._require_in_progress()
        if gate != self.current_gate:
            raise ContractViolation(f"Gate {gate} completed while gate {self.current_gate} is current")
        if self.completed_gates and gate <= self.completed_gates[-1]:
            raise ContractViolation(f"Gate {gate} completed out of order: {self.completed_gates}")
        self.completed_gates.append(gate)

    def fail_gate(self, gate: int):
        self._require_in_progress()
        self.status = Status.FAILED
        self.failed_gate = gate

    def finish(self, status: Status):
        if self.status == Status.IN_PROGRESS:
            self.status = status
        self.phase = Phase.DONE

    def to_dict(self) -> dict:
        return {
            "domain": self.domain,
            "feature": self.feature,
            "requestId": self.request_id,
            "status": self.status.value,
            "currentGate": self.current_gate,
            "completedGates": list(self.completed_gates),
            "metadata": self.metadata,
            "phase": self.phase.value,
            "failedGate": self.failed_gate,
            "dataPreparation": self.data_preparation,
            "updatedAt": self.updated_at,
        }

    @classmethod
    def from_dict(cls, data: dict) -> PipelineState:
        return cls(
            domain=data["domain"],
            feature=data["feature"],
            request_id=data["requestId"],
            status=Status(data.get("status", Status.IN_PROGRESS.value)),
            current_gate=int(data.get("currentGate", -1)),
            completed_gates=[int(g) for g in data.get("completedGates", [])],
            metadata=dict(data.get("metadata", {})),
            phase=Phase(data.get("phase", Phase.START.value)),
            failed_gate=data.get("failedGate"),
            data_preparation=data.get("dataPreparation"),
            updated_at=data.get("updatedAt", ""),
        )

    def touch(self):
        self.updated_at = _now()


@dataclass(frozen=True)
class Validation:
    score: int
    issues: tuple[str, ...] = ()
    passed: bool = True

    def to_dict(self) -> dict:
        return {"score": self.score, "issues": list(self.issues), "passed": self.passed}

    @classmethod
    def from_dict(cls, data: dict) -> Validation:
        return cls(
            score=int(data.get("score", 0)),
            issues=tuple(data.get("issues", [])),
            passed=bool(data.get("passed", False)),
        )


@dataclass(frozen=True)
class GateResult:
    gate: int
    worker_name: str
    status: Status
    output: dict
    validation: Validation

    @property
    def name(self) -> str:
        return GATES[self.gate]["name"]

    def summary(self) -> dict:
        return {
            "gate": self.gate,
            "name": self.name,
            "worker": self.worker_name,
            "status": self.status.value,
            "score": self.validation.score,
            "issues": list(self.validation.issues),
        }

    def to_dict(self) -> dict:
        return {
            "gate": self.gate,
            "workerName": self.worker_name,
            "status": self.status.value,
            "output": self.output,
            "validation": self.validation.to_dict(),
        }

    @classmethod
    def from_dict(cls, data: dict) -> GateResult:
        return cls(
            gate=int(data["gate"]),
            worker_name=data.get("workerName", ""),
            status=Status(data["status"]),
            output=dict(data.get("output", {})),
            validation=Validation.from_dict(data.get("validation", {})),
        )


@dataclass(frozen=True)
class RunOutcome:
    run_number: int
    passed: bool
    failure_signature: str = ""     # empty for passing runs
    error: str = ""
    failed_tests: tuple[str, ...] = ()
    output: dict = field(default_factory=dict)

    def to_dict(self) -> dict:
        return {
            "runNumber": self.run_number,
            "passed": self.passed,
            "failureSignature": self.failure_signature,
            "error": self.error,
            "failedTests": list(self.failed_tests),
        }


@dataclass(frozen=True)
class HealingAttempt:
    attempt_number: int
    triggering_failure_signature: str
    outcome: Status                 # SUCCESS or FAILED
    detail: str = ""

    def to_dict(self) -> dict:
        return {
            "attemptNumber": self.attempt_number,
            "triggeringFailureSignature": self.triggering_failure_signature,
            "outcome": self.outcome.value,
            "detail": self.detail,
        }


@dataclass
class PipelineResult:
    status: Status
    request_id: str
    execution_time_ms: int = 0
    gates: dict = field(default_factory=dict)           # gate name -> summary
    deliverables: dict = field(default_factory=dict)    # gate name -> [paths]
    quality_metrics: dict = field(default_factory=dict)
    audit_trail: str = ""
    failed_gate: int | None = None
    issues: list[str] = field(default_factory=list)
    aborted: bool = False

    def to_dict(self) -> dict:
        return {
            "status": self.status.value,
            "requestId": self.request_id,
            "executionTimeMs": self.execution_time_ms,
            "gates": self.gates,
            "deliverables": self.deliverables,
            "qualityMetrics": self.quality_metrics,
            "auditTrail": self.audit_trail,
            "failedGate": self.failed_gate,
            "issues": list(self.issues),
            "aborted": self.aborted,
        }
