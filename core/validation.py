"""Gate output validation: structural completeness plus semantic checks."""

from config.defaults import DEFAULTS
from config.gates import (
    GATES, DATA_PREPARATION, TEST_DESIGN, ELEMENT_MAPPING, CODE_GENERATION,
    EXECUTION, LEARNING,
)
from core.state import Status, Validation

SEMANTIC_PENALTY = 15   # score lost per semantic issue


def _clamp(value):
    return max(0, min(100, int(round(value))))


def iter_steps(test_design_output):
    """Yield every step dict of a test-design output."""
    for case in (test_design_output or {}).get("test_cases", []) or []:
        if not isinstance(case, dict):
            continue
        for step in case.get("steps", []) or []:
            if isinstance(step, dict):
                yield step


def mean_confidence(mappings):
    values = []
    for m in mappings or []:
        if isinstance(m, dict):
            try:
                values.append(float(m.get("confidence", 0)))
            except (TypeError, ValueError):
                values.append(0.0)
    if not values:
        return 0.0
    return max(0.0, min(100.0, sum(values) / len(values)))


def pass_rate(execution_output):
    try:
        total = int(execution_output.get("total", 0))
        passed = int(execution_output.get("passed_count", 0))
    except (TypeError, ValueError, AttributeError):
        return 0.0
    if total <= 0:
        return 0.0
    return max(0.0, min(100.0, 100.0 * passed / total))


def compilation_error_count(output):
    errors = (output or {}).get("compilation_errors", 0)
    if isinstance(errors, (list, tuple)):
        return len(errors)
    try:
        return int(errors)
    except (TypeError, ValueError):
        return 1


# --- Per-gate semantic checks: (output, upstream, request) -> (issues, signal) ---

def _is_identifier(value):
    return isinstance(value, (str, int)) and not isinstance(value, bool)


def _check_data(output, upstream, request):
    issues = []
    records = output["records"]
    if not isinstance(records, list) or not records:
        issues.append("no data records produced")
    elif request is not None and request.data_requirements.mode == "data-driven":
        wanted = request.data_requirements.count
        if len(records) < wanted:
            issues.append(f"expected {wanted} data records, got {len(records)}")
    return issues, 100


def _check_test_cases(output, upstream, request):
    issues = []
    cases = output["test_cases"]
    if not isinstance(cases, list) or not cases:
        return ["no test cases designed"], 100

    seen_steps = set()
    for idx, case in enumerate(cases, 1):
        if not isinstance(case, dict):
            issues.append(f"test case #{idx} is not a structured record")
            continue
        case_id = case.get("id")
        if not case_id:
            issues.append(f"test case #{idx} has no identifier")
            case_id = f"#{idx}"
        steps = case.get("steps")
        if not isinstance(steps, list) or not steps:
            issues.append(f"test case {case_id} has no steps")
            continue
        for pos, step in enumerate(steps, 1):
            step_id = step.get("id") if isinstance(step, dict) else None
            if not step_id:
                issues.append(f"step {pos} of test case {case_id} has no identifier")
            elif not _is_identifier(step_id):
                issues.append(f"step {pos} of test case {case_id} has a non-scalar identifier")
            elif step_id in seen_steps:
                issues.append(f"duplicate step id '{step_id}'")
            else:
                seen_steps.add(step_id)
    return issues, 100


def _check_mappings(output, upstream, request):
    issues = []
    mappings = output["mappings"]
    if not isinstance(mappings, list) or not mappings:
        return ["no element mappings produced"], 0

    steps = list(iter_steps(upstream.get(TEST_DESIGN)))
    known = {s.get("id") for s in steps if _is_identifier(s.get("id"))}
    referenced = [s.get("id") for s in steps if s.get("target") and _is_identifier(s.get("id"))]

    mapped = set()
    for idx, m in enumerate(mappings, 1):
        if not isinstance(m, dict) or not m.get("step_id"):
            issues.append(f"mapping #{idx} has no step reference")
            continue
        step_id = m["step_id"]
        if not _is_identifier(step_id):
            issues.append(f"mapping #{idx} has a non-scalar step reference")
            continue
        mapped.add(step_id)
        if step_id not in known:
            issues.append(f"mapping references unknown step '{step_id}'")
        if not m.get("selector"):
            issues.append(f"mapping for step '{step_id}' has no selector")

    for step_id in referenced:
        if step_id not in mapped:
            issues.append(f"no element mapping for step '{step_id}'")

    return issues, mean_confidence(mappings)


def _check_compilation(output, upstream, request):
    issues = []
    errors = compilation_error_count(output)
    if errors > 0:
        issues.append(f"{errors} compilation error(s)")
    files = output["files"]
    if not isinstance(files, list) or not files:
        issues.append("no test files generated")
    return issues, 100


def _check_execution(output, upstream, request):
    issues = []
    try:
        total = int(output["total"])
        passed = int(output["passed_count"])
    except (TypeError, ValueError):
        return ["execution counts are not numeric"], 0
    if total <= 0:
        issues.append("no tests were executed")
    elif passed > total:
        issues.append(f"passed count {passed} exceeds total {total}")
    return issues, pass_rate(output)


def _check_learnings(output, upstream, request):
    if not isinstance(output["learnings"], list):
        return ["learnings must be a list"], 100
    return [], 100


_CHECKS = {
    DATA_PREPARATION: _check_data,
    TEST_DESIGN: _check_test_cases,
    ELEMENT_MAPPING: _check_mappings,
    CODE_GENERATION: _check_compilation,
    EXECUTION: _check_execution,
    LEARNING: _check_learnings,
}


def validate(gate, output, profile=None, upstream=None, request=None) -> Validation:
    """Score a gate's output against its profile.

    upstream maps gate index to that gate's output and is used for
    referential checks (e.g. mapped steps must exist in the test design).
    Pure: the same arguments always give the same Validation.
    """
    profile = profile or GATES[gate]["profile"]
    upstream = upstream or {}
    if not isinstance(output, dict):
        return Validation(score=0, issues=("output is not a structured record",), passed=False)

    required = profile.get("required", [])
    missing = [f for f in required if output.get(f) is None]
    issues = [f"missing required field '{f}'" for f in missing]
    completeness = 100.0
    if required:
        completeness = 100.0 * (len(required) - len(missing)) / len(required)

    signal = 100.0
    if not missing and gate in _CHECKS:
        semantic, signal = _CHECKS[gate](output, upstream, request)
        issues.extend(semantic)
        completeness -= SEMANTIC_PENALTY * len(semantic)

    score = _clamp(min(completeness, signal))
    return Validation(score=score, issues=tuple(issues), passed=not issues)


def merge_reported(validation, reported):
    """Fold a worker's self-reported validation into ours; never raises the score."""
    if not isinstance(reported, dict) or not reported:
        return validation
    issues = list(validation.issues)
    for issue in reported.get("issues", []) or []:
        if str(issue) not in issues:
            issues.append(str(issue))
    if reported.get("passed") is False and not reported.get("issues"):
        issues.append("worker reported failed validation")
    score = validation.score
    if "score" in reported:
        try:
            score = min(score, _clamp(float(reported["score"])))
        except (TypeError, ValueError):
            issues.append("worker reported a non-numeric score")
    return Validation(score=score, issues=tuple(issues), passed=not issues)


def grade(validation, profile) -> Status:
    """Map a validation to SUCCESS / PARTIAL / FAILED using the profile bands."""
    if not validation.passed:
        return Status.FAILED
    if validation.score >= profile.get("pass_threshold", DEFAULTS["pass_threshold"]):
        return Status.SUCCESS
    if validation.score >= profile.get("partial_threshold", DEFAULTS["partial_threshold"]):
        return Status.PARTIAL
    return Status.FAILED
