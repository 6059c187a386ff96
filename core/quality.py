"""Quality metrics and the final audit over a run's gate results."""

from config.defaults import DEFAULTS
from config.gates import GATES, TEST_DESIGN, ELEMENT_MAPPING, CODE_GENERATION, EXECUTION
from core.state import Status
from core.validation import compilation_error_count, mean_confidence, pass_rate

WEIGHTS = {"coverage": 0.25, "locatorConfidence": 0.25, "compiles": 0.25, "passRate": 0.25}


def criteria_coverage(test_design_output, criteria):
    """Percentage of acceptance criteria referenced by at least one test case.

    A test case references criteria through a ``criteria`` list holding either
    the criterion text or its 1-based position. When no test case declares
    references, coverage falls back to test cases per criterion, capped at 100.
    """
    criteria = list(criteria or [])
    cases = [c for c in (test_design_output or {}).get("test_cases", []) or [] if isinstance(c, dict)]
    if not criteria or not cases:
        return 0.0

    declared = [c.get("criteria") for c in cases if c.get("criteria")]
    if not declared:
        return min(100.0, 100.0 * len(cases) / len(criteria))

    covered = set()
    for refs in declared:
        for ref in refs if isinstance(refs, list) else [refs]:
            if isinstance(ref, int) and 1 <= ref <= len(criteria):
                covered.add(ref - 1)
            elif isinstance(ref, str) and ref in criteria:
                covered.add(criteria.index(ref))
    return 100.0 * len(covered) / len(criteria)


def compute_quality(results, criteria):
    """Weighted quality metrics from a {gate: GateResult} mapping."""
    design = results.get(TEST_DESIGN)
    mapping = results.get(ELEMENT_MAPPING)
    codegen = results.get(CODE_GENERATION)
    execution = results.get(EXECUTION)

    coverage = criteria_coverage(design.output if design else None, criteria)
    locator = mean_confidence(mapping.output.get("mappings")) if mapping else 0.0
    compiles = bool(
        codegen
        and codegen.status != Status.FAILED
        and compilation_error_count(codegen.output) == 0
    )
    rate = pass_rate(execution.output) if execution else 0.0

    overall = round(
        WEIGHTS["coverage"] * coverage
        + WEIGHTS["locatorConfidence"] * locator
        + WEIGHTS["compiles"] * (100 if compiles else 0)
        + WEIGHTS["passRate"] * rate
    )
    return {
        "coverage": round(coverage, 1),
        "locatorConfidence": round(locator, 1),
        "compiles": compiles,
        "passRate": round(rate, 1),
        "overallScore": int(overall),
    }


def _artifact_paths(value):
    if isinstance(value, str):
        return [value] if value else []
    if isinstance(value, (list, tuple)):
        return [v for v in value if isinstance(v, str) and v]
    return []


def collect_deliverables(results):
    """Gate name -> artifact paths produced by that gate."""
    deliverables = {}
    for gate in sorted(results):
        artifacts = results[gate].output.get("artifacts") or {}
        if not isinstance(artifacts, dict):
            continue
        paths = []
        for value in artifacts.values():
            paths.extend(_artifact_paths(value))
        if paths:
            deliverables[GATES[gate]["name"]] = paths
    return deliverables


def missing_deliverables(results, sequence):
    """Issues for every expected deliverable a gate in ``sequence`` did not produce."""
    issues = []
    for gate in sequence:
        result = results.get(gate)
        if result is None:
            continue
        artifacts = result.output.get("artifacts") or {}
        if not isinstance(artifacts, dict):
            artifacts = {}
        for name in GATES[gate]["deliverables"]:
            if not _artifact_paths(artifacts.get(name)):
                issues.append(f"gate {gate} ({GATES[gate]['name']}) produced no '{name}'")
    return issues


def final_status(score, precondition_met):
    if not precondition_met:
        return Status.FAILED
    if score >= DEFAULTS["pass_threshold"]:
        return Status.SUCCESS
    if score >= DEFAULTS["partial_threshold"]:
        return Status.PARTIAL
    return Status.FAILED


def audit(results, sequence, criteria, halted=False):
    """Reconcile a run and assign its terminal status.

    Returns a dict with status, metrics, deliverables and audit issues.
    """
    metrics = compute_quality(results, criteria)
    issues = []

    incomplete = [
        g for g in sequence
        if g not in results or results[g].status == Status.FAILED
    ]
    if incomplete:
        issues.append(f"required gates not completed: {incomplete}")
    issues.extend(missing_deliverables(results, sequence))

    precondition = not halted and not issues
    return {
        "status": final_status(metrics["overallScore"], precondition),
        "metrics": metrics,
        "deliverables": collect_deliverables(results),
        "issues": issues,
    }
