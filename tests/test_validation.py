"""Tests for core.validation."""

from config.gates import GATES
from core.state import PipelineRequest, Status, Validation
from core.validation import grade, merge_reported, validate

DESIGN = {
    "test_cases": [
        {"id": "TC1", "steps": [
            {"id": "S1", "action": "navigate"},
            {"id": "S2", "action": "fill", "target": "email input"},
            {"id": "S3", "action": "click", "target": "submit button"},
        ]},
    ],
}


def _request(**data_requirements):
    return PipelineRequest.from_dict({
        "domain": "shop", "feature": "signup", "url": "https://shop.example.com",
        "userStory": "story", "acceptanceCriteria": ["c1"],
        "dataRequirements": data_requirements or None,
    })


def test_non_dict_output():
    v = validate(1, ["not", "a", "dict"])
    assert v.passed is False
    assert v.score == 0


def test_missing_required_field():
    v = validate(3, {"files": ["a.spec.ts"]})
    assert v.passed is False
    assert "missing required field 'compilation_errors'" in v.issues
    assert v.score == 50


def test_test_design_passes():
    v = validate(1, DESIGN)
    assert v.passed is True
    assert v.score == 100


def test_test_design_duplicate_step_ids():
    output = {"test_cases": [
        {"id": "TC1", "steps": [{"id": "S1"}]},
        {"id": "TC2", "steps": [{"id": "S1"}]},
    ]}
    v = validate(1, output)
    assert v.passed is False
    assert "duplicate step id 'S1'" in v.issues
    assert v.score == 85


def test_test_case_without_steps():
    v = validate(1, {"test_cases": [{"id": "TC1", "steps": []}]})
    assert "test case TC1 has no steps" in v.issues


def test_test_design_non_scalar_step_id():
    v = validate(1, {"test_cases": [{"id": "TC1", "steps": [{"id": ["S1"]}, {"id": {"n": 2}}]}]})
    assert v.passed is False
    assert "step 1 of test case TC1 has a non-scalar identifier" in v.issues
    assert "step 2 of test case TC1 has a non-scalar identifier" in v.issues


def test_mapping_non_scalar_step_reference():
    output = {"mappings": [
        {"step_id": ["S2"], "selector": "#email", "confidence": 90},
        {"step_id": "S3", "selector": "#submit", "confidence": 90},
    ]}
    v = validate(2, output, upstream={1: DESIGN})
    assert v.passed is False
    assert "mapping #1 has a non-scalar step reference" in v.issues
    assert "no element mapping for step 'S2'" in v.issues


def test_mapping_ignores_non_scalar_upstream_ids():
    design = {"test_cases": [{"id": "TC1", "steps": [{"id": ["S1"], "target": "email"}]}]}
    v = validate(2, {"mappings": [{"step_id": "S1", "selector": "#a", "confidence": 90}]},
                 upstream={1: design})
    assert "mapping references unknown step 'S1'" in v.issues


def test_mapping_confidence_is_the_score():
    output = {"mappings": [
        {"step_id": "S2", "selector": "#email", "confidence": 60},
        {"step_id": "S3", "selector": "#submit", "confidence": 60},
    ]}
    v = validate(2, output, upstream={1: DESIGN})
    assert v.passed is True
    assert v.score == 60
    assert grade(v, GATES[2]["profile"]) == Status.PARTIAL


def test_mapping_unknown_step_and_unmapped_target():
    output = {"mappings": [
        {"step_id": "S2", "selector": "#email", "confidence": 90},
        {"step_id": "S9", "selector": "#ghost", "confidence": 90},
    ]}
    v = validate(2, output, upstream={1: DESIGN})
    assert v.passed is False
    assert "mapping references unknown step 'S9'" in v.issues
    assert "no element mapping for step 'S3'" in v.issues


def test_mapping_without_selector():
    output = {"mappings": [
        {"step_id": "S2", "selector": "", "confidence": 90},
        {"step_id": "S3", "selector": "#submit", "confidence": 90},
    ]}
    v = validate(2, output, upstream={1: DESIGN})
    assert "mapping for step 'S2' has no selector" in v.issues


def test_compilation_errors_fail_the_gate():
    v = validate(3, {"files": ["login.spec.ts"], "compilation_errors": 2})
    assert v.passed is False
    assert "2 compilation error(s)" in v.issues
    assert grade(v, GATES[3]["profile"]) == Status.FAILED


def test_compilation_errors_as_list():
    v = validate(3, {"files": ["login.spec.ts"], "compilation_errors": ["TS2304", "TS2551"]})
    assert "2 compilation error(s)" in v.issues


def test_clean_code_generation():
    v = validate(3, {"files": ["login.spec.ts"], "compilation_errors": 0})
    assert v.passed is True
    assert v.score == 100


def test_execution_score_is_pass_rate():
    v = validate(4, {"total": 4, "passed_count": 3})
    assert v.passed is True
    assert v.score == 75
    assert grade(v, GATES[4]["profile"]) == Status.PARTIAL


def test_execution_all_passing_is_success():
    v = validate(4, {"total": 4, "passed_count": 4})
    assert grade(v, GATES[4]["profile"]) == Status.SUCCESS


def test_execution_nothing_ran():
    v = validate(4, {"total": 0, "passed_count": 0})
    assert "no tests were executed" in v.issues
    assert grade(v, GATES[4]["profile"]) == Status.FAILED


def test_data_driven_record_count():
    v = validate(0, {"records": [{"id": 1}, {"id": 2}]}, request=_request(mode="data-driven", count=5))
    assert "expected 5 data records, got 2" in v.issues


def test_data_single_mode_accepts_any_count():
    v = validate(0, {"records": [{"id": 1}]}, request=_request())
    assert v.passed is True


def test_learnings_must_be_list():
    assert validate(5, {"learnings": []}).passed is True
    assert validate(5, {"learnings": "none"}).passed is False


def test_validate_is_deterministic():
    output = {"mappings": [{"step_id": "S2", "selector": "#e", "confidence": 80}]}
    assert validate(2, output, upstream={1: DESIGN}) == validate(2, output, upstream={1: DESIGN})


def test_merge_reported_never_raises_score():
    merged = merge_reported(Validation(score=60), {"score": 95, "passed": True, "issues": []})
    assert merged.score == 60
    merged = merge_reported(Validation(score=100), {"score": 40})
    assert merged.score == 40


def test_merge_reported_adds_worker_issues():
    merged = merge_reported(Validation(score=100), {"passed": False, "issues": ["page not reachable"]})
    assert merged.passed is False
    assert merged.issues == ("page not reachable",)


def test_merge_reported_failed_without_issues():
    merged = merge_reported(Validation(score=100), {"passed": False})
    assert "worker reported failed validation" in merged.issues


def test_grade_bands():
    profile = {"pass_threshold": 70, "partial_threshold": 50}
    assert grade(Validation(score=70), profile) == Status.SUCCESS
    assert grade(Validation(score=69), profile) == Status.PARTIAL
    assert grade(Validation(score=50), profile) == Status.PARTIAL
    assert grade(Validation(score=49), profile) == Status.FAILED
    assert grade(Validation(score=100, issues=("x",), passed=False), profile) == Status.FAILED
