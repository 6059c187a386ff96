"""Tests for the default workers - LLM and subprocess calls are mocked."""

import json
import os
from unittest.mock import patch

import pytest

from agents.base import response
from agents.executor import PlaywrightExecutor, parse_playwright_report
from agents.learning import LearningRecorder
from agents.llm_agent import LLMAgent
from core.sandbox import CompletedRun


def _report(failing=False, flaky=0):
    spec_ok = {"title": "TC1: valid login", "ok": True, "tests": []}
    spec_bad = {
        "title": "TC2: wrong password",
        "ok": False,
        "tests": [{"results": [{"error": {
            "message": "\x1b[31mTimeoutError: locator.click: Timeout 5000ms exceeded.\x1b[39m\nCall log:\n  - waiting for #submit",
        }}]}],
    }
    suites = [{"title": "login.spec.ts", "specs": [spec_ok],
               "suites": [{"title": "errors", "specs": [spec_bad] if failing else []}]}]
    return json.dumps({
        "suites": suites,
        "stats": {"expected": 1 + (0 if failing else 1) - flaky, "unexpected": 1 if failing else 0,
                  "flaky": flaky},
        "errors": [],
    })


PAYLOAD = {
    "metadata": {"domain": "shop", "feature": "login", "url": "https://shop.example.com", "request_id": "r1"},
    "gate": 4,
    "run": 1,
    "constraints": {"browsers": ["chromium"]},
    "upstream": {"gate3": {"files": ["/work/login.spec.ts", "/work/login.data.ts"]}},
}


# ---------------------------------------------------------------------------
# Playwright report parsing
# ---------------------------------------------------------------------------

def test_parse_passing_report():
    summary = parse_playwright_report(_report())
    assert summary["total"] == 2
    assert summary["passed_count"] == 2
    assert summary["passed"] is True
    assert summary["failed_tests"] == []


def test_parse_failing_report():
    summary = parse_playwright_report(_report(failing=True))
    assert summary["total"] == 2
    assert summary["passed_count"] == 1
    assert summary["passed"] is False
    assert summary["failed_tests"] == ["TC2: wrong password"]
    assert summary["error"] == "TimeoutError: locator.click: Timeout 5000ms exceeded."


def test_flaky_tests_count_as_passed():
    summary = parse_playwright_report(_report(flaky=1))
    assert summary["flaky"] == 1
    assert summary["passed_count"] == 2
    assert summary["passed"] is True


def test_parse_garbage():
    summary = parse_playwright_report("Error: no tests found")
    assert summary["passed"] is False
    assert summary["total"] == 0


def test_global_error_fails_run():
    text = json.dumps({"suites": [], "stats": {}, "errors": [{"message": "SyntaxError: Unexpected token\n  at x"}]})
    summary = parse_playwright_report(text)
    assert summary["passed"] is False
    assert summary["error"] == "SyntaxError: Unexpected token"


# ---------------------------------------------------------------------------
# PlaywrightExecutor
# ---------------------------------------------------------------------------

@patch("agents.executor.run_in_sandbox")
def test_executor_runs_spec_files(mock_run, tmp_path):
    mock_run.return_value = CompletedRun(_report(), "", 0)
    agent = PlaywrightExecutor(cwd=str(tmp_path), report_dir=str(tmp_path))

    reply = agent(PAYLOAD)

    command = mock_run.call_args[0][0]
    assert command[:3] == ["npx", "playwright", "test"]
    assert "/work/login.spec.ts" in command
    assert "/work/login.data.ts" not in command
    assert "--reporter=json" in command
    assert "--project=chromium" in command
    assert reply["status"] == "SUCCESS"
    report_file = reply["output"]["artifacts"]["report_file"]
    assert os.path.isfile(report_file)


@patch("agents.executor.run_in_sandbox")
def test_executor_prefers_healing_patch(mock_run, tmp_path):
    mock_run.return_value = CompletedRun(_report(), "", 0)
    payload = dict(PAYLOAD, healing_patch={"files": ["/work/fixed/login.spec.ts"]})
    PlaywrightExecutor(cwd=str(tmp_path), report_dir=str(tmp_path))(payload)
    assert "/work/fixed/login.spec.ts" in mock_run.call_args[0][0]


@patch("agents.executor.run_in_sandbox")
def test_executor_failing_tests(mock_run, tmp_path):
    # playwright exits 1 when tests fail
    mock_run.return_value = CompletedRun(_report(failing=True), "", 1)
    reply = PlaywrightExecutor(cwd=str(tmp_path), report_dir=str(tmp_path))(PAYLOAD)
    assert reply["status"] == "FAILED"
    assert reply["output"]["failed_tests"] == ["TC2: wrong password"]


@patch("agents.executor.run_in_sandbox")
def test_executor_timeout(mock_run, tmp_path):
    mock_run.return_value = CompletedRun("", "Command timed out after 600s", -1, timed_out=True)
    reply = PlaywrightExecutor(cwd=str(tmp_path), report_dir=str(tmp_path))(PAYLOAD)
    assert reply["status"] == "FAILED"
    assert reply["output"]["error"] == "Command timed out after 600s"


def test_executor_without_files(tmp_path):
    payload = dict(PAYLOAD, upstream={"gate3": {"files": []}})
    reply = PlaywrightExecutor(cwd=str(tmp_path), report_dir=str(tmp_path))(payload)
    assert reply["status"] == "FAILED"
    assert reply["output"]["error"] == "no test files to execute"


# ---------------------------------------------------------------------------
# LearningRecorder
# ---------------------------------------------------------------------------

def test_learning_recorder_clean_run():
    reply = LearningRecorder()({"upstream": {
        "gate4": {"passed": True, "runs": [{"passed": True}], "healing": {"attempts": []}},
        "gate2": {"mappings": [{"step_id": "S1", "selector": "#a", "confidence": 95}]},
    }})
    assert reply["status"] == "SUCCESS"
    assert reply["output"]["learnings"] == []


def test_learning_recorder_healed_failure_and_weak_locator():
    execution = {
        "passed": True,
        "flaky": 1,
        "runs": [
            {"runNumber": 1, "passed": False, "failureSignature": "abc", "error": "TimeoutError"},
            {"runNumber": 2, "passed": False, "failureSignature": "abc", "error": "TimeoutError"},
            {"runNumber": 3, "passed": True, "failureSignature": ""},
        ],
        "healing": {"attempts": [{"attemptNumber": 1, "triggeringFailureSignature": "abc",
                                  "outcome": "SUCCESS", "detail": "added wait"}]},
    }
    mapping = {"mappings": [{"step_id": "S2", "selector": "div > span", "confidence": 40}]}
    reply = LearningRecorder()({"upstream": {"gate4": execution, "gate2": mapping}})

    kinds = [item["kind"] for item in reply["output"]["learnings"]]
    assert kinds == ["healed_failure", "flaky_tests", "weak_locator"]
    assert reply["output"]["learnings"][0]["error"] == "TimeoutError"


def test_learning_recorder_persistent_failure():
    execution = {
        "passed": False,
        "runs": [{"runNumber": 1, "passed": False, "failureSignature": "x",
                  "error": "AssertionError", "failedTests": ["TC1"]}],
        "healing": {"attempts": []},
    }
    reply = LearningRecorder()({"upstream": {"gate4": execution}})
    assert reply["output"]["learnings"][0]["kind"] == "persistent_failure"
    assert reply["output"]["learnings"][0]["failed_tests"] == ["TC1"]


# ---------------------------------------------------------------------------
# LLMAgent
# ---------------------------------------------------------------------------

def _agent(tmp_path, **kwargs):
    defaults = dict(name="code-generator", gate=3, description="codegen",
                    prompt_name="code_generator", deliverable="test_file",
                    output_dir=str(tmp_path))
    defaults.update(kwargs)
    return LLMAgent(**defaults)


@patch("agents.llm_agent.call_llm")
def test_llm_agent_writes_generated_files(mock_llm, tmp_path):
    mock_llm.return_value = response("SUCCESS", {
        "files": [{"path": "login.spec.ts", "content": "test('x', async () => {});"}],
        "compilation_errors": 0,
    })
    reply = _agent(tmp_path)(PAYLOAD)

    expected = os.path.realpath(os.path.join(tmp_path, "shop", "login", "login.spec.ts"))
    assert reply["output"]["files"] == [expected]
    assert reply["output"]["artifacts"]["test_file"] == [expected]
    with open(expected) as f:
        assert "test('x'" in f.read()
    system_prompt = mock_llm.call_args[0][0]
    assert "Playwright" in system_prompt
    assert mock_llm.call_args[1]["response_format"] == "json"


@patch("agents.llm_agent.call_llm")
def test_llm_agent_wraps_bare_output(mock_llm, tmp_path):
    mock_llm.return_value = {"test_cases": [{"id": "TC1", "steps": []}]}
    agent = _agent(tmp_path, name="test-designer", gate=1, prompt_name="test_designer",
                   deliverable="test_case_file")
    reply = agent(PAYLOAD)
    assert reply["status"] == "SUCCESS"
    saved = reply["output"]["artifacts"]["test_case_file"]
    with open(saved) as f:
        assert json.load(f)["test_cases"][0]["id"] == "TC1"


@patch("agents.llm_agent.call_llm")
def test_llm_agent_non_json_reply(mock_llm, tmp_path):
    mock_llm.return_value = "Sorry, I cannot help with that."
    reply = _agent(tmp_path)(PAYLOAD)
    assert reply["status"] == "FAILED"
    assert reply["validation"]["issues"] == ["worker returned a non-JSON response"]


@patch("agents.llm_agent.call_llm")
def test_llm_agent_rejects_path_escape(mock_llm, tmp_path):
    mock_llm.return_value = response("SUCCESS", {
        "files": [{"path": "../../etc/evil.ts", "content": "x"}],
    })
    with pytest.raises(ValueError, match="escapes"):
        _agent(tmp_path)(PAYLOAD)


def test_all_prompts_exist():
    from agents.llm_agent import load_prompt
    for name in ("data_preparer", "test_designer", "element_mapper", "code_generator", "test_healer"):
        assert "Return JSON" in load_prompt(name)
