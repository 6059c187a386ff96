"""Execution worker - runs generated Playwright specs in the sandbox. Zero LLM calls."""

import json
import os
import re

from agents.base import BaseAgent, response
from config.defaults import DEFAULTS
from config.gates import EXECUTION
from core.sandbox import run_in_sandbox
from utils.naming import slugify

ANSI_RE = re.compile(r"\x1b\[[0-9;]*m")


def _iter_specs(suites):
    for suite in suites or []:
        yield from suite.get("specs", []) or []
        yield from _iter_specs(suite.get("suites"))


def _first_error(spec):
    for test in spec.get("tests", []) or []:
        for result in test.get("results", []) or []:
            message = (result.get("error") or {}).get("message")
            if message:
                lines = ANSI_RE.sub("", message).strip().splitlines()
                if lines:
                    return lines[0].strip()
    return "test failed"


def parse_playwright_report(text):
    """Summarize Playwright's JSON reporter output.

    Returns {total, passed_count, failed_tests, flaky, passed, error}; the
    error is the first line of the first failure, which keeps failure
    signatures stable across runs.
    """
    try:
        report = json.loads(text)
    except (TypeError, json.JSONDecodeError):
        return {
            "total": 0, "passed_count": 0, "failed_tests": [], "flaky": 0,
            "passed": False, "error": "unreadable Playwright report",
        }

    failed, error = [], ""
    for spec in _iter_specs(report.get("suites")):
        if spec.get("ok", True):
            continue
        failed.append(spec.get("title") or f"{spec.get('file')}:{spec.get('line')}")
        if not error:
            error = _first_error(spec)

    stats = report.get("stats", {}) or {}
    expected = int(stats.get("expected", 0))
    unexpected = int(stats.get("unexpected", 0))
    flaky = int(stats.get("flaky", 0))
    total = expected + unexpected + flaky

    global_errors = report.get("errors") or []
    if not error and global_errors:
        lines = ANSI_RE.sub("", str(global_errors[0].get("message", ""))).strip().splitlines()
        error = lines[0].strip() if lines else "test run error"

    return {
        "total": total,
        "passed_count": expected + flaky,
        "failed_tests": failed,
        "flaky": flaky,
        "passed": total > 0 and unexpected == 0 and not global_errors,
        "error": error,
    }


class PlaywrightExecutor(BaseAgent):
    """Runs `npx playwright test` on the generated specs, one call per run."""

    name = "test-executor"
    description = "Runs generated Playwright specs and reports pass/fail per test"
    gate = EXECUTION

    def __init__(self, cwd=None, report_dir=None):
        self.cwd = cwd or os.getcwd()
        self.report_dir = report_dir or DEFAULTS["output_dir"]

    def run(self, payload):
        codegen = payload.get("upstream", {}).get("gate3", {})
        patch = payload.get("healing_patch") or {}
        files = patch.get("files") or codegen.get("files") or []
        specs = [f for f in files if isinstance(f, str) and ".spec." in os.path.basename(f)]
        if not specs:
            specs = [f for f in files if isinstance(f, str)]
        if not specs:
            return response("FAILED", {
                "total": 0, "passed_count": 0, "passed": False,
                "error": "no test files to execute",
            })

        browsers = payload.get("constraints", {}).get("browsers") or []
        command = ["npx", "playwright", "test", *specs, "--reporter=json"]
        command += [f"--project={b}" for b in browsers]
        run = run_in_sandbox(command, self.cwd, timeout=DEFAULTS["execution_timeout"])

        if run.returncode == -1:
            return response("FAILED", {
                "total": 0, "passed_count": 0, "passed": False,
                "error": run.stderr,
            })

        summary = parse_playwright_report(run.stdout)
        summary["artifacts"] = {"report_file": self._save_report(payload, run.stdout)}
        return response("SUCCESS" if summary["passed"] else "FAILED", summary)

    def _save_report(self, payload, raw):
        meta = payload.get("metadata", {})
        target = os.path.join(
            self.report_dir,
            slugify(meta.get("domain", "")) or "domain",
            slugify(meta.get("feature", "")) or "feature",
        )
        return self.write_file(target, f"report-run{payload.get('run', 1)}.json", raw or "{}")
