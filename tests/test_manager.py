"""Tests for manager.agent and the CLI entry point."""

import json
from unittest.mock import MagicMock, patch

import main
from core.state import PipelineState, PipelineResult, Status
from core.store import StateStore
from manager.agent import PipelineManager, default_workers

REQUEST = {
    "domain": "shop", "feature": "login", "url": "https://shop.example.com/login",
    "userStory": "As a shopper I want to log in", "acceptanceCriteria": ["Dashboard shown"],
}


def _coordinator(tmp_path):
    coordinator = MagicMock()
    coordinator.store = StateStore(str(tmp_path))
    coordinator.run.return_value = PipelineResult(status=Status.SUCCESS, request_id="r1")
    return coordinator


def test_default_workers_cover_every_gate():
    from config.gates import GATES
    workers = default_workers()
    for spec in GATES.values():
        assert spec["worker"] in workers
    assert "test-healer" in workers
    assert workers["code-generator"].deliverable == "test_file"
    assert workers["test-healer"].deliverable is None


def test_list_workers(tmp_path):
    manager = PipelineManager(state_dir=str(tmp_path))
    names = [name for name, _ in manager.list_workers()]
    assert "test-executor" in names
    assert "learning-recorder" in names


def test_chat_input_does_not_run(tmp_path):
    coordinator = _coordinator(tmp_path)
    result = PipelineManager(coordinator=coordinator).handle("hello, thanks!")
    assert result["category"] == "chat"
    coordinator.run.assert_not_called()


def test_dry_run_normalizes_only(tmp_path):
    coordinator = _coordinator(tmp_path)
    result = PipelineManager(coordinator=coordinator).handle(REQUEST, dry_run=True)
    assert result["dry_run"] is True
    assert result["request"]["feature"] == "login"
    coordinator.run.assert_not_called()


def test_handle_runs_pipeline(tmp_path):
    coordinator = _coordinator(tmp_path)
    result = PipelineManager(coordinator=coordinator).handle(REQUEST)
    assert result["result"]["status"] == "SUCCESS"
    request = coordinator.run.call_args[0][0]
    assert request.url == "https://shop.example.com/login"


def test_resume_adopts_interrupted_request_id(tmp_path):
    coordinator = _coordinator(tmp_path)
    coordinator.store.save_pipeline_state(
        PipelineState(domain="shop", feature="login", request_id="earlier"))

    PipelineManager(coordinator=coordinator).handle(REQUEST, resume=True)

    request = coordinator.run.call_args[0][0]
    assert request.request_id == "earlier"
    assert coordinator.run.call_args[1]["resume"] is True


def test_resume_keeps_explicit_request_id(tmp_path):
    coordinator = _coordinator(tmp_path)
    coordinator.store.save_pipeline_state(
        PipelineState(domain="shop", feature="login", request_id="earlier"))

    PipelineManager(coordinator=coordinator).handle(dict(REQUEST, requestId="fresh"), resume=True)

    assert coordinator.run.call_args[0][0].request_id == "fresh"


# ---------------------------------------------------------------------------
# CLI
# ---------------------------------------------------------------------------

def test_cli_list_gates(capsys):
    assert main.main(["list-gates"]) == 0
    out = capsys.readouterr().out
    assert "element_mapping" in out
    assert "test-executor" in out


def test_cli_classify(capsys):
    assert main.main(["classify", "generate tests for checkout"]) == 0
    assert "pipeline" in capsys.readouterr().out


def test_cli_no_command(capsys):
    assert main.main([]) == 1


@patch("main.PipelineManager")
def test_cli_run(mock_manager_cls, tmp_path, capsys):
    request_file = tmp_path / "request.json"
    request_file.write_text(json.dumps(REQUEST))
    mock_manager_cls.return_value.handle.return_value = {
        "category": "pipeline",
        "scores": {},
        "request": REQUEST,
        "result": PipelineResult(status=Status.FAILED, request_id="r1", failed_gate=3,
                                 issues=["2 compilation error(s)"]).to_dict(),
    }

    code = main.main(["run", "--request", str(request_file), "--state-dir", str(tmp_path)])

    assert code == 1
    out = capsys.readouterr().out
    assert "FAILED" in out
    assert "2 compilation error(s)" in out
    mock_manager_cls.assert_called_once_with(state_dir=str(tmp_path))
    assert mock_manager_cls.return_value.handle.call_args[0][0] == REQUEST


def test_cli_run_missing_file(tmp_path, capsys):
    code = main.main(["run", "--request", str(tmp_path / "missing.json"), "--state-dir", str(tmp_path)])
    assert code == 2


def test_cli_run_invalid_request(tmp_path, capsys):
    request_file = tmp_path / "request.json"
    request_file.write_text(json.dumps(dict(REQUEST, url="nope")))
    code = main.main(["run", "--request", str(request_file), "--state-dir", str(tmp_path)])
    assert code == 2
    assert "url is not a valid" in capsys.readouterr().err


def test_cli_status(tmp_path, capsys):
    store = StateStore(str(tmp_path))
    store.save_pipeline_state(PipelineState(domain="shop", feature="login", request_id="r9"))
    assert main.main(["status", "--domain", "shop", "--feature", "login",
                      "--state-dir", str(tmp_path)]) == 0
    assert "r9" in capsys.readouterr().out


def test_cli_status_unknown(tmp_path):
    assert main.main(["status", "--domain", "shop", "--feature", "checkout",
                      "--state-dir", str(tmp_path)]) == 1
