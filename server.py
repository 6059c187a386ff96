#!/usr/bin/env python3
"""Gatekeeper - HTTP API for the test-generation pipeline."""

import logging
import os
import threading
import time
import uuid
from flask import Flask, jsonify, request

from config.gates import GATES
from core.errors import InputValidationError, PipelineError
from manager.agent import PipelineManager
from manager.classifier import classify

logger = logging.getLogger(__name__)

app = Flask(__name__)
manager = PipelineManager()

# Pipeline jobs keyed by job_id: {id: {"status", "abort", "result", "error", "created"}}
_jobs = {}
_jobs_lock = threading.Lock()
_MAX_JOBS = 50  # prevent unbounded memory growth
_JOB_TTL = 3600  # expire jobs after 1 hour


def _cleanup_jobs():
    """Remove expired jobs. Called under _jobs_lock."""
    now = time.time()
    expired = [jid for jid, job in _jobs.items() if now - job["created"] > _JOB_TTL]
    for jid in expired:
        del _jobs[jid]
    # If still over limit, remove oldest
    if len(_jobs) > _MAX_JOBS:
        by_age = sorted(_jobs.items(), key=lambda x: x[1]["created"])
        for jid, _ in by_age[:len(_jobs) - _MAX_JOBS]:
            del _jobs[jid]


def _store_job(job):
    """Store a job and return its ID."""
    job_id = str(uuid.uuid4())[:8]
    with _jobs_lock:
        _cleanup_jobs()
        job["created"] = time.time()
        _jobs[job_id] = job
    return job_id


def _get_job(job_id):
    """Get a job by ID, or None if not found/expired."""
    with _jobs_lock:
        job = _jobs.get(job_id)
    if not job:
        return None
    if time.time() - job["created"] > _JOB_TTL:
        with _jobs_lock:
            _jobs.pop(job_id, None)
        return None
    return job


def _job_to_dict(job_id, job):
    return {
        "job_id": job_id,
        "status": job["status"],
        "request": job.get("request"),
        "result": job.get("result"),
        "error": job.get("error"),
    }


def _run_job(job, raw, resume):
    try:
        outcome = manager.handle(raw, resume=resume, abort_event=job["abort"])
        job["result"] = outcome.get("result")
        job["status"] = "aborted" if job["result"] and job["result"]["aborted"] else "done"
    except InputValidationError as e:
        job["error"] = "; ".join(e.issues)
        job["status"] = "error"
    except PipelineError as e:
        logger.exception("Pipeline job failed")
        job["error"] = str(e)
        job["status"] = "error"
    except Exception as e:
        logger.exception("Pipeline job crashed")
        job["error"] = f"{type(e).__name__}: {e}"
        job["status"] = "error"


@app.route("/api/pipeline", methods=["POST"])
def api_pipeline():
    """Start a pipeline run in the background and return its job id.

    Accepts {"request": <object or text>, "resume": bool}.
    """
    data = request.get_json(silent=True)
    if not data or not data.get("request"):
        return jsonify({"error": "Missing request"}), 400

    raw = data["request"]
    category, scores = classify(raw)
    if category != "pipeline":
        return jsonify({"error": "Not a test-generation request", "scores": scores}), 400

    job = {"status": "running", "abort": threading.Event(), "result": None, "error": None,
           "request": raw if isinstance(raw, dict) else {"text": raw}}
    job_id = _store_job(job)

    worker = threading.Thread(
        target=_run_job, args=(job, raw, bool(data.get("resume"))),
        name=f"pipeline-{job_id}", daemon=True,
    )
    worker.start()
    return jsonify({"job_id": job_id, "status": "running"}), 202


@app.route("/api/jobs/<job_id>")
def api_job(job_id):
    """Check status of a pipeline job."""
    job = _get_job(job_id)
    if not job:
        return jsonify({"error": "Job not found"}), 404
    return jsonify(_job_to_dict(job_id, job))


@app.route("/api/jobs/<job_id>/abort", methods=["POST"])
def api_abort(job_id):
    """Ask a running job to stop before its next gate."""
    job = _get_job(job_id)
    if not job:
        return jsonify({"error": "Job not found"}), 404
    if job["status"] != "running":
        return jsonify({"error": f"Job is not running ({job['status']})"}), 400
    job["abort"].set()
    return jsonify({"job_id": job_id, "abort_requested": True})


@app.route("/api/classify", methods=["POST"])
def api_classify():
    data = request.get_json(silent=True)
    if not data or not data.get("request"):
        return jsonify({"error": "Missing request"}), 400
    category, scores = classify(data["request"])
    return jsonify({"category": category, "scores": scores})


@app.route("/api/state/<domain>/<feature>")
def api_state(domain, feature):
    try:
        view = manager.status(domain, feature)
    except ValueError as e:
        return jsonify({"error": str(e)}), 400
    if view is None:
        return jsonify({"error": "No pipeline recorded"}), 404
    return jsonify(view)


@app.route("/api/gates")
def api_gates():
    gates = [
        {
            "gate": gate,
            "name": spec["name"],
            "worker": spec["worker"],
            "requires": spec["requires"],
            "deliverables": spec["deliverables"],
        }
        for gate, spec in sorted(GATES.items())
    ]
    return jsonify(gates)


if __name__ == "__main__":
    port = int(os.environ.get("PORT", 5001))
    print(f"Gatekeeper API running at http://localhost:{port}")
    app.run(debug=False, port=port)
