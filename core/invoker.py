"""Synchronous worker invocation with timeout and typed request/response."""

import json
import logging
import os
from concurrent.futures import ThreadPoolExecutor, TimeoutError as FutureTimeout
from dataclasses import dataclass, field

from config.defaults import DEFAULTS
from core.errors import WorkerInvocationError
from core.sandbox import check_command, run_in_sandbox

logger = logging.getLogger(__name__)

RESPONSE_STATUSES = {"SUCCESS", "PARTIAL", "FAILED"}


@dataclass(frozen=True)
class WorkerResponse:
    status: str                     # SUCCESS | PARTIAL | FAILED, as reported by the worker
    output: dict
    validation: dict = field(default_factory=dict)


def parse_response(worker, raw):
    """Check a raw worker reply against the response contract."""
    if not isinstance(raw, dict):
        raise WorkerInvocationError(worker, f"malformed response: expected an object, got {type(raw).__name__}")
    status = str(raw.get("status", "")).upper()
    if status not in RESPONSE_STATUSES:
        raise WorkerInvocationError(worker, f"malformed response: unknown status {raw.get('status')!r}")
    output = raw.get("output")
    if not isinstance(output, dict):
        raise WorkerInvocationError(worker, "malformed response: 'output' must be an object")
    validation = raw.get("validation") or {}
    if not isinstance(validation, dict):
        raise WorkerInvocationError(worker, "malformed response: 'validation' must be an object")
    return WorkerResponse(status=status, output=output, validation=validation)


class CommandWorker:
    """Worker run as an allow-listed subprocess speaking JSON over stdin/stdout."""

    def __init__(self, command, cwd=None):
        check_command(command)
        self.command = command
        self.cwd = os.path.realpath(cwd or os.getcwd())
        if not os.path.isdir(self.cwd):
            raise ValueError(f"Working directory does not exist: {self.cwd}")

    def __call__(self, payload, timeout=None):
        name = os.path.basename(self.command[-1])
        run = run_in_sandbox(self.command, self.cwd, timeout=timeout,
                             input_text=json.dumps(payload))
        if not run.ok:
            raise WorkerInvocationError(
                name, run.stderr.strip()[:300] or f"exited with code {run.returncode}")
        try:
            return json.loads(run.stdout)
        except json.JSONDecodeError as e:
            raise WorkerInvocationError(name, f"malformed response: {e}") from e


class WorkerInvoker:
    """Registry of named workers plus a blocking, time-limited call.

    A worker is any callable taking the request payload and returning the
    response dict; objects with a ``run`` method are accepted too.
    """

    def __init__(self, workers=None, timeout=None):
        self.timeout = timeout or DEFAULTS["worker_timeout"]
        self._workers = {}
        for name, worker in (workers or {}).items():
            self.register(name, worker)

    def register(self, name, worker):
        handler = worker.run if hasattr(worker, "run") and not callable(worker) else worker
        if not callable(handler):
            raise ValueError(f"Worker '{name}' is not callable")
        self._workers[name] = handler

    def has(self, name):
        return name in self._workers

    def names(self):
        return sorted(self._workers)

    def worker(self, name):
        return self._workers.get(name)

    def invoke(self, name, payload, timeout=None) -> WorkerResponse:
        """Hand payload to the named worker and block until it answers.

        Raises WorkerInvocationError on timeout, worker exception, or a
        response that does not match the contract.
        """
        handler = self._workers.get(name)
        if handler is None:
            raise WorkerInvocationError(name, "no worker registered")
        timeout = timeout or self.timeout

        pool = ThreadPoolExecutor(max_workers=1, thread_name_prefix=f"worker-{name}")
        try:
            future = pool.submit(self._call, handler, payload, timeout)
            raw = future.result(timeout=timeout)
        except FutureTimeout as e:
            logger.warning("Worker %s timed out after %ss", name, timeout)
            raise WorkerInvocationError(name, f"timed out after {timeout}s") from e
        except WorkerInvocationError:
            raise
        except Exception as e:
            logger.warning("Worker %s raised %s: %s", name, e.__class__.__name__, e)
            raise WorkerInvocationError(name, f"{e.__class__.__name__}: {e}") from e
        finally:
            # a timed-out worker thread is abandoned, not joined
            pool.shutdown(wait=False)

        return parse_response(name, raw)

    @staticmethod
    def _call(handler, payload, timeout):
        if isinstance(handler, CommandWorker):
            return handler(payload, timeout=timeout)
        return handler(payload)
