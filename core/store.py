"""Durable JSON record store: one file per key, atomic replace, per-key locks."""

import json
import logging
import os
import tempfile
import threading

from config.defaults import DEFAULTS
from core.errors import PersistenceError
from core.state import GateResult, PipelineState
from utils.naming import gate_key, pipeline_key, record_key

logger = logging.getLogger(__name__)

# Locks are keyed by absolute path so two stores on the same directory agree.
_locks = {}
_locks_guard = threading.Lock()


def _lock_for(path):
    with _locks_guard:
        return _locks.setdefault(path, threading.Lock())


def _normalize(record):
    """Round-trip through JSON so tuples/enums compare equal to what is on disk."""
    return json.loads(json.dumps(record))


def _without(record, ignore):
    if not isinstance(record, dict):
        return record
    return {k: v for k, v in record.items() if k not in ignore}


class StateStore:
    """Key-value persistence of pipeline and gate records.

    Writes go to a temporary file in the same directory and are moved into
    place with os.replace, so a reader sees either the previous record or the
    new one. Writes under the same key are serialized; different keys never
    share a file.
    """

    def __init__(self, root=None, retries=None):
        self.root = os.path.realpath(root or DEFAULTS["state_dir"])
        self.retries = DEFAULTS["persistence_retries"] if retries is None else retries
        os.makedirs(self.root, exist_ok=True)

    def path_for(self, key):
        if not key or "/" in key or os.sep in key or key.startswith("."):
            raise ValueError(f"Invalid record key: {key!r}")
        return os.path.join(self.root, f"{key}.json")

    def read(self, key):
        """Return the record stored under key, or None."""
        path = self.path_for(key)
        try:
            with open(path) as f:
                return json.load(f)
        except FileNotFoundError:
            return None
        except json.JSONDecodeError as e:
            raise PersistenceError(key, f"corrupt record: {e}") from e

    def exists(self, key):
        return os.path.isfile(self.path_for(key))

    def keys(self):
        return sorted(
            name[:-5] for name in os.listdir(self.root)
            if name.endswith(".json") and not name.startswith(".")
        )

    def write(self, key, record, fatal=True, ignore=()):
        """Replace the record under key.

        Returns True if the file was written, False if the stored record was
        already identical (ignoring the ``ignore`` fields) or a non-fatal
        write was dropped. A failed write is retried; fatal writes then raise
        PersistenceError.
        """
        path = self.path_for(key)
        payload = _normalize(record)
        with _lock_for(path):
            try:
                current = self.read(key)
            except PersistenceError:
                current = None
            if current is not None and _without(current, ignore) == _without(payload, ignore):
                return False

            last_error = None
            for attempt in range(self.retries + 1):
                try:
                    self._replace(path, payload)
                    return True
                except OSError as e:
                    last_error = e
                    logger.warning("Write of %s failed (attempt %d): %s", key, attempt + 1, e)

        if fatal:
            raise PersistenceError(key, str(last_error))
        logger.error("Dropping non-fatal write of %s: %s", key, last_error)
        return False

    def _replace(self, path, payload):
        fd, tmp_path = tempfile.mkstemp(
            dir=self.root, prefix="." + os.path.basename(path) + ".", suffix=".tmp",
        )
        try:
            with os.fdopen(fd, "w") as f:
                json.dump(payload, f, indent=2, sort_keys=True)
                f.flush()
                os.fsync(f.fileno())
            os.replace(tmp_path, path)
        except BaseException:
            if os.path.exists(tmp_path):
                os.remove(tmp_path)
            raise

    def delete(self, key):
        path = self.path_for(key)
        with _lock_for(path):
            if os.path.exists(path):
                os.remove(path)
                return True
        return False

    # --- Typed records ---

    def save_pipeline_state(self, state: PipelineState):
        state.touch()
        return self.write(pipeline_key(state.domain, state.feature), state.to_dict(),
                          ignore=("updatedAt",))

    def load_pipeline_state(self, domain, feature):
        data = self.read(pipeline_key(domain, feature))
        return PipelineState.from_dict(data) if data else None

    def save_gate_result(self, domain, feature, result: GateResult):
        return self.write(gate_key(domain, feature, result.gate), result.to_dict())

    def load_gate_result(self, domain, feature, gate):
        data = self.read(gate_key(domain, feature, gate))
        return GateResult.from_dict(data) if data else None

    def save_audit(self, domain, feature, record):
        key = record_key(domain, feature, "audit")
        self.write(key, record)
        return key

    def save_learnings(self, domain, feature, record):
        """Learning records never gate progress; failures are logged only."""
        return self.write(record_key(domain, feature, "learnings"), record, fatal=False)
