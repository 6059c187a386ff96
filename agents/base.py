"""Abstract base class for all gate workers."""

import os
from abc import ABC, abstractmethod


def response(status, output, issues=None, score=None):
    """Build a worker response in the shape the invoker expects."""
    issues = list(issues or [])
    validation = {"passed": not issues, "issues": issues}
    if score is not None:
        validation["score"] = score
    return {"status": status, "output": output, "validation": validation}


class BaseAgent(ABC):
    """Base class that every worker must extend.

    A worker takes the gate request payload and returns a response dict
    {status, output, validation}. Instances are callable so they can be
    registered with the WorkerInvoker directly.
    """

    name = "base"
    description = "Base worker"
    gate = None

    @abstractmethod
    def run(self, payload):
        """Perform the gate's task for payload and return a response dict."""

    def __call__(self, payload):
        return self.run(payload)

    def write_file(self, output_dir, relative_path, content):
        """Write content to a file inside output_dir, creating dirs as needed."""
        full_path = os.path.join(output_dir, relative_path)
        resolved = os.path.realpath(full_path)
        if not resolved.startswith(os.path.realpath(output_dir) + os.sep):
            raise ValueError(f"Path escapes output directory: {relative_path}")
        os.makedirs(os.path.dirname(resolved), exist_ok=True)
        with open(resolved, "w") as f:
            f.write(content)
        return resolved
