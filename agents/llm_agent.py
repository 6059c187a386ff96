"""LLM-backed worker: one system prompt per gate, JSON payload in, JSON response out."""

import json
import os

from agents.base import BaseAgent, response
from config.defaults import DEFAULTS
from utils.llm import call_llm
from utils.naming import slugify

_PROMPT_DIR = os.path.join(os.path.dirname(__file__), "prompts")


def load_prompt(name):
    with open(os.path.join(_PROMPT_DIR, f"{name}.txt")) as f:
        return f.read()


class LLMAgent(BaseAgent):
    """Sends the gate payload to Claude and returns its structured reply.

    Generated files ({"path", "content"} entries under output["files"]) are
    written below output_dir/<domain>/<feature>/ and replaced by their paths.
    When the gate's deliverable is still missing afterwards, the output
    itself is saved as a JSON file and recorded as that deliverable.
    """

    def __init__(self, name, gate, description, prompt_name, deliverable=None, output_dir=None):
        self.name = name
        self.gate = gate
        self.description = description
        self.prompt_name = prompt_name
        self.deliverable = deliverable
        self.output_dir = output_dir or DEFAULTS["output_dir"]

    def run(self, payload):
        prompt = load_prompt(self.prompt_name)
        result = call_llm(prompt, json.dumps(payload, indent=2, default=str), response_format="json")

        if not isinstance(result, dict):
            return response("FAILED", {}, ["worker returned a non-JSON response"])
        reply = result if "status" in result and "output" in result else response("SUCCESS", result)
        if isinstance(reply.get("output"), dict):
            self._materialize(payload, reply["output"])
        return reply

    def _target_dir(self, payload):
        meta = payload.get("metadata", {})
        return os.path.join(
            self.output_dir,
            slugify(meta.get("domain", "")) or "domain",
            slugify(meta.get("feature", "")) or "feature",
        )

    def _materialize(self, payload, output):
        target = self._target_dir(payload)
        artifacts = output.get("artifacts")
        if not isinstance(artifacts, dict):
            artifacts = {}

        files = output.get("files")
        if isinstance(files, list) and files and all(isinstance(f, dict) for f in files):
            written = [
                self.write_file(target, f["path"], f.get("content", ""))
                for f in files if f.get("path")
            ]
            output["files"] = written
            if self.deliverable and written:
                artifacts.setdefault(self.deliverable, written)

        if self.deliverable and not artifacts.get(self.deliverable):
            name = f"gate{self.gate}-{self.prompt_name}.json"
            content = json.dumps({k: v for k, v in output.items() if k != "artifacts"}, indent=2)
            artifacts[self.deliverable] = self.write_file(target, name, content)

        if artifacts:
            output["artifacts"] = artifacts
