"""Default pipeline settings."""

import os

DEFAULTS = {
    "model": "claude-sonnet-4-5-20250929",
    "max_tokens": 32768,
    "state_dir": os.environ.get("PIPELINE_STATE_DIR", ".pipeline-state"),
    "output_dir": os.environ.get("PIPELINE_OUTPUT_DIR", "generated"),
    "worker_timeout": 120,          # seconds per worker call
    "execution_timeout": 600,       # execution-class gates run the browser
    "page_fetch_timeout": 30,
    "max_runs": 5,
    "max_healing_attempts": 3,
    "hard_max_healing_attempts": 3,  # absolute ceiling, cannot be overridden
    "pass_threshold": 70,
    "partial_threshold": 50,
    "persistence_retries": 1,
    "allowed_commands": ["python3", "node", "npx"],
}
