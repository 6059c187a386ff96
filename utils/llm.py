"""Claude API client used by the LLM-backed gate workers."""

import json
import logging
import os
import re
import time

import anthropic

from config.defaults import DEFAULTS

logger = logging.getLogger(__name__)

MODEL = DEFAULTS["model"]
MAX_TOKENS = DEFAULTS["max_tokens"]

_FENCE_OPEN = re.compile(r"^```\w*\n?")
_FENCE_CLOSE = re.compile(r"\n?```$")


def get_client():
    """Return an Anthropic client. Raises if no API key is set."""
    api_key = os.environ.get("ANTHROPIC_API_KEY")
    if not api_key:
        raise RuntimeError(
            "ANTHROPIC_API_KEY environment variable is not set. "
            "Get a key at https://console.anthropic.com/ and run:\n"
            "  export ANTHROPIC_API_KEY='your-key-here'"
        )
    return anthropic.Anthropic(api_key=api_key)


def strip_fences(text):
    """Remove a surrounding markdown code fence, if the model added one."""
    cleaned = text.strip()
    if cleaned.startswith("```"):
        cleaned = _FENCE_OPEN.sub("", cleaned)
        cleaned = _FENCE_CLOSE.sub("", cleaned)
    return cleaned


def call_llm(system_prompt, user_message, response_format=None):
    """Call Claude with optional structured JSON output.

    Args:
        system_prompt: System prompt string.
        user_message: User message string.
        response_format: If "json", appends instruction to return valid JSON
                         and parses the response.

    Returns:
        Raw text string, or parsed dict/list if response_format="json".
        A JSON reply that fails to parse is returned as raw text.
    """
    client = get_client()

    if response_format == "json":
        system_prompt = system_prompt + "\n\nIMPORTANT: Respond ONLY with valid JSON. No markdown fences, no commentary."

    last_error = None
    for attempt in range(2):
        try:
            # Streaming avoids the SDK timeout for large max_tokens
            text = ""
            with client.messages.stream(
                model=MODEL,
                max_tokens=MAX_TOKENS,
                system=system_prompt,
                messages=[{"role": "user", "content": user_message}],
            ) as stream:
                for chunk in stream.text_stream:
                    text += chunk
                final = stream.get_final_message()

            if final.stop_reason == "max_tokens":
                logger.warning("LLM response truncated at %d tokens", MAX_TOKENS)

            if response_format == "json":
                return json.loads(strip_fences(text))
            return text

        except anthropic.APIError as e:
            last_error = e
            if attempt == 0:
                logger.warning("LLM call failed, retrying once: %s", e)
                time.sleep(2)
                continue
            raise
        except json.JSONDecodeError:
            return text

    raise last_error
