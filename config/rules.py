"""Pattern rules used by the GATE_0 decision predicate."""

import re

# Terms denoting repetition or variation of input data. Prefix entries match
# word starts ("variat" -> "variation", "variations").
MULTIPLICITY_TERMS = [
    "multiple", "many", "several", "various", "different", "each", "every",
    "combination", "permutation", "variat", "data-driven", "data driven",
    "dataset", "boundary", "edge case", "invalid", "set of", "list of",
    "bulk", "batch", "repeat", "iterate",
]

_PREFIX_TERMS = {"variat", "permutation", "combination", "repeat", "iterate"}


def _term_pattern(term):
    if term in _PREFIX_TERMS:
        return r"\b" + re.escape(term)
    return r"\b" + re.escape(term) + r"\b"


MULTIPLICITY_RE = re.compile(
    "|".join(_term_pattern(t) for t in MULTIPLICITY_TERMS),
    re.IGNORECASE,
)

# Form controls a user can type into or choose from.
INPUT_TAG_RE = re.compile(r"<\s*(input|textarea|select)\b([^>]*)>", re.IGNORECASE)
INPUT_TYPE_RE = re.compile(r"""\btype\s*=\s*["']?([\w-]+)""", re.IGNORECASE)
NON_DATA_INPUT_TYPES = {"hidden", "submit", "button", "reset", "image"}
