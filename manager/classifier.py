"""Keyword-scoring request classifier and request normalization."""

import re
from urllib.parse import urlparse

from core.state import PipelineRequest
from utils.naming import extract_feature_name, slugify

# Keywords that are prefix patterns (match word starts, e.g. "automat" -> "automation")
_PREFIX_KEYWORDS = {"automat", "regress", "validat"}

# Phrases that make the intent unambiguous. Checked BEFORE keyword scoring.
EXPLICIT_PIPELINE = [
    r'\bgenerate\s+(?:e2e\s+|end-to-end\s+|ui\s+|playwright\s+)?tests?\b',
    r'\bwrite\s+(?:e2e\s+|end-to-end\s+|ui\s+|playwright\s+)tests?\b',
    r'\bacceptance\s+criteria\b',
    r'\bas\s+an?\s+\w+.*\bi\s+want\b',      # user-story form
]

KEYWORDS = {
    "pipeline": {
        "test": 3, "tests": 3, "e2e": 4, "playwright": 4, "automat": 3,
        "scenario": 2, "acceptance": 3, "criteria": 2, "verify": 2,
        "regress": 3, "qa": 3, "given": 2, "then": 1, "login": 1,
        "form": 1, "checkout": 1, "validat": 2, "page": 1,
    },
    "chat": {
        "what": 2, "why": 2, "how": 2, "explain": 3, "help": 2,
        "hello": 3, "hi": 3, "thanks": 3, "thank": 3, "status": 2,
    },
}

URL_RE = re.compile(r"https?://[^\s<>\"')]+", re.IGNORECASE)
_BULLET_RE = re.compile(r"^\s*(?:[-*•]|\d+[.)])\s+(.*\S)\s*$")
_GHERKIN_RE = re.compile(r"^\s*(?:given|when|then|and|but)\b", re.IGNORECASE)


def classify(raw):
    """Decide whether raw input is a pipeline request.

    Structured input (a dict with a user story or url) is always a pipeline
    request. Free text is scored against each category; an explicit phrase
    such as "generate tests" overrides scoring.

    Returns (category, scores) where category is "pipeline" or "chat".
    """
    if isinstance(raw, dict):
        structured = any(k in raw for k in ("userStory", "user_story", "url"))
        category = "pipeline" if structured else "chat"
        return category, {"pipeline": 100 if structured else 0, "chat": 0, "_structured": True}

    text = str(raw or "").lower()

    for pattern in EXPLICIT_PIPELINE:
        if re.search(pattern, text, re.IGNORECASE):
            return "pipeline", {"pipeline": 100, "chat": 0, "_explicit": True}

    scores = {}
    for category, kw_map in KEYWORDS.items():
        score = 0
        for keyword, weight in kw_map.items():
            if keyword in _PREFIX_KEYWORDS:
                pat = r'\b' + re.escape(keyword)
            else:
                pat = r'\b' + re.escape(keyword) + r'\b'
            if re.search(pat, text):
                score += weight
        scores[category] = score

    if URL_RE.search(text) and scores["pipeline"] > 0:
        scores["pipeline"] += 2

    best = "pipeline" if scores["pipeline"] > scores["chat"] else "chat"
    return best, scores


def domain_from_url(url):
    """'https://www.shop.example.com/cart' -> 'shop-example-com'."""
    host = urlparse(url or "").hostname or ""
    if host.startswith("www."):
        host = host[4:]
    return slugify(host.replace(".", "-"))


def _split_text(text):
    """Split free text into (user story, acceptance criteria) by line shape."""
    story, criteria = [], []
    for line in text.splitlines():
        if not line.strip():
            continue
        bullet = _BULLET_RE.match(line)
        if bullet:
            criteria.append(bullet.group(1))
        elif _GHERKIN_RE.match(line):
            criteria.append(line.strip())
        else:
            story.append(line.strip())
    return " ".join(story), criteria


def normalize(raw, domain=None, feature=None):
    """Turn a dict or free text into the canonical PipelineRequest.

    Missing domain/feature are derived from the url and the user story.
    The request is not validated here; the coordinator fast-fails on it.
    """
    if isinstance(raw, dict):
        data = dict(raw)
    else:
        text = str(raw or "")
        url_match = URL_RE.search(text)
        story, criteria = _split_text(URL_RE.sub("", text))
        data = {
            "url": url_match.group(0) if url_match else "",
            "userStory": story,
            "acceptanceCriteria": criteria,
        }
        if re.search(r"\bdata[- ]driven\b", text, re.IGNORECASE):
            data["dataRequirements"] = {"mode": "data-driven"}

    if domain:
        data["domain"] = domain
    if feature:
        data["feature"] = feature
    if not data.get("domain"):
        data["domain"] = domain_from_url(data.get("url", ""))
    if not data.get("feature"):
        story = data.get("userStory") or data.get("user_story") or ""
        data["feature"] = extract_feature_name(story) if story else ""

    return PipelineRequest.from_dict(data)
