"""Record naming utilities: slugs and state keys derived from (domain, feature)."""

import re


def slugify(text):
    """Convert text to a filesystem-safe slug."""
    text = str(text).lower().strip()
    text = re.sub(r"[^\w\s-]", "", text)
    text = re.sub(r"[\s_-]+", "-", text)
    return text.strip("-")


def extract_feature_name(text):
    """Pull a short feature name from free text."""
    filler = {
        "test", "tests", "testing", "the", "a", "an", "for", "to", "with",
        "of", "and", "as", "i", "want", "user", "can", "should", "be", "able",
        "so", "that", "please", "generate", "write", "create", "automate",
        "on", "in", "my", "me", "page",
    }
    words = re.sub(r"https?://\S+", " ", text.lower())
    words = re.sub(r"[^\w\s]", " ", words).split()
    meaningful = [w for w in words if w not in filler]
    name = "-".join(meaningful[:3]) if meaningful else "feature"
    return slugify(name)


def record_key(domain, feature, suffix):
    """Stable record key, e.g. ``shop-checkout-gate2-output``.

    Slugs are joined with the same separator they use internally, so
    ("a-b", "c") and ("a", "b-c") share a key. Callers that need distinct
    records must keep domain and feature slugs unambiguous.
    """
    domain_slug = slugify(domain)
    feature_slug = slugify(feature)
    if not domain_slug or not feature_slug:
        raise ValueError(f"Cannot derive a record key from domain={domain!r} feature={feature!r}")
    return f"{domain_slug}-{feature_slug}-{suffix}"


def pipeline_key(domain, feature):
    return record_key(domain, feature, "pipeline")


def gate_key(domain, feature, gate):
    return record_key(domain, feature, f"gate{gate}-output")
