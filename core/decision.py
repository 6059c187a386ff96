"""GATE_0 decision predicate: does this request need a data-preparation gate?"""

from config.rules import (
    INPUT_TAG_RE, INPUT_TYPE_RE, MULTIPLICITY_RE, NON_DATA_INPUT_TYPES,
)

MIN_CRITERIA = 3        # "more than two" acceptance criteria
MIN_INPUT_FIELDS = 3


def count_input_fields(page_content):
    """Count data-entry controls in cached page HTML."""
    if not page_content:
        return 0
    count = 0
    for match in INPUT_TAG_RE.finditer(page_content):
        tag, attrs = match.group(1).lower(), match.group(2)
        if tag == "input":
            type_match = INPUT_TYPE_RE.search(attrs)
            if type_match and type_match.group(1).lower() in NON_DATA_INPUT_TYPES:
                continue
        count += 1
    return count


def mentions_multiplicity(request):
    text = " ".join([request.feature, request.user_story, *request.acceptance_criteria])
    return MULTIPLICITY_RE.search(text) is not None


def needs_data_preparation(request, page_content):
    """Pure function of (request, cached page content).

    Fires when the request declares data-driven mode, or when it talks about
    multiplicity and either has more than two acceptance criteria or the
    page exposes at least three input fields.
    """
    if request.data_requirements.mode == "data-driven":
        return True
    if not mentions_multiplicity(request):
        return False
    return (
        len(request.acceptance_criteria) >= MIN_CRITERIA
        or count_input_fields(page_content) >= MIN_INPUT_FIELDS
    )
