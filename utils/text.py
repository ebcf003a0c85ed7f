"""Text normalization utilities for title search matching."""

import re
import unicodedata

_WS_RE = re.compile(r"\s+", re.UNICODE)
_PUNCT_RE = re.compile(r"[-._,:;!?()\[\]{}'\"/\\|+=#&*]")


def normalize_search_text(value):
    """Normalize text for punctuation- and case-insensitive title comparisons."""
    if value is None:
        return ""
    text = str(value).strip()
    if not text:
        return ""
    text = unicodedata.normalize("NFKC", text).lower()
    text = _PUNCT_RE.sub(" ", text)
    return _WS_RE.sub(" ", text).strip()


def tokenize_search_text(normalized):
    tokens = []
    for part in (normalized or "").split():
        if part not in tokens:
            tokens.append(part)
    return tokens


def matches_query(candidate, normalized_query, query_tokens):
    """True when the candidate contains the whole query or every query token."""
    normalized_candidate = normalize_search_text(candidate)
    if not normalized_candidate:
        return False
    if normalized_query and normalized_query in normalized_candidate:
        return True
    if not query_tokens:
        return False
    return all(token in normalized_candidate for token in query_tokens)


def any_candidate_matches(candidates, normalized_query, query_tokens):
    return any(matches_query(candidate, normalized_query, query_tokens) for candidate in candidates)
