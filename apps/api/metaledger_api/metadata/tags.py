"""Deterministic tag normalization.

Two raw tags are the same tag when they normalize to the same canonical
form. Candidate dismissal relies on this to suppress re-derived duplicates
("Sunsets", " sunset ", "SUNSET!" all become "sunset").
"""

import re
from typing import Iterable, Optional

from metaledger_api.models import Tenant

MAX_TAG_LENGTH = 64
MIN_TAG_LENGTH = 2

_PUNCTUATION = re.compile(r"[^\w\s\-]")
_EDGE_HYPHENS = re.compile(r"^-+|-+$")
_WHITESPACE = re.compile(r"\s+")
_HYPHEN_RUNS = re.compile(r"-+")
_TRAILING_PARTIAL_WORD = re.compile(r"-[^-]*$")
_ALPHANUMERIC = re.compile(r"[a-zA-Z0-9]")

# First matching suffix wins
_SINGULAR_RULES = (
    ("ies", "y"),
    ("ves", "f"),
    ("ses", "s"),
    ("xes", "x"),
    ("zes", "z"),
    ("ches", "ch"),
    ("shes", "sh"),
    ("men", "man"),
    ("een", "een"),
    ("ss", "ss"),
    ("s", ""),
)


def singularize(tag: str) -> str:
    if len(tag) <= 3:
        return tag
    for suffix, replacement in _SINGULAR_RULES:
        if tag.endswith(suffix):
            return tag[: -len(suffix)] + replacement
    return tag


def basic_normalize(raw_tag: str) -> str:
    """Case, punctuation, spacing, plural and length normalization."""
    tag = raw_tag.strip().lower()
    tag = _PUNCTUATION.sub("", tag)
    tag = _EDGE_HYPHENS.sub("", tag)
    tag = _WHITESPACE.sub("-", tag)
    tag = _HYPHEN_RUNS.sub("-", tag)
    tag = singularize(tag)
    if len(tag) > MAX_TAG_LENGTH:
        tag = tag[:MAX_TAG_LENGTH]
        tag = _TRAILING_PARTIAL_WORD.sub("", tag)
    return tag.strip("-")


def is_valid_tag(tag: str) -> bool:
    return len(tag) >= MIN_TAG_LENGTH and bool(_ALPHANUMERIC.search(tag))


class TagNormalizer:
    """Normalizes tags and applies tenant synonym and block lists."""

    def __init__(self, synonyms: Optional[dict] = None, blocked: Optional[Iterable[str]] = None):
        """Initialize normalizer with tenant rules."""
        self.synonyms = dict(synonyms or {})
        self.blocked = set(blocked or ())

    @classmethod
    def for_tenant(cls, tenant: Optional[Tenant]) -> "TagNormalizer":
        if tenant is None:
            return cls()
        return cls(
            synonyms=tenant.setting("tag_synonyms", {}),
            blocked=tenant.setting("blocked_tags", []),
        )

    def normalize(self, raw_tag: str) -> Optional[str]:
        """Return the canonical tag, or None when invalid or blocked."""
        tag = basic_normalize(raw_tag)
        if not is_valid_tag(tag):
            return None
        tag = self.synonyms.get(tag, tag)
        if tag in self.blocked:
            return None
        return tag

    def normalize_batch(self, raw_tags: Iterable[str]) -> dict:
        """Split raw tags into canonical, blocked and invalid buckets."""
        result = {"canonical": [], "blocked": [], "invalid": []}
        for raw_tag in raw_tags:
            tag = self.normalize(raw_tag)
            if tag is None:
                basic = basic_normalize(raw_tag)
                bucket = "blocked" if self.synonyms.get(basic, basic) in self.blocked else "invalid"
                result[bucket].append(raw_tag)
            elif tag not in result["canonical"]:
                result["canonical"].append(tag)
        return result

    def are_equivalent(self, left: str, right: str) -> bool:
        canonical = self.normalize(left)
        return canonical is not None and canonical == self.normalize(right)
