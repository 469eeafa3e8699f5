"""Parsing of user-supplied pull-request references."""

from __future__ import annotations

import re

from prdigest_core.models import PullRequestRef

# Checked in order; the first match wins.
_REF_PATTERNS = [
    # github.com/owner/repo/pull/123 (with or without scheme, trailing path allowed)
    re.compile(r"github\.com/([^/\s]+)/([^/\s]+)/pull/(\d+)"),
    # github.com/owner/repo/123
    re.compile(r"github\.com/([^/\s]+)/([^/\s]+)/(\d+)$"),
    # github.com/owner/repo#123
    re.compile(r"github\.com/([^/\s]+)/([^#\s]+)#(\d+)"),
    # owner/repo#123
    re.compile(r"^([^/\s]+)/([^#/\s]+)#(\d+)$"),
]


def parse_ref(text: str) -> PullRequestRef | None:
    """Parse ``owner/repo#123`` or a GitHub pull-request URL.

    Returns None when the input matches none of the accepted forms.
    """
    if not isinstance(text, str):
        return None
    value = text.strip()
    for pattern in _REF_PATTERNS:
        match = pattern.search(value)
        if match:
            pr_number = int(match.group(3))
            if pr_number <= 0:
                return None
            return PullRequestRef(org=match.group(1), repo=match.group(2), pr_number=pr_number)
    return None


def parse_refs(inputs: list[str]) -> tuple[list[PullRequestRef], list[str]]:
    """Split raw inputs into parsed refs and human-readable rejection messages."""
    accepted: list[PullRequestRef] = []
    rejected: list[str] = []
    for i, raw in enumerate(inputs, 1):
        ref = parse_ref(raw)
        if ref is None:
            rejected.append(f'Line {i}: Invalid format "{raw}"')
        else:
            accepted.append(ref)
    return accepted, rejected
