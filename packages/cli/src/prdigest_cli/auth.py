"""Where the CLI gets its GitHub token.

First non-empty source wins:
  1. GITHUB_TOKEN, then GH_TOKEN (the variable the gh CLI itself honours)
  2. the token of the current `gh auth login` session
"""

from __future__ import annotations

import logging
import os
import subprocess

logger = logging.getLogger(__name__)

_ENV_VARS = ("GITHUB_TOKEN", "GH_TOKEN")
_GH_TIMEOUT = 5


def _token_from_gh() -> str | None:
    try:
        proc = subprocess.run(["gh", "auth", "token"], capture_output=True, text=True, timeout=_GH_TIMEOUT)
    except FileNotFoundError:
        logger.debug("gh CLI not installed.")
        return None
    except subprocess.TimeoutExpired:
        logger.debug("gh auth token did not answer within %ss.", _GH_TIMEOUT)
        return None

    if proc.returncode != 0:
        logger.debug("gh auth token exited with %d: %s", proc.returncode, proc.stderr.strip())
        return None
    return proc.stdout.strip() or None


def resolve_github_token() -> str | None:
    """Return a GitHub token, or None when no source has one.

    analyze turns None into a UsageError; status and report never need a token.
    """
    for name in _ENV_VARS:
        value = os.environ.get(name)
        if value:
            return value

    token = _token_from_gh()
    if token:
        logger.debug("Using GitHub token from the gh CLI session.")
    return token
