# src/testsmith/tasks/repo_names.py

from __future__ import annotations

import re
from urllib.parse import urlparse

from .errors import InvalidRepoUrl

# git@github.com:owner/name(.git)
_SCP_LIKE = re.compile(r"^[\w.-]+@[\w.-]+:(?P<path>[^\s]+)$")
_SEGMENT = re.compile(r"^[A-Za-z0-9_.-]+$")


def _split_path(url: str) -> list[str]:
    raw = (url or "").strip()
    if not raw:
        raise InvalidRepoUrl("empty repository url")

    m = _SCP_LIKE.match(raw)
    if m:
        path = m.group("path")
    elif "://" in raw:
        parsed = urlparse(raw)
        if not parsed.netloc:
            raise InvalidRepoUrl(f"no host in repository url: {raw!r}")
        path = parsed.path
    else:
        # Bare "owner/name" shorthand.
        path = raw

    parts = [p for p in path.strip("/").split("/") if p]
    if parts and parts[-1].endswith(".git"):
        parts[-1] = parts[-1][: -len(".git")]
    if len(parts) < 2 or not all(_SEGMENT.match(p) for p in parts[-2:]):
        raise InvalidRepoUrl(f"cannot parse owner/name from repository url: {raw!r}")
    return parts


def get_repo_slug_from_url(url: str) -> str:
    """Return "owner/name" for a repository url."""
    parts = _split_path(url)
    return f"{parts[-2]}/{parts[-1]}"


def get_repo_name_from_url(url: str) -> str:
    """
    Return the short repository name.

    >>> get_repo_name_from_url("https://github.com/acme/widgets.git")
    'widgets'
    """
    return _split_path(url)[-1]
