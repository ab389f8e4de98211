# tests/test_repo_names.py

from __future__ import annotations

import pytest

from testsmith.tasks.errors import InvalidRepoUrl
from testsmith.tasks.repo_names import get_repo_name_from_url, get_repo_slug_from_url


@pytest.mark.parametrize(
    "url",
    [
        "https://github.com/acme/widgets",
        "https://github.com/acme/widgets.git",
        "https://github.com/acme/widgets/",
        "git@github.com:acme/widgets.git",
        "ssh://git@github.com/acme/widgets.git",
        "acme/widgets",
    ],
)
def test_accepted_url_forms(url: str) -> None:
    assert get_repo_name_from_url(url) == "widgets"
    assert get_repo_slug_from_url(url) == "acme/widgets"


@pytest.mark.parametrize("url", ["", "   ", "widgets", "https://github.com/", "https:///acme/widgets", "acme/wid gets"])
def test_rejected_urls(url: str) -> None:
    with pytest.raises(InvalidRepoUrl):
        get_repo_name_from_url(url)
