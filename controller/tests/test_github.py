"""Tests for the GitHub revision source."""

import asyncio

import httpx
import pytest

from controller.src.config import Settings
from controller.src.errors import ConfigurationError, SourceFailed
from controller.src.models.pipeline import SourceConfig
from controller.src.services.github import GitHubRevisionSource, github_source_factory

from conftest import REVISION, source_archive

ARCHIVE = source_archive()

def github_api(request: httpx.Request) -> httpx.Response:
    if request.url.host == "codeload.github.com":
        return httpx.Response(200, content=ARCHIVE)
    assert request.headers["Authorization"] == "Bearer ghp_test"
    if request.url.path == "/repos/acme/app/branches/main":
        return httpx.Response(200, json={"name": "main", "commit": {"sha": REVISION}})
    if request.url.path == f"/repos/acme/app/zipball/{REVISION}":
        return httpx.Response(302, headers={"Location": "https://codeload.github.com/acme/app/zip/x"})
    return httpx.Response(404, json={"message": "Not Found"})

def make_source(branch="main"):
    return GitHubRevisionSource(
        owner="acme",
        repo="app",
        branch=branch,
        token="ghp_test",
        transport=httpx.MockTransport(github_api),
    )

def test_latest_revision():
    assert asyncio.run(make_source().latest_revision()) == REVISION

def test_fetch_archive_follows_redirect():
    assert asyncio.run(make_source().fetch_archive(REVISION)) == ARCHIVE

def test_unknown_branch_is_source_failed():
    with pytest.raises(SourceFailed, match="acme/app@gone"):
        asyncio.run(make_source("gone").latest_revision())

def test_unknown_revision_is_source_failed():
    with pytest.raises(SourceFailed):
        asyncio.run(make_source().fetch_archive("0" * 40))

def test_factory_reads_token_from_secrets():
    settings = Settings(_env_file=None, secrets={"GitHubToken": "ghp_secret"})
    source = github_source_factory(settings)(SourceConfig(owner="acme", repo="app"))

    assert source.identity == "acme/app@main"
    assert source._token == "ghp_secret"

def test_factory_requires_secret():
    settings = Settings(_env_file=None, secrets={})

    with pytest.raises(ConfigurationError, match="GitHubToken"):
        github_source_factory(settings)(SourceConfig(owner="acme", repo="app"))
