"""
GitHub revision source: branch head polling and zipball download.
"""

import logging
from typing import Callable, Optional, Protocol

import httpx

from controller.src.config import Settings, get_settings
from controller.src.errors import ConfigurationError, SourceFailed
from controller.src.models.pipeline import SourceConfig

logger = logging.getLogger(__name__)

GITHUB_API_URL = "https://api.github.com"

class RevisionSource(Protocol):
    async def latest_revision(self) -> str:
        ...

    async def fetch_archive(self, revision: str) -> bytes:
        ...

class GitHubRevisionSource:
    def __init__(
        self,
        owner: str,
        repo: str,
        branch: str,
        token: str,
        api_url: str = GITHUB_API_URL,
        transport: Optional[httpx.AsyncBaseTransport] = None,
        timeout: float = 30.0,
    ):
        self.owner = owner
        self.repo = repo
        self.branch = branch
        self.api_url = api_url.rstrip("/")
        self._token = token
        self._transport = transport
        self._timeout = timeout

    @property
    def identity(self) -> str:
        return f"{self.owner}/{self.repo}@{self.branch}"

    def _client(self) -> httpx.AsyncClient:
        headers = {
            "Accept": "application/vnd.github+json",
            "User-Agent": "crossdeploy",
        }
        if self._token:
            headers["Authorization"] = f"Bearer {self._token}"
        return httpx.AsyncClient(
            base_url=self.api_url,
            headers=headers,
            timeout=self._timeout,
            transport=self._transport,
            follow_redirects=True,
        )

    async def latest_revision(self) -> str:
        """Return the commit SHA at the head of the branch."""
        async with self._client() as client:
            try:
                response = await client.get(f"/repos/{self.owner}/{self.repo}/branches/{self.branch}")
                response.raise_for_status()
            except httpx.HTTPError as e:
                raise SourceFailed(f"Cannot read head of {self.identity}: {e}")

        sha = (response.json().get("commit") or {}).get("sha")
        if not sha:
            raise SourceFailed(f"No commit found at head of {self.identity}")
        return sha

    async def fetch_archive(self, revision: str) -> bytes:
        """Download the repository zipball at a revision."""
        async with self._client() as client:
            try:
                response = await client.get(f"/repos/{self.owner}/{self.repo}/zipball/{revision}")
                response.raise_for_status()
            except httpx.HTTPError as e:
                raise SourceFailed(f"Cannot download {self.identity} at {revision}: {e}")

        logger.info(f"Downloaded {self.identity} at {revision[:12]} ({len(response.content)} bytes)")
        return response.content

def github_source_factory(settings: Optional[Settings] = None) -> Callable[[SourceConfig], GitHubRevisionSource]:
    """Build revision sources whose token comes from the secret store, never the definition."""
    settings = settings or get_settings()

    def factory(config: SourceConfig) -> GitHubRevisionSource:
        secret = settings.secrets.get(config.token_secret)
        if secret is None:
            raise ConfigurationError(f"Secret '{config.token_secret}' is not available")
        return GitHubRevisionSource(
            owner=config.owner,
            repo=config.repo,
            branch=config.branch,
            token=secret.get_secret_value(),
            api_url=settings.github_api_url,
        )

    return factory
