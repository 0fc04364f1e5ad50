"""Release catalog client for wineport."""

import json
import logging
import time
from typing import Any, Callable, Iterator, Optional

from .common import (
    DEFAULT_BACKOFF_SECONDS,
    DEFAULT_PAGE_SIZE,
    DEFAULT_RELEASE_COUNT,
    DEFAULT_RETRIES,
    GITHUB_API_URL,
    MAX_PAGE_SIZE,
    USER_AGENT,
    AssetRecord,
    NetworkClientProtocol,
    ReleaseRecord,
)
from .exceptions import CatalogUnavailable, NetworkError
from .utils import call_with_retries

logger = logging.getLogger(__name__)


def _parse_asset(repo: str, data: Any) -> AssetRecord:
    if not isinstance(data, dict):
        raise CatalogUnavailable(f"Malformed asset entry in {repo}: {data!r}")
    name = data.get("name")
    url = data.get("browser_download_url")
    if not isinstance(name, str) or not isinstance(url, str):
        raise CatalogUnavailable(f"Asset without name or download URL in {repo}")

    size = data.get("size")
    digest = data.get("digest")
    return AssetRecord(
        name=name,
        url=url,
        size=size if isinstance(size, int) and size > 0 else None,
        digest=digest if isinstance(digest, str) and digest else None,
    )


def parse_release(repo: str, data: Any) -> ReleaseRecord:
    """
    Convert one release object of the catalog API into a ReleaseRecord.

    Raises:
        CatalogUnavailable: If the object lacks a tag or its asset list is malformed
    """
    if not isinstance(data, dict):
        raise CatalogUnavailable(f"Malformed release entry in {repo}: {data!r}")
    tag = data.get("tag_name")
    if not isinstance(tag, str) or not tag:
        raise CatalogUnavailable(f"Release without tag_name in {repo}")

    assets = data.get("assets") or []
    if not isinstance(assets, list):
        raise CatalogUnavailable(f"Release {tag} in {repo} has a malformed asset list")

    name = data.get("name")
    return ReleaseRecord(
        tag=tag,
        name=name if isinstance(name, str) and name else tag,
        assets=tuple(_parse_asset(repo, asset) for asset in assets),
    )


class ReleaseListing:
    """Lazy, restartable view of a repository's releases, most recent first.

    Pages are requested only as iteration reaches them, so a caller that
    stops early never pays for the rest of the catalog. Iterating again
    starts a fresh query.
    """

    def __init__(
        self, catalog: "ReleaseCatalog", repo: str, count: int, page_size: int
    ) -> None:
        self.catalog = catalog
        self.repo = repo
        self.count = count
        self.page_size = max(1, min(page_size, MAX_PAGE_SIZE))

    def __iter__(self) -> Iterator[ReleaseRecord]:
        yielded = 0
        page = 1
        while yielded < self.count:
            entries = self.catalog.fetch_page(self.repo, page, self.page_size)
            # A malformed entry discards the whole page
            records = [parse_release(self.repo, entry) for entry in entries]

            for record in records:
                if yielded >= self.count:
                    return
                yield record
                yielded += 1

            if len(entries) < self.page_size:
                return
            page += 1


class ReleaseCatalog:
    """Fetches release records from the GitHub releases API."""

    def __init__(
        self,
        network_client: NetworkClientProtocol,
        retries: int = DEFAULT_RETRIES,
        backoff_seconds: float = DEFAULT_BACKOFF_SECONDS,
        api_url: str = GITHUB_API_URL,
        sleep: Callable[[float], None] = time.sleep,
    ) -> None:
        self.network_client = network_client
        self.retries = retries
        self.backoff_seconds = backoff_seconds
        self.api_url = api_url.rstrip("/")
        self._sleep = sleep

    def _releases_url(self, repo: str, page: int, per_page: int) -> str:
        return f"{self.api_url}/repos/{repo}/releases?per_page={per_page}&page={page}"

    def _request(self, url: str) -> str:
        headers = {
            "User-Agent": USER_AGENT,
            "Accept": "application/vnd.github+json",
        }
        response = self.network_client.get(url, headers=headers)
        if response.returncode != 0:
            raise NetworkError(f"request to {url} failed: {response.stderr.strip()}")
        return response.stdout

    def fetch_page(self, repo: str, page: int, per_page: int) -> list[Any]:
        """
        Fetch one page of raw release objects.

        Args:
            repo: Repository in format 'owner/repo'
            page: 1-based page number
            per_page: Number of releases per page

        Returns:
            The decoded JSON array for the page

        Raises:
            CatalogUnavailable: On transport failure after retries, rate
                limiting, or an empty/null/non-array response
        """
        url = self._releases_url(repo, page, per_page)
        logger.debug(f"Fetching release page {page} from {url}")

        try:
            body = call_with_retries(
                lambda: self._request(url),
                (NetworkError,),
                self.retries,
                self.backoff_seconds,
                f"Fetching releases for {repo}",
                sleep=self._sleep,
            )
        except NetworkError as e:
            if "403" in str(e) or "rate limit" in str(e).lower():
                raise CatalogUnavailable(
                    f"API rate limit exceeded for {repo}. "
                    "Please wait a few minutes before trying again."
                ) from e
            raise CatalogUnavailable(f"Failed to fetch releases for {repo}: {e}") from e

        if not body or not body.strip():
            raise CatalogUnavailable(f"Empty release catalog response for {repo}")

        if "rate limit" in body.lower() and not body.lstrip().startswith("["):
            raise CatalogUnavailable(
                f"API rate limit exceeded for {repo}. "
                "Please wait a few minutes before trying again."
            )

        try:
            data = json.loads(body)
        except json.JSONDecodeError as e:
            raise CatalogUnavailable(
                f"Failed to parse release catalog for {repo}: {e}"
            ) from e

        if not isinstance(data, list):
            raise CatalogUnavailable(
                f"Unexpected release catalog response for {repo}: "
                f"expected a list, got {type(data).__name__}"
            )
        return data

    def list_releases(
        self,
        repo: str,
        count: int = DEFAULT_RELEASE_COUNT,
        page_size: int = DEFAULT_PAGE_SIZE,
    ) -> ReleaseListing:
        """List releases of a repository, most recent first.

        Args:
            repo: Repository in format 'owner/repo'
            count: Maximum number of releases to yield
            page_size: Releases requested per page (clamped to the API maximum)

        Returns:
            A lazy, restartable iterable of ReleaseRecord
        """
        return ReleaseListing(self, repo, count, page_size)

    def find_release(
        self, repo: str, tag: str, search_limit: int = 300
    ) -> Optional[ReleaseRecord]:
        """Find a release by tag within the most recent releases."""
        for release in self.list_releases(repo, count=search_limit):
            if release.tag == tag:
                return release
        return None
