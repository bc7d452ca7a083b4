"""
Manifest retriever for GitHub organizations.

Given an organization and a set of manifest search patterns, returns the raw
contents of every matching manifest file in the organization's non-archived
repositories, tagged with registry and language.

A retriever is meant to live for one invocation: its caches are instance
state and never shared across organizations or runs.
"""

from __future__ import annotations

import base64
import fnmatch
import logging
import threading
from collections.abc import Iterable
from concurrent.futures import ThreadPoolExecutor
from typing import Any, Callable

from django.conf import settings

from apps.crawler.client import GithubClient, RateLimiter
from apps.crawler.dtos import Manifest, ManifestSearchPattern, OrgIdentity
from apps.crawler.tokens import BaseTokenProvider, get_token_provider

logger = logging.getLogger(__name__)

DEFAULT_MAX_CONCURRENT_FETCHES = 30


class CrawlerConfigurationError(ValueError):
    """The organization cannot be crawled (missing name or installation)."""


class GithubRetriever:
    """
    Crawls an organization's repositories for package manifests.

    Usage:
        retriever = GithubRetriever()
        manifests = retriever.get_all_manifests_for_org(org, search_patterns)
    """

    def __init__(
        self,
        token_provider: BaseTokenProvider | None = None,
        client_factory: Callable[[str], GithubClient] | None = None,
        rate_limiter: RateLimiter | None = None,
        max_concurrent_fetches: int | None = None,
    ):
        self.token_provider = token_provider
        self.rate_limiter = rate_limiter or RateLimiter()
        self.client_factory = client_factory or self._default_client
        self.max_concurrent_fetches = (
            max_concurrent_fetches
            if max_concurrent_fetches is not None
            else int(
                getattr(settings, "GITHUB_MAX_CONCURRENT_FETCHES", DEFAULT_MAX_CONCURRENT_FETCHES)
            )
        )
        self._fetch_slots = threading.BoundedSemaphore(self.max_concurrent_fetches)
        self.cache: dict[tuple[str, ...], list[dict[str, Any]]] = {}

    def _default_client(self, token: str) -> GithubClient:
        return GithubClient(token=token, rate_limiter=self.rate_limiter)

    def get_all_manifests_for_org(
        self,
        org: OrgIdentity,
        search_patterns: Iterable[ManifestSearchPattern],
    ) -> list[Manifest]:
        """
        Find and download every manifest matching the search patterns.

        Raises:
            CrawlerConfigurationError: If the org has no name or installation.
            GithubApiError: On unrecoverable API errors; no partial result.
        """
        if not org.name or not org.installation_id:
            raise CrawlerConfigurationError(
                "need org name and installation id to get manifests"
            )

        token_provider = self.token_provider or get_token_provider()
        token = token_provider.get_installation_token(org.installation_id)
        client = self.client_factory(token)

        repos = self.get_org_repos(client, org.name)

        manifests: list[Manifest] = []
        for search_pattern in search_patterns:
            manifests.extend(self.get_manifests_from_repos(client, repos, search_pattern))

        logger.info(f"Found {len(manifests)} manifest files in {org.name}")
        return manifests

    def get_manifests_from_repos(
        self,
        client: GithubClient,
        repos: list[dict[str, Any]],
        search_pattern: ManifestSearchPattern,
    ) -> list[Manifest]:
        to_fetch: list[tuple[dict[str, Any], dict[str, Any]]] = []
        for repo in repos:
            for file in self.search_for_manifests(client, repo, search_pattern):
                to_fetch.append((repo, file))

        if not to_fetch:
            return []

        workers = min(self.max_concurrent_fetches, len(to_fetch))
        with ThreadPoolExecutor(max_workers=workers) as pool:
            contents = list(
                pool.map(lambda pair: self.fetch_file_from_repo(client, *pair), to_fetch)
            )

        return [
            Manifest(
                registry=search_pattern.registry,
                language=search_pattern.language,
                manifest=content,
            )
            for content in contents
        ]

    def get_org_repos(self, client: GithubClient, org_name: str) -> list[dict[str, Any]]:
        """List the org's repositories, excluding archived ones."""
        cache_key = ("repos", org_name)
        if cache_key in self.cache:
            return self.cache[cache_key]

        logger.info(f"Getting repos for {org_name}")
        # The API cannot filter archived repositories server-side.
        repos = client.paginate(
            f"orgs/{org_name}/repos",
            transform=lambda body: [repo for repo in body or [] if not repo.get("archived")],
        )
        self.cache[cache_key] = repos
        return repos

    def search_for_manifests(
        self,
        client: GithubClient,
        repo: dict[str, Any],
        search_pattern: ManifestSearchPattern,
    ) -> list[dict[str, Any]]:
        """Search the repo root for files matching any of the pattern's globs."""
        full_name = repo["full_name"]
        cache_key = ("search", full_name, search_pattern.registry, search_pattern.language)
        if cache_key in self.cache:
            return self.cache[cache_key]

        logger.info(
            f"Searching for {search_pattern.language}/{search_pattern.registry} "
            f"manifests in {full_name}"
        )
        results: list[dict[str, Any]] = []
        for pattern in search_pattern.patterns:
            results.extend(
                client.paginate(
                    "search/code",
                    params={"q": f"filename:{pattern} path:/ repo:{full_name}"},
                    transform=lambda body, pattern=pattern: exact_matches(body, pattern),
                )
            )
        self.cache[cache_key] = results
        return results

    def fetch_file_from_repo(
        self,
        client: GithubClient,
        repo: dict[str, Any],
        file: dict[str, Any],
    ) -> str:
        with self._fetch_slots:
            logger.info(f"Fetching {file['path']} from {repo['full_name']}")
            body = client.get(
                f"repos/{repo['owner']['login']}/{repo['name']}/contents/{file['path']}"
            )
        # Not every manifest is utf-8.
        return base64.b64decode(body["content"]).decode("utf-8", errors="replace")


def exact_matches(body: Any, pattern: str) -> list[dict[str, Any]]:
    """Drop partial filename matches (e.g. package-lock.json for package.json)."""
    items = (body or {}).get("items") or []
    return [item for item in items if fnmatch.fnmatchcase(item.get("name", ""), pattern)]
