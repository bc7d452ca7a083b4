"""
Installation access token providers.

The crawler asks a provider for a short-lived token once per crawl. How the
GitHub App's own credentials are issued is not handled here: the app JWT
comes from a factory named by ``GITHUB_APP_JWT_FACTORY``.
"""

from __future__ import annotations

import logging
from abc import ABC, abstractmethod
from typing import Callable

from django.conf import settings
from django.core.exceptions import ImproperlyConfigured
from django.utils.module_loading import import_string

from apps.crawler.client import GithubClient

logger = logging.getLogger(__name__)


class BaseTokenProvider(ABC):
    """Returns an access token for one code host installation."""

    @abstractmethod
    def get_installation_token(self, installation_id: str) -> str:
        raise NotImplementedError


class StaticTokenProvider(BaseTokenProvider):
    """Uses one preconfigured token for every installation (local development)."""

    def __init__(self, token: str | None = None):
        self.token = token if token is not None else getattr(settings, "GITHUB_TOKEN", "")

    def get_installation_token(self, installation_id: str) -> str:
        if not self.token:
            raise ImproperlyConfigured("GITHUB_TOKEN is not set")
        return self.token


class GithubAppTokenProvider(BaseTokenProvider):
    """Exchanges the GitHub App JWT for an installation access token."""

    def __init__(
        self,
        jwt_factory: Callable[[], str] | None = None,
        client: GithubClient | None = None,
    ):
        if jwt_factory is None:
            factory_path = getattr(settings, "GITHUB_APP_JWT_FACTORY", "")
            if not factory_path:
                raise ImproperlyConfigured("GITHUB_APP_JWT_FACTORY is not set")
            jwt_factory = import_string(factory_path)
        self.jwt_factory = jwt_factory
        self.client = client

    def get_installation_token(self, installation_id: str) -> str:
        client = self.client or GithubClient()
        body = client.post(
            f"app/installations/{installation_id}/access_tokens",
            headers={"Authorization": f"Bearer {self.jwt_factory()}"},
        )
        logger.info(f"Fetched installation token for {installation_id}")
        return body["token"]


def get_token_provider() -> BaseTokenProvider:
    """Instantiate the provider named by DONATIONS_GITHUB_TOKEN_PROVIDER."""
    path = getattr(
        settings,
        "DONATIONS_GITHUB_TOKEN_PROVIDER",
        "apps.crawler.tokens.GithubAppTokenProvider",
    )
    return import_string(path)()
