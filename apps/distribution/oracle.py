"""
Weighting oracle interface.

The oracle knows how to read package manifests and how to weigh a dependency
graph; this project only consumes it. A concrete implementation is plugged in
through the ``DONATIONS_WEIGHTING_ORACLE`` setting (a dotted class path).
"""

from __future__ import annotations

from abc import ABC, abstractmethod
from collections.abc import Iterable

from django.conf import settings
from django.core.exceptions import ImproperlyConfigured
from django.utils.module_loading import import_string

from apps.crawler.dtos import Manifest, ManifestSearchPattern
from apps.distribution.dtos import DependencyGroup


class BaseWeightingOracle(ABC):
    """
    Abstract base class for weighting oracles.

    Implementations receive ``epsilon``, the smallest amount (millicents) a
    package may be compensated, as a constructor keyword.
    """

    name: str = "base"

    def __init__(self, epsilon: float = 0.0, **kwargs):
        self.epsilon = epsilon

    @abstractmethod
    def get_supported_manifest_patterns(self) -> list[ManifestSearchPattern]:
        """Manifest filename globs for every supported (registry, language)."""
        ...

    @abstractmethod
    def extract_dependencies(self, manifests: Iterable[Manifest]) -> list[DependencyGroup]:
        """
        Parse raw manifests into top-level dependency specifiers.

        Returns one group per (language, registry), however many manifests of
        that kind were passed in.
        """
        ...

    @abstractmethod
    def compute_package_weight(
        self,
        *,
        top_level_packages: list[str],
        language: str,
        registry: str,
        excluded: set[str],
    ) -> dict[str, float]:
        """
        Weigh the full dependency tree of the top-level packages.

        Returns package name → fraction; fractions sum to 1 unless the map is
        empty. Packages in ``excluded`` never appear.
        """
        ...

    @abstractmethod
    def build_latest_spec(self, name: str, *, language: str, registry: str) -> str:
        """A top-level specifier that resolves to the latest version of ``name``."""
        ...


def get_oracle(**kwargs) -> BaseWeightingOracle:
    """Instantiate the oracle configured in settings."""
    path = getattr(settings, "DONATIONS_WEIGHTING_ORACLE", "")
    if not path:
        raise ImproperlyConfigured("DONATIONS_WEIGHTING_ORACLE is not set")
    oracle_class = import_string(path)
    kwargs.setdefault("epsilon", getattr(settings, "DONATIONS_COMPENSATION_EPSILON", 0.0))
    return oracle_class(**kwargs)
