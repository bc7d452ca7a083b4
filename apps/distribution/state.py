"""
State store bridge for the split pipeline.

Stages of one run execute as separate invocations; they hand artifacts to
each other through a storage backend, keyed by correlation id:

    {correlation_id}/{language}_{registry}_{artifact_kind}.json

Writes overwrite, so re-running a stage is safe.
"""

from __future__ import annotations

import json
import logging
from collections.abc import Iterable
from typing import Any

from django.core.files.base import ContentFile
from django.core.files.storage import Storage, storages

from apps.distribution.dtos import DependencyGroup, PackageWeightMap

logger = logging.getLogger(__name__)

STATE_STORAGE_ALIAS = "donation_state"

TOP_LEVEL_PACKAGES = "top_level_packages"
PACKAGE_WEIGHT_MAP = "package_weight_map"


class ArtifactNotFound(LookupError):
    """A stage's input artifact has not been written."""


def group_key(language: str, registry: str, artifact_kind: str) -> str:
    return f"{language}_{registry}_{artifact_kind}"


class StateStore:
    """Correlation-id keyed JSON artifacts on a Django storage backend."""

    def __init__(self, storage: Storage | None = None):
        self.storage = storage if storage is not None else storages[STATE_STORAGE_ALIAS]

    def key(self, correlation_id: str, group: str) -> str:
        return f"{correlation_id}/{group}.json"

    def put(self, correlation_id: str, group: str, payload: Any) -> str:
        name = self.key(correlation_id, group)
        if self.storage.exists(name):
            self.storage.delete(name)
        saved = self.storage.save(name, ContentFile(json.dumps(payload).encode("utf-8")))
        logger.debug(f"Wrote artifact {saved}")
        return saved

    def get(self, correlation_id: str, group: str) -> Any:
        name = self.key(correlation_id, group)
        if not self.storage.exists(name):
            raise ArtifactNotFound(f"No artifact at {name}")
        with self.storage.open(name, "rb") as fh:
            return json.loads(fh.read().decode("utf-8"))

    def put_top_level_packages(self, correlation_id: str, groups: Iterable[DependencyGroup]) -> None:
        for group in groups:
            self.put(
                correlation_id,
                group_key(group.language, group.registry, TOP_LEVEL_PACKAGES),
                group.deps,
            )

    def get_top_level_packages(
        self, correlation_id: str, keys: Iterable[tuple[str, str]]
    ) -> list[DependencyGroup]:
        return [
            DependencyGroup(
                language=language,
                registry=registry,
                deps=self.get(correlation_id, group_key(language, registry, TOP_LEVEL_PACKAGES)),
            )
            for language, registry in keys
        ]

    def put_package_weight_maps(
        self, correlation_id: str, weight_maps: Iterable[PackageWeightMap]
    ) -> None:
        for weight_map in weight_maps:
            self.put(
                correlation_id,
                group_key(weight_map.language, weight_map.registry, PACKAGE_WEIGHT_MAP),
                weight_map.weights,
            )

    def get_package_weight_maps(
        self, correlation_id: str, keys: Iterable[tuple[str, str]]
    ) -> list[PackageWeightMap]:
        return [
            PackageWeightMap(
                language=language,
                registry=registry,
                weights=self.get(correlation_id, group_key(language, registry, PACKAGE_WEIGHT_MAP)),
            )
            for language, registry in keys
        ]
