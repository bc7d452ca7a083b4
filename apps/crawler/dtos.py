"""Data carried in and out of the manifest crawler."""

from __future__ import annotations

from dataclasses import asdict, dataclass, field
from typing import Any


@dataclass
class ManifestSearchPattern:
    """What to look for: filename globs for one (registry, language)."""

    registry: str
    language: str
    patterns: list[str] = field(default_factory=list)

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> ManifestSearchPattern:
        patterns = data.get("patterns")
        if patterns is None:
            patterns = data.get("filename_patterns", [])
        return cls(
            registry=data["registry"],
            language=data["language"],
            patterns=list(patterns),
        )

    def to_dict(self) -> dict[str, Any]:
        return asdict(self)


@dataclass
class Manifest:
    """Raw (unparsed, utf-8) contents of one manifest file."""

    registry: str
    language: str
    manifest: str

    def to_dict(self) -> dict[str, Any]:
        return asdict(self)


@dataclass
class OrgIdentity:
    """The organization to crawl, as known to the code host."""

    name: str
    installation_id: str
