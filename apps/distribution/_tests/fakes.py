"""In-memory stand-ins for the weighting oracle and the manifest crawler."""

from collections import defaultdict

from apps.crawler.dtos import Manifest, ManifestSearchPattern
from apps.distribution.dtos import DependencyGroup
from apps.distribution.oracle import BaseWeightingOracle


class FakeOracle(BaseWeightingOracle):
    """
    Manifests are newline-separated package names. A package's tree is itself
    plus whatever ``trees`` lists for it; every node weighs the same.
    """

    name = "fake"

    def __init__(self, trees=None, **kwargs):
        super().__init__(**kwargs)
        self.trees = trees or {}
        self.weigh_calls = []

    def get_supported_manifest_patterns(self):
        return [
            ManifestSearchPattern(registry="npm", language="javascript", patterns=["package.json"]),
            ManifestSearchPattern(registry="pypi", language="python", patterns=["requirements.txt"]),
        ]

    def extract_dependencies(self, manifests):
        grouped = defaultdict(list)
        for manifest in manifests:
            names = [line.strip() for line in manifest.manifest.splitlines() if line.strip()]
            grouped[(manifest.language, manifest.registry)].extend(names)
        return [
            DependencyGroup(language=language, registry=registry, deps=deps)
            for (language, registry), deps in grouped.items()
        ]

    def compute_package_weight(self, *, top_level_packages, language, registry, excluded):
        self.weigh_calls.append(
            {
                "top_level_packages": list(top_level_packages),
                "language": language,
                "registry": registry,
                "excluded": set(excluded),
            }
        )
        nodes = []
        for spec in top_level_packages:
            name = spec.split("@")[0]
            for node in [name, *self.trees.get(name, [])]:
                if node not in excluded and node not in nodes:
                    nodes.append(node)
        if not nodes:
            return {}
        return {node: 1 / len(nodes) for node in nodes}

    def build_latest_spec(self, name, *, language, registry):
        return f"{name}@latest"


class FakeRetriever:
    """Returns canned manifests and records what it was asked for."""

    def __init__(self, manifests):
        self.manifests = manifests
        self.calls = []

    def get_all_manifests_for_org(self, org, search_patterns):
        self.calls.append((org, list(search_patterns)))
        return list(self.manifests)


def sample_manifests():
    return [
        Manifest(registry="npm", language="javascript", manifest="react\nlodash\n"),
        Manifest(registry="npm", language="javascript", manifest="express\n"),
        Manifest(registry="pypi", language="python", manifest="flask\n"),
    ]
