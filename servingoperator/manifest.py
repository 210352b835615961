"""Manifests of resources to install, and the cluster they are installed into."""

from __future__ import annotations

import copy
import logging
from dataclasses import dataclass, field
from pathlib import Path
from typing import Iterable, Union

import yaml

from servingoperator.resource import NotFoundError, Unstructured
from servingoperator.transforms import Transformer

_LOG = logging.getLogger(__name__)

MANIFEST_SUFFIXES = frozenset({".yaml", ".yml", ".json"})

_Key = tuple[str, str, str, str]


class Cluster:
    """An in-memory store of resources keyed by API version, kind, namespace and name."""

    def __init__(self, resources: Iterable[Unstructured] = ()):
        self._objects: dict[_Key, Unstructured] = {}
        for item in resources:
            self.apply(item)

    def __len__(self) -> int:
        return len(self._objects)

    def get(self, api_version: str, kind: str, namespace: str, name: str) -> Unstructured:
        """Return a copy of the stored resource; raise NotFoundError if it is absent."""
        try:
            return self._objects[(api_version, kind, namespace, name)].deep_copy()
        except KeyError:
            raise NotFoundError(kind.lower(), name) from None

    def apply(self, resource: Unstructured) -> Unstructured:
        """Create or replace a resource, keeping any status the cluster already holds."""
        if not resource.kind or not resource.name:
            raise ValueError("a resource must have a kind and a name to be applied")
        key = (resource.api_version, resource.kind, resource.namespace, resource.name)
        desired = resource.deep_copy()
        existing = self._objects.get(key)
        if existing is not None and "status" in existing.object and "status" not in desired.object:
            desired.object["status"] = copy.deepcopy(existing.object["status"])
        self._objects[key] = desired
        return desired.deep_copy()

    def delete(self, api_version: str, kind: str, namespace: str, name: str) -> None:
        """Remove a resource; raise NotFoundError if it is absent."""
        try:
            del self._objects[(api_version, kind, namespace, name)]
        except KeyError:
            raise NotFoundError(kind.lower(), name) from None


@dataclass
class Manifest:
    """A list of resources bound to the cluster they are applied to."""

    resources: list[Unstructured] = field(default_factory=list)
    cluster: Cluster = field(default_factory=Cluster)

    def transform(self, *transformers: Transformer) -> Manifest:
        """Return a new manifest whose resources are copies run through the transformers."""
        result = []
        for original in self.resources:
            item = original.deep_copy()
            for transformer in transformers:
                transformer(item)
            result.append(item)
        return Manifest(result, self.cluster)

    def apply_all(self) -> None:
        for item in self.resources:
            _LOG.debug("Applying %s %s/%s", item.kind, item.namespace, item.name)
            self.cluster.apply(item)

    def delete_all(self) -> None:
        """Delete every resource in reverse order, skipping those already gone."""
        for item in reversed(self.resources):
            self.delete(item)

    def delete(self, resource: Unstructured) -> None:
        """Delete one resource from the cluster, skipping it if already gone."""
        try:
            self.cluster.delete(resource.api_version, resource.kind, resource.namespace, resource.name)
        except NotFoundError:
            return
        _LOG.debug("Deleted %s %s/%s", resource.kind, resource.namespace, resource.name)


def _parse_file(path: Path) -> list[Unstructured]:
    with path.open(encoding="utf-8") as handle:
        documents = list(yaml.safe_load_all(handle))
    result = []
    for document in documents:
        if document is None:
            continue
        if not isinstance(document, dict):
            raise ValueError(f"{path}: manifest document is not a mapping")
        result.append(Unstructured(document))
    return result


def parse_manifests(path: Union[str, Path], recursive: bool = False) -> list[Unstructured]:
    """Read the resources of a manifest file, or of the manifest files in a directory."""
    root = Path(path)
    if root.is_file():
        files = [root]
    elif root.is_dir():
        candidates = root.rglob("*") if recursive else root.iterdir()
        files = sorted(
            p for p in candidates if p.is_file() and p.suffix.lower() in MANIFEST_SUFFIXES
        )
    else:
        raise FileNotFoundError(f"no such file or directory: {path}")
    return [item for file in files for item in _parse_file(file)]