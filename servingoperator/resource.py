"""Schemaless Kubernetes resources and the errors raised while handling them."""

from __future__ import annotations

import copy
from dataclasses import dataclass, field
from typing import Any


class NotFoundError(LookupError):
    """Raised when a requested resource does not exist."""

    def __init__(self, resource: str, name: str):
        super().__init__(f'{resource} "{name}" not found')
        self.resource = resource
        self.name = name


@dataclass
class Unstructured:
    """A Kubernetes object held as plain nested dictionaries."""

    object: dict[str, Any] = field(default_factory=dict)

    def get_nested(self, *fields: str) -> Any:
        """Return the value at the given path; raise KeyError if it is absent."""
        current: Any = self.object
        for name in fields:
            if not isinstance(current, dict) or name not in current:
                raise KeyError(".".join(fields))
            current = current[name]
        return current

    def set_nested(self, value: Any, *fields: str) -> None:
        """Store a copy of value at the given path, creating maps on the way."""
        if not fields:
            raise ValueError("at least one field is required")
        current = self.object
        for depth, name in enumerate(fields[:-1]):
            child = current.get(name)
            if child is None:
                child = {}
                current[name] = child
            elif not isinstance(child, dict):
                path = ".".join(fields[: depth + 1])
                raise TypeError(f"value at {path} is not a map")
            current = child
        current[fields[-1]] = copy.deepcopy(value)

    def deep_copy(self) -> Unstructured:
        return Unstructured(copy.deepcopy(self.object))

    def _get_str(self, *fields: str) -> str:
        try:
            value = self.get_nested(*fields)
        except KeyError:
            return ""
        return value if isinstance(value, str) else ""

    @property
    def api_version(self) -> str:
        return self._get_str("apiVersion")

    @api_version.setter
    def api_version(self, value: str) -> None:
        self.object["apiVersion"] = value

    @property
    def kind(self) -> str:
        return self._get_str("kind")

    @kind.setter
    def kind(self, value: str) -> None:
        self.object["kind"] = value

    @property
    def name(self) -> str:
        return self._get_str("metadata", "name")

    @name.setter
    def name(self, value: str) -> None:
        self.set_nested(value, "metadata", "name")

    @property
    def namespace(self) -> str:
        return self._get_str("metadata", "namespace")

    @namespace.setter
    def namespace(self, value: str) -> None:
        self.set_nested(value, "metadata", "namespace")

    @property
    def labels(self) -> dict[str, str]:
        try:
            value = self.get_nested("metadata", "labels")
        except KeyError:
            return {}
        return dict(value) if isinstance(value, dict) else {}

    @labels.setter
    def labels(self, value: dict[str, str]) -> None:
        self.set_nested(dict(value), "metadata", "labels")

    @property
    def owner_references(self) -> list[dict[str, Any]]:
        try:
            value = self.get_nested("metadata", "ownerReferences")
        except KeyError:
            return []
        return list(value) if isinstance(value, list) else []

    @owner_references.setter
    def owner_references(self, value: list[dict[str, Any]]) -> None:
        self.set_nested(list(value), "metadata", "ownerReferences")