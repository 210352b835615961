"""Typed client and listers for KnativeServing resources kept in a cluster store."""

from __future__ import annotations

import uuid
from types import MappingProxyType
from typing import Iterable, Mapping, Optional

from servingoperator.api import KnativeServing, KnativeServingList, resource
from servingoperator.resource import NotFoundError

NAMESPACE_ALL = ""

Selector = Optional[Mapping[str, str]]


def _key(namespace: str, name: str) -> str:
    return f"{namespace}/{name}" if namespace else name


def _matches(selector: Selector, labels: Mapping[str, str]) -> bool:
    if not selector:
        return True
    return all(labels.get(key) == value for key, value in selector.items())


def _in_namespace(namespace: str, obj: KnativeServing) -> bool:
    return namespace == NAMESPACE_ALL or obj.namespace == namespace


class OperatorClient:
    """Holds KnativeServing objects and hands out namespaced clients for them."""

    def __init__(self, objects: Iterable[KnativeServing] = ()):
        self._store: dict[str, KnativeServing] = {}
        for obj in objects:
            self._store[_key(obj.namespace, obj.name)] = obj.deep_copy()

    @property
    def indexer(self) -> Mapping[str, KnativeServing]:
        """A read-only view of the stored objects keyed by namespace/name."""
        return MappingProxyType(self._store)

    def knative_servings(self, namespace: str) -> KnativeServingClient:
        return KnativeServingClient(self, namespace)


class KnativeServingClient:
    """Creates, reads, updates and deletes KnativeServings in one namespace."""

    _RESOURCE = "knativeservings"

    def __init__(self, operator: OperatorClient, namespace: str):
        self._operator = operator
        self.namespace = namespace

    @property
    def _store(self) -> dict[str, KnativeServing]:
        return self._operator._store

    def _not_found(self, name: str) -> NotFoundError:
        return NotFoundError(str(resource(self._RESOURCE)), name)

    def _prepare(self, knative_serving: KnativeServing) -> KnativeServing:
        obj = knative_serving.deep_copy()
        if not obj.name:
            raise ValueError("name is required")
        if not obj.namespace:
            obj.namespace = self.namespace
        elif self.namespace and obj.namespace != self.namespace:
            raise ValueError(
                "the namespace of the provided object does not match "
                "the namespace sent on the request"
            )
        return obj

    def _existing(self, obj: KnativeServing) -> KnativeServing:
        try:
            return self._store[_key(obj.namespace, obj.name)]
        except KeyError:
            raise self._not_found(obj.name) from None

    def create(self, knative_serving: KnativeServing) -> KnativeServing:
        """Store a new object and return the stored representation."""
        obj = self._prepare(knative_serving)
        key = _key(obj.namespace, obj.name)
        if key in self._store:
            raise ValueError(
                f'{resource(self._RESOURCE)} "{obj.name}" already exists'
            )
        if not obj.uid:
            obj.uid = str(uuid.uuid4())
        self._store[key] = obj
        return obj.deep_copy()

    def update(self, knative_serving: KnativeServing) -> KnativeServing:
        """Replace everything but the status of an existing object."""
        obj = self._prepare(knative_serving)
        existing = self._existing(obj)
        obj.uid = existing.uid
        obj.status = existing.status
        self._store[_key(obj.namespace, obj.name)] = obj
        return obj.deep_copy()

    def update_status(self, knative_serving: KnativeServing) -> KnativeServing:
        """Replace only the status of an existing object."""
        obj = self._prepare(knative_serving)
        existing = self._existing(obj).deep_copy()
        existing.status = obj.status
        self._store[_key(obj.namespace, obj.name)] = existing
        return existing.deep_copy()

    def get(self, name: str) -> KnativeServing:
        for obj in self._store.values():
            if obj.name == name and _in_namespace(self.namespace, obj):
                return obj.deep_copy()
        raise self._not_found(name)

    def list(self, selector: Selector = None) -> KnativeServingList:
        """Return the objects in this namespace whose labels match the selector."""
        return KnativeServingList(
            items=[
                obj.deep_copy()
                for obj in self._store.values()
                if _in_namespace(self.namespace, obj) and _matches(selector, obj.labels)
            ]
        )

    def delete(self, name: str) -> None:
        for key, obj in self._store.items():
            if obj.name == name and _in_namespace(self.namespace, obj):
                del self._store[key]
                return
        raise self._not_found(name)

    def delete_collection(self, selector: Selector = None) -> int:
        """Delete every matching object in this namespace; return how many went."""
        doomed = [
            key
            for key, obj in self._store.items()
            if _in_namespace(self.namespace, obj) and _matches(selector, obj.labels)
        ]
        for key in doomed:
            del self._store[key]
        return len(doomed)


class KnativeServingLister:
    """Lists KnativeServings from an index keyed by namespace/name."""

    def __init__(self, indexer: Mapping[str, KnativeServing]):
        self._indexer = indexer

    def list(self, selector: Selector = None) -> list[KnativeServing]:
        return [obj for obj in self._indexer.values() if _matches(selector, obj.labels)]

    def knative_servings(self, namespace: str) -> KnativeServingNamespaceLister:
        return KnativeServingNamespaceLister(self._indexer, namespace)


class KnativeServingNamespaceLister:
    """Lists and gets KnativeServings of one namespace from an index."""

    def __init__(self, indexer: Mapping[str, KnativeServing], namespace: str):
        self._indexer = indexer
        self.namespace = namespace

    def list(self, selector: Selector = None) -> list[KnativeServing]:
        return [
            obj
            for obj in self._indexer.values()
            if _in_namespace(self.namespace, obj) and _matches(selector, obj.labels)
        ]

    def get(self, name: str) -> KnativeServing:
        try:
            return self._indexer[f"{self.namespace}/{name}"]
        except KeyError:
            raise NotFoundError(str(resource("knativeserving")), name) from None