"""Transformers applied to manifest resources before they are installed."""

from __future__ import annotations

import copy
import logging
from typing import Any, Callable, Optional

from servingoperator.api import IstioGatewayOverride, KnativeServing, Registry
from servingoperator.resource import Unstructured

Transformer = Callable[[Unstructured], None]
PlatformConfigurer = Callable[[Any, logging.Logger], Optional[Transformer]]

_LOG = logging.getLogger(__name__)

CONTAINER_NAME_VARIABLE = "${NAME}"

_CLUSTER_SCOPED_KINDS = frozenset(
    {
        "APIService",
        "ClusterRole",
        "ClusterRoleBinding",
        "CustomResourceDefinition",
        "MutatingWebhookConfiguration",
        "Namespace",
        "Node",
        "PersistentVolume",
        "StorageClass",
        "ValidatingWebhookConfiguration",
    }
)


def inject_owner(instance: KnativeServing) -> Transformer:
    """Make the instance the controlling owner of every namespaced resource."""
    gvk = instance.group_version_kind()
    reference = {
        "apiVersion": f"{gvk.group}/{gvk.version}",
        "kind": gvk.kind,
        "name": instance.name,
        "uid": instance.uid,
        "controller": True,
        "blockOwnerDeletion": True,
    }

    def transform(u: Unstructured) -> None:
        if u.kind not in _CLUSTER_SCOPED_KINDS:
            u.owner_references = [dict(reference)]

    return transform


def inject_namespace(namespace: str) -> Transformer:
    """Move namespaced resources, namespaces and binding subjects to namespace."""

    def transform(u: Unstructured) -> None:
        if u.kind == "Namespace":
            u.name = namespace
        elif u.kind == "ClusterRoleBinding":
            subjects = u.object.get("subjects") or []
            for subject in subjects:
                if isinstance(subject, dict) and "namespace" in subject:
                    subject["namespace"] = namespace
        elif u.kind not in _CLUSTER_SCOPED_KINDS:
            u.namespace = namespace

    return transform


def config_map_transform(instance: KnativeServing, log: logging.Logger) -> Transformer:
    """Let config in the instance override the data of matching config maps."""

    def transform(u: Unstructured) -> None:
        if u.kind == "ConfigMap":
            data = instance.spec.config.get(u.name[len("config-"):])
            if data is not None:
                update_config_map(u, data, log)

    return transform


def update_config_map(cm: Unstructured, data: dict[str, str], log: logging.Logger) -> None:
    """Set data in a config map, only overwriting keys whose values differ."""
    for key, value in data.items():
        details = f"map={cm.name} key={key} value={value}"
        try:
            previous = cm.get_nested("data", key)
        except KeyError:
            pass
        else:
            if previous == value:
                continue
            details += f" previous={previous}"
        log.info("Setting %s", details)
        cm.set_nested(value, "data", key)


def gateway_transform(instance: KnativeServing, log: logging.Logger) -> Transformer:
    """Replace the selectors of the knative ingress and cluster-local gateways."""

    def transform(u: Unstructured) -> None:
        if u.api_version == "networking.istio.io/v1alpha3" and u.kind == "Gateway":
            if u.name == "knative-ingress-gateway":
                _update_gateway(instance.spec.knative_ingress_gateway, u, log)
            elif u.name == "cluster-local-gateway":
                _update_gateway(instance.spec.cluster_local_gateway, u, log)

    return transform


def _update_gateway(
    overrides: IstioGatewayOverride, u: Unstructured, log: logging.Logger
) -> None:
    if overrides.selector:
        log.debug("Updating Gateway name=%s selector=%s", u.name, overrides.selector)
        u.set_nested(dict(overrides.selector), "spec", "selector")
        log.debug("Finished conversion name=%s object=%s", u.name, u.object)


def deployment_transform(instance: KnativeServing, log: logging.Logger) -> Transformer:
    """Point deployment containers at the configured registry and add pull secrets."""

    def transform(u: Unstructured) -> None:
        if u.kind == "Deployment":
            _update_deployment(instance.spec.registry, u, log)

    return transform


def _pod_spec(u: Unstructured, create: bool) -> dict[str, Any] | None:
    try:
        spec = u.get_nested("spec", "template", "spec")
    except KeyError:
        spec = None
    if spec is None:
        if not create:
            return None
        u.set_nested({}, "spec", "template", "spec")
        return u.get_nested("spec", "template", "spec")
    if not isinstance(spec, dict):
        raise TypeError(f"cannot convert {u.name!r} to a Deployment: pod spec is not a map")
    return spec


def _update_deployment(registry: Registry, u: Unstructured, log: logging.Logger) -> None:
    log.debug("Updating Deployment name=%s registry=%s", u.name, registry)
    pod_spec = _pod_spec(u, create=bool(registry.image_pull_secrets))
    if pod_spec is None:
        return
    containers = pod_spec.get("containers") or []
    if not isinstance(containers, list):
        raise TypeError(f"cannot convert {u.name!r} to a Deployment: containers is not a list")
    for container in containers:
        new_image = get_new_image(registry, container.get("name", ""))
        if new_image:
            log.debug(
                "Updating container image from: %s, to: %s", container.get("image", ""), new_image
            )
            container["image"] = new_image
    if registry.image_pull_secrets:
        log.debug("Adding ImagePullSecrets: %s", registry.image_pull_secrets)
        existing = pod_spec.get("imagePullSecrets") or []
        pod_spec["imagePullSecrets"] = list(existing) + copy.deepcopy(registry.image_pull_secrets)
    log.debug("Finished conversion name=%s object=%s", u.name, u.object)


def image_transform(instance: KnativeServing, log: logging.Logger) -> Transformer:
    """Point caching images at the configured registry."""

    def transform(u: Unstructured) -> None:
        if u.api_version == "caching.internal.knative.dev/v1alpha1" and u.kind == "Image":
            registry = instance.spec.registry
            log.debug("Updating Image name=%s registry=%s", u.name, registry)
            new_image = get_new_image(registry, u.name)
            if new_image:
                log.debug("Updating image to: %s", new_image)
                u.set_nested(new_image, "spec", "image")

    return transform


def get_new_image(registry: Registry, container_name: str) -> str:
    """Return the override for a name, else the default template filled with it."""
    override = registry.override.get(container_name, "")
    if override:
        return override
    return replace_name(registry.default, container_name)


def replace_name(image_template: str, name: str) -> str:
    return image_template.replace(CONTAINER_NAME_VARIABLE, name)


class Platforms(list):
    """Platform configurers, each of which may contribute one transformer."""

    def transformers(
        self, kube_client: Any, instance: KnativeServing, log: logging.Logger
    ) -> list[Transformer]:
        log = log.getChild("extensions")
        result: list[Transformer] = [
            inject_owner(instance),
            inject_namespace(instance.namespace),
            config_map_transform(instance, log),
            deployment_transform(instance, log),
            image_transform(instance, log),
            gateway_transform(instance, log),
        ]
        for configure in self:
            transformer = configure(kube_client, log)
            if transformer is not None:
                result.append(transformer)
        return result