"""Reconciler that converges the cluster with the desired KnativeServing state."""

from __future__ import annotations

import logging
from dataclasses import fields
from typing import Any, Callable, Optional

from servingoperator.api import KnativeServing
from servingoperator.client import KnativeServingLister, OperatorClient
from servingoperator.manifest import Manifest
from servingoperator.minikube import PLATFORM
from servingoperator.resource import NotFoundError, Unstructured
from servingoperator.transforms import Platforms
from servingoperator.version import VERSION

CONTROLLER_AGENT_NAME = "knativeserving-controller"
RECONCILER_NAME = "KnativeServing"

EVENT_TYPE_NORMAL = "Normal"
EVENT_TYPE_WARNING = "Warning"


def split_meta_namespace_key(key: str) -> tuple[str, str]:
    """Split a "namespace/name" or "name" key into its namespace and name."""
    parts = key.split("/")
    if len(parts) == 1:
        return "", parts[0]
    if len(parts) == 2:
        return parts[0], parts[1]
    raise ValueError(f'unexpected key format: "{key}"')


class EventRecorder:
    """Records events about objects as (name, type, reason, message) tuples."""

    def __init__(self, component: str = CONTROLLER_AGENT_NAME, log: Optional[logging.Logger] = None):
        self.component = component
        self.events: list[tuple[str, str, str, str]] = []
        self._log = log or logging.getLogger(__name__).getChild("event-broadcaster")

    def event(self, obj: Any, event_type: str, reason: str, message: str) -> None:
        name = getattr(obj, "name", "")
        self.events.append((name, event_type, reason, message))
        self._log.info(
            "Event(%s): type: '%s' reason: '%s' %s", name, event_type, reason, message
        )


def _deployment_available(deployment: Unstructured) -> bool:
    try:
        conditions = deployment.get_nested("status", "conditions")
    except KeyError:
        return False
    return any(
        isinstance(c, dict) and c.get("type") == "Available" and c.get("status") == "True"
        for c in conditions or []
    )


class Reconciler:
    """Installs the manifest for each KnativeServing and keeps its status current."""

    def __init__(
        self,
        kube_client: Any,
        serving_client: OperatorClient,
        manifest: Manifest,
        *,
        lister: Optional[KnativeServingLister] = None,
        platform: Optional[Platforms] = None,
        recorder: Optional[EventRecorder] = None,
        log: Optional[logging.Logger] = None,
    ):
        self.log = (log or logging.getLogger(__name__)).getChild(CONTROLLER_AGENT_NAME)
        self.kube_client = kube_client
        self.serving_client = serving_client
        self.lister = lister if lister is not None else KnativeServingLister(serving_client.indexer)
        self.manifest = manifest
        self.platform = platform if platform is not None else PLATFORM
        self.recorder = (
            recorder
            if recorder is not None
            else EventRecorder(CONTROLLER_AGENT_NAME, self.log.getChild("event-broadcaster"))
        )
        self.servings: set[str] = set()

    def reconcile(self, key: str) -> None:
        """Converge the resource named by key and write back any status change."""
        try:
            namespace, name = split_meta_namespace_key(key)
        except ValueError:
            self.log.error("invalid resource key: %s", key)
            return
        try:
            original = self.lister.knative_servings(namespace).get(name)
        except NotFoundError:
            self.servings.discard(key)
            if not self.servings:
                try:
                    self.manifest.delete_all()
                except Exception as err:
                    self.log.error("Error deleting manifest resources: %s", err)
            return
        self.servings.add(key)

        knative_serving = original.deep_copy()
        reconcile_err: Optional[Exception] = None
        try:
            self._reconcile(knative_serving)
        except Exception as err:
            reconcile_err = err

        if original.status != knative_serving.status:
            try:
                self._update_status(knative_serving)
            except Exception as err:
                self.log.warning("Failed to update knativeServing status: %s", err)
                self.recorder.event(
                    knative_serving,
                    EVENT_TYPE_WARNING,
                    "UpdateFailed",
                    f'Failed to update status for KnativeServing "{knative_serving.name}": {err}',
                )
                raise
        if reconcile_err is not None:
            self.recorder.event(
                knative_serving, EVENT_TYPE_WARNING, "InternalError", str(reconcile_err)
            )
            raise reconcile_err

    def _reconcile(self, ks: KnativeServing) -> None:
        self.log.info(
            "Reconciling KnativeServing namespace=%s name=%s status=%s",
            ks.namespace,
            ks.name,
            ks.status,
        )
        try:
            manifest = self._transform(ks)
        except Exception as err:
            ks.status.mark_install_failed(str(err))
            raise
        stages: list[Callable[[Manifest, KnativeServing], None]] = [
            self._init_status,
            self._install,
            self._check_deployments,
            self._delete_obsolete_resources,
        ]
        for stage in stages:
            stage(manifest, ks)
        self.log.info("Reconcile stages complete status=%s", ks.status)

    def _transform(self, instance: KnativeServing) -> Manifest:
        self.log.debug("Transforming manifest")
        transformers = self.platform.transformers(self.kube_client, instance, self.log)
        return self.manifest.transform(*transformers)

    def _update_status(self, instance: KnativeServing) -> None:
        after = self.serving_client.knative_servings(instance.namespace).update_status(instance)
        for f in fields(instance):
            setattr(instance, f.name, getattr(after, f.name))

    def _init_status(self, _manifest: Manifest, instance: KnativeServing) -> None:
        self.log.debug("Initializing status")
        if not instance.status.conditions:
            instance.status.initialize_conditions()
            self._update_status(instance)

    def _install(self, manifest: Manifest, instance: KnativeServing) -> None:
        self.log.debug("Installing manifest")
        try:
            manifest.apply_all()
        except Exception as err:
            instance.status.mark_install_failed(str(err))
            raise
        instance.status.mark_install_succeeded()
        instance.status.version = VERSION

    def _check_deployments(self, manifest: Manifest, instance: KnativeServing) -> None:
        self.log.debug("Checking deployments")
        for item in manifest.resources:
            if item.kind != "Deployment":
                continue
            try:
                deployment = self.kube_client.get("apps/v1", "Deployment", item.namespace, item.name)
            except NotFoundError:
                instance.status.mark_deployments_not_ready()
                return
            except Exception:
                instance.status.mark_deployments_not_ready()
                raise
            if not _deployment_available(deployment):
                instance.status.mark_deployments_not_ready()
                return
        instance.status.mark_deployments_available()

    def _delete_obsolete_resources(self, manifest: Manifest, instance: KnativeServing) -> None:
        obsolete = [
            # istio-system resources from 0.3
            ("istio-system", "knative-ingressgateway", "v1", "Service"),
            ("istio-system", "knative-ingressgateway", "apps/v1", "Deployment"),
            ("istio-system", "knative-ingressgateway", "autoscaling/v1", "HorizontalPodAutoscaler"),
            # config-controller from 0.5
            (instance.namespace, "config-controller", "v1", "ConfigMap"),
        ]
        for namespace, name, api_version, kind in obsolete:
            item = Unstructured()
            item.namespace = namespace
            item.name = name
            item.api_version = api_version
            item.kind = kind
            manifest.delete(item)