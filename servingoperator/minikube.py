"""Platform configuration applied when running inside minikube."""

from __future__ import annotations

import logging
from typing import Any

from servingoperator.resource import NotFoundError, Unstructured
from servingoperator.transforms import Platforms, Transformer, update_config_map

_LOG = logging.getLogger(__name__)

_EGRESS_DATA = {"istio.sidecar.includeOutboundIPRanges": "10.0.0.1/24"}


def configure(kube_client: Any, log: logging.Logger) -> Transformer | None:
    """Return the egress transformer if a minikube node exists, else None."""
    log = log.getChild("minikube")
    try:
        kube_client.get("v1", "Node", "", "minikube")
    except NotFoundError:
        return None
    except Exception as err:
        log.error("Unable to query for minikube node: %s", err)
        return None
    return egress


def egress(resource: Unstructured) -> None:
    """Restrict sidecar outbound traffic to the minikube range in config-network."""
    if resource.kind == "ConfigMap" and resource.name == "config-network":
        update_config_map(resource, _EGRESS_DATA, _LOG)


PLATFORM = Platforms([configure])