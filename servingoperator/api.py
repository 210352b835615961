"""API types for the KnativeServing resource in the operator.knative.dev group."""

from __future__ import annotations

import copy
from dataclasses import dataclass, field

from servingoperator.conditions import Condition, living_condition_set

GROUP_NAME = "operator.knative.dev"
SCHEMA_VERSION = "v1alpha1"
KIND = "KnativeServing"

INSTALL_SUCCEEDED = "InstallSucceeded"
DEPLOYMENTS_AVAILABLE = "DeploymentsAvailable"


@dataclass(frozen=True)
class GroupResource:
    group: str
    resource: str

    def __str__(self) -> str:
        return f"{self.resource}.{self.group}" if self.group else self.resource


@dataclass(frozen=True)
class GroupVersionKind:
    group: str
    version: str
    kind: str

    def __str__(self) -> str:
        return f"{self.group}/{self.version}, Kind={self.kind}"


@dataclass(frozen=True)
class GroupVersionResource:
    group: str
    version: str
    resource: str

    def group_resource(self) -> GroupResource:
        return GroupResource(self.group, self.resource)

    def __str__(self) -> str:
        return f"{self.group}/{self.version}, Resource={self.resource}"


@dataclass(frozen=True)
class GroupVersion:
    group: str
    version: str

    def with_kind(self, kind: str) -> GroupVersionKind:
        return GroupVersionKind(self.group, self.version, kind)

    def with_resource(self, resource: str) -> GroupVersionResource:
        return GroupVersionResource(self.group, self.version, resource)

    def __str__(self) -> str:
        return f"{self.group}/{self.version}" if self.group else self.version


SCHEME_GROUP_VERSION = GroupVersion(GROUP_NAME, SCHEMA_VERSION)


def resource(resource: str) -> GroupResource:
    """Qualify an unqualified resource name with this API group."""
    return SCHEME_GROUP_VERSION.with_resource(resource).group_resource()


_CONDITIONS = living_condition_set(DEPLOYMENTS_AVAILABLE, INSTALL_SUCCEEDED)


@dataclass
class Registry:
    """Image overrides for the installed deployments and caching images."""

    default: str = ""
    override: dict[str, str] = field(default_factory=dict)
    image_pull_secrets: list[dict[str, str]] = field(default_factory=list)


@dataclass
class IstioGatewayOverride:
    """Selector values replacing those of an Istio gateway."""

    selector: dict[str, str] = field(default_factory=dict)


@dataclass
class CustomCerts:
    """A ConfigMap or Secret holding CA certificates."""

    type: str = ""
    name: str = ""


@dataclass
class KnativeServingSpec:
    config: dict[str, dict[str, str]] = field(default_factory=dict)
    registry: Registry = field(default_factory=Registry)
    knative_ingress_gateway: IstioGatewayOverride = field(default_factory=IstioGatewayOverride)
    cluster_local_gateway: IstioGatewayOverride = field(default_factory=IstioGatewayOverride)
    controller_custom_certs: CustomCerts = field(default_factory=CustomCerts)


@dataclass
class KnativeServingStatus:
    version: str = ""
    conditions: list[Condition] = field(default_factory=list)

    def get_conditions(self) -> list[Condition]:
        return list(self.conditions)

    def set_conditions(self, conditions: list[Condition]) -> None:
        self.conditions = list(conditions)

    def is_ready(self) -> bool:
        return _CONDITIONS.manage(self).is_happy()

    def is_installed(self) -> bool:
        condition = self.get_condition(INSTALL_SUCCEEDED)
        return condition is not None and condition.is_true()

    def is_available(self) -> bool:
        condition = self.get_condition(DEPLOYMENTS_AVAILABLE)
        return condition is not None and condition.is_true()

    def is_deploying(self) -> bool:
        return self.is_installed() and not self.is_available()

    def get_condition(self, condition_type: str) -> Condition | None:
        return _CONDITIONS.manage(self).get_condition(condition_type)

    def initialize_conditions(self) -> None:
        _CONDITIONS.manage(self).initialize_conditions()

    def mark_install_failed(self, msg: str) -> None:
        _CONDITIONS.manage(self).mark_false(
            INSTALL_SUCCEEDED, "Error", "Install failed with message: %s", msg
        )

    def mark_install_succeeded(self) -> None:
        _CONDITIONS.manage(self).mark_true(INSTALL_SUCCEEDED)

    def mark_deployments_available(self) -> None:
        _CONDITIONS.manage(self).mark_true(DEPLOYMENTS_AVAILABLE)

    def mark_deployments_not_ready(self) -> None:
        _CONDITIONS.manage(self).mark_false(
            DEPLOYMENTS_AVAILABLE, "NotReady", "Waiting on deployments"
        )


@dataclass
class KnativeServing:
    """The KnativeServing custom resource."""

    name: str = ""
    namespace: str = ""
    uid: str = ""
    labels: dict[str, str] = field(default_factory=dict)
    spec: KnativeServingSpec = field(default_factory=KnativeServingSpec)
    status: KnativeServingStatus = field(default_factory=KnativeServingStatus)

    def group_version_kind(self) -> GroupVersionKind:
        return SCHEME_GROUP_VERSION.with_kind(KIND)

    def deep_copy(self) -> KnativeServing:
        return copy.deepcopy(self)


@dataclass
class KnativeServingList:
    items: list[KnativeServing] = field(default_factory=list)