import logging

import pytest

from servingoperator.api import (
    IstioGatewayOverride,
    KnativeServing,
    KnativeServingSpec,
    Registry,
)
from servingoperator.resource import Unstructured
from servingoperator.transforms import (
    Platforms,
    config_map_transform,
    deployment_transform,
    gateway_transform,
    get_new_image,
    image_transform,
    inject_namespace,
    inject_owner,
    replace_name,
    update_config_map,
)

LOG = logging.getLogger("test")

QUEUE_IMAGE = (
    "gcr.io/knative-releases/github.com/knative/serving/cmd/queue"
    "@sha256:1e40c99ff5977daa2d69873fff604c6d09651af1f9ff15aadf8849b3ee77ab45"
)


def make_deployment(name, pod_spec):
    return Unstructured(
        {
            "apiVersion": "apps/v1",
            "kind": "Deployment",
            "metadata": {"name": name},
            "spec": {"template": {"spec": pod_spec}},
        }
    )


def with_spec(**kwargs):
    return KnativeServing(spec=KnativeServingSpec(**kwargs))


# Gateway cases

INGRESS = IstioGatewayOverride(selector={"istio": "knative-ingress"})
LOCAL = IstioGatewayOverride(selector={"istio": "cluster-local"})


@pytest.mark.parametrize(
    "gateway_name, expected",
    [
        ("knative-ingress-gateway", {"istio": "knative-ingress"}),
        ("cluster-local-gateway", {"istio": "cluster-local"}),
        ("not-knative-ingress-gateway", {"istio": "old-istio"}),
    ],
    ids=["UpdatesKnativeIngressGateway", "UpdatesClusterLocalGateway", "DoesNothingToOtherGateway"],
)
def test_gateway_transform(gateway_name, expected):
    u = Unstructured(
        {
            "apiVersion": "networking.istio.io/v1alpha3",
            "kind": "Gateway",
            "metadata": {"name": gateway_name},
            "spec": {"selector": {"istio": "old-istio"}},
        }
    )
    instance = with_spec(knative_ingress_gateway=INGRESS, cluster_local_gateway=LOCAL)
    gateway_transform(instance, LOG)(u)
    selector = u.get_nested("spec", "selector")
    for key, value in expected.items():
        assert selector[key] == value


def test_gateway_transform_keeps_selector_without_override():
    u = Unstructured(
        {
            "apiVersion": "networking.istio.io/v1alpha3",
            "kind": "Gateway",
            "metadata": {"name": "knative-ingress-gateway"},
            "spec": {"selector": {"istio": "old-istio"}},
        }
    )
    gateway_transform(with_spec(), LOG)(u)
    assert u.get_nested("spec", "selector") == {"istio": "old-istio"}


# Deployment image cases

@pytest.mark.parametrize(
    "containers, registry, expected",
    [
        (
            [{"name": "queue", "image": QUEUE_IMAGE}],
            Registry(default="new-registry.io/test/path/${NAME}:new-tag"),
            ["new-registry.io/test/path/queue:new-tag"],
        ),
        (
            [
                {"name": "container1", "image": "gcr.io/cmd/queue:test"},
                {"name": "container2", "image": "gcr.io/cmd/queue:test"},
            ],
            Registry(
                override={
                    "container1": "new-registry.io/test/path/new-container-1:new-tag",
                    "container2": "new-registry.io/test/path/new-container-2:new-tag",
                }
            ),
            [
                "new-registry.io/test/path/new-container-1:new-tag",
                "new-registry.io/test/path/new-container-2:new-tag",
            ],
        ),
        (
            [{"name": "queue", "image": QUEUE_IMAGE}],
            Registry(
                default="new-registry.io/test/path/${NAME}:new-tag",
                override={"queue": "new-registry.io/test/path/new-value:new-override-tag"},
            ),
            ["new-registry.io/test/path/new-value:new-override-tag"],
        ),
        (
            [{"name": "image", "image": "docker.io/name/image:tag2"}],
            Registry(override={"Unused": "new-registry.io/test/path"}),
            ["docker.io/name/image:tag2"],
        ),
        (
            [{"name": "queue", "image": QUEUE_IMAGE}],
            Registry(),
            [QUEUE_IMAGE],
        ),
    ],
    ids=[
        "UsesNameFromDefault",
        "UsesContainerNamePerContainer",
        "UsesOverrideFromDefault",
        "NoChangeOverrideWithDifferentName",
        "NoChange",
    ],
)
def test_deployment_transform(containers, registry, expected):
    u = make_deployment("deployment", {"containers": containers})
    deployment_transform(with_spec(registry=registry), LOG)(u)
    images = [c["image"] for c in u.get_nested("spec", "template", "spec", "containers")]
    assert images == expected


def test_deployment_transform_ignores_other_kinds():
    u = Unstructured(
        {"kind": "StatefulSet", "spec": {"template": {"spec": {"containers": [{"name": "q"}]}}}}
    )
    before = u.deep_copy()
    registry = Registry(default="new-registry.io/${NAME}")
    deployment_transform(with_spec(registry=registry), LOG)(u)
    assert u == before


def test_deployment_transform_rejects_malformed_pod_spec():
    u = make_deployment("bad", "not a map")
    registry = Registry(default="new-registry.io/${NAME}")
    with pytest.raises(TypeError):
        deployment_transform(with_spec(registry=registry), LOG)(u)


# Caching image cases

def test_image_transform_uses_name_from_default():
    u = Unstructured(
        {
            "apiVersion": "caching.internal.knative.dev/v1alpha1",
            "kind": "Image",
            "metadata": {"name": "UsesNameFromDefault"},
            "spec": {"image": QUEUE_IMAGE},
        }
    )
    registry = Registry(default="new-registry.io/test/path/${NAME}:new-tag")
    image_transform(with_spec(registry=registry), LOG)(u)
    assert u.get_nested("spec", "image") == "new-registry.io/test/path/UsesNameFromDefault:new-tag"


def test_image_transform_without_registry_keeps_image():
    u = Unstructured(
        {
            "apiVersion": "caching.internal.knative.dev/v1alpha1",
            "kind": "Image",
            "metadata": {"name": "queue"},
            "spec": {"image": QUEUE_IMAGE},
        }
    )
    image_transform(with_spec(), LOG)(u)
    assert u.get_nested("spec", "image") == QUEUE_IMAGE


# Image pull secret cases

@pytest.mark.parametrize(
    "existing, registry, expected",
    [
        (None, Registry(), None),
        (
            None,
            Registry(image_pull_secrets=[{"name": "new-secret"}]),
            [{"name": "new-secret"}],
        ),
        (
            None,
            Registry(image_pull_secrets=[{"name": "new-secret-1"}, {"name": "new-secret-2"}]),
            [{"name": "new-secret-1"}, {"name": "new-secret-2"}],
        ),
        (
            [{"name": "existing-secret"}],
            Registry(image_pull_secrets=[{"name": "new-secret"}]),
            [{"name": "existing-secret"}, {"name": "new-secret"}],
        ),
    ],
    ids=[
        "LeavesSecretsEmptyByDefault",
        "AddsImagePullSecrets",
        "SupportsMultipleImagePullSecrets",
        "MergesAdditionalSecretsWithAnyPreexisting",
    ],
)
def test_image_pull_secrets(existing, registry, expected):
    pod_spec = {} if existing is None else {"imagePullSecrets": existing}
    u = make_deployment("deployment", pod_spec)
    deployment_transform(with_spec(registry=registry), LOG)(u)
    assert u.get_nested("spec", "template", "spec").get("imagePullSecrets") == expected


# Image name helpers

def test_get_new_image_prefers_override():
    registry = Registry(default="r.io/${NAME}:t", override={"queue": "o.io/queue:x"})
    assert get_new_image(registry, "queue") == "o.io/queue:x"
    assert get_new_image(registry, "activator") == "r.io/activator:t"


def test_get_new_image_empty_registry_is_empty():
    assert get_new_image(Registry(), "queue") == ""


def test_replace_name_replaces_every_occurrence():
    assert replace_name("${NAME}/${NAME}", "queue") == "queue/queue"
    assert replace_name("fixed:tag", "queue") == "fixed:tag"


# Config map cases

def test_config_map_transform_applies_instance_config():
    u = Unstructured(
        {"kind": "ConfigMap", "metadata": {"name": "config-logging"}, "data": {"_example": "x"}}
    )
    instance = with_spec(config={"logging": {"loglevel.controller": "debug"}})
    config_map_transform(instance, LOG)(u)
    assert u.get_nested("data") == {"_example": "x", "loglevel.controller": "debug"}


def test_config_map_transform_ignores_unconfigured_maps():
    u = Unstructured({"kind": "ConfigMap", "metadata": {"name": "config-network"}, "data": {}})
    instance = with_spec(config={"logging": {"loglevel.controller": "debug"}})
    config_map_transform(instance, LOG)(u)
    assert u.get_nested("data") == {}


def test_update_config_map_only_logs_changes(caplog):
    cm = Unstructured({"kind": "ConfigMap", "metadata": {"name": "config-defaults"}, "data": {"a": "1"}})
    with caplog.at_level(logging.INFO, logger="test"):
        update_config_map(cm, {"a": "1", "b": "2"}, LOG)
    assert cm.get_nested("data") == {"a": "1", "b": "2"}
    assert len(caplog.records) == 1


def test_update_config_map_records_previous_value(caplog):
    cm = Unstructured({"kind": "ConfigMap", "metadata": {"name": "config-defaults"}, "data": {"a": "1"}})
    with caplog.at_level(logging.INFO, logger="test"):
        update_config_map(cm, {"a": "200"}, LOG)
    assert cm.get_nested("data", "a") == "200"
    assert "previous=1" in caplog.records[0].getMessage()


def test_update_config_map_creates_data():
    cm = Unstructured({"kind": "ConfigMap", "metadata": {"name": "config-x"}})
    update_config_map(cm, {"k": "v"}, LOG)
    assert cm.get_nested("data", "k") == "v"


# Owner and namespace injection

def test_inject_owner_sets_controller_reference():
    instance = KnativeServing(name="knative-serving", uid="uid-1")
    u = make_deployment("controller", {})
    inject_owner(instance)(u)
    (ref,) = u.owner_references
    assert ref["apiVersion"] == "operator.knative.dev/v1alpha1"
    assert ref["kind"] == "KnativeServing"
    assert ref["name"] == "knative-serving"
    assert ref["uid"] == "uid-1"
    assert ref["controller"] is True


def test_inject_owner_skips_cluster_scoped():
    u = Unstructured({"kind": "ClusterRole", "metadata": {"name": "admin"}})
    inject_owner(KnativeServing(name="ks"))(u)
    assert u.owner_references == []


def test_inject_namespace():
    cm = Unstructured({"kind": "ConfigMap", "metadata": {"name": "c", "namespace": "old"}})
    role = Unstructured({"kind": "ClusterRole", "metadata": {"name": "r"}})
    ns = Unstructured({"kind": "Namespace", "metadata": {"name": "knative-serving"}})
    binding = Unstructured(
        {"kind": "ClusterRoleBinding", "subjects": [{"kind": "ServiceAccount", "namespace": "old"}]}
    )
    transform = inject_namespace("target")
    for u in (cm, role, ns, binding):
        transform(u)
    assert cm.namespace == "target"
    assert role.namespace == ""
    assert ns.name == "target"
    assert binding.object["subjects"][0]["namespace"] == "target"


# Platforms

def test_platforms_transformers_appends_platform_transformers():
    calls = []

    def marker(u):
        calls.append(u)

    platforms = Platforms([lambda client, log: None, lambda client, log: marker])
    result = platforms.transformers(object(), KnativeServing(namespace="ns"), LOG)
    assert len(result) == 7
    assert result[-1] is marker


def test_platforms_transformers_propagates_errors():
    def failing(client, log):
        raise RuntimeError("boom")

    with pytest.raises(RuntimeError, match="boom"):
        Platforms([failing]).transformers(object(), KnativeServing(), LOG)


def test_platforms_transformers_pipeline_applies_namespace():
    result = Platforms().transformers(object(), KnativeServing(name="ks", namespace="ns"), LOG)
    u = Unstructured({"kind": "ConfigMap", "metadata": {"name": "config-x"}})
    for transform in result:
        transform(u)
    assert u.namespace == "ns"
    assert u.owner_references[0]["name"] == "ks"