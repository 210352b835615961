# servingoperator

`servingoperator` holds the logic of an operator that installs Knative Serving
and keeps it converged with a `KnativeServing` custom resource. It models the
resource and its status conditions, transforms a set of manifest resources
according to the resource's spec, and reconciles an in-memory cluster against
them.

The package depends on PyYAML. Its test suite uses pytest, which the `test`
extra installs.

## What is in the package

| Module | Purpose |
| --- | --- |
| `servingoperator.version` | `VERSION`, the Knative Serving release recorded in a resource's status after installation. |
| `servingoperator.conditions` | `Condition`, `ConditionStatus`, `ConditionSet` and `ConditionManager`, plus `living_condition_set`, which builds a set whose `Ready` condition follows its dependents. |
| `servingoperator.api` | The `KnativeServing` resource and its parts: `KnativeServingSpec`, `KnativeServingStatus`, `Registry`, `IstioGatewayOverride`, `CustomCerts`, `KnativeServingList`, and the group/version helpers `GroupVersion`, `GroupVersionKind`, `GroupVersionResource`, `GroupResource` and `resource`. |
| `servingoperator.resource` | `Unstructured`, a nested-dictionary view of a Kubernetes object, and `NotFoundError`. |
| `servingoperator.transforms` | Transformers applied to manifest resources: `inject_owner`, `inject_namespace`, `config_map_transform`, `deployment_transform`, `image_transform` and `gateway_transform`; `Platforms` gathers them together with platform hooks. |
| `servingoperator.minikube` | `configure`, a platform hook that returns the `egress` transformer when the cluster has a `minikube` node, and `PLATFORM`, the default `Platforms` list holding it. |
| `servingoperator.client` | `OperatorClient`, `KnativeServingClient`, `KnativeServingLister` and `KnativeServingNamespaceLister` for storing and looking up `KnativeServing` objects in memory. |
| `servingoperator.manifest` | `Manifest`, `Cluster` and `parse_manifests` for loading YAML or JSON manifests and applying or deleting them. |
| `servingoperator.reconciler` | `Reconciler`, `EventRecorder` and `split_meta_namespace_key`. |

## Status conditions

A `KnativeServing` is ready once both of its conditions, `InstallSucceeded`
and `DeploymentsAvailable`, are true:

```python
from servingoperator.api import KnativeServingStatus

status = KnativeServingStatus()
status.initialize_conditions()
status.mark_install_succeeded()
assert status.is_deploying()

status.mark_deployments_available()
assert status.is_ready()

status.mark_install_failed("boom")
assert not status.is_installed()
assert not status.is_ready()
```

## Transforming resources

`Platforms.transformers(kube_client, instance, log)` returns, in order:

- `inject_owner`: sets the instance as the controlling owner of every
  namespaced resource;
- `inject_namespace`: moves namespaced resources into the instance's
  namespace, renames `Namespace` resources to it and rewrites the namespace of
  `ClusterRoleBinding` subjects;
- `config_map_transform`: for a `ConfigMap` named `config-<key>`, writes the
  entries of `spec.config[<key>]` into its data, leaving equal values alone;
- `deployment_transform`: rewrites container images of each `Deployment`
  from the spec's `Registry` and appends its `image_pull_secrets`;
- `image_transform`: rewrites `spec.image` of caching `Image` resources;
- `gateway_transform`: replaces the selector of the `knative-ingress-gateway`
  and `cluster-local-gateway` Istio gateways when an override is given;

followed by whatever transformer each platform hook returns.

A registry's default image template may contain `${NAME}`, which is replaced
by the container or image name. An entry in the registry's override map for
that name takes precedence over the template; an empty result leaves the image
as it is.

```python
from servingoperator.api import Registry
from servingoperator.transforms import get_new_image, replace_name

replace_name("registry.example.com/knative/${NAME}:v1", "queue")
# 'registry.example.com/knative/queue:v1'

get_new_image(Registry(override={"queue": "registry.example.com/q:v2"}), "queue")
# 'registry.example.com/q:v2'
```

## Reconciling

```python
from servingoperator.api import KnativeServing
from servingoperator.client import OperatorClient
from servingoperator.manifest import Cluster, Manifest, parse_manifests
from servingoperator.reconciler import Reconciler

cluster = Cluster()
manifest = Manifest(parse_manifests("manifests/", recursive=True), cluster)
servings = OperatorClient(
    [KnativeServing(name="knative-serving", namespace="knative-serving")]
)
reconciler = Reconciler(cluster, servings, manifest)
reconciler.reconcile("knative-serving/knative-serving")
```

For each key handed to `Reconciler.reconcile`, the reconciler:

1. transforms the manifest for the `KnativeServing` it names,
2. initialises the status conditions if there are none,
3. applies every resource and records `VERSION` in the status,
4. checks that every deployment in the manifest reports an `Available`
   condition that is `True`,
5. removes resources left behind by older releases.

A changed status is written back through the `OperatorClient`. When the last
`KnativeServing` the reconciler has seen is gone, every resource in the
manifest is deleted. Failures are recorded as warning events on the
`EventRecorder` (its `events` list) and raised to the caller; an invalid key
is logged and ignored.

## What the package does not do

- It does not talk to a Kubernetes API server. `Cluster` and `OperatorClient`
  keep resources in memory, so deployments only count as available when their
  stored status says so.
- It has no command and no long-running controller: nothing watches for
  changes and calls `Reconciler.reconcile` on its own.
- `KnativeServingSpec.controller_custom_certs` is carried on the resource but
  no transformer applies it to the controller deployment.