"""Model, transform and reconcile Knative Serving installations from a KnativeServing resource."""

__version__ = "0.10.0"

__all__ = [
    "api",
    "client",
    "conditions",
    "manifest",
    "minikube",
    "reconciler",
    "resource",
    "transforms",
    "version",
]