import re

from . import label
from .models import Annotated, Labeled

ORGANIZATION_NAMESPACE_FORMAT = "org-%s"

_DNS_LABEL_INVALID = re.compile(r"[^a-z0-9-]+")


def cluster(obj: Labeled) -> str:
    return obj.labels.get(label.CLUSTER, "")


def machine_deployment(obj: Labeled) -> str:
    return obj.labels.get(label.MACHINE_DEPLOYMENT, "")


def organization(obj: Labeled) -> str:
    return obj.labels.get(label.ORGANIZATION, "")


def release(obj: Labeled) -> str:
    return obj.labels.get(label.RELEASE, "")


def cluster_operator_version(obj: Labeled) -> str:
    return obj.labels.get(label.CLUSTER_OPERATOR_VERSION, "")


def aws_operator_version(obj: Labeled) -> str:
    return obj.labels.get(label.AWS_OPERATOR_VERSION, "")


def cilium_ipam_mode(obj: Annotated) -> str:
    """IPAM mode Cilium runs in; clusters without the annotation use kubernetes mode."""
    return obj.annotations.get(label.CILIUM_IPAM_MODE, label.CILIUM_IPAM_MODE_KUBERNETES)


def flux_kustomization(obj: Labeled):
    """(namespace, name) of the Flux Kustomization managing ``obj``, or None."""
    name = obj.labels.get(label.FLUX_KUSTOMIZATION_NAME, "")
    namespace = obj.labels.get(label.FLUX_KUSTOMIZATION_NAMESPACE, "")
    if name and namespace:
        return namespace, name
    return None


def as_dns_label_name(value: str) -> str:
    """Normalize a free-form name into an RFC 1123 DNS label."""
    name = _DNS_LABEL_INVALID.sub("-", value.lower()).strip("-")
    return name[:63].rstrip("-")


def organization_namespace(org: str) -> str:
    return ORGANIZATION_NAMESPACE_FORMAT % as_dns_label_name(org)
