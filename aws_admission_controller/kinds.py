"""
Closed set of custom resource kinds the controller knows how to address.

Each member carries the API coordinates the resolver needs to talk to the
Kubernetes custom objects API.
"""

from enum import Enum
from typing import Optional


class ResourceKind(Enum):
    CLUSTER = ("cluster.x-k8s.io", "v1beta1", "clusters", "Cluster", True)
    AWS_CLUSTER = ("infrastructure.giantswarm.io", "v1alpha3", "awsclusters", "AWSCluster", True)
    G8S_CONTROL_PLANE = (
        "infrastructure.giantswarm.io",
        "v1alpha3",
        "g8scontrolplanes",
        "G8sControlPlane",
        True,
    )
    AWS_CONTROL_PLANE = (
        "infrastructure.giantswarm.io",
        "v1alpha3",
        "awscontrolplanes",
        "AWSControlPlane",
        True,
    )
    MACHINE_DEPLOYMENT = (
        "cluster.x-k8s.io",
        "v1beta1",
        "machinedeployments",
        "MachineDeployment",
        True,
    )
    AWS_MACHINE_DEPLOYMENT = (
        "infrastructure.giantswarm.io",
        "v1alpha3",
        "awsmachinedeployments",
        "AWSMachineDeployment",
        True,
    )
    NETWORK_POOL = ("infrastructure.giantswarm.io", "v1alpha3", "networkpools", "NetworkPool", True)
    KUSTOMIZATION = (
        "kustomize.toolkit.fluxcd.io",
        "v1beta2",
        "kustomizations",
        "Kustomization",
        True,
    )
    RELEASE = ("release.giantswarm.io", "v1alpha1", "releases", "Release", False)
    ORGANIZATION = ("security.giantswarm.io", "v1alpha1", "organizations", "Organization", False)

    def __init__(self, group, version, plural, kind, namespaced):
        self.group = group
        self.version = version
        self.plural = plural
        self.kind = kind
        self.namespaced = namespaced

    @property
    def api_version(self) -> str:
        return f"{self.group}/{self.version}"

    @classmethod
    def from_group_kind(cls, group: str, kind: str) -> Optional["ResourceKind"]:
        for member in cls:
            if member.group == group and member.kind == kind:
                return member
        return None
