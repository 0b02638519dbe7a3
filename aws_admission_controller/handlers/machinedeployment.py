"""
MachineDeployment (cluster.x-k8s.io) admission rules.

Node pools take their release and cluster-operator version from the Cluster
they belong to. Releases of the CAPI controller family are left alone.
"""

import logging

from .. import key, label
from ..errors import NotAllowedError
from ..kinds import ResourceKind
from ..patch import put, set_label
from ..pipeline import Mutator, Rule, Validator
from ..resolver import ResourceReference
from ..version import is_capi_release, is_v1alpha3_ready
from . import common

log = logging.getLogger("aws-admission-controller")

LEGACY_INFRASTRUCTURE_API_VERSION = "infrastructure.giantswarm.io/v1alpha2"
INFRASTRUCTURE_REF = ("spec", "template", "spec", "infrastructureRef")


def _cluster_id(obj) -> str:
    return key.cluster(obj) or obj.labels.get(label.CAPI_CLUSTER_NAME, "") or obj.spec.get("clusterName") or ""


def _cluster(handler, ctx):
    ref = ResourceReference(ResourceKind.CLUSTER, ctx.obj.namespace, _cluster_id(ctx.obj))
    return ctx.lookup(ref, lambda: handler.resolver.get(ref))


def _is_legacy(ctx) -> bool:
    return not is_capi_release(ctx.obj)


class MachineDeploymentMutator(Mutator):
    kind = ResourceKind.MACHINE_DEPLOYMENT

    def create_rules(self):
        return [
            Rule("cluster-labels", self.copy_cluster_labels, _is_legacy),
            Rule("infrastructure-ref", self.migrate_infrastructure_ref, self.is_legacy_with_release),
        ]

    def update_rules(self):
        return [
            Rule("infrastructure-ref", self.migrate_infrastructure_ref, self.is_legacy_with_release),
        ]

    def is_legacy_with_release(self, ctx) -> bool:
        return _is_legacy(ctx) and ctx.has_release()

    def copy_cluster_labels(self, ctx):
        """Fill in release and cluster-operator labels from the owning Cluster."""
        if key.release(ctx.obj) and key.cluster_operator_version(ctx.obj):
            return []
        cluster = _cluster(self, ctx).require()
        ops = []
        for name in (label.RELEASE, label.CLUSTER_OPERATOR_VERSION):
            value = cluster.labels.get(name, "")
            if ctx.obj.labels.get(name) or not value:
                continue
            op = set_label(ctx.current(*ops), name, value)
            if op is not None:
                ops.append(op)
        return ops

    def migrate_infrastructure_ref(self, ctx):
        ref = ctx.obj.get(*INFRASTRUCTURE_REF, default={})
        if not isinstance(ref, dict) or ref.get("apiVersion") != LEGACY_INFRASTRUCTURE_API_VERSION:
            return []
        if not is_v1alpha3_ready(ctx.release_version()):
            return []
        log.info("Updating infrastructure reference of MachineDeployment %s", ctx.obj.name)
        return [
            put(
                ctx.current(),
                INFRASTRUCTURE_REF,
                {
                    "apiVersion": ResourceKind.AWS_MACHINE_DEPLOYMENT.api_version,
                    "kind": ResourceKind.AWS_MACHINE_DEPLOYMENT.kind,
                    "name": ctx.obj.name,
                    "namespace": ctx.obj.namespace or "default",
                },
            )
        ]


class MachineDeploymentValidator(Validator):
    kind = ResourceKind.MACHINE_DEPLOYMENT

    def create_rules(self):
        return [
            Rule("cluster", self.validate_cluster, _is_legacy),
            Rule("organization", lambda ctx: common.validate_organization_exists(self, ctx), _is_legacy),
        ]

    def update_rules(self):
        privileged = self.is_privileged_legacy
        return [rule._replace(applies=privileged) for rule in common.label_policy_rules(self)]

    def is_privileged_legacy(self, ctx) -> bool:
        return _is_legacy(ctx) and self.is_privileged(ctx)

    def validate_cluster(self, ctx):
        cluster_id = _cluster_id(ctx.obj)
        cluster = _cluster(self, ctx).optional()
        if cluster is None:
            raise NotAllowedError(
                f"MachineDeployment could not be created because Cluster '{cluster_id}' does not exist."
            )
        if cluster.deleting:
            raise NotAllowedError(
                f"MachineDeployment could not be created because Cluster '{cluster_id}' is in deleting state."
            )
