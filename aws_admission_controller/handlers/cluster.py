"""
Cluster (cluster.x-k8s.io) admission rules.

Clusters on releases managed by the CAPI controller family skip every legacy
mutation and update check; those controllers handle their own resources.
"""

import ipaddress
import logging

from .. import key, label
from ..errors import NotAllowedError, NotFoundError, ParsingFailedError
from ..kinds import ResourceKind
from ..patch import put, set_label
from ..pipeline import Mutator, Rule, Validator
from ..policy import upgrade_time_is_valid
from ..resolver import ResourceReference
from ..version import (
    is_capi_release,
    is_cilium_release,
    is_v1alpha3_ready,
    newest_active_release,
    parse_version,
    release_component,
    release_version,
    validate_release_upgrade,
)
from . import common

log = logging.getLogger("aws-admission-controller")

CLUSTER_OPERATOR = "cluster-operator"
MAX_CILIUM_PREFIX_LENGTH = 18
TRANSITIONED_CONDITIONS = ("Created", "Updated")
LEGACY_INFRASTRUCTURE_API_VERSION = "infrastructure.giantswarm.io/v1alpha2"
CILIUM_IPAM_MODES = (label.CILIUM_IPAM_MODE_ENI, label.CILIUM_IPAM_MODE_KUBERNETES)


def _release_changed(ctx) -> bool:
    return key.release(ctx.obj) != key.release(ctx.old)


class ClusterMutator(Mutator):
    kind = ResourceKind.CLUSTER

    def create_rules(self):
        legacy = self.is_legacy
        return [
            Rule("release-label", self.default_release_label, legacy),
            Rule("cluster-operator-label", self.default_cluster_operator_label, self.is_legacy_with_release),
            Rule("capi-cluster-label", self.default_capi_cluster_label, legacy),
            Rule("infrastructure-ref", self.migrate_infrastructure_ref, self.is_legacy_with_release),
            Rule("cilium-ipam-mode", self.default_cilium_ipam_mode, self.is_legacy_with_release),
        ]

    def update_rules(self):
        upgrade = self.is_legacy_upgrade
        return [
            Rule("release-update", self.refresh_cluster_operator_label, upgrade),
            Rule("capi-cluster-label", self.default_capi_cluster_label, self.is_legacy),
            Rule("infrastructure-ref", self.migrate_infrastructure_ref, self.is_legacy_with_release),
            Rule("cilium-upgrade", self.default_cilium_upgrade_annotations, upgrade),
        ]

    def is_legacy(self, ctx) -> bool:
        return not is_capi_release(ctx.obj)

    def is_legacy_with_release(self, ctx) -> bool:
        return self.is_legacy(ctx) and ctx.has_release()

    def is_legacy_upgrade(self, ctx) -> bool:
        return self.is_legacy(ctx) and bool(key.release(ctx.old)) and bool(key.release(ctx.obj)) and _release_changed(ctx)

    def default_release_label(self, ctx):
        if key.release(ctx.obj):
            return []
        newest = newest_active_release(self.resolver.list_releases())
        if newest is None:
            log.warning("No active release found to default Cluster %s to", ctx.obj.name)
            return []
        log.info("Defaulting release of Cluster %s to %s", ctx.obj.name, newest)
        return [set_label(ctx.current(), label.RELEASE, str(newest))]

    def default_cluster_operator_label(self, ctx):
        if key.cluster_operator_version(ctx.obj):
            return []
        version = ctx.release_version()
        release = self.resolver.get_release(version).optional()
        if release is None:
            log.info("Release v%s not found; leaving cluster-operator version", version)
            return []
        value = release_component(release, CLUSTER_OPERATOR)
        if not value:
            return []
        return [set_label(ctx.current(), label.CLUSTER_OPERATOR_VERSION, value)]

    def refresh_cluster_operator_label(self, ctx):
        """A new release brings its own cluster-operator version."""
        version = ctx.release_version()
        release = self.resolver.get_release(version).require()
        value = release_component(release, CLUSTER_OPERATOR)
        if not value:
            raise NotFoundError(f"Release v{version} has no {CLUSTER_OPERATOR} component.")
        return [set_label(ctx.current(), label.CLUSTER_OPERATOR_VERSION, value)]

    def default_capi_cluster_label(self, ctx):
        cluster_id = key.cluster(ctx.obj) or ctx.obj.name
        if not cluster_id or ctx.obj.labels.get(label.CAPI_CLUSTER_NAME):
            return []
        return [set_label(ctx.current(), label.CAPI_CLUSTER_NAME, cluster_id)]

    def migrate_infrastructure_ref(self, ctx):
        """Move a v1alpha2 infrastructure reference to the v1alpha3 AWSCluster."""
        ref = ctx.obj.get("spec", "infrastructureRef", default={})
        if not isinstance(ref, dict) or (ref.get("name") and ref.get("namespace")):
            return []
        if ref.get("apiVersion") != LEGACY_INFRASTRUCTURE_API_VERSION:
            return []
        if not is_v1alpha3_ready(ctx.release_version()):
            return []
        log.info("Updating infrastructure reference of Cluster %s", ctx.obj.name)
        return [
            put(
                ctx.current(),
                ("spec", "infrastructureRef"),
                {
                    "apiVersion": ResourceKind.AWS_CLUSTER.api_version,
                    "kind": ResourceKind.AWS_CLUSTER.kind,
                    "name": ctx.obj.name,
                    "namespace": ctx.obj.namespace or "default",
                },
            )
        ]

    def default_cilium_ipam_mode(self, ctx):
        if not is_cilium_release(ctx.release_version()):
            return []
        if label.CILIUM_IPAM_MODE in ctx.obj.annotations:
            return []
        return [put(ctx.current(), ("metadata", "annotations", label.CILIUM_IPAM_MODE), label.CILIUM_IPAM_MODE_KUBERNETES)]

    def default_cilium_upgrade_annotations(self, ctx):
        """Prepare a cluster crossing the Cilium release boundary.

        The pod CIDR is only defaulted for clusters on the default AWS CNI pod
        CIDR without a network pool. kube-proxy stays on until aws-operator has
        rolled every node.
        """
        current, target = release_version(ctx.old), ctx.release_version()
        if is_cilium_release(current) == is_cilium_release(target):
            return []
        ops = []
        if label.CILIUM_POD_CIDR not in ctx.obj.annotations:
            cluster_id = key.cluster(ctx.obj) or ctx.obj.name
            aws_cluster = ctx.lookup(
                ("awscluster", cluster_id),
                lambda: self.resolver.find_by_cluster(ResourceKind.AWS_CLUSTER, cluster_id, ctx.obj.namespace),
            ).optional()
            if aws_cluster is None:
                log.info("AWSCluster of Cluster %s not found; can't default Cilium pod CIDR", ctx.obj.name)
                return []
            if aws_cluster.get("spec", "provider", "nodes", "networkPool"):
                log.info("Cluster %s uses a network pool; can't default Cilium pod CIDR", ctx.obj.name)
                return []
            if aws_cluster.get("spec", "provider", "pods", "cidrBlock", default="") != self.settings.pod_cidr:
                log.info("Cluster %s does not use the default pod CIDR; can't default Cilium pod CIDR", ctx.obj.name)
                return []
            if not self.settings.cilium_default_pod_cidr:
                log.warning("No default Cilium pod CIDR configured; leaving Cluster %s", ctx.obj.name)
                return []
            ops.append(
                put(ctx.current(), ("metadata", "annotations", label.CILIUM_POD_CIDR), self.settings.cilium_default_pod_cidr)
            )
        ops.append(put(ctx.current(*ops), ("metadata", "annotations", label.CILIUM_FORCE_DISABLE_KUBE_PROXY), "true"))
        return ops


class ClusterValidator(Validator):
    kind = ResourceKind.CLUSTER

    def create_rules(self):
        return [
            Rule("unique-name", self.validate_unique_name),
            Rule("org-namespace", common.validate_org_namespace),
            Rule("operator-versions", common.validate_operator_versions),
            Rule("organization", lambda ctx: common.validate_organization_exists(self, ctx)),
            Rule("cilium-ipam-mode", self.validate_cilium_ipam_mode),
        ]

    def update_rules(self):
        not_capi = self.is_legacy
        privileged = self.is_privileged_legacy
        return [
            Rule("gitops-paused", self.validate_gitops_paused, not_capi),
            Rule("cilium-pod-cidr", self.validate_cilium_pod_cidr, not_capi),
            Rule("upgrade-time", self.validate_upgrade_time, not_capi),
            Rule("upgrade-release", self.validate_upgrade_release, not_capi),
            Rule("status-transitioned", self.validate_status, privileged),
        ] + [
            rule._replace(applies=privileged) for rule in common.label_policy_rules(self)
        ] + [
            Rule("release-version", self.validate_release_version, privileged),
            Rule("cilium-ipam-mode-unchanged", self.validate_cilium_ipam_mode_unchanged, not_capi),
        ]

    def is_legacy(self, ctx) -> bool:
        return not is_capi_release(ctx.obj)

    def is_privileged_legacy(self, ctx) -> bool:
        return self.is_legacy(ctx) and self.is_privileged(ctx)

    def _aws_cluster(self, ctx):
        cluster_id = key.cluster(ctx.obj) or ctx.obj.name
        return ctx.lookup(
            ("awscluster", cluster_id),
            lambda: self.resolver.find_by_cluster(ResourceKind.AWS_CLUSTER, cluster_id, ctx.obj.namespace),
        ).optional()

    def validate_cilium_pod_cidr(self, ctx):
        if ctx.obj.deleting:
            return
        pod_cidr = ctx.obj.annotations.get(label.CILIUM_POD_CIDR, "")
        current, target = release_version(ctx.old), release_version(ctx.obj)
        if not pod_cidr:
            if not is_cilium_release(current) and is_cilium_release(target):
                raise NotAllowedError(
                    f"The annotation `{label.CILIUM_POD_CIDR}` has to be set on Cluster CR before "
                    f"upgrading to AWS release v{target} or higher."
                )
            return
        try:
            network = ipaddress.ip_network(pod_cidr, strict=False)
        except ValueError:
            raise NotAllowedError(f"The CIDR {pod_cidr} from annotation `{label.CILIUM_POD_CIDR}` is not valid.")
        if network.prefixlen > MAX_CILIUM_PREFIX_LENGTH:
            raise NotAllowedError(
                f"The CIDR from annotation `{label.CILIUM_POD_CIDR}` is not valid, please specify a "
                f"network mask which is at least `/{MAX_CILIUM_PREFIX_LENGTH}` or bigger, e.g. `10.0.0.0/15`"
            )
        taken = []
        aws_cluster = self._aws_cluster(ctx)
        if aws_cluster is not None:
            taken.append(aws_cluster.get("spec", "provider", "pods", "cidrBlock", default=""))
        taken.append(self.settings.ipam_network_cidr)
        for cidr in filter(None, taken):
            try:
                other = ipaddress.ip_network(cidr, strict=False)
            except ValueError:
                log.warning("Ignoring unparsable CIDR %r", cidr)
                continue
            if network.version == other.version and network.overlaps(other):
                raise NotAllowedError(
                    f"The CIDR from annotation `{label.CILIUM_POD_CIDR}` intersects with the current "
                    f"CIDR `{cidr}`, please specify a different CIDR"
                )

    def validate_upgrade_time(self, ctx):
        value = ctx.obj.annotations.get(label.UPGRADE_TARGET_TIME)
        if value is None or ctx.old.annotations.get(label.UPGRADE_TARGET_TIME) == value:
            return
        if not upgrade_time_is_valid(value):
            raise NotAllowedError(
                f"Cluster annotation '{label.UPGRADE_TARGET_TIME}' value '{value}' is not valid. "
                f"Value must be in RFC822 format and UTC time zone (e.g. 30 Jan 21 15:04 UTC) and "
                f"should be a date 16 mins - 6months in the future."
            )

    def validate_upgrade_release(self, ctx):
        value = ctx.obj.annotations.get(label.UPGRADE_TARGET_RELEASE)
        if value is None:
            return
        reason = ""
        try:
            target = parse_version(value)
            if value.startswith("v"):
                reason = "the version has a v prefix"
            elif self.resolver.get_release(target).optional() is None:
                reason = f"release v{target} does not exist"
            elif target <= release_version(ctx.obj):
                reason = "Upgrade target release version has to be above current release version."
        except ParsingFailedError as e:
            reason = e.message
        if reason:
            raise NotAllowedError(
                f"Cluster annotation '{label.UPGRADE_TARGET_RELEASE}' value '{value}' is not valid. "
                f"Value must be an existing giant swarm release version above the current release "
                f"version {key.release(ctx.obj)} and must not have a v prefix. {reason}"
            )

    def validate_status(self, ctx):
        if not _release_changed(ctx):
            return
        aws_cluster = self._aws_cluster(ctx)
        if aws_cluster is None:
            log.info("AWSCluster of Cluster %s not found; skipping transition check", ctx.obj.name)
            return
        conditions = aws_cluster.get("status", "cluster", "conditions", default=[])
        latest = conditions[0].get("condition") if conditions and isinstance(conditions[0], dict) else ""
        if latest not in TRANSITIONED_CONDITIONS:
            raise NotAllowedError(
                f"Cluster {ctx.obj.name} can not be upgraded at the present moment because it has "
                f"not transitioned yet."
            )

    def validate_release_version(self, ctx):
        if not _release_changed(ctx):
            return
        current, target = release_version(ctx.old), release_version(ctx.obj)
        release = None
        if target.major >= current.major and target.major <= current.major + 1:
            release = self.resolver.get_release(target).optional()
        validate_release_upgrade(current, target, release)

    def validate_unique_name(self, ctx):
        for other in self.resolver.list_all(ResourceKind.CLUSTER):
            if other.name == ctx.obj.name:
                raise NotAllowedError(f"Cluster {other.namespace}/{other.name} already exists")

    def validate_cilium_ipam_mode(self, ctx):
        if label.CILIUM_IPAM_MODE not in ctx.obj.annotations:
            return
        value = ctx.obj.annotations[label.CILIUM_IPAM_MODE]
        if value not in CILIUM_IPAM_MODES:
            raise NotAllowedError(
                f"Value {value!r} for annotation {label.CILIUM_IPAM_MODE!r} is invalid. "
                f"Valid values are {CILIUM_IPAM_MODES[0]!r} and {CILIUM_IPAM_MODES[1]!r}"
            )

    def validate_cilium_ipam_mode_unchanged(self, ctx):
        """Once a cluster runs Cilium its IPAM mode is fixed."""
        if not is_cilium_release(release_version(ctx.old)):
            return
        if label.CILIUM_IPAM_MODE in ctx.old.annotations and label.CILIUM_IPAM_MODE not in ctx.obj.annotations:
            raise NotAllowedError(f"Deleting {label.CILIUM_IPAM_MODE} annotation is not allowed.")
        old, new = key.cilium_ipam_mode(ctx.old), key.cilium_ipam_mode(ctx.obj)
        if old != new:
            raise NotAllowedError(
                f"Changing {label.CILIUM_IPAM_MODE} annotation value is not allowed. "
                f"Attempted to change from {old!r} to {new!r}"
            )

    def validate_gitops_paused(self, ctx):
        """Clusters managed by Flux must have their Kustomization suspended to move onto Cilium."""
        current, target = release_version(ctx.old), release_version(ctx.obj)
        if is_cilium_release(current) or not is_cilium_release(target):
            return
        managed_by = key.flux_kustomization(ctx.obj)
        if managed_by is None:
            return
        namespace, name = managed_by
        ref = ResourceReference(ResourceKind.KUSTOMIZATION, namespace, name)
        kustomization = ctx.lookup(ref, lambda: self.resolver.get(ref)).optional()
        if kustomization is None:
            log.info("%s not found; not blocking upgrade of Cluster %s", ref, ctx.obj.name)
            return
        if not kustomization.spec.get("suspend"):
            raise NotAllowedError(
                f"Cluster {ctx.obj.namespace}/{ctx.obj.name} is managed by gitops but Kustomization "
                f"{namespace}/{name} is not suspended"
            )
