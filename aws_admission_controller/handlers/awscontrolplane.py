import logging

from .. import key, label
from ..errors import NotAllowedError
from ..kinds import ResourceKind
from ..patch import set_default
from ..pipeline import Mutator, Rule, Validator
from ..policy import is_integer_in_range, validate_annotation
from ..resolver import ResourceReference
from ..version import is_ha_version
from ..zones import allocate_zones, has_max_distinct_zones, zone_order_changed, zones_are_valid
from . import common
from .g8scontrolplane import DEFAULT_MASTER_REPLICAS, VALID_MASTER_REPLICAS

log = logging.getLogger("aws-admission-controller")

ETCD_IOPS_RANGE = (3000, 16000)
ETCD_THROUGHPUT_RANGE = (100, 1000)


def _zones(obj) -> list[str]:
    zones = obj.spec.get("availabilityZones")
    return list(zones) if isinstance(zones, list) else []


def _g8s_control_plane(handler, ctx):
    """Sibling G8sControlPlane sharing this object's name, or None."""
    ref = ResourceReference(ResourceKind.G8S_CONTROL_PLANE, ctx.obj.namespace, ctx.obj.name)
    return ctx.lookup(ref, lambda: handler.resolver.get(ref)).optional()


class AWSControlPlaneMutator(Mutator):
    kind = ResourceKind.AWS_CONTROL_PLANE

    def create_rules(self):
        return [
            Rule("ha-defaults", self.default_ha_control_plane, self.is_ha),
            Rule("pre-ha-defaults", self.default_from_aws_cluster, lambda ctx: not self.is_ha(ctx)),
            Rule("g8s-infrastructure-ref", self.backfill_infrastructure_ref),
        ]

    def update_rules(self):
        return [
            Rule("ha-defaults", self.default_ha_control_plane, self.is_ha),
            Rule("pre-ha-defaults", self.default_from_aws_cluster, lambda ctx: not self.is_ha(ctx)),
        ]

    def is_ha(self, ctx) -> bool:
        return is_ha_version(ctx.release_version())

    def default_ha_control_plane(self, ctx):
        ops = []
        op = set_default(
            ctx.current(), ("spec", "instanceType"), self.settings.default_master_instance_type
        )
        if op is not None:
            ops.append(op)
        if not _zones(ctx.obj):
            count = DEFAULT_MASTER_REPLICAS
            g8s = _g8s_control_plane(self, ctx)
            replicas = g8s.spec.get("replicas") if g8s is not None else None
            if isinstance(replicas, int) and replicas > 0:
                count = replicas
            zones = allocate_zones(count, self.settings.availability_zones, ctx.rng)
            op = set_default(ctx.current(*ops), ("spec", "availabilityZones"), zones)
            if zones and op is not None:
                ops.append(op)
        return ops

    def default_from_aws_cluster(self, ctx):
        """Pre-HA control planes copy their single master from the AWSCluster."""
        cluster_id = key.cluster(ctx.obj)
        aws_cluster = ctx.lookup(
            ("awscluster", cluster_id),
            lambda: self.resolver.find_by_cluster(ResourceKind.AWS_CLUSTER, cluster_id, ctx.obj.namespace),
        ).optional()
        if aws_cluster is None:
            log.info("AWSCluster of cluster %r not found; skipping master defaults", cluster_id)
            return []
        master = aws_cluster.get("spec", "provider", "master", default={})
        ops = []
        zone = master.get("availabilityZone")
        if zone:
            op = set_default(ctx.current(), ("spec", "availabilityZones"), [zone])
            if op is not None:
                ops.append(op)
        instance_type = master.get("instanceType")
        if instance_type:
            op = set_default(ctx.current(*ops), ("spec", "instanceType"), instance_type)
            if op is not None:
                ops.append(op)
        return ops

    def backfill_infrastructure_ref(self, ctx):
        """Point a G8sControlPlane created earlier at this AWSControlPlane."""
        g8s = _g8s_control_plane(self, ctx)
        if g8s is None:
            return []

        def point_at_self(body):
            spec = body.setdefault("spec", {})
            if (spec.get("infrastructureRef") or {}).get("name"):
                return None
            spec["infrastructureRef"] = {
                "apiVersion": ResourceKind.AWS_CONTROL_PLANE.api_version,
                "kind": ResourceKind.AWS_CONTROL_PLANE.kind,
                "name": ctx.obj.name,
                "namespace": ctx.obj.namespace,
            }
            return body

        ref = ResourceReference(ResourceKind.G8S_CONTROL_PLANE, g8s.namespace, g8s.name)
        self.resolver.update(ref, point_at_self)
        return []


class AWSControlPlaneValidator(Validator):
    kind = ResourceKind.AWS_CONTROL_PLANE

    def create_rules(self):
        return [
            Rule("org-namespace", common.validate_org_namespace),
            Rule("operator-versions", common.validate_operator_versions),
            Rule("organization", lambda ctx: common.validate_organization_exists(self, ctx)),
        ] + self._spec_rules() + [Rule("replica-az-match", self.validate_replica_az_match)]

    def update_rules(self):
        return (
            [Rule("organization", lambda ctx: common.validate_organization_exists(self, ctx))]
            + self._spec_rules()
            + [Rule("az-order", self.validate_zone_order)]
            + common.label_policy_rules(self)
        )

    def _spec_rules(self):
        return [
            Rule("az-count", self.validate_zone_count),
            Rule("az-valid", self.validate_zones_valid),
            Rule("az-unique", self.validate_zones_unique),
            Rule("instance-type", self.validate_instance_type),
            Rule("etcd-volume", self.validate_etcd_volume),
            Rule("control-plane-label", self.validate_control_plane_label),
        ]

    def validate_zone_count(self, ctx):
        zones = _zones(ctx.obj)
        if len(zones) not in VALID_MASTER_REPLICAS:
            raise NotAllowedError(
                f"AWSControlPlane {ctx.obj.name} must have 1 or 3 availability zones, got {len(zones)}."
            )

    def validate_zones_valid(self, ctx):
        zones = _zones(ctx.obj)
        if not zones_are_valid(zones, self.settings.availability_zones):
            raise NotAllowedError(
                f"AWSControlPlane {ctx.obj.name} availability zones {zones} are not all in "
                f"{list(self.settings.availability_zones)}."
            )

    def validate_zones_unique(self, ctx):
        zones = _zones(ctx.obj)
        if not has_max_distinct_zones(zones, self.settings.availability_zones):
            raise NotAllowedError(
                f"AWSControlPlane {ctx.obj.name} availability zones {zones} are not spread over "
                f"as many distinct zones as possible."
            )

    def validate_zone_order(self, ctx):
        old, new = _zones(ctx.old), _zones(ctx.obj)
        if zone_order_changed(old, new):
            raise NotAllowedError(
                f"AWSControlPlane {ctx.obj.name} order of AZs has changed from {old} to {new}."
            )

    def validate_instance_type(self, ctx):
        instance_type = ctx.obj.spec.get("instanceType", "")
        if instance_type not in self.settings.master_instance_types:
            raise NotAllowedError(
                f"AWSControlPlane {ctx.obj.name} master instance type {instance_type} is not valid."
            )

    def validate_etcd_volume(self, ctx):
        low, high = ETCD_IOPS_RANGE
        validate_annotation(
            ctx.obj,
            label.ETCD_VOLUME_IOPS,
            lambda v: is_integer_in_range(v, low, high),
            f"must be an integer between {low} and {high}",
        )
        low, high = ETCD_THROUGHPUT_RANGE
        validate_annotation(
            ctx.obj,
            label.ETCD_VOLUME_THROUGHPUT,
            lambda v: is_integer_in_range(v, low, high),
            f"must be an integer between {low} and {high}",
        )

    def validate_control_plane_label(self, ctx):
        common.validate_label_match(ctx, _g8s_control_plane(self, ctx), label.CONTROL_PLANE)

    def validate_replica_az_match(self, ctx):
        g8s = _g8s_control_plane(self, ctx)
        if g8s is None:
            log.info("G8sControlPlane %s/%s not created yet; skipping replica check", ctx.obj.namespace, ctx.obj.name)
            return
        zones = _zones(ctx.obj)
        replicas = g8s.spec.get("replicas")
        if replicas != len(zones):
            raise NotAllowedError(
                f"G8sControlPlane {g8s.name} with {replicas} replicas does not match AWSControlPlane "
                f"{ctx.obj.name} with {len(zones)} availability zones {zones}."
            )
