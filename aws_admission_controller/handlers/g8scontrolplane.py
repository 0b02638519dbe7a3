import logging

from .. import label
from ..errors import NotAllowedError
from ..kinds import ResourceKind
from ..patch import put
from ..pipeline import Mutator, Rule, Validator
from ..resolver import ResourceReference
from ..version import is_ha_version
from ..zones import allocate_ha_zones
from . import common

log = logging.getLogger("aws-admission-controller")

DEFAULT_MASTER_REPLICAS = 3
VALID_MASTER_REPLICAS = (1, 3)


def _replicas(obj) -> int:
    value = obj.spec.get("replicas")
    return value if isinstance(value, int) else 0


def _aws_control_plane(handler, ctx):
    """Sibling AWSControlPlane sharing this object's name, or None."""
    ref = ResourceReference(ResourceKind.AWS_CONTROL_PLANE, ctx.obj.namespace, ctx.obj.name)
    return ctx.lookup(ref, lambda: handler.resolver.get(ref)).optional()


class G8sControlPlaneMutator(Mutator):
    kind = ResourceKind.G8S_CONTROL_PLANE

    def create_rules(self):
        return [
            Rule("replicas", self.default_replicas),
            Rule("infrastructure-ref", self.default_infrastructure_ref),
        ]

    def update_rules(self):
        return [
            Rule("ha-scale-up", self.scale_up_zones, self.is_scale_up),
            Rule("replicas", self.default_replicas),
        ]

    def is_scale_up(self, ctx) -> bool:
        return _replicas(ctx.old) == 1 and _replicas(ctx.obj) == 3 and is_ha_version(ctx.release_version())

    def default_replicas(self, ctx):
        if _replicas(ctx.obj) != 0:
            return []
        if is_ha_version(ctx.release_version()):
            replicas = DEFAULT_MASTER_REPLICAS
            peer = _aws_control_plane(self, ctx)
            zones = peer.spec.get("availabilityZones") if peer is not None else None
            if zones:
                replicas = len(zones)
        else:
            replicas = 1
        return [put(ctx.current(), ("spec", "replicas"), replicas)]

    def default_infrastructure_ref(self, ctx):
        peer = _aws_control_plane(self, ctx)
        if peer is None:
            log.info("AWSControlPlane %s/%s not created yet; leaving infrastructureRef", ctx.obj.namespace, ctx.obj.name)
            return []
        current = ctx.obj.spec.get("infrastructureRef") or {}
        if current.get("name") == peer.name:
            return []
        return [put(ctx.current(), ("spec", "infrastructureRef"), peer.reference())]

    def scale_up_zones(self, ctx):
        """Spread a single-zone AWSControlPlane over three zones, keeping its zone first."""
        peer = _aws_control_plane(self, ctx)
        if peer is None:
            log.info("AWSControlPlane %s/%s not found; skipping HA zone update", ctx.obj.namespace, ctx.obj.name)
            return []

        def spread(body):
            zones = (body.get("spec") or {}).get("availabilityZones") or []
            if len(zones) != 1:
                return None
            body.setdefault("spec", {})["availabilityZones"] = allocate_ha_zones(
                zones[0], self.settings.availability_zones, ctx.rng
            )
            return body

        ref = ResourceReference(ResourceKind.AWS_CONTROL_PLANE, peer.namespace, peer.name)
        self.resolver.update(ref, spread)
        return []


class G8sControlPlaneValidator(Validator):
    kind = ResourceKind.G8S_CONTROL_PLANE

    def create_rules(self):
        return [
            Rule("organization", lambda ctx: common.validate_organization_exists(self, ctx)),
            Rule("org-namespace", common.validate_org_namespace),
            Rule("operator-versions", common.validate_operator_versions),
            Rule("replica-count", self.validate_replica_count),
            Rule("replica-az-match", self.validate_replica_az_match),
        ]

    def update_rules(self):
        return [
            Rule("replica-count", self.validate_replica_count),
            Rule("replica-az-match", self.validate_replica_az_match),
            Rule("control-plane-label", self.validate_control_plane_label),
        ] + common.label_policy_rules(self)

    def validate_replica_count(self, ctx):
        replicas = _replicas(ctx.obj)
        if replicas not in VALID_MASTER_REPLICAS:
            raise NotAllowedError(
                f"G8sControlPlane {ctx.obj.name} has {replicas} replicas, "
                f"allowed values are {', '.join(str(r) for r in VALID_MASTER_REPLICAS)}."
            )

    def validate_replica_az_match(self, ctx):
        peer = _aws_control_plane(self, ctx)
        if peer is None:
            log.info("AWSControlPlane %s/%s not found; skipping replica check", ctx.obj.namespace, ctx.obj.name)
            return
        zones = peer.spec.get("availabilityZones") or []
        replicas = _replicas(ctx.obj)
        if zones and len(zones) != replicas:
            raise NotAllowedError(
                f"G8sControlPlane {ctx.obj.name} has {replicas} replicas but AWSControlPlane "
                f"{peer.name} has {len(zones)} availability zones."
            )

    def validate_control_plane_label(self, ctx):
        common.validate_label_match(ctx, _aws_control_plane(self, ctx), label.CONTROL_PLANE)
