import logging

from .. import key, label
from ..errors import NotAllowedError, NotFoundError
from ..kinds import ResourceKind
from ..patch import set_default, set_label
from ..pipeline import Mutator, Rule, Validator
from ..policy import max_batch_size_is_valid, pause_time_is_valid, validate_annotation
from ..resolver import ResourceReference
from ..zones import allocate_zones
from . import common

log = logging.getLogger("aws-admission-controller")

DEFAULT_NODE_POOL_AZS = 1
DEFAULT_ON_DEMAND_PERCENTAGE_ABOVE_BASE_CAPACITY = 100


def _cluster(handler, ctx):
    cluster_id = key.cluster(ctx.obj)
    ref = ResourceReference(ResourceKind.CLUSTER, ctx.obj.namespace, cluster_id)
    return ctx.lookup(ref, lambda: handler.resolver.get(ref))


class AWSMachineDeploymentMutator(Mutator):
    kind = ResourceKind.AWS_MACHINE_DEPLOYMENT

    def create_rules(self):
        return [
            Rule("release-label", self.default_release_label),
            Rule("aws-operator-label", self.default_aws_operator_label),
            Rule("capi-cluster-label", self.default_capi_cluster_label),
            Rule("availability-zones", self.default_availability_zones),
            Rule("on-demand-percentage", self.default_on_demand_percentage),
        ]

    def update_rules(self):
        return [
            Rule("capi-cluster-label", self.default_capi_cluster_label),
            Rule("on-demand-percentage", self.default_on_demand_percentage),
        ]

    def default_release_label(self, ctx):
        if key.release(ctx.obj):
            return []
        # A node pool cannot exist without its cluster.
        cluster = _cluster(self, ctx).require()
        value = key.release(cluster)
        if not value:
            raise NotFoundError(f"Cluster {cluster.name} did not have the label {label.RELEASE} set.")
        return [set_label(ctx.current(), label.RELEASE, value)]

    def default_aws_operator_label(self, ctx):
        if key.aws_operator_version(ctx.obj):
            return []
        cluster_id = key.cluster(ctx.obj)
        aws_cluster = ctx.lookup(
            ("awscluster", cluster_id),
            lambda: self.resolver.find_by_cluster(ResourceKind.AWS_CLUSTER, cluster_id, ctx.obj.namespace),
        ).optional()
        if aws_cluster is None or not key.aws_operator_version(aws_cluster):
            log.info("No aws-operator version to copy from AWSCluster of cluster %r", cluster_id)
            return []
        return [set_label(ctx.current(), label.AWS_OPERATOR_VERSION, key.aws_operator_version(aws_cluster))]

    def default_capi_cluster_label(self, ctx):
        cluster_id = key.cluster(ctx.obj)
        if not cluster_id or ctx.obj.labels.get(label.CAPI_CLUSTER_NAME):
            return []
        return [set_label(ctx.current(), label.CAPI_CLUSTER_NAME, cluster_id)]

    def default_availability_zones(self, ctx):
        """Place the node pool in zones the cluster's control plane already uses."""
        if ctx.obj.get("spec", "provider", "availabilityZones"):
            return []
        cluster_id = key.cluster(ctx.obj)
        control_plane = ctx.lookup(
            ("awscontrolplane", cluster_id),
            lambda: self.resolver.find_by_cluster(ResourceKind.AWS_CONTROL_PLANE, cluster_id, ctx.obj.namespace),
        ).optional()
        if control_plane is None:
            log.info("AWSControlPlane of cluster %r not found; leaving availability zones", cluster_id)
            return []
        valid = control_plane.spec.get("availabilityZones") or self.settings.availability_zones
        zones = allocate_zones(DEFAULT_NODE_POOL_AZS, valid, ctx.rng)
        if not zones:
            return []
        return [set_default(ctx.current(), ("spec", "provider", "availabilityZones"), zones)]

    def default_on_demand_percentage(self, ctx):
        segments = ("spec", "provider", "instanceDistribution", "onDemandPercentageAboveBaseCapacity")
        return [set_default(ctx.current(), segments, DEFAULT_ON_DEMAND_PERCENTAGE_ABOVE_BASE_CAPACITY)]


class AWSMachineDeploymentValidator(Validator):
    kind = ResourceKind.AWS_MACHINE_DEPLOYMENT

    def create_rules(self):
        return [
            Rule("organization", lambda ctx: common.validate_organization_exists(self, ctx)),
            Rule("instance-type", self.validate_instance_type),
            Rule("cluster", self.validate_cluster),
        ] + self._shared_rules()

    def update_rules(self):
        return (
            [Rule("instance-type", self.validate_instance_type)]
            + self._shared_rules()
            + common.label_policy_rules(self)
        )

    def _shared_rules(self):
        return [
            Rule("machine-deployment-label", self.validate_machine_deployment_label),
            Rule("max-batch-size", self.validate_max_batch_size),
            Rule("pause-time", self.validate_pause_time),
            Rule("scaling", self.validate_scaling),
        ]

    def validate_instance_type(self, ctx):
        instance_type = ctx.obj.get("spec", "provider", "worker", "instanceType", default="")
        if instance_type not in self.settings.worker_instance_types:
            raise NotAllowedError(
                f"AWSMachineDeployment {key.machine_deployment(ctx.obj)} worker instance type "
                f"{instance_type} is invalid. Valid instance types are: "
                f"{list(self.settings.worker_instance_types)}"
            )

    def validate_cluster(self, ctx):
        """Node pools may only be added to an existing cluster that is not being deleted."""
        cluster_id = key.cluster(ctx.obj)
        cluster = _cluster(self, ctx).optional()
        if cluster is None:
            raise NotAllowedError(
                f"AWSMachineDeployment {ctx.obj.name} references cluster {cluster_id} which does not exist."
            )
        if cluster.deleting:
            raise NotAllowedError(
                f"AWSMachineDeployment {ctx.obj.name} cannot be created because cluster {cluster_id} "
                f"is being deleted."
            )

    def validate_machine_deployment_label(self, ctx):
        ref = ResourceReference(ResourceKind.MACHINE_DEPLOYMENT, ctx.obj.namespace, ctx.obj.name)
        peer = ctx.lookup(ref, lambda: self.resolver.get(ref)).optional()
        if peer is None:
            log.info("MachineDeployment %s not found; skipping label match", ref)
        common.validate_label_match(ctx, peer, label.MACHINE_DEPLOYMENT)

    def validate_max_batch_size(self, ctx):
        validate_annotation(
            ctx.obj,
            label.UPDATE_MAX_BATCH_SIZE,
            max_batch_size_is_valid,
            "must be an integer greater than 0 or a decimal between 0 and 1",
        )

    def validate_pause_time(self, ctx):
        validate_annotation(
            ctx.obj,
            label.UPDATE_PAUSE_TIME,
            pause_time_is_valid,
            "must be an ISO 8601 duration of at most one hour",
        )

    def validate_scaling(self, ctx):
        scaling = ctx.obj.get("spec", "nodePool", "scaling", default={})
        if not isinstance(scaling, dict):
            scaling = {}
        low, high = scaling.get("min") or 0, scaling.get("max") or 0
        if not isinstance(low, int) or not isinstance(high, int):
            raise NotAllowedError(f"AWSMachineDeployment {ctx.obj.name} scaling bounds must be integers.")
        if high == 0:
            raise NotAllowedError(
                f"AWSMachineDeployment {ctx.obj.name} maximum node count must be greater than 0."
            )
        if low > high:
            raise NotAllowedError(
                f"AWSMachineDeployment {ctx.obj.name} minimum node count {low} is greater than "
                f"maximum node count {high}."
            )
