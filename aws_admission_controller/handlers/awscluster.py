import logging

from .. import key, label
from ..kinds import ResourceKind
from ..patch import set_default, set_label
from ..pipeline import Mutator, Rule, Validator
from ..policy import (
    is_boolean_flag,
    is_integer_greater_than_zero,
    max_batch_size_is_valid,
    pause_time_is_valid,
    validate_annotation,
)
from ..resolver import ResourceReference
from ..version import is_ha_version, release_component
from ..zones import allocate_zones
from . import common

log = logging.getLogger("aws-admission-controller")

DEFAULT_CLUSTER_DESCRIPTION = "Unnamed cluster"
DEFAULT_CREDENTIAL_SECRET = {"name": "credential-default", "namespace": "giantswarm"}
AWS_OPERATOR = "aws-operator"


class AWSClusterMutator(Mutator):
    kind = ResourceKind.AWS_CLUSTER

    def create_rules(self):
        return [
            Rule("release-label", self.default_release_label),
            Rule("aws-operator-label", self.default_aws_operator_label, lambda ctx: ctx.has_release()),
        ] + self._spec_rules()

    def update_rules(self):
        return self._spec_rules()

    def _spec_rules(self):
        return [
            Rule("description", self.default_description),
            Rule("dns-domain", self.default_dns_domain, lambda ctx: bool(self.settings.dns_domain)),
            Rule("pod-cidr", self.default_pod_cidr, lambda ctx: bool(self.settings.pod_cidr)),
            Rule("credential-secret", self.default_credential_secret),
            Rule("pre-ha-master", self.default_master, self.is_pre_ha),
        ]

    def is_pre_ha(self, ctx) -> bool:
        return ctx.has_release() and not is_ha_version(ctx.release_version())

    def default_release_label(self, ctx):
        if key.release(ctx.obj):
            return []
        cluster_id = key.cluster(ctx.obj)
        ref = ResourceReference(ResourceKind.CLUSTER, ctx.obj.namespace, cluster_id)
        cluster = ctx.lookup(ref, lambda: self.resolver.get(ref)).optional()
        if cluster is None or not key.release(cluster):
            log.info("No release to copy from %s", ref)
            return []
        return [set_label(ctx.current(), label.RELEASE, key.release(cluster))]

    def default_aws_operator_label(self, ctx):
        if key.aws_operator_version(ctx.obj):
            return []
        version = ctx.release_version()
        release = self.resolver.get_release(version).optional()
        if release is None:
            log.info("Release v%s not found; leaving aws-operator version", version)
            return []
        value = release_component(release, AWS_OPERATOR)
        if not value:
            return []
        return [set_label(ctx.current(), label.AWS_OPERATOR_VERSION, value)]

    def default_description(self, ctx):
        return [set_default(ctx.current(), ("spec", "cluster", "description"), DEFAULT_CLUSTER_DESCRIPTION)]

    def default_dns_domain(self, ctx):
        return [set_default(ctx.current(), ("spec", "cluster", "dns", "domain"), self.settings.dns_domain)]

    def default_pod_cidr(self, ctx):
        return [set_default(ctx.current(), ("spec", "provider", "pods", "cidrBlock"), self.settings.pod_cidr)]

    def default_credential_secret(self, ctx):
        return [
            set_default(ctx.current(), ("spec", "provider", "credentialSecret"), dict(DEFAULT_CREDENTIAL_SECRET))
        ]

    def default_master(self, ctx):
        """Single-master releases keep their master definition on the AWSCluster."""
        ops = []
        if not ctx.obj.get("spec", "provider", "master", "availabilityZone"):
            zones = allocate_zones(1, self.settings.availability_zones, ctx.rng)
            if zones:
                ops.append(set_default(ctx.current(), ("spec", "provider", "master", "availabilityZone"), zones[0]))
        ops.append(
            set_default(
                ctx.current(*filter(None, ops)),
                ("spec", "provider", "master", "instanceType"),
                self.settings.default_master_instance_type,
            )
        )
        return ops


class AWSClusterValidator(Validator):
    kind = ResourceKind.AWS_CLUSTER

    def create_rules(self):
        return [
            Rule("org-namespace", common.validate_org_namespace),
            Rule("operator-versions", common.validate_operator_versions),
            Rule("organization", lambda ctx: common.validate_organization_exists(self, ctx)),
        ] + self._annotation_rules()

    def update_rules(self):
        return self._annotation_rules() + common.label_policy_rules(self)

    def _annotation_rules(self):
        return [
            Rule("max-batch-size", self.validate_max_batch_size),
            Rule("pause-time", self.validate_pause_time),
            Rule("aws-cni", self.validate_aws_cni),
            Rule("terminate-unhealthy", self.validate_terminate_unhealthy),
        ]

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

    def validate_aws_cni(self, ctx):
        for name in (label.AWS_CNI_MINIMUM_IP_TARGET, label.AWS_CNI_WARM_IP_TARGET):
            validate_annotation(ctx.obj, name, is_integer_greater_than_zero, "must be an integer greater than 0")

    def validate_terminate_unhealthy(self, ctx):
        validate_annotation(ctx.obj, label.TERMINATE_UNHEALTHY, is_boolean_flag, 'must be "true" or "false"')
