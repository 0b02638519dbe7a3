import ipaddress
import logging

from ..errors import NotAllowedError
from ..kinds import ResourceKind
from ..pipeline import Rule, Validator

log = logging.getLogger("aws-admission-controller")


class NetworkPoolValidator(Validator):
    """NetworkPool CIDRs must not overlap other pools or the installation's own ranges."""

    kind = ResourceKind.NETWORK_POOL

    def create_rules(self):
        return [Rule("cidr-overlap", self.validate_cidr_overlap)]

    def update_rules(self):
        return [Rule("cidr-overlap", self.validate_cidr_overlap)]

    def taken_cidrs(self, ctx) -> list[str]:
        taken = [
            pool.spec.get("cidrBlock") or ""
            for pool in self.resolver.list_all(ResourceKind.NETWORK_POOL)
            if (pool.namespace, pool.name) != (ctx.obj.namespace, ctx.obj.name)
        ]
        taken += [
            self.settings.docker_cidr,
            self.settings.ipam_network_cidr,
            self.settings.kubernetes_cluster_ip_range,
        ]
        return [cidr for cidr in taken if cidr]

    def validate_cidr_overlap(self, ctx):
        value = ctx.obj.spec.get("cidrBlock") or ""
        try:
            network = ipaddress.ip_network(value, strict=False)
        except ValueError:
            raise NotAllowedError(f"NetworkPool {ctx.obj.name} CIDR block {value!r} is not valid.")
        for cidr in self.taken_cidrs(ctx):
            try:
                other = ipaddress.ip_network(cidr, strict=False)
            except ValueError:
                log.warning("Ignoring unparsable CIDR %r", cidr)
                continue
            if network.version == other.version and network.overlaps(other):
                raise NotAllowedError(f"network pool {network} intersect with an existing CIDR {other}")
