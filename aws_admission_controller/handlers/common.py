"""Validation rules shared by several resource kinds."""

import semver

from .. import key, label
from ..errors import NotAllowedError
from ..pipeline import Rule
from ..policy import validate_label_keys, validate_label_values
from ..version import is_org_namespace_version, release_version


def validate_organization_exists(handler, ctx) -> None:
    org = key.organization(ctx.obj)
    if not org:
        raise NotAllowedError(f"{ctx.obj.kind} {ctx.obj.name} is missing label {label.ORGANIZATION}.")
    name = key.as_dns_label_name(org)
    resolution = ctx.lookup(("organization", name), lambda: handler.resolver.get_organization(name))
    if resolution.optional() is None:
        raise NotAllowedError(
            f"Organization label {label.ORGANIZATION} must contain an existing organization, "
            f"got {org} but didn't find any Organization named {name}."
        )


def validate_org_namespace(ctx) -> None:
    if not is_org_namespace_version(release_version(ctx.obj)):
        return
    org = key.organization(ctx.obj)
    if not org:
        raise NotAllowedError(f"Object {ctx.obj.name} Organization label {label.ORGANIZATION} is empty.")
    expected = key.organization_namespace(org)
    if ctx.obj.namespace != expected:
        raise NotAllowedError(
            f"Object {ctx.obj.name} is in invalid namespace {ctx.obj.namespace}. "
            f"Valid namespace for organization {org} is {expected}."
        )


def validate_operator_versions(ctx) -> None:
    for name, operator in (
        (label.AWS_OPERATOR_VERSION, "aws-operator"),
        (label.CLUSTER_OPERATOR_VERSION, "cluster-operator"),
    ):
        if name not in ctx.obj.labels:
            continue
        value = ctx.obj.labels[name]
        try:
            semver.Version.parse(value)
        except (ValueError, TypeError):
            raise NotAllowedError(f"Object {ctx.obj.name} has invalid {operator} version {value}.")


def validate_label_match(ctx, peer, name: str) -> None:
    """Deny when ``peer`` carries a different value for label ``name``."""
    if peer is None:
        return
    ours = ctx.obj.labels.get(name, "")
    theirs = peer.labels.get(name, "")
    if ours != theirs:
        raise NotAllowedError(
            f"{ctx.obj.kind} {ctx.obj.name} label {name} value {ours} does not match "
            f"{peer.kind} {peer.name} value {theirs}."
        )


def label_policy_rules(handler) -> list[Rule]:
    return [
        Rule(
            "label-keys",
            lambda ctx: validate_label_keys(ctx.old.labels, ctx.obj.labels),
            handler.is_privileged,
        ),
        Rule(
            "label-values",
            lambda ctx: validate_label_values(ctx.old.labels, ctx.obj.labels),
            handler.is_privileged,
        ),
    ]
