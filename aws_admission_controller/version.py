"""
Release version gates.

Behaviour that depends on the release a resource belongs to is switched on by
comparing its semantic version against fixed thresholds. All comparisons are
monotonic: once a version passes a gate, every higher version passes it too.
"""

import logging
from typing import Iterable, Optional, Sequence, Union

import semver

from . import key, label
from .errors import NotAllowedError, ParsingFailedError
from .models import CustomResource, Labeled
from .patch import PatchOperation, pending_label

log = logging.getLogger("aws-admission-controller")

FIRST_HA_RELEASE = semver.Version.parse("11.4.0")
FIRST_V1ALPHA3_RELEASE = semver.Version.parse("16.0.0")
FIRST_ORG_NAMESPACE_RELEASE = semver.Version.parse("16.0.0")
FIRST_CILIUM_RELEASE = semver.Version.parse("18.0.0-alpha1")
FIRST_CAPI_RELEASE = semver.Version.parse("20.0.0-alpha1")

RELEASE_STATE_ACTIVE = "active"
RELEASE_STATE_DEPRECATED = "deprecated"

VersionLike = Union[str, semver.Version]


def parse_version(value: VersionLike) -> semver.Version:
    if isinstance(value, semver.Version):
        return value
    if not isinstance(value, str) or not value:
        raise ParsingFailedError("release version is empty")
    try:
        return semver.Version.parse(value[1:] if value.startswith("v") else value)
    except (ValueError, TypeError):
        raise ParsingFailedError(f"unable to parse release version {value!r}")


def release_version(obj: CustomResource, pending: Sequence[PatchOperation] = ()) -> semver.Version:
    """Release of ``obj``, preferring a value an earlier mutation rule proposed."""
    proposed = pending_label(obj.raw, pending, label.RELEASE)
    if proposed:
        return parse_version(proposed)
    value = key.release(obj)
    if not value:
        raise ParsingFailedError(f"label {label.RELEASE} is missing")
    return parse_version(value)


def is_ha_version(version: VersionLike) -> bool:
    return parse_version(version) >= FIRST_HA_RELEASE


def is_v1alpha3_ready(version: VersionLike) -> bool:
    return parse_version(version) >= FIRST_V1ALPHA3_RELEASE


def is_org_namespace_version(version: VersionLike) -> bool:
    return parse_version(version) >= FIRST_ORG_NAMESPACE_RELEASE


def is_cilium_release(version: VersionLike) -> bool:
    return parse_version(version) >= FIRST_CILIUM_RELEASE


def is_capi_version(version: VersionLike) -> bool:
    return parse_version(version) >= FIRST_CAPI_RELEASE


def is_version_production_ready(version: VersionLike) -> bool:
    v = parse_version(version)
    return not v.prerelease and not v.build


def is_capi_release(obj: Labeled) -> bool:
    """Whether ``obj`` belongs to the CAPI controller family; no release label means no."""
    value = key.release(obj)
    if not value:
        return False
    return is_capi_version(value)


def release_name(version: VersionLike) -> str:
    return f"v{parse_version(version)}"


def release_state(release: CustomResource) -> str:
    return str(release.spec.get("state", ""))


def release_component(release: CustomResource, name: str) -> str:
    for component in release.spec.get("components") or []:
        if isinstance(component, dict) and component.get("name") == name:
            return str(component.get("version", ""))
    return ""


def newest_active_release(releases: Iterable[CustomResource]) -> Optional[semver.Version]:
    """Highest active, production-ready release not managed by the CAPI controllers."""
    newest = None
    for release in releases:
        if release_state(release) != RELEASE_STATE_ACTIVE:
            continue
        try:
            v = parse_version(release.name)
        except ParsingFailedError:
            log.debug("Ignoring release with unparsable name %r", release.name)
            continue
        if not is_version_production_ready(v) or is_capi_version(v):
            continue
        if newest is None or v > newest:
            newest = v
    return newest


def validate_release_upgrade(
    current: semver.Version, target: semver.Version, release: Optional[CustomResource]
) -> None:
    """Raise NotAllowedError when moving from ``current`` to ``target`` is not supported.

    ``release`` is the Release resource of ``target`` or None when it does not
    exist.
    """
    if current == target:
        return
    if target.major < current.major:
        raise NotAllowedError(
            f"Upgrade from {current} to {target} is a major downgrade and is not supported."
        )
    if target.major > current.major + 1:
        raise NotAllowedError(
            f"Upgrade from {current} to {target} skips major release versions and is not supported."
        )
    if release is None:
        raise NotAllowedError(f"Release {release_name(target)} does not exist.")
    if release_state(release) == RELEASE_STATE_DEPRECATED:
        raise NotAllowedError(f"Release {release_name(target)} is deprecated.")
