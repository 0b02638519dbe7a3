import pytest
import semver

from aws_admission_controller import label
from aws_admission_controller.errors import NotAllowedError, ParsingFailedError
from aws_admission_controller.kinds import ResourceKind
from aws_admission_controller.models import CustomResource
from aws_admission_controller.patch import label_path, patch_add
from aws_admission_controller.version import (
	is_capi_release,
	is_capi_version,
	is_cilium_release,
	is_ha_version,
	is_org_namespace_version,
	is_v1alpha3_ready,
	newest_active_release,
	parse_version,
	release_version,
	validate_release_upgrade,
)

from k8s_fakes import release, resource

V = semver.Version.parse


def labeled(**labels):
	return CustomResource.from_dict(resource(ResourceKind.CLUSTER, "c", labels=labels))


@pytest.mark.parametrize(
	"gate, threshold",
	[
		(is_ha_version, "11.4.0"),
		(is_v1alpha3_ready, "16.0.0"),
		(is_org_namespace_version, "16.0.0"),
		(is_cilium_release, "18.0.0-alpha1"),
		(is_capi_version, "20.0.0-alpha1"),
	],
)
def test_gates_are_monotonic(gate, threshold):
	versions = ["1.0.0", "11.3.9", "11.4.0", "15.9.9", "16.0.0", "17.5.0", "18.0.0-alpha1", "18.0.0", "19.3.0", "20.0.0-alpha1", "20.1.0", "25.0.0"]
	results = [gate(v) for v in versions]
	first = versions.index(threshold)
	assert results == [False] * first + [True] * (len(versions) - first)


def test_gates_raise_parsing_failed_on_garbage():
	with pytest.raises(ParsingFailedError):
		is_ha_version("not-a-version")
	with pytest.raises(ParsingFailedError):
		is_ha_version("")


def test_parse_version_accepts_v_prefix():
	assert parse_version("v16.1.0") == V("16.1.0")


def test_release_version_prefers_pending_patch():
	obj = labeled(**{label.RELEASE: "15.0.0"})
	assert release_version(obj) == V("15.0.0")
	pending = [patch_add(label_path(label.RELEASE), "16.2.0")]
	assert release_version(obj, pending) == V("16.2.0")


def test_release_version_missing_label():
	with pytest.raises(ParsingFailedError):
		release_version(labeled())


def test_is_capi_release_without_label():
	assert not is_capi_release(labeled())
	assert is_capi_release(labeled(**{label.RELEASE: "20.0.0"}))


def test_newest_active_release_skips_capi_prerelease_and_inactive():
	releases = [
		CustomResource.from_dict(r)
		for r in (
			release("16.0.0"),
			release("17.1.0"),
			release("18.0.0", state="deprecated"),
			release("17.2.0-beta1"),
			release("20.0.0"),
		)
	]
	assert newest_active_release(releases) == V("17.1.0")
	assert newest_active_release([]) is None


@pytest.mark.parametrize(
	"current, target, message",
	[
		("3.0.0", "2.9.0", "major downgrade"),
		("3.0.0", "5.0.0", "skips major release versions"),
	],
)
def test_validate_release_upgrade_rejects_major_jumps(current, target, message):
	with pytest.raises(NotAllowedError, match=message):
		validate_release_upgrade(V(current), V(target), CustomResource.from_dict(release(target)))


def test_validate_release_upgrade_rejects_deprecated_and_missing():
	deprecated = CustomResource.from_dict(release("3.2.0", state="deprecated"))
	with pytest.raises(NotAllowedError, match="Release v3.2.0 is deprecated."):
		validate_release_upgrade(V("3.0.0"), V("3.2.0"), deprecated)
	with pytest.raises(NotAllowedError, match="does not exist"):
		validate_release_upgrade(V("3.0.0"), V("3.2.0"), None)


def test_validate_release_upgrade_allows_next_major_and_noop():
	validate_release_upgrade(V("3.0.0"), V("4.0.0"), CustomResource.from_dict(release("4.0.0")))
	validate_release_upgrade(V("3.0.0"), V("3.0.0"), None)
