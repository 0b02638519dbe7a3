import dataclasses

import pytest

from aws_admission_controller.app import create_app
from aws_admission_controller.kinds import ResourceKind

from k8s_fakes import admission_review, resource


def network_pool(name="pool1", cidr="10.5.0.0/16"):
	return resource(ResourceKind.NETWORK_POOL, name, spec={"cidrBlock": cidr})


@pytest.fixture
def pool_client(settings, api, rng_factory):
	conf = dataclasses.replace(
		settings,
		ipam_network_cidr="10.1.0.0/16",
		docker_cidr="172.17.0.1/16",
		kubernetes_cluster_ip_range="172.31.0.0/16",
	)
	return create_app(conf, api, rng_factory=rng_factory).test_client()


def validate(client, obj, **kwargs):
	review = admission_review("uid", ResourceKind.NETWORK_POOL, obj, **kwargs)
	return client.post("/validate", json=review).get_json()["response"]


def test_disjoint_pool_is_allowed(pool_client, api):
	api.add(ResourceKind.NETWORK_POOL, network_pool("other", "10.6.0.0/16"))
	assert validate(pool_client, network_pool())["allowed"] is True


def test_pool_overlapping_another_pool_is_denied(pool_client, api):
	api.add(ResourceKind.NETWORK_POOL, network_pool("other", "10.5.128.0/24"))
	out = validate(pool_client, network_pool())
	assert out["allowed"] is False
	assert out["status"]["message"] == "network pool 10.5.0.0/16 intersect with an existing CIDR 10.5.128.0/24"


@pytest.mark.parametrize(
	"cidr, taken",
	[
		("10.1.64.0/18", "10.1.0.0/16"),
		("172.16.0.0/12", "172.17.0.0/16"),
		("172.31.10.0/24", "172.31.0.0/16"),
	],
)
def test_pool_overlapping_installation_ranges_is_denied(pool_client, cidr, taken):
	out = validate(pool_client, network_pool(cidr=cidr))
	assert out["allowed"] is False
	assert out["status"]["message"].endswith(f"intersect with an existing CIDR {taken}")


def test_update_does_not_compare_pool_with_itself(pool_client, api):
	stored = api.add(ResourceKind.NETWORK_POOL, network_pool())
	out = validate(pool_client, network_pool(), operation="UPDATE", old=stored)
	assert out["allowed"] is True


def test_invalid_cidr_block_is_denied(pool_client):
	out = validate(pool_client, network_pool(cidr="10.5.0.0/33"))
	assert out["allowed"] is False
	assert "is not valid" in out["status"]["message"]


def test_unset_installation_ranges_are_skipped(client):
	assert validate(client, network_pool(cidr="10.1.0.0/16"))["allowed"] is True
