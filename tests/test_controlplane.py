import jsonpatch

from aws_admission_controller import label
from aws_admission_controller.kinds import ResourceKind

from k8s_fakes import ZONES, admission_review, cluster_labels, decode_patch, organization, resource


def control_plane_labels(release="16.1.0"):
	return cluster_labels(release=release, **{label.CONTROL_PLANE: "cp1"})


def g8s(replicas=0, release="16.1.0", **spec):
	return resource(ResourceKind.G8S_CONTROL_PLANE, "cp1", labels=control_plane_labels(release), spec={"replicas": replicas, **spec})


def aws_cp(zones=None, instance_type=None, release="16.1.0", annotations=None):
	spec = {}
	if zones is not None:
		spec["availabilityZones"] = zones
	if instance_type is not None:
		spec["instanceType"] = instance_type
	return resource(ResourceKind.AWS_CONTROL_PLANE, "cp1", labels=control_plane_labels(release), annotations=annotations, spec=spec)


def mutate(client, kind, obj, **kwargs):
	resp = client.post("/mutate", json=admission_review("uid", kind, obj, **kwargs))
	assert resp.status_code == 200
	body = resp.get_json()
	assert body["response"]["allowed"] is True, body
	return decode_patch(body) or []


def validate(client, kind, obj, **kwargs):
	return client.post("/validate", json=admission_review("uid", kind, obj, **kwargs)).get_json()["response"]


def test_ha_control_plane_defaults_without_peers(client):
	patch = mutate(client, ResourceKind.G8S_CONTROL_PLANE, g8s())
	assert patch == [{"op": "replace", "path": "/spec/replicas", "value": 3}]

	patch = mutate(client, ResourceKind.AWS_CONTROL_PLANE, aws_cp())
	assert {"op": "add", "path": "/spec/instanceType", "value": "m5.xlarge"} in patch
	zones = [op for op in patch if op["path"] == "/spec/availabilityZones"][0]["value"]
	assert zones == sorted(ZONES)


def test_pre_ha_release_defaults_to_single_replica(client):
	patch = mutate(client, ResourceKind.G8S_CONTROL_PLANE, g8s(release="11.3.0"))
	assert patch == [{"op": "replace", "path": "/spec/replicas", "value": 1}]


def test_replicas_follow_peer_zone_count_and_reference_is_set(client, api):
	api.add(ResourceKind.AWS_CONTROL_PLANE, aws_cp(zones=["eu-central-1a"], instance_type="m5.xlarge"))
	patch = mutate(client, ResourceKind.G8S_CONTROL_PLANE, g8s())
	assert patch[0] == {"op": "replace", "path": "/spec/replicas", "value": 1}
	assert patch[1]["path"] == "/spec/infrastructureRef"
	assert patch[1]["value"]["kind"] == "AWSControlPlane"
	assert patch[1]["value"]["name"] == "cp1"


def test_aws_control_plane_backfills_g8s_reference(client, api):
	api.add(ResourceKind.G8S_CONTROL_PLANE, g8s(replicas=1))
	patch = mutate(client, ResourceKind.AWS_CONTROL_PLANE, aws_cp())
	zones = [op for op in patch if op["path"] == "/spec/availabilityZones"][0]["value"]
	assert len(zones) == 1
	stored = api.stored(ResourceKind.G8S_CONTROL_PLANE, "org-acme", "cp1")
	assert stored["spec"]["infrastructureRef"]["name"] == "cp1"
	assert stored["spec"]["infrastructureRef"]["kind"] == "AWSControlPlane"


def test_scale_up_to_ha_keeps_existing_zone_first(client, api):
	api.add(ResourceKind.AWS_CONTROL_PLANE, aws_cp(zones=["eu-central-1b"], instance_type="m5.xlarge"))
	patch = mutate(client, ResourceKind.G8S_CONTROL_PLANE, g8s(replicas=3), operation="UPDATE", old=g8s(replicas=1))
	assert patch == []
	zones = api.stored(ResourceKind.AWS_CONTROL_PLANE, "org-acme", "cp1")["spec"]["availabilityZones"]
	assert zones[0] == "eu-central-1b"
	assert sorted(zones) == sorted(ZONES)


def test_pre_ha_control_plane_copies_master_from_aws_cluster(client, api):
	api.add(
		ResourceKind.AWS_CLUSTER,
		resource(
			ResourceKind.AWS_CLUSTER,
			"a1b2c",
			labels=cluster_labels(release="11.0.0"),
			spec={"provider": {"master": {"availabilityZone": "eu-central-1c", "instanceType": "m5.2xlarge"}}},
		),
	)
	patch = mutate(client, ResourceKind.AWS_CONTROL_PLANE, aws_cp(release="11.0.0"))
	assert {"op": "add", "path": "/spec/availabilityZones", "value": ["eu-central-1c"]} in patch
	assert {"op": "add", "path": "/spec/instanceType", "value": "m5.2xlarge"} in patch


def test_aws_control_plane_validation(client, api):
	api.add(ResourceKind.ORGANIZATION, organization())
	assert validate(client, ResourceKind.AWS_CONTROL_PLANE, aws_cp(zones=list(ZONES), instance_type="m5.xlarge"))["allowed"] is True

	out = validate(client, ResourceKind.AWS_CONTROL_PLANE, aws_cp(zones=list(ZONES[:2]), instance_type="m5.xlarge"))
	assert out["allowed"] is False
	assert "1 or 3 availability zones" in out["status"]["message"]

	out = validate(client, ResourceKind.AWS_CONTROL_PLANE, aws_cp(zones=["eu-central-1a", "eu-central-1a", "eu-central-1b"], instance_type="m5.xlarge"))
	assert out["allowed"] is False
	assert "distinct" in out["status"]["message"]

	out = validate(client, ResourceKind.AWS_CONTROL_PLANE, aws_cp(zones=["us-east-1a"], instance_type="m5.xlarge"))
	assert out["allowed"] is False

	out = validate(client, ResourceKind.AWS_CONTROL_PLANE, aws_cp(zones=["eu-central-1a"], instance_type="t2.nano"))
	assert out["allowed"] is False
	assert "instance type t2.nano" in out["status"]["message"]


def test_aws_control_plane_order_and_annotations(client, api):
	api.add(ResourceKind.ORGANIZATION, organization())
	old = aws_cp(zones=["eu-central-1a", "eu-central-1b", "eu-central-1c"], instance_type="m5.xlarge")
	new = aws_cp(zones=["eu-central-1b", "eu-central-1a", "eu-central-1c"], instance_type="m5.xlarge")
	out = validate(client, ResourceKind.AWS_CONTROL_PLANE, new, operation="UPDATE", old=old)
	assert out["allowed"] is False
	assert "order of AZs has changed" in out["status"]["message"]

	grown = aws_cp(zones=["eu-central-1a", "eu-central-1b", "eu-central-1c"], instance_type="m5.xlarge")
	single = aws_cp(zones=["eu-central-1a"], instance_type="m5.xlarge")
	assert validate(client, ResourceKind.AWS_CONTROL_PLANE, grown, operation="UPDATE", old=single)["allowed"] is True

	noisy = aws_cp(zones=["eu-central-1a"], instance_type="m5.xlarge", annotations={label.ETCD_VOLUME_IOPS: "100"})
	out = validate(client, ResourceKind.AWS_CONTROL_PLANE, noisy, operation="UPDATE", old=single)
	assert out["allowed"] is False
	assert label.ETCD_VOLUME_IOPS in out["status"]["message"]


def test_g8s_validation_against_peer(client, api):
	api.add(ResourceKind.ORGANIZATION, organization())
	assert validate(client, ResourceKind.G8S_CONTROL_PLANE, g8s(replicas=3))["allowed"] is True

	api.add(ResourceKind.AWS_CONTROL_PLANE, aws_cp(zones=["eu-central-1a"], instance_type="m5.xlarge"))
	out = validate(client, ResourceKind.G8S_CONTROL_PLANE, g8s(replicas=3))
	assert out["allowed"] is False
	assert "1 availability zones" in out["status"]["message"]


def test_g8s_create_requires_organization_and_namespace(client, api):
	out = validate(client, ResourceKind.G8S_CONTROL_PLANE, g8s(replicas=3))
	assert out["allowed"] is False
	assert "existing organization" in out["status"]["message"]

	api.add(ResourceKind.ORGANIZATION, organization())
	misplaced = g8s(replicas=3)
	misplaced["metadata"]["namespace"] = "default"
	out = validate(client, ResourceKind.G8S_CONTROL_PLANE, misplaced)
	assert out["allowed"] is False
	assert "Valid namespace for organization acme is org-acme" in out["status"]["message"]


def test_aws_control_plane_requires_organization(client):
	cp = aws_cp(zones=list(ZONES), instance_type="m5.xlarge")
	out = validate(client, ResourceKind.AWS_CONTROL_PLANE, cp)
	assert out["allowed"] is False
	assert "existing organization" in out["status"]["message"]

	out = validate(client, ResourceKind.AWS_CONTROL_PLANE, cp, operation="UPDATE", old=cp)
	assert out["allowed"] is False
	assert "existing organization" in out["status"]["message"]


def test_aws_control_plane_create_must_match_g8s_replicas(client, api):
	api.add(ResourceKind.ORGANIZATION, organization())
	api.add(ResourceKind.G8S_CONTROL_PLANE, g8s(replicas=1))
	cp = aws_cp(zones=list(ZONES), instance_type="m5.xlarge")

	out = validate(client, ResourceKind.AWS_CONTROL_PLANE, cp)
	assert out["allowed"] is False
	assert "G8sControlPlane cp1 with 1 replicas does not match AWSControlPlane cp1 with 3 availability zones" in out["status"]["message"]

	assert validate(client, ResourceKind.AWS_CONTROL_PLANE, cp, operation="UPDATE", old=cp)["allowed"] is True


def test_backfill_gives_way_to_a_reference_written_concurrently(client, api):
	api.add(ResourceKind.G8S_CONTROL_PLANE, g8s(replicas=3))
	theirs = {
		"apiVersion": ResourceKind.AWS_CONTROL_PLANE.api_version,
		"kind": ResourceKind.AWS_CONTROL_PLANE.kind,
		"name": "cp1-restored",
		"namespace": "org-acme",
	}
	api.write_concurrently(
		ResourceKind.G8S_CONTROL_PLANE, "org-acme", "cp1", lambda obj: obj["spec"].update(infrastructureRef=dict(theirs))
	)

	mutate(client, ResourceKind.AWS_CONTROL_PLANE, aws_cp())

	stored = api.stored(ResourceKind.G8S_CONTROL_PLANE, "org-acme", "cp1")
	assert stored["spec"]["infrastructureRef"] == theirs
	assert api.calls.count("replace_namespaced_custom_object") == 1


def test_g8s_then_aws_control_plane_end_to_end(client, api):
	api.add(ResourceKind.ORGANIZATION, organization())

	created = g8s()
	created = jsonpatch.apply_patch(created, mutate(client, ResourceKind.G8S_CONTROL_PLANE, created))
	assert created["spec"]["replicas"] == 3
	assert "infrastructureRef" not in created["spec"]
	assert validate(client, ResourceKind.G8S_CONTROL_PLANE, created)["allowed"] is True
	api.add(ResourceKind.G8S_CONTROL_PLANE, created)

	sibling = aws_cp()
	sibling = jsonpatch.apply_patch(sibling, mutate(client, ResourceKind.AWS_CONTROL_PLANE, sibling))
	assert sibling["spec"]["availabilityZones"] == sorted(ZONES)
	assert sibling["spec"]["instanceType"] == "m5.xlarge"
	assert validate(client, ResourceKind.AWS_CONTROL_PLANE, sibling)["allowed"] is True

	stored = api.stored(ResourceKind.G8S_CONTROL_PLANE, "org-acme", "cp1")
	assert stored["spec"]["replicas"] == 3
	assert stored["spec"]["infrastructureRef"] == {
		"apiVersion": ResourceKind.AWS_CONTROL_PLANE.api_version,
		"kind": "AWSControlPlane",
		"name": "cp1",
		"namespace": "org-acme",
	}
