import jsonpatch

from aws_admission_controller import label
from aws_admission_controller.patch import (
	apply,
	json_pointer,
	label_path,
	patch_add,
	pending_label,
	put,
	set_default,
	set_label,
	to_json_list,
)


def test_json_pointer_escapes_segments():
	assert json_pointer("metadata", "labels", "release.giantswarm.io/version") == (
		"/metadata/labels/release.giantswarm.io~1version"
	)
	assert json_pointer("a~b/c") == "/a~0b~1c"
	assert json_pointer("spec", "replicas") == "/spec/replicas"


def test_label_path_escapes_slash():
	assert label_path(label.RELEASE) == "/metadata/labels/release.giantswarm.io~1version"


def test_put_adds_missing_parents_at_first_missing_segment():
	op = put({"spec": {}}, ("spec", "provider", "pods", "cidrBlock"), "10.2.0.0/16")
	assert op.op == "add"
	assert op.path == "/spec/provider"
	assert op.value == {"pods": {"cidrBlock": "10.2.0.0/16"}}


def test_put_replaces_existing_member():
	op = put({"spec": {"replicas": 0}}, ("spec", "replicas"), 3)
	assert (op.op, op.path, op.value) == ("replace", "/spec/replicas", 3)


def test_put_output_applies_with_jsonpatch():
	raw = {"metadata": {"name": "x"}, "spec": {}}
	ops = [
		put(raw, ("spec", "provider", "pods", "cidrBlock"), "10.2.0.0/16"),
		put(raw, ("metadata", "annotations", "cilium.giantswarm.io/pod-cidr"), "192.168.0.0/16"),
	]
	patched = jsonpatch.apply_patch(raw, to_json_list(ops))
	assert patched["spec"]["provider"]["pods"]["cidrBlock"] == "10.2.0.0/16"
	assert patched["metadata"]["annotations"] == {"cilium.giantswarm.io/pod-cidr": "192.168.0.0/16"}
	assert raw == {"metadata": {"name": "x"}, "spec": {}}


def test_apply_leaves_input_untouched():
	raw = {"metadata": {"labels": {"a": "1"}}}
	out = apply(raw, [put(raw, ("metadata", "labels", "a"), "2")])
	assert out["metadata"]["labels"]["a"] == "2"
	assert raw["metadata"]["labels"]["a"] == "1"


def test_set_default_keeps_existing_value():
	assert set_default({"spec": {"instanceType": "m5.2xlarge"}}, ("spec", "instanceType"), "m5.xlarge") is None
	op = set_default({"spec": {"instanceType": ""}}, ("spec", "instanceType"), "m5.xlarge")
	assert op.value == "m5.xlarge"


def test_set_label_creates_label_map_once():
	raw = {"metadata": {"name": "x"}}
	first = set_label(raw, "a", "1")
	assert first.path == "/metadata/labels"
	second = set_label(apply(raw, [first]), "b", "2")
	assert second.path == "/metadata/labels/b"
	assert set_label(apply(raw, [first, second]), "b", "2") is None


def test_pending_label_sees_both_forms():
	raw = {"metadata": {}}
	ops = [patch_add("/metadata/labels", {label.RELEASE: "16.0.0"})]
	assert pending_label(raw, ops, label.RELEASE) == "16.0.0"
	ops.append(patch_add(label_path(label.RELEASE), "17.0.0"))
	assert pending_label(raw, ops, label.RELEASE) == "17.0.0"
	assert pending_label(raw, [], label.RELEASE) is None


def test_pending_label_ignores_unchanged_value():
	raw = {"metadata": {"labels": {label.RELEASE: "16.0.0"}}}
	ops = [patch_add(label_path("other"), "x")]
	assert pending_label(raw, ops, label.RELEASE) is None
