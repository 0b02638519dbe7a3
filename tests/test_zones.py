import random
from collections import Counter

import pytest

from aws_admission_controller.zones import (
	allocate_ha_zones,
	allocate_zones,
	has_max_distinct_zones,
	zone_order_changed,
	zones_are_valid,
)

VALID = ["eu-central-1a", "eu-central-1b", "eu-central-1c"]


@pytest.mark.parametrize("n", [0, 1, 2, 3, 4, 6, 7])
def test_allocate_zones_count_and_fairness(n):
	for seed in range(20):
		zones = allocate_zones(n, VALID, random.Random(seed))
		assert len(zones) == n
		assert zones == sorted(zones)
		assert zones_are_valid(zones, VALID)
		assert len(set(zones)) == min(n, len(VALID))
		counts = Counter(zones).values()
		if counts:
			assert max(counts) - min(counts) <= 1


def test_allocate_zones_spreads_over_seeds():
	seen = {tuple(allocate_zones(1, VALID, random.Random(seed))) for seed in range(50)}
	assert len(seen) == 3


def test_allocate_zones_without_valid_zones():
	assert allocate_zones(3, [], random.Random(0)) == []


def test_allocate_ha_zones_pins_first():
	for seed in range(20):
		zones = allocate_ha_zones("eu-central-1b", VALID, random.Random(seed))
		assert zones[0] == "eu-central-1b"
		assert len(zones) == 3
		assert len(set(zones)) == 3


def test_allocate_ha_zones_with_two_valid():
	zones = allocate_ha_zones("a", ["a", "b"], random.Random(3))
	assert zones[:2] == ["a", "b"]
	assert zones[2] in ("a", "b")


def test_allocate_ha_zones_with_single_valid():
	assert allocate_ha_zones("a", ["a"], random.Random(0)) == ["a", "a", "a"]


def test_has_max_distinct_zones():
	assert has_max_distinct_zones(["a", "b", "c"], VALID)
	assert has_max_distinct_zones(["a", "a", "a"], ["a"])
	assert not has_max_distinct_zones(["a", "a", "b"], ["a", "b", "c"])


def test_zone_order_changed():
	assert not zone_order_changed(["a"], ["a", "b", "c"])
	assert not zone_order_changed(["a", "b", "c"], ["a", "b", "c"])
	assert zone_order_changed(["a", "b", "c"], ["b", "a", "c"])
	assert zone_order_changed(["a"], ["b", "a", "c"])
	# Replacing a zone outright is not a reorder
	assert not zone_order_changed(["a", "b"], ["a", "c"])
