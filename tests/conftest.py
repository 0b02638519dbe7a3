import os
import random

import pytest

# Prevent real in-cluster config when the app module is imported
os.environ.setdefault("APP_ENV", "test")
os.environ.setdefault("LOG_LEVEL", "WARNING")

from aws_admission_controller.config import Settings  # noqa: E402
from aws_admission_controller.models import AdmissionReviewModel  # noqa: E402
from aws_admission_controller.resolver import ResourceResolver, RetryPolicy  # noqa: E402

from k8s_fakes import ADMIN, ZONES, FakeCustomObjectsApi  # noqa: E402


@pytest.fixture
def settings() -> Settings:
	return Settings(
		app_env="test",
		availability_zones=ZONES,
		master_instance_types=("m5.xlarge", "m5.2xlarge"),
		worker_instance_types=("m5.xlarge", "m5.2xlarge", "r5.xlarge"),
		label_admins=(ADMIN,),
		admin_group="giantswarm-admins",
		retry_attempts=3,
		retry_delay_seconds=0,
	)


@pytest.fixture
def api() -> FakeCustomObjectsApi:
	return FakeCustomObjectsApi()


@pytest.fixture
def sleeps():
	return []


@pytest.fixture
def resolver(api, sleeps) -> ResourceResolver:
	return ResourceResolver(api, RetryPolicy(attempts=3, delay_seconds=0.01), sleep=sleeps.append)


@pytest.fixture
def rng_factory():
	return lambda: random.Random(1234)


@pytest.fixture
def to_request():
	def _convert(review):
		model = AdmissionReviewModel.from_dict(review)
		assert model is not None
		return model.request

	return _convert


@pytest.fixture
def client(settings, api, rng_factory):
	from aws_admission_controller.app import create_app

	return create_app(settings, api, rng_factory=rng_factory).test_client()
