"""
Copyright Amazon.com, Inc. or its affiliates. All Rights Reserved.
SPDX-License-Identifier: MIT-0
"""
import logging
import os
import random

from flask import Flask
from kubernetes import client, config

from .codec import AdmissionCodec
from .config import Settings, settings
from .registry import build_registry
from .resolver import ResourceResolver, RetryPolicy
from .routes import create_routes

logging.basicConfig(
    level=os.getenv("LOG_LEVEL", "INFO").upper(),
    format="%(asctime)s %(levelname)s %(message)s",
)
log = logging.getLogger("aws-admission-controller")


def create_app(conf: Settings, custom_api, rng_factory=random.Random) -> Flask:
    if conf.app_env != "test":
        conf.validate()
    resolver = ResourceResolver(
        custom_api,
        RetryPolicy(conf.retry_attempts, conf.retry_delay_seconds),
        request_timeout=conf.request_timeout_seconds,
    )
    registry = build_registry(conf, resolver, rng_factory)

    flask_app = Flask(__name__)
    flask_app.register_blueprint(create_routes(AdmissionCodec(), registry))
    return flask_app


# Initialize Kubernetes client; avoid constructing real client in tests
if settings.app_env == "test":
    custom_api = None
else:
    config.load_incluster_config()
    custom_api = client.CustomObjectsApi()

app = create_app(settings, custom_api)

if __name__ == "__main__":
    log.info(
        "Starting admission controller on %s:%s (zones=%s)",
        settings.listen_host,
        settings.listen_port,
        ",".join(settings.availability_zones),
    )
    app.run(
        host=settings.listen_host,
        port=settings.listen_port,
        ssl_context=(settings.tls_cert_file, settings.tls_key_file),
    )
