import os
from dataclasses import dataclass

from .errors import InvalidConfigError


def _get_env(name: str, default: str) -> str:
    val = os.getenv(name)
    return val if val is not None and val != "" else default


def _parse_int(name: str, default: int) -> int:
    val = _get_env(name, str(default))
    try:
        return int(val)
    except ValueError:
        return default


def _parse_float(name: str, default: float) -> float:
    val = _get_env(name, str(default))
    try:
        return float(val)
    except ValueError:
        return default


def _parse_list(name: str, default: str = "") -> tuple[str, ...]:
    # Comma separated; blanks dropped, duplicates removed keeping the first
    items = (item.strip() for item in _get_env(name, default).split(","))
    return tuple(dict.fromkeys(item for item in items if item))


@dataclass(frozen=True)
class Settings:
    app_env: str = "production"

    # Server
    listen_host: str = "0.0.0.0"
    listen_port: int = 8443
    tls_cert_file: str = "tls/tls.crt"
    tls_key_file: str = "tls/tls.key"

    # Installation
    availability_zones: tuple[str, ...] = ()
    master_instance_types: tuple[str, ...] = ()
    worker_instance_types: tuple[str, ...] = ()
    default_master_instance_type: str = "m5.xlarge"
    pod_cidr: str = ""
    ipam_network_cidr: str = ""
    cilium_default_pod_cidr: str = ""
    docker_cidr: str = ""
    kubernetes_cluster_ip_range: str = ""
    dns_domain: str = ""

    # Identities subject to label and upgrade policy
    label_admins: tuple[str, ...] = ("system:serviceaccount:giantswarm:api",)
    admin_group: str = ""

    # Kubernetes API access
    retry_attempts: int = 3
    retry_delay_seconds: float = 0.01
    request_timeout_seconds: float = 5

    @property
    def restricted_groups(self) -> tuple[str, ...]:
        return (self.admin_group,) if self.admin_group else ()

    def validate(self) -> None:
        """Raise InvalidConfigError for settings the controller cannot run with."""
        if not self.availability_zones:
            raise InvalidConfigError("AVAILABILITY_ZONES must list at least one zone")
        if not self.master_instance_types:
            raise InvalidConfigError("MASTER_INSTANCE_TYPES must list at least one instance type")
        if not self.worker_instance_types:
            raise InvalidConfigError("WORKER_INSTANCE_TYPES must list at least one instance type")
        if self.retry_attempts < 1:
            raise InvalidConfigError("RESOLVER_RETRY_ATTEMPTS must be at least 1")
        if self.retry_delay_seconds < 0:
            raise InvalidConfigError("RESOLVER_RETRY_DELAY_SECONDS must not be negative")
        if not (self.tls_cert_file and self.tls_key_file):
            raise InvalidConfigError("TLS_CERT_FILE and TLS_KEY_FILE are required")


def load() -> Settings:
    return Settings(
        app_env=_get_env("APP_ENV", "production"),
        listen_host=_get_env("LISTEN_HOST", "0.0.0.0"),
        listen_port=_parse_int("PORT", 8443),
        tls_cert_file=_get_env("TLS_CERT_FILE", "tls/tls.crt"),
        tls_key_file=_get_env("TLS_KEY_FILE", "tls/tls.key"),
        availability_zones=_parse_list("AVAILABILITY_ZONES"),
        master_instance_types=_parse_list("MASTER_INSTANCE_TYPES"),
        worker_instance_types=_parse_list("WORKER_INSTANCE_TYPES"),
        default_master_instance_type=_get_env("DEFAULT_MASTER_INSTANCE_TYPE", "m5.xlarge"),
        pod_cidr=_get_env("POD_CIDR", ""),
        ipam_network_cidr=_get_env("IPAM_NETWORK_CIDR", ""),
        cilium_default_pod_cidr=_get_env("CILIUM_DEFAULT_POD_CIDR", ""),
        docker_cidr=_get_env("DOCKER_CIDR", ""),
        kubernetes_cluster_ip_range=_get_env("KUBERNETES_CLUSTER_IP_RANGE", ""),
        dns_domain=_get_env("DNS_DOMAIN", ""),
        label_admins=_parse_list("LABEL_ADMINS", "system:serviceaccount:giantswarm:api"),
        admin_group=_get_env("ADMIN_GROUP", ""),
        retry_attempts=_parse_int("RESOLVER_RETRY_ATTEMPTS", 3),
        retry_delay_seconds=_parse_float("RESOLVER_RETRY_DELAY_SECONDS", 0.01),
        request_timeout_seconds=_parse_float("K8S_REQUEST_TIMEOUT_SECONDS", 5),
    )


# Singleton settings for app usage (optional in tests)
settings: Settings = load()
