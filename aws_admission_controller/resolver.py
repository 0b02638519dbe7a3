"""
Lookups of peer custom resources through the Kubernetes custom objects API.

Every call is retried a fixed number of times with a fixed delay. The outcome
of a lookup is a Resolution that distinguishes a resource that was found, one
that does not exist (yet), and a lookup that failed for another reason. Only
the caller knows whether a missing peer is acceptable, so the resolver never
decides that on its own.
"""

import copy
import enum
import logging
import time
from dataclasses import dataclass
from typing import Any, Callable, Optional

from kubernetes.client.rest import ApiException

from . import label
from .errors import ExecutionFailedError, NotFoundError
from .kinds import ResourceKind
from .models import CustomResource

log = logging.getLogger("aws-admission-controller")


@dataclass(frozen=True)
class RetryPolicy:
    attempts: int = 3
    delay_seconds: float = 0.01


@dataclass(frozen=True)
class ResourceReference:
    kind: ResourceKind
    namespace: str
    name: str

    def __str__(self) -> str:
        if self.kind.namespaced:
            return f"{self.kind.kind} {self.namespace}/{self.name}"
        return f"{self.kind.kind} {self.name}"


class ResolutionStatus(enum.Enum):
    FOUND = "found"
    NOT_YET_CREATED = "not-yet-created"
    ERROR = "error"


@dataclass
class Resolution:
    status: ResolutionStatus
    description: str
    resource: Optional[CustomResource] = None
    error: Optional[BaseException] = None

    @property
    def found(self) -> bool:
        return self.status is ResolutionStatus.FOUND

    def optional(self) -> Optional[CustomResource]:
        """The resource, or None when it does not exist. Lookup failures still raise."""
        if self.status is ResolutionStatus.ERROR:
            raise ExecutionFailedError(f"failed to fetch {self.description}: {self.error}") from self.error
        return self.resource

    def require(self) -> CustomResource:
        """The resource; a missing one is a NotFoundError."""
        resource = self.optional()
        if resource is None:
            raise NotFoundError(f"{self.description} not found")
        return resource


class ResourceResolver:
    def __init__(
        self,
        api,
        policy: RetryPolicy,
        request_timeout: Optional[float] = None,
        sleep: Callable[[float], None] = time.sleep,
    ):
        self.api = api
        self.policy = policy
        self.request_timeout = request_timeout
        self.sleep = sleep

    def _call(self, description: str, fn: Callable[..., Any], *args, **kwargs):
        """Run ``fn`` with retries; returns (result, None) or (None, last ApiException)."""
        if self.request_timeout:
            kwargs["_request_timeout"] = self.request_timeout
        last: Optional[ApiException] = None
        attempts = max(1, self.policy.attempts)
        for attempt in range(1, attempts + 1):
            try:
                return fn(*args, **kwargs), None
            except ApiException as e:
                last = e
                log.debug(
                    "Attempt %s/%s to fetch %s failed: status=%s reason=%s",
                    attempt,
                    attempts,
                    description,
                    e.status,
                    e.reason,
                )
                if attempt < attempts and self.policy.delay_seconds > 0:
                    self.sleep(self.policy.delay_seconds)
        return None, last

    def _resolution(self, description: str, result, error: Optional[ApiException]) -> Resolution:
        if error is None:
            return Resolution(ResolutionStatus.FOUND, description, CustomResource.from_dict(result))
        if error.status == 404:
            log.info("%s does not exist yet", description)
            return Resolution(ResolutionStatus.NOT_YET_CREATED, description)
        log.warning("Fetching %s failed: status=%s reason=%s", description, error.status, error.reason)
        return Resolution(ResolutionStatus.ERROR, description, error=error)

    def get(self, ref: ResourceReference) -> Resolution:
        kind = ref.kind
        if kind.namespaced:
            result, error = self._call(
                str(ref),
                self.api.get_namespaced_custom_object,
                kind.group,
                kind.version,
                ref.namespace,
                kind.plural,
                ref.name,
            )
        else:
            result, error = self._call(
                str(ref),
                self.api.get_cluster_custom_object,
                kind.group,
                kind.version,
                kind.plural,
                ref.name,
            )
        return self._resolution(str(ref), result, error)

    def find_by_cluster(self, kind: ResourceKind, cluster_id: str, namespace: str) -> Resolution:
        """The single resource of ``kind`` labelled with ``cluster_id`` in ``namespace``."""
        description = f"{kind.kind} of cluster {cluster_id!r} in namespace {namespace}"
        if not cluster_id:
            return Resolution(ResolutionStatus.NOT_YET_CREATED, description)
        result, error = self._call(
            description,
            self.api.list_namespaced_custom_object,
            kind.group,
            kind.version,
            namespace,
            kind.plural,
            label_selector=f"{label.CLUSTER}={cluster_id}",
        )
        if error is not None:
            return self._resolution(description, None, error)
        items = (result or {}).get("items") or []
        if not items:
            log.info("%s does not exist yet", description)
            return Resolution(ResolutionStatus.NOT_YET_CREATED, description)
        if len(items) > 1:
            return Resolution(
                ResolutionStatus.ERROR,
                description,
                error=ExecutionFailedError(f"expected one {kind.kind}, found {len(items)}"),
            )
        return Resolution(ResolutionStatus.FOUND, description, CustomResource.from_dict(items[0]))

    def get_release(self, version) -> Resolution:
        return self.get(ResourceReference(ResourceKind.RELEASE, "", f"v{version}"))

    def get_organization(self, name: str) -> Resolution:
        return self.get(ResourceReference(ResourceKind.ORGANIZATION, "", name))

    def list_all(self, kind: ResourceKind) -> list[CustomResource]:
        """Every resource of ``kind``, across all namespaces for namespaced kinds."""
        result, error = self._call(
            f"{kind.kind} list",
            self.api.list_cluster_custom_object,
            kind.group,
            kind.version,
            kind.plural,
        )
        if error is not None:
            raise ExecutionFailedError(f"failed to list {kind.plural}: {error.reason}") from error
        return [CustomResource.from_dict(item) for item in (result or {}).get("items") or []]

    def list_releases(self) -> list[CustomResource]:
        return self.list_all(ResourceKind.RELEASE)

    def update(self, ref: ResourceReference, change: Callable[[dict[str, Any]], Optional[dict[str, Any]]]) -> bool:
        """Re-read a sibling resource and write back ``change(fresh)``.

        Each attempt starts from a fresh read, so a write rejected because
        another client got there first (409) is redone against the newer
        object. ``change`` returns None when the fresh object no longer needs
        the update, in which case nothing is written. Returns whether a write
        happened.
        """
        kind = ref.kind
        kwargs = {"_request_timeout": self.request_timeout} if self.request_timeout else {}
        last: Optional[ApiException] = None
        attempts = max(1, self.policy.attempts)
        for attempt in range(1, attempts + 1):
            current = self.get(ref).optional()
            if current is None:
                log.info("%s is gone; nothing to update", ref)
                return False
            body = change(copy.deepcopy(current.raw))
            if body is None:
                log.info("%s is already up to date", ref)
                return False
            try:
                self.api.replace_namespaced_custom_object(
                    kind.group, kind.version, ref.namespace, kind.plural, ref.name, body, **kwargs
                )
            except ApiException as e:
                last = e
                log.debug(
                    "Attempt %s/%s to update %s failed: status=%s reason=%s",
                    attempt,
                    attempts,
                    ref,
                    e.status,
                    e.reason,
                )
                if attempt < attempts and self.policy.delay_seconds > 0:
                    self.sleep(self.policy.delay_seconds)
                continue
            log.info("Updated %s", ref)
            return True
        raise ExecutionFailedError(f"failed to update {ref}: {last.reason}") from last
