"""
Minimal models for Kubernetes AdmissionReview and the custom resources this
webhook inspects. We parse only the fields we need and ignore unknowns so that
new Kubernetes fields don't break the controller.

References:
- AdmissionReview request/response shape:
  https://kubernetes.io/docs/reference/access-authn-authz/extensible-admission-controllers/#request-and-response
- ObjectMeta (meta/v1) API reference:
  https://kubernetes.io/docs/reference/kubernetes-api/common-definitions/object-meta/
"""

from dataclasses import dataclass, field
from typing import Any, Optional, Protocol

CREATE = "CREATE"
UPDATE = "UPDATE"


def _get(d: dict[str, Any], key: str, default):
    # Safe nested getter for dicts
    v = d.get(key)
    return v if isinstance(v, type(default)) else default


class Labeled(Protocol):
    labels: dict[str, str]


class Annotated(Protocol):
    annotations: dict[str, str]


@dataclass
class CustomResource:
    """Read-only view of a custom resource: metadata plus spec and status."""

    api_version: str
    kind: str
    name: str
    namespace: str
    labels: dict[str, str]
    annotations: dict[str, str]
    spec: dict[str, Any]
    status: dict[str, Any]
    uid: str = ""
    resource_version: str = ""
    deletion_timestamp: Optional[str] = None
    raw: dict[str, Any] = field(default_factory=dict, repr=False)

    @property
    def deleting(self) -> bool:
        return bool(self.deletion_timestamp)

    def get(self, *path: str, default=None):
        """Nested lookup into the raw object, e.g. ``get("spec", "replicas")``."""
        node: Any = self.raw
        for segment in path:
            if not isinstance(node, dict) or segment not in node:
                return default
            node = node[segment]
        return default if node is None else node

    def reference(self) -> dict[str, str]:
        ref = {
            "apiVersion": self.api_version,
            "kind": self.kind,
            "name": self.name,
            "namespace": self.namespace,
        }
        if self.uid:
            ref["uid"] = self.uid
        if self.resource_version:
            ref["resourceVersion"] = self.resource_version
        return ref

    @staticmethod
    def from_dict(d: dict[str, Any]) -> "CustomResource":
        meta = _get(d, "metadata", {})
        return CustomResource(
            api_version=_get(d, "apiVersion", ""),
            kind=_get(d, "kind", ""),
            name=_get(meta, "name", ""),
            namespace=_get(meta, "namespace", ""),
            labels=_get(meta, "labels", {}),
            annotations=_get(meta, "annotations", {}),
            spec=_get(d, "spec", {}),
            status=_get(d, "status", {}),
            uid=_get(meta, "uid", ""),
            resource_version=_get(meta, "resourceVersion", ""),
            deletion_timestamp=meta.get("deletionTimestamp") or None,
            raw=d,
        )


@dataclass
class UserInfo:
    username: str
    groups: list[str]

    @staticmethod
    def from_dict(d: dict[str, Any]) -> "UserInfo":
        groups = _get(d, "groups", [])
        return UserInfo(
            username=_get(d, "username", ""),
            groups=[str(g) for g in groups],
        )


@dataclass
class GroupVersionKind:
    group: str
    version: str
    kind: str


@dataclass
class AdmissionRequestModel:
    uid: str
    kind: GroupVersionKind
    name: str
    namespace: str
    operation: str
    obj: Any
    old_obj: Any
    dry_run: bool
    user: UserInfo

    @staticmethod
    def from_dict(d: dict[str, Any]) -> Optional["AdmissionRequestModel"]:
        if not isinstance(d, dict):
            return None
        uid = d.get("uid")
        kind = d.get("kind")
        if not isinstance(uid, str) or not uid or not isinstance(kind, dict):
            return None
        if not isinstance(kind.get("kind"), str):
            return None
        return AdmissionRequestModel(
            uid=uid,
            kind=GroupVersionKind(
                group=_get(kind, "group", ""),
                version=_get(kind, "version", ""),
                kind=kind["kind"],
            ),
            name=_get(d, "name", ""),
            namespace=_get(d, "namespace", ""),
            operation=str(d.get("operation", CREATE)),
            # Objects stay raw here; each handler decodes and rejects its own kind.
            obj=d.get("object"),
            old_obj=d.get("oldObject"),
            dry_run=d.get("dryRun") is True,
            user=UserInfo.from_dict(_get(d, "userInfo", {})),
        )


@dataclass
class AdmissionReviewModel:
    api_version: str
    request: AdmissionRequestModel

    @staticmethod
    def from_dict(d: dict[str, Any]) -> Optional["AdmissionReviewModel"]:
        if not isinstance(d, dict):
            return None
        req = AdmissionRequestModel.from_dict(d.get("request", {}))
        if req is None:
            return None
        return AdmissionReviewModel(
            api_version=_get(d, "apiVersion", "admission.k8s.io/v1"),
            request=req,
        )
