"""
JSON Patch (RFC 6902) operations emitted by the mutating webhooks.

Paths are JSON Pointers (RFC 6901) built with ``jsonpointer``, and proposed
patches are applied with ``jsonpatch``. Only ``add`` and ``replace`` on
object members are produced.
"""

from dataclasses import dataclass
from typing import Any, Iterable, Optional, Sequence

import jsonpatch
from jsonpointer import JsonPointer

ADD = "add"
REPLACE = "replace"

_EMPTY = (None, "", [], {})


def json_pointer(*segments: str) -> str:
    return JsonPointer.from_parts([str(s) for s in segments]).path


def label_path(label: str) -> str:
    return json_pointer("metadata", "labels", label)


@dataclass(frozen=True)
class PatchOperation:
    op: str
    path: str
    value: Any = None

    def to_dict(self) -> dict[str, Any]:
        return {"op": self.op, "path": self.path, "value": self.value}


def patch_add(path: str, value: Any) -> PatchOperation:
    return PatchOperation(ADD, path, value)


def patch_replace(path: str, value: Any) -> PatchOperation:
    return PatchOperation(REPLACE, path, value)


def to_json_list(patch: Iterable[PatchOperation]) -> list[dict[str, Any]]:
    return [op.to_dict() for op in patch]


def resolve(raw: Any, segments: Sequence[str], default=None):
    return JsonPointer.from_parts([str(s) for s in segments]).resolve(raw, default)


def apply(raw: dict[str, Any], patch: Iterable[PatchOperation]) -> dict[str, Any]:
    """Copy of ``raw`` with the operations applied; ``raw`` itself is left alone."""
    return jsonpatch.apply_patch(raw, to_json_list(patch), in_place=False)


def put(raw: dict[str, Any], segments: Sequence[str], value: Any) -> PatchOperation:
    """An operation that sets ``value`` at ``segments`` of ``raw``.

    JSON Patch ``add`` needs the parent to exist, so when an intermediate
    object is missing the operation adds the nested structure at the first
    missing segment instead.
    """
    segments = [str(s) for s in segments]
    node: Any = raw
    for i, segment in enumerate(segments[:-1]):
        if not isinstance(node.get(segment), dict):
            nested = value
            for inner in reversed(segments[i + 1:]):
                nested = {inner: nested}
            return patch_add(json_pointer(*segments[: i + 1]), nested)
        node = node[segment]
    if segments[-1] in node:
        return patch_replace(json_pointer(*segments), value)
    return patch_add(json_pointer(*segments), value)


def set_default(raw: dict[str, Any], segments: Sequence[str], value: Any) -> Optional[PatchOperation]:
    """Like ``put`` but only when nothing meaningful is set there yet."""
    if resolve(raw, segments) not in _EMPTY:
        return None
    return put(raw, segments, value)


def set_label(raw: dict[str, Any], label: str, value: str) -> Optional[PatchOperation]:
    """Set a label unless it already carries ``value``."""
    if resolve(raw, ("metadata", "labels", label)) == value:
        return None
    return put(raw, ("metadata", "labels", label), value)


def pending_label(raw: dict[str, Any], patch: Sequence[PatchOperation], label: str) -> Optional[str]:
    """Label value proposed by an earlier rule of the same request, if any."""
    if not patch:
        return None
    before = resolve(raw, ("metadata", "labels", label))
    after = resolve(apply(raw, patch), ("metadata", "labels", label))
    return after if after != before else None
