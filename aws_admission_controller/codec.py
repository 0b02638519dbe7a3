"""
Encoding and decoding of AdmissionReview envelopes.

References:
- https://kubernetes.io/docs/reference/access-authn-authz/extensible-admission-controllers/#response
"""

import base64
import json
from typing import Iterable

from .errors import ExecutionFailedError, ParsingFailedError
from .models import AdmissionReviewModel
from .patch import PatchOperation, to_json_list

DEFAULT_API_VERSION = "admission.k8s.io/v1"
PATCH_TYPE = "JSONPatch"


class AdmissionCodec:
    def decode(self, body: bytes) -> AdmissionReviewModel:
        try:
            payload = json.loads(body)
        except (ValueError, TypeError) as e:
            raise ParsingFailedError(f"unable to decode admission review: {e}")
        review = AdmissionReviewModel.from_dict(payload)
        if review is None:
            raise ParsingFailedError("admission review is missing a valid request")
        return review

    def _envelope(self, uid: str, allowed: bool, api_version: str = DEFAULT_API_VERSION) -> dict:
        return {
            "apiVersion": api_version,
            "kind": "AdmissionReview",
            "response": {"uid": uid, "allowed": allowed},
        }

    def encode_patch(
        self, uid: str, patch: Iterable[PatchOperation], api_version: str = DEFAULT_API_VERSION
    ) -> dict:
        """Allowed response; carries the base64 JSON patch when there is one."""
        out = self._envelope(uid, True, api_version)
        ops = to_json_list(patch)
        if ops:
            try:
                encoded = json.dumps(ops).encode()
            except (TypeError, ValueError) as e:
                raise ExecutionFailedError(f"unable to serialize patch: {e}")
            out["response"]["patchType"] = PATCH_TYPE
            out["response"]["patch"] = base64.b64encode(encoded).decode()
        return out

    def encode_decision(
        self, uid: str, allowed: bool, reason: str = "", api_version: str = DEFAULT_API_VERSION
    ) -> dict:
        out = self._envelope(uid, allowed, api_version)
        if reason:
            out["response"]["status"] = {"message": reason}
        return out

    def encode_error(self, uid: str, message: str, api_version: str = DEFAULT_API_VERSION) -> dict:
        return self.encode_decision(uid, False, message, api_version)
