import logging

from flask import Blueprint, jsonify, request

from .errors import INTERNAL_ERROR_MESSAGE, AdmissionError, ParsingFailedError
from .kinds import ResourceKind

log = logging.getLogger("aws-admission-controller")

JSON_CONTENT_TYPE = "application/json"


def create_routes(codec, registry):
    bp = Blueprint("webhook", __name__)

    @bp.route("/health", methods=["GET"])
    @bp.route("/healthz", methods=["GET"])
    def health():
        return {"status": "ok"}, 200

    def _decode(path):
        """Returns (review, None) or (None, error response)."""
        if request.mimetype != JSON_CONTENT_TYPE:
            log.warning("Rejecting %s request with content type %r", path, request.content_type)
            return None, (jsonify(codec.encode_error("", f"expected content type {JSON_CONTENT_TYPE}")), 400)
        try:
            return codec.decode(request.get_data()), None
        except ParsingFailedError as e:
            log.warning("Invalid AdmissionReview payload for %s: %s", path, e)
            return None, (jsonify(codec.encode_error("", e.message)), 400)

    def _fail(review, e):
        req = review.request
        if isinstance(e, AdmissionError) and e.user_visible:
            log.info("Rejecting %s %s/%s: %s", req.kind.kind, req.namespace, req.name, e)
            message = e.message
        else:
            log.error(
                "Admission of %s %s/%s failed", req.kind.kind, req.namespace, req.name, exc_info=True
            )
            message = INTERNAL_ERROR_MESSAGE
        return jsonify(codec.encode_error(req.uid, message, review.api_version))

    def _unknown_kind(review):
        req = review.request
        log.warning("No handler for %s/%s", req.kind.group, req.kind.kind)
        message = f"no admission handler registered for kind {req.kind.kind} ({req.kind.group})"
        return jsonify(codec.encode_error(req.uid, message, review.api_version))

    @bp.route("/mutate", methods=["POST"])
    def mutate():
        review, error = _decode("/mutate")
        if error is not None:
            return error
        req = review.request
        mutator = registry.mutator_for(ResourceKind.from_group_kind(req.kind.group, req.kind.kind))
        if mutator is None:
            return _unknown_kind(review)
        try:
            patch = mutator.mutate(req)
            return jsonify(codec.encode_patch(req.uid, patch, review.api_version))
        except Exception as e:
            return _fail(review, e)

    @bp.route("/validate", methods=["POST"])
    def validate():
        review, error = _decode("/validate")
        if error is not None:
            return error
        req = review.request
        validator = registry.validator_for(ResourceKind.from_group_kind(req.kind.group, req.kind.kind))
        if validator is None:
            return _unknown_kind(review)
        try:
            decision = validator.validate(req)
            return jsonify(
                codec.encode_decision(req.uid, decision.allowed, decision.reason, review.api_version)
            )
        except Exception as e:
            return _fail(review, e)

    return bp
