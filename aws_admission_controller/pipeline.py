"""
The rule engine behind every mutating and validating webhook.

A handler is a Mutator or Validator subclass that lists its rules for create
and update. The base classes own the flow: dry-run skipping, operation
dispatch, accumulation of patch operations and the fail-fast denial.
"""

import logging
import random
from dataclasses import dataclass, field
from typing import Any, Callable, NamedTuple, Optional

import semver

from . import key, label
from .errors import NotAllowedError, ParsingFailedError
from .kinds import ResourceKind
from .models import CREATE, UPDATE, AdmissionRequestModel, CustomResource
from .patch import PatchOperation, apply, pending_label
from .resolver import Resolution, ResourceResolver
from .version import release_version

log = logging.getLogger("aws-admission-controller")


class Rule(NamedTuple):
    name: str
    run: Callable[[Any], Any]
    applies: Optional[Callable[[Any], bool]] = None


@dataclass
class AdmissionDecision:
    allowed: bool
    reason: str = ""


def decode_object(raw: Any, kind: ResourceKind) -> CustomResource:
    if not isinstance(raw, dict):
        raise ParsingFailedError(f"unable to parse {kind.kind} from admission request")
    obj = CustomResource.from_dict(raw)
    if obj.kind and obj.kind != kind.kind:
        raise ParsingFailedError(f"expected {kind.kind}, got {obj.kind}")
    return obj


@dataclass
class RequestContext:
    request: AdmissionRequestModel
    obj: CustomResource
    old: Optional[CustomResource]
    lookups: dict[Any, Resolution] = field(default_factory=dict)

    @property
    def is_create(self) -> bool:
        return self.request.operation == CREATE

    @property
    def is_update(self) -> bool:
        return self.request.operation == UPDATE

    def lookup(self, cache_key, fetch: Callable[[], Resolution]) -> Resolution:
        """Fetch a peer at most once per request."""
        if cache_key not in self.lookups:
            self.lookups[cache_key] = fetch()
        return self.lookups[cache_key]


@dataclass
class MutationContext(RequestContext):
    rng: random.Random = field(default_factory=random.Random)
    patch: list[PatchOperation] = field(default_factory=list)

    def has_release(self) -> bool:
        return bool(pending_label(self.obj.raw, self.patch, label.RELEASE) or key.release(self.obj))

    def release_version(self) -> semver.Version:
        """Release of the object, including one defaulted earlier in this request."""
        return release_version(self.obj, self.patch)

    def current(self, *pending: PatchOperation) -> dict[str, Any]:
        """The raw object with every operation proposed so far, plus ``pending``, applied."""
        return apply(self.obj.raw, [*self.patch, *pending])


ValidationContext = RequestContext


class Handler:
    kind: ResourceKind

    def __init__(self, settings, resolver: ResourceResolver):
        self.settings = settings
        self.resolver = resolver

    def create_rules(self) -> list[Rule]:
        return []

    def update_rules(self) -> list[Rule]:
        return []

    def rules_for(self, operation: str) -> list[Rule]:
        if operation == CREATE:
            return self.create_rules()
        if operation == UPDATE:
            return self.update_rules()
        return []

    def _decode(self, request: AdmissionRequestModel):
        obj = decode_object(request.obj, self.kind)
        old = None
        if request.operation == UPDATE:
            old = decode_object(request.old_obj, self.kind)
        return obj, old

    def is_privileged(self, ctx: RequestContext) -> bool:
        """Callers subject to label and upgrade policy; controllers are exempt."""
        user = ctx.request.user
        if user.username in self.settings.label_admins:
            return True
        return any(g in self.settings.restricted_groups for g in user.groups)


class Mutator(Handler):
    def __init__(self, settings, resolver: ResourceResolver, rng_factory=random.Random):
        super().__init__(settings, resolver)
        self.rng_factory = rng_factory

    def mutate(self, request: AdmissionRequestModel) -> list[PatchOperation]:
        if request.dry_run:
            log.debug("Dry run for %s %s; no mutation", self.kind.kind, request.name)
            return []
        rules = self.rules_for(request.operation)
        if not rules:
            return []
        obj, old = self._decode(request)
        ctx = MutationContext(request=request, obj=obj, old=old, rng=self.rng_factory())
        for rule in rules:
            if rule.applies is not None and not rule.applies(ctx):
                log.debug("Skipping mutation rule %s for %s %s", rule.name, self.kind.kind, obj.name)
                continue
            ops = [op for op in rule.run(ctx) or [] if op is not None]
            if ops:
                log.info(
                    "Mutation rule %s patched %s %s: %s",
                    rule.name,
                    self.kind.kind,
                    obj.name,
                    ", ".join(op.path for op in ops),
                )
            ctx.patch.extend(ops)
        return list(ctx.patch)


class Validator(Handler):
    def validate(self, request: AdmissionRequestModel) -> AdmissionDecision:
        rules = self.rules_for(request.operation)
        if not rules:
            return AdmissionDecision(True)
        obj, old = self._decode(request)
        ctx = ValidationContext(request=request, obj=obj, old=old)
        for rule in rules:
            if rule.applies is not None and not rule.applies(ctx):
                log.debug("Skipping validation rule %s for %s %s", rule.name, self.kind.kind, obj.name)
                continue
            try:
                rule.run(ctx)
            except NotAllowedError as e:
                log.info("Denied %s %s by rule %s: %s", self.kind.kind, obj.name, rule.name, e)
                return AdmissionDecision(False, e.message)
        return AdmissionDecision(True)
