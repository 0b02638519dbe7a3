import random
from typing import Optional

from .handlers.awscluster import AWSClusterMutator, AWSClusterValidator
from .handlers.awscontrolplane import AWSControlPlaneMutator, AWSControlPlaneValidator
from .handlers.awsmachinedeployment import AWSMachineDeploymentMutator, AWSMachineDeploymentValidator
from .handlers.cluster import ClusterMutator, ClusterValidator
from .handlers.g8scontrolplane import G8sControlPlaneMutator, G8sControlPlaneValidator
from .handlers.machinedeployment import MachineDeploymentMutator, MachineDeploymentValidator
from .handlers.networkpool import NetworkPoolValidator
from .kinds import ResourceKind
from .pipeline import Mutator, Validator
from .resolver import ResourceResolver

MUTATORS = (
    ClusterMutator,
    AWSClusterMutator,
    G8sControlPlaneMutator,
    AWSControlPlaneMutator,
    AWSMachineDeploymentMutator,
    MachineDeploymentMutator,
)
VALIDATORS = (
    ClusterValidator,
    AWSClusterValidator,
    G8sControlPlaneValidator,
    AWSControlPlaneValidator,
    AWSMachineDeploymentValidator,
    MachineDeploymentValidator,
    NetworkPoolValidator,
)


class HandlerRegistry:
    """Maps each resource kind to its mutator and validator."""

    def __init__(self):
        self._mutators: dict[ResourceKind, Mutator] = {}
        self._validators: dict[ResourceKind, Validator] = {}

    def register_mutator(self, mutator: Mutator) -> None:
        self._mutators[mutator.kind] = mutator

    def register_validator(self, validator: Validator) -> None:
        self._validators[validator.kind] = validator

    def mutator_for(self, kind: Optional[ResourceKind]) -> Optional[Mutator]:
        return self._mutators.get(kind)

    def validator_for(self, kind: Optional[ResourceKind]) -> Optional[Validator]:
        return self._validators.get(kind)


def build_registry(settings, resolver: ResourceResolver, rng_factory=random.Random) -> HandlerRegistry:
    registry = HandlerRegistry()
    for mutator in MUTATORS:
        registry.register_mutator(mutator(settings, resolver, rng_factory))
    for validator in VALIDATORS:
        registry.register_validator(validator(settings, resolver))
    return registry
