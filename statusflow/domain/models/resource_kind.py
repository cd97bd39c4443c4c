"""
Resource Kind Configuration.

Status enumerations and transition tables differ per entity type. A
ResourceKind bundles them as plain configuration passed into the
transition engine; kinds are never expressed as subclasses.
"""

from dataclasses import dataclass, field
import math
from typing import Any, Callable, Dict, FrozenSet, Iterable, Mapping, Optional

from statusflow.domain.errors import NotFound
from statusflow.domain.models.operation import Operation
from statusflow.domain.models.resource import Resource

# Executes the externally visible effect of reaching a status.
SideEffect = Callable[[Resource, Operation], None]

# Estimated completion time in seconds for (resource, target_status, params).
Estimator = Callable[[Resource, str, Dict[str, Any]], float]

# Whether a side effect must run for this particular request.
SideEffectCondition = Callable[[Resource, str, Dict[str, Any]], bool]


@dataclass(frozen=True)
class ResourceKind:
    """
    Per-kind status configuration.

    Attributes:
        name: Kind name stored on every resource
        statuses: Closed set of valid status values
        transitions: current status -> statuses reachable from it
        initial_status: Status assigned on registration
        side_effects: target status -> effect run by the processor
        estimator: Completion time estimate in seconds; see estimate_seconds
        pending_labels: target status -> in-progress label shown while
            an operation is running (e.g. "confirmingCompromising")
        side_effect_condition: Narrows side_effects to the requests that
            actually need them (all requests when None)
    """

    name: str
    statuses: FrozenSet[str]
    transitions: Mapping[str, FrozenSet[str]]
    initial_status: str
    side_effects: Mapping[str, SideEffect] = field(default_factory=dict)
    estimator: Optional[Estimator] = None
    pending_labels: Mapping[str, str] = field(default_factory=dict)
    side_effect_condition: Optional[SideEffectCondition] = None

    def __post_init__(self):
        if self.initial_status not in self.statuses:
            raise ValueError(
                f"Initial status '{self.initial_status}' is not a status of kind '{self.name}'"
            )
        for source, targets in self.transitions.items():
            unknown = ({source} | set(targets)) - set(self.statuses)
            if unknown:
                raise ValueError(
                    f"Transition table of kind '{self.name}' references unknown statuses: "
                    f"{sorted(unknown)}"
                )

    def is_valid_status(self, status: str) -> bool:
        return status in self.statuses

    def can_transition(self, current: str, requested: str) -> bool:
        return requested in self.transitions.get(current, frozenset())

    def side_effect_for(self, target_status: str) -> Optional[SideEffect]:
        return self.side_effects.get(target_status)

    def needs_side_effect(self, resource: Resource, target_status: str, params: Dict[str, Any]) -> bool:
        if target_status not in self.side_effects:
            return False
        if self.side_effect_condition is None:
            return True
        return bool(self.side_effect_condition(resource, target_status, params))

    def estimate_seconds(self, resource: Resource, target_status: str, params: Dict[str, Any]) -> float:
        """
        Expected completion time of reaching ``target_status``.

        Without an estimator a transition is instantaneous unless it needs
        a side effect, in which case it is unbounded.
        """
        if self.estimator is None:
            return math.inf if self.needs_side_effect(resource, target_status, params) else 0.0
        return float(self.estimator(resource, target_status, params))

    def pending_label(self, target_status: str) -> Optional[str]:
        return self.pending_labels.get(target_status)

    @classmethod
    def build(
        cls,
        name: str,
        transitions: Mapping[str, Iterable[str]],
        initial_status: str,
        side_effects: Optional[Mapping[str, SideEffect]] = None,
        estimator: Optional[Estimator] = None,
        pending_labels: Optional[Mapping[str, str]] = None,
        side_effect_condition: Optional[SideEffectCondition] = None,
    ) -> "ResourceKind":
        """
        Build a kind from a loose transition mapping.

        The status set is inferred from every status mentioned in
        ``transitions`` plus ``initial_status``.
        """
        table = {source: frozenset(targets) for source, targets in transitions.items()}
        statuses = set(table) | {initial_status}
        for targets in table.values():
            statuses |= targets
        return cls(
            name=name,
            statuses=frozenset(statuses),
            transitions=table,
            initial_status=initial_status,
            side_effects=dict(side_effects or {}),
            estimator=estimator,
            pending_labels=dict(pending_labels or {}),
            side_effect_condition=side_effect_condition,
        )


class ResourceKindRegistry:
    """Lookup of ResourceKind by name."""

    def __init__(self, kinds: Optional[Iterable[ResourceKind]] = None):
        self._kinds: Dict[str, ResourceKind] = {}
        for kind in kinds or []:
            self.register(kind)

    def register(self, kind: ResourceKind) -> None:
        if kind.name in self._kinds:
            raise ValueError(f"Resource kind '{kind.name}' already registered")
        self._kinds[kind.name] = kind

    def get(self, name: str) -> ResourceKind:
        try:
            return self._kinds[name]
        except KeyError:
            raise NotFound(f"Resource kind '{name}' not registered", kind=name) from None

    def __contains__(self, name: str) -> bool:
        return name in self._kinds
