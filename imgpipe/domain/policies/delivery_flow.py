# imgpipe/domain/policies/delivery_flow.py
from __future__ import annotations

from dataclasses import dataclass, field
from typing import Callable, Dict, Generic, List, Mapping, Optional, Sequence, Tuple, Type, TypeVar, Union

from imgpipe.domain.enums.delivery_state import DeliveryState as S
from imgpipe.domain.errors import CacheCorrupt, GenerationFailed, PipelineError, SourceMissing

C = TypeVar("C")
R = TypeVar("R")

# Step outcomes (non-error)
OK = "ok"
HIT = "hit"
MISS = "miss"
PASSTHROUGH = "passthrough"

Trigger = Union[str, Type[PipelineError]]


@dataclass(frozen=True)
class Transition:
    state: S
    on: Trigger
    target: S

    def matches(self, state: S, outcome: Union[str, PipelineError]) -> bool:
        if state is not self.state:
            return False
        if isinstance(self.on, str):
            return isinstance(outcome, str) and outcome == self.on
        return isinstance(outcome, self.on)


# Resolving -> Negotiating -> CacheLookup -> {CacheHit | Generating} -> Responding,
# with ServingFallback / ServingOriginal as absorbing shunts.
DELIVERY_TRANSITIONS: Tuple[Transition, ...] = (
    Transition(S.resolving, OK, S.negotiating),
    Transition(S.resolving, SourceMissing, S.serving_fallback),
    Transition(S.negotiating, OK, S.cache_lookup),
    Transition(S.negotiating, PASSTHROUGH, S.responding),
    Transition(S.cache_lookup, HIT, S.cache_hit),
    Transition(S.cache_lookup, MISS, S.generating),
    Transition(S.cache_lookup, CacheCorrupt, S.generating),
    Transition(S.cache_hit, OK, S.responding),
    Transition(S.generating, OK, S.responding),
    Transition(S.generating, GenerationFailed, S.serving_original),
)


@dataclass
class Step:
    state: S
    outcome: str
    target: S
    error: Optional[PipelineError] = None


@dataclass
class FlowTrace:
    steps: List[Step] = field(default_factory=list)

    @property
    def states(self) -> List[S]:
        if not self.steps:
            return []
        return [self.steps[0].state] + [s.target for s in self.steps]


class StateMachine(Generic[C, R]):
    """
    Small driver over a transition table.

    `steps` maps each non-terminal state to a callable that returns an outcome
    label (OK/HIT/MISS/...) or raises a PipelineError; the table decides where
    either leads. `terminals` maps each terminal state to the callable that
    builds the final result. An error with no matching row propagates.
    """

    def __init__(
        self,
        steps: Mapping[S, Callable[[C], str]],
        terminals: Mapping[S, Callable[[C], R]],
        transitions: Sequence[Transition] = DELIVERY_TRANSITIONS,
        on_step: Optional[Callable[[Step], None]] = None,
    ) -> None:
        self._steps: Dict[S, Callable[[C], str]] = dict(steps)
        self._terminals: Dict[S, Callable[[C], R]] = dict(terminals)
        self._transitions = tuple(transitions)
        self._on_step = on_step
        self._max_steps = len(self._transitions) + 1

    def next_state(self, state: S, outcome: Union[str, PipelineError]) -> Optional[S]:
        for t in self._transitions:
            if t.matches(state, outcome):
                return t.target
        return None

    def run(self, ctx: C, start: S = S.resolving, trace: Optional[FlowTrace] = None) -> R:
        state = start
        for _ in range(self._max_steps):
            if state.terminal:
                return self._terminals[state](ctx)

            error: Optional[PipelineError] = None
            try:
                outcome: Union[str, PipelineError] = self._steps[state](ctx)
            except PipelineError as e:
                error = e
                outcome = e

            target = self.next_state(state, outcome)
            if target is None:
                if error is not None:
                    raise error
                raise RuntimeError(f"no transition from {state} on {outcome!r}")

            step = Step(
                state=state,
                outcome=type(error).__name__ if error is not None else str(outcome),
                target=target,
                error=error,
            )
            if trace is not None:
                trace.steps.append(step)
            if self._on_step is not None:
                self._on_step(step)
            state = target

        raise RuntimeError(f"delivery flow did not terminate from {start}")
