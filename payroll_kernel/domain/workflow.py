"""
Canonical workflow types (``payroll_kernel.domain.workflow``).

Responsibility
--------------
Pure value objects for the state machines of the payroll engine: the run
lifecycle, the derived entry lifecycle and the three-stage dispute chain
are all expressed as a ``Workflow`` so that transition checks are defined
once.

Architecture position
---------------------
**Kernel domain layer** -- pure value objects.  ZERO I/O.

Invariants enforced
-------------------
* Transitions reference only states in ``Workflow.states``.
* ``initial_state`` is a member of ``states``.
* ``states`` is declared in progression order; ``side_states`` are
  off-path states (e.g. ``rejected``) that still count as "moved on" when a
  caller expected an earlier state.
"""

from __future__ import annotations

from dataclasses import dataclass


@dataclass(frozen=True)
class Guard:
    """A condition that must be satisfied before a transition fires.

    Contract: frozen, descriptive only.
    Non-goals: does not evaluate the condition -- the owning controller does.
    """
    name: str
    description: str


@dataclass(frozen=True)
class Transition:
    """A valid state transition in a workflow.

    ``posts_to_ledger=True`` marks transitions that affect the books and
    trigger exactly one ledger posting after commit.
    """
    from_state: str
    to_state: str
    action: str
    guard: Guard | None = None
    posts_to_ledger: bool = False
    notifies: bool = True


@dataclass(frozen=True)
class Workflow:
    """A state machine definition for a document lifecycle.

    Contract: frozen; ``transitions`` reference only states in ``states``.
    """
    name: str
    description: str
    initial_state: str
    states: tuple[str, ...]
    transitions: tuple[Transition, ...]
    terminal_states: tuple[str, ...] = ()
    side_states: tuple[str, ...] = ()

    def __post_init__(self) -> None:
        if self.initial_state not in self.states:
            raise ValueError(
                f"Workflow {self.name}: initial state {self.initial_state!r} not in states"
            )
        for t in self.transitions:
            if t.from_state not in self.states or t.to_state not in self.states:
                raise ValueError(
                    f"Workflow {self.name}: transition {t.from_state}->{t.to_state} "
                    "references unknown state"
                )
        for s in self.terminal_states + self.side_states:
            if s not in self.states:
                raise ValueError(f"Workflow {self.name}: unknown state {s!r}")

    def find_transition(self, from_state: str, to_state: str) -> Transition | None:
        """Return the transition from ``from_state`` to ``to_state``, if any."""
        for t in self.transitions:
            if t.from_state == from_state and t.to_state == to_state:
                return t
        return None

    def find_action(self, from_state: str, action: str) -> Transition | None:
        """Return the transition named ``action`` leaving ``from_state``, if any."""
        for t in self.transitions:
            if t.from_state == from_state and t.action == action:
                return t
        return None

    def sources_of(self, to_state: str) -> frozenset[str]:
        """All states with a transition into ``to_state``."""
        return frozenset(t.from_state for t in self.transitions if t.to_state == to_state)

    def default_source(self, to_state: str) -> str | None:
        """The on-path state that normally precedes ``to_state``.

        Side states are skipped so that, for instance, the default source of
        ``under_review`` is the freshly computed state rather than
        ``rejected``.  Returns None when no on-path source exists.
        """
        candidates = [
            t.from_state
            for t in self.transitions
            if t.to_state == to_state and t.from_state not in self.side_states
        ]
        if not candidates:
            return None
        return min(candidates, key=self.states.index)

    def has_moved_past(self, expected: str, actual: str) -> bool:
        """True when ``actual`` lies beyond ``expected`` in the progression.

        Used to tell "someone already transitioned this" apart from "this
        member has not reached the expected state yet".
        """
        if actual == expected:
            return False
        if actual in self.side_states and expected not in self.side_states:
            return True
        return self.states.index(actual) > self.states.index(expected)

    def is_terminal(self, state: str) -> bool:
        return state in self.terminal_states
