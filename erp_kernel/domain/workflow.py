"""
Canonical workflow types (``erp_kernel.domain.workflow``).

Responsibility
--------------
Pure value objects for document state machines.  Each document type owns
one ``Workflow``: a static table of ``(from_state, action) -> to_state``
edges, each optionally guarded by named ``Guard`` predicates and carrying
a named side effect.  Tables are selected by the document type tag; there
is no per-type subclassing.

Architecture position
---------------------
**Kernel domain layer** -- pure value objects.  ZERO I/O.  Guard
evaluation and effect execution live in ``erp_services.workflow_executor``.

Invariants enforced
-------------------
* Transitions reference only states in ``Workflow.states``.
* ``initial_state`` is a member of ``states``.
* Terminal states have no outgoing transitions.
* ``(from_state, action)`` is unique within a workflow (deterministic).
"""

from __future__ import annotations

from collections import deque
from dataclasses import dataclass, field

from erp_kernel.domain.documents import DocumentType


@dataclass(frozen=True)
class Guard:
    """A condition that must be satisfied before a transition fires.

    Contract: frozen, descriptive only.
    Non-goals: does not evaluate the condition -- the executor does.
    """
    name: str
    description: str


@dataclass(frozen=True)
class Transition:
    """A legal edge in a document workflow.

    ``effect`` names a side effect registered with the executor (release
    consumption, settle an invoice, cascade to the parent document).
    ``system_only`` edges are fired by the engine itself (settlements,
    conversion roll-ups) and are refused when requested by a caller.
    """
    from_state: str
    to_state: str
    action: str
    guards: tuple[Guard, ...] = ()
    effect: str | None = None
    sets_approval: str | None = None
    stamps_approval: bool = False
    rederive: bool = False
    system_only: bool = False


@dataclass(frozen=True)
class Workflow:
    """A state machine definition for one document type."""
    name: str
    document_type: DocumentType
    description: str
    initial_state: str
    states: tuple[str, ...]
    transitions: tuple[Transition, ...]
    terminal_states: tuple[str, ...] = ()
    editable_states: tuple[str, ...] = ()
    initial_approval_status: str | None = None
    initial_goods_receipt_status: str | None = None
    _index: dict[tuple[str, str], Transition] = field(
        init=False, repr=False, compare=False, hash=False,
    )

    def __post_init__(self) -> None:
        problems = validate_workflow(self)
        if problems:
            raise ValueError(f"Invalid workflow {self.name}: {'; '.join(problems)}")
        object.__setattr__(
            self,
            "_index",
            {(t.from_state, t.action): t for t in self.transitions},
        )

    def find(self, state: str, action: str) -> Transition | None:
        """Return the edge for ``(state, action)``, or None."""
        return self._index.get((state, action))

    def allowed_actions(self, state: str, include_system: bool = False) -> tuple[str, ...]:
        """Actions with an outgoing edge from ``state`` (sorted)."""
        return tuple(sorted(
            t.action for t in self.transitions
            if t.from_state == state and (include_system or not t.system_only)
        ))

    def is_terminal(self, state: str) -> bool:
        return state in self.terminal_states

    def reachable_states(self) -> frozenset[str]:
        """States reachable from ``initial_state`` over any edge."""
        seen = {self.initial_state}
        queue = deque([self.initial_state])
        while queue:
            state = queue.popleft()
            for t in self.transitions:
                if t.from_state == state and t.to_state not in seen:
                    seen.add(t.to_state)
                    queue.append(t.to_state)
        return frozenset(seen)


def validate_workflow(workflow: Workflow) -> list[str]:
    """Structural checks run when a workflow constant is built."""
    problems: list[str] = []
    states = set(workflow.states)
    if workflow.initial_state not in states:
        problems.append(f"initial state {workflow.initial_state!r} not in states")
    for state in (*workflow.terminal_states, *workflow.editable_states):
        if state not in states:
            problems.append(f"state {state!r} not in states")
    seen: set[tuple[str, str]] = set()
    for t in workflow.transitions:
        if t.from_state not in states or t.to_state not in states:
            problems.append(f"edge {t.from_state}-{t.action}->{t.to_state} uses unknown state")
        if t.from_state in workflow.terminal_states:
            problems.append(f"terminal state {t.from_state!r} has outgoing edge {t.action!r}")
        key = (t.from_state, t.action)
        if key in seen:
            problems.append(f"duplicate edge {key}")
        seen.add(key)
    return problems
