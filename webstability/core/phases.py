"""
Project phase graphs and the state machine that moves projects through them.

Two vocabularies exist for the same workflow. The client-facing graph is
canonical; the developer graph is kept for the dashboard and mapped onto the
client graph with ``translate_phase``:

    client          developer
    ------          ---------
    onboarding  ↔   onboarding
    design      ↔   design
    feedback    →   design
    revisie     →   design
    payment     ↔   design_approved
    domain      ↔   development / review
    live        ↔   live
"""

import logging
from dataclasses import dataclass, field
from typing import Mapping

from webstability.core.checklist import PreLiveChecklistEngine
from webstability.core.errors import ErrorKind, Result
from webstability.core.quota import RevisionQuotaTracker
from webstability.db.base import utcnow
from webstability.models.enums import Actor, FeedbackStatus, PaymentStatus
from webstability.models.projects import Project

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class PhaseGraph:
    name: str
    phases: tuple[str, ...]
    transitions: Mapping[str, tuple[str, ...]]
    initial_phase: str
    live_phase: str
    payment_phase: str | None = None
    payment_gated: frozenset[str] = frozenset()
    # Per-package replacement for ``payment_gated``
    package_payment_gated: Mapping[str, frozenset[str]] = field(default_factory=dict)
    feedback_phases: frozenset[str] = frozenset()
    revision_phase: str | None = None

    def is_phase(self, phase: str) -> bool:
        return phase in self.phases

    def successors(self, phase: str) -> tuple[str, ...]:
        return tuple(self.transitions.get(phase, ()))

    def gated_phases(self, package: str | None = None) -> frozenset[str]:
        if package is not None and package in self.package_payment_gated:
            return self.package_payment_gated[package]
        return self.payment_gated

    def index(self, phase: str) -> int:
        return self.phases.index(phase)


CLIENT_PHASE_GRAPH = PhaseGraph(
    name="client",
    phases=(
        "onboarding",
        "design",
        "feedback",
        "revisie",
        "payment",
        "domain",
        "live",
    ),
    transitions={
        "onboarding": ("design",),
        "design": ("feedback",),
        "feedback": ("revisie", "payment"),
        "revisie": ("payment",),
        "payment": ("domain",),
        "domain": ("live",),
        "live": (),
    },
    initial_phase="onboarding",
    live_phase="live",
    payment_phase="payment",
    payment_gated=frozenset({"domain", "live"}),
    feedback_phases=frozenset({"feedback", "revisie"}),
    revision_phase="revisie",
)

DEVELOPER_PHASE_GRAPH = PhaseGraph(
    name="developer",
    phases=(
        "onboarding",
        "design",
        "design_approved",
        "development",
        "review",
        "live",
    ),
    transitions={
        "onboarding": ("design",),
        "design": ("design_approved",),
        "design_approved": ("development",),
        "development": ("review",),
        "review": ("live",),
        "live": (),
    },
    initial_phase="onboarding",
    live_phase="live",
    payment_phase="design_approved",
    payment_gated=frozenset({"development", "review", "live"}),
    feedback_phases=frozenset({"design"}),
    revision_phase=None,
)

PHASE_GRAPHS: dict[str, PhaseGraph] = {
    CLIENT_PHASE_GRAPH.name: CLIENT_PHASE_GRAPH,
    DEVELOPER_PHASE_GRAPH.name: DEVELOPER_PHASE_GRAPH,
}

_CLIENT_TO_DEVELOPER = {
    "onboarding": "onboarding",
    "design": "design",
    "feedback": "design",
    "revisie": "design",
    "payment": "design_approved",
    "domain": "review",
    "live": "live",
}

_DEVELOPER_TO_CLIENT = {
    "onboarding": "onboarding",
    "design": "design",
    "design_approved": "payment",
    "development": "domain",
    "review": "domain",
    "live": "live",
}


def get_phase_graph(name: str) -> PhaseGraph:
    try:
        return PHASE_GRAPHS[name]
    except KeyError:
        raise ValueError(
            f"Unknown phase graph '{name}'. Choose one of: {', '.join(PHASE_GRAPHS)}"
        )


def translate_phase(phase: str, source: str, target: str) -> str:
    """Map a phase name from one graph's vocabulary to another's."""
    if source == target:
        return phase
    if source == "client" and target == "developer":
        mapping = _CLIENT_TO_DEVELOPER
    elif source == "developer" and target == "client":
        mapping = _DEVELOPER_TO_CLIENT
    else:
        raise ValueError(f"No phase mapping from '{source}' to '{target}'")
    if phase not in mapping:
        raise ValueError(f"Unknown {source} phase '{phase}'")
    return mapping[phase]


@dataclass(frozen=True)
class TransitionCheck:
    allowed: bool
    reason: ErrorKind | None = None
    message: str = ""
    missing: list[str] = field(default_factory=list)

    @classmethod
    def allow(cls, message: str = "transition allowed") -> "TransitionCheck":
        return cls(allowed=True, message=message)

    @classmethod
    def deny(
        cls, reason: ErrorKind, message: str, missing: list[str] | None = None
    ) -> "TransitionCheck":
        return cls(allowed=False, reason=reason, message=message, missing=missing or [])


class PhaseStateMachine:
    def __init__(
        self,
        graph: PhaseGraph,
        quota_tracker: RevisionQuotaTracker,
        checklist_engine: PreLiveChecklistEngine,
    ):
        self.graph = graph
        self.quota_tracker = quota_tracker
        self.checklist_engine = checklist_engine

    def _has_unresolved_feedback(self, project: Project) -> bool:
        """A pending entry with a negative item the developer has not answered yet."""
        responded_at = project.last_developer_response_at
        for entry in project.feedback_entries or []:
            if entry.status != FeedbackStatus.PENDING.value:
                continue
            if not entry.has_negative_items():
                continue
            if responded_at is None or entry.submitted_at > responded_at:
                return True
        return False

    def can_transition(
        self,
        project: Project,
        target: str,
        actor: Actor | str,
        override: bool = False,
    ) -> TransitionCheck:
        """Evaluate the transition guards in order; the first failing guard wins."""
        graph = self.graph
        developer_override = override and Actor(actor) == Actor.DEVELOPER

        if not graph.is_phase(target):
            return TransitionCheck.deny(
                ErrorKind.INVALID_TRANSITION,
                f"Unknown phase '{target}' for the {graph.name} workflow",
            )

        if target == project.phase:
            return TransitionCheck.deny(
                ErrorKind.INVALID_TRANSITION,
                f"Project is already in phase '{target}'",
            )

        if target not in graph.successors(project.phase) and not developer_override:
            allowed = ", ".join(graph.successors(project.phase)) or "none"
            return TransitionCheck.deny(
                ErrorKind.INVALID_TRANSITION,
                f"Cannot move from '{project.phase}' to '{target}' (allowed: {allowed})",
            )

        if (
            target in graph.gated_phases(project.package)
            and project.payment_status != PaymentStatus.PAID.value
        ):
            return TransitionCheck.deny(
                ErrorKind.PAYMENT_REQUIRED,
                f"Payment required before entering '{target}'",
            )

        if target == graph.live_phase:
            evaluation = self.checklist_engine.evaluate(project)
            if not evaluation.complete:
                return TransitionCheck.deny(
                    ErrorKind.CHECKLIST_INCOMPLETE,
                    evaluation.summary(),
                    missing=evaluation.missing,
                )

        if (
            project.phase in graph.feedback_phases
            and not developer_override
            and self._has_unresolved_feedback(project)
        ):
            return TransitionCheck.deny(
                ErrorKind.UNRESOLVED_FEEDBACK,
                "Negative feedback is still waiting for a developer response",
            )

        if target == graph.revision_phase and not self.quota_tracker.can_consume_revision(
            project.package, project.revisions_used or 0
        ):
            allowance = self.quota_tracker.table.revisions_allowance(project.package)
            return TransitionCheck.deny(
                ErrorKind.QUOTA_EXCEEDED,
                f"All revision rounds used ({project.revisions_used}/{allowance})",
            )

        return TransitionCheck.allow()

    def apply_transition(
        self,
        project: Project,
        target: str,
        actor: Actor | str,
        override: bool = False,
    ) -> Result[Project]:
        check = self.can_transition(project, target, actor, override)
        if not check.allowed:
            return Result.failure(check.reason, check.message, missing=check.missing)

        if target == self.graph.revision_phase:
            consumed = self.quota_tracker.consume_revision(project)
            if not consumed.ok:
                return consumed

        now = utcnow()
        previous = project.phase
        project.phase = target
        project.updated_at = now
        project.phase_history = list(project.phase_history or []) + [
            {
                "from": previous,
                "to": target,
                "actor": Actor(actor).value,
                "override": bool(override),
                "at": now.isoformat(),
            }
        ]

        if target == self.graph.live_phase and project.live_date is None:
            project.live_date = now

        logger.info(
            f"Project {project.project_id} moved {previous} -> {target} "
            f"by {Actor(actor).value}{' (override)' if override else ''}"
        )
        return Result.success(project)
