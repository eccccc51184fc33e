"""
Production Order Workflow.

State machine for production order processing.
"""

from dataclasses import dataclass

from inventory_kernel.logging_config import get_logger

logger = get_logger("modules.production.workflows")


@dataclass(frozen=True)
class Transition:
    """A valid state transition."""
    from_state: str
    to_state: str
    action: str
    posts_entry: bool = False


@dataclass(frozen=True)
class Workflow:
    """A state machine definition."""
    name: str
    description: str
    initial_state: str
    states: tuple[str, ...]
    transitions: tuple[Transition, ...]

    def target_state(self, from_state: str, action: str) -> str | None:
        """State reached by ``action`` from ``from_state``, or None if not allowed."""
        for transition in self.transitions:
            if transition.from_state == from_state and transition.action == action:
                return transition.to_state
        return None


# -----------------------------------------------------------------------------
# Production Order Workflow
# -----------------------------------------------------------------------------

PRODUCTION_ORDER_WORKFLOW = Workflow(
    name="production_order",
    description="Apparel production order lifecycle",
    initial_state="planned",
    states=(
        "planned",
        "released",
        "in_progress",
        "completed",
        "cancelled",
    ),
    transitions=(
        Transition("planned", "released", action="release"),
        Transition("released", "in_progress", action="record_output", posts_entry=True),
        Transition("in_progress", "in_progress", action="record_output", posts_entry=True),
        Transition("in_progress", "completed", action="complete"),
        Transition("planned", "cancelled", action="cancel"),
        Transition("released", "cancelled", action="cancel"),
        Transition("in_progress", "cancelled", action="cancel"),
    ),
)

logger.info(
    "production_workflow_defined",
    extra={
        "workflow": PRODUCTION_ORDER_WORKFLOW.name,
        "states": list(PRODUCTION_ORDER_WORKFLOW.states),
        "transition_count": len(PRODUCTION_ORDER_WORKFLOW.transitions),
    },
)
