"""Per-entity status transition tables and the validator that enforces them.

Each table is an immutable mapping of ``state -> frozenset(next states)``
built once at import time. Terminal states map to an empty set and an
unknown state is treated the same way, so lookups never raise.
"""

from collections.abc import Iterable, Mapping
from types import MappingProxyType

from .errors import InvalidTransitionError


class AppointmentStatus:
    REQUESTED = "requested"
    CONFIRMED = "confirmed"
    COMPLETED = "completed"
    NO_SHOW = "no_show"
    CANCELLED = "cancelled"
    RESCHEDULE_REQUESTED = "reschedule_requested"

    ACTIVE = (REQUESTED, CONFIRMED, RESCHEDULE_REQUESTED)


class ProjectStatus:
    DRAFT = "draft"
    SUBMITTED = "submitted"
    BLUEPRINT = "blueprint"
    APPROVED = "approved"
    PAYMENT_PENDING = "payment_pending"
    FABRICATION = "fabrication"
    COMPLETED = "completed"
    CANCELLED = "cancelled"


class BlueprintStatus:
    UPLOADED = "uploaded"
    APPROVED = "approved"
    REVISION_REQUESTED = "revision_requested"
    REVISION_UPLOADED = "revision_uploaded"


class PaymentStageStatus:
    PENDING = "pending"
    PROOF_SUBMITTED = "proof_submitted"
    VERIFIED = "verified"
    DECLINED = "declined"


class FabricationStatus:
    QUEUED = "queued"
    MATERIAL_PREP = "material_prep"
    CUTTING = "cutting"
    WELDING = "welding"
    FINISHING = "finishing"
    QUALITY_CHECK = "quality_check"
    READY_FOR_DELIVERY = "ready_for_delivery"
    DONE = "done"

    ORDER = (
        QUEUED,
        MATERIAL_PREP,
        CUTTING,
        WELDING,
        FINISHING,
        QUALITY_CHECK,
        READY_FOR_DELIVERY,
        DONE,
    )


class VisitReportStatus:
    DRAFT = "draft"
    SUBMITTED = "submitted"
    RETURNED = "returned"
    COMPLETED = "completed"


def _freeze(table: Mapping[str, Iterable[str]]) -> Mapping[str, frozenset]:
    return MappingProxyType({state: frozenset(targets) for state, targets in table.items()})


class TransitionValidator:
    """Decides whether ``from -> to`` is a legal edge for one entity kind."""

    def __init__(self, entity: str, table: Mapping[str, Iterable[str]]):
        self.entity = entity
        self._table = _freeze(table)

    @property
    def states(self) -> frozenset:
        return frozenset(self._table)

    def allowed_from(self, state: str) -> frozenset:
        return self._table.get(state, frozenset())

    def can_transition(self, from_state: str, to_state: str) -> bool:
        return to_state in self.allowed_from(from_state)

    def assert_transition(self, from_state: str, to_state: str) -> None:
        if not self.can_transition(from_state, to_state):
            raise InvalidTransitionError(
                self.entity, from_state, to_state, sorted(self.allowed_from(from_state))
            )

    def is_terminal(self, state: str) -> bool:
        return not self.allowed_from(state)


appointment_transitions = TransitionValidator(
    "appointment",
    {
        AppointmentStatus.REQUESTED: [AppointmentStatus.CONFIRMED, AppointmentStatus.CANCELLED],
        AppointmentStatus.CONFIRMED: [
            AppointmentStatus.COMPLETED,
            AppointmentStatus.NO_SHOW,
            AppointmentStatus.CANCELLED,
            AppointmentStatus.RESCHEDULE_REQUESTED,
        ],
        AppointmentStatus.RESCHEDULE_REQUESTED: [
            AppointmentStatus.CONFIRMED,
            AppointmentStatus.CANCELLED,
        ],
        AppointmentStatus.COMPLETED: [],
        AppointmentStatus.NO_SHOW: [],
        AppointmentStatus.CANCELLED: [],
    },
)

project_transitions = TransitionValidator(
    "project",
    {
        ProjectStatus.DRAFT: [ProjectStatus.SUBMITTED, ProjectStatus.CANCELLED],
        ProjectStatus.SUBMITTED: [ProjectStatus.BLUEPRINT, ProjectStatus.CANCELLED],
        ProjectStatus.BLUEPRINT: [ProjectStatus.APPROVED, ProjectStatus.CANCELLED],
        ProjectStatus.APPROVED: [ProjectStatus.PAYMENT_PENDING, ProjectStatus.CANCELLED],
        ProjectStatus.PAYMENT_PENDING: [ProjectStatus.FABRICATION, ProjectStatus.CANCELLED],
        ProjectStatus.FABRICATION: [ProjectStatus.COMPLETED, ProjectStatus.CANCELLED],
        ProjectStatus.COMPLETED: [],
        ProjectStatus.CANCELLED: [],
    },
)

blueprint_transitions = TransitionValidator(
    "blueprint",
    {
        BlueprintStatus.UPLOADED: [BlueprintStatus.APPROVED, BlueprintStatus.REVISION_REQUESTED],
        BlueprintStatus.REVISION_REQUESTED: [BlueprintStatus.REVISION_UPLOADED],
        BlueprintStatus.REVISION_UPLOADED: [
            BlueprintStatus.APPROVED,
            BlueprintStatus.REVISION_REQUESTED,
        ],
        BlueprintStatus.APPROVED: [],
    },
)

# Shared by plan stages and payment proof records.
# proof_submitted -> pending reopens a partially paid stage,
# pending -> verified settles a stage from carried-forward credit.
payment_stage_transitions = TransitionValidator(
    "payment",
    {
        PaymentStageStatus.PENDING: [
            PaymentStageStatus.PROOF_SUBMITTED,
            PaymentStageStatus.VERIFIED,
        ],
        PaymentStageStatus.PROOF_SUBMITTED: [
            PaymentStageStatus.VERIFIED,
            PaymentStageStatus.DECLINED,
            PaymentStageStatus.PENDING,
        ],
        PaymentStageStatus.DECLINED: [PaymentStageStatus.PROOF_SUBMITTED],
        PaymentStageStatus.VERIFIED: [],
    },
)

fabrication_transitions = TransitionValidator(
    "fabrication",
    {
        current: [following]
        for current, following in zip(FabricationStatus.ORDER, FabricationStatus.ORDER[1:])
    }
    | {FabricationStatus.DONE: []},
)

visit_report_transitions = TransitionValidator(
    "visit report",
    {
        VisitReportStatus.DRAFT: [VisitReportStatus.SUBMITTED],
        VisitReportStatus.SUBMITTED: [VisitReportStatus.RETURNED, VisitReportStatus.COMPLETED],
        VisitReportStatus.RETURNED: [VisitReportStatus.SUBMITTED],
        VisitReportStatus.COMPLETED: [],
    },
)
