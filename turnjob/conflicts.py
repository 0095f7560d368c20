from __future__ import annotations

from dataclasses import dataclass
from datetime import date, timedelta

from turnjob.catalog import ConstraintCatalog
from turnjob.enums import PreferenceType
from turnjob.errors import UnknownCollaboratorError, UnknownNucleoError
from turnjob.timeutil import at
from turnjob.validator import check_time_window

DOUBLE_BOOKING = "double_booking"
REST = "rest"
LEAVE = "leave"
UNAVAILABLE = "unavailable"


@dataclass(frozen=True)
class Conflict:
    kind: str
    collaborator_id: int
    data: date
    message: str


@dataclass(frozen=True)
class ConflictReport:
    conflicts: tuple[Conflict, ...] = ()
    free_collaborators: tuple[int, ...] = ()
    suggestions: tuple[str, ...] = ()

    @property
    def has_conflicts(self) -> bool:
        return bool(self.conflicts)


def detect_assignment_conflicts(
    catalog: ConstraintCatalog,
    collaborator_id: int,
    day: date,
    start_time: str,
    end_time: str,
) -> list[Conflict]:
    """Reasons why ``collaborator_id`` cannot take the given shift.

    Existing commitments are checked for overlap and for the minimum rest gap
    on both sides; leave and approved UNAVAILABLE preferences are reported
    too.
    """
    collaborator = catalog.collaborator(collaborator_id)
    if collaborator is None:
        raise UnknownCollaboratorError(collaborator_id)
    check_time_window(start_time, end_time)

    starts_at = at(day, start_time)
    ends_at = at(day, end_time)
    min_rest = timedelta(hours=catalog.rest_constraint(collaborator_id).min_rest_hours)
    name = collaborator.full_name
    conflicts = []

    for commitment in catalog.commitments_for(collaborator_id):
        window = f"{commitment.ora_inizio}-{commitment.ora_fine} on {commitment.data.isoformat()}"
        if commitment.starts_at < ends_at and starts_at < commitment.ends_at:
            conflicts.append(
                Conflict(DOUBLE_BOOKING, collaborator_id, commitment.data, f"{name} already assigned {window}")
            )
            continue
        if commitment.ends_at <= starts_at:
            gap = starts_at - commitment.ends_at
        else:
            gap = commitment.starts_at - ends_at
        if gap < min_rest:
            hours = gap.total_seconds() / 3600
            conflicts.append(
                Conflict(REST, collaborator_id, commitment.data, f"{name} would rest only {hours:g}h around {window}")
            )

    if catalog.on_leave(collaborator_id, day):
        conflicts.append(Conflict(LEAVE, collaborator_id, day, f"{name} is on leave"))
    for pref in catalog.preferences_for(collaborator_id, day):
        if pref.tipo is PreferenceType.UNAVAILABLE and pref.covers(start_time, end_time):
            conflicts.append(Conflict(UNAVAILABLE, collaborator_id, day, f"{name} marked the slot as unavailable"))
    return conflicts


def detect_shift_conflicts(
    catalog: ConstraintCatalog,
    nucleo_id: int,
    day: date,
    start_time: str,
    end_time: str,
    exclude_collaborator_id: int | None = None,
) -> ConflictReport:
    nucleo = catalog.nucleo(nucleo_id)
    if nucleo is None:
        raise UnknownNucleoError([nucleo_id])

    conflicts: list[Conflict] = []
    free: list[int] = []
    for member in catalog.members_of(nucleo_id):
        if member == exclude_collaborator_id:
            continue
        found = detect_assignment_conflicts(catalog, member, day, start_time, end_time)
        if found:
            conflicts.extend(found)
        else:
            free.append(member)

    suggestions: tuple[str, ...] = ()
    if conflicts:
        if free:
            names = ", ".join(catalog.collaborator(member).full_name for member in free)
            suggestions = (f"free collaborators: {names}",)
        else:
            suggestions = (f"no collaborator of {nucleo.nome} is free {start_time}-{end_time}",)
    return ConflictReport(conflicts=tuple(conflicts), free_collaborators=tuple(free), suggestions=suggestions)
