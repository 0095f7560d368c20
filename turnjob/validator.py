from __future__ import annotations

import logging
from dataclasses import dataclass
from datetime import date

from turnjob.catalog import ConstraintCatalog, PreferenceSnapshot
from turnjob.coverage import coverage_shortfalls, suggest_cover
from turnjob.enums import PreferenceType, ValidationStatus
from turnjob.errors import InvalidTimeWindowError, UnknownCollaboratorError
from turnjob.timeutil import describe_window, hours_between, parse_hhmm, windows_overlap

logger = logging.getLogger(__name__)

CLOSED_DAY_REASON = "day is a closure day."


@dataclass(frozen=True)
class ValidationDetail:
    type: str
    message: str
    severity: str


@dataclass(frozen=True)
class ValidationResult:
    status: ValidationStatus
    reason: str | None = None
    details: tuple[ValidationDetail, ...] = ()

    @property
    def is_valid(self) -> bool:
        return self.status is ValidationStatus.APPROVED


def check_time_window(start_time: str | None, end_time: str | None) -> None:
    if not start_time and not end_time:
        return
    if not start_time or not end_time:
        field = "startTime" if not start_time else "endTime"
        raise InvalidTimeWindowError(field, "startTime and endTime must be given together")
    try:
        start = parse_hhmm(start_time)
    except ValueError as exc:
        raise InvalidTimeWindowError("startTime", str(exc)) from exc
    try:
        end = parse_hhmm(end_time)
    except ValueError as exc:
        raise InvalidTimeWindowError("endTime", str(exc)) from exc
    if start >= end:
        raise InvalidTimeWindowError("endTime", "endTime must be after startTime")


def validate_preference(
    catalog: ConstraintCatalog,
    collaborator_id: int,
    day: date,
    start_time: str | None = None,
    end_time: str | None = None,
    tipo: PreferenceType = PreferenceType.AVAILABLE,
) -> ValidationResult:
    """Classify a proposed preference against the catalog.

    Checks run in a fixed order and stop at the first rejection: closure day,
    overlap with an approved preference, critical-period lock. An approved
    result may still carry warnings.
    """
    if catalog.collaborator(collaborator_id) is None:
        raise UnknownCollaboratorError(collaborator_id)
    check_time_window(start_time, end_time)
    start_time = start_time or None
    end_time = end_time or None

    closure = catalog.closure_reason(day)
    if closure is not None:
        logger.debug("Preference of collaborator %s on %s rejected: %s", collaborator_id, day, closure)
        return ValidationResult(
            status=ValidationStatus.REJECTED_CONSTRAINT,
            reason=CLOSED_DAY_REASON,
            details=(ValidationDetail("constraint", closure, "error"),),
        )

    conflicts = _conflicting_preferences(catalog, collaborator_id, day, start_time, end_time)
    if conflicts:
        windows = ", ".join(describe_window(p.ora_inizio, p.ora_fine) for p in conflicts)
        return ValidationResult(
            status=ValidationStatus.REJECTED_CONFLICT,
            reason=f"overlaps an approved preference ({windows}).",
            details=tuple(
                ValidationDetail(
                    "conflict",
                    f"approved {p.tipo.value} preference {describe_window(p.ora_inizio, p.ora_fine)}",
                    "error",
                )
                for p in conflicts
            ),
        )

    criticality = catalog.active_criticalities(day, start_time, end_time)
    if criticality.blocks_preferences and tipo is PreferenceType.UNAVAILABLE:
        names = ", ".join(criticality.blocking_sources)
        return ValidationResult(
            status=ValidationStatus.REJECTED_CRITICAL,
            reason=f"critical period ({names}): unavailability cannot be requested.",
            details=(ValidationDetail("critical_period", f"preferences locked by {names}", "error"),),
        )

    details: list[ValidationDetail] = []
    if criticality.is_active:
        details.append(
            ValidationDetail(
                "critical_period",
                f"high-demand period: {', '.join(criticality.sources)}",
                "warning",
            )
        )
    if tipo is PreferenceType.UNAVAILABLE:
        details.extend(_coverage_details(catalog, collaborator_id, day))
        for commitment in catalog.commitments_for(collaborator_id):
            if commitment.data == day and windows_overlap(
                commitment.ora_inizio, commitment.ora_fine, start_time, end_time
            ):
                details.append(
                    ValidationDetail(
                        "conflict",
                        f"already assigned {commitment.ora_inizio}-{commitment.ora_fine}",
                        "warning",
                    )
                )
    elif start_time and end_time:
        remaining = catalog.remaining_week_hours(collaborator_id, day)
        requested = hours_between(start_time, end_time)
        if requested > remaining:
            details.append(
                ValidationDetail(
                    "constraint",
                    f"window of {requested:g}h exceeds the {remaining:g}h left this week",
                    "warning",
                )
            )

    return ValidationResult(status=ValidationStatus.APPROVED, details=tuple(details))


def _conflicting_preferences(
    catalog: ConstraintCatalog,
    collaborator_id: int,
    day: date,
    start_time: str | None,
    end_time: str | None,
) -> list[PreferenceSnapshot]:
    return [
        pref
        for pref in catalog.preferences_for(collaborator_id, day)
        if pref.covers(start_time, end_time)
    ]


def _coverage_details(catalog: ConstraintCatalog, collaborator_id: int, day: date) -> list[ValidationDetail]:
    details = []
    for coverage in coverage_shortfalls(catalog, collaborator_id, day):
        nucleo = catalog.nucleo(coverage.nucleo_id)
        options = suggest_cover(catalog, nucleo, collaborator_id, day)
        if options:
            cover = "could cover: " + ", ".join(option.name for option in options)
        else:
            cover = "nobody else can cover"
        details.append(
            ValidationDetail(
                "coverage",
                f"{coverage.nucleo_name} would drop to {coverage.available_if_approved} of the "
                f"{coverage.minimum} required members; {cover}",
                "warning",
            )
        )
    return details
