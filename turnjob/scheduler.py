from __future__ import annotations

import logging
import time
from collections import defaultdict
from dataclasses import dataclass, field
from datetime import date, timedelta

from turnjob.catalog import (
    NO_CRITICALITY,
    CollaboratorSnapshot,
    Commitment,
    ConstraintCatalog,
    Criticality,
    NucleoSnapshot,
)
from turnjob.enums import Coverage, HoursPolicy, PreferenceType, SchedulingMode, WarningType
from turnjob.errors import InputContractError, SchedulingDisabledError, UnknownNucleoError
from turnjob.timeutil import at, daterange, minutes_between, windows_overlap

logger = logging.getLogger(__name__)

# Preference ranks, lower sorts first.
RANK_PREFERRED = 0
RANK_NEUTRAL = 1
RANK_OVERRIDDEN = 2

SHIFT_CONFIDENCE = {
    Coverage.OK: 0.9,
    Coverage.PARTIAL: 0.6,
    Coverage.UNCOVERED: 0.3,
}
BASE_CONFIDENCE = 0.9
TIE_BREAK_PENALTY = 0.1
PREFERRED_BONUS = 0.05
FALLBACK_PENALTY = 0.3
CONFIDENCE_FLOOR = 0.1
CONFIDENCE_CEILING = 0.99


@dataclass(frozen=True)
class GenerationOptions:
    rispetta_preferenze: bool = True
    ottimizza_equita: bool = True
    considera_periodi_critici: bool = True
    min_confidenza: float = 0.0
    max_durata_ms: int | None = None


@dataclass(frozen=True)
class GenerationRequest:
    tenant_id: int
    date_start: date
    date_end: date
    nucleo_ids: tuple[int, ...] | None = None
    options: GenerationOptions = field(default_factory=GenerationOptions)


@dataclass
class GeneratedShift:
    nucleo_id: int
    data: date
    ora_inizio: str
    ora_fine: str
    staff_richiesto: int
    staff_assegnato: int
    copertura: Coverage
    confidenza: float
    reasoning: str


@dataclass
class ProposedAssignment:
    collaborator_id: int
    nucleo_id: int
    data: date
    ora_inizio: str
    ora_fine: str
    confidenza: float
    tie_breaks: int
    preferred: bool
    fallback: bool
    reasoning: str


@dataclass
class GenerationWarning:
    type: WarningType
    message: str
    data: date | None = None
    nucleo_id: int | None = None
    collaborator_id: int | None = None


@dataclass
class GenerationMetrics:
    slots_generated: int = 0
    assignments_proposed: int = 0
    underfilled_slots: int = 0
    equity_spread: float = 0.0
    average_confidence: float = 0.0
    preferences_honoured: int = 0
    preferences_total: int = 0
    closed_days_skipped: int = 0
    soft_violations: int = 0
    preferences_overridden: int = 0
    elapsed_ms: int = 0
    truncated: bool = False


@dataclass
class WorkloadEntry:
    collaborator_id: int
    name: str
    hours_assigned: float
    historical_hours: float
    weekly_cap: float
    weekly_minimum: float | None = None
    below_minimum: bool = False


@dataclass
class GenerationResult:
    success: bool = True
    shifts: list[GeneratedShift] = field(default_factory=list)
    assignments: list[ProposedAssignment] = field(default_factory=list)
    warnings: list[GenerationWarning] = field(default_factory=list)
    metrics: GenerationMetrics = field(default_factory=GenerationMetrics)
    report: list[WorkloadEntry] | None = None


@dataclass
class Candidate:
    collaborator: CollaboratorSnapshot
    key: tuple
    preferred: bool = False
    fallback: bool = False
    overrides_unavailable: bool = False


class _RunState:
    """Hours and commitments accumulated while a run walks the calendar."""

    def __init__(self, catalog: ConstraintCatalog, date_start: date):
        self.catalog = catalog
        self.added: dict[int, list[Commitment]] = defaultdict(list)
        self.run_minutes: dict[int, int] = defaultdict(int)
        self.historical_minutes: dict[int, int] = defaultdict(int)
        self.touched: set[int] = set()
        for commitment in catalog.commitments:
            if commitment.data < date_start:
                self.historical_minutes[commitment.collaborator_id] += commitment.minutes

    def commitments_for(self, collaborator_id: int) -> list[Commitment]:
        return list(self.catalog.commitments_for(collaborator_id)) + self.added[collaborator_id]

    def record(self, commitment: Commitment) -> None:
        self.added[commitment.collaborator_id].append(commitment)
        self.run_minutes[commitment.collaborator_id] += commitment.minutes

    def fits(self, collaborator_id: int, day: date, start: str, end: str) -> bool:
        limits = self.catalog.rest_constraint(collaborator_id)
        commitments = self.commitments_for(collaborator_id)

        shift_start, shift_end = at(day, start), at(day, end)
        rest = timedelta(hours=limits.min_rest_hours)
        for commitment in commitments:
            if commitment.ends_at + rest <= shift_start or shift_end + rest <= commitment.starts_at:
                continue
            return False

        cap = limits.max_weekly_hours * 60
        minutes = minutes_between(start, end)
        # Every 7-day window that contains the day must stay under the cap.
        for back in range(7):
            window_start = day - timedelta(days=back)
            window_end = window_start + timedelta(days=6)
            used = sum(c.minutes for c in commitments if window_start <= c.data <= window_end)
            if used + minutes > cap:
                return False
        return True


def _clamp(value: float) -> float:
    return round(min(CONFIDENCE_CEILING, max(CONFIDENCE_FLOOR, value)), 2)


def _nuclei_in_scope(catalog: ConstraintCatalog, nucleo_ids) -> list[NucleoSnapshot]:
    if nucleo_ids is None:
        return sorted(catalog.nuclei, key=lambda n: n.id)
    missing = sorted({nid for nid in nucleo_ids if catalog.nucleo(nid) is None})
    if missing:
        raise UnknownNucleoError(missing)
    return [catalog.nucleo(nid) for nid in sorted(set(nucleo_ids))]


def _ranking_key(rank: int, collaborator_id: int, state: _RunState, equity: bool) -> tuple:
    if equity:
        return (rank, state.run_minutes[collaborator_id], state.historical_minutes[collaborator_id], collaborator_id)
    return (rank, collaborator_id)


def _tie_breaks(ranked: list[Candidate], index: int) -> int:
    if index + 1 >= len(ranked):
        return 0
    shared = 0
    for mine, theirs in zip(ranked[index].key, ranked[index + 1].key):
        if mine != theirs:
            break
        shared += 1
    return shared


def generate_schedule(
    catalog: ConstraintCatalog,
    request: GenerationRequest,
    *,
    clock=time.monotonic,
) -> GenerationResult:
    """Greedy day by Nucleo fill of the requested range.

    Days are walked in ascending order and Nuclei by id, so the same catalog
    and request always give the same proposal.
    """
    started = clock()
    if request.date_start > request.date_end:
        raise InputContractError("dateEnd", "dateEnd must not be before dateStart")
    if catalog.config.modalita is SchedulingMode.DISABLED:
        raise SchedulingDisabledError()

    options = request.options
    nuclei = _nuclei_in_scope(catalog, request.nucleo_ids)
    result = GenerationResult()
    metrics = result.metrics

    in_scope = sorted({cid for nucleo in nuclei for cid in catalog.members_of(nucleo.id)})
    if not in_scope:
        logger.warning("Tenant %s has no active collaborator in scope, nothing to generate", request.tenant_id)
        result.success = False
        result.warnings.append(
            GenerationWarning(WarningType.NO_COLLABORATORS, "No active collaborator belongs to the requested nuclei")
        )
        metrics.elapsed_ms = round((clock() - started) * 1000)
        return result

    state = _RunState(catalog, request.date_start)
    deadline = None if options.max_durata_ms is None else started + options.max_durata_ms / 1000
    days = daterange(request.date_start, request.date_end)
    processed: list[date] = []

    for day in days:
        if deadline is not None and clock() >= deadline:
            metrics.truncated = True
            result.warnings.append(
                GenerationWarning(
                    WarningType.TRUNCATED,
                    f"Time budget of {options.max_durata_ms} ms reached, stopped before {day.isoformat()}",
                    data=day,
                )
            )
            logger.warning("Generation for tenant %s truncated at %s", request.tenant_id, day)
            break

        closure = catalog.closure_reason(day)
        if closure is not None:
            metrics.closed_days_skipped += 1
            result.warnings.append(
                GenerationWarning(WarningType.CLOSED_DAY, f"{day.isoformat()} skipped: {closure}", data=day)
            )
            continue

        processed.append(day)
        for nucleo in nuclei:
            _fill_slot(catalog, state, nucleo, day, options, result)

    _finish_metrics(catalog, state, result, in_scope, processed)
    if catalog.config.genera_report:
        result.report = _workload_report(catalog, state, len(days))
    metrics.elapsed_ms = round((clock() - started) * 1000)

    logger.info(
        "Generated schedule for tenant %s %s..%s: %s slots, %s assignments, %s underfilled in %sms",
        request.tenant_id,
        request.date_start,
        request.date_end,
        metrics.slots_generated,
        metrics.assignments_proposed,
        metrics.underfilled_slots,
        metrics.elapsed_ms,
    )
    return result


def _fill_slot(
    catalog: ConstraintCatalog,
    state: _RunState,
    nucleo: NucleoSnapshot,
    day: date,
    options: GenerationOptions,
    result: GenerationResult,
) -> None:
    config = catalog.config
    notify = config.notifica_conflitti
    honour_preferred = options.rispetta_preferenze and config.considera_preferenze
    start, end = nucleo.window_for(day)

    criticality: Criticality = NO_CRITICALITY
    if options.considera_periodi_critici:
        criticality = catalog.active_criticalities(day, start, end)
    required = criticality.required_staff(nucleo.membri_richiesti_min)
    if criticality.is_active:
        result.warnings.append(
            GenerationWarning(
                WarningType.CRITICAL_PERIOD,
                f"{nucleo.nome} on {day.isoformat()} needs {required} staff ({', '.join(criticality.sources)})",
                data=day,
                nucleo_id=nucleo.id,
            )
        )
    if nucleo.membri_richiesti_max is not None and required > nucleo.membri_richiesti_max:
        result.warnings.append(
            GenerationWarning(
                WarningType.CAPPED_BY_MAX,
                f"{nucleo.nome} on {day.isoformat()} capped from {required} to {nucleo.membri_richiesti_max}",
                data=day,
                nucleo_id=nucleo.id,
            )
        )
        required = nucleo.membri_richiesti_max

    primary: list[Candidate] = []
    fallback: list[Candidate] = []
    for collaborator_id in catalog.members_of(nucleo.id):
        if catalog.on_leave(collaborator_id, day):
            continue
        covering = [p for p in catalog.preferences_for(collaborator_id, day) if p.covers(start, end)]
        unavailable = any(p.tipo is PreferenceType.UNAVAILABLE for p in covering)
        if unavailable and not criticality.blocks_preferences:
            continue
        preferred = honour_preferred and not unavailable and any(p.tipo is PreferenceType.PREFERRED for p in covering)
        rank = RANK_OVERRIDDEN if unavailable else RANK_PREFERRED if preferred else RANK_NEUTRAL

        candidate = Candidate(
            collaborator=catalog.collaborator(collaborator_id),
            key=_ranking_key(rank, collaborator_id, state, options.ottimizza_equita),
            preferred=preferred,
            overrides_unavailable=unavailable,
        )
        if state.fits(collaborator_id, day, start, end):
            primary.append(candidate)
        elif not config.rispetta_vincoli_hard:
            candidate.fallback = True
            fallback.append(candidate)
        else:
            continue
        state.touched.add(collaborator_id)

    primary.sort(key=lambda c: c.key)
    fallback.sort(key=lambda c: c.key)

    picks: list[tuple[Candidate, int]] = []
    for pool in (primary, fallback):
        for index, candidate in enumerate(pool):
            if len(picks) >= required:
                break
            picks.append((candidate, _tie_breaks(pool, index)))

    for candidate, tie_breaks in picks:
        collaborator = candidate.collaborator
        confidence = BASE_CONFIDENCE - TIE_BREAK_PENALTY * tie_breaks
        reasons = []
        if candidate.preferred:
            confidence += PREFERRED_BONUS
            reasons.append("preferred slot")
        if candidate.fallback:
            confidence -= FALLBACK_PENALTY
            reasons.append("exceeds rest or weekly limits")
            result.metrics.soft_violations += 1
            if notify:
                result.warnings.append(
                    GenerationWarning(
                        WarningType.CONSTRAINT_SOFT_VIOLATION,
                        f"{collaborator.full_name} assigned to {nucleo.nome} on {day.isoformat()} beyond rest or weekly limits",
                        data=day,
                        nucleo_id=nucleo.id,
                        collaborator_id=collaborator.id,
                    )
                )
        if candidate.overrides_unavailable:
            reasons.append("unavailability overridden by critical period")
            result.metrics.preferences_overridden += 1
            if notify:
                result.warnings.append(
                    GenerationWarning(
                        WarningType.PREFERENCE_IGNORED,
                        f"{collaborator.full_name} marked unavailable on {day.isoformat()} but needed during "
                        f"{', '.join(criticality.blocking_sources)}",
                        data=day,
                        nucleo_id=nucleo.id,
                        collaborator_id=collaborator.id,
                    )
                )
        if options.ottimizza_equita:
            reasons.append(f"{state.run_minutes[collaborator.id] / 60:g}h assigned so far in this run")

        state.record(Commitment(collaborator.id, day, start, end, nucleo.id))
        result.assignments.append(
            ProposedAssignment(
                collaborator_id=collaborator.id,
                nucleo_id=nucleo.id,
                data=day,
                ora_inizio=start,
                ora_fine=end,
                confidenza=_clamp(confidence),
                tie_breaks=tie_breaks,
                preferred=candidate.preferred,
                fallback=candidate.fallback,
                reasoning="; ".join(reasons) or "first eligible candidate",
            )
        )

    assigned = len(picks)
    if assigned >= required:
        coverage = Coverage.OK
    elif assigned == 0:
        coverage = Coverage.UNCOVERED
    else:
        coverage = Coverage.PARTIAL
    if assigned < required:
        result.metrics.underfilled_slots += 1
        result.warnings.append(
            GenerationWarning(
                WarningType.UNDERSTAFFED,
                f"{nucleo.nome} on {day.isoformat()} has {assigned} of {required} required staff",
                data=day,
                nucleo_id=nucleo.id,
            )
        )

    shift_confidence = SHIFT_CONFIDENCE[coverage]
    if any(candidate.preferred for candidate, _ in picks):
        shift_confidence += PREFERRED_BONUS
    reasoning = f"{nucleo.nome} {start}-{end}: {assigned}/{required} staff"
    if criticality.is_active:
        reasoning += f"; critical: {', '.join(criticality.sources)}"
    result.shifts.append(
        GeneratedShift(
            nucleo_id=nucleo.id,
            data=day,
            ora_inizio=start,
            ora_fine=end,
            staff_richiesto=required,
            staff_assegnato=assigned,
            copertura=coverage,
            confidenza=_clamp(shift_confidence),
            reasoning=reasoning,
        )
    )


def _finish_metrics(
    catalog: ConstraintCatalog,
    state: _RunState,
    result: GenerationResult,
    in_scope: list[int],
    processed: list[date],
) -> None:
    metrics = result.metrics
    metrics.slots_generated = len(result.shifts)
    metrics.assignments_proposed = len(result.assignments)
    if result.assignments:
        metrics.average_confidence = round(
            sum(a.confidenza for a in result.assignments) / len(result.assignments), 3
        )
    if state.touched:
        hours = [state.run_minutes[cid] / 60 for cid in state.touched]
        metrics.equity_spread = round(max(hours) - min(hours), 2)

    for collaborator_id in in_scope:
        for day in processed:
            for pref in catalog.preferences_for(collaborator_id, day):
                if pref.tipo is not PreferenceType.PREFERRED:
                    continue
                metrics.preferences_total += 1
                if any(
                    c.data == day and windows_overlap(c.ora_inizio, c.ora_fine, pref.ora_inizio, pref.ora_fine)
                    for c in state.added[collaborator_id]
                ):
                    metrics.preferences_honoured += 1


def _workload_report(catalog: ConstraintCatalog, state: _RunState, day_count: int) -> list[WorkloadEntry]:
    report = []
    for collaborator_id in sorted(state.touched):
        collaborator = catalog.collaborator(collaborator_id)
        minimum = collaborator.ore_min if collaborator.tipo_ore is HoursPolicy.FLEXIBLE else None
        # Run hours scaled to a 7-day week before comparing with the flexible minimum.
        weekly_hours = state.run_minutes[collaborator_id] / 60 * 7 / max(day_count, 1)
        report.append(
            WorkloadEntry(
                collaborator_id=collaborator_id,
                name=collaborator.full_name,
                hours_assigned=round(state.run_minutes[collaborator_id] / 60, 2),
                historical_hours=round(state.historical_minutes[collaborator_id] / 60, 2),
                weekly_cap=catalog.rest_constraint(collaborator_id).max_weekly_hours,
                weekly_minimum=minimum,
                below_minimum=minimum is not None and weekly_hours < minimum,
            )
        )
    return report
