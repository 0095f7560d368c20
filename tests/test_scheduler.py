from __future__ import annotations

import itertools
from collections import defaultdict
from datetime import date, timedelta

import pytest

from turnjob.catalog import (
    WEEKLY_CAP_BY_POLICY,
    CollaboratorSnapshot,
    Commitment,
    ConstraintCatalog,
    CriticalPeriodSnapshot,
    LeaveSnapshot,
    NucleoSnapshot,
    OpeningHours,
    PreferenceSnapshot,
)
from turnjob.config import SchedulingConfig
from turnjob.enums import Coverage, HoursPolicy, PreferenceType, SchedulingMode, WarningType
from turnjob.errors import InputContractError, SchedulingDisabledError, UnknownNucleoError
from turnjob.scheduler import SHIFT_CONFIDENCE, GenerationOptions, GenerationRequest, generate_schedule
from turnjob.timeutil import at

MONDAY = date(2026, 3, 2)
WEDNESDAY = MONDAY + timedelta(days=2)
SUNDAY = MONDAY + timedelta(days=6)


def fixed_clock():
    return 0.0


def _collaborators(*ids: int):
    names = {1: "Anna", 2: "Bruno", 3: "Carla", 4: "Dario"}
    return tuple(CollaboratorSnapshot(id=cid, nome=names.get(cid, f"C{cid}")) for cid in ids)


def _catalog(members=(1,), *, nucleo=None, **overrides) -> ConstraintCatalog:
    values = {
        "tenant_id": 1,
        "nuclei": (nucleo or NucleoSnapshot(id=10, nome="Sala", members=tuple(members)),),
        "collaborators": _collaborators(*members),
    }
    values.update(overrides)
    return ConstraintCatalog(**values)


def _request(start: date, end: date, nucleo_ids=None, **options) -> GenerationRequest:
    return GenerationRequest(
        tenant_id=1,
        date_start=start,
        date_end=end,
        nucleo_ids=nucleo_ids,
        options=GenerationOptions(**options),
    )


def _warnings(result, warning_type: WarningType):
    return [w for w in result.warnings if w.type is warning_type]


def test_single_collaborator_covers_five_weekdays():
    catalog = _catalog(members=(1,))

    result = generate_schedule(catalog, _request(MONDAY, MONDAY + timedelta(days=4)), clock=fixed_clock)

    assert result.success is True
    assert len(result.shifts) == 5
    assert len(result.assignments) == 5
    assert {a.collaborator_id for a in result.assignments} == {1}
    assert all(s.copertura is Coverage.OK for s in result.shifts)
    assert all(a.confidenza == 0.9 for a in result.assignments)
    assert result.metrics.equity_spread == 0
    assert result.metrics.underfilled_slots == 0


def test_unavailable_wednesday_is_never_assigned():
    catalog = _catalog(
        members=(1, 2),
        preferences=(PreferenceSnapshot(collaborator_id=1, data=WEDNESDAY, tipo=PreferenceType.UNAVAILABLE),),
    )

    result = generate_schedule(catalog, _request(MONDAY, SUNDAY), clock=fixed_clock)

    wednesday = [a for a in result.assignments if a.data == WEDNESDAY]
    assert [a.collaborator_id for a in wednesday] == [2]
    assert not any(a.collaborator_id == 1 and a.data == WEDNESDAY for a in result.assignments)


def test_closed_sunday_is_skipped_with_warning():
    catalog = _catalog(
        members=(1, 2),
        opening_hours=OpeningHours.from_json("variabile", {"dom": {"chiuso": True}}),
    )

    result = generate_schedule(catalog, _request(MONDAY, SUNDAY), clock=fixed_clock)

    assert len(result.shifts) == 6
    assert SUNDAY not in {s.data for s in result.shifts}
    closed = _warnings(result, WarningType.CLOSED_DAY)
    assert len(closed) == 1
    assert closed[0].data == SUNDAY
    assert result.metrics.closed_days_skipped == 1


def test_generation_is_deterministic():
    catalog = _catalog(
        members=(1, 2, 3),
        preferences=(PreferenceSnapshot(collaborator_id=3, data=MONDAY, tipo=PreferenceType.PREFERRED),),
    )
    request = _request(MONDAY, MONDAY + timedelta(days=13))

    first = generate_schedule(catalog, request, clock=fixed_clock)
    second = generate_schedule(catalog, request, clock=fixed_clock)

    assert first.shifts == second.shifts
    assert first.assignments == second.assignments
    assert first.warnings == second.warnings
    assert first.metrics == second.metrics


def test_rest_hours_respected_between_consecutive_shifts():
    morning = NucleoSnapshot(id=10, nome="Colazioni", ora_inizio="06:00", ora_fine="14:00", members=(1, 2))
    evening = NucleoSnapshot(id=11, nome="Cene", ora_inizio="16:00", ora_fine="24:00", members=(1, 2))
    catalog = ConstraintCatalog(tenant_id=1, nuclei=(morning, evening), collaborators=_collaborators(1, 2))

    result = generate_schedule(catalog, _request(MONDAY, MONDAY + timedelta(days=6)), clock=fixed_clock)

    by_collaborator = defaultdict(list)
    for a in result.assignments:
        by_collaborator[a.collaborator_id].append((at(a.data, a.ora_inizio), at(a.data, a.ora_fine)))
    for spans in by_collaborator.values():
        spans.sort()
        for (_, previous_end), (next_start, _) in zip(spans, spans[1:]):
            assert next_start - previous_end >= timedelta(hours=11)


def test_existing_late_shift_blocks_next_morning():
    catalog = _catalog(
        members=(1,),
        commitments=(Commitment(1, MONDAY - timedelta(days=1), "20:00", "24:00"),),
    )

    result = generate_schedule(catalog, _request(MONDAY, MONDAY + timedelta(days=1)), clock=fixed_clock)

    assert [a.data for a in result.assignments] == [MONDAY + timedelta(days=1)]
    understaffed = _warnings(result, WarningType.UNDERSTAFFED)
    assert [w.data for w in understaffed] == [MONDAY]
    assert result.shifts[0].copertura is Coverage.UNCOVERED


def test_weekly_cap_holds_over_every_seven_day_window():
    catalog = _catalog(members=(1,), config=SchedulingConfig(max_ore_settimanali=16))

    result = generate_schedule(catalog, _request(MONDAY, MONDAY + timedelta(days=13)), clock=fixed_clock)

    days = sorted(a.data for a in result.assignments)
    assert days == [MONDAY, MONDAY + timedelta(days=1), MONDAY + timedelta(days=7), MONDAY + timedelta(days=8)]
    for offset in range(-6, 14):
        window_start = MONDAY + timedelta(days=offset)
        hours = sum(8 for d in days if window_start <= d <= window_start + timedelta(days=6))
        assert hours <= 16


def test_collaborator_hour_policy_overrides_tenant_cap():
    collaborators = (
        CollaboratorSnapshot(id=1, nome="Anna", tipo_ore=HoursPolicy.FIXED_WEEKLY, ore_settimanali=8),
    )
    catalog = _catalog(members=(1,), collaborators=collaborators)

    result = generate_schedule(catalog, _request(MONDAY, MONDAY + timedelta(days=4)), clock=fixed_clock)

    assert [a.data for a in result.assignments] == [MONDAY]
    assert result.metrics.underfilled_slots == 4


def test_equity_rotates_between_collaborators():
    catalog = _catalog(members=(1, 2))

    result = generate_schedule(catalog, _request(MONDAY, MONDAY + timedelta(days=3)), clock=fixed_clock)

    assert [a.collaborator_id for a in result.assignments] == [1, 2, 1, 2]
    assert result.metrics.equity_spread == 0
    # Full tie on the first day, decided by hours on the second.
    assert result.assignments[0].tie_breaks == 3
    assert result.assignments[0].confidenza == 0.6
    assert result.assignments[1].tie_breaks == 1
    assert result.assignments[1].confidenza == 0.8


def test_without_equity_lowest_id_wins():
    catalog = _catalog(members=(1, 2))

    result = generate_schedule(
        catalog,
        _request(MONDAY, MONDAY + timedelta(days=3), ottimizza_equita=False),
        clock=fixed_clock,
    )

    assert [a.collaborator_id for a in result.assignments] == [1, 1, 1, 1]
    assert result.metrics.equity_spread == 32


def test_historical_hours_break_ties():
    catalog = _catalog(
        members=(1, 2),
        commitments=(Commitment(1, MONDAY - timedelta(days=3), "09:00", "17:00"),),
    )

    result = generate_schedule(catalog, _request(MONDAY, MONDAY), clock=fixed_clock)

    assert [a.collaborator_id for a in result.assignments] == [2]


def test_preferred_collaborator_ranks_first():
    catalog = _catalog(
        members=(1, 2),
        preferences=(PreferenceSnapshot(collaborator_id=2, data=MONDAY, tipo=PreferenceType.PREFERRED),),
    )

    result = generate_schedule(catalog, _request(MONDAY, MONDAY), clock=fixed_clock)

    assert len(result.assignments) == 1
    picked = result.assignments[0]
    assert picked.collaborator_id == 2
    assert picked.preferred is True
    assert picked.confidenza == 0.95
    assert result.shifts[0].confidenza == 0.95
    assert result.metrics.preferences_total == 1
    assert result.metrics.preferences_honoured == 1


def test_preferences_can_be_ignored_by_option_or_config():
    prefs = (PreferenceSnapshot(collaborator_id=2, data=MONDAY, tipo=PreferenceType.PREFERRED),)

    by_option = generate_schedule(
        _catalog(members=(1, 2), preferences=prefs),
        _request(MONDAY, MONDAY, rispetta_preferenze=False),
        clock=fixed_clock,
    )
    by_config = generate_schedule(
        _catalog(members=(1, 2), preferences=prefs, config=SchedulingConfig(considera_preferenze=False)),
        _request(MONDAY, MONDAY),
        clock=fixed_clock,
    )

    assert [a.collaborator_id for a in by_option.assignments] == [1]
    assert [a.collaborator_id for a in by_config.assignments] == [1]
    assert by_option.metrics.preferences_honoured == 0


def test_partial_window_preference_only_applies_when_overlapping():
    prefs = (
        PreferenceSnapshot(
            collaborator_id=1,
            data=MONDAY,
            tipo=PreferenceType.UNAVAILABLE,
            ora_inizio="18:00",
            ora_fine="22:00",
        ),
    )
    catalog = _catalog(members=(1,), preferences=prefs)

    result = generate_schedule(catalog, _request(MONDAY, MONDAY), clock=fixed_clock)

    assert [a.collaborator_id for a in result.assignments] == [1]


def test_critical_period_raises_headcount():
    period = CriticalPeriodSnapshot(
        id=1,
        nome="Fiera",
        data_inizio=MONDAY,
        data_fine=MONDAY,
        moltiplicatore_staff=2.0,
    )
    catalog = _catalog(members=(1, 2, 3), critical_periods=(period,))

    result = generate_schedule(catalog, _request(MONDAY, MONDAY + timedelta(days=1)), clock=fixed_clock)

    monday, tuesday = result.shifts
    assert monday.staff_richiesto == 2
    assert monday.staff_assegnato == 2
    assert tuesday.staff_richiesto == 1
    critical = _warnings(result, WarningType.CRITICAL_PERIOD)
    assert len(critical) == 1
    assert "Fiera" in critical[0].message


def test_critical_periods_can_be_disregarded():
    period = CriticalPeriodSnapshot(id=1, nome="Fiera", data_inizio=MONDAY, data_fine=MONDAY, moltiplicatore_staff=3.0)
    catalog = _catalog(members=(1, 2, 3), critical_periods=(period,))

    result = generate_schedule(catalog, _request(MONDAY, MONDAY, considera_periodi_critici=False), clock=fixed_clock)

    assert result.shifts[0].staff_richiesto == 1
    assert not _warnings(result, WarningType.CRITICAL_PERIOD)


def test_headcount_is_capped_by_nucleo_maximum():
    period = CriticalPeriodSnapshot(id=1, nome="Saldi", data_inizio=MONDAY, data_fine=MONDAY, staff_minimo=4)
    nucleo = NucleoSnapshot(id=10, nome="Cassa", membri_richiesti_max=2, members=(1, 2, 3, 4))
    catalog = _catalog(members=(1, 2, 3, 4), nucleo=nucleo, critical_periods=(period,))

    result = generate_schedule(catalog, _request(MONDAY, MONDAY), clock=fixed_clock)

    assert result.shifts[0].staff_richiesto == 2
    assert len(result.assignments) == 2
    assert len(_warnings(result, WarningType.CAPPED_BY_MAX)) == 1


def test_blocking_period_makes_unavailability_non_binding():
    period = CriticalPeriodSnapshot(
        id=1,
        nome="Natale",
        data_inizio=MONDAY,
        data_fine=MONDAY,
        blocca_preferenze=True,
    )
    catalog = _catalog(
        members=(1,),
        critical_periods=(period,),
        preferences=(PreferenceSnapshot(collaborator_id=1, data=MONDAY, tipo=PreferenceType.UNAVAILABLE),),
    )

    result = generate_schedule(catalog, _request(MONDAY, MONDAY), clock=fixed_clock)

    assert [a.collaborator_id for a in result.assignments] == [1]
    ignored = _warnings(result, WarningType.PREFERENCE_IGNORED)
    assert len(ignored) == 1
    assert ignored[0].collaborator_id == 1
    assert result.metrics.preferences_overridden == 1


def test_overridden_unavailability_ranks_last():
    period = CriticalPeriodSnapshot(id=1, nome="Natale", data_inizio=MONDAY, data_fine=MONDAY, blocca_preferenze=True)
    catalog = _catalog(
        members=(1, 2),
        critical_periods=(period,),
        preferences=(PreferenceSnapshot(collaborator_id=1, data=MONDAY, tipo=PreferenceType.UNAVAILABLE),),
    )

    result = generate_schedule(catalog, _request(MONDAY, MONDAY), clock=fixed_clock)

    assert [a.collaborator_id for a in result.assignments] == [2]
    assert not _warnings(result, WarningType.PREFERENCE_IGNORED)


def test_approved_leave_excludes_collaborator():
    catalog = _catalog(
        members=(1, 2),
        leaves=(LeaveSnapshot(collaborator_id=1, data_inizio=MONDAY, data_fine=MONDAY + timedelta(days=1)),),
    )

    result = generate_schedule(catalog, _request(MONDAY, MONDAY + timedelta(days=1)), clock=fixed_clock)

    assert {a.collaborator_id for a in result.assignments} == {2}


def test_soft_constraints_fill_from_fallback_pool():
    catalog = _catalog(
        members=(1,),
        config=SchedulingConfig(max_ore_settimanali=8, rispetta_vincoli_hard=False),
    )

    result = generate_schedule(catalog, _request(MONDAY, MONDAY + timedelta(days=1)), clock=fixed_clock)

    first, second = result.assignments
    assert first.fallback is False
    assert second.fallback is True
    assert second.confidenza == 0.6
    violations = _warnings(result, WarningType.CONSTRAINT_SOFT_VIOLATION)
    assert [w.data for w in violations] == [MONDAY + timedelta(days=1)]
    assert result.metrics.soft_violations == 1


def test_conflict_notifications_can_be_silenced():
    catalog = _catalog(
        members=(1,),
        config=SchedulingConfig(max_ore_settimanali=8, rispetta_vincoli_hard=False, notifica_conflitti=False),
    )

    result = generate_schedule(catalog, _request(MONDAY, MONDAY + timedelta(days=1)), clock=fixed_clock)

    assert len(result.assignments) == 2
    assert not _warnings(result, WarningType.CONSTRAINT_SOFT_VIOLATION)
    assert result.metrics.soft_violations == 1


def test_day_specific_nucleo_hours_are_used():
    nucleo = NucleoSnapshot(
        id=10,
        nome="Sala",
        ora_inizio="09:00",
        ora_fine="17:00",
        orario_specifico=(("sab", "10:00", "14:00"),),
        members=(1,),
    )
    catalog = _catalog(members=(1,), nucleo=nucleo)
    saturday = MONDAY + timedelta(days=5)

    result = generate_schedule(catalog, _request(saturday, saturday), clock=fixed_clock)

    assert (result.shifts[0].ora_inizio, result.shifts[0].ora_fine) == ("10:00", "14:00")


def test_no_members_fails_with_warning():
    catalog = _catalog(members=(), collaborators=_collaborators(1))

    result = generate_schedule(catalog, _request(MONDAY, SUNDAY), clock=fixed_clock)

    assert result.success is False
    assert result.shifts == []
    assert [w.type for w in result.warnings] == [WarningType.NO_COLLABORATORS]


def test_time_budget_truncates_the_run():
    ticks = itertools.count()
    catalog = _catalog(members=(1, 2))

    result = generate_schedule(
        catalog,
        _request(MONDAY, SUNDAY, max_durata_ms=2500),
        clock=lambda: next(ticks),
    )

    assert result.success is True
    assert result.metrics.truncated is True
    assert [s.data for s in result.shifts] == [MONDAY, MONDAY + timedelta(days=1)]
    truncated = _warnings(result, WarningType.TRUNCATED)
    assert truncated[0].data == MONDAY + timedelta(days=2)


def test_workload_report_is_optional():
    plain = generate_schedule(_catalog(members=(1, 2)), _request(MONDAY, MONDAY + timedelta(days=1)), clock=fixed_clock)
    reported = generate_schedule(
        _catalog(members=(1, 2), config=SchedulingConfig(genera_report=True)),
        _request(MONDAY, MONDAY + timedelta(days=1)),
        clock=fixed_clock,
    )

    assert plain.report is None
    assert [(e.collaborator_id, e.hours_assigned, e.weekly_cap) for e in reported.report] == [(1, 8.0, 40), (2, 8.0, 40)]


def test_workload_report_flags_flexible_minimum():
    def flexible_catalog(*leaves):
        return _catalog(
            members=(2,),
            collaborators=(
                CollaboratorSnapshot(id=2, nome="Bruno", tipo_ore=HoursPolicy.FLEXIBLE, ore_min=20, ore_max=40),
            ),
            leaves=leaves,
            config=SchedulingConfig(genera_report=True),
        )

    away = generate_schedule(
        flexible_catalog(LeaveSnapshot(collaborator_id=2, data_inizio=MONDAY, data_fine=MONDAY + timedelta(days=4))),
        _request(MONDAY, SUNDAY),
        clock=fixed_clock,
    )
    busy = generate_schedule(flexible_catalog(), _request(MONDAY, SUNDAY), clock=fixed_clock)

    assert [(e.hours_assigned, e.weekly_minimum, e.below_minimum) for e in away.report] == [(16.0, 20, True)]
    assert [(e.hours_assigned, e.weekly_minimum, e.below_minimum) for e in busy.report] == [(40.0, 20, False)]


def test_inverted_range_is_rejected():
    with pytest.raises(InputContractError) as excinfo:
        generate_schedule(_catalog(), _request(SUNDAY, MONDAY), clock=fixed_clock)
    assert excinfo.value.field == "dateEnd"


def test_disabled_mode_is_rejected():
    catalog = _catalog(config=SchedulingConfig(modalita=SchedulingMode.DISABLED))
    with pytest.raises(SchedulingDisabledError):
        generate_schedule(catalog, _request(MONDAY, MONDAY), clock=fixed_clock)


def test_unknown_nucleo_is_rejected():
    with pytest.raises(UnknownNucleoError) as excinfo:
        generate_schedule(_catalog(), _request(MONDAY, MONDAY, nucleo_ids=(10, 99)), clock=fixed_clock)
    assert excinfo.value.nucleo_ids == [99]


def test_enum_tables_cover_every_member():
    assert set(SHIFT_CONFIDENCE) == set(Coverage)
    assert set(WEEKLY_CAP_BY_POLICY) == set(HoursPolicy)
