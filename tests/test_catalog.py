from __future__ import annotations

from datetime import date

import pytest

from turnjob.catalog import (
    CollaboratorSnapshot,
    ConstraintCatalog,
    CriticalPeriodSnapshot,
    Criticality,
    NucleoSnapshot,
    OpeningHours,
    RecurringCriticalitySnapshot,
)
from turnjob.config import DEFAULT_CONFIG, SchedulingConfig
from turnjob.enums import HoursPolicy
from turnjob.timeutil import parse_hhmm, windows_overlap

MONDAY = date(2026, 3, 2)
TUESDAY = date(2026, 3, 3)
SUNDAY = date(2026, 3, 8)


def test_fixed_schedule_is_never_closed():
    catalog = ConstraintCatalog(tenant_id=1, opening_hours=OpeningHours.from_json("fisso", {"dom": {"chiuso": True}}))

    assert catalog.is_closed_day(SUNDAY) is False
    assert catalog.closure_reason(SUNDAY) is None


def test_variable_schedule_closes_flagged_days():
    opening = OpeningHours.from_json(
        "variabile",
        {
            "lun": {"inizio": "09:00", "fine": "18:00", "chiuso": False},
            "dom": {"chiuso": True},
        },
    )
    catalog = ConstraintCatalog(tenant_id=1, opening_hours=opening)

    assert catalog.is_closed_day(SUNDAY) is True
    assert catalog.is_closed_day(MONDAY) is False
    assert "dom" in catalog.closure_reason(SUNDAY)


def test_public_holidays_close_only_when_enabled():
    christmas = date(2026, 12, 25)
    easter_monday = date(2026, 4, 6)
    plain = ConstraintCatalog(tenant_id=1)
    with_holidays = ConstraintCatalog(tenant_id=1, opening_hours=OpeningHours(chiuso_festivi=True))

    assert plain.is_closed_day(christmas) is False
    assert with_holidays.is_closed_day(christmas) is True
    assert with_holidays.is_closed_day(easter_monday) is True
    assert with_holidays.closure_reason(christmas).startswith("public holiday")
    assert with_holidays.is_closed_day(MONDAY) is False


def test_criticalities_merge_across_sources():
    catalog = ConstraintCatalog(
        tenant_id=1,
        recurring_criticalities=(
            RecurringCriticalitySnapshot(id=1, nome="Mercato", giorno_settimana=2, staff_extra=1, moltiplicatore_staff=1.5),
        ),
        critical_periods=(
            CriticalPeriodSnapshot(
                id=1,
                nome="Fiera",
                data_inizio=TUESDAY,
                data_fine=TUESDAY,
                moltiplicatore_staff=2.0,
                staff_minimo=4,
                blocca_preferenze=True,
            ),
        ),
    )

    criticality = catalog.active_criticalities(TUESDAY)

    assert criticality.multiplier == 3.0
    assert criticality.extra_staff == 1
    assert criticality.min_staff == 4
    assert criticality.blocks_preferences is True
    assert criticality.sources == ("Mercato", "Fiera")
    assert criticality.blocking_sources == ("Fiera",)
    assert criticality.required_staff(2) == 7
    assert catalog.active_criticalities(MONDAY).is_active is False


def test_criticality_window_must_intersect_query_window():
    catalog = ConstraintCatalog(
        tenant_id=1,
        critical_periods=(
            CriticalPeriodSnapshot(
                id=1,
                nome="Aperitivo",
                data_inizio=MONDAY,
                data_fine=MONDAY,
                ora_inizio="18:00",
                ora_fine="22:00",
            ),
        ),
    )

    assert catalog.active_criticalities(MONDAY, "09:00", "17:00").is_active is False
    assert catalog.active_criticalities(MONDAY, "16:00", "19:00").is_active is True
    assert catalog.active_criticalities(MONDAY).is_active is True


def test_staff_minimum_takes_maximum():
    catalog = ConstraintCatalog(
        tenant_id=1,
        critical_periods=(
            CriticalPeriodSnapshot(id=1, nome="A", data_inizio=MONDAY, data_fine=MONDAY, staff_minimo=3),
            CriticalPeriodSnapshot(id=2, nome="B", data_inizio=MONDAY, data_fine=MONDAY, staff_minimo=5),
        ),
    )

    assert catalog.active_criticalities(MONDAY).min_staff == 5
    assert catalog.active_criticalities(MONDAY).required_staff(1) == 5


@pytest.mark.parametrize(
    ("base", "multiplier", "expected"),
    [
        (50, 1.1, 55),
        (90, 1.1, 99),
        (25, 2.2, 55),
        (3, 1.5, 5),
        (7, 1.1, 8),
        (4, 1.0, 4),
    ],
)
def test_required_staff_rounds_the_exact_product_up(base, multiplier, expected):
    assert Criticality(multiplier=multiplier, sources=("Fiera",)).required_staff(base) == expected


def test_required_staff_with_chained_multipliers():
    catalog = ConstraintCatalog(
        tenant_id=1,
        critical_periods=(
            CriticalPeriodSnapshot(id=1, nome="Fiera", data_inizio=MONDAY, data_fine=MONDAY, moltiplicatore_staff=1.1),
        ),
        recurring_criticalities=(
            RecurringCriticalitySnapshot(id=1, nome="Mercato", giorno_settimana=1, moltiplicatore_staff=2.0),
        ),
    )

    criticality = catalog.active_criticalities(MONDAY)

    assert criticality.required_staff(25) == 55
    assert criticality.required_staff(50) == 110
    assert criticality.required_staff(3) == 7


@pytest.mark.parametrize(
    ("day", "expected"),
    [
        (date(2026, 12, 24), True),
        (date(2027, 1, 3), True),
        (date(2026, 11, 30), False),
        (date(2025, 12, 1), False),
    ],
)
def test_yearly_period_wraps_year_end(day, expected):
    period = CriticalPeriodSnapshot(
        id=1,
        nome="Feste",
        data_inizio=date(2025, 12, 20),
        data_fine=date(2026, 1, 6),
        ricorrente=True,
        pattern_ricorrenza="annuale",
    )

    assert period.applies_on(day) is expected


def test_monthly_and_weekly_patterns():
    monthly = CriticalPeriodSnapshot(
        id=1,
        nome="Fine mese",
        data_inizio=date(2026, 1, 28),
        data_fine=date(2026, 2, 2),
        ricorrente=True,
        pattern_ricorrenza="mensile",
    )
    weekly = CriticalPeriodSnapshot(
        id=2,
        nome="Weekend",
        data_inizio=date(2026, 3, 6),
        data_fine=date(2026, 3, 8),
        ricorrente=True,
        pattern_ricorrenza="settimanale",
    )

    assert monthly.applies_on(date(2026, 3, 30)) is True
    assert monthly.applies_on(date(2026, 3, 1)) is True
    assert monthly.applies_on(date(2026, 3, 15)) is False
    assert weekly.applies_on(date(2026, 3, 14)) is True
    assert weekly.applies_on(date(2026, 3, 11)) is False


def test_rest_constraint_falls_back_to_defaults():
    catalog = ConstraintCatalog(tenant_id=1, collaborators=(CollaboratorSnapshot(id=1, nome="Anna"),))

    limits = catalog.rest_constraint(1)

    assert catalog.config is DEFAULT_CONFIG
    assert (limits.min_rest_hours, limits.max_weekly_hours) == (11, 40)
    assert catalog.rest_constraint(99).max_weekly_hours == 40


def test_rest_constraint_uses_collaborator_hour_policy():
    catalog = ConstraintCatalog(
        tenant_id=1,
        config=SchedulingConfig(max_ore_settimanali=38, min_ore_riposo=12),
        collaborators=(
            CollaboratorSnapshot(id=1, nome="Anna", tipo_ore=HoursPolicy.FIXED_WEEKLY, ore_settimanali=24),
            CollaboratorSnapshot(id=2, nome="Bruno", tipo_ore=HoursPolicy.MONTHLY, ore_mensili=104),
            CollaboratorSnapshot(id=3, nome="Carla", tipo_ore=HoursPolicy.FLEXIBLE, ore_min=10, ore_max=30),
            CollaboratorSnapshot(id=4, nome="Dario", tipo_ore=HoursPolicy.FLEXIBLE),
        ),
    )

    assert catalog.rest_constraint(1).max_weekly_hours == 24
    assert catalog.rest_constraint(2).max_weekly_hours == 24.0
    assert catalog.rest_constraint(3).max_weekly_hours == 30
    assert catalog.rest_constraint(4).max_weekly_hours == 38
    assert catalog.rest_constraint(1).min_rest_hours == 12


def test_members_of_skips_inactive_or_unknown_collaborators():
    catalog = ConstraintCatalog(
        tenant_id=1,
        nuclei=(NucleoSnapshot(id=10, nome="Sala", members=(3, 1, 7)),),
        collaborators=(CollaboratorSnapshot(id=1, nome="Anna"), CollaboratorSnapshot(id=3, nome="Carla")),
    )

    assert catalog.members_of(10) == (1, 3)
    assert catalog.members_of(11) == ()


def test_parse_hhmm_validates_format():
    assert parse_hhmm("09:30") == 570
    assert parse_hhmm("24:00") == 1440
    for bad in ("9:30", "25:00", "12:60", "24:30", "noon"):
        with pytest.raises(ValueError):
            parse_hhmm(bad)


def test_partial_windows_overlap_on_any_intersection():
    assert windows_overlap("14:00", "18:00", "16:00", "20:00") is True
    assert windows_overlap("09:00", "12:00", "12:00", "15:00") is False
    assert windows_overlap(None, None, "09:00", "10:00") is True
