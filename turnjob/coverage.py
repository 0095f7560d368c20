"""Minimum-coverage checks for absence requests.

An absence (an UNAVAILABLE preference, or leave) must not leave a nucleo with
fewer available members than ``membri_richiesti_min`` unless somebody else can
step in.
"""

from __future__ import annotations

from dataclasses import dataclass
from datetime import date

from turnjob.catalog import ConstraintCatalog, NucleoSnapshot
from turnjob.timeutil import hours_between


@dataclass(frozen=True)
class SlotCoverage:
    nucleo_id: int
    nucleo_name: str
    minimum: int
    available: int
    available_if_approved: int
    others_available: tuple[str, ...] = ()

    @property
    def is_short(self) -> bool:
        return self.available_if_approved < self.minimum

    @property
    def missing(self) -> int:
        return max(0, self.minimum - self.available_if_approved)


@dataclass(frozen=True)
class CoverOption:
    collaborator_id: int
    name: str
    remaining_hours: float


def check_slot_coverage(
    catalog: ConstraintCatalog,
    nucleo: NucleoSnapshot,
    collaborator_id: int,
    day: date,
) -> SlotCoverage:
    available = [
        member for member in catalog.members_of(nucleo.id) if not catalog.is_unavailable(member, day)
    ]
    others = [member for member in available if member != collaborator_id]
    # A requester who is already away does not change the headcount.
    after = len(others) if collaborator_id in available else len(available)
    return SlotCoverage(
        nucleo_id=nucleo.id,
        nucleo_name=nucleo.nome,
        minimum=nucleo.membri_richiesti_min,
        available=len(available),
        available_if_approved=after,
        others_available=tuple(catalog.collaborator(member).full_name for member in others),
    )


def suggest_cover(
    catalog: ConstraintCatalog,
    nucleo: NucleoSnapshot,
    collaborator_id: int,
    day: date,
) -> list[CoverOption]:
    """Members of the nucleo who are free on ``day`` and still have hours for its shift."""
    start, end = nucleo.window_for(day)
    needed = hours_between(start, end)
    options = []
    for member in catalog.members_of(nucleo.id):
        if member == collaborator_id or catalog.is_unavailable(member, day):
            continue
        remaining = catalog.remaining_week_hours(member, day)
        if remaining < needed:
            continue
        options.append(CoverOption(member, catalog.collaborator(member).full_name, round(remaining, 2)))
    return options


def coverage_shortfalls(catalog: ConstraintCatalog, collaborator_id: int, day: date) -> list[SlotCoverage]:
    return [
        coverage
        for coverage in (
            check_slot_coverage(catalog, nucleo, collaborator_id, day) for nucleo in catalog.nuclei_of(collaborator_id)
        )
        if coverage.is_short
    ]
