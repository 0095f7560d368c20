"""Read-only constraint snapshot shared by the validator and the generator.

A ``ConstraintCatalog`` is built once per request (see
``turnjob.repositories.load_catalog``) and never touches the database again,
so every answer inside one request comes from the same state.
"""

from __future__ import annotations

import math
from collections import defaultdict
from dataclasses import dataclass, field
from datetime import date, datetime

import holidays

from turnjob.config import DEFAULT_CONFIG, SchedulingConfig
from turnjob.enums import HoursPolicy, PreferenceType
from turnjob.timeutil import DAY_KEYS, at, day_key, iso_week_bounds, minutes_between, windows_overlap

HOLIDAY_COUNTRY = "IT"


@dataclass(frozen=True)
class OpeningHours:
    tipo: str = "fisso"
    closed_day_keys: frozenset[str] = frozenset()
    chiuso_festivi: bool = False

    @classmethod
    def from_json(cls, tipo: str, orario: dict | None, chiuso_festivi: bool = False) -> "OpeningHours":
        closed: set[str] = set()
        if tipo == "variabile":
            for key in DAY_KEYS:
                entry = (orario or {}).get(key) or {}
                if entry.get("chiuso"):
                    closed.add(key)
        return cls(tipo=tipo, closed_day_keys=frozenset(closed), chiuso_festivi=chiuso_festivi)


@dataclass(frozen=True)
class NucleoSnapshot:
    id: int
    nome: str
    membri_richiesti_min: int = 1
    membri_richiesti_max: int | None = None
    ora_inizio: str = "09:00"
    ora_fine: str = "17:00"
    # (day key, start, end) overrides of the default window
    orario_specifico: tuple[tuple[str, str, str], ...] = ()
    members: tuple[int, ...] = ()

    def window_for(self, day: date) -> tuple[str, str]:
        key = day_key(day)
        for override_key, start, end in self.orario_specifico:
            if override_key == key:
                return start, end
        return self.ora_inizio, self.ora_fine


@dataclass(frozen=True)
class CollaboratorSnapshot:
    id: int
    nome: str
    cognome: str = ""
    tipo_contratto: str = "full_time"
    tipo_ore: HoursPolicy = HoursPolicy.FIXED_WEEKLY
    ore_settimanali: float | None = None
    ore_mensili: float | None = None
    ore_min: float | None = None
    ore_max: float | None = None

    @property
    def full_name(self) -> str:
        return f"{self.nome} {self.cognome}".strip()

    def weekly_hours_cap(self) -> float | None:
        return WEEKLY_CAP_BY_POLICY[self.tipo_ore](self)


def _monthly_to_weekly(collaborator: CollaboratorSnapshot) -> float | None:
    if collaborator.ore_mensili is None:
        return None
    return round(collaborator.ore_mensili * 12 / 52, 2)


WEEKLY_CAP_BY_POLICY = {
    HoursPolicy.FIXED_WEEKLY: lambda c: c.ore_settimanali,
    HoursPolicy.MONTHLY: _monthly_to_weekly,
    HoursPolicy.FLEXIBLE: lambda c: c.ore_max,
}


@dataclass(frozen=True)
class PreferenceSnapshot:
    collaborator_id: int
    data: date
    tipo: PreferenceType
    ora_inizio: str | None = None
    ora_fine: str | None = None
    id: int | None = None

    def covers(self, start: str | None, end: str | None) -> bool:
        return windows_overlap(self.ora_inizio, self.ora_fine, start, end)


@dataclass(frozen=True)
class LeaveSnapshot:
    collaborator_id: int
    data_inizio: date
    data_fine: date
    tipo: str = "ferie"


@dataclass(frozen=True)
class CriticalPeriodSnapshot:
    id: int
    nome: str
    data_inizio: date
    data_fine: date
    moltiplicatore_staff: float = 1.0
    staff_minimo: int | None = None
    blocca_preferenze: bool = False
    ora_inizio: str | None = None
    ora_fine: str | None = None
    ricorrente: bool = False
    pattern_ricorrenza: str | None = None

    def applies_on(self, day: date) -> bool:
        if not self.ricorrente or not self.pattern_ricorrenza:
            return self.data_inizio <= day <= self.data_fine
        if day < self.data_inizio:
            return False
        if self.pattern_ricorrenza == "annuale":
            return _in_cyclic_range(
                (day.month, day.day),
                (self.data_inizio.month, self.data_inizio.day),
                (self.data_fine.month, self.data_fine.day),
            )
        if self.pattern_ricorrenza == "mensile":
            return _in_cyclic_range(day.day, self.data_inizio.day, self.data_fine.day)
        if self.pattern_ricorrenza == "settimanale":
            return _in_cyclic_range(day.isoweekday(), self.data_inizio.isoweekday(), self.data_fine.isoweekday())
        raise ValueError(f"unknown recurrence pattern {self.pattern_ricorrenza!r}")


def _in_cyclic_range(value, start, end) -> bool:
    if start <= end:
        return start <= value <= end
    # Range wraps past the end of the cycle (e.g. 20 Dec - 6 Jan).
    return value >= start or value <= end


@dataclass(frozen=True)
class RecurringCriticalitySnapshot:
    id: int
    nome: str
    giorno_settimana: int
    staff_extra: int = 0
    moltiplicatore_staff: float = 1.0
    blocca_preferenze: bool = False
    ora_inizio: str | None = None
    ora_fine: str | None = None


@dataclass(frozen=True)
class Commitment:
    """A shift the collaborator already holds, or was given earlier in a run."""

    collaborator_id: int
    data: date
    ora_inizio: str
    ora_fine: str
    nucleo_id: int | None = None

    @property
    def starts_at(self) -> datetime:
        return at(self.data, self.ora_inizio)

    @property
    def ends_at(self) -> datetime:
        return at(self.data, self.ora_fine)

    @property
    def minutes(self) -> int:
        return minutes_between(self.ora_inizio, self.ora_fine)

    @property
    def hours(self) -> float:
        return self.minutes / 60


@dataclass(frozen=True)
class Criticality:
    multiplier: float = 1.0
    extra_staff: int = 0
    min_staff: int | None = None
    blocks_preferences: bool = False
    sources: tuple[str, ...] = ()
    blocking_sources: tuple[str, ...] = ()

    @property
    def is_active(self) -> bool:
        return bool(self.sources)

    def required_staff(self, base: int) -> int:
        # 50 * 1.1 is 55.00000000000001 in floating point
        required = math.ceil(round(base * self.multiplier, 6)) + self.extra_staff
        if self.min_staff is not None:
            required = max(required, self.min_staff)
        return required


NO_CRITICALITY = Criticality()


@dataclass(frozen=True)
class RestConstraint:
    min_rest_hours: float
    max_weekly_hours: float


@dataclass(frozen=True)
class ConstraintCatalog:
    tenant_id: int
    opening_hours: OpeningHours = field(default_factory=OpeningHours)
    config: SchedulingConfig = DEFAULT_CONFIG
    nuclei: tuple[NucleoSnapshot, ...] = ()
    collaborators: tuple[CollaboratorSnapshot, ...] = ()
    preferences: tuple[PreferenceSnapshot, ...] = ()
    leaves: tuple[LeaveSnapshot, ...] = ()
    critical_periods: tuple[CriticalPeriodSnapshot, ...] = ()
    recurring_criticalities: tuple[RecurringCriticalitySnapshot, ...] = ()
    commitments: tuple[Commitment, ...] = ()

    _collaborators_by_id: dict = field(init=False, repr=False, compare=False)
    _nuclei_by_id: dict = field(init=False, repr=False, compare=False)
    _preferences_by_key: dict = field(init=False, repr=False, compare=False)
    _leaves_by_collaborator: dict = field(init=False, repr=False, compare=False)
    _commitments_by_collaborator: dict = field(init=False, repr=False, compare=False)
    _holidays: object = field(init=False, repr=False, compare=False)

    def __post_init__(self):
        preferences = defaultdict(list)
        for pref in self.preferences:
            preferences[(pref.collaborator_id, pref.data)].append(pref)
        leaves = defaultdict(list)
        for leave in self.leaves:
            leaves[leave.collaborator_id].append(leave)
        commitments = defaultdict(list)
        for commitment in sorted(self.commitments, key=lambda c: (c.data, c.ora_inizio)):
            commitments[commitment.collaborator_id].append(commitment)

        object.__setattr__(self, "_collaborators_by_id", {c.id: c for c in self.collaborators})
        object.__setattr__(self, "_nuclei_by_id", {n.id: n for n in self.nuclei})
        object.__setattr__(self, "_preferences_by_key", dict(preferences))
        object.__setattr__(self, "_leaves_by_collaborator", dict(leaves))
        object.__setattr__(self, "_commitments_by_collaborator", {k: tuple(v) for k, v in commitments.items()})
        object.__setattr__(
            self,
            "_holidays",
            holidays.country_holidays(HOLIDAY_COUNTRY) if self.opening_hours.chiuso_festivi else None,
        )

    def collaborator(self, collaborator_id: int) -> CollaboratorSnapshot | None:
        return self._collaborators_by_id.get(collaborator_id)

    def nucleo(self, nucleo_id: int) -> NucleoSnapshot | None:
        return self._nuclei_by_id.get(nucleo_id)

    def members_of(self, nucleo_id: int) -> tuple[int, ...]:
        nucleo = self._nuclei_by_id.get(nucleo_id)
        if nucleo is None:
            return ()
        return tuple(sorted(cid for cid in set(nucleo.members) if cid in self._collaborators_by_id))

    def is_closed_day(self, day: date) -> bool:
        return self.closure_reason(day) is not None

    def closure_reason(self, day: date) -> str | None:
        if self._holidays is not None and day in self._holidays:
            return f"public holiday ({self._holidays.get(day)})"
        if self.opening_hours.tipo == "variabile" and day_key(day) in self.opening_hours.closed_day_keys:
            return f"closed on {day_key(day)} by opening hours"
        return None

    def active_criticalities(self, day: date, start: str | None = None, end: str | None = None) -> Criticality:
        multiplier = 1.0
        extra_staff = 0
        min_staff = None
        sources: list[str] = []
        blocking: list[str] = []

        for entry in self.recurring_criticalities:
            if entry.giorno_settimana != day.isoweekday():
                continue
            if not windows_overlap(entry.ora_inizio, entry.ora_fine, start, end):
                continue
            multiplier *= entry.moltiplicatore_staff
            extra_staff += entry.staff_extra
            sources.append(entry.nome)
            if entry.blocca_preferenze:
                blocking.append(entry.nome)

        for period in self.critical_periods:
            if not period.applies_on(day):
                continue
            if not windows_overlap(period.ora_inizio, period.ora_fine, start, end):
                continue
            multiplier *= period.moltiplicatore_staff
            if period.staff_minimo is not None:
                min_staff = period.staff_minimo if min_staff is None else max(min_staff, period.staff_minimo)
            sources.append(period.nome)
            if period.blocca_preferenze:
                blocking.append(period.nome)

        if not sources:
            return NO_CRITICALITY
        return Criticality(
            multiplier=multiplier,
            extra_staff=extra_staff,
            min_staff=min_staff,
            blocks_preferences=bool(blocking),
            sources=tuple(sources),
            blocking_sources=tuple(blocking),
        )

    def rest_constraint(self, collaborator_id: int) -> RestConstraint:
        weekly = self.config.max_ore_settimanali
        collaborator = self._collaborators_by_id.get(collaborator_id)
        if collaborator is not None:
            override = collaborator.weekly_hours_cap()
            if override is not None:
                weekly = override
        return RestConstraint(min_rest_hours=self.config.min_ore_riposo, max_weekly_hours=weekly)

    def preferences_for(self, collaborator_id: int, day: date) -> tuple[PreferenceSnapshot, ...]:
        return tuple(self._preferences_by_key.get((collaborator_id, day), ()))

    def on_leave(self, collaborator_id: int, day: date) -> bool:
        return any(
            leave.data_inizio <= day <= leave.data_fine
            for leave in self._leaves_by_collaborator.get(collaborator_id, ())
        )

    def commitments_for(self, collaborator_id: int) -> tuple[Commitment, ...]:
        return self._commitments_by_collaborator.get(collaborator_id, ())

    def nuclei_of(self, collaborator_id: int) -> tuple[NucleoSnapshot, ...]:
        return tuple(
            nucleo
            for nucleo in sorted(self.nuclei, key=lambda n: n.id)
            if collaborator_id in self.members_of(nucleo.id)
        )

    def is_unavailable(self, collaborator_id: int, day: date) -> bool:
        """On leave, or holding an approved UNAVAILABLE preference for the day."""
        if self.on_leave(collaborator_id, day):
            return True
        return any(
            pref.tipo is PreferenceType.UNAVAILABLE for pref in self.preferences_for(collaborator_id, day)
        )

    def remaining_week_hours(self, collaborator_id: int, day: date) -> float:
        monday, sunday = iso_week_bounds(day)
        used = sum(
            commitment.hours
            for commitment in self.commitments_for(collaborator_id)
            if monday <= commitment.data <= sunday
        )
        cap = self.rest_constraint(collaborator_id).max_weekly_hours
        return max(0.0, cap - used)
