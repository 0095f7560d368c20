"""Weekly rest-day planning.

Days are scored for each collaborator: critical days and days where colleagues
are on leave score lower, days that would leave a nucleo below its minimum are
never picked, and team rest days are spread across the week.
"""

from __future__ import annotations

import logging
from collections import Counter
from dataclasses import dataclass, field
from datetime import date, timedelta

from turnjob.catalog import ConstraintCatalog
from turnjob.errors import InputContractError, UnknownCollaboratorError
from turnjob.timeutil import iso_week_bounds

logger = logging.getLogger(__name__)

BASE_SCORE = 100
EXTRA_STAFF_PENALTY = 15
MULTIPLIER_PENALTY = 20
COLLEAGUE_LEAVE_PENALTY = 10
SHORTAGE_PENALTY = 50
SPREAD_BONUS = 10
WEEKEND_BONUS = 5


@dataclass(frozen=True)
class RestDay:
    collaborator_id: int
    data: date
    score: int = BASE_SCORE

    @property
    def confidence(self) -> float:
        return min(1.0, round(self.score / BASE_SCORE, 2))


@dataclass(frozen=True)
class DayScore:
    data: date
    score: int
    causes_shortage: bool


@dataclass
class RestDayPlan:
    collaborator_id: int
    rest_days: list[RestDay] = field(default_factory=list)
    warnings: list[str] = field(default_factory=list)

    @property
    def success(self) -> bool:
        return bool(self.rest_days)


def score_days(
    catalog: ConstraintCatalog,
    collaborator_id: int,
    week_start: date,
    planned: tuple[RestDay, ...] = (),
) -> list[DayScore]:
    monday, _ = iso_week_bounds(week_start)
    resting_by_day = Counter(rest.data for rest in planned)
    average = len(planned) / 7
    nuclei = catalog.nuclei_of(collaborator_id)

    scores = []
    for offset in range(7):
        day = monday + timedelta(days=offset)
        score = BASE_SCORE

        criticality = catalog.active_criticalities(day)
        score -= criticality.extra_staff * EXTRA_STAFF_PENALTY
        score -= round((criticality.multiplier - 1) * MULTIPLIER_PENALTY)

        colleagues_away = sum(
            1
            for collaborator in catalog.collaborators
            if collaborator.id != collaborator_id and catalog.on_leave(collaborator.id, day)
        )
        score -= colleagues_away * COLLEAGUE_LEAVE_PENALTY

        causes_shortage = False
        resting = {rest.collaborator_id for rest in planned if rest.data == day}
        for nucleo in nuclei:
            available = [
                member
                for member in catalog.members_of(nucleo.id)
                if member not in resting and not catalog.on_leave(member, day)
            ]
            if len(available) - 1 < nucleo.membri_richiesti_min:
                causes_shortage = True
                score -= SHORTAGE_PENALTY

        if resting_by_day[day] < average:
            score += SPREAD_BONUS
        if day.weekday() >= 5:
            score += WEEKEND_BONUS

        scores.append(DayScore(day, max(0, score), causes_shortage))
    return scores


def plan_rest_days(
    catalog: ConstraintCatalog,
    collaborator_id: int,
    week_start: date,
    days: int = 1,
    planned: tuple[RestDay, ...] = (),
) -> RestDayPlan:
    """Pick ``days`` whole rest days for one collaborator in the week of ``week_start``.

    ``planned`` holds rest days already given to the team that week; they count
    as absences for coverage and steer the spread bonus.
    """
    collaborator = catalog.collaborator(collaborator_id)
    if collaborator is None:
        raise UnknownCollaboratorError(collaborator_id)
    if not 1 <= days <= 7:
        raise InputContractError("days", "days must be between 1 and 7")

    plan = RestDayPlan(collaborator_id=collaborator_id)
    taken = {rest.data for rest in planned if rest.collaborator_id == collaborator_id}
    ranked = sorted(score_days(catalog, collaborator_id, week_start, planned), key=lambda s: (-s.score, s.data))

    for candidate in ranked:
        if len(plan.rest_days) + len(taken) >= days:
            break
        label = candidate.data.isoformat()
        if candidate.data in taken:
            continue
        if catalog.is_closed_day(candidate.data):
            plan.warnings.append(f"{label}: closed day, not counted as rest")
            continue
        if catalog.on_leave(collaborator_id, candidate.data):
            plan.warnings.append(f"{label}: already on leave")
            continue
        if candidate.causes_shortage:
            plan.warnings.append(f"{label}: skipped to keep minimum coverage")
            continue
        plan.rest_days.append(RestDay(collaborator_id, candidate.data, candidate.score))

    granted = len(plan.rest_days) + len(taken)
    if granted < days:
        plan.warnings.append(f"only {granted} of {days} rest days assigned")
        logger.warning(
            "Rest days for collaborator %s in week of %s: %s of %s assigned",
            collaborator_id,
            week_start,
            granted,
            days,
        )
    plan.rest_days.sort(key=lambda rest: rest.data)
    return plan


def plan_team_rest_days(
    catalog: ConstraintCatalog,
    week_start: date,
    days: int = 1,
    collaborator_ids: list[int] | None = None,
) -> list[RestDayPlan]:
    """Plan collaborators one after the other so each sees the rest days already given."""
    if collaborator_ids is None:
        collaborator_ids = sorted(c.id for c in catalog.collaborators)
    planned: list[RestDay] = []
    plans = []
    for collaborator_id in collaborator_ids:
        plan = plan_rest_days(catalog, collaborator_id, week_start, days, tuple(planned))
        planned.extend(plan.rest_days)
        plans.append(plan)
    return plans
