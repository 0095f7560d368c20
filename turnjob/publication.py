from __future__ import annotations

import logging
from collections import defaultdict
from dataclasses import dataclass

from sqlalchemy.orm import Session

from turnjob.config import SchedulingConfig
from turnjob.enums import SchedulingMode
from turnjob.models import Assegnazione, Turno
from turnjob.scheduler import GenerationOptions, GenerationResult

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class PublicationPolicy:
    persist: bool
    publish: bool


PUBLICATION_POLICY = {
    SchedulingMode.SUGGESTION: PublicationPolicy(persist=False, publish=False),
    SchedulingMode.SEMI_AUTOMATIC: PublicationPolicy(persist=True, publish=False),
    SchedulingMode.AUTONOMOUS: PublicationPolicy(persist=True, publish=True),
    # Rejected before generation; listed so every mode has an entry.
    SchedulingMode.DISABLED: PublicationPolicy(persist=False, publish=False),
}


@dataclass
class PublicationSummary:
    persisted_shifts: int = 0
    published_shifts: int = 0
    persisted_assignments: int = 0
    threshold: float = 0.0


def publish_threshold(config: SchedulingConfig, options: GenerationOptions) -> float:
    return max(config.soglia_confidenza, options.min_confidenza)


def apply_publication(
    db: Session,
    result: GenerationResult,
    config: SchedulingConfig,
    options: GenerationOptions,
) -> PublicationSummary:
    """Write the proposal according to the tenant mode. Does not commit."""
    policy = PUBLICATION_POLICY[config.modalita]
    summary = PublicationSummary(threshold=publish_threshold(config, options))
    if not policy.persist:
        return summary

    by_slot = defaultdict(list)
    for proposed in result.assignments:
        by_slot[(proposed.nucleo_id, proposed.data)].append(proposed)

    for shift in result.shifts:
        publish = policy.publish and shift.confidenza >= summary.threshold
        turno = Turno(
            nucleo_id=shift.nucleo_id,
            data=shift.data,
            ora_inizio=shift.ora_inizio,
            ora_fine=shift.ora_fine,
            num_collaboratori_richiesti=shift.staff_richiesto,
            pubblicato=publish,
            suggerito_da_ai=True,
            ai_confidence=shift.confidenza,
            note=shift.reasoning,
        )
        db.add(turno)
        db.flush()
        summary.persisted_shifts += 1
        if publish:
            summary.published_shifts += 1

        for proposed in by_slot[(shift.nucleo_id, shift.data)]:
            if proposed.confidenza < options.min_confidenza:
                continue
            db.add(
                Assegnazione(
                    turno_id=turno.id,
                    collaboratore_id=proposed.collaborator_id,
                    tipo="suggerita_ai",
                    confermato=False,
                    confidenza=proposed.confidenza,
                )
            )
            summary.persisted_assignments += 1

    db.flush()
    logger.info(
        "Persisted %s shifts (%s published) and %s assignments in %s mode",
        summary.persisted_shifts,
        summary.published_shifts,
        summary.persisted_assignments,
        config.modalita.value,
    )
    return summary
