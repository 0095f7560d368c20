from __future__ import annotations

from collections import defaultdict
from datetime import date, timedelta

from sqlalchemy import and_, or_, select
from sqlalchemy.orm import Session

from turnjob.catalog import (
    CollaboratorSnapshot,
    Commitment,
    ConstraintCatalog,
    CriticalPeriodSnapshot,
    LeaveSnapshot,
    NucleoSnapshot,
    OpeningHours,
    PreferenceSnapshot,
    RecurringCriticalitySnapshot,
)
from turnjob.config import resolve_config
from turnjob.enums import HoursPolicy, PreferenceType, ValidationStatus
from turnjob.errors import UnknownTenantError
from turnjob.models import (
    AppartenenzaNucleo,
    Assegnazione,
    Azienda,
    Collaboratore,
    ConfigurazioneScheduling,
    CriticitaContinuativa,
    Nucleo,
    PeriodoCritico,
    PreferenzaTurno,
    Richiesta,
    Turno,
)
from turnjob.timeutil import DAY_KEYS

# Earlier assignments feed the equity ranking, later ones the weekly windows.
HISTORY_LOOKBACK_DAYS = 28
WEEK_LOOKAHEAD_DAYS = 7


def get_config_row(db: Session, tenant_id: int) -> ConfigurazioneScheduling | None:
    return db.scalar(select(ConfigurazioneScheduling).where(ConfigurazioneScheduling.azienda_id == tenant_id))


def _nucleo_snapshot(nucleo: Nucleo, members: list[int]) -> NucleoSnapshot:
    overrides = []
    for key in DAY_KEYS:
        entry = (nucleo.orario_specifico or {}).get(key)
        if entry and entry.get("inizio") and entry.get("fine"):
            overrides.append((key, entry["inizio"], entry["fine"]))
    return NucleoSnapshot(
        id=nucleo.id,
        nome=nucleo.nome,
        membri_richiesti_min=nucleo.membri_richiesti_min,
        membri_richiesti_max=nucleo.membri_richiesti_max,
        ora_inizio=nucleo.ora_inizio,
        ora_fine=nucleo.ora_fine,
        orario_specifico=tuple(overrides),
        members=tuple(sorted(members)),
    )


def _collaborator_snapshot(row: Collaboratore) -> CollaboratorSnapshot:
    return CollaboratorSnapshot(
        id=row.id,
        nome=row.nome,
        cognome=row.cognome,
        tipo_contratto=row.tipo_contratto,
        tipo_ore=HoursPolicy(row.tipo_ore),
        ore_settimanali=row.ore_settimanali,
        ore_mensili=row.ore_mensili,
        ore_min=row.ore_min,
        ore_max=row.ore_max,
    )


def load_catalog(
    db: Session,
    tenant_id: int,
    date_start: date,
    date_end: date,
) -> ConstraintCatalog:
    """Read everything the engine needs for ``date_start..date_end`` into a snapshot.

    All active nuclei of the tenant are loaded; narrowing to the requested
    ones is left to the generator so foreign ids are reported, not dropped.
    """
    azienda = db.get(Azienda, tenant_id)
    if azienda is None:
        raise UnknownTenantError(tenant_id)

    config = resolve_config(get_config_row(db, tenant_id))

    collaborators = db.scalars(
        select(Collaboratore)
        .where(Collaboratore.azienda_id == tenant_id, Collaboratore.attivo.is_(True))
        .order_by(Collaboratore.id)
    ).all()
    collaborator_ids = [c.id for c in collaborators]

    nuclei = db.scalars(
        select(Nucleo).where(Nucleo.azienda_id == tenant_id, Nucleo.attivo.is_(True)).order_by(Nucleo.id)
    ).all()
    members = defaultdict(list)
    if nuclei:
        rows = db.execute(
            select(AppartenenzaNucleo.nucleo_id, AppartenenzaNucleo.collaboratore_id).where(
                AppartenenzaNucleo.nucleo_id.in_([n.id for n in nuclei])
            )
        ).all()
        for nucleo_id, collaborator_id in rows:
            members[nucleo_id].append(collaborator_id)

    preferences = db.scalars(
        select(PreferenzaTurno).where(
            PreferenzaTurno.collaboratore_id.in_(collaborator_ids),
            PreferenzaTurno.stato_validazione == ValidationStatus.APPROVED.value,
            PreferenzaTurno.data >= date_start,
            PreferenzaTurno.data <= date_end,
        )
    ).all()

    leaves = db.scalars(
        select(Richiesta).where(
            Richiesta.collaboratore_id.in_(collaborator_ids),
            Richiesta.stato == "approvata",
            Richiesta.data_inizio <= date_end,
            Richiesta.data_fine >= date_start,
        )
    ).all()

    periods = db.scalars(
        select(PeriodoCritico)
        .where(
            PeriodoCritico.azienda_id == tenant_id,
            PeriodoCritico.attivo.is_(True),
            or_(
                PeriodoCritico.ricorrente.is_(True),
                and_(PeriodoCritico.data_inizio <= date_end, PeriodoCritico.data_fine >= date_start),
            ),
        )
        .order_by(PeriodoCritico.id)
    ).all()

    recurring = db.scalars(
        select(CriticitaContinuativa)
        .where(CriticitaContinuativa.azienda_id == tenant_id, CriticitaContinuativa.attivo.is_(True))
        .order_by(CriticitaContinuativa.id)
    ).all()

    commitments = db.execute(
        select(Assegnazione.collaboratore_id, Turno.data, Turno.ora_inizio, Turno.ora_fine, Turno.nucleo_id)
        .join(Turno, Turno.id == Assegnazione.turno_id)
        .where(
            Assegnazione.collaboratore_id.in_(collaborator_ids),
            Turno.data >= date_start - timedelta(days=HISTORY_LOOKBACK_DAYS),
            Turno.data <= date_end + timedelta(days=WEEK_LOOKAHEAD_DAYS),
        )
        .order_by(Turno.data, Turno.ora_inizio, Assegnazione.collaboratore_id)
    ).all()

    return ConstraintCatalog(
        tenant_id=tenant_id,
        opening_hours=OpeningHours.from_json(azienda.tipo_orario, azienda.orario_apertura, azienda.chiuso_festivi),
        config=config,
        nuclei=tuple(_nucleo_snapshot(n, members[n.id]) for n in nuclei),
        collaborators=tuple(_collaborator_snapshot(c) for c in collaborators),
        preferences=tuple(
            PreferenceSnapshot(
                collaborator_id=p.collaboratore_id,
                data=p.data,
                tipo=PreferenceType(p.tipo),
                ora_inizio=p.ora_inizio or None,
                ora_fine=p.ora_fine or None,
                id=p.id,
            )
            for p in preferences
        ),
        leaves=tuple(LeaveSnapshot(r.collaboratore_id, r.data_inizio, r.data_fine, r.tipo) for r in leaves),
        critical_periods=tuple(
            CriticalPeriodSnapshot(
                id=p.id,
                nome=p.nome,
                data_inizio=p.data_inizio,
                data_fine=p.data_fine,
                moltiplicatore_staff=p.moltiplicatore_staff,
                staff_minimo=p.staff_minimo,
                blocca_preferenze=p.blocca_preferenze,
                ora_inizio=p.ora_inizio,
                ora_fine=p.ora_fine,
                ricorrente=p.ricorrente,
                pattern_ricorrenza=p.pattern_ricorrenza,
            )
            for p in periods
        ),
        recurring_criticalities=tuple(
            RecurringCriticalitySnapshot(
                id=r.id,
                nome=r.nome,
                giorno_settimana=r.giorno_settimana,
                staff_extra=r.staff_extra,
                moltiplicatore_staff=r.moltiplicatore_staff,
                blocca_preferenze=r.blocca_preferenze,
                ora_inizio=r.ora_inizio,
                ora_fine=r.ora_fine,
            )
            for r in recurring
        ),
        commitments=tuple(
            Commitment(collaborator_id, data, ora_inizio, ora_fine, nucleo_id)
            for collaborator_id, data, ora_inizio, ora_fine, nucleo_id in commitments
        ),
    )
