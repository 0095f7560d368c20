from __future__ import annotations

import logging
import os
from dataclasses import asdict
from datetime import date, datetime, timezone
from typing import Any

from fastapi import Depends, FastAPI, Header, HTTPException, Query, Request, status
from fastapi.exceptions import RequestValidationError
from fastapi.responses import JSONResponse
from pydantic import BaseModel, ConfigDict, Field, model_validator
from pydantic.alias_generators import to_camel
from sqlalchemy import func, select
from sqlalchemy.exc import IntegrityError, SQLAlchemyError
from sqlalchemy.orm import Session

from turnjob.config import CONFIG_FIELDS, merge_config, resolve_config
from turnjob.conflicts import detect_shift_conflicts
from turnjob.db import get_db
from turnjob.enums import Coverage, PreferenceType, SchedulingMode, ValidationStatus, WarningType
from turnjob.errors import InputContractError, SchedulingDisabledError, UnknownCollaboratorError
from turnjob.models import Azienda, Collaboratore, ConfigurazioneScheduling, GenerationRun, Nucleo, PreferenzaTurno, Turno
from turnjob.publication import PublicationSummary, apply_publication
from turnjob.repositories import get_config_row, load_catalog
from turnjob.rest_days import plan_team_rest_days
from turnjob.scheduler import GenerationOptions, GenerationRequest, GenerationResult, generate_schedule
from turnjob.timeutil import iso_week_bounds
from turnjob.validator import ValidationResult, check_time_window, validate_preference

logging.basicConfig(
    level=os.getenv("TURNJOB_LOG_LEVEL", "INFO").upper(),
    format="%(asctime)s %(levelname)s %(name)s: %(message)s",
)
logger = logging.getLogger(__name__)

app = FastAPI(title="Turnjob Scheduling Engine")

API_PREFIXES = ("/preferences", "/schedules", "/scheduling-config", "/nuclei", "/shifts", "/rest-days")


@app.middleware("http")
async def disable_cache_for_api(request: Request, call_next):
    response = await call_next(request)
    if request.url.path.startswith(API_PREFIXES):
        response.headers["Cache-Control"] = "no-store, no-cache, max-age=0, must-revalidate"
        response.headers["Pragma"] = "no-cache"
    return response


@app.exception_handler(RequestValidationError)
async def request_validation_handler(request: Request, exc: RequestValidationError) -> JSONResponse:
    errors = [
        {
            "field": ".".join(str(part) for part in error["loc"] if part not in ("body", "query", "header")),
            "message": error["msg"],
            "type": error["type"],
        }
        for error in exc.errors()
    ]
    return JSONResponse(status_code=status.HTTP_400_BAD_REQUEST, content={"detail": "Invalid request", "errors": errors})


@app.exception_handler(InputContractError)
async def input_contract_handler(request: Request, exc: InputContractError) -> JSONResponse:
    return JSONResponse(status_code=exc.status_code, content={"detail": exc.message, "field": exc.field})


@app.exception_handler(SQLAlchemyError)
async def database_error_handler(request: Request, exc: SQLAlchemyError) -> JSONResponse:
    logger.exception("Database error on %s %s", request.method, request.url.path)
    return JSONResponse(status_code=status.HTTP_500_INTERNAL_SERVER_ERROR, content={"detail": "Database error"})


class ApiModel(BaseModel):
    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True)


class PreferenceValidatePayload(ApiModel):
    collaborator_id: int
    day: date = Field(alias="date")
    start_time: str | None = None
    end_time: str | None = None
    type: PreferenceType = PreferenceType.AVAILABLE

    @model_validator(mode="after")
    def validate_window(self) -> PreferenceValidatePayload:
        check_time_window(self.start_time, self.end_time)
        return self


class PreferenceCreatePayload(PreferenceValidatePayload):
    note: str | None = None


class ValidationDetailOut(ApiModel):
    type: str
    message: str
    severity: str


class ValidationResultOut(ApiModel):
    status: ValidationStatus
    is_valid: bool
    reason: str | None = None
    details: list[ValidationDetailOut] = Field(default_factory=list)


class PreferenceOut(ApiModel):
    id: int
    collaborator_id: int
    day: date = Field(alias="date")
    start_time: str | None = None
    end_time: str | None = None
    type: PreferenceType
    status: ValidationStatus
    reason: str | None = None
    validated_at: datetime | None = None
    note: str | None = None


class PreferenceCreateOut(ApiModel):
    preference: PreferenceOut
    validation: ValidationResultOut


class GenerationOptionsPayload(BaseModel):
    rispetta_preferenze: bool = True
    ottimizza_equita: bool = True
    considera_periodi_critici: bool = True
    min_confidenza: float = Field(default=0.0, ge=0, le=1)
    max_durata_ms: int | None = Field(default=None, ge=1)


class GeneratePayload(ApiModel):
    tenant_id: int
    date_start: date
    date_end: date
    nucleo_ids: list[int] | None = None
    options: GenerationOptionsPayload = Field(default_factory=GenerationOptionsPayload)

    @model_validator(mode="after")
    def validate_range(self) -> GeneratePayload:
        if self.date_start > self.date_end:
            raise ValueError("dateStart must not be after dateEnd")
        return self

    def to_request(self) -> GenerationRequest:
        return GenerationRequest(
            tenant_id=self.tenant_id,
            date_start=self.date_start,
            date_end=self.date_end,
            nucleo_ids=tuple(self.nucleo_ids) if self.nucleo_ids is not None else None,
            options=GenerationOptions(**self.options.model_dump()),
        )


class GeneratedShiftOut(ApiModel):
    nucleo_id: int
    day: date = Field(alias="date")
    start_time: str
    end_time: str
    required_staff: int
    assigned_staff: int
    coverage: Coverage
    confidence: float
    reasoning: str


class ProposedAssignmentOut(ApiModel):
    collaborator_id: int
    nucleo_id: int
    day: date = Field(alias="date")
    start_time: str
    end_time: str
    confidence: float
    tie_breaks: int
    preferred: bool
    fallback: bool
    reasoning: str


class WarningOut(ApiModel):
    type: WarningType
    message: str
    day: date | None = Field(default=None, alias="date")
    nucleo_id: int | None = None
    collaborator_id: int | None = None


class MetricsOut(ApiModel):
    slots_generated: int
    assignments_proposed: int
    underfilled_slots: int
    equity_spread: float
    average_confidence: float
    preferences_honoured: int
    preferences_total: int
    closed_days_skipped: int
    soft_violations: int
    preferences_overridden: int
    elapsed_ms: int
    truncated: bool


class WorkloadOut(ApiModel):
    collaborator_id: int
    name: str
    hours_assigned: float
    historical_hours: float
    weekly_cap: float
    weekly_minimum: float | None = None
    below_minimum: bool = False


class PublicationOut(ApiModel):
    mode: SchedulingMode
    persisted_shifts: int
    published_shifts: int
    persisted_assignments: int
    threshold: float


class GenerateResponse(ApiModel):
    run_id: int | None = None
    success: bool
    shifts_generated: list[GeneratedShiftOut]
    proposed_assignments: list[ProposedAssignmentOut]
    warnings: list[WarningOut]
    metrics: MetricsOut
    report: list[WorkloadOut] | None = None
    publication: PublicationOut | None = None


class GenerationRunMetaOut(ApiModel):
    id: int
    created_at: datetime
    date_start: date
    date_end: date
    mode: SchedulingMode
    status: str


class GenerationRunOut(GenerationRunMetaOut):
    payload_json: dict[str, Any]
    result_json: dict[str, Any]


class ShiftConflictPayload(ApiModel):
    nucleo_id: int
    day: date = Field(alias="date")
    start_time: str
    end_time: str
    exclude_collaborator_id: int | None = None

    @model_validator(mode="after")
    def validate_window(self) -> ShiftConflictPayload:
        check_time_window(self.start_time, self.end_time)
        return self


class ConflictOut(ApiModel):
    kind: str
    collaborator_id: int
    day: date = Field(alias="date")
    message: str


class ConflictReportOut(ApiModel):
    has_conflicts: bool
    conflicts: list[ConflictOut]
    free_collaborators: list[int]
    suggestions: list[str]


class RestDayPlanPayload(ApiModel):
    week_start: date
    days: int = Field(default=1, ge=1, le=7)
    collaborator_ids: list[int] | None = None


class RestDayOut(ApiModel):
    day: date = Field(alias="date")
    score: int
    confidence: float


class RestDayPlanOut(ApiModel):
    collaborator_id: int
    success: bool
    rest_days: list[RestDayOut]
    warnings: list[str]


class SchedulingConfigOut(BaseModel):
    exists: bool
    modalita: SchedulingMode
    soglia_confidenza: float
    considera_preferenze: bool
    rispetta_vincoli_hard: bool
    notifica_conflitti: bool
    genera_report: bool
    max_ore_settimanali: float
    min_ore_riposo: float


class SchedulingConfigUpdatePayload(BaseModel):
    modalita: SchedulingMode | None = None
    soglia_confidenza: float | None = Field(default=None, ge=0, le=1)
    considera_preferenze: bool | None = None
    rispetta_vincoli_hard: bool | None = None
    notifica_conflitti: bool | None = None
    genera_report: bool | None = None
    max_ore_settimanali: int | None = Field(default=None, ge=1, le=60)
    min_ore_riposo: int | None = Field(default=None, ge=8, le=14)


def utcnow() -> datetime:
    return datetime.now(timezone.utc)


def get_tenant(
    x_tenant_id: int = Header(alias="X-Tenant-Id"),
    db: Session = Depends(get_db),
) -> Azienda:
    azienda = db.get(Azienda, x_tenant_id)
    if azienda is None:
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail="Tenant not found")
    return azienda


def serialize_validation(result: ValidationResult) -> ValidationResultOut:
    return ValidationResultOut(
        status=result.status,
        is_valid=result.is_valid,
        reason=result.reason,
        details=[ValidationDetailOut(type=d.type, message=d.message, severity=d.severity) for d in result.details],
    )


def serialize_preference(row: PreferenzaTurno) -> PreferenceOut:
    return PreferenceOut(
        id=row.id,
        collaborator_id=row.collaboratore_id,
        day=row.data,
        start_time=row.ora_inizio or None,
        end_time=row.ora_fine or None,
        type=PreferenceType(row.tipo),
        status=ValidationStatus(row.stato_validazione),
        reason=row.motivo_rifiuto,
        validated_at=row.validata_il,
        note=row.note,
    )


def serialize_generation(
    result: GenerationResult,
    mode: SchedulingMode,
    publication: PublicationSummary | None = None,
) -> GenerateResponse:
    return GenerateResponse(
        success=result.success,
        shifts_generated=[
            GeneratedShiftOut(
                nucleo_id=s.nucleo_id,
                day=s.data,
                start_time=s.ora_inizio,
                end_time=s.ora_fine,
                required_staff=s.staff_richiesto,
                assigned_staff=s.staff_assegnato,
                coverage=s.copertura,
                confidence=s.confidenza,
                reasoning=s.reasoning,
            )
            for s in result.shifts
        ],
        proposed_assignments=[
            ProposedAssignmentOut(
                collaborator_id=a.collaborator_id,
                nucleo_id=a.nucleo_id,
                day=a.data,
                start_time=a.ora_inizio,
                end_time=a.ora_fine,
                confidence=a.confidenza,
                tie_breaks=a.tie_breaks,
                preferred=a.preferred,
                fallback=a.fallback,
                reasoning=a.reasoning,
            )
            for a in result.assignments
        ],
        warnings=[
            WarningOut(
                type=w.type,
                message=w.message,
                day=w.data,
                nucleo_id=w.nucleo_id,
                collaborator_id=w.collaborator_id,
            )
            for w in result.warnings
        ],
        metrics=MetricsOut(**asdict(result.metrics)),
        report=None if result.report is None else [WorkloadOut(**asdict(entry)) for entry in result.report],
        publication=None
        if publication is None
        else PublicationOut(
            mode=mode,
            persisted_shifts=publication.persisted_shifts,
            published_shifts=publication.published_shifts,
            persisted_assignments=publication.persisted_assignments,
            threshold=publication.threshold,
        ),
    )


def run_status(result: GenerationResult) -> str:
    if not result.success:
        return "errore"
    if result.metrics.truncated or result.metrics.underfilled_slots:
        return "parziale"
    return "completato"


def serialize_config(row: ConfigurazioneScheduling | None) -> SchedulingConfigOut:
    config = resolve_config(row)
    return SchedulingConfigOut(exists=row is not None, **asdict(config))


def serialize_run_meta(run: GenerationRun) -> GenerationRunMetaOut:
    return GenerationRunMetaOut(
        id=run.id,
        created_at=run.created_at,
        date_start=run.data_inizio,
        date_end=run.data_fine,
        mode=SchedulingMode(run.modalita),
        status=run.stato,
    )


@app.post("/preferences/validate", response_model=ValidationResultOut)
def validate_preference_endpoint(
    payload: PreferenceValidatePayload,
    tenant: Azienda = Depends(get_tenant),
    db: Session = Depends(get_db),
) -> ValidationResultOut:
    catalog = load_catalog(db, tenant.id, payload.day, payload.day)
    result = validate_preference(
        catalog,
        payload.collaborator_id,
        payload.day,
        payload.start_time,
        payload.end_time,
        payload.type,
    )
    return serialize_validation(result)


@app.post("/preferences", response_model=PreferenceCreateOut, status_code=status.HTTP_201_CREATED)
def create_preference(
    payload: PreferenceCreatePayload,
    tenant: Azienda = Depends(get_tenant),
    db: Session = Depends(get_db),
) -> PreferenceCreateOut:
    catalog = load_catalog(db, tenant.id, payload.day, payload.day)
    if catalog.collaborator(payload.collaborator_id) is None:
        raise UnknownCollaboratorError(payload.collaborator_id)

    existing = db.scalar(
        select(PreferenzaTurno.id).where(
            PreferenzaTurno.collaboratore_id == payload.collaborator_id,
            PreferenzaTurno.data == payload.day,
            PreferenzaTurno.ora_inizio == (payload.start_time or ""),
        )
    )
    if existing is not None:
        raise HTTPException(status_code=status.HTTP_409_CONFLICT, detail="Preference already submitted for this slot")

    result = validate_preference(
        catalog,
        payload.collaborator_id,
        payload.day,
        payload.start_time,
        payload.end_time,
        payload.type,
    )
    row = PreferenzaTurno(
        collaboratore_id=payload.collaborator_id,
        data=payload.day,
        ora_inizio=payload.start_time or "",
        ora_fine=payload.end_time or "",
        tipo=payload.type.value,
        stato_validazione=result.status.value,
        motivo_rifiuto=result.reason,
        validata_il=utcnow(),
        note=payload.note,
    )
    db.add(row)
    try:
        db.commit()
    except IntegrityError as exc:
        db.rollback()
        raise HTTPException(
            status_code=status.HTTP_409_CONFLICT, detail="Preference already submitted for this slot"
        ) from exc
    db.refresh(row)
    logger.info(
        "Stored preference %s of collaborator %s on %s as %s",
        row.id,
        row.collaboratore_id,
        row.data,
        row.stato_validazione,
    )
    return PreferenceCreateOut(preference=serialize_preference(row), validation=serialize_validation(result))


@app.get("/preferences", response_model=list[PreferenceOut])
def list_preferences(
    collaborator_id: int | None = Query(default=None, alias="collaboratorId"),
    status_filter: ValidationStatus | None = Query(default=None, alias="status"),
    type_filter: PreferenceType | None = Query(default=None, alias="type"),
    date_from: date | None = Query(default=None, alias="dateFrom"),
    date_to: date | None = Query(default=None, alias="dateTo"),
    tenant: Azienda = Depends(get_tenant),
    db: Session = Depends(get_db),
) -> list[PreferenceOut]:
    query = (
        select(PreferenzaTurno)
        .join(Collaboratore, Collaboratore.id == PreferenzaTurno.collaboratore_id)
        .where(Collaboratore.azienda_id == tenant.id)
    )
    if collaborator_id is not None:
        query = query.where(PreferenzaTurno.collaboratore_id == collaborator_id)
    if status_filter is not None:
        query = query.where(PreferenzaTurno.stato_validazione == status_filter.value)
    if type_filter is not None:
        query = query.where(PreferenzaTurno.tipo == type_filter.value)
    if date_from is not None:
        query = query.where(PreferenzaTurno.data >= date_from)
    if date_to is not None:
        query = query.where(PreferenzaTurno.data <= date_to)
    rows = db.scalars(query.order_by(PreferenzaTurno.data, PreferenzaTurno.ora_inizio, PreferenzaTurno.id)).all()
    return [serialize_preference(row) for row in rows]


@app.post("/schedules/generate", response_model=GenerateResponse)
def generate(
    payload: GeneratePayload,
    tenant: Azienda = Depends(get_tenant),
    db: Session = Depends(get_db),
):
    if payload.tenant_id != tenant.id:
        raise HTTPException(status_code=status.HTTP_403_FORBIDDEN, detail="tenantId does not match the caller tenant")

    catalog = load_catalog(db, tenant.id, payload.date_start, payload.date_end)
    mode = catalog.config.modalita
    if mode is SchedulingMode.DISABLED:
        raise SchedulingDisabledError()

    request = payload.to_request()
    result = generate_schedule(catalog, request)

    try:
        publication = apply_publication(db, result, catalog.config, request.options)
        response = serialize_generation(result, mode, publication)
        run = GenerationRun(
            azienda_id=tenant.id,
            data_inizio=payload.date_start,
            data_fine=payload.date_end,
            modalita=mode.value,
            stato=run_status(result),
            payload_json=payload.model_dump(mode="json", by_alias=True),
            result_json=response.model_dump(mode="json", by_alias=True, exclude={"run_id"}),
        )
        db.add(run)
        db.commit()
    except SQLAlchemyError:
        db.rollback()
        logger.exception("Could not persist generated schedule for tenant %s", tenant.id)
        failed = serialize_generation(result, mode)
        return JSONResponse(
            status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
            content={
                "detail": "Generated schedule could not be saved",
                "warnings": [w.model_dump(mode="json", by_alias=True) for w in failed.warnings],
                "metrics": failed.metrics.model_dump(mode="json", by_alias=True),
            },
        )

    response.run_id = run.id
    return response


@app.get("/schedules/runs", response_model=list[GenerationRunMetaOut])
def list_generation_runs(
    tenant: Azienda = Depends(get_tenant),
    db: Session = Depends(get_db),
) -> list[GenerationRunMetaOut]:
    runs = db.scalars(
        select(GenerationRun)
        .where(GenerationRun.azienda_id == tenant.id)
        .order_by(GenerationRun.created_at.desc(), GenerationRun.id.desc())
    ).all()
    return [serialize_run_meta(run) for run in runs]


@app.get("/schedules/runs/{run_id}", response_model=GenerationRunOut)
def get_generation_run(
    run_id: int,
    tenant: Azienda = Depends(get_tenant),
    db: Session = Depends(get_db),
) -> GenerationRunOut:
    run = db.get(GenerationRun, run_id)
    if run is None or run.azienda_id != tenant.id:
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail="Generation run not found")
    meta = serialize_run_meta(run)
    return GenerationRunOut(**meta.model_dump(), payload_json=run.payload_json, result_json=run.result_json)


@app.post("/shifts/conflicts", response_model=ConflictReportOut)
def check_shift_conflicts(
    payload: ShiftConflictPayload,
    tenant: Azienda = Depends(get_tenant),
    db: Session = Depends(get_db),
) -> ConflictReportOut:
    catalog = load_catalog(db, tenant.id, payload.day, payload.day)
    report = detect_shift_conflicts(
        catalog,
        payload.nucleo_id,
        payload.day,
        payload.start_time,
        payload.end_time,
        payload.exclude_collaborator_id,
    )
    return ConflictReportOut(
        has_conflicts=report.has_conflicts,
        conflicts=[
            ConflictOut(kind=c.kind, collaborator_id=c.collaborator_id, day=c.data, message=c.message)
            for c in report.conflicts
        ],
        free_collaborators=list(report.free_collaborators),
        suggestions=list(report.suggestions),
    )


@app.post("/rest-days/plan", response_model=list[RestDayPlanOut])
def plan_rest_days_endpoint(
    payload: RestDayPlanPayload,
    tenant: Azienda = Depends(get_tenant),
    db: Session = Depends(get_db),
) -> list[RestDayPlanOut]:
    monday, sunday = iso_week_bounds(payload.week_start)
    catalog = load_catalog(db, tenant.id, monday, sunday)
    plans = plan_team_rest_days(catalog, monday, payload.days, payload.collaborator_ids)
    return [
        RestDayPlanOut(
            collaborator_id=plan.collaborator_id,
            success=plan.success,
            rest_days=[RestDayOut(day=r.data, score=r.score, confidence=r.confidence) for r in plan.rest_days],
            warnings=plan.warnings,
        )
        for plan in plans
    ]


@app.get("/scheduling-config", response_model=SchedulingConfigOut)
def get_scheduling_config(
    tenant: Azienda = Depends(get_tenant),
    db: Session = Depends(get_db),
) -> SchedulingConfigOut:
    return serialize_config(get_config_row(db, tenant.id))


@app.put("/scheduling-config", response_model=SchedulingConfigOut)
def update_scheduling_config(
    payload: SchedulingConfigUpdatePayload,
    tenant: Azienda = Depends(get_tenant),
    db: Session = Depends(get_db),
) -> SchedulingConfigOut:
    row = get_config_row(db, tenant.id)
    try:
        merged = merge_config(resolve_config(row), payload.model_dump(exclude_none=True))
    except ValueError as exc:
        raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail=str(exc)) from exc

    values = asdict(merged)
    values["modalita"] = merged.modalita.value
    if row is None:
        row = ConfigurazioneScheduling(azienda_id=tenant.id, **values)
        db.add(row)
    else:
        for name in CONFIG_FIELDS:
            setattr(row, name, values[name])
    try:
        db.commit()
    except IntegrityError as exc:
        db.rollback()
        raise HTTPException(
            status_code=status.HTTP_409_CONFLICT, detail="Configuration was changed concurrently, retry"
        ) from exc
    logger.info("Scheduling configuration of tenant %s set to mode %s", tenant.id, merged.modalita.value)
    return serialize_config(row)


@app.delete("/nuclei/{nucleo_id}")
def delete_nucleo(
    nucleo_id: int,
    tenant: Azienda = Depends(get_tenant),
    db: Session = Depends(get_db),
) -> dict[str, bool]:
    nucleo = db.get(Nucleo, nucleo_id)
    if nucleo is None or nucleo.azienda_id != tenant.id or not nucleo.attivo:
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail="Nucleo not found")
    future_shifts = db.scalar(
        select(func.count(Turno.id)).where(Turno.nucleo_id == nucleo_id, Turno.data >= date.today())
    ) or 0
    if future_shifts:
        raise HTTPException(
            status_code=status.HTTP_409_CONFLICT,
            detail=f"Nucleo still has {future_shifts} upcoming shifts",
        )
    nucleo.attivo = False
    db.commit()
    return {"ok": True}


@app.get("/health")
def health() -> dict[str, bool | str]:
    return {"ok": True, "env": os.getenv("ENVIRONMENT", "local")}
