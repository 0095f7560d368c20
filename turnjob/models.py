from __future__ import annotations

from datetime import date, datetime, timezone

from sqlalchemy import (
    Boolean,
    CheckConstraint,
    Date,
    DateTime,
    Float,
    ForeignKey,
    Integer,
    JSON,
    String,
    Text,
    UniqueConstraint,
)
from sqlalchemy.orm import Mapped, mapped_column, relationship

from turnjob.db import Base


def utcnow() -> datetime:
    return datetime.now(timezone.utc)


class Azienda(Base):
    __tablename__ = "aziende"
    __table_args__ = (
        CheckConstraint("tipo_orario IN ('fisso', 'variabile')", name="ck_aziende_tipo_orario"),
    )

    id: Mapped[int] = mapped_column(Integer, primary_key=True)
    nome: Mapped[str] = mapped_column(String(255), nullable=False)
    tipo_orario: Mapped[str] = mapped_column(String(20), nullable=False, default="fisso")
    orario_apertura: Mapped[dict] = mapped_column(JSON, nullable=False, default=dict)
    chiuso_festivi: Mapped[bool] = mapped_column(Boolean, nullable=False, default=False)
    created_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), nullable=False, default=utcnow)

    nuclei = relationship("Nucleo", back_populates="azienda", cascade="all, delete-orphan")
    collaboratori = relationship("Collaboratore", back_populates="azienda", cascade="all, delete-orphan")


class Nucleo(Base):
    __tablename__ = "nuclei"
    __table_args__ = (
        CheckConstraint("membri_richiesti_min >= 1", name="ck_nuclei_min"),
        CheckConstraint(
            "membri_richiesti_max IS NULL OR membri_richiesti_max >= membri_richiesti_min",
            name="ck_nuclei_max",
        ),
    )

    id: Mapped[int] = mapped_column(Integer, primary_key=True)
    azienda_id: Mapped[int] = mapped_column(ForeignKey("aziende.id", ondelete="CASCADE"), nullable=False, index=True)
    nome: Mapped[str] = mapped_column(String(120), nullable=False)
    membri_richiesti_min: Mapped[int] = mapped_column(Integer, nullable=False, default=1)
    membri_richiesti_max: Mapped[int | None] = mapped_column(Integer, nullable=True)
    ora_inizio: Mapped[str] = mapped_column(String(5), nullable=False, default="09:00")
    ora_fine: Mapped[str] = mapped_column(String(5), nullable=False, default="17:00")
    orario_specifico: Mapped[dict | None] = mapped_column(JSON, nullable=True)
    attivo: Mapped[bool] = mapped_column(Boolean, nullable=False, default=True)
    created_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), nullable=False, default=utcnow)

    azienda = relationship("Azienda", back_populates="nuclei")
    appartenenze = relationship("AppartenenzaNucleo", back_populates="nucleo", cascade="all, delete-orphan")
    turni = relationship("Turno", back_populates="nucleo")


class Collaboratore(Base):
    __tablename__ = "collaboratori"
    __table_args__ = (
        CheckConstraint("tipo_contratto IN ('full_time', 'part_time', 'altro')", name="ck_collaboratori_contratto"),
        CheckConstraint("tipo_ore IN ('settimanale_fisso', 'mensile', 'flessibile')", name="ck_collaboratori_tipo_ore"),
    )

    id: Mapped[int] = mapped_column(Integer, primary_key=True)
    azienda_id: Mapped[int] = mapped_column(ForeignKey("aziende.id", ondelete="CASCADE"), nullable=False, index=True)
    nome: Mapped[str] = mapped_column(String(120), nullable=False)
    cognome: Mapped[str] = mapped_column(String(120), nullable=False, default="")
    email: Mapped[str | None] = mapped_column(String(255), nullable=True)
    tipo_contratto: Mapped[str] = mapped_column(String(20), nullable=False, default="full_time")
    tipo_ore: Mapped[str] = mapped_column(String(20), nullable=False, default="settimanale_fisso")
    ore_settimanali: Mapped[float | None] = mapped_column(Float, nullable=True)
    ore_mensili: Mapped[float | None] = mapped_column(Float, nullable=True)
    ore_min: Mapped[float | None] = mapped_column(Float, nullable=True)
    ore_max: Mapped[float | None] = mapped_column(Float, nullable=True)
    attivo: Mapped[bool] = mapped_column(Boolean, nullable=False, default=True, index=True)
    created_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), nullable=False, default=utcnow)

    azienda = relationship("Azienda", back_populates="collaboratori")
    appartenenze = relationship("AppartenenzaNucleo", back_populates="collaboratore", cascade="all, delete-orphan")
    preferenze = relationship("PreferenzaTurno", back_populates="collaboratore")


class AppartenenzaNucleo(Base):
    __tablename__ = "appartenenze_nucleo"
    __table_args__ = (
        UniqueConstraint("collaboratore_id", "nucleo_id", name="uq_appartenenza"),
    )

    id: Mapped[int] = mapped_column(Integer, primary_key=True)
    collaboratore_id: Mapped[int] = mapped_column(ForeignKey("collaboratori.id", ondelete="CASCADE"), nullable=False, index=True)
    nucleo_id: Mapped[int] = mapped_column(ForeignKey("nuclei.id", ondelete="CASCADE"), nullable=False, index=True)

    collaboratore = relationship("Collaboratore", back_populates="appartenenze")
    nucleo = relationship("Nucleo", back_populates="appartenenze")


class Turno(Base):
    __tablename__ = "turni"
    __table_args__ = (
        CheckConstraint("num_collaboratori_richiesti >= 0", name="ck_turni_richiesti"),
        CheckConstraint("ora_inizio < ora_fine", name="ck_turni_window"),
    )

    id: Mapped[int] = mapped_column(Integer, primary_key=True)
    nucleo_id: Mapped[int] = mapped_column(ForeignKey("nuclei.id"), nullable=False, index=True)
    data: Mapped[date] = mapped_column(Date, nullable=False, index=True)
    ora_inizio: Mapped[str] = mapped_column(String(5), nullable=False)
    ora_fine: Mapped[str] = mapped_column(String(5), nullable=False)
    num_collaboratori_richiesti: Mapped[int] = mapped_column(Integer, nullable=False, default=1)
    pubblicato: Mapped[bool] = mapped_column(Boolean, nullable=False, default=False)
    completato: Mapped[bool] = mapped_column(Boolean, nullable=False, default=False)
    suggerito_da_ai: Mapped[bool] = mapped_column(Boolean, nullable=False, default=False)
    ai_confidence: Mapped[float | None] = mapped_column(Float, nullable=True)
    note: Mapped[str | None] = mapped_column(Text, nullable=True)
    created_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), nullable=False, default=utcnow)

    nucleo = relationship("Nucleo", back_populates="turni")
    assegnazioni = relationship("Assegnazione", back_populates="turno", cascade="all, delete-orphan")


class Assegnazione(Base):
    __tablename__ = "assegnazioni"
    __table_args__ = (
        UniqueConstraint("turno_id", "collaboratore_id", name="uq_assegnazione"),
        CheckConstraint("tipo IN ('manuale', 'richiesta_collaboratore', 'suggerita_ai')", name="ck_assegnazioni_tipo"),
    )

    id: Mapped[int] = mapped_column(Integer, primary_key=True)
    turno_id: Mapped[int] = mapped_column(ForeignKey("turni.id", ondelete="CASCADE"), nullable=False, index=True)
    collaboratore_id: Mapped[int] = mapped_column(ForeignKey("collaboratori.id"), nullable=False, index=True)
    tipo: Mapped[str] = mapped_column(String(30), nullable=False, default="manuale")
    confermato: Mapped[bool] = mapped_column(Boolean, nullable=False, default=False)
    confidenza: Mapped[float | None] = mapped_column(Float, nullable=True)
    created_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), nullable=False, default=utcnow)

    turno = relationship("Turno", back_populates="assegnazioni")


class PreferenzaTurno(Base):
    __tablename__ = "preferenze_turno"
    __table_args__ = (
        # Full-day preferences store an empty start time so the key still applies.
        UniqueConstraint("collaboratore_id", "data", "ora_inizio", name="uq_preferenza_slot"),
        CheckConstraint("tipo IN ('AVAILABLE', 'PREFERRED', 'UNAVAILABLE')", name="ck_preferenze_tipo"),
        CheckConstraint(
            "stato_validazione IN ('PENDING', 'APPROVED', 'REJECTED_CONFLICT', 'REJECTED_CRITICAL', 'REJECTED_CONSTRAINT')",
            name="ck_preferenze_stato",
        ),
    )

    id: Mapped[int] = mapped_column(Integer, primary_key=True)
    collaboratore_id: Mapped[int] = mapped_column(ForeignKey("collaboratori.id", ondelete="CASCADE"), nullable=False, index=True)
    data: Mapped[date] = mapped_column(Date, nullable=False, index=True)
    ora_inizio: Mapped[str] = mapped_column(String(5), nullable=False, default="")
    ora_fine: Mapped[str] = mapped_column(String(5), nullable=False, default="")
    tipo: Mapped[str] = mapped_column(String(20), nullable=False)
    stato_validazione: Mapped[str] = mapped_column(String(30), nullable=False, default="PENDING", index=True)
    motivo_rifiuto: Mapped[str | None] = mapped_column(Text, nullable=True)
    validata_il: Mapped[datetime | None] = mapped_column(DateTime(timezone=True), nullable=True)
    note: Mapped[str | None] = mapped_column(Text, nullable=True)
    created_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), nullable=False, default=utcnow)

    collaboratore = relationship("Collaboratore", back_populates="preferenze")


class PeriodoCritico(Base):
    __tablename__ = "periodi_critici"
    __table_args__ = (
        CheckConstraint("data_inizio <= data_fine", name="ck_periodi_critici_range"),
        CheckConstraint(
            "pattern_ricorrenza IS NULL OR pattern_ricorrenza IN ('annuale', 'mensile', 'settimanale')",
            name="ck_periodi_critici_pattern",
        ),
    )

    id: Mapped[int] = mapped_column(Integer, primary_key=True)
    azienda_id: Mapped[int] = mapped_column(ForeignKey("aziende.id", ondelete="CASCADE"), nullable=False, index=True)
    nome: Mapped[str] = mapped_column(String(255), nullable=False)
    descrizione: Mapped[str | None] = mapped_column(Text, nullable=True)
    data_inizio: Mapped[date] = mapped_column(Date, nullable=False)
    data_fine: Mapped[date] = mapped_column(Date, nullable=False)
    ora_inizio: Mapped[str | None] = mapped_column(String(5), nullable=True)
    ora_fine: Mapped[str | None] = mapped_column(String(5), nullable=True)
    ricorrente: Mapped[bool] = mapped_column(Boolean, nullable=False, default=False)
    pattern_ricorrenza: Mapped[str | None] = mapped_column(String(20), nullable=True)
    staff_minimo: Mapped[int | None] = mapped_column(Integer, nullable=True)
    moltiplicatore_staff: Mapped[float] = mapped_column(Float, nullable=False, default=1.0)
    blocca_preferenze: Mapped[bool] = mapped_column(Boolean, nullable=False, default=False)
    attivo: Mapped[bool] = mapped_column(Boolean, nullable=False, default=True)


class CriticitaContinuativa(Base):
    __tablename__ = "criticita_continuative"
    __table_args__ = (
        CheckConstraint("giorno_settimana BETWEEN 1 AND 7", name="ck_criticita_giorno"),
    )

    id: Mapped[int] = mapped_column(Integer, primary_key=True)
    azienda_id: Mapped[int] = mapped_column(ForeignKey("aziende.id", ondelete="CASCADE"), nullable=False, index=True)
    nome: Mapped[str] = mapped_column(String(255), nullable=False)
    giorno_settimana: Mapped[int] = mapped_column(Integer, nullable=False)
    ora_inizio: Mapped[str | None] = mapped_column(String(5), nullable=True)
    ora_fine: Mapped[str | None] = mapped_column(String(5), nullable=True)
    staff_extra: Mapped[int] = mapped_column(Integer, nullable=False, default=0)
    moltiplicatore_staff: Mapped[float] = mapped_column(Float, nullable=False, default=1.0)
    blocca_preferenze: Mapped[bool] = mapped_column(Boolean, nullable=False, default=False)
    attivo: Mapped[bool] = mapped_column(Boolean, nullable=False, default=True)


class Richiesta(Base):
    __tablename__ = "richieste"
    __table_args__ = (
        CheckConstraint("tipo IN ('ferie', 'permesso', 'riposo')", name="ck_richieste_tipo"),
        CheckConstraint("stato IN ('in_attesa', 'approvata', 'rifiutata', 'cancellata')", name="ck_richieste_stato"),
        CheckConstraint("data_inizio <= data_fine", name="ck_richieste_range"),
    )

    id: Mapped[int] = mapped_column(Integer, primary_key=True)
    collaboratore_id: Mapped[int] = mapped_column(ForeignKey("collaboratori.id", ondelete="CASCADE"), nullable=False, index=True)
    tipo: Mapped[str] = mapped_column(String(20), nullable=False)
    data_inizio: Mapped[date] = mapped_column(Date, nullable=False)
    data_fine: Mapped[date] = mapped_column(Date, nullable=False)
    stato: Mapped[str] = mapped_column(String(20), nullable=False, default="in_attesa", index=True)
    created_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), nullable=False, default=utcnow)


class ConfigurazioneScheduling(Base):
    __tablename__ = "configurazioni_scheduling"
    __table_args__ = (
        CheckConstraint(
            "modalita IN ('SUGGESTION', 'SEMI_AUTOMATIC', 'AUTONOMOUS', 'DISABLED')",
            name="ck_configurazioni_modalita",
        ),
    )

    id: Mapped[int] = mapped_column(Integer, primary_key=True)
    azienda_id: Mapped[int] = mapped_column(ForeignKey("aziende.id", ondelete="CASCADE"), nullable=False, unique=True)
    modalita: Mapped[str] = mapped_column(String(20), nullable=False)
    soglia_confidenza: Mapped[float] = mapped_column(Float, nullable=False)
    considera_preferenze: Mapped[bool] = mapped_column(Boolean, nullable=False)
    rispetta_vincoli_hard: Mapped[bool] = mapped_column(Boolean, nullable=False)
    notifica_conflitti: Mapped[bool] = mapped_column(Boolean, nullable=False)
    genera_report: Mapped[bool] = mapped_column(Boolean, nullable=False)
    max_ore_settimanali: Mapped[float] = mapped_column(Float, nullable=False)
    min_ore_riposo: Mapped[float] = mapped_column(Float, nullable=False)
    updated_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), nullable=False, default=utcnow, onupdate=utcnow)


class GenerationRun(Base):
    __tablename__ = "generation_runs"
    __table_args__ = (
        CheckConstraint("stato IN ('completato', 'parziale', 'errore')", name="ck_generation_runs_stato"),
    )

    id: Mapped[int] = mapped_column(Integer, primary_key=True)
    azienda_id: Mapped[int] = mapped_column(ForeignKey("aziende.id", ondelete="CASCADE"), nullable=False, index=True)
    created_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), nullable=False, default=utcnow, index=True)
    data_inizio: Mapped[date] = mapped_column(Date, nullable=False)
    data_fine: Mapped[date] = mapped_column(Date, nullable=False)
    modalita: Mapped[str] = mapped_column(String(20), nullable=False)
    stato: Mapped[str] = mapped_column(String(20), nullable=False)
    payload_json: Mapped[dict] = mapped_column(JSON, nullable=False)
    result_json: Mapped[dict] = mapped_column(JSON, nullable=False)
