"""initial scheduling schema

Revision ID: 0001_initial
Revises:
Create Date: 2026-10-18
"""

from alembic import op
import sqlalchemy as sa

revision = "0001_initial"
down_revision = None
branch_labels = None
depends_on = None


def upgrade() -> None:
    op.create_table(
        "aziende",
        sa.Column("id", sa.Integer(), primary_key=True),
        sa.Column("nome", sa.String(length=255), nullable=False),
        sa.Column("tipo_orario", sa.String(length=20), nullable=False),
        sa.Column("orario_apertura", sa.JSON(), nullable=False),
        sa.Column("chiuso_festivi", sa.Boolean(), nullable=False),
        sa.Column("created_at", sa.DateTime(timezone=True), nullable=False),
        sa.CheckConstraint("tipo_orario IN ('fisso', 'variabile')", name="ck_aziende_tipo_orario"),
    )

    op.create_table(
        "nuclei",
        sa.Column("id", sa.Integer(), primary_key=True),
        sa.Column("azienda_id", sa.Integer(), nullable=False),
        sa.Column("nome", sa.String(length=120), nullable=False),
        sa.Column("membri_richiesti_min", sa.Integer(), nullable=False),
        sa.Column("membri_richiesti_max", sa.Integer(), nullable=True),
        sa.Column("ora_inizio", sa.String(length=5), nullable=False),
        sa.Column("ora_fine", sa.String(length=5), nullable=False),
        sa.Column("orario_specifico", sa.JSON(), nullable=True),
        sa.Column("attivo", sa.Boolean(), nullable=False),
        sa.Column("created_at", sa.DateTime(timezone=True), nullable=False),
        sa.ForeignKeyConstraint(["azienda_id"], ["aziende.id"], ondelete="CASCADE"),
        sa.CheckConstraint("membri_richiesti_min >= 1", name="ck_nuclei_min"),
        sa.CheckConstraint(
            "membri_richiesti_max IS NULL OR membri_richiesti_max >= membri_richiesti_min",
            name="ck_nuclei_max",
        ),
    )
    op.create_index("ix_nuclei_azienda_id", "nuclei", ["azienda_id"], unique=False)

    op.create_table(
        "collaboratori",
        sa.Column("id", sa.Integer(), primary_key=True),
        sa.Column("azienda_id", sa.Integer(), nullable=False),
        sa.Column("nome", sa.String(length=120), nullable=False),
        sa.Column("cognome", sa.String(length=120), nullable=False),
        sa.Column("email", sa.String(length=255), nullable=True),
        sa.Column("tipo_contratto", sa.String(length=20), nullable=False),
        sa.Column("tipo_ore", sa.String(length=20), nullable=False),
        sa.Column("ore_settimanali", sa.Float(), nullable=True),
        sa.Column("ore_mensili", sa.Float(), nullable=True),
        sa.Column("ore_min", sa.Float(), nullable=True),
        sa.Column("ore_max", sa.Float(), nullable=True),
        sa.Column("attivo", sa.Boolean(), nullable=False),
        sa.Column("created_at", sa.DateTime(timezone=True), nullable=False),
        sa.ForeignKeyConstraint(["azienda_id"], ["aziende.id"], ondelete="CASCADE"),
        sa.CheckConstraint("tipo_contratto IN ('full_time', 'part_time', 'altro')", name="ck_collaboratori_contratto"),
        sa.CheckConstraint("tipo_ore IN ('settimanale_fisso', 'mensile', 'flessibile')", name="ck_collaboratori_tipo_ore"),
    )
    op.create_index("ix_collaboratori_azienda_id", "collaboratori", ["azienda_id"], unique=False)
    op.create_index("ix_collaboratori_attivo", "collaboratori", ["attivo"], unique=False)

    op.create_table(
        "appartenenze_nucleo",
        sa.Column("id", sa.Integer(), primary_key=True),
        sa.Column("collaboratore_id", sa.Integer(), nullable=False),
        sa.Column("nucleo_id", sa.Integer(), nullable=False),
        sa.ForeignKeyConstraint(["collaboratore_id"], ["collaboratori.id"], ondelete="CASCADE"),
        sa.ForeignKeyConstraint(["nucleo_id"], ["nuclei.id"], ondelete="CASCADE"),
        sa.UniqueConstraint("collaboratore_id", "nucleo_id", name="uq_appartenenza"),
    )
    op.create_index("ix_appartenenze_nucleo_collaboratore_id", "appartenenze_nucleo", ["collaboratore_id"], unique=False)
    op.create_index("ix_appartenenze_nucleo_nucleo_id", "appartenenze_nucleo", ["nucleo_id"], unique=False)

    op.create_table(
        "turni",
        sa.Column("id", sa.Integer(), primary_key=True),
        sa.Column("nucleo_id", sa.Integer(), nullable=False),
        sa.Column("data", sa.Date(), nullable=False),
        sa.Column("ora_inizio", sa.String(length=5), nullable=False),
        sa.Column("ora_fine", sa.String(length=5), nullable=False),
        sa.Column("num_collaboratori_richiesti", sa.Integer(), nullable=False),
        sa.Column("pubblicato", sa.Boolean(), nullable=False),
        sa.Column("completato", sa.Boolean(), nullable=False),
        sa.Column("suggerito_da_ai", sa.Boolean(), nullable=False),
        sa.Column("ai_confidence", sa.Float(), nullable=True),
        sa.Column("note", sa.Text(), nullable=True),
        sa.Column("created_at", sa.DateTime(timezone=True), nullable=False),
        sa.ForeignKeyConstraint(["nucleo_id"], ["nuclei.id"]),
        sa.CheckConstraint("num_collaboratori_richiesti >= 0", name="ck_turni_richiesti"),
        sa.CheckConstraint("ora_inizio < ora_fine", name="ck_turni_window"),
    )
    op.create_index("ix_turni_nucleo_id", "turni", ["nucleo_id"], unique=False)
    op.create_index("ix_turni_data", "turni", ["data"], unique=False)

    op.create_table(
        "assegnazioni",
        sa.Column("id", sa.Integer(), primary_key=True),
        sa.Column("turno_id", sa.Integer(), nullable=False),
        sa.Column("collaboratore_id", sa.Integer(), nullable=False),
        sa.Column("tipo", sa.String(length=30), nullable=False),
        sa.Column("confermato", sa.Boolean(), nullable=False),
        sa.Column("confidenza", sa.Float(), nullable=True),
        sa.Column("created_at", sa.DateTime(timezone=True), nullable=False),
        sa.ForeignKeyConstraint(["turno_id"], ["turni.id"], ondelete="CASCADE"),
        sa.ForeignKeyConstraint(["collaboratore_id"], ["collaboratori.id"]),
        sa.UniqueConstraint("turno_id", "collaboratore_id", name="uq_assegnazione"),
        sa.CheckConstraint("tipo IN ('manuale', 'richiesta_collaboratore', 'suggerita_ai')", name="ck_assegnazioni_tipo"),
    )
    op.create_index("ix_assegnazioni_turno_id", "assegnazioni", ["turno_id"], unique=False)
    op.create_index("ix_assegnazioni_collaboratore_id", "assegnazioni", ["collaboratore_id"], unique=False)

    op.create_table(
        "preferenze_turno",
        sa.Column("id", sa.Integer(), primary_key=True),
        sa.Column("collaboratore_id", sa.Integer(), nullable=False),
        sa.Column("data", sa.Date(), nullable=False),
        sa.Column("ora_inizio", sa.String(length=5), nullable=False),
        sa.Column("ora_fine", sa.String(length=5), nullable=False),
        sa.Column("tipo", sa.String(length=20), nullable=False),
        sa.Column("stato_validazione", sa.String(length=30), nullable=False),
        sa.Column("motivo_rifiuto", sa.Text(), nullable=True),
        sa.Column("validata_il", sa.DateTime(timezone=True), nullable=True),
        sa.Column("note", sa.Text(), nullable=True),
        sa.Column("created_at", sa.DateTime(timezone=True), nullable=False),
        sa.ForeignKeyConstraint(["collaboratore_id"], ["collaboratori.id"], ondelete="CASCADE"),
        sa.UniqueConstraint("collaboratore_id", "data", "ora_inizio", name="uq_preferenza_slot"),
        sa.CheckConstraint("tipo IN ('AVAILABLE', 'PREFERRED', 'UNAVAILABLE')", name="ck_preferenze_tipo"),
        sa.CheckConstraint(
            "stato_validazione IN ('PENDING', 'APPROVED', 'REJECTED_CONFLICT', 'REJECTED_CRITICAL', 'REJECTED_CONSTRAINT')",
            name="ck_preferenze_stato",
        ),
    )
    op.create_index("ix_preferenze_turno_collaboratore_id", "preferenze_turno", ["collaboratore_id"], unique=False)
    op.create_index("ix_preferenze_turno_data", "preferenze_turno", ["data"], unique=False)
    op.create_index("ix_preferenze_turno_stato_validazione", "preferenze_turno", ["stato_validazione"], unique=False)

    op.create_table(
        "periodi_critici",
        sa.Column("id", sa.Integer(), primary_key=True),
        sa.Column("azienda_id", sa.Integer(), nullable=False),
        sa.Column("nome", sa.String(length=255), nullable=False),
        sa.Column("descrizione", sa.Text(), nullable=True),
        sa.Column("data_inizio", sa.Date(), nullable=False),
        sa.Column("data_fine", sa.Date(), nullable=False),
        sa.Column("ora_inizio", sa.String(length=5), nullable=True),
        sa.Column("ora_fine", sa.String(length=5), nullable=True),
        sa.Column("ricorrente", sa.Boolean(), nullable=False),
        sa.Column("pattern_ricorrenza", sa.String(length=20), nullable=True),
        sa.Column("staff_minimo", sa.Integer(), nullable=True),
        sa.Column("moltiplicatore_staff", sa.Float(), nullable=False),
        sa.Column("blocca_preferenze", sa.Boolean(), nullable=False),
        sa.Column("attivo", sa.Boolean(), nullable=False),
        sa.ForeignKeyConstraint(["azienda_id"], ["aziende.id"], ondelete="CASCADE"),
        sa.CheckConstraint("data_inizio <= data_fine", name="ck_periodi_critici_range"),
        sa.CheckConstraint(
            "pattern_ricorrenza IS NULL OR pattern_ricorrenza IN ('annuale', 'mensile', 'settimanale')",
            name="ck_periodi_critici_pattern",
        ),
    )
    op.create_index("ix_periodi_critici_azienda_id", "periodi_critici", ["azienda_id"], unique=False)

    op.create_table(
        "criticita_continuative",
        sa.Column("id", sa.Integer(), primary_key=True),
        sa.Column("azienda_id", sa.Integer(), nullable=False),
        sa.Column("nome", sa.String(length=255), nullable=False),
        sa.Column("giorno_settimana", sa.Integer(), nullable=False),
        sa.Column("ora_inizio", sa.String(length=5), nullable=True),
        sa.Column("ora_fine", sa.String(length=5), nullable=True),
        sa.Column("staff_extra", sa.Integer(), nullable=False),
        sa.Column("moltiplicatore_staff", sa.Float(), nullable=False),
        sa.Column("blocca_preferenze", sa.Boolean(), nullable=False),
        sa.Column("attivo", sa.Boolean(), nullable=False),
        sa.ForeignKeyConstraint(["azienda_id"], ["aziende.id"], ondelete="CASCADE"),
        sa.CheckConstraint("giorno_settimana BETWEEN 1 AND 7", name="ck_criticita_giorno"),
    )
    op.create_index("ix_criticita_continuative_azienda_id", "criticita_continuative", ["azienda_id"], unique=False)

    op.create_table(
        "richieste",
        sa.Column("id", sa.Integer(), primary_key=True),
        sa.Column("collaboratore_id", sa.Integer(), nullable=False),
        sa.Column("tipo", sa.String(length=20), nullable=False),
        sa.Column("data_inizio", sa.Date(), nullable=False),
        sa.Column("data_fine", sa.Date(), nullable=False),
        sa.Column("stato", sa.String(length=20), nullable=False),
        sa.Column("created_at", sa.DateTime(timezone=True), nullable=False),
        sa.ForeignKeyConstraint(["collaboratore_id"], ["collaboratori.id"], ondelete="CASCADE"),
        sa.CheckConstraint("tipo IN ('ferie', 'permesso', 'riposo')", name="ck_richieste_tipo"),
        sa.CheckConstraint("stato IN ('in_attesa', 'approvata', 'rifiutata', 'cancellata')", name="ck_richieste_stato"),
        sa.CheckConstraint("data_inizio <= data_fine", name="ck_richieste_range"),
    )
    op.create_index("ix_richieste_collaboratore_id", "richieste", ["collaboratore_id"], unique=False)
    op.create_index("ix_richieste_stato", "richieste", ["stato"], unique=False)

    op.create_table(
        "configurazioni_scheduling",
        sa.Column("id", sa.Integer(), primary_key=True),
        sa.Column("azienda_id", sa.Integer(), nullable=False),
        sa.Column("modalita", sa.String(length=20), nullable=False),
        sa.Column("soglia_confidenza", sa.Float(), nullable=False),
        sa.Column("considera_preferenze", sa.Boolean(), nullable=False),
        sa.Column("rispetta_vincoli_hard", sa.Boolean(), nullable=False),
        sa.Column("notifica_conflitti", sa.Boolean(), nullable=False),
        sa.Column("genera_report", sa.Boolean(), nullable=False),
        sa.Column("max_ore_settimanali", sa.Float(), nullable=False),
        sa.Column("min_ore_riposo", sa.Float(), nullable=False),
        sa.Column("updated_at", sa.DateTime(timezone=True), nullable=False),
        sa.ForeignKeyConstraint(["azienda_id"], ["aziende.id"], ondelete="CASCADE"),
        sa.UniqueConstraint("azienda_id"),
        sa.CheckConstraint(
            "modalita IN ('SUGGESTION', 'SEMI_AUTOMATIC', 'AUTONOMOUS', 'DISABLED')",
            name="ck_configurazioni_modalita",
        ),
    )

    op.create_table(
        "generation_runs",
        sa.Column("id", sa.Integer(), primary_key=True),
        sa.Column("azienda_id", sa.Integer(), nullable=False),
        sa.Column("created_at", sa.DateTime(timezone=True), nullable=False),
        sa.Column("data_inizio", sa.Date(), nullable=False),
        sa.Column("data_fine", sa.Date(), nullable=False),
        sa.Column("modalita", sa.String(length=20), nullable=False),
        sa.Column("stato", sa.String(length=20), nullable=False),
        sa.Column("payload_json", sa.JSON(), nullable=False),
        sa.Column("result_json", sa.JSON(), nullable=False),
        sa.ForeignKeyConstraint(["azienda_id"], ["aziende.id"], ondelete="CASCADE"),
        sa.CheckConstraint("stato IN ('completato', 'parziale', 'errore')", name="ck_generation_runs_stato"),
    )
    op.create_index("ix_generation_runs_azienda_id", "generation_runs", ["azienda_id"], unique=False)
    op.create_index("ix_generation_runs_created_at", "generation_runs", ["created_at"], unique=False)


def downgrade() -> None:
    op.drop_index("ix_generation_runs_created_at", table_name="generation_runs")
    op.drop_index("ix_generation_runs_azienda_id", table_name="generation_runs")
    op.drop_table("generation_runs")
    op.drop_table("configurazioni_scheduling")
    op.drop_index("ix_richieste_stato", table_name="richieste")
    op.drop_index("ix_richieste_collaboratore_id", table_name="richieste")
    op.drop_table("richieste")
    op.drop_index("ix_criticita_continuative_azienda_id", table_name="criticita_continuative")
    op.drop_table("criticita_continuative")
    op.drop_index("ix_periodi_critici_azienda_id", table_name="periodi_critici")
    op.drop_table("periodi_critici")
    op.drop_index("ix_preferenze_turno_stato_validazione", table_name="preferenze_turno")
    op.drop_index("ix_preferenze_turno_data", table_name="preferenze_turno")
    op.drop_index("ix_preferenze_turno_collaboratore_id", table_name="preferenze_turno")
    op.drop_table("preferenze_turno")
    op.drop_index("ix_assegnazioni_collaboratore_id", table_name="assegnazioni")
    op.drop_index("ix_assegnazioni_turno_id", table_name="assegnazioni")
    op.drop_table("assegnazioni")
    op.drop_index("ix_turni_data", table_name="turni")
    op.drop_index("ix_turni_nucleo_id", table_name="turni")
    op.drop_table("turni")
    op.drop_index("ix_appartenenze_nucleo_nucleo_id", table_name="appartenenze_nucleo")
    op.drop_index("ix_appartenenze_nucleo_collaboratore_id", table_name="appartenenze_nucleo")
    op.drop_table("appartenenze_nucleo")
    op.drop_index("ix_collaboratori_attivo", table_name="collaboratori")
    op.drop_index("ix_collaboratori_azienda_id", table_name="collaboratori")
    op.drop_table("collaboratori")
    op.drop_index("ix_nuclei_azienda_id", table_name="nuclei")
    op.drop_table("nuclei")
    op.drop_table("aziende")
