from __future__ import annotations

from enum import Enum


class SchedulingMode(str, Enum):
    SUGGESTION = "SUGGESTION"
    SEMI_AUTOMATIC = "SEMI_AUTOMATIC"
    AUTONOMOUS = "AUTONOMOUS"
    DISABLED = "DISABLED"


class PreferenceType(str, Enum):
    AVAILABLE = "AVAILABLE"
    PREFERRED = "PREFERRED"
    UNAVAILABLE = "UNAVAILABLE"


class ValidationStatus(str, Enum):
    PENDING = "PENDING"
    APPROVED = "APPROVED"
    REJECTED_CONFLICT = "REJECTED_CONFLICT"
    REJECTED_CRITICAL = "REJECTED_CRITICAL"
    REJECTED_CONSTRAINT = "REJECTED_CONSTRAINT"


class HoursPolicy(str, Enum):
    FIXED_WEEKLY = "settimanale_fisso"
    MONTHLY = "mensile"
    FLEXIBLE = "flessibile"


class Coverage(str, Enum):
    OK = "ok"
    PARTIAL = "partial"
    UNCOVERED = "uncovered"


class WarningType(str, Enum):
    CLOSED_DAY = "closed_day"
    UNDERSTAFFED = "understaffed"
    CRITICAL_PERIOD = "critical_period"
    CAPPED_BY_MAX = "capped_by_max"
    PREFERENCE_IGNORED = "preference_ignored"
    CONSTRAINT_SOFT_VIOLATION = "constraint_soft_violation"
    NO_COLLABORATORS = "no_collaborators"
    TRUNCATED = "truncated"
