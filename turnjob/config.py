from __future__ import annotations

from dataclasses import dataclass, fields, replace

from turnjob.enums import SchedulingMode

SOGLIA_BOUNDS = (0.0, 1.0)
MAX_ORE_SETTIMANALI_BOUNDS = (1, 60)
MIN_ORE_RIPOSO_BOUNDS = (8, 14)


@dataclass(frozen=True)
class SchedulingConfig:
    modalita: SchedulingMode = SchedulingMode.SUGGESTION
    soglia_confidenza: float = 0.8
    considera_preferenze: bool = True
    rispetta_vincoli_hard: bool = True
    notifica_conflitti: bool = True
    genera_report: bool = False
    max_ore_settimanali: float = 40
    min_ore_riposo: float = 11


DEFAULT_CONFIG = SchedulingConfig()
CONFIG_FIELDS = tuple(f.name for f in fields(SchedulingConfig))


def resolve_config(row) -> SchedulingConfig:
    """Tenant row when one exists, otherwise the explicit defaults."""
    if row is None:
        return DEFAULT_CONFIG
    values = {name: getattr(row, name) for name in CONFIG_FIELDS}
    values["modalita"] = SchedulingMode(values["modalita"])
    return SchedulingConfig(**values)


def merge_config(current: SchedulingConfig, changes: dict) -> SchedulingConfig:
    unknown = set(changes) - set(CONFIG_FIELDS)
    if unknown:
        raise ValueError(f"unknown configuration fields: {sorted(unknown)}")
    merged = replace(current, **changes)
    check_bounds(merged)
    return merged


def check_bounds(config: SchedulingConfig) -> None:
    low, high = SOGLIA_BOUNDS
    if not low <= config.soglia_confidenza <= high:
        raise ValueError(f"soglia_confidenza must be between {low} and {high}")
    low, high = MAX_ORE_SETTIMANALI_BOUNDS
    if not low <= config.max_ore_settimanali <= high:
        raise ValueError(f"max_ore_settimanali must be between {low} and {high}")
    low, high = MIN_ORE_RIPOSO_BOUNDS
    if not low <= config.min_ore_riposo <= high:
        raise ValueError(f"min_ore_riposo must be between {low} and {high}")
