# threadsched/config.py
from __future__ import annotations

import os
from typing import Any, Dict, Literal, Mapping, Optional

from pydantic import BaseModel, Field

ENV_PREFIX = "THREADSCHED_"

# Имя, которое pod'ы указывают в spec.schedulerName
DEFAULT_SCHEDULER_NAME = "namespacedThreadSpreadSched"


class SchedulerConfig(BaseModel):
    scheduler_name: str = Field(DEFAULT_SCHEDULER_NAME, min_length=1)

    # доступ к кластеру
    kubeconfig: Optional[str] = None
    context: Optional[str] = None
    method: Literal["client", "kubectl"] = "client"

    # цикл опроса
    interval_s: float = Field(5.0, gt=0)
    workers: int = Field(1, ge=1)
    snapshot_per_pod: bool = True

    # политика выбора ноды
    strategy: Literal["spread", "threads-label"] = "spread"
    request_scope: Literal["namespace", "cluster"] = "namespace"
    capacity_field: Literal["capacity", "allocatable"] = "capacity"

    dry_run: bool = False
    decision_log_size: int = Field(200, ge=1)
    log_level: Literal["DEBUG", "INFO", "WARNING", "ERROR"] = "INFO"


def _env_values(environ: Mapping[str, str]) -> Dict[str, Any]:
    values: Dict[str, Any] = {}
    for name in SchedulerConfig.model_fields:
        raw = environ.get(ENV_PREFIX + name.upper())
        if raw is not None and raw != "":
            values[name] = raw
    return values


def load_config(
    overrides: Optional[Mapping[str, Any]] = None,
    environ: Optional[Mapping[str, str]] = None,
) -> SchedulerConfig:
    """
    Значения по приоритету: аргументы CLI (overrides, None пропускаются)
    > переменные THREADSCHED_* > значения по умолчанию.
    Ошибки валидации -> pydantic.ValidationError.
    """
    values = _env_values(os.environ if environ is None else environ)
    for key, value in (overrides or {}).items():
        if value is None or key not in SchedulerConfig.model_fields:
            continue
        values[key] = value
    if isinstance(values.get("log_level"), str):
        values["log_level"] = values["log_level"].upper()
    return SchedulerConfig(**values)
