# threadsched/sched/result.py
from __future__ import annotations

import enum
import math
from dataclasses import dataclass, field
from typing import Optional, Tuple

from ..types import NodeName, Namespace, CpuMillis


@dataclass(frozen=True)
class NodeCapacity:
    node_name: NodeName
    cpu_capacity_m: CpuMillis


@dataclass(frozen=True)
class NodeAggregate:
    """
    Суммы по pod'ам namespace кандидата, уже привязанным к ноде.

    cluster_request_sum_m считается по всем namespace и используется
    только при request_scope == "cluster".
    """
    node_name: NodeName
    namespace_limit_sum_m: CpuMillis = CpuMillis(0)
    namespace_request_sum_m: CpuMillis = CpuMillis(0)
    namespace_pod_count: int = 0
    cluster_request_sum_m: CpuMillis = CpuMillis(0)


@dataclass(frozen=True)
class CandidatePod:
    namespace: Namespace
    cpu_limit_sum_m: CpuMillis
    cpu_request_sum_m: CpuMillis


# Причины, по которым нода не допускается
REASON_ZERO_CAPACITY = "zero-capacity"
REASON_INSUFFICIENT_CPU = "insufficient-cpu-requests"


@dataclass(frozen=True)
class NodeScore:
    node_name: NodeName
    admissible: bool
    limit_ratio: float  # math.inf для недопустимых нод
    pod_count: int

    # диагностика, в выборе не участвует
    capacity_m: CpuMillis = CpuMillis(0)
    projected_request_m: CpuMillis = CpuMillis(0)
    projected_limit_m: CpuMillis = CpuMillis(0)
    reason: Optional[str] = None

    @property
    def sort_key(self) -> Tuple[float, int, str]:
        return (self.limit_ratio, self.pod_count, str(self.node_name))


class Outcome(str, enum.Enum):
    SELECTED = "selected"
    NO_ELIGIBLE_NODE = "no-eligible-node"
    # только для журнала решений: исключение при обработке pod'а
    ERROR = "error"


@dataclass(frozen=True)
class Decision:
    outcome: Outcome
    node_name: Optional[NodeName] = None
    scores: Tuple[NodeScore, ...] = ()
    reason: Optional[str] = None
    # проблемы с данными (DataUnavailable и т.п.), на которых строилось решение
    issues: Tuple[str, ...] = field(default_factory=tuple)

    @property
    def eligible(self) -> bool:
        return self.outcome is Outcome.SELECTED

    @property
    def best_ratio(self) -> float:
        for s in self.scores:
            if s.node_name == self.node_name:
                return s.limit_ratio
        return math.inf
