# threadsched/model/entities.py
from __future__ import annotations

import time
from dataclasses import dataclass, field
from typing import Dict, FrozenSet, List, Optional, Tuple

from ..types import NodeName, PodId, Namespace, CpuMillis


# Что именно не удалось получить из API на момент снапшота
UNAVAILABLE_NODES = "nodes"
UNAVAILABLE_PODS = "pods"


@dataclass(frozen=True)
class ContainerCpu:
    name: str
    limit_m: CpuMillis = CpuMillis(0)
    request_m: CpuMillis = CpuMillis(0)


@dataclass(frozen=True)
class NodeInfo:
    name: NodeName
    # 0 == ёмкость неизвестна, нода не участвует в планировании
    cpu_capacity_m: CpuMillis
    labels: Dict[str, str] = field(default_factory=dict)


@dataclass(frozen=True)
class PodInfo:
    id: PodId
    name: str
    namespace: Namespace
    node_name: Optional[NodeName]
    scheduler_name: str = "default-scheduler"
    phase: str = "Pending"
    containers: Tuple[ContainerCpu, ...] = ()

    @property
    def cpu_limit_m(self) -> CpuMillis:
        return CpuMillis(sum(int(c.limit_m) for c in self.containers))

    @property
    def cpu_request_m(self) -> CpuMillis:
        return CpuMillis(sum(int(c.request_m) for c in self.containers))

    @property
    def is_bound(self) -> bool:
        return bool(self.node_name)


@dataclass(frozen=True)
class ClusterSnapshot:
    """
    Срез состояния кластера, на котором принимается одно решение.

    Никогда не мутируется: каждый цикл (или каждый pod) получает свежий
    снапшот. `unavailable` перечисляет то, что не удалось прочитать из API,
    чтобы деградация была явной, а не молчаливой.
    """
    nodes: Dict[NodeName, NodeInfo]
    pods: Dict[PodId, PodInfo]
    unavailable: FrozenSet[str] = frozenset()
    taken_at: float = field(default_factory=time.time)

    def pending_for(self, scheduler_name: str) -> List[PodInfo]:
        """Поды, ожидающие нашего планировщика, в стабильном порядке."""
        result = [
            p for p in self.pods.values()
            if p.scheduler_name == scheduler_name and not p.is_bound
        ]
        return sorted(result, key=lambda p: p.id)
