# threadsched/sched/accessor.py
from __future__ import annotations

import logging
from dataclasses import dataclass
from types import MappingProxyType
from typing import Dict, List, Mapping, Tuple

from ..model.entities import ClusterSnapshot, ContainerCpu, PodInfo, UNAVAILABLE_NODES, UNAVAILABLE_PODS
from ..types import NodeName, PodId, Namespace, CpuMillis
from .result import CandidatePod, NodeAggregate, NodeCapacity

log = logging.getLogger(__name__)


# Явные маркеры DataUnavailable, попадают в Decision.issues
ISSUE_NODES_UNAVAILABLE = "data-unavailable: nodes"
ISSUE_PODS_UNAVAILABLE = "data-unavailable: pods"


@dataclass(frozen=True)
class ScoringInputs:
    """Всё, что нужно скорингу для одного решения по одному pod'у."""
    candidate: CandidatePod
    capacities: Mapping[NodeName, NodeCapacity]
    aggregates: Mapping[NodeName, NodeAggregate]
    issues: Tuple[str, ...] = ()


def node_capacities(snapshot: ClusterSnapshot) -> Mapping[NodeName, NodeCapacity]:
    """Ёмкость каждой ноды; неизвестная ёмкость уже приведена к 0 на сборе."""
    result: Dict[NodeName, NodeCapacity] = {}
    for name, node in snapshot.nodes.items():
        result[name] = NodeCapacity(node_name=name, cpu_capacity_m=CpuMillis(max(int(node.cpu_capacity_m), 0)))
    return MappingProxyType(result)


def candidate_from_pod(pod: PodInfo) -> CandidatePod:
    return CandidatePod(
        namespace=pod.namespace,
        cpu_limit_sum_m=pod.cpu_limit_m,
        cpu_request_sum_m=pod.cpu_request_m,
    )


def namespace_aggregates(
    snapshot: ClusterSnapshot,
    namespace: str | Namespace,
    capacities: Mapping[NodeName, NodeCapacity],
) -> Mapping[NodeName, NodeAggregate]:
    """
    По одному NodeAggregate на каждую ноду из capacities.

    В namespace_* суммы попадают только pod'ы того же namespace, уже
    привязанные к ноде. cluster_request_sum_m считается по всем pod'ам
    снапшота (если снапшот снят по одному namespace, это те же pod'ы).
    """
    ns_str = str(namespace)
    if not ns_str:
        raise ValueError("namespace must be a non-empty string")

    limits = {name: 0 for name in capacities}
    requests = {name: 0 for name in capacities}
    counts = {name: 0 for name in capacities}
    cluster_requests = {name: 0 for name in capacities}

    for pod in snapshot.pods.values():
        if not pod.is_bound:
            continue
        node = pod.node_name
        if node not in capacities:
            log.debug(f"Pod {pod.id} is bound to unknown node {node}, ignoring")
            continue
        cluster_requests[node] += int(pod.cpu_request_m)
        if str(pod.namespace) != ns_str:
            continue
        limits[node] += int(pod.cpu_limit_m)
        requests[node] += int(pod.cpu_request_m)
        counts[node] += 1

    return MappingProxyType({
        name: NodeAggregate(
            node_name=name,
            namespace_limit_sum_m=CpuMillis(limits[name]),
            namespace_request_sum_m=CpuMillis(requests[name]),
            namespace_pod_count=counts[name],
            cluster_request_sum_m=CpuMillis(cluster_requests[name]),
        )
        for name in capacities
    })


def data_issues(snapshot: ClusterSnapshot) -> Tuple[str, ...]:
    issues: List[str] = []
    if UNAVAILABLE_NODES in snapshot.unavailable:
        issues.append(ISSUE_NODES_UNAVAILABLE)
    if UNAVAILABLE_PODS in snapshot.unavailable:
        issues.append(ISSUE_PODS_UNAVAILABLE)
    return tuple(issues)


def build_inputs(snapshot: ClusterSnapshot, pod: PodInfo) -> ScoringInputs:
    capacities = node_capacities(snapshot)
    return ScoringInputs(
        candidate=candidate_from_pod(pod),
        capacities=capacities,
        aggregates=namespace_aggregates(snapshot, pod.namespace, capacities),
        issues=data_issues(snapshot),
    )


def hypothetical_pod(namespace: str, cpu_limit_m: int = 0, cpu_request_m: int = 0) -> PodInfo:
    """Несуществующий pending pod для предпросмотра решения."""
    if not namespace:
        raise ValueError("namespace must be a non-empty string")
    return PodInfo(
        id=PodId(f"{namespace}/<preview>"),
        name="<preview>",
        namespace=Namespace(namespace),
        node_name=None,
        containers=(ContainerCpu(name="preview", limit_m=CpuMillis(cpu_limit_m), request_m=CpuMillis(cpu_request_m)),),
    )
