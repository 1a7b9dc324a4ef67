from __future__ import annotations

from typing import Dict, Iterable, List, Optional

import pytest

from threadsched.config import DEFAULT_SCHEDULER_NAME
from threadsched.model.entities import ClusterSnapshot, ContainerCpu, NodeInfo, PodInfo
from threadsched.types import CpuMillis, Namespace, NodeName, PodId


def make_node(name: str, cpu_m: int, labels: Optional[Dict[str, str]] = None) -> NodeInfo:
    return NodeInfo(name=NodeName(name), cpu_capacity_m=CpuMillis(cpu_m), labels=labels or {})


def make_pod(
    name: str,
    namespace: str = "team-a",
    node: Optional[str] = None,
    limit_m: int = 0,
    request_m: int = 0,
    scheduler_name: str = DEFAULT_SCHEDULER_NAME,
    containers: Optional[Iterable[ContainerCpu]] = None,
) -> PodInfo:
    if containers is None:
        containers = [ContainerCpu(name="main", limit_m=CpuMillis(limit_m), request_m=CpuMillis(request_m))]
    return PodInfo(
        id=PodId(f"{namespace}/{name}"),
        name=name,
        namespace=Namespace(namespace),
        node_name=NodeName(node) if node else None,
        scheduler_name=scheduler_name,
        phase="Running" if node else "Pending",
        containers=tuple(containers),
    )


def make_snapshot(nodes: List[NodeInfo], pods: List[PodInfo] = (), unavailable=()) -> ClusterSnapshot:
    return ClusterSnapshot(
        nodes={n.name: n for n in nodes},
        pods={p.id: p for p in pods},
        unavailable=frozenset(unavailable),
    )


# --- объекты API в форме JSON, как их отдаёт kubectl / sanitize_for_serialization ---

def node_json(name: str, cpu: Optional[str] = "4", labels: Optional[Dict[str, str]] = None,
              allocatable_cpu: Optional[str] = None) -> dict:
    capacity = {"memory": "16Gi", "pods": "110"}
    if cpu is not None:
        capacity["cpu"] = cpu
    allocatable = dict(capacity)
    if allocatable_cpu is not None:
        allocatable["cpu"] = allocatable_cpu
    return {
        "metadata": {"name": name, "labels": labels or {}},
        "status": {"capacity": capacity, "allocatable": allocatable},
    }


def pod_json(name: str, namespace: str = "team-a", node: Optional[str] = None,
             containers: Optional[List[dict]] = None, scheduler_name: str = DEFAULT_SCHEDULER_NAME) -> dict:
    spec = {"schedulerName": scheduler_name, "containers": containers or []}
    if node:
        spec["nodeName"] = node
    return {
        "metadata": {"name": name, "namespace": namespace},
        "spec": spec,
        "status": {"phase": "Running" if node else "Pending"},
    }


def container_json(name: str = "main", limit: Optional[str] = None, request: Optional[str] = None) -> dict:
    resources: dict = {}
    if limit is not None:
        resources.setdefault("limits", {})["cpu"] = limit
    if request is not None:
        resources.setdefault("requests", {})["cpu"] = request
    return {"name": name, "resources": resources}


class FakeCoreV1Api:
    """Минимальная замена CoreV1Api: списки в форме dict, запись вызовов."""

    def __init__(self, nodes=None, pods=None, fail_nodes: bool = False, fail_pods: bool = False):
        self.nodes = list(nodes or [])
        self.pods = list(pods or [])
        self.fail_nodes = fail_nodes
        self.fail_pods = fail_pods
        self.calls: List[tuple] = []
        self.bindings: List[tuple] = []

    def list_node(self):
        self.calls.append(("list_node",))
        if self.fail_nodes:
            raise RuntimeError("nodes is forbidden")
        return {"items": self.nodes}

    def list_pod_for_all_namespaces(self):
        self.calls.append(("list_pod_for_all_namespaces",))
        if self.fail_pods:
            raise RuntimeError("connection refused")
        return {"items": self.pods}

    def list_namespaced_pod(self, namespace):
        self.calls.append(("list_namespaced_pod", namespace))
        if self.fail_pods:
            raise RuntimeError("connection refused")
        return {"items": [p for p in self.pods if p["metadata"]["namespace"] == namespace]}

    def create_namespaced_binding(self, namespace, body, **kwargs):
        self.bindings.append((namespace, body, kwargs))


@pytest.fixture
def fake_api():
    return FakeCoreV1Api(
        nodes=[node_json("node-x", "4"), node_json("node-y", "8")],
        pods=[
            pod_json("existing", "team-a", node="node-x", containers=[container_json(limit="2", request="500m")]),
            pod_json("other", "team-b", node="node-y", containers=[container_json(limit="6", request="6")]),
        ],
    )
