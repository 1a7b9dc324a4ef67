# threadsched/snapshot/io.py
from __future__ import annotations

import json
from pathlib import Path
from typing import Any, Dict

from ..model.entities import ClusterSnapshot, ContainerCpu, NodeInfo, PodInfo
from ..types import NodeName, PodId, Namespace, CpuMillis


def snapshot_to_dict(snap: ClusterSnapshot) -> Dict[str, Any]:
    nodes_dict = {}
    for n in snap.nodes.values():
        nodes_dict[n.name] = {
            "name": n.name,
            "cpu_capacity_m": int(n.cpu_capacity_m),
            "labels": n.labels,
        }

    pods_dict = {}
    for p in snap.pods.values():
        pods_dict[p.id] = {
            "name": p.name,
            "namespace": p.namespace,
            "node": p.node_name,
            "scheduler_name": p.scheduler_name,
            "phase": p.phase,
            "containers": [
                {"name": c.name, "limit_cpu_m": int(c.limit_m), "request_cpu_m": int(c.request_m)}
                for c in p.containers
            ],
        }

    return {
        "taken_at": snap.taken_at,
        "unavailable": sorted(snap.unavailable),
        "nodes": nodes_dict,
        "pods": pods_dict,
    }


def snapshot_from_dict(data: Dict[str, Any]) -> ClusterSnapshot:
    nodes = {}
    for k, v in (data.get("nodes") or {}).items():
        name = NodeName(v.get("name", k))
        nodes[name] = NodeInfo(
            name=name,
            cpu_capacity_m=CpuMillis(int(v.get("cpu_capacity_m", 0))),
            labels=v.get("labels", {}),
        )

    pods = {}
    for k, v in (data.get("pods") or {}).items():
        pod_id = PodId(k)
        pods[pod_id] = PodInfo(
            id=pod_id,
            name=v.get("name", k.split("/", 1)[-1]),
            namespace=Namespace(v.get("namespace", "default")),
            node_name=NodeName(v.get("node")) if v.get("node") else None,
            scheduler_name=v.get("scheduler_name", "default-scheduler"),
            phase=v.get("phase", "Pending"),
            containers=tuple(
                ContainerCpu(
                    name=c.get("name", ""),
                    limit_m=CpuMillis(int(c.get("limit_cpu_m", 0))),
                    request_m=CpuMillis(int(c.get("request_cpu_m", 0))),
                )
                for c in v.get("containers", [])
            ),
        )

    kwargs = {}
    if "taken_at" in data:
        kwargs["taken_at"] = float(data["taken_at"])
    return ClusterSnapshot(
        nodes=nodes,
        pods=pods,
        unavailable=frozenset(data.get("unavailable", [])),
        **kwargs,
    )


def save_snapshot_to_file(snap: ClusterSnapshot, path: Path) -> None:
    data = snapshot_to_dict(snap)
    with open(path, "w", encoding="utf-8") as f:
        json.dump(data, f, indent=2, sort_keys=True)


def load_snapshot_from_file(path: Path) -> ClusterSnapshot:
    with open(path, "r", encoding="utf-8") as f:
        data = json.load(f)
    return snapshot_from_dict(data)
