# threadsched/snapshot/collector.py
from __future__ import annotations

import json
import logging
import math
import re
import subprocess
import time
from decimal import Decimal
from typing import Any, Dict, List, Set

from kubernetes import client, config
from kubernetes.config.config_exception import ConfigException

from ..model.entities import (
    ClusterSnapshot, ContainerCpu, NodeInfo, PodInfo, UNAVAILABLE_NODES, UNAVAILABLE_PODS,
)
from ..types import NodeName, PodId, Namespace, CpuMillis

log = logging.getLogger(__name__)


class MalformedQuantity(ValueError):
    """Значение ресурса задано, но не разбирается как quantity."""


# множитель суффикса относительно milliCPU
_CPU_SUFFIX_TO_MILLI = {
    "n": Decimal("0.000001"),
    "u": Decimal("0.001"),
    "m": Decimal(1),
    "": Decimal(1000),
    "k": Decimal(1000) ** 2,
    "M": Decimal(1000) ** 3,
    "G": Decimal(1000) ** 4,
    "T": Decimal(1000) ** 5,
}

_QUANTITY_RE = re.compile(r"^\+?(\d+(?:\.\d*)?|\.\d+)(?:([eE][+-]?\d+)|(n|u|m|k|M|G|T))?$")


def parse_cpu(quantity: Any) -> CpuMillis:
    """
    Quantity CPU ("250m", "2", "0.5", "100n", "1e3") -> milliCPU.

    Пустое значение == 0. Дробные milli округляются вверх, как MilliValue()
    в Kubernetes. Всё, что не разбирается, -> MalformedQuantity.
    """
    if quantity is None:
        return CpuMillis(0)
    if isinstance(quantity, bool):
        raise MalformedQuantity(f"invalid cpu quantity: {quantity!r}")
    if isinstance(quantity, (int, float)):
        quantity = repr(quantity)
    q = str(quantity).strip()
    if not q:
        return CpuMillis(0)

    m = _QUANTITY_RE.match(q)
    if not m:
        raise MalformedQuantity(f"invalid cpu quantity: {quantity!r}")
    number, exponent, suffix = m.groups()
    try:
        value = Decimal(number)
        if exponent:
            value = value.scaleb(int(exponent[1:]))
            millis = value * _CPU_SUFFIX_TO_MILLI[""]
        else:
            millis = value * _CPU_SUFFIX_TO_MILLI[suffix or ""]
        result = int(math.ceil(millis))
    except (ArithmeticError, ValueError) as e:  # decimal.Overflow, InvalidOperation
        raise MalformedQuantity(f"invalid cpu quantity: {quantity!r}") from e
    return CpuMillis(result)


def _cpu_or_zero(quantity: Any, what: str) -> CpuMillis:
    try:
        return parse_cpu(quantity)
    except MalformedQuantity as e:
        log.warning(f"Ignoring malformed CPU value for {what}: {e}")
        return CpuMillis(0)


# ---------------------------------------------------------------------------
# Клиент Kubernetes
# ---------------------------------------------------------------------------


def load_core_api(kubeconfig: str | None = None, context: str | None = None) -> client.CoreV1Api:
    """
    kubeconfig/context заданы -> берём их, иначе пробуем in-cluster
    (ServiceAccount пода), а затем ~/.kube/config.
    """
    if kubeconfig or context:
        config.load_kube_config(config_file=kubeconfig, context=context)
    else:
        try:
            config.load_incluster_config()
        except ConfigException:
            log.info("Not running in-cluster, falling back to local kubeconfig")
            config.load_kube_config()
    return client.CoreV1Api()


def _run_kubectl(args: List[str], context: str | None) -> Dict[str, Any]:
    cmd = ["kubectl"] + args + ["-o", "json"]
    if context: cmd.extend(["--context", context])
    log.debug(f"Running: {' '.join(cmd)}")
    try:
        output = subprocess.check_output(cmd, stderr=subprocess.PIPE)
        return json.loads(output)
    except subprocess.CalledProcessError as e:
        log.warning(f"kubectl command failed: {e.stderr.decode('utf-8').strip()}")
        raise


def _to_dict(api: Any, obj: Any) -> Dict[str, Any]:
    """Объекты python-клиента -> dict в форме JSON API (camelCase)."""
    if isinstance(obj, dict):
        return obj
    return api.api_client.sanitize_for_serialization(obj)


# ---------------------------------------------------------------------------
# Разбор объектов API
# ---------------------------------------------------------------------------


def node_from_dict(data: Dict[str, Any], capacity_field: str = "capacity") -> NodeInfo:
    meta = data.get("metadata") or {}
    status = data.get("status") or {}
    name = NodeName(meta.get("name"))
    resources = status.get(capacity_field) or {}

    if "cpu" not in resources:
        log.warning(f"Node {name} does not report CPU {capacity_field}, treating it as unschedulable")
        capacity = CpuMillis(0)
    else:
        capacity = _cpu_or_zero(resources.get("cpu"), f"node {name} {capacity_field}")

    return NodeInfo(name=name, cpu_capacity_m=capacity, labels=dict(meta.get("labels") or {}))


def pod_from_dict(data: Dict[str, Any]) -> PodInfo:
    meta = data.get("metadata") or {}
    spec = data.get("spec") or {}
    status = data.get("status") or {}
    namespace = Namespace(meta.get("namespace") or "default")
    name = meta.get("name")
    pod_id = PodId(f"{namespace}/{name}")

    containers = []
    for c in spec.get("containers") or []:
        resources = c.get("resources") or {}
        limits = resources.get("limits") or {}
        requests = resources.get("requests") or {}
        where = f"{pod_id} container {c.get('name')}"
        containers.append(ContainerCpu(
            name=c.get("name") or "",
            limit_m=_cpu_or_zero(limits.get("cpu"), f"{where} limit"),
            request_m=_cpu_or_zero(requests.get("cpu"), f"{where} request"),
        ))

    node_name = spec.get("nodeName")
    return PodInfo(
        id=pod_id,
        name=name,
        namespace=namespace,
        node_name=NodeName(node_name) if node_name else None,
        scheduler_name=spec.get("schedulerName") or "default-scheduler",
        phase=status.get("phase") or "Pending",
        containers=tuple(containers),
    )


# ---------------------------------------------------------------------------
# Сбор снапшота
# ---------------------------------------------------------------------------


def _item_name(item: Any) -> str:
    meta = item.get("metadata") if isinstance(item, dict) else None
    if not isinstance(meta, dict):
        return "<unnamed>"
    if meta.get("namespace"):
        return f"{meta.get('namespace')}/{meta.get('name')}"
    return str(meta.get("name") or "<unnamed>")


def _list_nodes(api: Any, method: str, context: str | None) -> List[Dict[str, Any]]:
    if method == "kubectl":
        return _run_kubectl(["get", "nodes"], context).get("items", [])
    return _to_dict(api, api.list_node()).get("items", [])


def _list_pods(api: Any, method: str, context: str | None, namespace: str | None) -> List[Dict[str, Any]]:
    if method == "kubectl":
        scope = ["--namespace", namespace] if namespace else ["--all-namespaces"]
        return _run_kubectl(["get", "pods"] + scope, context).get("items", [])
    if namespace:
        return _to_dict(api, api.list_namespaced_pod(namespace)).get("items", [])
    return _to_dict(api, api.list_pod_for_all_namespaces()).get("items", [])


def collect_cluster_snapshot(
    api: Any = None,
    *,
    namespace: str | None = None,
    method: str = "client",
    context: str | None = None,
    capacity_field: str = "capacity",
) -> ClusterSnapshot:
    """
    Снимает ноды и поды (всего кластера или одного namespace).

    Ошибка листинга не прерывает сбор: соответствующая часть попадает
    в `unavailable`, а снапшот возвращается с тем, что удалось получить. Объект, который
    не удалось разобрать, пропускается, остальные остаются в снапшоте.
    """
    if method not in ("client", "kubectl"):
        raise ValueError(f"Unknown collection method: {method}")
    if method == "client" and api is None:
        api = load_core_api(context=context)

    unavailable: Set[str] = set()
    taken_at = time.time()

    nodes: Dict[NodeName, NodeInfo] = {}
    try:
        node_items = _list_nodes(api, method, context)
    except Exception as e:
        log.warning(f"Error listing nodes: {e}")
        unavailable.add(UNAVAILABLE_NODES)
        node_items = []
    for item in node_items:
        try:
            node = node_from_dict(item, capacity_field)
        except Exception as e:
            log.warning(f"Skipping unparsable node {_item_name(item)}: {e}")
            continue
        nodes[node.name] = node

    pods: Dict[PodId, PodInfo] = {}
    try:
        pod_items = _list_pods(api, method, context, namespace)
    except Exception as e:
        scope = f"namespace {namespace}" if namespace else "all namespaces"
        log.warning(f"Error listing pods in {scope}: {e}")
        unavailable.add(UNAVAILABLE_PODS)
        pod_items = []
    for item in pod_items:
        try:
            pod = pod_from_dict(item)
        except Exception as e:
            log.warning(f"Skipping unparsable pod {_item_name(item)}: {e}")
            continue
        pods[pod.id] = pod

    log.debug(f"Snapshot: {len(nodes)} nodes, {len(pods)} pods, unavailable={sorted(unavailable)}")
    return ClusterSnapshot(nodes=nodes, pods=pods, unavailable=frozenset(unavailable), taken_at=taken_at)
