# threadsched/snapshot/binder.py
from __future__ import annotations

import logging

from kubernetes import client

from ..model.entities import PodInfo
from ..types import NodeName

log = logging.getLogger(__name__)


class KubeBinder:
    """Привязка pod'а к ноде через сабресурс pods/binding."""

    def __init__(self, api: client.CoreV1Api):
        self.api = api

    def bind(self, pod: PodInfo, node_name: NodeName) -> None:
        target = client.V1ObjectReference(kind="Node", api_version="v1", name=node_name)
        meta = client.V1ObjectMeta(name=pod.name)
        body = client.V1Binding(target=target, metadata=meta)
        # API отвечает Status, а не V1Binding: ответ не десериализуем
        self.api.create_namespaced_binding(pod.namespace, body, _preload_content=False)


class DryRunBinder:
    """Ничего не пишет в кластер, только логирует."""

    def __init__(self) -> None:
        self.bound: list[tuple[str, str]] = []

    def bind(self, pod: PodInfo, node_name: NodeName) -> None:
        log.info(f"[dry-run] would bind {pod.id} -> {node_name}")
        self.bound.append((str(pod.id), str(node_name)))
