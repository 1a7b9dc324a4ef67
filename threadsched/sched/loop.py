# threadsched/sched/loop.py
from __future__ import annotations

import logging
import threading
import time
from collections import deque
from concurrent.futures import ThreadPoolExecutor
from dataclasses import dataclass
from typing import Any, Callable, Deque, List, Optional, Protocol, Tuple

from ..config import SchedulerConfig
from ..model.entities import ClusterSnapshot, PodInfo, UNAVAILABLE_NODES, UNAVAILABLE_PODS
from ..snapshot.binder import DryRunBinder, KubeBinder
from ..snapshot.collector import collect_cluster_snapshot, load_core_api
from ..types import NodeName
from .decision import decide
from .result import Decision, Outcome

log = logging.getLogger(__name__)

# namespace (None == весь кластер) -> свежий снапшот
SnapshotSource = Callable[[Optional[str]], ClusterSnapshot]


class Binder(Protocol):
    def bind(self, pod: PodInfo, node_name: NodeName) -> None: ...


@dataclass(frozen=True)
class DecisionRecord:
    pod_id: str
    namespace: str
    outcome: Outcome
    node_name: Optional[str] = None
    reason: Optional[str] = None
    bound: bool = False
    error: Optional[str] = None
    issues: Tuple[str, ...] = ()
    at: float = 0.0


class DecisionLog:
    """
    Последние решения в памяти, для /status и /decisions.
    Алгоритмом не читается, при рестарте теряется.
    """

    def __init__(self, maxlen: int = 200):
        self._items: Deque[DecisionRecord] = deque(maxlen=maxlen)
        self._lock = threading.Lock()

    def add(self, record: DecisionRecord) -> None:
        with self._lock:
            self._items.append(record)

    def recent(self, limit: Optional[int] = None) -> List[DecisionRecord]:
        """Новые сверху."""
        with self._lock:
            items = list(self._items)
        items.reverse()
        return items[:limit] if limit is not None else items

    def __len__(self) -> int:
        with self._lock:
            return len(self._items)


class SchedulingLoop:
    def __init__(
        self,
        config: SchedulerConfig,
        source: SnapshotSource,
        binder: Binder,
        decision_log: Optional[DecisionLog] = None,
    ):
        self.config = config
        self.source = source
        self.binder = binder
        self.decision_log = decision_log if decision_log is not None else DecisionLog(config.decision_log_size)
        self.cycles = 0
        self.last_cycle_at: Optional[float] = None
        self.last_pending = 0

    def pending_pods(self, snapshot: ClusterSnapshot) -> List[PodInfo]:
        return snapshot.pending_for(self.config.scheduler_name)

    def _snapshot_for(self, pod: PodInfo, cycle_snapshot: ClusterSnapshot) -> ClusterSnapshot:
        if not self.config.snapshot_per_pod:
            return cycle_snapshot
        # для cluster-scope и threads-label нужны pod'ы всех namespace
        if self.config.request_scope == "cluster" or self.config.strategy == "threads-label":
            return self.source(None)
        return self.source(str(pod.namespace))

    def _record(self, pod: PodInfo, decision: Decision, bound: bool = False, error: str | None = None) -> DecisionRecord:
        record = DecisionRecord(
            pod_id=str(pod.id),
            namespace=str(pod.namespace),
            outcome=decision.outcome,
            node_name=decision.node_name,
            reason=decision.reason,
            bound=bound,
            error=error,
            issues=decision.issues,
            at=time.time(),
        )
        self.decision_log.add(record)
        return record

    def schedule_pod(self, pod: PodInfo, cycle_snapshot: ClusterSnapshot) -> Optional[DecisionRecord]:
        """Одно решение и (при успехе) одна привязка для pod'а."""
        snapshot = self._snapshot_for(pod, cycle_snapshot)

        current = snapshot.pods.get(pod.id)
        if current is not None and current.is_bound:
            log.debug(f"Pod {pod.id} already bound to {current.node_name}, skipping")
            return None

        log.info(f"Attempting to schedule pod: {pod.id}")
        for issue in (UNAVAILABLE_NODES, UNAVAILABLE_PODS):
            if issue in snapshot.unavailable:
                log.warning(f"Deciding {pod.id} without {issue} data for this cycle")

        decision = decide(snapshot, pod, self.config.request_scope, self.config.strategy)
        if not decision.eligible:
            log.info(f"No suitable node found for pod {pod.id}: {decision.reason}")
            return self._record(pod, decision)

        try:
            self.binder.bind(pod, decision.node_name)
        except Exception as e:
            log.error(f"Error binding pod {pod.id} to node {decision.node_name}: {e}")
            return self._record(pod, decision, error=str(e))

        log.info(f"Pod {pod.id} successfully scheduled on node {decision.node_name}")
        return self._record(pod, decision, bound=True)

    def _schedule_isolated(self, pod: PodInfo, cycle_snapshot: ClusterSnapshot) -> Optional[DecisionRecord]:
        try:
            return self.schedule_pod(pod, cycle_snapshot)
        except Exception as e:
            log.exception(f"Scheduling failed for pod {pod.id}: {e}")
            failed = Decision(outcome=Outcome.ERROR, reason="scheduling error")
            return self._record(pod, failed, error=str(e))

    def run_cycle(self) -> List[DecisionRecord]:
        snapshot = self.source(None)
        self.cycles += 1
        self.last_cycle_at = time.time()

        if UNAVAILABLE_PODS in snapshot.unavailable:
            log.warning("Pod listing failed, no pending pods discovered this cycle")
        pending = self.pending_pods(snapshot)
        self.last_pending = len(pending)
        if not pending:
            return []
        log.debug(f"Cycle {self.cycles}: {len(pending)} pending pod(s)")

        if self.config.workers > 1 and len(pending) > 1:
            with ThreadPoolExecutor(max_workers=min(self.config.workers, len(pending))) as executor:
                results = list(executor.map(lambda p: self._schedule_isolated(p, snapshot), pending))
        else:
            results = [self._schedule_isolated(p, snapshot) for p in pending]
        return [r for r in results if r is not None]

    def run_forever(self, stop_event: Optional[threading.Event] = None) -> None:
        stop_event = stop_event or threading.Event()
        log.info(f"Starting scheduler {self.config.scheduler_name} "
                 f"(strategy={self.config.strategy}, request_scope={self.config.request_scope})")
        while not stop_event.is_set():
            try:
                self.run_cycle()
            except Exception as e:
                log.error(f"Scheduling cycle failed, retrying in {self.config.interval_s}s: {e}")
            stop_event.wait(self.config.interval_s)
        log.info("Scheduler stopped")


def cluster_source(config: SchedulerConfig, api: Any = None) -> SnapshotSource:
    """Источник свежих снапшотов из живого кластера."""
    if api is None and config.method == "client":
        api = load_core_api(config.kubeconfig, config.context)

    def source(namespace: Optional[str]) -> ClusterSnapshot:
        return collect_cluster_snapshot(
            api,
            namespace=namespace,
            method=config.method,
            context=config.context,
            capacity_field=config.capacity_field,
        )

    return source


def create_loop(config: SchedulerConfig, api: Any = None, decision_log: Optional[DecisionLog] = None) -> SchedulingLoop:
    """Собирает цикл с реальным кластером по конфигу."""
    if api is None and (config.method == "client" or not config.dry_run):
        api = load_core_api(config.kubeconfig, config.context)
    source = cluster_source(config, api)
    binder: Binder = DryRunBinder() if config.dry_run else KubeBinder(api)
    return SchedulingLoop(config, source, binder, decision_log)
