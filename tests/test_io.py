from conftest import make_node, make_pod, make_snapshot
from threadsched.model.entities import ContainerCpu
from threadsched.sched.decision import decide
from threadsched.snapshot.io import load_snapshot_from_file, save_snapshot_to_file, snapshot_from_dict
from threadsched.types import CpuMillis


def test_snapshot_file_preserves_decision_inputs(tmp_path):
    snap = make_snapshot(
        [make_node("x", 4000, labels={"threads": "8"}), make_node("y", 0)],
        [
            make_pod("bound", node="x", containers=[
                ContainerCpu(name="app", limit_m=CpuMillis(1500), request_m=CpuMillis(250)),
                ContainerCpu(name="sidecar", limit_m=CpuMillis(100)),
            ]),
            make_pod("pending", namespace="team-b", limit_m=10, request_m=5),
        ],
        unavailable={"pods"},
    )
    path = tmp_path / "snap.json"

    save_snapshot_to_file(snap, path)
    loaded = load_snapshot_from_file(path)

    assert loaded == snap
    candidate = make_pod("new", limit_m=500)
    assert decide(loaded, candidate) == decide(snap, candidate)


def test_snapshot_from_minimal_dict_uses_defaults():
    snap = snapshot_from_dict({
        "nodes": {"n1": {"cpu_capacity_m": 2000}},
        "pods": {"team-a/p": {"namespace": "team-a", "node": None}},
    })
    assert snap.nodes["n1"].name == "n1"
    pod = snap.pods["team-a/p"]
    assert pod.name == "p"
    assert pod.node_name is None
    assert pod.scheduler_name == "default-scheduler"
    assert pod.containers == ()
    assert snap.unavailable == frozenset()
