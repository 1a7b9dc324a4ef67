from conftest import make_node, make_pod, make_snapshot
from threadsched.sched.decision import decide
from threadsched.sched.basic import select_node_by_threads_label
from threadsched.sched.result import Outcome


def test_most_available_threads_wins():
    snap = make_snapshot(
        [
            make_node("big", 16000, labels={"threads": "16"}),
            make_node("small", 4000, labels={"threads": "4"}),
            make_node("unlabeled", 64000),
            make_node("garbage", 64000, labels={"threads": "many"}),
        ],
        [make_pod(f"p{i}", namespace=f"ns-{i}", node="big") for i in range(14)],
    )
    decision = select_node_by_threads_label(snap)
    assert decision.node_name == "small"  # 4 - 0 > 16 - 14


def test_no_free_threads():
    snap = make_snapshot(
        [make_node("one", 1000, labels={"threads": "1"})],
        [make_pod("p", node="one")],
    )
    decision = select_node_by_threads_label(snap)
    assert decision.outcome is Outcome.NO_ELIGIBLE_NODE
    assert decision.reason == "no node with available threads found"


def test_strategy_selected_through_decide():
    snap = make_snapshot([make_node("a", 1000, labels={"threads": "2"}), make_node("b", 1000, labels={"threads": "2"})])
    decision = decide(snap, make_pod("new"), strategy="threads-label")
    assert decision.node_name == "a"
