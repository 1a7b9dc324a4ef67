import pytest

from conftest import FakeCoreV1Api, container_json, node_json, pod_json
from threadsched.model.entities import UNAVAILABLE_NODES, UNAVAILABLE_PODS
from threadsched.snapshot import collector
from threadsched.snapshot.collector import (
    MalformedQuantity, collect_cluster_snapshot, node_from_dict, parse_cpu, pod_from_dict,
)


@pytest.mark.parametrize("quantity, expected", [
    ("250m", 250),
    ("2", 2000),
    ("0.5", 500),
    ("0.1", 100),
    ("1.5", 1500),
    ("100n", 1),      # округление вверх
    ("1500u", 2),
    ("1e3", 1000000),
    ("+3", 3000),
    (2, 2000),
    (0.25, 250),
    (None, 0),
    ("", 0),
])
def test_parse_cpu(quantity, expected):
    assert parse_cpu(quantity) == expected


@pytest.mark.parametrize("quantity", ["abc", "-1", "1Gi", "m", "1.2.3", True, "99999e999999", "9e999999"])
def test_parse_cpu_malformed(quantity):
    with pytest.raises(MalformedQuantity):
        parse_cpu(quantity)


def test_malformed_quantity_is_a_value_error():
    assert issubclass(MalformedQuantity, ValueError)


def test_node_without_cpu_capacity_is_zero():
    node = node_from_dict(node_json("n1", cpu=None))
    assert node.cpu_capacity_m == 0


def test_node_with_malformed_cpu_is_zero(caplog):
    node = node_from_dict(node_json("n1", cpu="lots"))
    assert node.cpu_capacity_m == 0
    assert "malformed" in caplog.text


def test_node_capacity_field_selection():
    data = node_json("n1", cpu="8", labels={"threads": "16"}, allocatable_cpu="7800m")
    assert node_from_dict(data).cpu_capacity_m == 8000
    assert node_from_dict(data, "allocatable").cpu_capacity_m == 7800
    assert node_from_dict(data).labels == {"threads": "16"}


def test_pod_resources_missing_or_malformed_count_as_zero(caplog):
    pod = pod_from_dict(pod_json("p", "team-a", node="n1", containers=[
        container_json("app", limit="1", request="250m"),
        container_json("sidecar"),
        container_json("broken", limit="???", request="100m"),
    ]))
    assert pod.id == "team-a/p"
    assert pod.node_name == "n1"
    assert pod.cpu_limit_m == 1000
    assert pod.cpu_request_m == 350
    assert "team-a/p container broken limit" in caplog.text


def test_pending_pod_has_no_node():
    pod = pod_from_dict(pod_json("p", "team-a", scheduler_name="custom"))
    assert pod.node_name is None
    assert pod.scheduler_name == "custom"
    assert pod.phase == "Pending"


def test_collect_cluster_snapshot(fake_api):
    snap = collect_cluster_snapshot(fake_api)
    assert set(snap.nodes) == {"node-x", "node-y"}
    assert snap.nodes["node-y"].cpu_capacity_m == 8000
    assert set(snap.pods) == {"team-a/existing", "team-b/other"}
    assert snap.unavailable == frozenset()


def test_collect_namespace_scoped(fake_api):
    snap = collect_cluster_snapshot(fake_api, namespace="team-a")
    assert ("list_namespaced_pod", "team-a") in fake_api.calls
    assert set(snap.pods) == {"team-a/existing"}


def test_node_listing_failure_degrades(caplog):
    api = FakeCoreV1Api(pods=[pod_json("p", node=None)], fail_nodes=True)
    snap = collect_cluster_snapshot(api)
    assert snap.nodes == {}
    assert UNAVAILABLE_NODES in snap.unavailable
    assert set(snap.pods) == {"team-a/p"}
    assert "Error listing nodes" in caplog.text


def test_pod_listing_failure_degrades():
    api = FakeCoreV1Api(nodes=[node_json("n1", "2")], fail_pods=True)
    snap = collect_cluster_snapshot(api, namespace="team-a")
    assert set(snap.nodes) == {"n1"}
    assert snap.pods == {}
    assert snap.unavailable == frozenset({UNAVAILABLE_PODS})


def test_collect_via_kubectl(monkeypatch):
    calls = []

    def fake_kubectl(args, context):
        calls.append((tuple(args), context))
        if args[1] == "nodes":
            return {"items": [node_json("n1", "4")]}
        return {"items": [pod_json("p", "team-a", node="n1", containers=[container_json(limit="1")])]}

    monkeypatch.setattr(collector, "_run_kubectl", fake_kubectl)
    snap = collect_cluster_snapshot(method="kubectl", context="prod", namespace="team-a")

    assert snap.nodes["n1"].cpu_capacity_m == 4000
    assert snap.pods["team-a/p"].cpu_limit_m == 1000
    assert (("get", "pods", "--namespace", "team-a"), "prod") in calls


def test_unknown_method_rejected(fake_api):
    with pytest.raises(ValueError):
        collect_cluster_snapshot(fake_api, method="watch")


def test_overflowing_cpu_on_one_pod_does_not_hide_other_pods(caplog):
    api = FakeCoreV1Api(
        nodes=[node_json("n1", "4")],
        pods=[
            pod_json("huge", "team-b", node="n1", containers=[container_json(limit="99999e999999", request="100m")]),
            pod_json("waiting", "team-a"),
        ],
    )
    snap = collect_cluster_snapshot(api)

    assert snap.unavailable == frozenset()
    assert set(snap.pods) == {"team-b/huge", "team-a/waiting"}
    assert snap.pods["team-b/huge"].cpu_limit_m == 0
    assert snap.pods["team-b/huge"].cpu_request_m == 100
    assert "team-b/huge container main limit" in caplog.text


def test_unparsable_items_are_skipped_individually(caplog):
    broken_pod = pod_json("broken", "team-b")
    broken_pod["spec"]["containers"] = "not-a-list"
    api = FakeCoreV1Api(
        nodes=[node_json("n1", "4"), {"metadata": {"name": "bad-node"}, "status": ["oops"]}],
        pods=[broken_pod, pod_json("ok", "team-a", node="n1")],
    )
    snap = collect_cluster_snapshot(api)

    assert set(snap.nodes) == {"n1"}
    assert set(snap.pods) == {"team-a/ok"}
    assert snap.unavailable == frozenset()
    assert "Skipping unparsable pod team-b/broken" in caplog.text
    assert "Skipping unparsable node bad-node" in caplog.text
