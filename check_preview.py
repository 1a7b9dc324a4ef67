# check_preview.py
from __future__ import annotations

import argparse
import sys
from pathlib import Path

import requests

from threadsched.sched.accessor import hypothetical_pod
from threadsched.sched.decision import STRATEGIES, decide, rank_scores
from threadsched.sched.scoring import REQUEST_SCOPES
from threadsched.snapshot.io import load_snapshot_from_file


BASE_URL = "http://localhost:8000"


def load_cli_decision(
    snapshot_path: Path,
    namespace: str,
    limit_m: int,
    request_m: int,
    request_scope: str = "namespace",
    strategy: str = "spread",
):
    """Решение напрямую по файлу снапшота (без HTTP). Политика должна совпадать с серверной."""
    snapshot = load_snapshot_from_file(snapshot_path)
    pod = hypothetical_pod(namespace, limit_m, request_m)
    return decide(snapshot, pod, request_scope, strategy)


def fetch_api_decision(base_url: str, namespace: str, limit_m: int, request_m: int):
    """Тот же вопрос к /preview. Сервер должен быть запущен с тем же --snapshot."""
    resp = requests.post(
        f"{base_url}/preview",
        json={"namespace": namespace, "cpu_limit_m": limit_m, "cpu_request_m": request_m},
        timeout=10,
    )
    resp.raise_for_status()
    return resp.json()


def compare(cli_decision, api_json) -> bool:
    print("=== DECISION ===")
    print(f"CLI: {cli_decision.outcome.value} -> {cli_decision.node_name}")
    print(f"API: {api_json['outcome']} -> {api_json['node_name']}")
    ok = cli_decision.outcome.value == api_json["outcome"] and cli_decision.node_name == api_json["node_name"]

    print()
    print("=== RANKING ===")
    cli_order = [str(s.node_name) for s in rank_scores(cli_decision.scores)]
    api_order = [s["node"] for s in api_json["scores"]]
    for i, (c, a) in enumerate(zip(cli_order, api_order)):
        mark = "" if c == a else "  <-- differs"
        print(f"{i + 1:3d}. CLI={c:30s} API={a}{mark}")
    if len(cli_order) != len(api_order):
        print(f"Node count differs: CLI={len(cli_order)}, API={len(api_order)}")
    ok = ok and cli_order == api_order

    print()
    print("MATCH:", ok)
    return ok


def main(argv=None) -> int:
    parser = argparse.ArgumentParser(description="Compare offline preview with the running API")
    parser.add_argument("snapshot", type=Path)
    parser.add_argument("--namespace", required=True)
    parser.add_argument("--cpu-limit-m", type=int, default=0)
    parser.add_argument("--cpu-request-m", type=int, default=0)
    parser.add_argument("--request-scope", choices=REQUEST_SCOPES, default="namespace",
                        help="Must match the server's --request-scope")
    parser.add_argument("--strategy", choices=STRATEGIES, default="spread",
                        help="Must match the server's --strategy")
    parser.add_argument("--base-url", default=BASE_URL)
    args = parser.parse_args(argv)

    print("Loading CLI decision...")
    cli_decision = load_cli_decision(
        args.snapshot, args.namespace, args.cpu_limit_m, args.cpu_request_m, args.request_scope, args.strategy,
    )
    print("Fetching API decision...")
    api_json = fetch_api_decision(args.base_url, args.namespace, args.cpu_limit_m, args.cpu_request_m)

    return 0 if compare(cli_decision, api_json) else 1


if __name__ == "__main__":
    sys.exit(main())
