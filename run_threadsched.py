# run_threadsched.py
import argparse
import json
import logging
import sys
import threading
import time
from pathlib import Path

import uvicorn
from pydantic import ValidationError

from threadsched.api import server
from threadsched.config import load_config
from threadsched.sched.accessor import hypothetical_pod
from threadsched.sched.decision import STRATEGIES, decide
from threadsched.sched.loop import cluster_source, create_loop
from threadsched.sched.scoring import REQUEST_SCOPES
from threadsched.snapshot.collector import collect_cluster_snapshot, load_core_api
from threadsched.snapshot.io import load_snapshot_from_file, save_snapshot_to_file
from threadsched.types import PodId

log = logging.getLogger("launcher")


def millicores(value: str) -> int:
    """Неотрицательное число milliCPU для аргументов CLI."""
    try:
        result = int(value)
    except ValueError:
        raise argparse.ArgumentTypeError(f"not an integer: {value!r}")
    if result < 0:
        raise argparse.ArgumentTypeError(f"must be >= 0, got {result}")
    return result


def _add_cluster_args(p: argparse.ArgumentParser) -> None:
    p.add_argument("--kubeconfig", default=None, help="Path to kubeconfig (default: in-cluster config)")
    p.add_argument("--context", default=None, help="Kubeconfig context")
    p.add_argument("--method", choices=["client", "kubectl"], default=None, help="How to read the cluster")
    p.add_argument("--capacity-field", choices=["capacity", "allocatable"], default=None,
                   help="Node status field used as CPU capacity")


def _add_policy_args(p: argparse.ArgumentParser) -> None:
    p.add_argument("--scheduler-name", default=None, help="spec.schedulerName handled by this process")
    p.add_argument("--strategy", choices=STRATEGIES, default=None)
    p.add_argument("--request-scope", choices=REQUEST_SCOPES, default=None,
                   help="Which pods' CPU requests count against node capacity")


def _add_loop_args(p: argparse.ArgumentParser) -> None:
    p.add_argument("--interval", dest="interval_s", type=float, default=None, help="Polling interval, seconds")
    p.add_argument("--workers", type=int, default=None, help="Pods decided in parallel per cycle")
    p.add_argument("--dry-run", action="store_true", default=None, help="Decide but never bind")
    p.add_argument("--shared-snapshot", dest="snapshot_per_pod", action="store_false", default=None,
                   help="Reuse the cycle snapshot for every pod instead of re-reading per pod")


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(description="Namespaced CPU-limit spread scheduler")
    parser.add_argument("--log-level", default=None, help="DEBUG, INFO, WARNING, ERROR")
    sub = parser.add_subparsers(dest="command", required=True)

    run = sub.add_parser("run", help="Run the scheduling loop")
    _add_cluster_args(run)
    _add_policy_args(run)
    _add_loop_args(run)

    serve = sub.add_parser("serve", help="Run the scheduling loop with the HTTP status API")
    _add_cluster_args(serve)
    _add_policy_args(serve)
    _add_loop_args(serve)
    serve.add_argument("--host", default="0.0.0.0", help="Bind host")
    serve.add_argument("--port", type=int, default=8000, help="Bind port")
    serve.add_argument("--no-loop", action="store_true", help="Only serve the API, do not schedule")
    serve.add_argument("--snapshot", type=Path, default=None, help="Serve previews from a snapshot file")

    capture = sub.add_parser("capture", help="Save a cluster snapshot to a JSON file")
    _add_cluster_args(capture)
    capture.add_argument("--namespace", default=None)
    capture.add_argument("--out", type=Path, default=None)

    preview = sub.add_parser("preview", help="Show the node ranking for a pod without binding")
    _add_cluster_args(preview)
    _add_policy_args(preview)
    preview.add_argument("--snapshot", type=Path, default=None, help="Use a snapshot file instead of the cluster")
    preview.add_argument("--pod", default=None, help="Existing pod as <namespace>/<name>")
    preview.add_argument("--namespace", default=None, help="Namespace of a hypothetical pod")
    preview.add_argument("--cpu-limit-m", type=millicores, default=0)
    preview.add_argument("--cpu-request-m", type=millicores, default=0)

    return parser


def _overrides(args: argparse.Namespace) -> dict:
    return {k: v for k, v in vars(args).items() if v is not None}


def cmd_run(cfg) -> int:
    loop = create_loop(cfg)
    try:
        loop.run_forever()
    except KeyboardInterrupt:
        log.info("Interrupted")
    return 0


def cmd_serve(cfg, args) -> int:
    if args.snapshot:
        server.STATE.use_snapshot(load_snapshot_from_file(args.snapshot), cfg)
    elif args.no_loop:
        server.STATE.use_source(cluster_source(cfg), cfg)

    stop = threading.Event()
    if not args.no_loop and not args.snapshot:
        loop = create_loop(cfg)
        server.STATE.attach(loop)
        threading.Thread(target=loop.run_forever, args=(stop,), name="scheduling-loop", daemon=True).start()

    try:
        uvicorn.run(server.app, host=args.host, port=args.port, log_level=cfg.log_level.lower())
    finally:
        stop.set()
    return 0


def cmd_capture(cfg, args) -> int:
    api = load_core_api(cfg.kubeconfig, cfg.context) if cfg.method == "client" else None
    snap = collect_cluster_snapshot(
        api, namespace=args.namespace, method=cfg.method, context=cfg.context, capacity_field=cfg.capacity_field,
    )
    out = args.out or Path("snapshots") / f"k8s-{int(time.time())}.json"
    out.parent.mkdir(parents=True, exist_ok=True)
    save_snapshot_to_file(snap, out)
    log.info(f"Snapshot with {len(snap.nodes)} nodes and {len(snap.pods)} pods saved to: {out}")
    return 0


def cmd_preview(cfg, args) -> int:
    if args.snapshot:
        snap = load_snapshot_from_file(args.snapshot)
    else:
        api = load_core_api(cfg.kubeconfig, cfg.context) if cfg.method == "client" else None
        snap = collect_cluster_snapshot(api, method=cfg.method, context=cfg.context, capacity_field=cfg.capacity_field)

    if args.pod:
        pod = snap.pods.get(PodId(args.pod))
        if pod is None:
            log.error(f"Pod {args.pod} not found in snapshot")
            return 1
    elif args.namespace:
        pod = hypothetical_pod(args.namespace, args.cpu_limit_m, args.cpu_request_m)
    else:
        log.error("Either --pod or --namespace is required")
        return 2

    decision = decide(snap, pod, cfg.request_scope, cfg.strategy)
    response = server.to_preview_response(str(pod.id), str(pod.namespace), decision)
    print(json.dumps(response.model_dump(), indent=2))
    return 0 if decision.eligible else 1


def main(argv=None) -> int:
    args = build_parser().parse_args(argv)
    try:
        cfg = load_config(_overrides(args))
    except ValidationError as e:
        print(f"Invalid configuration:\n{e}", file=sys.stderr)
        return 2

    logging.basicConfig(
        level=getattr(logging, cfg.log_level),
        format="%(asctime)s - %(name)s - %(levelname)s - %(message)s",
        datefmt="%Y-%m-%d %H:%M:%S",
    )

    if args.command == "run":
        return cmd_run(cfg)
    if args.command == "serve":
        return cmd_serve(cfg, args)
    if args.command == "capture":
        return cmd_capture(cfg, args)
    return cmd_preview(cfg, args)


if __name__ == "__main__":
    sys.exit(main())
