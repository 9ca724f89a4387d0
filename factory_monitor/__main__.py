"""CLI entry point for the factory monitor.

Usage::

    factory-monitor init-config --output monitor.yaml
    factory-monitor check-config monitor.yaml
    factory-monitor list-thresholds --config monitor.yaml
    factory-monitor classify vibration 9.4
    factory-monitor replay events.jsonl --device line-1 --config monitor.yaml
"""

from __future__ import annotations

import argparse
import asyncio
import json
import logging
import sys
import textwrap
from pathlib import Path
from typing import Any

# ---------------------------------------------------------------------------
# Sample YAML config template for init-config
# ---------------------------------------------------------------------------
_SAMPLE_CONFIG = """\
# Factory monitor configuration

monitor:
  log_level: INFO                     # DEBUG, INFO, WARNING, ERROR
  alert_summary_cap: 5                # alerts shown in summary views

# Per-metric overrides, merged over the built-in defaults.
# Fields: min, max, warning, critical
thresholds:
  vibration: {warning: 6, critical: 9}
  # temperature: {min: 10, max: 35}
  # noise: {critical: 90}

persistence:
  type: memory                        # memory or file
  # type: file
  # path: ./state/monitor.json

ledger:
  max_log_entries: 100                # products kept in today's log
  rollover_grace_s: 5                 # delay after midnight before reset

history:
  retention_hours: 24
  max_entries: 10000

# Machine-control delivery: primary first, fallback on failure.
# control:
#   primary:
#     type: rest
#     base_url: https://api.example.com
#     headers:
#       Authorization: Bearer my-token
#   fallback:
#     type: rest
#     base_url: https://backup.example.com
"""


# ======================================================================
# Main entry point
# ======================================================================


def main(argv: list[str] | None = None) -> None:
    epilog = textwrap.dedent("""\
        examples:
          factory-monitor init-config --output monitor.yaml
          factory-monitor check-config monitor.yaml
          factory-monitor classify aqi 42
          factory-monitor replay events.jsonl --device line-1
    """)

    parser = argparse.ArgumentParser(
        prog="factory-monitor",
        description="Threshold evaluation, alerting and production counting for factory sensor streams.",
        epilog=epilog,
        formatter_class=argparse.RawDescriptionHelpFormatter,
    )
    parser.add_argument(
        "--log-level",
        type=str,
        default=None,
        choices=["DEBUG", "INFO", "WARNING", "ERROR"],
        help="Logging level (default: from config, else WARNING).",
    )

    subparsers = parser.add_subparsers(dest="command", title="commands")

    # -- init-config -------------------------------------------------------
    init_parser = subparsers.add_parser("init-config", help="Generate a sample YAML configuration file.")
    init_parser.add_argument("--output", "-o", type=str, default=None, help="Write config to this file instead of stdout.")

    # -- check-config ------------------------------------------------------
    check_parser = subparsers.add_parser("check-config", help="Load a config and validate its thresholds.")
    check_parser.add_argument("path", type=str, help="Path to YAML config file.")

    # -- list-thresholds ---------------------------------------------------
    list_parser = subparsers.add_parser("list-thresholds", help="Print the effective threshold set.")
    list_parser.add_argument("--config", "-c", type=str, default=None, help="Path to YAML config file.")

    # -- classify ----------------------------------------------------------
    classify_parser = subparsers.add_parser("classify", help="Classify a single value.")
    classify_parser.add_argument("metric", type=str, help="Metric name, e.g. vibration, aqi.")
    classify_parser.add_argument("value", type=float, help="Sensor value.")
    classify_parser.add_argument("--config", "-c", type=str, default=None, help="Path to YAML config file.")

    # -- replay ------------------------------------------------------------
    replay_parser = subparsers.add_parser(
        "replay",
        help="Feed a JSONL event file through a monitor and print alerts and counts.",
        formatter_class=argparse.RawDescriptionHelpFormatter,
        epilog=textwrap.dedent("""\
            event lines:
              {"type": "reading", "metric": "vibration", "value": 9.4, "timestamp": "2026-10-19T08:00:00"}
              {"type": "unit", "tag_id": "TAG-1", "product_name": "Widget", "timestamp": "..."}
              {"type": "connection", "connected": false}
        """),
    )
    replay_parser.add_argument("events", type=str, help="Path to a JSONL events file.")
    replay_parser.add_argument("--device", "-d", type=str, required=True, help="Device ID to monitor.")
    replay_parser.add_argument("--config", "-c", type=str, default=None, help="Path to YAML config file.")
    replay_parser.add_argument(
        "--format", type=str, default="text", choices=["text", "json"], help="Output format (default: text)."
    )

    args = parser.parse_args(argv)

    if args.command is None:
        parser.print_help()
        return

    logging.basicConfig(
        level=getattr(logging, args.log_level or "WARNING"),
        format="%(asctime)s %(name)-30s %(levelname)-7s %(message)s",
        datefmt="%H:%M:%S",
    )

    # -- Dispatch ----------------------------------------------------------
    if args.command == "init-config":
        _cmd_init_config(args.output)
    elif args.command == "check-config":
        _cmd_check_config(args.path)
    elif args.command == "list-thresholds":
        _cmd_list_thresholds(args.config)
    elif args.command == "classify":
        _cmd_classify(args.metric, args.value, args.config)
    elif args.command == "replay":
        _cmd_replay(args.events, args.device, args.config, args.format, args.log_level)
    else:
        parser.print_help()


# ======================================================================
# Command implementations
# ======================================================================


def _load_config(path: str | None, log_level: str | None = None):
    from factory_monitor.config import MonitorYAMLConfig, load_yaml_config

    if path is None:
        return MonitorYAMLConfig()
    cfg = load_yaml_config(path)
    if log_level is None:
        logging.getLogger().setLevel(getattr(logging, cfg.log_level, logging.INFO))
    return cfg


def _thresholds_or_exit(cfg):
    from factory_monitor.config import build_thresholds
    from factory_monitor.errors import ThresholdValidationError

    try:
        return build_thresholds(cfg)
    except ThresholdValidationError as exc:
        print("Invalid thresholds:")
        for field, msg in sorted(exc.errors.items()):
            print(f"  {field}: {msg}")
        sys.exit(1)


# -- init-config ------------------------------------------------------------


def _cmd_init_config(output_path: str | None) -> None:
    if output_path:
        Path(output_path).parent.mkdir(parents=True, exist_ok=True)
        Path(output_path).write_text(_SAMPLE_CONFIG)
        print(f"Sample config written to {output_path}")
    else:
        print(_SAMPLE_CONFIG)


# -- check-config -----------------------------------------------------------


def _cmd_check_config(path: str) -> None:
    try:
        cfg = _load_config(path)
    except FileNotFoundError as exc:
        print(f"Error: {exc}")
        sys.exit(1)
    _thresholds_or_exit(cfg)
    print(f"{path}: OK")


# -- list-thresholds --------------------------------------------------------


def _cmd_list_thresholds(config_path: str | None) -> None:
    store = _thresholds_or_exit(_load_config(config_path))

    print(f"\n{'Metric':<14} {'Min':>8} {'Max':>8} {'Warning':>8} {'Critical':>8}")
    print("-" * 50)
    for metric, t in store.snapshot().items():
        cells = [f"{v:>8g}" if v is not None else f"{'-':>8}" for v in (t.min, t.max, t.warning, t.critical)]
        print(f"{metric.value:<14} {' '.join(cells)}")
    print()


# -- classify ---------------------------------------------------------------


def _cmd_classify(metric_name: str, value: float, config_path: str | None) -> None:
    from factory_monitor.classifier import classify
    from factory_monitor.models import Metric

    metric = Metric.parse(metric_name)
    if metric is None:
        valid = ", ".join(m.value for m in Metric)
        print(f"Error: unknown metric '{metric_name}'.")
        print(f"Available metrics: {valid}")
        sys.exit(1)

    store = _thresholds_or_exit(_load_config(config_path))
    severity = classify(metric, value, store.get(metric))
    print(severity.value if severity else "unknown")


# -- replay -----------------------------------------------------------------


def _cmd_replay(events_path: str, device_id: str, config_path: str | None, fmt: str, log_level: str | None) -> None:
    path = Path(events_path)
    if not path.exists():
        print(f"Error: events file not found: {path}")
        sys.exit(1)

    cfg = _load_config(config_path, log_level)
    _thresholds_or_exit(cfg)
    result = asyncio.run(_replay(path, device_id, cfg))

    if fmt == "json":
        print(json.dumps(result, default=str, indent=2))
        return

    print(f"\nDevice {device_id}: {result['daily']} unit(s) today, {len(result['alerts'])} active alert(s)\n")
    for alert in result["alerts"]:
        print(f"  [{alert['severity'].upper():<8}] {alert['time']}  {alert['message']}")
    print()


async def _replay(path: Path, device_id: str, cfg) -> dict[str, Any]:
    from factory_monitor.monitor import FactoryMonitor

    log = logging.getLogger("factory_monitor.cli")
    monitor = FactoryMonitor.from_config(cfg, gateway=None)
    try:
        await monitor.select_device(device_id)
        bus = monitor.bus

        with path.open("r") as fh:
            for lineno, line in enumerate(fh, start=1):
                line = line.strip()
                if not line:
                    continue
                try:
                    event = json.loads(line)
                except ValueError:
                    log.warning("Skipping line %d: not JSON", lineno)
                    continue
                if not isinstance(event, dict):
                    log.warning("Skipping line %d: not a JSON object", lineno)
                    continue
                kind = event.get("type", "reading")
                dev = event.get("device_id", device_id)
                if kind == "reading":
                    bus.on_reading(dev, event.get("metric"), event.get("value"), event.get("timestamp"))
                elif kind == "unit":
                    bus.on_unit_event(dev, event.get("tag_id"), event.get("product_name"), event.get("timestamp"))
                elif kind == "connection":
                    bus.on_connection_change(bool(event.get("connected")))

        await monitor.drain()
        return {
            "device_id": device_id,
            "daily": monitor.ledger.count(device_id),
            "alerts": [a.to_dict() for a in monitor.alerts.list()],
            "statuses": {m.value: (s.value if s else None) for m, s in monitor.statuses().items()},
        }
    finally:
        await monitor.close()


# ======================================================================
if __name__ == "__main__":
    main()
