#!/usr/bin/env python3
"""Dump everything pyiotux can read for an account.

Logs in, lists devices and calls every read endpoint per device, printing
the parsed model fields **and** the raw API JSON so unmapped fields are
easy to spot.  Also reports what the durable command queue holds.

Usage
-----
Set environment variables and run::

    export IOTUX_EMAIL="you@example.com"
    export IOTUX_PASSWORD="your-password"
    export IOTUX_STORAGE_PATH="~/.pyiotux/state.json"   # optional
    python scripts/dump_all.py

Options::

    --device ID      Only query this device (default: all devices)
    --json           Output as machine-readable JSON
    --output FILE    Write JSON output to FILE instead of stdout
    --skip-alerts    Skip the alerts endpoint
    --watch SECONDS  Keep polling device status and print changes
"""

from __future__ import annotations

import argparse
import asyncio
import json
import logging
import sys
from datetime import UTC, datetime
from pathlib import Path
from typing import Any

# Allow running from the repo root without installing the package.
_repo = Path(__file__).resolve().parent.parent
_src = _repo / "src"
if _src.is_dir():
    sys.path.insert(0, str(_src))

from pydantic import BaseModel  # noqa: E402

from pyiotux import IotuxClient, IotuxConfig, IotuxError  # noqa: E402


def _section(title: str) -> str:
    line = "=" * 60
    return f"\n{line}\n  {title}\n{line}"


def _print_model(label: str, model: BaseModel, out: list[str]) -> dict[str, Any]:
    data = model.model_dump(mode="json")
    out.append(f"\n── {label} ──")
    for key, value in data.items():
        out.append(f"  {key}: {value}")
    return data


def _print_raw(label: str, raw: dict[str, Any], out: list[str]) -> None:
    out.append(f"  ── raw {label} ──")
    for line in json.dumps(raw, indent=2, ensure_ascii=False, default=str).splitlines():
        out.append(f"    {line}")


async def dump_device(
    client: IotuxClient,
    device_id: str,
    *,
    skip_alerts: bool,
) -> dict[str, Any]:
    """Call every read endpoint for one device."""
    out: list[str] = [_section(f"DEVICE {device_id}")]
    data: dict[str, Any] = {}

    try:
        status = await client.get_device_status(device_id)
        data["status"] = _print_model("Status", status, out)
        _print_raw("status", status.raw, out)
    except IotuxError as exc:
        out.append(f"  status: ERROR {type(exc).__name__}: {exc}")
        data["status"] = {"error": str(exc)}

    try:
        current = await client.get_device_current_status(device_id)
        data["current"] = _print_model("Current status", current, out)
        _print_raw("current", current.raw, out)
    except IotuxError as exc:
        out.append(f"  current: ERROR {type(exc).__name__}: {exc}")
        data["current"] = {"error": str(exc)}

    if not skip_alerts:
        try:
            alerts = await client.get_device_alerts(device_id)
            out.append(f"\n── Alerts ({len(alerts)}) ──")
            for alert in alerts:
                out.append(f"  #{alert.id} {alert.created_at} {alert.status} lat={alert.lat} lon={alert.lon}")
            data["alerts"] = [a.model_dump(mode="json") for a in alerts]
        except IotuxError as exc:
            out.append(f"  alerts: ERROR {type(exc).__name__}: {exc}")
            data["alerts"] = {"error": str(exc)}

    data["_text"] = out
    return data


async def main() -> None:
    parser = argparse.ArgumentParser(
        description="Dump all data pyiotux can fetch for debugging / development.",
    )
    parser.add_argument("--device", help="Only query this device (default: all devices)")
    parser.add_argument("--json", action="store_true", dest="json_mode", help="Output machine-readable JSON")
    parser.add_argument("--output", "-o", help="Write JSON output to FILE instead of stdout")
    parser.add_argument("--skip-alerts", action="store_true", help="Skip the alerts endpoint")
    parser.add_argument("--watch", type=float, metavar="SECONDS", help="Poll device status and print changes")
    parser.add_argument("--verbose", "-v", action="store_true", help="Enable debug logging")
    args = parser.parse_args()

    if args.verbose:
        logging.basicConfig(level=logging.DEBUG, format="%(levelname)s %(name)s: %(message)s")
    else:
        logging.basicConfig(level=logging.WARNING)

    config = IotuxConfig.from_env()
    result: dict[str, Any] = {
        "timestamp": datetime.now(UTC).isoformat(),
        "base_url": config.base_url,
        "devices": [],
    }
    out: list[str] = [_section("pyiotux dump_all"), f"  time      : {result['timestamp']}"]

    async with IotuxClient(config) as client:
        online = await client.check_connection()
        out.append(f"  online    : {online}")
        if not await client.is_authenticated():
            user = await client.login()
        else:
            user = await client.current_user()
        if user is not None:
            out.append(f"  user_id   : {user.user_id}")
            result["user_id"] = user.user_id

        queued = client.queue.snapshot()
        out.append(f"  queued    : {len(queued)} command(s)")
        for command in queued:
            out.append(
                f"    {command.id} {command.command} -> {command.device_id} "
                f"status={command.status} attempts={command.retry_count}"
            )
        result["queue"] = [c.model_dump(mode="json", by_alias=True) for c in queued]

        devices = await client.get_devices()
        out.append(_section("DEVICES"))
        for device in devices:
            info = _print_model(f"Device id={device.id}", device, out)
            _print_raw(f"device {device.id}", device.raw, out)
            result["devices"].append({"info": info, "raw": device.raw})
        if not args.json_mode:
            print("\n".join(out))

        target_ids = [args.device] if args.device else [d.id for d in devices]
        for device_id in target_ids:
            data = await dump_device(client, device_id, skip_alerts=args.skip_alerts)
            text = data.pop("_text")
            if not args.json_mode:
                print("\n".join(text))
            for entry in result["devices"]:
                if entry["info"].get("id") == device_id:
                    entry["data"] = data
                    break

        if args.watch:
            for device_id in target_ids:
                client.watch_device(
                    device_id,
                    lambda status: print(
                        f"[{datetime.now(UTC).isoformat()}] {status.device_id}: online={status.online} "
                        f"armed={status.armed_state} lat={status.lat} lon={status.lon}"
                    ),
                    interval=args.watch,
                )
            print(f"\nWatching {len(target_ids)} device(s), Ctrl-C to stop", file=sys.stderr)
            await asyncio.Event().wait()

    if args.json_mode or args.output:
        payload = json.dumps(result, indent=2, default=str, ensure_ascii=False)
        if args.output:
            Path(args.output).write_text(payload, encoding="utf-8")
            print(f"JSON written to {args.output}", file=sys.stderr)
        else:
            print(payload)


if __name__ == "__main__":
    asyncio.run(main())
