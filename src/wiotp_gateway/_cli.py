"""
wiotp_gateway._cli — CLI entry point for the wiotp_gateway package.

Publishes events and listens for commands as a gateway. Options are layered:
``WIOTP_*`` environment variables, then ``--config FILE``, then explicit flags.
"""

from __future__ import annotations

import argparse
import asyncio
import contextlib
import json
import logging
import sys
from typing import TYPE_CHECKING, Any

from wiotp_gateway.exceptions import GatewayError
from wiotp_gateway.gateway import GatewayClient
from wiotp_gateway.options import GatewayOptions

if TYPE_CHECKING:
    from collections.abc import AsyncIterator

    from wiotp_gateway.models import Command

_CLI_EPILOG = """
Commands
────────
  info       Print the resolved gateway identity, client id and broker host.
  publish    Publish one event: --event NAME [--data JSON] [--qos N]
             [--device-type T --device-id I] (default: the gateway itself).
  listen     Print commands as JSON lines (Ctrl+C to stop):
             [--device TYPE:ID ...] [--count N].

Connection (omit to use WIOTP_* environment variables)
  --config FILE       Properties file (Organization-ID, Device-Type, ...).
  --org ORG           Organization id.
  --type TYPE         Gateway device type.
  --id ID             Gateway device id.
  --auth-method M     Authentication method (token).
  --auth-token TOKEN  Authentication token.
  --auth-key KEY      API key (org id is derived from it when --org is absent).

Examples
  wiotp-gateway --config gateway.properties info
  wiotp-gateway --config gateway.properties publish --event status --data '{"up": true}'
  wiotp-gateway --config gateway.properties listen --device sensor:s-7
"""

#: Key substrings that indicate a field may contain credentials; values are redacted.
_SENSITIVE_KEYS: frozenset[str] = frozenset(
    {
        "password",
        "secret",
        "token",
        "api_key",
        "auth_key",
        "credential",
    }
)


def _is_sensitive_key(k: str) -> bool:
    """Return True if the key name suggests it contains credentials."""
    k_lower = k.lower()
    return any(s in k_lower for s in _SENSITIVE_KEYS)


def _add_connection_args(parser: argparse.ArgumentParser) -> None:
    parser.add_argument("--config", type=str, default=None, metavar="FILE",
                        help="Gateway properties file.")
    parser.add_argument("--org", type=str, default=None, dest="org_id", help="Organization id.")
    parser.add_argument("--type", type=str, default=None, dest="device_type",
                        help="Gateway device type.")
    parser.add_argument("--id", type=str, default=None, dest="device_id",
                        help="Gateway device id.")
    parser.add_argument("--auth-method", type=str, default=None, dest="auth_method",
                        help="Authentication method (token).")
    parser.add_argument("--auth-token", type=str, default=None, dest="auth_token",
                        help="Authentication token.")
    parser.add_argument("--auth-key", type=str, default=None, dest="auth_key",
                        help="API key; the org id is derived from it when --org is absent.")
    parser.add_argument("--domain", type=str, default=None, help="Platform domain.")
    parser.add_argument("--port", type=int, default=None, help="Broker port (default: 8883).")
    parser.add_argument("--debug", action="store_true", help="Enable DEBUG logging.")


def _load_options(args: argparse.Namespace) -> GatewayOptions:
    """Layer environment, config file and explicit flags (later wins)."""
    options = GatewayOptions.from_env()
    if getattr(args, "config", None):
        defaults = vars(GatewayOptions())
        file_options = GatewayOptions.from_file(args.config)
        # only values the file actually set override the environment
        options = options.merged(
            **{k: v for k, v in vars(file_options).items() if v != defaults[k]}
        )
    return options.merged(
        org_id=getattr(args, "org_id", None),
        device_type=getattr(args, "device_type", None),
        device_id=getattr(args, "device_id", None),
        auth_method=getattr(args, "auth_method", None),
        auth_token=getattr(args, "auth_token", None),
        auth_key=getattr(args, "auth_key", None),
        domain=getattr(args, "domain", None),
        port=getattr(args, "port", None),
    )


def _parse_device(value: str) -> tuple[str, str]:
    """Parse ``TYPE:ID`` into a ``(type, id)`` tuple."""
    device_type, sep, device_id = value.partition(":")
    if not sep or not device_type or not device_id:
        raise argparse.ArgumentTypeError(f"expected TYPE:ID, got {value!r}")
    return device_type, device_id


async def _with_gateway(args: argparse.Namespace) -> AsyncIterator[GatewayClient]:
    """Yield a connected gateway client. Disconnects on exit."""
    try:
        client = GatewayClient(_load_options(args))
    except GatewayError as exc:
        raise SystemExit(f"Invalid gateway configuration: {exc}") from exc
    try:
        await client.connect()
    except GatewayError as exc:
        raise SystemExit(f"Cannot connect: {exc}") from exc
    try:
        yield client
    finally:
        with contextlib.suppress(GatewayError):
            await client.disconnect()


def _main() -> None:
    parser = argparse.ArgumentParser(
        prog="wiotp-gateway",
        description="Watson IoT Platform gateway client (MQTT).",
        epilog=_CLI_EPILOG,
        formatter_class=argparse.RawDescriptionHelpFormatter,
    )
    subparsers = parser.add_subparsers(dest="command", title="commands")

    info_parser = subparsers.add_parser("info", help="Print the resolved gateway identity.")
    _add_connection_args(info_parser)

    publish_parser = subparsers.add_parser("publish", help="Publish one event.")
    _add_connection_args(publish_parser)
    publish_parser.add_argument("--event", type=str, required=True, help="Event name.")
    publish_parser.add_argument("--data", type=str, default="null", help="Event data (JSON).")
    publish_parser.add_argument("--qos", type=int, default=0, choices=(0, 1, 2),
                                help="Quality of Service (default: 0).")
    publish_parser.add_argument("--device-type", type=str, default=None, dest="target_type",
                                help="Publish for this device type (default: the gateway).")
    publish_parser.add_argument("--device-id", type=str, default=None, dest="target_id",
                                help="Publish for this device id (default: the gateway).")

    listen_parser = subparsers.add_parser("listen", help="Print received commands.")
    _add_connection_args(listen_parser)
    listen_parser.add_argument("--device", type=_parse_device, action="append", default=[],
                               metavar="TYPE:ID",
                               help="Also subscribe to commands for this device (repeatable).")
    listen_parser.add_argument("--count", type=int, default=0,
                               help="Exit after N commands (default: run until Ctrl+C).")

    args = parser.parse_args()

    if not args.command:
        parser.print_help()
        sys.exit(0)

    logging.basicConfig(
        level=logging.DEBUG if args.debug else logging.WARNING,
        format="%(asctime)s %(levelname)s %(name)s  %(message)s",
    )

    handlers = {
        "info": _run_info,
        "publish": _run_publish,
        "listen": _run_listen,
    }
    handler = handlers.get(args.command)
    if handler:
        with contextlib.suppress(KeyboardInterrupt):
            asyncio.run(handler(args))
    else:
        parser.print_help()
        sys.exit(1)


async def _run_info(args: argparse.Namespace) -> None:
    options = _load_options(args)
    try:
        client = GatewayClient(options)
    except GatewayError as exc:
        raise SystemExit(f"Invalid gateway configuration: {exc}") from exc
    print(f"  {'ClientId':<14}: {client.client_id}")
    print(f"  {'BrokerHost':<14}: {options.broker_host(client.identity.org_id)}")
    print(f"  {'Port':<14}: {options.effective_port}")
    print(f"  {'ApiBaseUrl':<14}: {client.api.base_url}")
    for key, value in sorted(vars(options).items()):
        shown = "***REDACTED***" if value and _is_sensitive_key(key) else value
        print(f"  {key:<14}: {'' if shown is None else shown}")


async def _run_publish(args: argparse.Namespace) -> None:
    try:
        data: Any = json.loads(args.data)
    except json.JSONDecodeError as exc:
        raise SystemExit(f"--data is not valid JSON: {exc}") from exc
    async for client in _with_gateway(args):
        if args.target_type and args.target_id:
            ok = await client.publish_device_event(
                args.target_type, args.target_id, args.event, data, qos=args.qos
            )
        else:
            ok = await client.publish_gateway_event(args.event, data, qos=args.qos)
        if not ok:
            print("Publish failed.")
            sys.exit(1)
        print("Published.")
        break


async def _run_listen(args: argparse.Namespace) -> None:
    queue: asyncio.Queue[Command] = asyncio.Queue()
    async for client in _with_gateway(args):
        client.set_command_callback(queue.put_nowait)
        for device_type, device_id in args.device:
            client.subscribe_to_device_commands(device_type, device_id)
        print("Listening for commands (Ctrl+C to stop)...")
        received = 0
        while not args.count or received < args.count:
            command = await queue.get()
            print(json.dumps(command.to_dict()))
            received += 1
        break


def main() -> None:
    _main()
