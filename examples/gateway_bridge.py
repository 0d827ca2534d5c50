#!/usr/bin/env python3
"""
gateway_bridge.py — Publish readings for a device behind the gateway and print its commands.

Usage:
    python examples/gateway_bridge.py --config gateway.properties --device sensor:s-7
    python examples/gateway_bridge.py --config gateway.properties --device sensor:s-7 --count 10
"""

from __future__ import annotations

import argparse
import asyncio
import logging
import random

from wiotp_gateway import Command, GatewayClient, GatewayOptions

logging.basicConfig(level=logging.WARNING)


def on_command(cmd: Command) -> None:
    print(f"  ⬅ {cmd.device_type}/{cmd.device_id} {cmd.command}: {cmd.data}")


async def main(config: str, device: str, count: int) -> None:
    device_type, _, device_id = device.partition(":")
    options = GatewayOptions.from_file(config)

    async with GatewayClient(options) as gw:
        print(f"\n📡 Connected as {gw.client_id}")
        gw.set_command_callback(on_command)
        gw.subscribe_to_device_commands(device_type, device_id)

        for n in range(1, count + 1):
            reading = {"temp": round(random.uniform(18.0, 24.0), 1)}
            ok = await gw.publish_device_event(device_type, device_id, "reading", reading, qos=1)
            print(f"{n:>4}  {reading['temp']:>6}°C  {'sent' if ok else 'FAILED'}")
            await asyncio.sleep(5)

    print(f"\n✅ Published {gw.message_count} events.")


if __name__ == "__main__":
    ap = argparse.ArgumentParser(description="Bridge one device through a gateway")
    ap.add_argument("--config", required=True, help="Gateway properties file")
    ap.add_argument("--device", default="sensor:s-7", help="Device as TYPE:ID")
    ap.add_argument("--count", type=int, default=20, help="Number of readings to publish")
    args = ap.parse_args()

    try:
        asyncio.run(main(config=args.config, device=args.device, count=args.count))
    except KeyboardInterrupt:
        print("\nStopped.")
