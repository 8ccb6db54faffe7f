"""Print level changes of a few GPIO lines.

Connects to pigpiod, watches the given pins and prints every change
until interrupted.

    python examples/watch_gpio.py --host raspberrypi.local --pins 4,17,27
"""

import argparse
import asyncio
import signal

from pigpio_client import pigpio


async def main(host: str, port: int, pins: list[int]):
    stop = asyncio.Event()
    loop = asyncio.get_running_loop()
    for sig in (signal.SIGINT, signal.SIGTERM):
        loop.add_signal_handler(sig, stop.set)

    async with pigpio(host, port, timeout=1) as pi:
        info = pi.get_info()
        print(f"Connected to pigpio {info.pigpio_version}, hardware 0x{info.hw_version:x}")

        for pin in pins:
            gpio = pi.gpio(pin)
            await gpio.mode_set("input")
            await gpio.notify(lambda level, tick, pin=pin: print(f"GPIO{pin} -> {level} @ {tick}"))

        print(f"Watching {pins}... (Ctrl+C to stop)\n")
        await stop.wait()


if __name__ == "__main__":
    parser = argparse.ArgumentParser(description="Watch GPIO level changes")
    parser.add_argument("--host", default="localhost")
    parser.add_argument("--port", type=int, default=8888)
    parser.add_argument("--pins", default="4", help="Comma-separated GPIO numbers (default: 4)")
    args = parser.parse_args()

    pins = [int(p.strip()) for p in args.pins.split(",")]
    asyncio.run(main(args.host, args.port, pins))
