"""Blink an LED with the blocking client.

    python examples/blink_sync.py --host raspberrypi.local --pin 17
"""

import argparse
import time

from pigpio_client import Command, SyncPigpioClient


def main(host: str, port: int, pin: int, count: int):
    pi = SyncPigpioClient(host, port)
    pi.connect()
    try:
        pi.request(Command.MODES, pin, 1)
        for _ in range(count):
            pi.request(Command.WRITE, pin, 1)
            time.sleep(0.5)
            pi.request(Command.WRITE, pin, 0)
            time.sleep(0.5)
    finally:
        pi.end()


if __name__ == "__main__":
    parser = argparse.ArgumentParser(description="Blink a GPIO")
    parser.add_argument("--host", default="localhost")
    parser.add_argument("--port", type=int, default=8888)
    parser.add_argument("--pin", type=int, default=17)
    parser.add_argument("--count", type=int, default=10)
    args = parser.parse_args()

    main(args.host, args.port, args.pin, args.count)
