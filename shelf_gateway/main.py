import argparse
import logging

import paho.mqtt.client as mqtt

from shelf_gateway.emulator import ShelfEmulator
from vending_backend.settings import load_settings
from vending_backend.transport.topics import ShelfTopics

logging.basicConfig(level=logging.INFO, format='[SHELF] %(asctime)s | %(message)s', datefmt='%H:%M:%S')


def main():
    parser = argparse.ArgumentParser(description="Vending Shelf Controller Emulator")
    parser.add_argument("--settings", default=None, help="Path to settings.json (broker and topics)")
    parser.add_argument("--shelves", type=int, nargs="+", default=None,
                        help="Shelf ids to emulate (default: every configured shelf)")
    parser.add_argument("--fail-rate", type=float, default=0.0, help="Probability a command fails")
    parser.add_argument("--delay", type=float, default=1.0, help="Seconds before answering a command")
    parser.add_argument("--interval", type=float, default=5.0, help="Heartbeat period in seconds")
    parser.add_argument("--seed", type=int, default=None)
    args = parser.parse_args()

    settings = load_settings(args.settings)
    shelves = args.shelves or [r.shelf_id for r in settings.shelves]

    print(f">>> Initializing Shelf Emulator for shelves {shelves}...")
    client = mqtt.Client(mqtt.CallbackAPIVersion.VERSION2)
    emulator = ShelfEmulator(
        client,
        shelves,
        topics=ShelfTopics.from_settings(settings.mqtt),
        fail_rate=args.fail_rate,
        response_delay=args.delay,
        seed=args.seed,
    )

    try:
        client.connect(settings.mqtt.host, settings.mqtt.port, settings.mqtt.keepalive)
        client.loop_start()
        emulator.run(interval=args.interval)
    except Exception as e:
        print(f"[FATAL] Shelf Emulator Error: {e}")
    finally:
        client.loop_stop()
        client.disconnect()


if __name__ == "__main__":
    main()
