"""Seed the camera registry from devices.yml."""

from __future__ import annotations

from dotenv import load_dotenv

from camsync.db.session import create_engine_from_env
from camsync.ingest import load_devices, seed_devices


def main() -> None:
    load_dotenv()
    engine = create_engine_from_env()
    devices = load_devices()
    created = seed_devices(engine, devices)
    print(f"Seed complete: {len(devices)} devices, {created} new deployments")


if __name__ == "__main__":
    main()
