#!/usr/bin/env python3
"""Scan rate check.

Connects to the scanner, brings it into ranging mode, then retrieves scans
back to back for a fixed duration and reports how many arrived.

Connection settings come from the LIDAR_* environment variables (see
LidarConfig.from_env); command line flags override them.

Expected: a non-zero scan count; exit code 0 on success, 1 on failure.
"""

import argparse
import logging
import os
import sys
import time
from typing import List, Optional

from cola_lidar_lib import LidarConfig, LidarError, LidarSession

try:
    from fakes.fake_lidar import FakeLidar
except ImportError:
    FakeLidar = None

LOG_LEVEL = os.getenv("LOG_LEVEL", "INFO")

logger = logging.getLogger("run_scan_rate")


def parse_args(argv: Optional[List[str]] = None) -> argparse.Namespace:
    parser = argparse.ArgumentParser(description="Measure scan retrieval rate")
    parser.add_argument("--host", help="Device host (default: LIDAR_HOST or 192.168.0.1)")
    parser.add_argument("--port", type=int, help="Device port (default: LIDAR_PORT or 2112)")
    parser.add_argument("--duration", type=float, default=1.0,
                        help="Seconds to poll scans (default: 1.0)")
    parser.add_argument("--read-timeout", type=float,
                        help="Per-read timeout in seconds (default: LIDAR_READ_TIMEOUT or 10.0)")
    parser.add_argument("--fake", action="store_true", help="Use the simulated scanner")
    args = parser.parse_args(argv)

    if args.duration <= 0:
        parser.error(f"--duration must be > 0, got {args.duration}")

    return args


def build_config(args: argparse.Namespace) -> LidarConfig:
    """Environment config with command line overrides applied."""
    overrides = {}
    if args.host is not None:
        overrides["host"] = args.host
    if args.port is not None:
        overrides["port"] = args.port
    if args.read_timeout is not None:
        overrides["read_timeout_s"] = args.read_timeout
    if args.fake:
        overrides["ready_poll_interval_s"] = 0.0
    return LidarConfig.from_env(**overrides)


def main(argv: Optional[List[str]] = None) -> int:
    args = parse_args(argv)

    logging.basicConfig(
        level=getattr(logging, LOG_LEVEL.upper(), logging.INFO),
        format="%(asctime)s - %(name)s - %(levelname)s - %(message)s",
    )

    try:
        config = build_config(args)
    except ValueError as e:
        print(f"✗ FAIL: invalid configuration: {e}")
        return 1

    print("=" * 60)
    print("Scan rate check")
    print(f"Device: {'FakeLidar' if args.fake else f'{config.host}:{config.port}'}")
    print(f"Duration: {args.duration}s")
    print("=" * 60)

    if args.fake and FakeLidar is None:
        print("✗ FAIL: FakeLidar not available")
        return 1

    session = None
    try:
        if args.fake:
            logger.info("Using FakeLidar")
            session = LidarSession.connect(config=config, sock=FakeLidar())
        else:
            session = LidarSession.connect(config=config)

        scans = 0
        samples = 0
        begin = time.monotonic()
        while time.monotonic() - begin < args.duration:
            samples += len(session.poll_data())
            scans += 1
        elapsed = time.monotonic() - begin

    except LidarError as e:
        logger.error(f"Scan rate check failed: {e}", exc_info=True)
        print(f"✗ FAIL: {e}")
        return 1

    finally:
        if session is not None:
            session.close()

    rate = scans / elapsed if elapsed > 0 else 0.0
    print(f"Scans: {scans} in {elapsed:.2f}s ({rate:.1f} Hz)")
    print(f"Samples per scan: {samples // scans if scans else 0}")

    if scans == 0:
        print("✗ FAIL: no scans received")
        return 1

    print("✓ PASS")
    return 0


if __name__ == "__main__":
    sys.exit(main())
