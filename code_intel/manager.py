#!/usr/bin/env python3
"""
Code Intel Daemon Manager

Ensures a single instance of the Code Intel daemon is running system-wide.
Uses a PID file to track the daemon process.

Usage:
    code-intel-manager start    # Start daemon if not running
    code-intel-manager stop     # Stop the daemon
    code-intel-manager status   # Check if daemon is running
    code-intel-manager restart  # Restart the daemon
    code-intel-manager ensure   # Ensure running (for MCP startup)
"""

import argparse
import json
import logging
import os
import signal
import subprocess
import sys
import tempfile
import time
from pathlib import Path

import requests

from .daemon import DEFAULT_PORT

logger = logging.getLogger(__name__)

RUN_DIR = Path(os.environ.get("CODE_INTEL_RUN_DIR", Path(tempfile.gettempdir()) / "code_intel"))
PID_FILE = RUN_DIR / "daemon.pid"
LOG_FILE = RUN_DIR / "daemon.log"
STARTUP_TIMEOUT = 15  # seconds


def health_url(port: int = DEFAULT_PORT) -> str:
    return f"http://localhost:{port}/health"


def get_pid() -> int | None:
    """Get PID from PID file if it exists and process is running."""
    if not PID_FILE.exists():
        return None

    try:
        pid = int(PID_FILE.read_text().strip())
        os.kill(pid, 0)
        return pid
    except (ValueError, ProcessLookupError, PermissionError):
        # Stale PID file
        PID_FILE.unlink(missing_ok=True)
        return None


def is_healthy(port: int = DEFAULT_PORT) -> bool:
    """Check if daemon is responding to health checks."""
    try:
        resp = requests.get(health_url(port), timeout=2)
        return resp.status_code == 200
    except requests.RequestException:
        return False


def start_daemon(port: int = DEFAULT_PORT, workspace: str | None = None) -> bool:
    """Start the daemon if not already running."""
    pid = get_pid()
    if pid and is_healthy(port):
        logger.info("Daemon already running (PID %d)", pid)
        return True

    if pid:
        logger.warning("Stale PID %d, cleaning up...", pid)
        try:
            os.kill(pid, signal.SIGKILL)
            time.sleep(0.5)
        except ProcessLookupError:
            pass
        PID_FILE.unlink(missing_ok=True)

    if is_healthy(port):
        logger.info("Port %d already has a healthy daemon (external)", port)
        return True

    logger.info("Starting Code Intel daemon on port %d...", port)
    RUN_DIR.mkdir(parents=True, exist_ok=True)

    with open(LOG_FILE, "a") as log:
        process = subprocess.Popen(
            [sys.executable, "-m", "code_intel.daemon", "--port", str(port),
             "--workspace", workspace or os.getcwd()],
            stdout=log,
            stderr=log,
            start_new_session=True,  # Detach from parent
        )

    PID_FILE.write_text(str(process.pid))

    logger.info("Waiting for daemon to initialize (PID %d)...", process.pid)
    for _ in range(STARTUP_TIMEOUT * 2):
        if is_healthy(port):
            logger.info("Daemon started successfully (PID %d)", process.pid)
            return True
        time.sleep(0.5)

    logger.error("Daemon failed to start within timeout; check logs at %s", LOG_FILE)
    return False


def stop_daemon() -> bool:
    """Stop the daemon."""
    pid = get_pid()
    if not pid:
        logger.info("Daemon not running")
        return True

    logger.info("Stopping daemon (PID %d)...", pid)
    try:
        os.kill(pid, signal.SIGTERM)

        for _ in range(10):
            try:
                os.kill(pid, 0)
                time.sleep(0.5)
            except ProcessLookupError:
                break
        else:
            logger.warning("Force killing...")
            os.kill(pid, signal.SIGKILL)
    except ProcessLookupError:
        logger.info("Daemon was not running")
    except PermissionError:
        logger.error("Permission denied to stop PID %d", pid)
        return False

    PID_FILE.unlink(missing_ok=True)
    return True


def status(port: int = DEFAULT_PORT) -> dict:
    """Get daemon status."""
    pid = get_pid()
    healthy = is_healthy(port)

    result = {
        "running": pid is not None,
        "healthy": healthy,
        "pid": pid,
        "port": port,
        "pid_file": str(PID_FILE),
        "log_file": str(LOG_FILE),
    }

    if healthy:
        try:
            resp = requests.get(f"http://localhost:{port}/stats", timeout=2)
            if resp.status_code == 200:
                result["stats"] = resp.json()
        except requests.RequestException:
            pass

    return result


def print_status(port: int = DEFAULT_PORT):
    """Print human-readable status."""
    s = status(port)

    if s["healthy"]:
        print("✓ Daemon is running and healthy")
        print(f"  PID: {s['pid']}")
        print(f"  Port: {s['port']}")
        if "stats" in s:
            stats = s["stats"]
            print(f"  Language servers: {', '.join(stats.get('language_servers', [])) or 'none'}")
            print(f"  Requests: {stats.get('request_count', 0)}")
    elif s["running"]:
        print("⚠ Daemon process exists but not responding")
        print(f"  PID: {s['pid']}")
        print(f"  Check logs: {s['log_file']}")
    else:
        print("✗ Daemon is not running")

    print(f"\nPID file: {s['pid_file']}")
    print(f"Log file: {s['log_file']}")


def ensure_running(port: int = DEFAULT_PORT, workspace: str | None = None) -> bool:
    """Ensure daemon is running (idempotent - safe to call multiple times)."""
    if is_healthy(port):
        return True
    return start_daemon(port, workspace)


def main():
    parser = argparse.ArgumentParser(description="Code Intel daemon manager")
    parser.add_argument(
        "command",
        choices=["start", "stop", "restart", "status", "ensure"],
        help="Command to execute"
    )
    parser.add_argument("--port", "-p", type=int, default=DEFAULT_PORT,
                        help=f"Port for daemon (default: {DEFAULT_PORT})")
    parser.add_argument("--workspace", default=None, help="Workspace root for a new daemon (default: cwd)")
    parser.add_argument("--json", action="store_true", help="Output status as JSON")

    args = parser.parse_args()
    logging.basicConfig(level=logging.INFO, format="%(message)s", stream=sys.stderr)

    if args.command == "start":
        success = start_daemon(args.port, args.workspace)
    elif args.command == "stop":
        success = stop_daemon()
    elif args.command == "restart":
        stop_daemon()
        time.sleep(1)
        success = start_daemon(args.port, args.workspace)
    elif args.command == "status":
        if args.json:
            print(json.dumps(status(args.port), indent=2))
        else:
            print_status(args.port)
        success = is_healthy(args.port)
    else:
        success = ensure_running(args.port, args.workspace)

    sys.exit(0 if success else 1)


if __name__ == "__main__":
    main()
