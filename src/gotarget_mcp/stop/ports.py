"""Port files and forced shutdown of whatever listens on a port.

A port file holds one TCP port per line. Killing a port terminates every
process with a listening socket bound to it.
"""

from __future__ import annotations

import asyncio
import logging
import os

logger = logging.getLogger(__name__)

MAX_PORT = 65535


def parse_ports(text: str, source: str = "port file") -> list[int]:
    """Ports listed one per line; other lines are logged and skipped."""
    ports: list[int] = []
    for number, raw in enumerate(text.splitlines(), start=1):
        line = raw.strip()
        if not line:
            continue
        try:
            port = int(line)
        except ValueError:
            logger.warning(f"{source}:{number}: not a port number: {line!r}")
            continue
        if not 0 < port <= MAX_PORT:
            logger.warning(f"{source}:{number}: port out of range: {port}")
            continue
        ports.append(port)
    return ports


def read_port_file(path: str) -> list[int]:
    """Read a port file.

    Raises:
        OSError: If the file cannot be read
    """
    with open(path, encoding="utf-8", errors="replace") as f:
        return parse_ports(f.read(), source=path)


async def kill_port(port: int, timeout: float = 5.0) -> int:
    """Forcibly terminate processes listening on a TCP port.

    Args:
        port: TCP port number
        timeout: Timeout for process enumeration

    Returns:
        Number of processes killed
    """
    if os.name != "nt":
        return await _kill_port_unix(port, timeout)
    return await _kill_port_windows(port, timeout)


def _parse_netstat_pids(output: str, port: int) -> set[int]:
    """PIDs listening on a port from ``netstat -ano`` output."""
    pids: set[int] = set()
    suffix = f":{port}"
    for line in output.splitlines():
        parts = line.split()
        # Proto, Local Address, Foreign Address, State, PID
        if len(parts) < 5 or parts[0].upper() != "TCP":
            continue
        if not parts[1].endswith(suffix) or parts[3].upper() != "LISTENING":
            continue
        if parts[4].isdigit() and parts[4] != "0":
            pids.add(int(parts[4]))
    return pids


async def _kill_port_windows(port: int, timeout: float) -> int:
    """Kill listeners on Windows using netstat and taskkill."""
    killed = 0

    try:
        proc = await asyncio.create_subprocess_exec(
            "netstat",
            "-ano",
            "-p",
            "TCP",
            stdout=asyncio.subprocess.PIPE,
            stderr=asyncio.subprocess.DEVNULL,
        )
        stdout, _ = await asyncio.wait_for(proc.communicate(), timeout=timeout)

        for pid in _parse_netstat_pids(stdout.decode("utf-8", errors="replace"), port):
            try:
                killer = await asyncio.create_subprocess_exec(
                    "taskkill",
                    "/F",
                    "/PID",
                    str(pid),
                    stdout=asyncio.subprocess.DEVNULL,
                    stderr=asyncio.subprocess.DEVNULL,
                )
                if await asyncio.wait_for(killer.wait(), timeout=2.0) == 0:
                    logger.info(f"Killed process PID {pid} on port {port}")
                    killed += 1
                else:
                    logger.warning(f"taskkill failed for PID {pid} on port {port}")
            except (OSError, asyncio.TimeoutError) as e:
                logger.warning(f"Failed to kill PID {pid}: {e}")

    except asyncio.TimeoutError:
        logger.warning(f"Listener lookup for port {port} timed out")
    except OSError as e:
        logger.warning(f"Port cleanup failed for {port}: {e}")

    return killed


async def _kill_port_unix(port: int, timeout: float) -> int:
    """Kill listeners on Unix using lsof."""
    killed = 0

    try:
        proc = await asyncio.create_subprocess_exec(
            "lsof",
            "-t",  # Output only PIDs
            f"-iTCP:{port}",
            "-sTCP:LISTEN",
            stdout=asyncio.subprocess.PIPE,
            stderr=asyncio.subprocess.DEVNULL,
        )
        stdout, _ = await asyncio.wait_for(proc.communicate(), timeout=timeout)

        pids = set()
        for line in stdout.decode().splitlines():
            if line.strip().isdigit():
                pids.add(int(line.strip()))

        for pid in pids:
            try:
                os.kill(pid, 9)  # SIGKILL
                logger.info(f"Killed process PID {pid} on port {port}")
                killed += 1
            except (ProcessLookupError, PermissionError) as e:
                logger.warning(f"Failed to kill PID {pid}: {e}")

    except FileNotFoundError:
        logger.warning(f"lsof not available, cannot free port {port}")
    except asyncio.TimeoutError:
        logger.warning(f"Listener lookup for port {port} timed out")
    except OSError as e:
        logger.warning(f"Port cleanup failed for {port}: {e}")

    if not killed:
        logger.info(f"No listener found on port {port}")
    return killed
