"""
Pytest configuration and fixtures for scx_stats tests.
"""
import shutil
import tempfile
from pathlib import Path

import pytest

from scx_stats import StatsServer


@pytest.fixture
def sock_dir():
    """Short scratch directory; AF_UNIX paths are limited to ~108 bytes."""
    path = Path(tempfile.mkdtemp(prefix="scx-", dir="/tmp"))
    yield path
    shutil.rmtree(path, ignore_errors=True)


@pytest.fixture
def running(sock_dir):
    """Launch a configured StatsServer under ``sock_dir`` and close it afterwards."""
    servers = []

    def _run(server: StatsServer) -> StatsServer:
        if server.config.path is None:
            server.set_path(sock_dir / "stats")
        servers.append(server.launch())
        return server

    yield _run
    for server in servers:
        server.close()
