"""Shared pytest fixtures for integration and unit tests."""

from __future__ import annotations

import os
import subprocess
import sys
import threading
from pathlib import Path
from typing import TYPE_CHECKING, Generator, TypedDict

import pytest

from main import build_handler
from staticsite.bootstrap.config import ServerConfig
from staticsite.tls.certificates import self_signed_tls_config
from staticsite.transport.listener import Listener
from tests.utils.http import reserve_port, wait_for_port
from tests.utils.site import PROJECT_ROOT, SERVER_ENTRYPOINT, populate_static_root

if TYPE_CHECKING:
    from _pytest.tmpdir import TempPathFactory


class ServerInfo(TypedDict):
    """Metadata describing a running server fixture instance."""

    base_url: str
    host: str
    port: int
    directory: Path


class ServerProcessInfo(ServerInfo):
    """Server fixture running as a separate process."""

    process: subprocess.Popen[str]
    log_file: Path


@pytest.fixture()
def static_root(tmp_path: Path) -> Path:
    """Provide a populated static file tree."""

    return populate_static_root(tmp_path / "site")


@pytest.fixture()
def server_config(static_root: Path, tmp_path: Path) -> ServerConfig:
    """Self-signed configuration listening on an ephemeral loopback port."""

    return ServerConfig(
        addr="127.0.0.1:0",
        self_sign=True,
        cert_cache=str(tmp_path / "cache"),
        fsdir=str(static_root),
        allowed_hosts=("localhost",),
        read_timeout=2.0,
        write_timeout=2.0,
        idle_timeout=2.0,
    )


@pytest.fixture(name="tls_server")
def _tls_server(server_config: ServerConfig) -> Generator[ServerInfo, None, None]:
    """Run the full request chain behind an in-process TLS listener."""

    tls_config = self_signed_tls_config()
    listener = Listener(
        "https",
        server_config.addr,
        build_handler(server_config.fsdir, server_config.allowed_hosts),
        server_config,
        tls_context=tls_config.context,
    )
    listener.bind()
    host, port = listener.address
    thread = threading.Thread(target=listener.serve_forever, daemon=True)
    thread.start()
    yield {
        "base_url": f"https://{host}:{port}",
        "host": host,
        "port": port,
        "directory": Path(server_config.fsdir),
    }
    listener.close()
    thread.join(timeout=2.0)


@pytest.fixture(name="server_process")
def _server_process(
    tmp_path_factory: "TempPathFactory",
) -> Generator[ServerProcessInfo, None, None]:
    """Launch main.py with a self-signed certificate in a background process."""

    host = "127.0.0.1"
    port = reserve_port(host)
    directory = populate_static_root(tmp_path_factory.mktemp("server-files"))
    log_file = tmp_path_factory.mktemp("server-log") / "server.log"
    env = {key: value for key, value in os.environ.items() if key != "PORT"}
    args = [
        sys.executable,
        str(SERVER_ENTRYPOINT),
        "--addr",
        f"{host}:{port}",
        "--self-sign",
        "--fsdir",
        str(directory),
        "--log-destination",
        str(log_file),
    ]
    with subprocess.Popen(
        args,
        cwd=PROJECT_ROOT,
        env=env,
        stdout=subprocess.PIPE,
        stderr=subprocess.PIPE,
        text=True,
    ) as process:
        try:
            wait_for_port(host, port)
        except Exception:
            process.terminate()
            stdout, stderr = process.communicate(timeout=5)
            print(f"\nServer stdout:\n{stdout}")
            print(f"\nServer stderr:\n{stderr}")
            raise

        yield {
            "base_url": f"https://{host}:{port}",
            "host": host,
            "port": port,
            "directory": directory,
            "process": process,
            "log_file": log_file,
        }

        if process.poll() is None:
            process.terminate()
            try:
                process.wait(timeout=5)
            except subprocess.TimeoutExpired:
                process.kill()
