"""Tests for the listener: real loopback connections, one thread each."""

import logging
import socket
import threading
import time

import pytest

import server as server_module
from config import ServerConfig
from server import HTTPServer, main, setup_logging
from tests.helpers import recv_all, split_response


@pytest.fixture
def running_server(docroot):
    server = HTTPServer(ServerConfig(host="127.0.0.1", port=0, document_root=str(docroot)))
    thread = threading.Thread(target=server.start, daemon=True)
    thread.start()
    assert server.ready.wait(2.0)

    yield server

    server.stop()
    thread.join(timeout=2.0)
    assert not thread.is_alive()


def fetch(server: HTTPServer, request: bytes) -> bytes:
    with socket.create_connection((server.host, server.port), timeout=2.0) as client:
        client.sendall(request)
        return recv_all(client)


def test_server_binds_free_port_and_replies(docroot, running_server) -> None:
    (docroot / "index.html").write_text("Hello <cs371server>", encoding="utf-8")

    lines, body = split_response(fetch(running_server, b"GET /index HTTP/1.1\r\nHost: localhost\r\n\r\n"))

    assert running_server.port != 0
    assert lines[0] == "HTTP/1.1 200 OK"
    assert body == b"Hello Joshua R. Alexander's Server"


def test_server_reports_missing_page(running_server) -> None:
    lines, body = split_response(fetch(running_server, b"GET /nowhere HTTP/1.1\r\n\r\n"))

    assert lines[0] == "HTTP/1.1 404 OK"
    assert body.startswith(b"Not here: Joshua R. Alexander's Server on ")


def test_concurrent_clients_get_their_own_pages(docroot, running_server) -> None:
    for i in range(8):
        (docroot / f"page{i}.html").write_text(f"page {i}", encoding="utf-8")

    results = {}
    errors = []

    def client(i):
        try:
            results[i] = fetch(running_server, f"GET /page{i} HTTP/1.1\r\n\r\n".encode())
        except OSError as e:
            errors.append((i, e))

    threads = [threading.Thread(target=client, args=(i,)) for i in range(8)]
    for t in threads:
        t.start()
    for t in threads:
        t.join(timeout=5.0)

    assert not errors
    for i in range(8):
        lines, body = split_response(results[i])
        assert lines[0] == "HTTP/1.1 200 OK"
        assert body == f"page {i}".encode()
    assert running_server.total_connections == 8


def test_stop_is_idempotent(running_server) -> None:
    running_server.stop()
    running_server.stop()

    assert not running_server.running
    assert running_server.server_socket is None


@pytest.mark.parametrize("argv", [["not-a-port"], ["70000"]])
def test_main_rejects_bad_port(argv, capsys) -> None:
    assert main(argv) == 1
    assert "Error:" in capsys.readouterr().out


def test_setup_logging_adds_handlers_once(tmp_path) -> None:
    logger = server_module.logger
    saved = list(logger.handlers)
    logger.handlers.clear()
    log_file = tmp_path / "server.log"
    try:
        setup_logging(str(log_file))
        setup_logging(str(log_file))
        assert len(logger.handlers) == 2

        logging.getLogger("WebServer.worker").info("Handling connection...")
        for handler in logger.handlers:
            handler.flush()
        assert "Handling connection..." in log_file.read_text()
    finally:
        for handler in logger.handlers:
            handler.close()
        logger.handlers[:] = saved
        logger.propagate = True


def test_stop_waits_once_for_all_silent_clients(running_server) -> None:
    clients = [socket.create_connection((running_server.host, running_server.port)) for _ in range(3)]
    try:
        deadline = time.monotonic() + 2.0
        while running_server.active_connections < 3 and time.monotonic() < deadline:
            time.sleep(0.01)
        assert running_server.active_connections == 3

        started = time.monotonic()
        running_server.stop()
        elapsed = time.monotonic() - started
    finally:
        for client in clients:
            client.close()

    assert elapsed < 4.0
