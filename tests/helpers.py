import datetime
import socket

from web_worker import WebWorker

FIXED_NOW = datetime.datetime(2026, 10, 18, 15, 4, 5, tzinfo=datetime.timezone.utc)
FIXED_TODAY = FIXED_NOW.astimezone().date().isoformat()


def fixed_clock() -> datetime.datetime:
    return FIXED_NOW


def exchange(worker: WebWorker, request: bytes) -> bytes:
    """Send raw request bytes to a worker over a socket pair and collect the reply."""
    client, server_side = socket.socketpair()
    try:
        client.sendall(request)
        worker.handle(server_side)
        return recv_all(client)
    finally:
        client.close()


def recv_all(sock: socket.socket) -> bytes:
    chunks = []
    while True:
        data = sock.recv(4096)
        if not data:
            break
        chunks.append(data)
    return b"".join(chunks)


def split_response(response: bytes):
    header, _, body = response.partition(b"\n\n")
    return header.decode("utf-8").split("\n"), body
