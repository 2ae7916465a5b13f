#!/usr/bin/env python3
"""
Thread-per-connection HTTP File Server

The listener accepts client connections and hands each one to a fresh
WebWorker running on its own thread. Workers share nothing, so no locking
is needed around request handling; the only shared state is the connection
counters kept here.

Usage:
    python server.py [port] [host] [document_root]
"""

import logging
import signal
import socket
import sys
import threading
import time
from typing import List, Optional, Tuple

from config import ConfigError, ServerConfig
from web_worker import WebWorker

LOG_FORMAT = "%(asctime)s [%(levelname)s] [%(threadName)s] %(message)s"
LOG_DATE_FORMAT = "%Y-%m-%d %H:%M:%S"
LISTEN_BACKLOG = 50
SHUTDOWN_JOIN_TIMEOUT = 2.0

logger = logging.getLogger("WebServer")


def setup_logging(log_file: Optional[str] = None) -> logging.Logger:
    """
    Configure the server logger with a console handler and an optional file handler.

    Calling it again does not add duplicate handlers.
    """
    if logger.handlers:
        return logger

    formatter = logging.Formatter(LOG_FORMAT, LOG_DATE_FORMAT)

    console_handler = logging.StreamHandler(sys.stdout)
    console_handler.setLevel(logging.INFO)
    console_handler.setFormatter(formatter)
    logger.addHandler(console_handler)

    if log_file:
        file_handler = logging.FileHandler(log_file, mode='a')
        file_handler.setLevel(logging.INFO)
        file_handler.setFormatter(formatter)
        logger.addHandler(file_handler)

    logger.setLevel(logging.INFO)
    # Prevent duplicate logs
    logger.propagate = False
    return logger


class HTTPServer:
    """
    Accept loop that spawns one worker thread per connection.
    """

    def __init__(self, config: ServerConfig):
        """
        Initialize the listener.

        Args:
            config: Server settings; config.port may be 0 to bind any free port
        """
        self.config = config
        self.host = config.host
        self.port = config.port
        self.server_socket: Optional[socket.socket] = None
        self.running = False
        self.ready = threading.Event()
        self.workers: List[threading.Thread] = []
        self.connection_lock = threading.RLock()

        self.total_connections = 0
        self.active_connections = 0

    def start(self):
        """Bind, then accept connections until stop() is called."""
        try:
            listener = socket.socket(socket.AF_INET, socket.SOCK_STREAM)
            self.server_socket = listener
            listener.setsockopt(socket.SOL_SOCKET, socket.SO_REUSEADDR, 1)
            listener.bind((self.host, self.port))
            listener.listen(LISTEN_BACKLOG)
            self.port = listener.getsockname()[1]

            self.running = True
            self.ready.set()
            logger.info(f"Server started on {self.host}:{self.port}")
            logger.info(f"Serving files from {self.config.document_root}")

            while self.running:
                try:
                    client_socket, client_address = listener.accept()
                except OSError as e:
                    if self.running:
                        logger.error(f"Error accepting connection: {e}")
                    break

                self._spawn_worker(client_socket, client_address)

        except OSError as e:
            logger.error(f"Failed to start server: {e}")
            raise
        finally:
            self.stop()

    def _spawn_worker(self, client_socket: socket.socket, client_address: Tuple[str, int]):
        logger.info(f"New connection from {client_address[0]}:{client_address[1]}")

        with self.connection_lock:
            self.total_connections += 1
            self.active_connections += 1
            self.workers = [t for t in self.workers if t.is_alive()]
            thread = threading.Thread(
                target=self._run_worker,
                args=(client_socket,),
                name=f"Worker-{self.total_connections}",
                daemon=True,
            )
            self.workers.append(thread)

        thread.start()

    def _run_worker(self, client_socket: socket.socket):
        try:
            WebWorker(self.config).handle(client_socket)
        finally:
            with self.connection_lock:
                self.active_connections -= 1

    def stop(self):
        """Stop accepting connections and give live workers a moment to finish."""
        with self.connection_lock:
            listener, self.server_socket = self.server_socket, None
        if listener is None:
            return

        logger.info("Stopping HTTP server...")
        self.running = False

        # close() alone does not wake a thread blocked in accept()
        try:
            listener.shutdown(socket.SHUT_RDWR)
        except OSError:
            logger.debug("Listening socket was not connected")
        listener.close()

        with self.connection_lock:
            workers = list(self.workers)
        # Shared by all workers
        deadline = time.monotonic() + SHUTDOWN_JOIN_TIMEOUT
        for thread in workers:
            if thread is not threading.current_thread():
                thread.join(max(0.0, deadline - time.monotonic()))

        with self.connection_lock:
            logger.info(f"Server stopped. Total connections: {self.total_connections}, "
                        f"still active: {self.active_connections}")


def main(argv: Optional[List[str]] = None) -> int:
    """
    Main entry point for the HTTP server.
    Parses command line arguments and runs the server until interrupted.
    """
    if argv is None:
        argv = sys.argv[1:]

    try:
        config = ServerConfig.from_args(argv)
    except ConfigError as e:
        print(f"Error: {e}")
        return 1

    setup_logging(config.log_file)
    server = HTTPServer(config)

    def _signal_handler(signum, frame):
        logger.info(f"Received signal {signum}, initiating graceful shutdown...")
        server.stop()

    signal.signal(signal.SIGINT, _signal_handler)
    signal.signal(signal.SIGTERM, _signal_handler)

    print(f"Starting HTTP server on {config.host}:{config.port}...")
    print("Press Ctrl+C to stop the server")
    try:
        server.start()
    except OSError as e:
        print(f"Error starting server: {e}")
        return 1
    return 0


if __name__ == "__main__":
    sys.exit(main())
