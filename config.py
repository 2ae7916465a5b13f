"""
Server configuration.

All fixed strings the web worker emits (server identity, fallback page,
content type) live here so they can be changed without touching the
request handling code. Defaults reproduce the classic CS371 server output.
"""

import dataclasses
from dataclasses import dataclass
from typing import List, Optional, Tuple

DEFAULT_HOST = "127.0.0.1"
DEFAULT_PORT = 8080
DEFAULT_DOCUMENT_ROOT = "."

SERVER_HEADER = "Jon's very own server"
SERVER_NAME = "Joshua R. Alexander's Server"
CONTENT_TYPE = "text/html"
NOT_FOUND_PAGE = "pages/404.html"
BINARY_EXTENSIONS: Tuple[str, ...] = (".png", ".ico", ".gif", ".jpg", ".jpeg")


class ConfigError(ValueError):
    """Raised when the server configuration cannot be built."""


@dataclass(frozen=True)
class ServerConfig:
    """
    Settings shared by the listener and every web worker.

    The two hardening switches are off by default so the wire output stays
    identical to the classic CS371 server.
    """
    host: str = DEFAULT_HOST
    port: int = DEFAULT_PORT
    document_root: str = DEFAULT_DOCUMENT_ROOT
    server_header: str = SERVER_HEADER
    server_name: str = SERVER_NAME
    content_type: str = CONTENT_TYPE
    not_found_page: str = NOT_FOUND_PAGE
    binary_extensions: Tuple[str, ...] = BINARY_EXTENSIONS
    read_timeout: Optional[float] = None
    strict_reason_phrase: bool = False
    confine_to_root: bool = False
    log_file: Optional[str] = None

    def with_overrides(self, **changes) -> "ServerConfig":
        return dataclasses.replace(self, **changes)

    @classmethod
    def from_args(cls, argv: List[str]) -> "ServerConfig":
        """
        Build a config from positional command line arguments.

        Args:
            argv: Arguments without the program name: [port] [host] [document_root]

        Returns:
            ServerConfig populated from argv, defaults for anything missing

        Raises:
            ConfigError: if the port is not an integer in 0..65535
        """
        port = DEFAULT_PORT
        host = DEFAULT_HOST
        document_root = DEFAULT_DOCUMENT_ROOT

        if len(argv) >= 1:
            try:
                port = int(argv[0])
            except ValueError:
                raise ConfigError(f"Port must be an integer, got {argv[0]!r}")

        if len(argv) >= 2:
            host = argv[1]

        if len(argv) >= 3:
            document_root = argv[2]

        # 0 asks the OS for a free port
        if not (0 <= port <= 65535):
            raise ConfigError("Port must be between 0 and 65535")

        return cls(host=host, port=port, document_root=document_root)
