"""
Web worker: handles exactly one HTTP request on one client connection.

A worker reads the request lines until the blank line that ends the header
block, maps the request-target to a file under the document root, writes
the status line and headers, then writes the file content. Each accepted
connection gets its own worker and shares no state with the others, so the
code here can be read as if only one client ever existed.

Response framing uses a bare LF after every header line. Existing clients
and tests compare the bytes exactly, so do not switch to CRLF.
"""

import datetime
import logging
import os
import socket
from dataclasses import dataclass
from typing import BinaryIO, Callable, Optional

from config import ServerConfig

DATE_TOKEN = "<cs371date>"
SERVER_TOKEN = "<cs371server>"

logger = logging.getLogger("WebServer.worker")


class WebWorkerError(Exception):
    """Base class for failures that abort a single connection."""


class RequestError(WebWorkerError):
    """The request lines did not contain a usable GET request line."""


class ResourceError(WebWorkerError):
    """The response body could not be produced."""


@dataclass(frozen=True)
class Request:
    method: str
    path: str


@dataclass(frozen=True)
class ResolvedResource:
    """
    A request path mapped onto the filesystem.

    file_path is None when the path was refused by root confinement; such a
    resource never exists and can never be read.
    """
    exists: bool
    is_binary: bool
    file_path: Optional[str]

    def read_bytes(self) -> bytes:
        if self.file_path is None:
            raise ResourceError("Resource is outside the document root")
        return _read_file(self.file_path)


def _read_file(file_path: str) -> bytes:
    try:
        with open(file_path, 'rb') as f:
            return f.read()
    except (OSError, ValueError) as e:
        # ValueError: the path holds a NUL byte
        raise ResourceError(f"Cannot read {file_path}: {e}") from e


def _utc_now() -> datetime.datetime:
    return datetime.datetime.now(datetime.timezone.utc)


def format_header_date(moment: datetime.datetime) -> str:
    """Medium date-time style in GMT, e.g. 'Oct 18, 2026, 3:04:05 PM'."""
    moment = moment.astimezone(datetime.timezone.utc)
    hour = moment.hour % 12 or 12
    return f"{moment.strftime('%b')} {moment.day}, {moment.year}, {hour}:{moment.strftime('%M:%S %p')}"


def render_template(text: str, today: datetime.date, server_name: str) -> str:
    """Replace the date and server marker tokens inside served HTML."""
    text = text.replace(DATE_TOKEN, today.isoformat())
    return text.replace(SERVER_TOKEN, server_name)


class WebWorker:
    """
    Serves one connection, then returns.

    Args:
        config: Server settings (document root, fixed strings, hardening switches)
        clock: Returns the current time as an aware datetime; used for the
            Date header and the date marker token
    """

    def __init__(self, config: ServerConfig, clock: Callable[[], datetime.datetime] = _utc_now):
        self.config = config
        self.clock = clock

    def handle(self, connection: socket.socket) -> None:
        """
        Read the request, write the header and content, close the connection.

        Errors are logged and never propagated so one bad client cannot
        affect any other connection.
        """
        logger.info("Handling connection...")
        try:
            if self.config.read_timeout is not None:
                connection.settimeout(self.config.read_timeout)

            with connection.makefile('rb') as rfile, connection.makefile('wb') as wfile:
                request = self.read_request(rfile)
                resource = self.resolve(request.path)
                self.write_header(wfile, resource)
                self.write_content(wfile, resource)
                wfile.flush()

        except RequestError as e:
            logger.error(f"Request error: {e}")
        except (WebWorkerError, OSError) as e:
            logger.error(f"Output error: {e}")
        finally:
            connection.close()

        logger.info("Done handling connection.")

    def read_request(self, rfile: BinaryIO) -> Request:
        """
        Read request lines up to the blank line ending the header block.

        Every line starting with GET replaces the path seen so far, so the
        last GET line wins. The leading '/' of the target is dropped:
        'GET /index HTTP/1.1' yields the path 'index'.

        Raises:
            RequestError: if no GET line was seen or a GET line has no target
        """
        path = None
        read_error = None

        while True:
            try:
                raw = rfile.readline()
            except OSError as e:
                # Timeout or reset mid-read ends the header block
                read_error = e
                break

            if not raw:
                break

            line = raw.decode('utf-8', errors='replace').rstrip('\r\n')
            logger.info(f"Request line: ({line})")

            if line == "":
                break

            if line.startswith("GET"):
                if len(line) < 5:
                    raise RequestError(f"Malformed request line: {line!r}")
                path = line[5:].split(" ")[0]

        if path is None:
            if read_error is not None:
                raise RequestError(f"No GET request line received: {read_error}")
            raise RequestError("No GET request line received")

        if read_error is not None:
            logger.warning(f"Request read ended early: {read_error}")

        return Request(method="GET", path=path)

    def is_binary(self, path: str) -> bool:
        return any(ext in path for ext in self.config.binary_extensions)

    def resolve(self, path: str) -> ResolvedResource:
        """
        Map a request path onto a file under the document root.

        Binary paths are used as-is; everything else gets '.html' appended.
        Backslashes become forward slashes; no other normalisation happens
        unless confine_to_root is enabled.
        """
        is_binary = self.is_binary(path)
        relative_path = path.replace('\\', '/')
        if not is_binary:
            relative_path += ".html"

        file_path = os.path.join(self.config.document_root, relative_path)

        if self.config.confine_to_root and not self._inside_root(file_path):
            logger.warning(f"Refusing path outside document root: {file_path}")
            return ResolvedResource(exists=False, is_binary=is_binary, file_path=None)

        return ResolvedResource(exists=os.path.isfile(file_path), is_binary=is_binary, file_path=file_path)

    def _inside_root(self, file_path: str) -> bool:
        root = os.path.realpath(self.config.document_root)
        try:
            real_path = os.path.realpath(file_path)
        except ValueError:
            return False
        return os.path.commonpath([root, real_path]) == root

    def status_line(self, resource: ResolvedResource) -> str:
        if resource.exists:
            return "HTTP/1.1 200 OK"
        if self.config.strict_reason_phrase:
            return "HTTP/1.1 404 Not Found"
        return "HTTP/1.1 404 OK"

    def write_header(self, wfile: BinaryIO, resource: ResolvedResource) -> None:
        """Write the status line, the four fixed headers and the blank line."""
        header = (
            f"{self.status_line(resource)}\n"
            f"Date: {format_header_date(self.clock())}\n"
            f"Server: {self.config.server_header}\n"
            "Connection: close\n"
            f"Content-Type: {self.config.content_type}\n"
            "\n"
        )
        wfile.write(header.encode('utf-8'))

    def write_content(self, wfile: BinaryIO, resource: ResolvedResource) -> None:
        """
        Write the response body. Must be called after write_header.

        A missing binary resource is still read, so the response ends after
        its 404 header with a ResourceError.

        Raises:
            ResourceError: if the binary file or the fallback page cannot be read
        """
        if resource.is_binary:
            wfile.write(resource.read_bytes())
            return

        if resource.exists:
            content = resource.read_bytes()
        else:
            logger.warning(f"File not found: {resource.file_path}")
            fallback = os.path.join(self.config.document_root, self.config.not_found_page)
            content = _read_file(fallback)

        today = self.clock().astimezone().date()
        text = render_template(content.decode('utf-8', errors='replace'), today, self.config.server_name)
        wfile.write(text.encode('utf-8'))
