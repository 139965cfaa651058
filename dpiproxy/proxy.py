"""An HTTP/HTTPS forwarding proxy that splits TLS ClientHello records."""

from __future__ import annotations

import argparse
import asyncio
import logging
import random
import signal
from dataclasses import dataclass
from pathlib import Path
from typing import Iterable, Sequence

from .conn import ConnectionInfo
from .prettylog import setup_pretty_logger

DEFAULT_HOST = "127.0.0.1"
DEFAULT_PORT = "8881"
DEFAULT_BLACKLIST = "blacklist.txt"

READ_SIZE = 1500
HELLO_READ_SIZE = 2048
TLS_HEAD_SIZE = 5
CONNECT_ESTABLISHED = b"HTTP/1.1 200 Connection Established\r\n\r\n"
_RECORD_PREFIX = b"\x16\x03\x04"


@dataclass(frozen=True)
class ProxyRequest:
    """Where the first request of a client connection wants to go."""

    method: str
    host: str
    port: int


def _parse_port(raw: bytes, what: str) -> int:
    try:
        return int(raw)
    except ValueError as exc:
        raise ValueError(f"invalid port in {what}: {raw!r}") from exc


def parse_request(data: bytes) -> ProxyRequest:
    """Extract method, target host and port from the start of an HTTP request.

    Raises ValueError when the request line, Host header or port is unusable.
    """
    headers = data.split(b"\r\n")
    first_line = headers[0].split(b" ")
    if len(first_line) < 2:
        raise ValueError("invalid HTTP request line")

    method = first_line[0].decode("latin-1")
    url = first_line[1]

    if method == "CONNECT":
        host_port = url.split(b":")
        port = _parse_port(host_port[1], "CONNECT URL") if len(host_port) > 1 else 443
        return ProxyRequest(method, host_port[0].decode("latin-1"), port)

    host_header = next(
        (header[6:] for header in headers if header.startswith(b"Host: ")), b""
    )
    if not host_header:
        raise ValueError("missing Host header")
    host_port = host_header.split(b":")
    port = _parse_port(host_port[1], "Host header") if len(host_port) > 1 else 80
    return ProxyRequest(method, host_port[0].decode("latin-1"), port)


def load_blacklist(path: str | Path) -> list[str]:
    """Read one domain per line, ignoring blank lines; an empty path gives no domains."""
    if not path:
        return []
    text = Path(path).read_text()
    return [stripped for line in text.split("\n") if (stripped := line.strip())]


def _record_header(length: int) -> bytes:
    return _RECORD_PREFIX + (length & 0xFFFF).to_bytes(2, "big")


def fragment_client_hello(data: bytes, rng: random.Random | None = None) -> bytes:
    """Re-wrap a ClientHello body into many small TLS handshake records.

    Everything up to and including the first zero byte goes into the first
    record; the rest is cut into randomly sized pieces.
    """
    source = random if rng is None else rng
    parts: list[bytes] = []

    host_end = data.find(b"\x00")
    if host_end != -1:
        first, data = data[: host_end + 1], data[host_end + 1 :]
        parts += [_record_header(len(first)), first]

    while data:
        chunk_len = source.randint(1, len(data))
        parts += [_record_header(chunk_len), data[:chunk_len]]
        data = data[chunk_len:]

    return b"".join(parts)


def _join_host_port(host: str, port: object) -> str:
    if ":" in host:
        return f"[{host}]:{port}"
    return f"{host}:{port}"


async def _close(writer: asyncio.StreamWriter) -> None:
    writer.close()
    try:
        await writer.wait_closed()
    except (OSError, asyncio.CancelledError):
        pass


class ProxyServer:
    """Forwards client traffic, fragmenting TLS hellos that mention blacklisted sites."""

    def __init__(
        self,
        logger: logging.Logger | None = None,
        host: str = DEFAULT_HOST,
        port: str | int = DEFAULT_PORT,
        blacklist: Iterable[str] = (),
        no_blacklist: bool = False,
        quiet: bool = False,
        verbose: bool = False,
        log_access_file: str = "",
        log_error_file: str = "",
    ):
        self.log = logger if logger is not None else logging.getLogger(__name__)
        self.host = host
        self.port = str(port)
        self.blacklist = list(blacklist)
        self.no_blacklist = no_blacklist
        self.quiet = quiet
        self.verbose = verbose
        self.log_access_file = log_access_file
        self.log_error_file = log_error_file

        self.total_connections = 0
        self.allowed_connections = 0
        self.blocked_connections = 0
        self.traffic_in = 0
        self.traffic_out = 0
        self.active_connections: dict[str, ConnectionInfo] = {}

    def _warn(self, message: str, **fields: object) -> None:
        self.log.warning(message, extra={"fields": fields})

    def is_blacklisted(self, host: str) -> bool:
        """Whether a destination host is refused outright."""
        return not self.no_blacklist and host in self.blacklist

    def _hello_is_clean(self, data: bytes) -> bool:
        return self.no_blacklist or not any(site.encode() in data for site in self.blacklist)

    async def handle_connection(
        self, reader: asyncio.StreamReader, writer: asyncio.StreamWriter
    ) -> None:
        """Serve one client connection until both directions are finished."""
        try:
            await self._serve(reader, writer)
        finally:
            await _close(writer)

    async def _serve(self, reader: asyncio.StreamReader, writer: asyncio.StreamWriter) -> None:
        peer = writer.get_extra_info("peername")
        if not isinstance(peer, tuple) or len(peer) < 2:
            self._warn("Failed to parse client address", error=repr(peer))
            return
        client_ip, client_port = str(peer[0]), peer[1]

        try:
            http_data = await reader.read(READ_SIZE)
        except OSError as exc:
            self._warn("Failed to read HTTP data", error=str(exc))
            return
        if not http_data:
            self._warn("Failed to read HTTP data", error="EOF")
            return

        try:
            request = parse_request(http_data)
        except ValueError as exc:
            self._warn("Invalid HTTP request", error=str(exc))
            return

        if self.is_blacklisted(request.host):
            self.blocked_connections += 1
            self._warn("Connection to blacklisted host", host=request.host)
            return

        conn_key = _join_host_port(client_ip, client_port)
        self.active_connections[conn_key] = ConnectionInfo(
            src_ip=client_ip, dst_domain=request.host, method=request.method
        )

        try:
            remote_reader, remote_writer = await asyncio.open_connection(
                request.host, request.port
            )
        except OSError as exc:
            self.active_connections.pop(conn_key, None)
            self._warn("Failed to connect to remote", error=str(exc))
            return

        try:
            if request.method == "CONNECT":
                try:
                    writer.write(CONNECT_ESTABLISHED)
                    await writer.drain()
                except OSError as exc:
                    self._warn("Failed to write response", error=str(exc))
                    return
                await self._fragment_data(reader, remote_writer)
            else:
                try:
                    remote_writer.write(http_data)
                    await remote_writer.drain()
                except OSError as exc:
                    self._warn("Failed to write to remote", error=str(exc))
                    return
                self.allowed_connections += 1

            self.total_connections += 1

            await asyncio.gather(
                self._pipe(reader, remote_writer, "out", conn_key),
                self._pipe(remote_reader, writer, "in", conn_key),
            )
        finally:
            await _close(remote_writer)

    async def _fragment_data(
        self, src: asyncio.StreamReader, dst: asyncio.StreamWriter
    ) -> None:
        try:
            head = await src.readexactly(TLS_HEAD_SIZE)
        except (asyncio.IncompleteReadError, OSError) as exc:
            self._warn("Failed to read head in fragmentData", error=str(exc))
            return

        try:
            data = await src.read(HELLO_READ_SIZE)
        except OSError as exc:
            self._warn("Failed to read data in fragmentData", error=str(exc))
            return

        if self._hello_is_clean(data):
            self.allowed_connections += 1
            payload = head + data
            failure = "Failed to write in fragmentData"
        else:
            self.blocked_connections += 1
            payload = fragment_client_hello(data)
            failure = "Failed to write fragmented data"

        try:
            dst.write(payload)
            await dst.drain()
        except OSError as exc:
            self._warn(failure, error=str(exc))

    async def _pipe(
        self,
        src: asyncio.StreamReader,
        dst: asyncio.StreamWriter,
        direction: str,
        conn_key: str,
    ) -> None:
        try:
            while True:
                try:
                    chunk = await src.read(READ_SIZE)
                except OSError as exc:
                    self._warn("Pipe error", direction=direction, error=str(exc))
                    return
                if not chunk:
                    return

                info = self.active_connections.get(conn_key)
                if info is not None:
                    if direction == "in":
                        info.traffic_in += len(chunk)
                        self.traffic_in += len(chunk)
                    else:
                        info.traffic_out += len(chunk)
                        self.traffic_out += len(chunk)

                try:
                    dst.write(chunk)
                    await dst.drain()
                except OSError as exc:
                    self._warn("Pipe write error", direction=direction, error=str(exc))
                    return
        finally:
            if direction == "out":
                dst.close()
            info = self.active_connections.pop(conn_key, None)
            if info is not None:
                self.log.info(str(info))

    async def start(self, stop_event: asyncio.Event | None = None) -> None:
        """Listen and serve clients until ``stop_event`` is set."""
        address = _join_host_port(self.host, self.port)
        try:
            server = await asyncio.start_server(
                self.handle_connection, self.host, int(self.port)
            )
        except OSError as exc:
            self.log.error("Failed to start server", extra={"fields": {"error": str(exc)}})
            raise

        self.log.info("Proxy server started", extra={"fields": {"address": address}})
        if stop_event is None:
            stop_event = asyncio.Event()
        async with server:
            await stop_event.wait()
        self.log.info("Shutting down proxy...")


def _build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(description="Forwarding proxy with TLS hello fragmentation.")
    parser.add_argument("-host", "--host", default=DEFAULT_HOST, help="Proxy host")
    parser.add_argument("-port", "--port", default=DEFAULT_PORT, help="Proxy port")
    parser.add_argument(
        "-blacklist", "--blacklist", default=DEFAULT_BLACKLIST, help="Path to blacklist file"
    )
    parser.add_argument(
        "-log_access", "--log_access", default="", help="Path to the access control log"
    )
    parser.add_argument("-log_error", "--log_error", default="", help="Path to log file for errors")
    parser.add_argument(
        "-no_blacklist",
        "--no_blacklist",
        action="store_true",
        help="Use fragmentation for all domains",
    )
    parser.add_argument("-quiet", "--quiet", action="store_true", help="Remove UI output")
    parser.add_argument(
        "-verbose", "--verbose", action="store_true", help="Show more info (only for devs)"
    )
    return parser


async def _run(proxy: ProxyServer) -> None:
    stop = asyncio.Event()
    loop = asyncio.get_running_loop()
    presses = 0

    def on_interrupt() -> None:
        nonlocal presses
        presses += 1
        if presses >= 2:  # two interrupts are needed to shut down
            stop.set()

    installed = True
    try:
        loop.add_signal_handler(signal.SIGINT, on_interrupt)
    except (NotImplementedError, RuntimeError):
        installed = False
    try:
        await proxy.start(stop)
    finally:
        if installed:
            loop.remove_signal_handler(signal.SIGINT)


def main(argv: Sequence[str] | None = None) -> int:
    """Command-line entry point."""
    args = _build_parser().parse_args(argv)
    logger = setup_pretty_logger()

    try:
        blacklist = load_blacklist(args.blacklist)
    except OSError:
        logger.error("File not found", extra={"fields": {"file": args.blacklist}})
        return 1

    proxy = ProxyServer(
        logger,
        host=args.host,
        port=args.port,
        blacklist=blacklist,
        no_blacklist=args.no_blacklist,
        quiet=args.quiet,
        verbose=args.verbose,
        log_access_file=args.log_access,
        log_error_file=args.log_error,
    )
    try:
        asyncio.run(_run(proxy))
    except KeyboardInterrupt:
        pass
    except (OSError, ValueError):
        return 1
    return 0