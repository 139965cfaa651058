# dpiproxy

`dpiproxy` is a small local forwarding proxy for HTTP and HTTPS traffic. It
accepts plain HTTP requests and `CONNECT` tunnels, forwards them to the
destination, and counts the connections and bytes that pass through it.

Its point is what it does with TLS. After a `CONNECT` tunnel is set up, the
proxy reads the client's first TLS record. If the ClientHello body contains
any entry of the blacklist, the proxy does not send it as one record. It cuts
the body into several TLS handshake records instead and sends those to the
server. Everything up to and including the first zero byte goes into the
first record, and the rest is cut into pieces of random length. Each piece
gets a `16 03 04` header and a two-byte length. Deep packet inspection that
looks for the host name inside one whole record often misses it in this
form. Only the first read after the record header is treated this way, at
most 2048 bytes. Later traffic is passed on unchanged.

Requests whose target host matches a blacklist entry exactly are refused.
This covers both the `Host` header of plain HTTP and the host named in
`CONNECT`. The proxy closes the connection without sending a response.

## Installation

```
pip install .
```

The package needs Python 3.10 or later. It uses only the standard library.

## Running

```
dpiproxy
```

By default the proxy listens on `127.0.0.1:8881` and reads its blacklist from
`blacklist.txt` in the current directory. If that file cannot be read, the
command logs `File not found` and exits with status 1. Point your browser or
system proxy settings at the listening address for both HTTP and HTTPS.

Options are accepted with one dash or two, for example `-port` or `--port`:

| Option | Default | Meaning |
| --- | --- | --- |
| `-host` | `127.0.0.1` | Address to listen on |
| `-port` | `8881` | Port to listen on |
| `-blacklist` | `blacklist.txt` | Path to the blacklist file |
| `-log_access` | *(empty)* | Path to an access log (stored, not used yet) |
| `-log_error` | *(empty)* | Path to an error log (stored, not used yet) |
| `-no_blacklist` | off | Ignore the blacklist: nothing is refused or fragmented |
| `-quiet` | off | Stored, no effect yet |
| `-verbose` | off | Stored, no effect yet |

The blacklist file holds one entry per line. Blank lines and surrounding
whitespace are ignored:

```
example.com
blocked.example.org
```

On systems where the event loop supports signal handlers, the server stops
only after Ctrl+C has been pressed twice. Elsewhere, one Ctrl+C stops it.

## Logging

The log goes to standard output. Each line has the form
`[time] LEVEL: message {fields}`, where the fields are compact JSON with
sorted keys:

```
[12:56:56.789] INFO: Proxy server started {"address":"127.0.0.1:8881"}
```

The time stamp shows the hour, then the seconds twice, then the
milliseconds. The level, message and fields are coloured with ANSI codes
only when the output is a terminal. When a connection closes, the proxy logs
one line for it: its start time, client IP, method and destination host.

## Using it from Python

```python
import asyncio

from dpiproxy.prettylog import setup_pretty_logger
from dpiproxy.proxy import ProxyServer, load_blacklist

logger = setup_pretty_logger()
server = ProxyServer(
    logger,
    host="127.0.0.1",
    port="8881",
    blacklist=load_blacklist("blacklist.txt"),
)

stop = asyncio.Event()  # set it to shut the server down
asyncio.run(server.start(stop))
```

A running `ProxyServer` keeps these counters as attributes:
`total_connections`, `allowed_connections`, `blocked_connections`,
`traffic_in` and `traffic_out`. It also keeps `active_connections`, which
maps each `ip:port` of a client to a `dpiproxy.conn.ConnectionInfo`.

You can also use the helpers on their own:

- `parse_request(data)` reads the first packet a client sends and returns a
  `ProxyRequest` with `method`, `host` and `port`. The port defaults to 443
  for `CONNECT` and to 80 otherwise. A bad request line, a missing `Host`
  header or a bad port raises `ValueError`.
- `fragment_client_hello(data, rng=None)` splits a ClientHello body into TLS
  records as described above. Pass a `random.Random` to make the split
  repeatable.
- `load_blacklist(path)` returns the non-blank, stripped lines of a file, or
  an empty list for an empty path.
- `dpiproxy.prettylog.PrettyFormatter` is the `logging.Formatter` behind the
  log format. Structured fields are passed as `extra={"fields": {...}}`.

## What it does not do

- The `-log_access` and `-log_error` paths are accepted, but nothing is
  written to them. All logging goes to standard output.
- `-quiet` and `-verbose` change nothing.
- The proxy has no statistics display. The counters are kept only as
  attributes of `ProxyServer`.
- Refused or failed requests get no HTTP error response. The connection is
  simply closed.

## Tests

```
pip install ".[test]"
pytest
```