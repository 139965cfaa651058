"""Bookkeeping for a single proxied client connection."""

from __future__ import annotations

from dataclasses import dataclass, field
from datetime import datetime

TIMESTAMP_FORMAT = "%Y-%m-%d %H:%M:%S"


@dataclass
class ConnectionInfo:
    """A client connection, where it goes and how much traffic it has moved."""

    src_ip: str
    dst_domain: str
    method: str
    start_time: datetime = field(default_factory=datetime.now)
    traffic_in: int = 0
    traffic_out: int = 0

    def __str__(self) -> str:
        return (
            f"{self.start_time.strftime(TIMESTAMP_FORMAT)} "
            f"{self.src_ip} {self.method} {self.dst_domain}"
        )