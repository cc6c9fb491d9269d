"""
scx_stats - local statistics endpoint for long-running schedulers.

A host process registers named stat producers and metadata, then launches a
server on a Unix domain socket.  Monitoring tools talk to it with one JSON
line per request:

    protocol.py  → request/response envelope and error tagging
    registry.py  → name → producer / metadata tables
    meta.py      → optional metadata descriptor types
    server.py    → builder, listener and per-connection handler
    client.py    → synchronous client
    cli.py       → ``scx-stats`` command-line client
"""

from .protocol import (  # noqa: F401
    DecodeError,
    StatsError,
    StatsRequest,
    StatsResponse,
    decode_request,
    decode_response,
    encode_request,
    encode_response,
)
from .registry import StatProducer, StatsRegistry  # noqa: F401
from .meta import StatsField, StatsMeta  # noqa: F401
from .server import StatsServer, StatsServerConfig, StatsServerError  # noqa: F401
from .client import StatsClient, StatsClientConfig, StatsClientError  # noqa: F401

__all__ = [
    "DecodeError",
    "StatsError",
    "StatsRequest",
    "StatsResponse",
    "decode_request",
    "decode_response",
    "encode_request",
    "encode_response",
    "StatProducer",
    "StatsRegistry",
    "StatsField",
    "StatsMeta",
    "StatsServer",
    "StatsServerConfig",
    "StatsServerError",
    "StatsClient",
    "StatsClientConfig",
    "StatsClientError",
]

__version__ = "0.1.0"
