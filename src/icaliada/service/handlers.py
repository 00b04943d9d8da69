"""Connection handlers.

A handler receives the stream pair of one accepted connection and returns
when it is done with it.  The bootstrap closes the writer afterwards, so
handlers never need to.
"""

from __future__ import annotations

import asyncio
from collections.abc import Awaitable, Callable

ConnectionHandler = Callable[[asyncio.StreamReader, asyncio.StreamWriter], Awaitable[None]]

_CHUNK = 64 * 1024


async def hold_until_eof(reader: asyncio.StreamReader, writer: asyncio.StreamWriter) -> None:
    """Default handler: consume input until the peer closes its side."""
    while await reader.read(_CHUNK):
        pass
