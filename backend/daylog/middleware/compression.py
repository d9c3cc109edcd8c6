"""
Daylog Backend — Response Compression Middleware
==================================================

What:  GZip for ordinary responses, pass-through for event streams.
How:   Wraps Starlette's GZipMiddleware and routes requests for uncompressed
       paths straight to the application.

Compressing text/event-stream holds events in the compressor until its
buffer fills, so live snapshots would arrive late or not at all. Some
Starlette releases compress event streams, so the stream path is excluded
here regardless of version.
"""

from typing import Iterable

from starlette.middleware.gzip import GZipMiddleware
from starlette.types import ASGIApp, Receive, Scope, Send

UNCOMPRESSED_PATHS = frozenset({"/api/entries/stream"})


class SelectiveGZipMiddleware(GZipMiddleware):
    """GZipMiddleware that leaves the listed paths uncompressed."""

    def __init__(
        self,
        app: ASGIApp,
        minimum_size: int = 500,
        compresslevel: int = 9,
        excluded_paths: Iterable[str] = UNCOMPRESSED_PATHS,
    ) -> None:
        super().__init__(app, minimum_size=minimum_size, compresslevel=compresslevel)
        self.excluded_paths = frozenset(excluded_paths)

    async def __call__(self, scope: Scope, receive: Receive, send: Send) -> None:
        if scope["type"] == "http" and scope["path"] in self.excluded_paths:
            await self.app(scope, receive, send)
            return
        await super().__call__(scope, receive, send)
