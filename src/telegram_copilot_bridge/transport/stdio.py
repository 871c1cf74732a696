"""stdio transport for the MCP server.

Reads raw bytes from stdin, feeds them to a StreamFramer, and writes the
encoded responses to stdout. Nothing else may be written to stdout; logs
go to stderr.
"""

from __future__ import annotations

import asyncio
import logging
import sys
from typing import TYPE_CHECKING, BinaryIO

from .framing import StreamFramer

if TYPE_CHECKING:
    from ..protocol.dispatcher import RpcDispatcher

logger = logging.getLogger(__name__)

READ_SIZE = 65536


class StdioBridgeServer:
    """MCP server over binary stdin/stdout.

    Usage:
        server = StdioBridgeServer(dispatcher)
        await server.run()  # Blocks until stdin closes

    Blocking reads run in the default executor so the event loop stays free
    while a tool call awaits network I/O.
    """

    def __init__(
        self,
        dispatcher: RpcDispatcher,
        stdin: BinaryIO | None = None,
        stdout: BinaryIO | None = None,
    ) -> None:
        self._stdin = stdin if stdin is not None else sys.stdin.buffer
        self._stdout = stdout if stdout is not None else sys.stdout.buffer
        self.framer = StreamFramer(dispatcher, self._write)
        self._running = False

    async def run(self) -> None:
        """Serve until EOF on stdin."""
        self._running = True
        logger.info("MCP server listening on stdio")

        try:
            while self._running:
                chunk = await self._read_chunk()
                if not chunk:
                    logger.info("stdin closed, shutting down")
                    break
                await self.framer.feed(chunk)
        except asyncio.CancelledError:
            logger.info("stdio server cancelled")
            raise
        finally:
            self._running = False
            if self.framer.pending:
                logger.warning(f"Discarding {self.framer.pending} bytes of incomplete input")

    def stop(self) -> None:
        self._running = False

    async def _read_chunk(self) -> bytes:
        loop = asyncio.get_running_loop()
        read = getattr(self._stdin, "read1", self._stdin.read)
        return await loop.run_in_executor(None, read, READ_SIZE)

    def _write(self, data: bytes) -> None:
        self._stdout.write(data)
        self._stdout.flush()
