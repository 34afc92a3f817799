"""
Bounded capture of a phase's stdout and stderr.

Each stream gets its own buffer capped at ``max_bytes``.  The first chunk
that pushes a stream past its ceiling is clipped, a truncation marker is
appended, and the overflow is reported to the caller as a limit violation.
"""

from __future__ import annotations

import asyncio
import enum
from typing import Callable, Dict, Set

from .base import LimitKind

CHUNK_SIZE = 64 * 1024


class Stream(enum.Enum):
    STDOUT = "stdout"
    STDERR = "stderr"


TRUNCATION_MARKERS: Dict[Stream, str] = {
    Stream.STDOUT: "\n...output truncated...\n",
    Stream.STDERR: "\n...error output truncated...\n",
}

OVERFLOW_KINDS: Dict[Stream, LimitKind] = {
    Stream.STDOUT: LimitKind.OUTPUT,
    Stream.STDERR: LimitKind.ERROR_OUTPUT,
}


def _decode(data: bytes) -> str:
    return data.decode("utf-8", errors="replace")


class OutputAggregator:
    """Accumulate both output streams of one process group."""

    def __init__(self, max_bytes: int) -> None:
        self.max_bytes = max_bytes
        self._buffers: Dict[Stream, bytearray] = {stream: bytearray() for stream in Stream}
        self._truncated: Set[Stream] = set()

    def truncated(self, stream: Stream) -> bool:
        return stream in self._truncated

    def feed(self, stream: Stream, chunk: bytes) -> bool:
        """Append ``chunk`` to ``stream``.

        Returns ``True`` when this chunk crossed the ceiling.  A stream that
        has been truncated ignores further chunks.
        """
        if stream in self._truncated:
            return False
        buffer = self._buffers[stream]
        room = self.max_bytes - len(buffer)
        if len(chunk) <= room:
            buffer.extend(chunk)
            return False
        buffer.extend(chunk[:room])
        buffer.extend(TRUNCATION_MARKERS[stream].encode("utf-8"))
        self._truncated.add(stream)
        return True

    def text(self, stream: Stream) -> str:
        return _decode(bytes(self._buffers[stream]))

    @property
    def stdout(self) -> str:
        return self.text(Stream.STDOUT)

    @property
    def stderr(self) -> str:
        return self.text(Stream.STDERR)

    def partial(self) -> str:
        """What a terminated phase reports: stdout, else stderr."""
        return self.stdout or self.stderr

    async def pump(
        self,
        stream: Stream,
        reader: asyncio.StreamReader,
        on_overflow: Callable[[LimitKind, str], None],
    ) -> None:
        """Copy ``reader`` into the buffer until EOF.

        Past the ceiling the stream is still drained (and discarded) so the
        pipe closes normally once the group is gone.
        """
        while True:
            chunk = await reader.read(CHUNK_SIZE)
            if not chunk:
                return
            if self.feed(stream, chunk):
                on_overflow(OVERFLOW_KINDS[stream], self.text(stream))
