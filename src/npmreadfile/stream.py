"""Caller-facing stream returned by :meth:`Readfile.create_read_stream`.

A :class:`ReadStream` is handed out before any I/O has happened.  A
background task later settles it exactly once, either with the file's
chunks followed by end-of-data or with an error.  A fulfilled stream
receives its chunks as they are read (:meth:`ReadStream._begin`,
:meth:`~ReadStream._push`, :meth:`~ReadStream._end`), so the first chunk
reaches the consumer before the rest of the file has been read.

The settle state is tracked explicitly (:class:`StreamState`) and checked
before every write, so a second settle attempt -- e.g. a background refresh
finishing after a cache hit already served the caller -- is refused.

Consumers iterate asynchronously::

    stream = readfile.create_read_stream(address, prefer_cache=True)
    async for chunk in stream:
        sys.stdout.buffer.write(chunk)

or collect everything with ``await stream.read()``.
"""

from __future__ import annotations

import asyncio
import codecs
import enum
from typing import AsyncIterator, Iterable, Optional, Union

from npmreadfile.exceptions import RequestCancelledError

Chunk = Union[bytes, str]

_EOF = object()


class StreamState(str, enum.Enum):
    """Settle state of a :class:`ReadStream`."""

    UNSET = "unset"
    FULFILLED = "fulfilled"
    ERRORED = "errored"


class ReadStream:
    """Write-once asynchronous byte stream.

    Args:
        encoding: When set, chunks are decoded and yielded as ``str``.
    """

    def __init__(self, encoding: Optional[str] = None) -> None:
        self.encoding = encoding
        self._state = StreamState.UNSET
        self._queue: asyncio.Queue = asyncio.Queue()
        self._error: Optional[BaseException] = None
        self._task: Optional[asyncio.Task] = None
        self._ended = False
        self.used_cache = False

    @property
    def state(self) -> StreamState:
        return self._state

    @property
    def settled(self) -> bool:
        return self._state is not StreamState.UNSET

    @property
    def error(self) -> Optional[BaseException]:
        return self._error

    # ------------------------------------------------------------------ #
    # Producer side
    # ------------------------------------------------------------------ #

    def _attach(self, task: asyncio.Task) -> None:
        self._task = task

    def _begin(self) -> bool:
        """Settle the stream as fulfilled before its data is pushed.

        Returns False if the stream is already settled.  After a successful
        call the producer pushes chunks with :meth:`_push` and closes the
        stream with :meth:`_end`.
        """
        if self.settled:
            return False
        self._state = StreamState.FULFILLED
        return True

    def _push(self, chunk: bytes) -> None:
        self._queue.put_nowait(chunk)

    def _end(self, exc: Optional[BaseException] = None) -> None:
        """Mark end-of-data, raising *exc* to consumers after what was pushed."""
        if self._ended:
            return
        self._ended = True
        if exc is not None:
            self._error = exc
        self._queue.put_nowait(_EOF)

    def _fulfil(self, chunks: Iterable[bytes]) -> bool:
        """Queue all of *chunks* followed by end-of-data.

        Returns False, writing nothing, if the stream is already settled.
        Chunks are pulled from *chunks* before the state flips, so a read
        failure leaves the stream unsettled and free to error.
        """
        if self.settled:
            return False
        data = list(chunks)
        self._begin()
        for chunk in data:
            self._push(chunk)
        self._end()
        return True

    def _fail(self, exc: BaseException) -> bool:
        """Settle the stream with *exc*.  Returns False if already settled."""
        if self.settled:
            return False
        self._state = StreamState.ERRORED
        self._end(exc)
        return True

    # ------------------------------------------------------------------ #
    # Consumer side
    # ------------------------------------------------------------------ #

    def __aiter__(self) -> AsyncIterator[Chunk]:
        return self._iterate()

    async def _iterate(self) -> AsyncIterator[Chunk]:
        decoder = None
        if self.encoding:
            decoder = codecs.getincrementaldecoder(self.encoding)()
        while True:
            item = await self._queue.get()
            if item is _EOF:
                # Let a later consumer see end-of-data too.
                self._queue.put_nowait(_EOF)
                break
            if decoder is not None:
                text = decoder.decode(item)
                if text:
                    yield text
            else:
                yield item
        if self._error is not None:
            raise self._error
        if decoder is not None:
            tail = decoder.decode(b"", final=True)
            if tail:
                yield tail

    async def read(self) -> Chunk:
        """Collect the whole stream.

        Raises:
            ReadfileError: Whatever error the stream settled with.
        """
        chunks = [chunk async for chunk in self]
        if self.encoding:
            return "".join(chunks)
        return b"".join(chunks)

    def cancel(self) -> None:
        """Tear the stream down with :class:`RequestCancelledError`.

        Cancels the producing task, including any background refresh.
        A fulfilled stream keeps the chunks already pushed; if it was still
        receiving data it ends with the cancellation error.
        """
        self._fail(RequestCancelledError("Request was cancelled"))
        if self._task is not None and not self._task.done():
            self._task.cancel()

    async def wait_closed(self) -> None:
        """Wait until the producing task (and any background refresh) finishes."""
        if self._task is None:
            return
        try:
            await asyncio.shield(self._task)
        except asyncio.CancelledError:
            if not self._task.cancelled():
                raise
