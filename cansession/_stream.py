# Copyright (c) 2026 cansession contributors
# This software is distributed under the terms of the MIT License.

from __future__ import annotations
import typing
import logging
from . import util
from ._error import ReceiveTimeoutError
from ._frame import Frame

if typing.TYPE_CHECKING:
    from ._session import Session  # pylint: disable=cyclic-import


_logger = logging.getLogger(__name__)

FramePredicate = typing.Callable[[Frame], bool]


class FrameStream:
    """
    A cursor over the frames received by a session, usable as an async iterator::

        async for frame in session.frames(max_count=10):
            print(frame)

    Each pull performs bounded reads of ``timeout`` seconds each; timeouts are retried transparently,
    so a pull returns only when a frame arrives or the stream ends.
    The frames that do not satisfy the predicate are discarded and do not count towards ``max_count``.
    The stream ends when ``max_count`` frames have been delivered, after :meth:`close`,
    or after a reception error other than a timeout (the error is raised from the pull that encountered it).

    Streams created by the same session are independent of each other but they compete for the same frames;
    each frame is delivered to one consumer only.
    """

    DEFAULT_TIMEOUT = 1.0

    def __init__(
        self,
        session: Session,
        *,
        timeout: float = DEFAULT_TIMEOUT,
        max_count: typing.Optional[int] = None,
        predicate: typing.Optional[FramePredicate] = None,
    ) -> None:
        if max_count is not None and (isinstance(max_count, bool) or not isinstance(max_count, int) or max_count < 0):
            raise ValueError(f"Invalid max count: {max_count!r}")
        timeout = float(timeout)
        if not timeout > 0:
            raise ValueError(f"Invalid timeout: {timeout}")
        self._session = session
        self._timeout = timeout
        self._max_count = max_count
        self._predicate = predicate
        self._count = 0
        self._finished = False
        self._busy = False

    @property
    def count(self) -> int:
        """The number of frames delivered so far."""
        return self._count

    @property
    def finished(self) -> bool:
        return self._finished or (self._max_count is not None and self._count >= self._max_count)

    async def receive(self) -> typing.Optional[Frame]:
        """
        Pulls the next frame. Returns None if the stream has ended.

        :raises:
            - :class:`cansession.SocketNotOpenError` if the session is not open; the stream ends.
            - :class:`cansession.AlreadyListeningError` if the listener of the session is active; the stream ends.
            - :class:`cansession.ReceiveError` on a reception failure; the stream ends.
            - :class:`RuntimeError` if another pull on the same stream is in progress.
        """
        if self._busy:
            raise RuntimeError(f"{self}: concurrent pulls are not allowed")
        self._busy = True
        try:
            return await self._pull()
        except Exception:
            self._finished = True
            raise
        finally:
            self._busy = False

    async def _pull(self) -> typing.Optional[Frame]:
        # pylint: disable=protected-access
        while not self.finished:
            self._session._ensure_open()
            self._session._ensure_not_listening()
            try:
                frame = await self._session._read(self._timeout, self._is_closed)
            except ReceiveTimeoutError:
                continue
            if self._finished:  # Closed while we were waiting; the frame is left for the next consumer.
                self._session._push_back(frame)
                break
            if self._predicate is None or self._predicate(frame):
                self._count += 1
                self._session._mark_delivered(frame)
                return frame
            _logger.debug("%s: frame %r rejected by the predicate", self, frame)
        return None

    async def collect(self) -> typing.List[Frame]:
        """
        Drains the stream into a list. With no ``max_count`` this only returns if the stream is closed
        concurrently, so it is normally used with a bounded stream.
        """
        return [f async for f in self]

    def close(self) -> None:
        """
        Ends the stream. A pull in progress returns None once its current read completes.
        """
        self._finished = True

    def _is_closed(self) -> bool:
        return self._finished

    def __aiter__(self) -> FrameStream:
        return self

    async def __anext__(self) -> Frame:
        frame = await self.receive()
        if frame is None:
            raise StopAsyncIteration
        return frame

    def __repr__(self) -> str:
        return util.repr_attributes(
            self, self._session, timeout=self._timeout, max_count=self._max_count, count=self._count
        )
