# Copyright (c) 2026 cansession contributors
# This software is distributed under the terms of the MIT License.

from __future__ import annotations
import abc
import typing
import logging
from ._frame import Frame


_logger = logging.getLogger(__name__)

FrameSink = typing.Callable[[typing.Sequence[Frame]], typing.Awaitable[None]]
"""
Delivers a sequence of frames to the driver. Provided by the session.
"""


class TransmissionStrategy(abc.ABC):
    """
    Decides when the frames accepted by :meth:`cansession.Session.send` are actually handed over to the driver.
    """

    @abc.abstractmethod
    async def enqueue(self, frame: Frame, sink: FrameSink) -> None:
        raise NotImplementedError

    @abc.abstractmethod
    async def flush(self, sink: FrameSink) -> None:
        """
        Hands over everything that is still pending.
        """
        raise NotImplementedError

    @property
    @abc.abstractmethod
    def pending(self) -> int:
        """
        The number of frames accepted but not yet handed over to the driver.
        """
        raise NotImplementedError

    def __repr__(self) -> str:
        return f"{type(self).__name__}()"


class ImmediateTransmission(TransmissionStrategy):
    """
    Every frame is sent at once. This is the default.
    """

    async def enqueue(self, frame: Frame, sink: FrameSink) -> None:
        await sink((frame,))

    async def flush(self, sink: FrameSink) -> None:
        pass

    @property
    def pending(self) -> int:
        return 0


class BatchedTransmission(TransmissionStrategy):
    """
    Frames are buffered and handed over to the driver in batches of ``batch_size``.
    The buffer is also drained on :meth:`cansession.Session.flush` and when the session is closed.
    If the driver fails, the whole batch is dropped and the error is propagated to the caller
    whose frame completed the batch.

    >>> import asyncio
    >>> from cansession import DataFrame, FrameFormat
    >>> batches = []
    >>> async def sink(frames):
    ...     batches.append([f.identifier for f in frames])
    >>> async def main():
    ...     strategy = BatchedTransmission(batch_size=2)
    ...     for i in range(5):
    ...         await strategy.enqueue(DataFrame(FrameFormat.BASE, i), sink)
    ...     print(strategy.pending, batches)
    ...     await strategy.flush(sink)
    ...     print(strategy.pending, batches)
    >>> asyncio.run(main())
    1 [[0, 1], [2, 3]]
    0 [[0, 1], [2, 3], [4]]
    """

    DEFAULT_BATCH_SIZE = 50

    def __init__(self, batch_size: int = DEFAULT_BATCH_SIZE) -> None:
        if isinstance(batch_size, bool) or not isinstance(batch_size, int) or batch_size < 1:
            raise ValueError(f"Invalid batch size: {batch_size!r}")
        self._batch_size = batch_size
        self._buffer: typing.List[Frame] = []

    @property
    def batch_size(self) -> int:
        return self._batch_size

    async def enqueue(self, frame: Frame, sink: FrameSink) -> None:
        self._buffer.append(frame)
        if len(self._buffer) >= self._batch_size:
            await self.flush(sink)

    async def flush(self, sink: FrameSink) -> None:
        if not self._buffer:
            return
        batch, self._buffer = self._buffer, []
        _logger.debug("%s: flushing %d frames", self, len(batch))
        await sink(batch)

    @property
    def pending(self) -> int:
        return len(self._buffer)

    def __repr__(self) -> str:
        return f"{type(self).__name__}(batch_size={self._batch_size}, pending={len(self._buffer)})"


def _unittest_batching_immediate() -> None:
    import asyncio
    from ._frame import DataFrame, FrameFormat

    out: typing.List[typing.List[int]] = []

    async def sink(frames: typing.Sequence[Frame]) -> None:
        out.append([f.identifier for f in frames])

    async def main() -> None:
        s = ImmediateTransmission()
        await s.enqueue(DataFrame(FrameFormat.BASE, 1), sink)
        await s.enqueue(DataFrame(FrameFormat.BASE, 2), sink)
        assert s.pending == 0
        await s.flush(sink)

    asyncio.run(main())
    assert out == [[1], [2]]


def _unittest_batching_failure() -> None:
    import asyncio
    from pytest import raises
    from ._frame import DataFrame, FrameFormat

    async def sink(frames: typing.Sequence[Frame]) -> None:
        raise OSError("boom")

    async def main() -> None:
        s = BatchedTransmission(2)
        await s.enqueue(DataFrame(FrameFormat.BASE, 1), sink)
        with raises(OSError):
            await s.enqueue(DataFrame(FrameFormat.BASE, 2), sink)
        assert s.pending == 0

    asyncio.run(main())

    for bad in (0, -1, 1.5, True):
        with raises(ValueError):
            BatchedTransmission(bad)  # type: ignore
