# Copyright (c) 2026 cansession contributors
# This software is distributed under the terms of the MIT License.

import typing
import asyncio
import pytest
from .driver.mock import MockDriver


class EventCollector:
    def __init__(self) -> None:
        self.events: typing.List[typing.Tuple[str, typing.Any]] = []

    def subscribe_all(self, listener: typing.Any) -> None:
        from cansession import ListenerEvent

        listener.subscribe(ListenerEvent.FRAME, lambda f: self.events.append(("frame", f)))
        listener.subscribe(ListenerEvent.ERROR, lambda e: self.events.append(("error", e)))
        listener.subscribe(ListenerEvent.STARTED, lambda: self.events.append(("started", None)))
        listener.subscribe(ListenerEvent.STOPPED, lambda: self.events.append(("stopped", None)))

    @property
    def kinds(self) -> typing.List[str]:
        return [k for k, _ in self.events]

    @property
    def frames(self) -> typing.List[typing.Any]:
        return [v for k, v in self.events if k == "frame"]

    def __repr__(self) -> str:  # pragma: no cover
        return f"{type(self).__name__}({self.events})"


@pytest.mark.asyncio
async def _unittest_listener_lifecycle() -> None:
    from cansession import Session, ListeningState, AlreadyListeningError, DataFrame, FrameFormat

    drv = MockDriver(loopback=True)
    async with Session("mock:0", drv) as ses:
        lis = ses.listener
        assert lis.state == ListeningState.IDLE and lis.task is None
        lis.stop()  # No-op when idle
        await lis.join()

        col = EventCollector()
        col.subscribe_all(lis)

        task = lis.start(poll_interval=0.01)
        assert isinstance(task, asyncio.Task)
        assert lis.state == ListeningState.LISTENING
        assert col.kinds == ["started"]  # Emitted synchronously by start()
        with pytest.raises(AlreadyListeningError):
            lis.start()

        await ses.send(0x123, [1, 2, 3, 4])
        drv.inject(DataFrame(FrameFormat.EXTENDED, 0x1234, b"\xaa"))
        await asyncio.sleep(0.3)
        assert col.frames == [
            DataFrame(FrameFormat.BASE, 0x123, b"\x01\x02\x03\x04"),
            DataFrame(FrameFormat.EXTENDED, 0x1234, b"\xaa"),
        ]

        lis.stop()
        lis.stop()  # Idempotent
        await lis.join()
        assert task.done()
        assert lis.state == ListeningState.IDLE
        assert col.kinds == ["started", "frame", "frame", "stopped"]

        # Frames arriving after stop are not delivered to the handlers.
        await ses.send(0x321)
        await asyncio.sleep(0.1)
        assert len(col.frames) == 2
        assert (await ses.receive(1.0)).identifier == 0x321  # Manual reception is possible again

        # The listener can be restarted.
        lis.start()
        assert col.kinds[-1] == "started"
        await ses.send(0x222)
        await asyncio.sleep(0.2)
        assert col.frames[-1].identifier == 0x222
    # Closing the session stops the listener.
    assert lis.state == ListeningState.IDLE
    assert col.kinds[-1] == "stopped"
    assert col.kinds.count("stopped") == 2


@pytest.mark.asyncio
async def _unittest_listener_exclusive_consumer() -> None:
    from cansession import Session, AlreadyListeningError

    drv = MockDriver()
    async with Session("mock:0", drv) as ses:
        ses.listener.start()
        with pytest.raises(AlreadyListeningError):
            await ses.receive(0.1)
        with pytest.raises(AlreadyListeningError):
            await ses.frames().receive()
        with pytest.raises(AlreadyListeningError):
            await ses.collect_frames(1)
        # Transmission is not affected.
        await ses.send(0x123)
        ses.listener.stop()
        await ses.listener.join()
        with pytest.raises(asyncio.TimeoutError):
            await asyncio.wait_for(ses.frames(timeout=0.01).receive(), 0.1)


@pytest.mark.asyncio
async def _unittest_listener_stop_from_handler() -> None:
    from cansession import Session, ListenerEvent, DataFrame, FrameFormat

    drv = MockDriver()
    async with Session("mock:0", drv) as ses:
        received: typing.List[typing.Any] = []

        def on_frame(frame: typing.Any) -> None:
            received.append(frame)
            ses.listener.stop()

        ses.listener.subscribe(ListenerEvent.FRAME, on_frame)
        ses.listener.start()
        drv.inject(*[DataFrame(FrameFormat.BASE, i) for i in range(5)])
        await asyncio.wait_for(ses.listener.join(), 1.0)
        assert [f.identifier for f in received] == [0]
        # The remaining frames were not consumed by the stopped listener.
        assert (await ses.receive(1.0)).identifier == 1


@pytest.mark.asyncio
async def _unittest_listener_handler_failure() -> None:
    from cansession import Session, ListenerEvent, DataFrame, FrameFormat

    drv = MockDriver()
    async with Session("mock:0", drv) as ses:
        col = EventCollector()

        def faulty(_frame: typing.Any) -> None:
            raise RuntimeError("Handler failure")

        ses.listener.subscribe(ListenerEvent.FRAME, faulty)
        col.subscribe_all(ses.listener)
        ses.listener.start()
        drv.inject(DataFrame(FrameFormat.BASE, 1), DataFrame(FrameFormat.BASE, 2))
        await asyncio.sleep(0.2)
        assert [f.identifier for f in col.frames] == [1, 2]  # The loop keeps going
        assert ses.listener.is_listening

        ses.listener.unsubscribe(ListenerEvent.FRAME, faulty)
        with pytest.raises(ValueError):
            ses.listener.unsubscribe(ListenerEvent.FRAME, faulty)


@pytest.mark.asyncio
async def _unittest_listener_read_error() -> None:
    from cansession import Session, ListeningState, ListeningError, ReceiveError, DataFrame, FrameFormat

    drv = MockDriver()
    async with Session("mock:0", drv) as ses:
        col = EventCollector()
        col.subscribe_all(ses.listener)

        ses.listener.start()
        drv.inject(DataFrame(FrameFormat.BASE, 1), OSError("Network is down"), DataFrame(FrameFormat.BASE, 2))
        await asyncio.wait_for(ses.listener.join(), 1.0)
        assert col.kinds == ["started", "frame", "error", "stopped"]
        err = col.events[2][1]
        assert isinstance(err, ReceiveError) and isinstance(err.__cause__, OSError)
        assert ses.listener.state == ListeningState.IDLE
        assert ses.is_open  # A read error never closes the session

        # The frame after the error is still there.
        assert (await ses.receive(1.0)).identifier == 2

        # Non-library exceptions escaping from the session are wrapped.
        async def broken_read(*_: typing.Any) -> typing.Any:
            raise ZeroDivisionError("boom")

        ses._read = broken_read  # type: ignore  # pylint: disable=protected-access
        col.events.clear()
        ses.listener.start()
        await asyncio.wait_for(ses.listener.join(), 1.0)
        assert col.kinds == ["started", "error", "stopped"]
        assert isinstance(col.events[1][1], ListeningError)
        assert isinstance(col.events[1][1].__cause__, ZeroDivisionError)


@pytest.mark.asyncio
async def _unittest_listener_cancellation() -> None:
    from cansession import Session, ListeningState

    drv = MockDriver()
    async with Session("mock:0", drv) as ses:
        col = EventCollector()
        col.subscribe_all(ses.listener)
        task = ses.listener.start()
        await asyncio.sleep(0.05)
        task.cancel()
        await asyncio.wait([task])
        assert ses.listener.state == ListeningState.IDLE
        assert col.kinds == ["started", "stopped"]


@pytest.mark.asyncio
async def _unittest_listener_frames_after_stop_are_kept() -> None:
    from cansession import Session, DataFrame, FrameFormat

    drv = MockDriver()
    async with Session("mock:0", drv) as ses:
        col = EventCollector()
        col.subscribe_all(ses.listener)

        # A long poll interval does not delay the stop; a frame arriving afterwards stays in the driver.
        ses.listener.start(poll_interval=1.0)
        await asyncio.sleep(0.05)
        ses.listener.stop()
        asyncio.get_running_loop().call_later(0.2, drv.inject, DataFrame(FrameFormat.BASE, 0x321))
        await asyncio.wait_for(ses.listener.join(), 0.5)
        assert col.frames == []
        assert (await ses.receive(0.5)).identifier == 0x321

        # A frame picked up by the read that was in progress when the stop was requested is returned too.
        ses.listener.start(poll_interval=1.0)
        await asyncio.sleep(0.05)
        ses.listener.stop()
        drv.inject(DataFrame(FrameFormat.BASE, 0x322), DataFrame(FrameFormat.BASE, 0x323))
        await asyncio.wait_for(ses.listener.join(), 0.5)
        assert col.frames == []
        assert (await ses.receive(0.5)).identifier == 0x322
        assert (await ses.receive(0.5)).identifier == 0x323

        assert ses.sample_statistics().frames_received == 3


@pytest.mark.asyncio
async def _unittest_listener_cancellation_keeps_frame() -> None:
    from cansession import Session, DataFrame, FrameFormat

    drv = MockDriver()
    async with Session("mock:0", drv) as ses:
        col = EventCollector()
        col.subscribe_all(ses.listener)
        task = ses.listener.start(poll_interval=1.0)
        await asyncio.sleep(0.05)
        task.cancel()
        drv.inject(DataFrame(FrameFormat.BASE, 0x77))
        await asyncio.wait([task])
        assert col.frames == []
        assert (await ses.receive(0.5)).identifier == 0x77
