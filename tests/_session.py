# Copyright (c) 2026 cansession contributors
# This software is distributed under the terms of the MIT License.

# pylint: disable=protected-access

import math
import asyncio
import pytest
from .driver.mock import MockDriver


@pytest.mark.asyncio
async def _unittest_session_send_receive() -> None:
    from cansession import Session, SessionState, DataFrame, FrameFormat

    drv = MockDriver(loopback=True)
    ses = Session("mock:0", drv)
    assert ses.state == SessionState.CLOSED and not ses.is_open
    assert repr(ses) == "Session('mock:0', fd=False, state=CLOSED)"

    await ses.open()
    assert ses.state == SessionState.OPEN
    await ses.open()  # No-op
    assert drv.calls == ["open_handle"]

    sent = await ses.send(0x123, [1, 2, 3, 4])
    assert sent == DataFrame(FrameFormat.BASE, 0x123, b"\x01\x02\x03\x04")
    received = await ses.receive(1.0)
    assert received == sent
    assert received.identifier == 0x123 and not received.extended and received.data == bytes([1, 2, 3, 4])

    ext = await ses.send(0x123, b"", extended=True)
    assert await ses.receive(1.0) == ext == DataFrame(FrameFormat.EXTENDED, 0x123, b"")

    rtr = await ses.send_remote(0x7FF, 8)
    assert (await ses.receive(1.0)) == rtr
    assert rtr.is_remote and rtr.dlc == 8

    await ses.send_frame(DataFrame(FrameFormat.BASE, 0x42, b"\xff"))
    assert (await ses.receive(1.0)).identifier == 0x42

    st = ses.sample_statistics()
    assert st.frames_sent == 4 and st.frames_received == 4
    assert st.send_errors == st.receive_errors == st.timeouts == st.frames_filtered == 0

    await ses.close()
    assert ses.state == SessionState.CLOSED
    assert drv.handles == []
    await ses.close()  # Idempotent
    assert drv.calls.count("close_handle") == 1


@pytest.mark.asyncio
async def _unittest_session_not_open() -> None:
    from cansession import Session, SocketNotOpenError, Filter, DataFrame, FrameFormat

    drv = MockDriver()
    ses = Session("mock:0", drv)

    # Every data operation is rejected before validation and without touching the driver.
    with pytest.raises(SocketNotOpenError):
        await ses.send(0x123, [1, 2, 3])
    with pytest.raises(SocketNotOpenError):
        await ses.send(0xFFFFFFFF, [1000], fd=True, remote=True)
    with pytest.raises(SocketNotOpenError):
        await ses.send_frame(DataFrame(FrameFormat.BASE, 1))
    with pytest.raises(SocketNotOpenError):
        await ses.send_remote(1)
    with pytest.raises(SocketNotOpenError):
        await ses.flush()
    with pytest.raises(SocketNotOpenError):
        await ses.receive(0)
    with pytest.raises(SocketNotOpenError):
        ses.set_filters([Filter(1, 1)])
    with pytest.raises(SocketNotOpenError):
        ses.clear_filters()
    with pytest.raises(SocketNotOpenError):
        await ses.frames().receive()
    with pytest.raises(SocketNotOpenError):
        ses.listener.start()
    assert drv.calls == []

    await ses.open()
    await ses.close()
    with pytest.raises(SocketNotOpenError):
        await ses.send(0x123)
    assert drv.calls == ["open_handle", "close_handle"]


@pytest.mark.asyncio
async def _unittest_session_validation() -> None:
    from cansession import Session, InvalidIdentifierError, IncompatibleFlagsError, PayloadTooLongError
    from cansession import InvalidByteError, Identifier, ErrorFrame, FrameFormat, FDFrame

    drv = MockDriver(loopback=True)
    async with Session("mock:0", drv) as ses:
        with pytest.raises(InvalidIdentifierError):
            await ses.send(0x800, [1], extended=False)
        with pytest.raises(InvalidIdentifierError):
            await ses.send(0x20000000, [1])
        with pytest.raises(IncompatibleFlagsError):
            await ses.send(0x123, [1], fd=True, remote=True)
        with pytest.raises(PayloadTooLongError):
            await ses.send(0x123, bytes(9))
        with pytest.raises(InvalidByteError):
            await ses.send(0x123, [256])
        with pytest.raises(IncompatibleFlagsError):
            await ses.send(Identifier.extended(1), extended=False)
        # FD frames require an FD session.
        with pytest.raises(IncompatibleFlagsError):
            await ses.send(0x123, bytes(12), fd=True)
        with pytest.raises(IncompatibleFlagsError):
            await ses.send_frame(FDFrame(FrameFormat.BASE, 0x123, b""))
        with pytest.raises(IncompatibleFlagsError):
            await ses.send_frame(ErrorFrame(FrameFormat.EXTENDED, 0x40))
        with pytest.raises(TypeError):
            await ses.send_frame(b"123#00")  # type: ignore
        assert drv.sent == []
        assert "send_frame" not in drv.calls

    drv = MockDriver(loopback=True)
    async with Session("mock:0", drv, fd=True) as ses:
        assert ses.fd
        f = await ses.send(0x1BADC0DE, bytes(range(64)), fd=True)
        assert f.is_fd and f.extended and len(f.data) == 64
        assert await ses.receive(1.0) == f
        # Classic frames are still allowed in an FD session.
        c = await ses.send(0x123, [1])
        assert await ses.receive(1.0) == c


@pytest.mark.asyncio
async def _unittest_session_open_close_errors() -> None:
    from cansession import Session, SessionState, SocketOpenError, SocketCloseError, SocketNotOpenError

    drv = MockDriver()
    ses = Session("mock:0", drv)
    drv.raise_on_next("open_handle", OSError("No such device"))
    with pytest.raises(SocketOpenError) as exc_info:
        await ses.open()
    assert isinstance(exc_info.value.__cause__, OSError)
    assert ses.state == SessionState.CLOSED
    with pytest.raises(SocketNotOpenError):
        await ses.receive(0)

    await ses.open()
    drv.raise_on_next("close_handle", OSError("Device busy"))
    with pytest.raises(SocketCloseError):
        await ses.close()
    assert ses.state == SessionState.CLOSED  # Closed regardless of the failure
    await ses.close()

    # The session can be reopened after closing.
    await ses.open()
    assert ses.is_open
    await ses.close()


@pytest.mark.asyncio
async def _unittest_session_io_errors() -> None:
    from cansession import Session, SendError, ReceiveError, ReceiveTimeoutError, FilterError, Filter

    drv = MockDriver()
    async with Session("mock:0", drv, default_timeout=0.05) as ses:
        drv.raise_on_next("send_frame", OSError("No buffer space available"))
        with pytest.raises(SendError) as send_exc:
            await ses.send(0x123, [1])
        assert isinstance(send_exc.value.__cause__, OSError)
        await ses.send(0x123, [1])
        assert len(drv.sent) == 1

        with pytest.raises(ReceiveTimeoutError):
            await ses.receive()  # Uses the default timeout
        with pytest.raises(ReceiveTimeoutError):
            await ses.receive(0)

        drv.inject(OSError("Network is down"))
        with pytest.raises(ReceiveError) as recv_exc:
            await ses.receive(1.0)
        assert isinstance(recv_exc.value.__cause__, OSError)
        assert ses.is_open  # A read failure never closes the session

        drv.raise_on_next("install_filters", OSError("Invalid argument"))
        with pytest.raises(FilterError):
            ses.set_filters([Filter(0x100, 0x7FF)])
        drv.raise_on_next("clear_filters", OSError("Invalid argument"))
        with pytest.raises(FilterError):
            ses.clear_filters()

        st = ses.sample_statistics()
        assert st.send_errors == 1 and st.frames_sent == 1
        assert st.receive_errors == 1
        assert st.timeouts == 2


@pytest.mark.asyncio
async def _unittest_session_filters() -> None:
    from cansession import Session, Filter, DataFrame, ErrorFrame, FrameFormat, InvalidFilterError

    # The driver does not filter; the session must filter in-process.
    drv = MockDriver(kernel_filtering=False)
    async with Session("mock:0", drv) as ses:
        ses.set_filters([Filter(0x120, 0x7F0)])
        assert ses.filters == (Filter(0x120, 0x7F0),)
        assert drv.filters(drv.handles[0]) == [Filter(0x120, 0x7F0)]

        drv.inject(
            DataFrame(FrameFormat.BASE, 0x133, b"\x01"),
            DataFrame(FrameFormat.BASE, 0x123, b"\x02"),
            ErrorFrame(FrameFormat.EXTENDED, 0x40),  # Not subject to filtering
        )
        assert await ses.receive(1.0) == DataFrame(FrameFormat.BASE, 0x123, b"\x02")
        assert (await ses.receive(1.0)).is_error
        assert ses.sample_statistics().frames_filtered == 1

        # A malformed set is rejected as a whole and the previous filters remain in effect.
        with pytest.raises(InvalidFilterError):
            ses.set_filters([Filter(0x100, 0x7FF), "0x200"])  # type: ignore
        assert ses.filters == (Filter(0x120, 0x7F0),)

        ses.set_filters([Filter(0x120, 0x7F0, invert=True)])
        drv.inject(DataFrame(FrameFormat.BASE, 0x123), DataFrame(FrameFormat.BASE, 0x133))
        assert (await ses.receive(1.0)).identifier == 0x133

        ses.clear_filters()
        assert ses.filters == ()
        assert drv.filters(drv.handles[0]) == []
        drv.inject(DataFrame(FrameFormat.EXTENDED, 0x1FFFFFFF))
        assert (await ses.receive(1.0)).identifier == 0x1FFFFFFF

        # An empty set accepts everything.
        ses.set_filters([])
        drv.inject(DataFrame(FrameFormat.BASE, 0x7FF))
        assert (await ses.receive(1.0)).identifier == 0x7FF


@pytest.mark.asyncio
async def _unittest_session_batching() -> None:
    from cansession import Session, BatchedTransmission, SendError

    drv = MockDriver()
    ses = Session("mock:0", drv, strategy=BatchedTransmission(3))
    await ses.open()
    for i in range(4):
        await ses.send(i, [i])
    assert [[f.identifier for f in b] for b in drv.batches] == [[0, 1, 2]]
    assert ses.strategy.pending == 1
    await ses.flush()
    assert drv.sent[-1].identifier == 3
    assert ses.strategy.pending == 0
    await ses.flush()  # Nothing to do

    await ses.send(0x10)
    await ses.send(0x11)
    await ses.close()  # Flushes the rest
    assert [[f.identifier for f in b] for b in drv.batches] == [[0, 1, 2], [0x10, 0x11]]
    assert ses.sample_statistics().frames_sent == 6

    # A batch that fails in the driver is reported to the sender that completed it.
    drv = MockDriver()
    async with Session("mock:0", drv, strategy=BatchedTransmission(2)) as ses:
        await ses.send(1)
        drv.raise_on_next("send_frames", OSError("bus-off"))
        with pytest.raises(SendError):
            await ses.send(2)
        assert ses.strategy.pending == 0
        assert ses.sample_statistics().send_errors == 1

    # A flush failure on close is logged but does not prevent closing.
    drv = MockDriver()
    ses = Session("mock:0", drv, strategy=BatchedTransmission(10))
    await ses.open()
    await ses.send(1)
    await ses.send(2)
    drv.raise_on_next("send_frames", OSError("bus-off"))
    await ses.close()
    assert not ses.is_open and drv.sent == []


@pytest.mark.asyncio
async def _unittest_session_close_during_receive() -> None:
    from cansession import Session, SocketNotOpenError

    drv = MockDriver()
    ses = Session("mock:0", drv)
    await ses.open()

    task = asyncio.ensure_future(ses.receive(math.inf))
    await asyncio.sleep(0.3)
    assert not task.done()  # Waiting indefinitely
    await ses.close()
    with pytest.raises(SocketNotOpenError):
        await asyncio.wait_for(task, 1.0)
    assert drv.reads >= 2  # Indefinite waits are split into bounded reads.


@pytest.mark.asyncio
async def _unittest_session_indefinite_wait() -> None:
    from cansession import Session, DataFrame, FrameFormat

    drv = MockDriver()
    async with Session("mock:0", drv) as ses:  # No default timeout: wait indefinitely
        asyncio.get_running_loop().call_later(0.3, drv.inject, DataFrame(FrameFormat.BASE, 0x555))
        assert (await ses.receive()).identifier == 0x555
        assert ses.sample_statistics().timeouts == 0
