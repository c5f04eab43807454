# Copyright (c) 2026 cansession contributors
# This software is distributed under the terms of the MIT License.

# pylint: disable=protected-access

import typing
import asyncio
import pytest
from cansession import DataFrame, FDFrame, RemoteFrame, FrameFormat, Filter, ReceiveTimeoutError


def _unittest_pythoncan_virtual_bus() -> None:
    from cansession.driver.pythoncan import PythonCANDriver

    drv_a = PythonCANDriver()
    drv_b = PythonCANDriver(500_000)
    a = drv_a.open_handle("virtual:cansession-test-0", fd=False)
    b = drv_b.open_handle("virtual:cansession-test-0", fd=True)
    assert drv_a.open_handles == [a]

    frames = [
        DataFrame(FrameFormat.EXTENDED, 0xBADC0FE, bytes(range(8))),
        DataFrame(FrameFormat.EXTENDED, 0x12345678 & 0x1FFFFFFF, b""),
        DataFrame(FrameFormat.BASE, 0x123, bytes(range(6))),
        RemoteFrame(FrameFormat.BASE, 0x321, dlc=4),
    ]
    drv_a.send_frames(a, frames)
    assert [drv_b.read_frame(b, 1.0) for _ in frames] == frames
    with pytest.raises(ReceiveTimeoutError):
        drv_a.read_frame(a, 0.05)  # Own frames are not received without loopback
    with pytest.raises(ReceiveTimeoutError):
        drv_b.read_frame(b, 0.05)

    fd_frame = FDFrame(FrameFormat.BASE, 0x7FF, bytes(range(64)))
    drv_b.send_frame(b, fd_frame)
    assert drv_a.read_frame(a, 1.0) == fd_frame

    # Filtering happens in python-can; the identifier alone is compared.
    drv_b.install_filters(b, [Filter(0x120, 0x7F0)])
    drv_a.send_frame(a, DataFrame(FrameFormat.BASE, 0x133, b"\x01"))
    drv_a.send_frame(a, DataFrame(FrameFormat.BASE, 0x123, b"\x02"))
    assert drv_b.read_frame(b, 1.0) == DataFrame(FrameFormat.BASE, 0x123, b"\x02")
    drv_b.clear_filters(b)
    drv_a.send_frame(a, DataFrame(FrameFormat.BASE, 0x133, b"\x03"))
    assert drv_b.read_frame(b, 1.0) == DataFrame(FrameFormat.BASE, 0x133, b"\x03")

    drv_a.close_handle(a)
    drv_b.close_handle(b)
    with pytest.raises(LookupError):
        drv_a.close_handle(a)
    with pytest.raises(LookupError):
        drv_a.send_frame(a, frames[0])
    assert drv_a.open_handles == []


def _unittest_pythoncan_invalid_configuration() -> None:
    from cansession import InvalidConfigurationError
    from cansession.driver.pythoncan import PythonCANDriver

    drv = PythonCANDriver()
    with pytest.raises(InvalidConfigurationError):
        drv.open_handle("virtual", fd=False)
    with pytest.raises(InvalidConfigurationError):
        drv.open_handle("slcan:/dev/null", fd=True)
    assert drv.open_handles == []


@pytest.mark.asyncio
async def _unittest_pythoncan_session() -> None:
    from cansession import make_session, ListenerEvent, DataFrame as DF

    asyncio.get_running_loop().slow_callback_duration = 5.0

    tx = make_session("virtual:cansession-test-1", batch_size=4)
    rx = make_session("virtual:cansession-test-1", default_timeout=1.0)
    async with tx, rx:
        rx.set_filters([Filter(0x100, 0x700)])
        for i in range(0x0FE, 0x106):
            await tx.send(i, [i & 0xFF])
        assert tx.strategy.pending == 0  # Two full batches
        received = await rx.collect_frames(6, timeout=0.1)
        assert [f.identifier for f in received] == list(range(0x100, 0x106))

        got: typing.List[DF] = []
        rx.listener.subscribe(ListenerEvent.FRAME, got.append)
        rx.listener.start()
        await tx.send(0x1AB, b"\xde\xad")
        await tx.flush()
        await asyncio.sleep(0.5)
        rx.listener.stop()
        await rx.listener.join()
        assert got == [DF(FrameFormat.BASE, 0x1AB, b"\xde\xad")]

        with pytest.raises(ReceiveTimeoutError):
            await rx.receive(0.1)
    assert not tx.is_open and not rx.is_open


@pytest.mark.asyncio
async def _unittest_pythoncan_loopback() -> None:
    from cansession import make_session

    async with make_session("virtual:cansession-test-2", loopback=True) as ses:
        sent = await ses.send(0x123, [1, 2, 3, 4])
        assert await ses.receive(1.0) == sent
