# Copyright (c) 2026 cansession contributors
# This software is distributed under the terms of the MIT License.

from __future__ import annotations
import time
import typing
import itertools
import threading
import collections
import dataclasses
import pytest
from cansession import Frame, Filter, ReceiveTimeoutError, accepts
from cansession.driver import Driver, Handle


_RxItem = typing.Union[Frame, Exception]


@dataclasses.dataclass
class _Port:
    interface_name: str
    fd: bool
    rx: typing.Deque[_RxItem] = dataclasses.field(default_factory=collections.deque)
    filters: typing.List[Filter] = dataclasses.field(default_factory=list)


class MockDriver(Driver):
    """
    Scripted driver for testing the session without any CAN hardware.

    - The frames (or exceptions) passed to :meth:`inject` are delivered to every open handle in order;
      an exception is raised from the read that reaches it.
    - With loopback enabled, the transmitted frames are delivered back to the handle they were sent from.
    - The installed filters are applied as a kernel would, unless ``kernel_filtering`` is disabled;
      in that case every frame reaches the session and the in-process filtering is exercised.
    - :meth:`raise_on_next` arms a one-shot failure of the named method.
    - Reads block until something is injected or the timeout expires.
    """

    def __init__(self, *, loopback: bool = False, kernel_filtering: bool = True) -> None:
        self.loopback = loopback
        self.kernel_filtering = kernel_filtering
        self.sent: typing.List[Frame] = []
        self.batches: typing.List[typing.List[Frame]] = []
        self.calls: typing.List[str] = []
        self.reads = 0
        self._ports: typing.Dict[Handle, _Port] = {}
        self._counter = itertools.count(1)
        self._cond = threading.Condition()
        self._raise_on: typing.Dict[str, Exception] = {}

    @property
    def handles(self) -> typing.List[Handle]:
        with self._cond:
            return list(self._ports)

    def filters(self, handle: Handle) -> typing.List[Filter]:
        with self._cond:
            return list(self._ports[handle].filters)

    def raise_on_next(self, method: str, ex: Exception) -> None:
        assert hasattr(self, method), method
        self._raise_on[method] = ex

    def inject(self, *items: _RxItem) -> None:
        with self._cond:
            assert self._ports, "No open handles to deliver the frames to"
            for port in self._ports.values():
                port.rx.extend(items)
            self._cond.notify_all()

    def open_handle(self, interface_name: str, fd: bool) -> Handle:
        self.calls.append("open_handle")
        self._maybe_raise("open_handle")
        with self._cond:
            handle = Handle(next(self._counter))
            self._ports[handle] = _Port(interface_name=interface_name, fd=fd)
        return handle

    def send_frame(self, handle: Handle, frame: Frame) -> None:
        self.calls.append("send_frame")
        self._transmit(handle, [frame], "send_frame")

    def send_frames(self, handle: Handle, frames: typing.Sequence[Frame]) -> None:
        self.calls.append("send_frames")
        self._transmit(handle, frames, "send_frames")
        self.batches.append(list(frames))

    def read_frame(self, handle: Handle, timeout: float) -> Frame:
        deadline = time.monotonic() + timeout
        with self._cond:
            self.reads += 1
            while True:
                port = self._get_port(handle)
                while port.rx:
                    item = port.rx.popleft()
                    if isinstance(item, Exception):
                        raise item
                    if not self.kernel_filtering or accepts(port.filters, item):
                        return item
                remaining = deadline - time.monotonic()
                if remaining <= 0:
                    raise ReceiveTimeoutError(f"Mock read timed out after {timeout} s")
                self._cond.wait(remaining)

    def install_filters(self, handle: Handle, filters: typing.Sequence[Filter]) -> None:
        self.calls.append("install_filters")
        self._maybe_raise("install_filters")
        with self._cond:
            self._get_port(handle).filters = list(filters)

    def clear_filters(self, handle: Handle) -> None:
        self.calls.append("clear_filters")
        self._maybe_raise("clear_filters")
        with self._cond:
            self._get_port(handle).filters = []

    def close_handle(self, handle: Handle) -> None:
        self.calls.append("close_handle")
        with self._cond:
            if self._ports.pop(handle, None) is None:
                raise LookupError(f"Handle {handle} is not open")
            self._cond.notify_all()
        self._maybe_raise("close_handle")  # The handle is released even if the driver reports a failure.

    def _transmit(self, handle: Handle, frames: typing.Sequence[Frame], method: str) -> None:
        with self._cond:
            port = self._get_port(handle)
            assert all(port.fd or not f.is_fd for f in frames), "FD frame passed to a Classic CAN handle"
        self._maybe_raise(method)
        with self._cond:
            self.sent.extend(frames)
            if self.loopback:
                port.rx.extend(frames)
                self._cond.notify_all()

    def _get_port(self, handle: Handle) -> _Port:
        try:
            return self._ports[handle]
        except KeyError:
            raise LookupError(f"Handle {handle} is not open") from None

    def _maybe_raise(self, method: str) -> None:
        ex = self._raise_on.pop(method, None)
        if ex is not None:
            raise ex


def _unittest_mock_driver() -> None:
    from cansession import DataFrame, FDFrame, FrameFormat

    drv = MockDriver(loopback=True)
    h = drv.open_handle("mock:0", fd=False)
    assert drv.handles == [h]

    drv.send_frame(h, DataFrame(FrameFormat.BASE, 0x123, b"\x01"))
    assert drv.read_frame(h, 0.0) == DataFrame(FrameFormat.BASE, 0x123, b"\x01")
    with pytest.raises(ReceiveTimeoutError):
        drv.read_frame(h, 0.01)
    with pytest.raises(AssertionError):
        drv.send_frame(h, FDFrame(FrameFormat.BASE, 0x123, b""))

    drv.install_filters(h, [Filter(0x100, 0x7FF)])
    drv.inject(DataFrame(FrameFormat.BASE, 0x200), DataFrame(FrameFormat.BASE, 0x100), OSError("boom"))
    assert drv.read_frame(h, 0.0).identifier == 0x100  # 0x200 is dropped by the emulated kernel filter
    with pytest.raises(OSError, match="boom"):
        drv.read_frame(h, 0.0)

    drv.raise_on_next("send_frame", RuntimeError("once"))
    with pytest.raises(RuntimeError, match="once"):
        drv.send_frame(h, DataFrame(FrameFormat.BASE, 1))
    drv.send_frame(h, DataFrame(FrameFormat.BASE, 1))
    assert [f.identifier for f in drv.sent] == [0x123, 1]

    drv.close_handle(h)
    assert drv.handles == []
    with pytest.raises(LookupError):
        drv.close_handle(h)
    with pytest.raises(LookupError):
        drv.read_frame(h, 0.0)
