# Copyright (c) 2026 cansession contributors
# This software is distributed under the terms of the MIT License.

from __future__ import annotations
import enum
import errno
import typing
import socket
import struct
import select
import logging
import itertools
import threading
import contextlib
from ..._error import ReceiveTimeoutError
from ..._frame import Frame, DataFrame, FDFrame, RemoteFrame, ErrorFrame, FrameFormat
from ..._frame import MAX_CLASSIC_DATA_LENGTH, get_required_padding
from ..._filter import Filter
from .._driver import Driver, Handle


_logger = logging.getLogger(__name__)


class SocketCANDriver(Driver):
    """
    This driver provides a simple interface for the standard Linux SocketCAN media layer using raw ``AF_CAN`` sockets.
    If you are testing with a virtual CAN bus and you need CAN FD, you may need to enable it manually;
    otherwise, you may observe errno 90 "Message too long". Configuration example::

        ip link set vcan0 mtu 72

    The interface name is either the bare network interface name (``can0``)
    or the same prefixed with ``socketcan:``.
    Acceptance filters are installed into the kernel, including the inverted ones.
    Error frames are always requested from the kernel; they bypass the acceptance filters.

    SocketCAN documentation: https://www.kernel.org/doc/Documentation/networking/can.txt
    """

    def __init__(self, *, receive_own_messages: bool = False, send_timeout: float = 1.0) -> None:
        self._receive_own_messages = bool(receive_own_messages)
        self._send_timeout = float(send_timeout)
        self._channels: typing.Dict[Handle, _Channel] = {}
        self._handle_counter = itertools.count(1)
        self._lock = threading.Lock()

    def open_handle(self, interface_name: str, fd: bool) -> Handle:
        iface = str(interface_name)
        if iface.startswith(_PREFIX):
            iface = iface[len(_PREFIX) :]
        sock = _make_socket(iface, can_fd=fd, receive_own_messages=self._receive_own_messages)
        with self._lock:
            handle = Handle(next(self._handle_counter))
            self._channels[handle] = _Channel(sock=sock, iface=iface, fd=bool(fd))
        _logger.info("%s: opened %r as handle %d (fd=%s)", self, iface, handle, fd)
        return handle

    def send_frame(self, handle: Handle, frame: Frame) -> None:
        ch = self._get_channel(handle)
        native = _compile_native_frame(frame)
        _, writable, _ = select.select((), (ch.sock,), (), self._send_timeout)
        if not writable:
            raise OSError(errno.ETIMEDOUT, f"Transmission queue of {ch.iface} is full")
        ch.sock.send(native)

    def read_frame(self, handle: Handle, timeout: float) -> Frame:
        ch = self._get_channel(handle)
        readable, _, _ = select.select((ch.sock,), (), (), max(0.0, float(timeout)))
        if readable:
            try:
                return _parse_native_frame(ch.sock.recv(_NativeFrameSize.CAN_FD))
            except BlockingIOError:
                pass
        raise ReceiveTimeoutError(f"No frame received from {ch.iface} within {timeout:.3f} s")

    def install_filters(self, handle: Handle, filters: typing.Sequence[Filter]) -> None:
        ch = self._get_channel(handle)
        _logger.debug(
            "%s: acceptance filters on %s: %s", self, ch.iface, ", ".join(map(str, filters)) or "(accept all)"
        )
        ch.sock.setsockopt(socket.SOL_CAN_RAW, _CAN_RAW_FILTER, _compile_filters(filters))

    def clear_filters(self, handle: Handle) -> None:
        self.install_filters(handle, ())

    def close_handle(self, handle: Handle) -> None:
        with self._lock:
            try:
                ch = self._channels.pop(handle)
            except KeyError:
                raise LookupError(f"Handle {handle} is not open") from None
        _logger.info("%s: closing handle %d on %s", self, handle, ch.iface)
        ch.sock.close()

    def _get_channel(self, handle: Handle) -> _Channel:
        with self._lock:
            try:
                return self._channels[handle]
            except KeyError:
                raise LookupError(f"Handle {handle} is not open") from None


class _Channel(typing.NamedTuple):
    sock: socket.socket
    iface: str
    fd: bool


class _NativeFrameSize(enum.IntEnum):
    CAN_CLASSIC = 16
    CAN_FD = 72


# struct can_frame {
#     canid_t can_id;  /* 32 bit CAN_ID + EFF/RTR/ERR flags */
#     __u8    can_dlc; /* data length code: 0 .. 8 */
#     __u8    data[8] __attribute__((aligned(8)));
# };
# struct canfd_frame {
#     canid_t can_id;  /* 32 bit CAN_ID + EFF/RTR/ERR flags */
#     __u8    len;     /* frame payload length in byte */
#     __u8    flags;   /* additional flags for CAN FD */
#     __u8    __res0;  /* reserved / padding */
#     __u8    __res1;  /* reserved / padding */
#     __u8    data[CANFD_MAX_DLEN] __attribute__((aligned(8)));
# };
_FRAME_HEADER_STRUCT = struct.Struct("=IBB2x")  # Using standard size because the native definition relies on stdint.h
_FILTER_STRUCT = struct.Struct("=II")  # struct can_filter { canid_t can_id; canid_t can_mask; };
_ERR_MASK_STRUCT = struct.Struct("=I")

_PREFIX = "socketcan:"

# From the Linux kernel; not all of them are exposed via the Python's socket module
_CAN_RAW_FILTER = 1
_CAN_RAW_ERR_FILTER = 2
_CAN_RAW_RECV_OWN_MSGS = 4
_CAN_RAW_FD_FRAMES = 5

_CANFD_BRS = 1

_CAN_EFF_FLAG = 0x80000000
_CAN_RTR_FLAG = 0x40000000
_CAN_ERR_FLAG = 0x20000000
_CAN_INV_FILTER = 0x20000000

_CAN_EFF_MASK = 0x1FFFFFFF
_CAN_ERR_MASK = 0x1FFFFFFF


def _compile_native_frame(frame: Frame) -> bytes:
    ident = frame.identifier | (_CAN_EFF_FLAG if frame.format == FrameFormat.EXTENDED else 0)
    if isinstance(frame, RemoteFrame):
        header = _FRAME_HEADER_STRUCT.pack(ident | _CAN_RTR_FLAG, frame.dlc, 0)
        return header + bytes(MAX_CLASSIC_DATA_LENGTH)
    if isinstance(frame, FDFrame):
        data = frame.data + bytes(get_required_padding(len(frame.data)))
        header = _FRAME_HEADER_STRUCT.pack(ident, len(data), _CANFD_BRS)
        return header + data.ljust(_NativeFrameSize.CAN_FD - _FRAME_HEADER_STRUCT.size, b"\x00")
    if isinstance(frame, DataFrame):
        header = _FRAME_HEADER_STRUCT.pack(ident, len(frame.data), 0)
        return header + frame.data.ljust(MAX_CLASSIC_DATA_LENGTH, b"\x00")
    raise ValueError(f"Cannot transmit {frame!r}")


def _parse_native_frame(source: bytes) -> Frame:
    header_size = _FRAME_HEADER_STRUCT.size
    ident_raw, data_length, _flags = _FRAME_HEADER_STRUCT.unpack(source[:header_size])
    frame_format = FrameFormat.EXTENDED if ident_raw & _CAN_EFF_FLAG else FrameFormat.BASE
    data = source[header_size : header_size + data_length]
    if ident_raw & _CAN_ERR_FLAG:
        _logger.debug("Error frame received: id_raw=%08x", ident_raw)
        return ErrorFrame(FrameFormat.EXTENDED, ident_raw & _CAN_ERR_MASK, data[:MAX_CLASSIC_DATA_LENGTH])
    ident = ident_raw & _CAN_EFF_MASK
    if ident_raw & _CAN_RTR_FLAG:
        return RemoteFrame(frame_format, ident, dlc=min(data_length, MAX_CLASSIC_DATA_LENGTH))
    if len(source) == _NativeFrameSize.CAN_FD:
        return FDFrame(frame_format, ident, data)
    if len(source) == _NativeFrameSize.CAN_CLASSIC:
        return DataFrame(frame_format, ident, data)
    raise OSError(errno.EPROTO, f"Unexpected native frame size: {len(source)} bytes")


def _compile_filters(filters: typing.Sequence[Filter]) -> bytes:
    if not filters:
        return _FILTER_STRUCT.pack(0, 0)  # An empty filter list would block all frames.
    out = b""
    for f in filters:
        # The EFF flag is not included into the mask so that the identifier alone is compared.
        out += _FILTER_STRUCT.pack(f.identifier | (_CAN_INV_FILTER if f.invert else 0), f.mask)
    return out


def _make_socket(iface_name: str, can_fd: bool, receive_own_messages: bool) -> socket.socket:
    s = socket.socket(socket.PF_CAN, socket.SOCK_RAW, socket.CAN_RAW)  # type: ignore
    try:
        s.bind((iface_name,))
        if can_fd:
            s.setsockopt(socket.SOL_CAN_RAW, _CAN_RAW_FD_FRAMES, 1)  # type: ignore
        if receive_own_messages:
            s.setsockopt(socket.SOL_CAN_RAW, _CAN_RAW_RECV_OWN_MSGS, 1)  # type: ignore
        s.setsockopt(socket.SOL_CAN_RAW, _CAN_RAW_ERR_FILTER, _ERR_MASK_STRUCT.pack(_CAN_ERR_MASK))  # type: ignore

        s.setblocking(False)

        if 0 != s.getsockopt(socket.SOL_SOCKET, socket.SO_ERROR):
            raise OSError("Could not configure the socket: getsockopt(SOL_SOCKET, SO_ERROR) != 0")
    except BaseException:
        with contextlib.suppress(Exception):
            s.close()
        raise

    return s


def _unittest_socketcan_native_frames() -> None:
    from pytest import raises
    from ..._frame import ErrorClass

    native = _compile_native_frame(DataFrame(FrameFormat.BASE, 0x123, b"\x01\x02\x03\x04"))
    assert native == bytes.fromhex("23010000" "04000000" "0102030400000000")
    assert _parse_native_frame(native) == DataFrame(FrameFormat.BASE, 0x123, b"\x01\x02\x03\x04")

    native = _compile_native_frame(DataFrame(FrameFormat.EXTENDED, 0x123, b""))
    assert native[:4] == bytes.fromhex("23010080")
    assert _parse_native_frame(native) == DataFrame(FrameFormat.EXTENDED, 0x123, b"")

    native = _compile_native_frame(RemoteFrame(FrameFormat.BASE, 0x7FF, dlc=6))
    assert native[:5] == bytes.fromhex("ff070040" "06")
    assert _parse_native_frame(native) == RemoteFrame(FrameFormat.BASE, 0x7FF, dlc=6)

    native = _compile_native_frame(FDFrame(FrameFormat.EXTENDED, 0x1BADC0DE, bytes(range(10))))
    assert len(native) == _NativeFrameSize.CAN_FD
    assert native[4:6] == bytes([12, _CANFD_BRS])  # Padded up to the next valid length
    assert _parse_native_frame(native) == FDFrame(FrameFormat.EXTENDED, 0x1BADC0DE, bytes(range(10)) + bytes(2))

    err = _parse_native_frame(_FRAME_HEADER_STRUCT.pack(_CAN_ERR_FLAG | 0x40, 8, 0) + bytes(8))
    assert isinstance(err, ErrorFrame) and err.error_classes == ErrorClass.BUS_OFF

    with raises(ValueError):
        _compile_native_frame(ErrorFrame(FrameFormat.EXTENDED, 0x40))
    with raises(OSError):
        _parse_native_frame(_FRAME_HEADER_STRUCT.pack(0x123, 0, 0) + bytes(4))


def _unittest_socketcan_filters() -> None:
    assert _compile_filters([]) == bytes(8)
    assert _compile_filters([Filter(0x120, 0x7F0)]) == _FILTER_STRUCT.pack(0x120, 0x7F0)
    assert _compile_filters([Filter(0x120, 0x7F0, invert=True), Filter(0x1234, 0x1FFFFFFF, FrameFormat.EXTENDED)]) == (
        _FILTER_STRUCT.pack(0x20000120, 0x7F0) + _FILTER_STRUCT.pack(0x1234, 0x1FFFFFFF)
    )
