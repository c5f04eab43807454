# Copyright (c) 2026 cansession contributors
# This software is distributed under the terms of the MIT License.

from __future__ import annotations
import typing
import logging
import itertools
import threading
import dataclasses
import collections
import can  # type: ignore
from ..._error import InvalidConfigurationError, ReceiveTimeoutError
from ..._frame import Frame, DataFrame, FDFrame, RemoteFrame, ErrorFrame, FrameFormat
from ..._frame import MAX_EXTENDED_ID, MAX_CLASSIC_DATA_LENGTH, get_required_padding
from ..._filter import Filter
from .._driver import Driver, Handle


_logger = logging.getLogger(__name__)

Bitrate = typing.Union[int, typing.Tuple[int, int]]


class PythonCANDriver(Driver):
    """
    Driver adapter for `python-can <https://python-can.readthedocs.io/>`_.
    It is usable with all host platforms supported by python-can (GNU/Linux, Windows, macOS).
    Please refer to the python-can documentation for information about supported CAN hardware, its configuration,
    and how to install the dependencies properly.

    The interface name consists of the python-can interface module name and its channel, separated with a colon.
    Some interfaces get special treatment:

    - ``socketcan``: the bit rate is not configured (it is a property of the network interface);
      it is only used to select Classic/FD mode. Example: ``socketcan:vcan0``.
    - ``kvaser``: Example: ``kvaser:0``.
    - ``slcan``: only Classic CAN is supported. Example: ``slcan:/dev/ttyACM0``.
    - ``pcan``: ensure that PCAN-Basic is installed. Example: ``pcan:PCAN_USBBUS1``.
    - ``virtual``: the in-process bus of python-can, convenient for testing. Example: ``virtual:0``.
    - ``usb2can``: only Classic CAN is supported. Example: ``usb2can:ED000100``.

    Any other python-can interface is constructed generically by passing the channel and the bit rate.

    >>> driver = PythonCANDriver(receive_own_messages=True)
    >>> h = driver.open_handle("virtual:doctest", fd=False)
    >>> driver.send_frame(h, DataFrame(FrameFormat.BASE, 0x123, b"\\x01\\x02"))
    >>> driver.read_frame(h, 1.0)
    DataFrame(id=0x123, data=0102)
    >>> driver.close_handle(h)
    """

    def __init__(
        self,
        bitrate: typing.Optional[Bitrate] = None,
        *,
        receive_own_messages: bool = False,
        send_timeout: float = 1.0,
    ) -> None:
        """
        :param bitrate: Bit rate value in bauds; either a single integer or a tuple:

            - A single integer is the nominal bit rate. In FD mode it is also used for the data phase.
            - A tuple of two defines the arbitration (nominal) bit rate and the data phase bit rate.
            - None leaves the bit rate at the default of the interface.

        :param receive_own_messages: Request the interface to deliver the frames sent through the same handle
            back to it. This is what the loopback option of the session factory enables.

        :param send_timeout: Seconds to wait for the transmit queue of the interface before giving up.
        """
        if bitrate is None or isinstance(bitrate, tuple):
            self._bitrate = bitrate
        else:
            self._bitrate = int(bitrate)
        self._receive_own_messages = bool(receive_own_messages)
        self._send_timeout = float(send_timeout)
        self._buses: typing.Dict[Handle, can.BusABC] = {}
        self._handle_counter = itertools.count(1)
        self._lock = threading.Lock()

    @property
    def open_handles(self) -> typing.List[Handle]:
        with self._lock:
            return list(self._buses)

    def open_handle(self, interface_name: str, fd: bool) -> Handle:
        params = _InterfaceParameters.parse(interface_name, fd=fd, bitrate=self._bitrate)
        params = dataclasses.replace(params, receive_own_messages=self._receive_own_messages)
        bus = _CONSTRUCTORS[params.interface_name](params)
        with self._lock:
            handle = Handle(next(self._handle_counter))
            self._buses[handle] = bus
        _logger.info("%s: opened %r as handle %d (fd=%s)", self, interface_name, handle, fd)
        return handle

    def send_frame(self, handle: Handle, frame: Frame) -> None:
        message = _make_native_frame(frame)
        _logger.debug("%s: handle %d sending %s", self, handle, message)
        self._get_bus(handle).send(message, timeout=self._send_timeout)

    def read_frame(self, handle: Handle, timeout: float) -> Frame:
        msg = self._get_bus(handle).recv(max(0.0, float(timeout)))
        if msg is None:
            raise ReceiveTimeoutError(f"No frame received within {timeout:.3f} s")
        return _parse_native_frame(msg)

    def install_filters(self, handle: Handle, filters: typing.Sequence[Filter]) -> None:
        bus = self._get_bus(handle)
        if any(f.invert for f in filters):
            # Inverted filters are not expressible in python-can; the session filters in-process.
            _logger.debug("%s: inverted filters are emulated in software: %s", self, ", ".join(map(str, filters)))
            bus.set_filters(None)
            return
        # The "extended" key is omitted so that the identifier alone is compared, as in the kernel.
        native = [{"can_id": f.identifier, "can_mask": f.mask} for f in filters]
        _logger.debug("%s: acceptance filters activated: %s", self, ", ".join(map(str, filters)) or "(none)")
        bus.set_filters(native or None)

    def clear_filters(self, handle: Handle) -> None:
        self._get_bus(handle).set_filters(None)

    def close_handle(self, handle: Handle) -> None:
        with self._lock:
            try:
                bus = self._buses.pop(handle)
            except KeyError:
                raise LookupError(f"Handle {handle} is not open") from None
        _logger.info("%s: closing handle %d", self, handle)
        bus.shutdown()

    def _get_bus(self, handle: Handle) -> can.BusABC:
        with self._lock:
            try:
                return self._buses[handle]
            except KeyError:
                raise LookupError(f"Handle {handle} is not open") from None

    def __repr__(self) -> str:
        return f"{type(self).__name__}(bitrate={self._bitrate!r})"


def _make_native_frame(frame: Frame) -> can.Message:
    if isinstance(frame, RemoteFrame):
        return can.Message(
            arbitration_id=frame.identifier,
            is_extended_id=frame.extended,
            is_remote_frame=True,
            dlc=frame.dlc,
        )
    if isinstance(frame, FDFrame):
        return can.Message(
            arbitration_id=frame.identifier,
            is_extended_id=frame.extended,
            data=frame.data + bytes(get_required_padding(len(frame.data))),
            is_fd=True,
        )
    if isinstance(frame, DataFrame):
        return can.Message(arbitration_id=frame.identifier, is_extended_id=frame.extended, data=frame.data)
    raise ValueError(f"Cannot transmit {frame!r}")


def _parse_native_frame(msg: can.Message) -> Frame:
    frame_format = FrameFormat.EXTENDED if msg.is_extended_id else FrameFormat.BASE
    if msg.is_error_frame:
        _logger.debug("Error frame received: id_raw=%08x", msg.arbitration_id)
        return ErrorFrame(
            FrameFormat.EXTENDED, msg.arbitration_id & MAX_EXTENDED_ID, bytes(msg.data)[:MAX_CLASSIC_DATA_LENGTH]
        )
    if msg.is_remote_frame:
        return RemoteFrame(frame_format, msg.arbitration_id, dlc=min(int(msg.dlc), MAX_CLASSIC_DATA_LENGTH))
    if msg.is_fd:
        return FDFrame(frame_format, msg.arbitration_id, bytes(msg.data))
    return DataFrame(frame_format, msg.arbitration_id, bytes(msg.data))


@dataclasses.dataclass(frozen=True)
class _InterfaceParameters:
    interface_name: str
    channel_name: str
    fd: bool
    bitrate: typing.Optional[typing.Tuple[int, int]]
    receive_own_messages: bool = False

    @staticmethod
    def parse(name: str, fd: bool, bitrate: typing.Optional[Bitrate]) -> _InterfaceParameters:
        iface, sep, channel = str(name).partition(":")
        if not sep or not iface:
            raise InvalidConfigurationError(f"Interface name {name!r} does not match the format 'interface:channel'")
        pair: typing.Optional[typing.Tuple[int, int]]
        if bitrate is None:
            pair = None
        elif isinstance(bitrate, tuple):
            if len(bitrate) != 2:
                raise InvalidConfigurationError(f"Expected one or two bit rate values, got {bitrate!r}")
            pair = int(bitrate[0]), int(bitrate[1])
        else:
            pair = int(bitrate), int(bitrate)
        return _InterfaceParameters(interface_name=iface, channel_name=channel, fd=bool(fd), bitrate=pair)

    @property
    def common(self) -> typing.Dict[str, typing.Any]:
        return {
            "interface": self.interface_name,
            "channel": self.channel_name or None,
            "receive_own_messages": self.receive_own_messages,
        }


def _construct_socketcan(parameters: _InterfaceParameters) -> can.ThreadSafeBus:
    return can.ThreadSafeBus(**parameters.common, fd=parameters.fd)


def _construct_kvaser(parameters: _InterfaceParameters) -> can.ThreadSafeBus:
    kwargs = parameters.common
    if parameters.bitrate is not None:
        kwargs["bitrate"] = parameters.bitrate[0]
        if parameters.fd:
            kwargs["data_bitrate"] = parameters.bitrate[1]
    return can.ThreadSafeBus(**kwargs, fd=parameters.fd)


def _construct_classic_only(parameters: _InterfaceParameters) -> can.ThreadSafeBus:
    if parameters.fd:
        raise InvalidConfigurationError(f"Interface does not support CAN FD: {parameters.interface_name}")
    kwargs = parameters.common
    if parameters.bitrate is not None:
        kwargs["bitrate"] = parameters.bitrate[0]
    return can.ThreadSafeBus(**kwargs)


def _construct_pcan(parameters: _InterfaceParameters) -> can.ThreadSafeBus:
    kwargs = parameters.common
    if not parameters.fd:
        if parameters.bitrate is not None:
            kwargs["bitrate"] = parameters.bitrate[0]
        return can.ThreadSafeBus(**kwargs)
    if parameters.bitrate is None:
        raise InvalidConfigurationError("PCAN in CAN FD mode requires the nominal and data bit rates")
    # PCAN does not accept the bit rate directly in FD mode; the timing is defined through the prescalers.
    # These segment lengths are applicable to most popular bit rates.
    f_clock = 40000000
    nom_tseg1, nom_tseg2, nom_sjw = 3, 1, 1
    data_tseg1, data_tseg2, data_sjw = 3, 1, 1
    return can.ThreadSafeBus(
        **kwargs,
        f_clock=f_clock,
        nom_brp=int(f_clock / parameters.bitrate[0] / (nom_tseg1 + nom_tseg2 + nom_sjw)),
        data_brp=int(f_clock / parameters.bitrate[1] / (data_tseg1 + data_tseg2 + data_sjw)),
        nom_tseg1=nom_tseg1,
        nom_tseg2=nom_tseg2,
        nom_sjw=nom_sjw,
        data_tseg1=data_tseg1,
        data_tseg2=data_tseg2,
        data_sjw=data_sjw,
        fd=True,
    )


def _construct_virtual(parameters: _InterfaceParameters) -> can.ThreadSafeBus:
    # The virtual bus carries CAN FD frames regardless of the configuration.
    return can.ThreadSafeBus(**parameters.common)


def _construct_any(parameters: _InterfaceParameters) -> can.ThreadSafeBus:
    kwargs = parameters.common
    if parameters.bitrate is not None:
        kwargs["bitrate"] = parameters.bitrate[0]
        if parameters.fd:
            kwargs["data_bitrate"] = parameters.bitrate[1]
    return can.ThreadSafeBus(**kwargs, fd=parameters.fd)


_CONSTRUCTORS: typing.DefaultDict[
    str, typing.Callable[[_InterfaceParameters], can.ThreadSafeBus]
] = collections.defaultdict(
    lambda: _construct_any,
    {
        "socketcan": _construct_socketcan,
        "kvaser": _construct_kvaser,
        "slcan": _construct_classic_only,
        "pcan": _construct_pcan,
        "virtual": _construct_virtual,
        "usb2can": _construct_classic_only,
    },
)


def _unittest_pythoncan_native_frames() -> None:
    from pytest import raises
    from ..._frame import ErrorClass

    frames: typing.List[Frame] = [
        DataFrame(FrameFormat.BASE, 0x123, b"\x01\x02\x03\x04"),
        DataFrame(FrameFormat.EXTENDED, 0x10, b""),
        FDFrame(FrameFormat.EXTENDED, 0x1BADC0DE, bytes(range(64))),
        RemoteFrame(FrameFormat.BASE, 0x7FF, dlc=5),
    ]
    for f in frames:
        assert _parse_native_frame(_make_native_frame(f)) == f

    # FD payloads are padded up to the nearest valid length.
    native = _make_native_frame(FDFrame(FrameFormat.BASE, 0x1, bytes(range(9))))
    assert bytes(native.data) == bytes(range(9)) + bytes(3)

    err = _parse_native_frame(
        can.Message(arbitration_id=0x20000040, is_error_frame=True, is_extended_id=True, data=bytes(8))
    )
    assert isinstance(err, ErrorFrame)
    assert err.identifier == 0x40 and err.error_classes == ErrorClass.BUS_OFF

    with raises(ValueError):
        _make_native_frame(ErrorFrame(FrameFormat.EXTENDED, 0x40))


def _unittest_pythoncan_interface_parameters() -> None:
    from pytest import raises

    p = _InterfaceParameters.parse("socketcan:vcan0", fd=True, bitrate=None)
    assert (p.interface_name, p.channel_name, p.fd, p.bitrate) == ("socketcan", "vcan0", True, None)
    p = _InterfaceParameters.parse("slcan:/dev/ttyACM0", fd=False, bitrate=1_000_000)
    assert (p.channel_name, p.bitrate) == ("/dev/ttyACM0", (1_000_000, 1_000_000))
    p = _InterfaceParameters.parse("pcan:PCAN_USBBUS1", fd=True, bitrate=(500_000, 2_000_000))
    assert p.bitrate == (500_000, 2_000_000)
    assert _InterfaceParameters.parse("virtual:", fd=False, bitrate=None).common["channel"] is None

    for bad in ("vcan0", ":vcan0", ""):
        with raises(InvalidConfigurationError):
            _InterfaceParameters.parse(bad, fd=False, bitrate=None)
    with raises(InvalidConfigurationError):
        _InterfaceParameters.parse("virtual:0", fd=False, bitrate=(1, 2, 3))  # type: ignore
    with raises(InvalidConfigurationError):
        _construct_classic_only(_InterfaceParameters.parse("slcan:COM12", fd=True, bitrate=None))
    assert _CONSTRUCTORS["no-such-interface"] is _construct_any
