# Copyright (c) 2026 cansession contributors
# This software is distributed under the terms of the MIT License.

from __future__ import annotations
import enum
import typing
import dataclasses
from . import util
from ._error import InvalidIdentifierError, PayloadTooLongError, InvalidByteError, IncompatibleFlagsError


MAX_STANDARD_ID = 0x7FF
MAX_EXTENDED_ID = 0x1FFFFFFF

MAX_CLASSIC_DATA_LENGTH = 8
MAX_FD_DATA_LENGTH = 64

PayloadLike = typing.Union[bytes, bytearray, memoryview, typing.Iterable[int]]
"""
Anything that can be used as a frame payload: a bytes-like object or an iterable of integers in [0, 255].
"""


class FrameFormat(enum.IntEnum):
    """
    The value is the number of significant bits in the identifier.
    """

    BASE = 11
    EXTENDED = 29

    @property
    def max_identifier(self) -> int:
        return int(2 ** int(self) - 1)

    @staticmethod
    def infer(identifier: int) -> FrameFormat:
        """
        Identifiers that do not fit into 11 bits require the extended format.

        >>> FrameFormat.infer(0x7FF).name
        'BASE'
        >>> FrameFormat.infer(0x800).name
        'EXTENDED'
        """
        return FrameFormat.EXTENDED if identifier > MAX_STANDARD_ID else FrameFormat.BASE


class FrameKind(enum.Enum):
    """
    The four wire-level variants. Every frame belongs to exactly one of them.
    """

    DATA = "data"
    FD = "fd"
    REMOTE = "remote"
    ERROR = "error"


class ErrorClass(enum.IntFlag):
    """
    Error class bits carried in the identifier of an error frame (see ``linux/can/error.h``).
    """

    TX_TIMEOUT = 0x001
    LOST_ARBITRATION = 0x002
    CONTROLLER = 0x004
    PROTOCOL = 0x008
    TRANSCEIVER = 0x010
    NO_ACK = 0x020
    BUS_OFF = 0x040
    BUS_ERROR = 0x080
    RESTARTED = 0x100


@dataclasses.dataclass(frozen=True)
class Identifier:
    """
    A frame identifier tagged with its format.
    A plain integer can be used instead wherever an identifier is expected;
    in that case the format is inferred from the magnitude of the value.

    >>> Identifier.standard(0x123)
    Identifier(value=0x123, format=BASE)
    >>> Identifier.infer(0x12345)
    Identifier(value=0x00012345, format=EXTENDED)
    >>> Identifier.standard(0x800)
    Traceback (most recent call last):
      ...
    cansession._error.InvalidIdentifierError: Invalid standard identifier: 0x800; the valid range is [0, 0x7ff]
    """

    value: int
    format: FrameFormat

    def __post_init__(self) -> None:
        _check_identifier(self.value, self.format)

    @property
    def is_extended(self) -> bool:
        return self.format == FrameFormat.EXTENDED

    @staticmethod
    def standard(value: int) -> Identifier:
        return Identifier(value, FrameFormat.BASE)

    @staticmethod
    def extended(value: int) -> Identifier:
        return Identifier(value, FrameFormat.EXTENDED)

    @staticmethod
    def infer(value: int) -> Identifier:
        return Identifier(value, FrameFormat.infer(value))

    def __int__(self) -> int:
        return self.value

    def __repr__(self) -> str:
        return util.repr_attributes(self, value=_format_identifier(self.value, self.format), format=self.format.name)


@dataclasses.dataclass(frozen=True)
class Frame:
    """
    The common part of all frame variants. Instances are immutable and always valid:
    every invariant is checked at construction time.

    Do not instantiate this class directly; use one of :class:`DataFrame`, :class:`FDFrame`,
    :class:`RemoteFrame`, :class:`ErrorFrame`.
    """

    format: FrameFormat
    identifier: int

    KIND: typing.ClassVar[FrameKind]

    def __post_init__(self) -> None:
        if type(self) is Frame:  # pylint: disable=unidiomatic-typecheck
            raise TypeError("Frame is abstract; use one of the concrete frame variants")
        if not isinstance(self.format, FrameFormat):
            raise TypeError(f"Expected FrameFormat, got {self.format!r}")
        _check_identifier(self.identifier, self.format)
        object.__setattr__(self, "identifier", int(self.identifier))

    @property
    def kind(self) -> FrameKind:
        return self.KIND

    @property
    def extended(self) -> bool:
        return self.format == FrameFormat.EXTENDED

    @property
    def is_fd(self) -> bool:
        return self.KIND == FrameKind.FD

    @property
    def is_remote(self) -> bool:
        return self.KIND == FrameKind.REMOTE

    @property
    def is_error(self) -> bool:
        return self.KIND == FrameKind.ERROR

    @property
    def data(self) -> bytes:
        raise NotImplementedError

    @property
    def dlc(self) -> int:
        """
        The data length code that goes on the wire. Not to be confused with ``len(data)``.
        """
        raise NotImplementedError

    def __repr__(self) -> str:
        return util.repr_attributes(
            self, id=_format_identifier(self.identifier, self.format), data=self.data.hex() or "''"
        )


@dataclasses.dataclass(frozen=True, repr=False)
class DataFrame(Frame):
    """
    Classic CAN data frame carrying up to 8 bytes.

    >>> DataFrame(FrameFormat.BASE, 0x123, [1, 2, 3, 4])
    DataFrame(id=0x123, data=01020304)
    >>> DataFrame(FrameFormat.BASE, 0x123, bytes(9))
    Traceback (most recent call last):
      ...
    cansession._error.PayloadTooLongError: Classic CAN data cannot exceed 8 bytes; got 9
    """

    data: bytes = b""  # type: ignore

    KIND = FrameKind.DATA

    def __post_init__(self) -> None:
        super().__post_init__()
        object.__setattr__(self, "data", _coerce_bounded(self.data, MAX_CLASSIC_DATA_LENGTH, "Classic CAN data"))

    @property
    def dlc(self) -> int:
        return len(self.data)


@dataclasses.dataclass(frozen=True, repr=False)
class FDFrame(Frame):
    """
    CAN FD data frame carrying up to 64 bytes.
    Any length in [0, 64] is accepted and stored as-is; lengths that are not representable by a DLC
    are padded up to the next valid length by the driver when the frame is transmitted.

    >>> f = FDFrame(FrameFormat.EXTENDED, 0x1BADC0DE, bytes(range(10)))
    >>> f.dlc, convert_dlc_to_length(f.dlc)
    (9, 12)
    """

    data: bytes = b""  # type: ignore

    KIND = FrameKind.FD

    def __post_init__(self) -> None:
        super().__post_init__()
        object.__setattr__(self, "data", _coerce_bounded(self.data, MAX_FD_DATA_LENGTH, "CAN FD data"))

    @property
    def dlc(self) -> int:
        return convert_length_to_dlc(len(self.data))


@dataclasses.dataclass(frozen=True, repr=False)
class RemoteFrame(Frame):
    """
    Remote transmission request. There is no payload; the DLC tells the addressed node how many bytes
    are requested. CAN FD does not have remote frames.
    """

    dlc: int = 0  # type: ignore

    KIND = FrameKind.REMOTE

    def __post_init__(self) -> None:
        super().__post_init__()
        if isinstance(self.dlc, bool) or not isinstance(self.dlc, int):
            raise PayloadTooLongError(f"The DLC of a remote frame shall be an integer; got {self.dlc!r}")
        if not (0 <= self.dlc <= MAX_CLASSIC_DATA_LENGTH):
            raise PayloadTooLongError(
                f"The DLC of a remote frame shall be between 0 and {MAX_CLASSIC_DATA_LENGTH}; got {self.dlc}"
            )

    @property
    def data(self) -> bytes:
        return b""

    def __repr__(self) -> str:
        return util.repr_attributes(self, id=_format_identifier(self.identifier, self.format), dlc=self.dlc)


@dataclasses.dataclass(frozen=True, repr=False)
class ErrorFrame(Frame):
    """
    Error report generated by the CAN controller or its driver. The identifier holds the :class:`ErrorClass`
    bits, the payload holds the details. Error frames are only ever received; they cannot be transmitted.
    The error class field is 29 bits wide, so the format is always :attr:`FrameFormat.EXTENDED`.

    >>> f = ErrorFrame(FrameFormat.EXTENDED, ErrorClass.BUS_OFF | ErrorClass.RESTARTED)
    >>> f.is_bus_off
    True
    """

    data: bytes = b""  # type: ignore

    KIND = FrameKind.ERROR

    def __post_init__(self) -> None:
        super().__post_init__()
        if self.format != FrameFormat.EXTENDED:
            raise IncompatibleFlagsError(f"Error frames are always extended, got {self.format.name}")
        object.__setattr__(self, "data", _coerce_bounded(self.data, MAX_CLASSIC_DATA_LENGTH, "Error frame data"))

    @property
    def dlc(self) -> int:
        return len(self.data)

    @property
    def error_classes(self) -> ErrorClass:
        mask = 0
        for member in ErrorClass:
            mask |= int(member)
        return ErrorClass(self.identifier & mask)

    @property
    def is_bus_off(self) -> bool:
        return bool(self.error_classes & ErrorClass.BUS_OFF)


FRAME_TYPES: typing.Dict[FrameKind, typing.Type[Frame]] = {
    FrameKind.DATA: DataFrame,
    FrameKind.FD: FDFrame,
    FrameKind.REMOTE: RemoteFrame,
    FrameKind.ERROR: ErrorFrame,
}


def coerce_payload(payload: PayloadLike) -> bytes:
    """
    Converts any supported payload representation into immutable bytes.

    >>> coerce_payload([0xDE, 0xAD])
    b'\\xde\\xad'
    >>> coerce_payload([1, 256])
    Traceback (most recent call last):
      ...
    cansession._error.InvalidByteError: Invalid byte: 256; each byte must be an integer between 0 and 255
    """
    if isinstance(payload, bytes):
        return payload
    if isinstance(payload, (bytearray, memoryview)):
        return bytes(payload)
    if isinstance(payload, str):
        raise InvalidByteError(f"A string is not a valid payload: {payload!r}")
    out = bytearray()
    try:
        items = iter(payload)
    except TypeError:
        raise InvalidByteError(f"The payload shall be bytes-like or an iterable of integers; got {payload!r}") from None
    for b in items:
        if isinstance(b, bool) or not isinstance(b, int) or not (0 <= b <= 0xFF):
            raise InvalidByteError(f"Invalid byte: {b!r}; each byte must be an integer between 0 and 255")
        out.append(b)
    return bytes(out)


def convert_dlc_to_length(dlc: int) -> int:
    try:
        return _DLC_TO_LENGTH[dlc]
    except LookupError:
        raise ValueError(f"{dlc} is not a valid DLC") from None


def convert_length_to_dlc(length: int) -> int:
    """
    Lengths that have no exact DLC are rounded up to the nearest one.

    >>> convert_length_to_dlc(8), convert_length_to_dlc(9), convert_length_to_dlc(64)
    (8, 9, 15)
    """
    for dlc, supremum in enumerate(_DLC_TO_LENGTH):
        if supremum >= length:
            return dlc
    raise ValueError(f"Data length {length} exceeds {MAX_FD_DATA_LENGTH} bytes")


def get_required_padding(length: int) -> int:
    """
    Number of padding bytes needed to reach the nearest valid CAN FD frame size.

    >>> get_required_padding(6)
    0
    >>> get_required_padding(61)
    3
    """
    return convert_dlc_to_length(convert_length_to_dlc(length)) - length


def _check_identifier(identifier: int, frame_format: FrameFormat) -> None:
    kind = "extended" if frame_format == FrameFormat.EXTENDED else "standard"
    if isinstance(identifier, bool) or not isinstance(identifier, int):
        raise InvalidIdentifierError(f"The {kind} identifier shall be an integer; got {identifier!r}")
    if not (0 <= identifier <= frame_format.max_identifier):
        raise InvalidIdentifierError(
            f"Invalid {kind} identifier: {identifier:#x}; the valid range is [0, {frame_format.max_identifier:#x}]"
        )


def _coerce_bounded(payload: PayloadLike, limit: int, what: str) -> bytes:
    if not isinstance(payload, (bytes, bytearray, memoryview, list, tuple)):
        try:
            payload = list(payload)
        except TypeError:
            raise InvalidByteError(
                f"The payload shall be bytes-like or an iterable of integers; got {payload!r}"
            ) from None
    if len(payload) > limit:  # type: ignore
        raise PayloadTooLongError(f"{what} cannot exceed {limit} bytes; got {len(payload)}")  # type: ignore
    return coerce_payload(payload)


def _format_identifier(identifier: int, frame_format: FrameFormat) -> str:
    return ("0x%08x" if frame_format == FrameFormat.EXTENDED else "0x%03x") % identifier


_DLC_TO_LENGTH = [0, 1, 2, 3, 4, 5, 6, 7, 8, 12, 16, 20, 24, 32, 48, 64]


def _unittest_frame_invariants() -> None:
    from pytest import raises

    for fmt in FrameFormat:
        with raises(InvalidIdentifierError):
            DataFrame(fmt, -1)
        with raises(InvalidIdentifierError):
            DataFrame(fmt, 2 ** int(fmt))
        assert DataFrame(fmt, 2 ** int(fmt) - 1).identifier == fmt.max_identifier

    with raises(TypeError):
        Frame(FrameFormat.BASE, 0)

    with raises(PayloadTooLongError):
        DataFrame(FrameFormat.EXTENDED, 123, bytes(9))
    with raises(PayloadTooLongError):
        FDFrame(FrameFormat.EXTENDED, 123, bytes(65))
    with raises(PayloadTooLongError):
        ErrorFrame(FrameFormat.EXTENDED, 123, bytes(9))
    with raises(PayloadTooLongError):
        RemoteFrame(FrameFormat.BASE, 123, dlc=9)
    with raises(PayloadTooLongError):
        RemoteFrame(FrameFormat.BASE, 123, dlc=-1)
    with raises(InvalidByteError):
        DataFrame(FrameFormat.BASE, 123, [1, -2])
    with raises(InvalidByteError):
        DataFrame(FrameFormat.BASE, 123, [1, 2.0])  # type: ignore

    f = DataFrame(FrameFormat.BASE, 0x123, bytearray(b"\x01\x02"))
    assert isinstance(f.data, bytes)
    assert f == DataFrame(FrameFormat.BASE, 0x123, [1, 2])
    assert f != FDFrame(FrameFormat.BASE, 0x123, [1, 2])
    assert not f.extended and f.kind == FrameKind.DATA and not (f.is_fd or f.is_remote or f.is_error)

    r = RemoteFrame(FrameFormat.EXTENDED, 0x12345, dlc=4)
    assert r.data == b"" and r.dlc == 4 and r.is_remote and r.extended
    assert repr(r) == "RemoteFrame(id=0x00012345, dlc=4)"

    e = ErrorFrame(FrameFormat.EXTENDED, int(ErrorClass.NO_ACK), b"\x00\x04")
    assert e.error_classes == ErrorClass.NO_ACK
    assert not e.is_bus_off
    assert e.is_error and e.kind == FrameKind.ERROR
    with raises(IncompatibleFlagsError):
        ErrorFrame(FrameFormat.BASE, 0x40)

    assert {FRAME_TYPES[k].KIND for k in FrameKind} == set(FrameKind)


def _unittest_frame_dlc() -> None:
    from pytest import raises

    with raises(ValueError):
        convert_dlc_to_length(16)
    with raises(ValueError):
        convert_length_to_dlc(65)

    for length in range(MAX_FD_DATA_LENGTH + 1):
        f = FDFrame(FrameFormat.EXTENDED, 123, bytes(length))
        padded = convert_dlc_to_length(f.dlc)
        assert padded >= length
        assert padded - length == get_required_padding(length)
        if length in _DLC_TO_LENGTH:
            assert padded == length
