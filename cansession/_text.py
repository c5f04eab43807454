# Copyright (c) 2026 cansession contributors
# This software is distributed under the terms of the MIT License.

"""
Conversion between frames and the compact textual notation used by ``cansend``/``candump``.
"""

from __future__ import annotations
import re
import random
import typing
from ._error import InvalidFormatError, ValidationError
from ._frame import Frame, DataFrame, FDFrame, RemoteFrame, ErrorFrame, FrameFormat
from ._frame import MAX_STANDARD_ID, MAX_EXTENDED_ID, MAX_CLASSIC_DATA_LENGTH, MAX_FD_DATA_LENGTH


CAN_ERR_FLAG = 0x20000000
"""
Set in the printed identifier of error frames, as in the SocketCAN ``can_id`` field.
"""


def format_frame(frame: Frame) -> str:
    """
    Renders the frame as ``<id>#<data>``. Standard identifiers are printed with 3 hex digits and extended ones
    with 8, so that the format survives a round trip even if an extended identifier is numerically small.

    >>> format_frame(DataFrame(FrameFormat.BASE, 0x123, b"\\xDE\\xAD\\xBE\\xEF"))
    '123#DEADBEEF'
    >>> format_frame(DataFrame(FrameFormat.EXTENDED, 0x123, b""))
    '00000123#'
    >>> format_frame(FDFrame(FrameFormat.BASE, 0x7FF, b"\\x01\\x02"))
    '7FF##00102'
    >>> format_frame(RemoteFrame(FrameFormat.BASE, 0x42, dlc=3))
    '042#R3'
    """
    if isinstance(frame, ErrorFrame):
        return f"{frame.identifier | CAN_ERR_FLAG:08X}#{frame.data.hex().upper()}"
    ident = f"{frame.identifier:08X}" if frame.extended else f"{frame.identifier:03X}"
    if isinstance(frame, RemoteFrame):
        return f"{ident}#R" + (str(frame.dlc) if frame.dlc else "")
    if isinstance(frame, FDFrame):
        return f"{ident}##0{frame.data.hex().upper()}"
    return f"{ident}#{frame.data.hex().upper()}"


def parse_frame(text: str) -> Frame:
    """
    The inverse of :func:`format_frame`. Identifiers are parsed as hexadecimal without a prefix;
    the extended format is selected when the identifier does not fit into 11 bits or when it is written
    with 8 digits. The error flag in an 8-digit identifier denotes an error frame.

    >>> parse_frame("123#DEADBEEF")
    DataFrame(id=0x123, data=deadbeef)
    >>> parse_frame("12345#")
    DataFrame(id=0x00012345, data='')
    >>> parse_frame("123#R8")
    RemoteFrame(id=0x123, dlc=8)
    >>> parse_frame("123#XYZ")
    Traceback (most recent call last):
      ...
    cansession._error.InvalidFormatError: Invalid CAN frame format: '123#XYZ'
    """
    if not isinstance(text, str):
        raise InvalidFormatError(f"Expected a string, got {text!r}")
    match = _FRAME_PATTERN.match(text.strip())
    if not match:
        raise InvalidFormatError(f"Invalid CAN frame format: {text!r}")
    id_text, fd_flags, remote, rtr_dlc, data_text = match.group("id", "fd", "remote", "dlc", "data")
    identifier = int(id_text, 16)
    try:
        if len(id_text) == 8 and identifier & CAN_ERR_FLAG and fd_flags is None and remote is None:
            return ErrorFrame(FrameFormat.EXTENDED, identifier & ~CAN_ERR_FLAG, bytes.fromhex(data_text))
        if identifier > MAX_EXTENDED_ID:
            raise InvalidFormatError(f"Identifier out of range: {text!r}")
        fmt = FrameFormat.EXTENDED if len(id_text) == 8 else FrameFormat.infer(identifier)
        if remote is not None:
            return RemoteFrame(fmt, identifier, dlc=int(rtr_dlc or "0"))
        if len(data_text) % 2 != 0:
            raise InvalidFormatError(f"The data shall consist of two-digit hex groups: {text!r}")
        data = bytes.fromhex(data_text)
        if fd_flags is not None:
            return FDFrame(fmt, identifier, data)
        return DataFrame(fmt, identifier, data)
    except InvalidFormatError:
        raise
    except (ValidationError, ValueError) as ex:
        raise InvalidFormatError(f"Invalid CAN frame {text!r}: {ex}") from ex


def make_random_frame(
    *,
    extended: typing.Optional[bool] = None,
    length: typing.Optional[int] = None,
    id_range: typing.Optional[typing.Tuple[int, int]] = None,
    fd: bool = False,
    rng: typing.Optional[random.Random] = None,
) -> Frame:
    """
    Generates a structurally valid data frame for test fixtures.
    The unspecified properties are chosen randomly: the format is extended with the probability of 20%,
    the identifier is taken from ``id_range`` (inclusive, clipped to the maximum of the format; default starts at 1),
    the payload length is between 1 and 8 (or 64 for CAN FD).
    Pass a seeded :class:`random.Random` to make the output reproducible.

    >>> f = make_random_frame(extended=False, length=4, id_range=(0x100, 0x1FF), rng=random.Random(42))
    >>> 0x100 <= f.identifier <= 0x1FF, len(f.data), f.extended
    (True, 4, False)
    """
    rng = rng or random.Random()
    if extended is None:
        extended = rng.random() > 0.8
    max_id = MAX_EXTENDED_ID if extended else MAX_STANDARD_ID
    lo, hi = id_range if id_range is not None else (1, max_id)
    hi = min(hi, max_id)
    if not (0 <= lo <= hi):
        raise ValueError(f"Invalid identifier range: {id_range}")
    limit = MAX_FD_DATA_LENGTH if fd else MAX_CLASSIC_DATA_LENGTH
    if length is None:
        length = rng.randint(1, limit)
    if not (0 <= length <= limit):
        raise ValueError(f"Invalid payload length: {length}")
    fmt = FrameFormat.EXTENDED if extended else FrameFormat.BASE
    data = bytes(rng.getrandbits(8) for _ in range(length))
    ident = rng.randint(lo, hi)
    return FDFrame(fmt, ident, data) if fd else DataFrame(fmt, ident, data)


def format_identifier(identifier: int, extended: typing.Optional[bool] = None) -> str:
    """
    >>> format_identifier(0x123)
    '0x123'
    >>> format_identifier(0x12345)
    '0x00012345 (ext)'
    """
    if extended is None:
        extended = identifier > MAX_STANDARD_ID
    return f"0x{identifier:08X} (ext)" if extended else f"0x{identifier:03X}"


def format_data(data: bytes) -> str:
    """
    >>> format_data(b"\\xDE\\xAD")
    'DE AD'
    """
    return " ".join(f"{b:02X}" for b in data)


_FRAME_PATTERN = re.compile(
    r"^(?P<id>[0-9A-Fa-f]{1,8})#"
    r"(?:(?P<remote>[Rr])(?P<dlc>[0-8])?|(?P<fd>#[0-9A-Fa-f])?(?P<data>[0-9A-Fa-f]*))$"
)


def _unittest_text_round_trip() -> None:
    from pytest import raises
    from ._error import IncompatibleFlagsError

    frames = [
        DataFrame(FrameFormat.BASE, 0x123, b""),
        DataFrame(FrameFormat.BASE, 0x123, bytes(range(8))),
        DataFrame(FrameFormat.BASE, 0, b"\x00"),
        DataFrame(FrameFormat.EXTENDED, 0x10, b"\xff"),
        DataFrame(FrameFormat.EXTENDED, MAX_EXTENDED_ID, b"\x01\x02"),
        FDFrame(FrameFormat.BASE, 0x7FF, b""),
        FDFrame(FrameFormat.EXTENDED, 0x1BADC0DE, bytes(range(64))),
        FDFrame(FrameFormat.BASE, 0x1, bytes(13)),
        RemoteFrame(FrameFormat.BASE, 0x55, dlc=0),
        RemoteFrame(FrameFormat.EXTENDED, 0x55, dlc=8),
        ErrorFrame(FrameFormat.EXTENDED, 0x40, bytes(8)),
        ErrorFrame(FrameFormat.EXTENDED, 0x4, b""),
    ]
    for f in frames:
        assert parse_frame(format_frame(f)) == f, f

    # Error frames exist in the extended format only, so the 8-digit form is unambiguous.
    with raises(IncompatibleFlagsError):
        ErrorFrame(FrameFormat.BASE, 0x40)
    assert format_frame(ErrorFrame(FrameFormat.EXTENDED, 0x40)) == "20000040#"
    assert parse_frame("20000040#").format == FrameFormat.EXTENDED

    rng = random.Random(1)
    for _ in range(100):
        f = make_random_frame(rng=rng, fd=rng.random() > 0.5)
        assert parse_frame(format_frame(f)) == f


def _unittest_text_parse() -> None:
    from pytest import raises

    assert parse_frame("123#") == DataFrame(FrameFormat.BASE, 0x123, b"")
    assert parse_frame("7ff#0102") == DataFrame(FrameFormat.BASE, 0x7FF, b"\x01\x02")
    assert parse_frame("800#") == DataFrame(FrameFormat.EXTENDED, 0x800, b"")
    assert parse_frame("1FFFFFFF#00") == DataFrame(FrameFormat.EXTENDED, MAX_EXTENDED_ID, b"\x00")
    assert parse_frame("123##1AABB") == FDFrame(FrameFormat.BASE, 0x123, b"\xaa\xbb")
    assert parse_frame("123#r") == RemoteFrame(FrameFormat.BASE, 0x123, dlc=0)
    assert parse_frame(" 123#01 ") == DataFrame(FrameFormat.BASE, 0x123, b"\x01")

    for bad in [
        "",
        "#",
        "123",
        "123#0",  # Odd number of digits
        "123#010203040506070809",  # Too long for Classic CAN
        "G23#00",
        "123456789#00",  # Too many identifier digits
        "40000000#00",  # Exceeds 29 bits without the error flag
        "FFFFFFFF#00",  # Error flag set but the error class exceeds 29 bits
        "123#R9",
        "123##" + "00" * 65,
        "0x123#00",
    ]:
        with raises(InvalidFormatError):
            parse_frame(bad)

    with raises(InvalidFormatError):
        parse_frame(123)  # type: ignore


def _unittest_text_random_frame() -> None:
    from pytest import raises

    rng = random.Random(0)
    for _ in range(200):
        f = make_random_frame(rng=rng)
        assert 1 <= len(f.data) <= MAX_CLASSIC_DATA_LENGTH
        assert 1 <= f.identifier
        assert isinstance(f, DataFrame)

    f = make_random_frame(extended=True, length=0, id_range=(0x800, 0xFFFFFFFF), rng=rng)
    assert f.extended and f.data == b"" and 0x800 <= f.identifier <= MAX_EXTENDED_ID

    f = make_random_frame(fd=True, length=64, rng=rng)
    assert isinstance(f, FDFrame) and len(f.data) == 64

    a = make_random_frame(rng=random.Random(7))
    b = make_random_frame(rng=random.Random(7))
    assert a == b

    with raises(ValueError):
        make_random_frame(length=9)
    with raises(ValueError):
        make_random_frame(extended=False, id_range=(0x800, 0x900))
