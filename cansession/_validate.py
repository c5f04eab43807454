# Copyright (c) 2026 cansession contributors
# This software is distributed under the terms of the MIT License.

from __future__ import annotations
import typing
from ._error import IncompatibleFlagsError, InvalidIdentifierError, PayloadTooLongError
from ._frame import Frame, DataFrame, FDFrame, RemoteFrame, FrameFormat, Identifier, PayloadLike
from ._frame import MAX_CLASSIC_DATA_LENGTH, MAX_FD_DATA_LENGTH, coerce_payload


IdentifierLike = typing.Union[int, Identifier]


def resolve_identifier(identifier: IdentifierLike, extended: typing.Optional[bool] = None) -> Identifier:
    """
    Combines the identifier with the optional explicit format flag.
    An explicit flag takes precedence over the magnitude of the value; a tagged :class:`Identifier`
    cannot be overridden with a contradicting flag.

    >>> resolve_identifier(0x123)
    Identifier(value=0x123, format=BASE)
    >>> resolve_identifier(0x123, extended=True)
    Identifier(value=0x00000123, format=EXTENDED)
    >>> resolve_identifier(0x800, extended=False)
    Traceback (most recent call last):
      ...
    cansession._error.InvalidIdentifierError: Invalid standard identifier: 0x800; the valid range is [0, 0x7ff]
    """
    if isinstance(identifier, Identifier):
        if extended is not None and extended != identifier.is_extended:
            raise IncompatibleFlagsError(
                f"The identifier {identifier!r} contradicts the explicit flag extended={extended}"
            )
        return identifier
    if isinstance(identifier, bool) or not isinstance(identifier, int):
        raise InvalidIdentifierError(f"The identifier shall be an integer; got {identifier!r}")
    if extended is None:
        frame_format = FrameFormat.infer(identifier)
    else:
        frame_format = FrameFormat.EXTENDED if extended else FrameFormat.BASE
    return Identifier(identifier, frame_format)


def validate_outgoing(
    identifier: IdentifierLike,
    data: PayloadLike = b"",
    *,
    extended: typing.Optional[bool] = None,
    fd: bool = False,
    remote: bool = False,
) -> Frame:
    """
    Checks the properties of a frame that the application intends to send and constructs it.
    The checks are performed in a fixed order and the first failure is reported:

    1. Remote and FD at the same time: :class:`IncompatibleFlagsError`.
    2. The format is resolved: explicit flag, or the tag of :class:`Identifier`, or the magnitude.
    3. Identifier range: :class:`InvalidIdentifierError`.
    4. Payload length (for remote frames the length of ``data`` is the requested DLC):
       :class:`PayloadTooLongError`.
    5. Byte values: :class:`InvalidByteError`.

    >>> validate_outgoing(0x123, [1, 2, 3, 4])
    DataFrame(id=0x123, data=01020304)
    >>> validate_outgoing(0x123, fd=True, remote=True)
    Traceback (most recent call last):
      ...
    cansession._error.IncompatibleFlagsError: Remote frames are not supported with CAN FD
    """
    if remote and fd:
        raise IncompatibleFlagsError("Remote frames are not supported with CAN FD")

    ident = resolve_identifier(identifier, extended)

    if not isinstance(data, (bytes, bytearray, memoryview, list, tuple)):
        data = list(data) if _is_iterable(data) else data
    limit = MAX_FD_DATA_LENGTH if fd else MAX_CLASSIC_DATA_LENGTH
    if _is_sized(data) and len(data) > limit:  # type: ignore
        raise PayloadTooLongError(
            f"{'CAN FD' if fd else 'CAN'} data cannot exceed {limit} bytes; got {len(data)}"  # type: ignore
        )
    payload = coerce_payload(data)

    if remote:
        return RemoteFrame(ident.format, ident.value, dlc=len(payload))
    if fd:
        return FDFrame(ident.format, ident.value, payload)
    return DataFrame(ident.format, ident.value, payload)


def validate_remote(identifier: IdentifierLike, dlc: int = 0, *, extended: typing.Optional[bool] = None) -> RemoteFrame:
    """
    Constructs a remote transmission request asking for ``dlc`` bytes.

    >>> validate_remote(0x7FF, 8)
    RemoteFrame(id=0x7ff, dlc=8)
    """
    ident = resolve_identifier(identifier, extended)
    if isinstance(dlc, bool) or not isinstance(dlc, int) or not (0 <= dlc <= MAX_CLASSIC_DATA_LENGTH):
        raise PayloadTooLongError(f"DLC must be between 0 and {MAX_CLASSIC_DATA_LENGTH} for remote frames; got {dlc!r}")
    return RemoteFrame(ident.format, ident.value, dlc=dlc)


def _is_iterable(x: object) -> bool:
    try:
        iter(x)  # type: ignore
    except TypeError:
        return False
    return True


def _is_sized(x: object) -> bool:
    return hasattr(x, "__len__")


def _unittest_validate_identifier_ranges() -> None:
    from pytest import raises

    for i in (0, 1, 0x7FE, 0x7FF):
        assert not validate_outgoing(i, extended=False).extended
        assert validate_outgoing(i, extended=True).extended
    for i in (0x800, 0x12345, 0x1FFFFFFF):
        with raises(InvalidIdentifierError):
            validate_outgoing(i, extended=False)
        assert validate_outgoing(i, extended=True).identifier == i
        assert validate_outgoing(i).extended  # Inferred from the magnitude
    for i in (0x20000000, 0xFFFFFFFF, -1):
        for ext in (None, False, True):
            with raises(InvalidIdentifierError):
                validate_outgoing(i, extended=ext)
    with raises(InvalidIdentifierError):
        validate_outgoing("123")  # type: ignore

    assert validate_outgoing(Identifier.extended(0x10)).extended
    with raises(IncompatibleFlagsError):
        validate_outgoing(Identifier.extended(0x10), extended=False)


def _unittest_validate_payload() -> None:
    from pytest import raises
    from ._error import InvalidByteError

    for n in range(MAX_CLASSIC_DATA_LENGTH + 1):
        assert len(validate_outgoing(0x100, bytes(n)).data) == n
    with raises(PayloadTooLongError):
        validate_outgoing(0x100, bytes(9))
    for n in range(MAX_FD_DATA_LENGTH + 1):
        f = validate_outgoing(0x100, bytes(n), fd=True)
        assert isinstance(f, FDFrame) and len(f.data) == n
    with raises(PayloadTooLongError):
        validate_outgoing(0x100, bytes(65), fd=True)

    with raises(InvalidByteError):
        validate_outgoing(0x100, [0, 255, 256])
    with raises(InvalidByteError):
        validate_outgoing(0x100, [0, -1])
    with raises(InvalidByteError):
        validate_outgoing(0x100, 42)  # type: ignore
    # The length is checked before the byte values.
    with raises(PayloadTooLongError):
        validate_outgoing(0x100, [300] * 9)
    assert validate_outgoing(0x100, (x for x in [1, 2])).data == b"\x01\x02"


def _unittest_validate_flags() -> None:
    from pytest import raises

    for ident in (0, 0x123, 0x7FF, 0x800, 0x1FFFFFFF, 0x20000000):
        for payload in (b"", b"\x01", bytes(8), bytes(64)):
            with raises(IncompatibleFlagsError):
                validate_outgoing(ident, payload, fd=True, remote=True)

    r = validate_outgoing(0x123, [0, 0, 0], remote=True)
    assert isinstance(r, RemoteFrame) and r.dlc == 3 and r.data == b""
    with raises(PayloadTooLongError):
        validate_outgoing(0x123, bytes(9), remote=True)

    assert validate_remote(0x123).dlc == 0
    with raises(PayloadTooLongError):
        validate_remote(0x123, 9)
    with raises(PayloadTooLongError):
        validate_remote(0x123, -1)
