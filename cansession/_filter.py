# Copyright (c) 2026 cansession contributors
# This software is distributed under the terms of the MIT License.

from __future__ import annotations
import typing
import dataclasses
from ._error import InvalidFilterError
from ._frame import Frame, FrameFormat


@dataclasses.dataclass(frozen=True)
class Filter:
    """
    Acceptance filter: a frame is accepted if ``frame.identifier & mask == identifier & mask``.
    The result is negated if ``invert`` is set.
    Only the identifier bits take part in the comparison; the format selects the valid range of
    the identifier and the mask.

    >>> f = Filter(0x120, 0x7F0)
    >>> f.matches(0x123), f.matches(0x133)
    (True, False)
    >>> str(f)
    'bas:0010010xxxx'
    >>> str(Filter(0x120, 0x7F0, invert=True))
    '!bas:0010010xxxx'
    """

    identifier: int
    """The reference identifier value."""

    mask: int
    """Bits set in the mask are compared; the others are ignored."""

    format: FrameFormat = FrameFormat.BASE

    invert: bool = False
    """Accept the frames that do NOT match."""

    def __post_init__(self) -> None:
        if not isinstance(self.format, FrameFormat):
            raise InvalidFilterError(f"Invalid filter format: {self.format!r}")
        limit = self.format.max_identifier
        kind = "extended" if self.format == FrameFormat.EXTENDED else "standard"
        for name in ("identifier", "mask"):
            value = getattr(self, name)
            if isinstance(value, bool) or not isinstance(value, int):
                raise InvalidFilterError(f"The filter {name} shall be an integer; got {value!r}")
            if not (0 <= value <= limit):
                raise InvalidFilterError(
                    f"Invalid {kind} CAN filter {name}: {value:#x}; the valid range is [0, {limit:#x}]"
                )
        object.__setattr__(self, "invert", bool(self.invert))

    @property
    def extended(self) -> bool:
        return self.format == FrameFormat.EXTENDED

    @staticmethod
    def new_promiscuous(frame_format: FrameFormat = FrameFormat.BASE) -> Filter:
        """
        A filter that accepts every frame.
        """
        return Filter(identifier=0, mask=0, format=frame_format)

    def matches(self, frame: typing.Union[Frame, int]) -> bool:
        identifier = frame.identifier if isinstance(frame, Frame) else int(frame)
        hit = (identifier & self.mask) == (self.identifier & self.mask)
        return hit != self.invert

    def __str__(self) -> str:
        out = "".join(
            (str((self.identifier >> bit) & 1) if self.mask & (1 << bit) != 0 else "x")
            for bit in reversed(range(int(self.format)))
        )
        return ("!" if self.invert else "") + self.format.name[:3].lower() + ":" + out


def validate_filters(filters: typing.Iterable[Filter]) -> typing.Tuple[Filter, ...]:
    """
    Checks that every element is a valid :class:`Filter` and returns an immutable copy of the set.
    The ranges are verified when a filter is constructed, so this mostly guards against foreign objects.
    """
    if isinstance(filters, (Filter, str, bytes)):
        raise InvalidFilterError(f"Expected a collection of filters, got {filters!r}")
    try:
        out = tuple(filters)
    except TypeError:
        raise InvalidFilterError(f"Expected a collection of filters, got {filters!r}") from None
    for index, f in enumerate(out):
        if not isinstance(f, Filter):
            raise InvalidFilterError(f"Filter #{index} is not a Filter instance: {f!r}")
    return out


def accepts(filters: typing.Sequence[Filter], frame: Frame) -> bool:
    """
    A frame passes the set if it matches at least one filter. An empty set accepts everything.
    Error frames are not subject to acceptance filtering.

    >>> from cansession import DataFrame
    >>> accepts([], DataFrame(FrameFormat.BASE, 0x321))
    True
    >>> accepts([Filter(0x100, 0x7FF), Filter(0x200, 0x7FF)], DataFrame(FrameFormat.BASE, 0x200))
    True
    >>> accepts([Filter(0x100, 0x7FF), Filter(0x200, 0x7FF)], DataFrame(FrameFormat.BASE, 0x300))
    False
    """
    if not filters or frame.is_error:
        return True
    return any(f.matches(frame) for f in filters)


def _unittest_filter_matching() -> None:
    from ._frame import DataFrame, RemoteFrame, ErrorFrame

    f = Filter(identifier=0x120, mask=0x7F0)
    assert f.matches(DataFrame(FrameFormat.BASE, 0x123))
    assert f.matches(DataFrame(FrameFormat.BASE, 0x12F))
    assert not f.matches(DataFrame(FrameFormat.BASE, 0x133))
    assert not f.matches(DataFrame(FrameFormat.BASE, 0x020))
    assert f.matches(RemoteFrame(FrameFormat.BASE, 0x121, dlc=2))
    # The law is exercised both ways: 0x124 & 0x7FC == 0x124 != 0x120 & 0x7FC.
    exact = Filter(identifier=0x120, mask=0x7FC)
    assert exact.matches(0x123)
    assert not exact.matches(0x124)

    inv = Filter(identifier=0x120, mask=0x7F0, invert=True)
    assert not inv.matches(0x123)
    assert inv.matches(0x133)

    assert all(Filter.new_promiscuous().matches(i) for i in (0, 0x7FF, 0x1FFFFFFF))

    assert accepts((), DataFrame(FrameFormat.EXTENDED, 0x1FFFFFFF))
    assert accepts([inv, exact], DataFrame(FrameFormat.BASE, 0x123))  # OR across the set
    assert not accepts([exact], DataFrame(FrameFormat.BASE, 0x200))
    assert accepts([exact], ErrorFrame(FrameFormat.EXTENDED, 0x40))


def _unittest_filter_validation() -> None:
    from pytest import raises

    for fmt in FrameFormat:
        with raises(InvalidFilterError):
            Filter(2 ** int(fmt), 0, fmt)
        with raises(InvalidFilterError):
            Filter(0, 2 ** int(fmt), fmt)
        Filter(2 ** int(fmt) - 1, 2 ** int(fmt) - 1, fmt)
    with raises(InvalidFilterError):
        Filter(-1, 0)
    with raises(InvalidFilterError):
        Filter(0, -1)
    with raises(InvalidFilterError):
        Filter(0x800, 0x7FF)  # Standard by default
    with raises(InvalidFilterError):
        Filter(0, 0, 29)  # type: ignore

    assert validate_filters([]) == ()
    assert validate_filters(iter([Filter(1, 1)])) == (Filter(1, 1),)
    with raises(InvalidFilterError):
        validate_filters([Filter(1, 1), {"id": 1, "mask": 1}])  # type: ignore
    with raises(InvalidFilterError):
        validate_filters(Filter(1, 1))  # type: ignore
    with raises(InvalidFilterError):
        validate_filters(None)  # type: ignore

    assert str(Filter(0b10101010101, 0b11111111111)) == "bas:10101010101"
    assert str(Filter(123, 456, FrameFormat.EXTENDED)) == "ext:xxxxxxxxxxxxxxxxxxxx001xx1xxx"
    assert str(Filter.new_promiscuous(FrameFormat.EXTENDED)) == "ext:" + "x" * 29
