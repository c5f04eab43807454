# Copyright (c) 2026 cansession contributors
# This software is distributed under the terms of the MIT License.

from __future__ import annotations
import abc
import typing
from .._frame import Frame
from .._filter import Filter


Handle = typing.NewType("Handle", int)
"""
Opaque token returned by :meth:`Driver.open_handle`; meaningful only to the driver that issued it.
"""


class Driver(abc.ABC):
    """
    The boundary between the session and the operating system or the CAN hardware.

    All methods are blocking. The session invokes them from executor threads, so an implementation
    shall tolerate calls from a thread other than the one that opened the handle; however, the session never
    issues two concurrent reads or two concurrent writes on the same handle.

    It is recognized that the availability of some driver implementations may be conditional on the type of
    platform (e.g., raw SocketCAN is Linux-only) and the availability of third-party software.
    Python packages containing such driver implementations shall be always importable.
    """

    @abc.abstractmethod
    def open_handle(self, interface_name: str, fd: bool) -> Handle:
        """
        Opens the named interface in Classic CAN or CAN FD mode and returns a new handle.
        Raises an implementation-specific exception if the interface cannot be opened;
        the session converts it into :class:`cansession.SocketOpenError`.
        """
        raise NotImplementedError

    @abc.abstractmethod
    def send_frame(self, handle: Handle, frame: Frame) -> None:
        """
        Transmits one frame. The frame is always valid; FD frames are only passed to handles opened in FD mode.
        """
        raise NotImplementedError

    def send_frames(self, handle: Handle, frames: typing.Sequence[Frame]) -> None:
        """
        Transmits a batch of frames in order. The default implementation sends them one by one;
        drivers that have a batch primitive should override this.
        A failure aborts the batch; the frames that follow the failed one are not sent.
        """
        for f in frames:
            self.send_frame(handle, f)

    @abc.abstractmethod
    def read_frame(self, handle: Handle, timeout: float) -> Frame:
        """
        Blocks until a frame is received or the timeout (in seconds) expires.
        Raises :class:`cansession.ReceiveTimeoutError` if nothing was received in time.
        Any other exception denotes a read failure.
        """
        raise NotImplementedError

    @abc.abstractmethod
    def install_filters(self, handle: Handle, filters: typing.Sequence[Filter]) -> None:
        """
        Configures the acceptance filters of the interface. An empty sequence means accept everything.
        The driver may implement only a subset of the filter semantics (e.g., ignore inversion);
        the session always filters in-process as well.
        """
        raise NotImplementedError

    @abc.abstractmethod
    def clear_filters(self, handle: Handle) -> None:
        raise NotImplementedError

    @abc.abstractmethod
    def close_handle(self, handle: Handle) -> None:
        """
        Releases the handle. Closing a handle that is not open is an error
        (:class:`LookupError` is raised by the implementations shipped with this package).
        """
        raise NotImplementedError

    def __repr__(self) -> str:
        return f"{type(self).__name__}()"
