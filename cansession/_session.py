# Copyright (c) 2026 cansession contributors
# This software is distributed under the terms of the MIT License.

from __future__ import annotations
import enum
import math
import copy
import typing
import asyncio
import logging
import functools
import dataclasses
import collections
import concurrent.futures
from . import util
from ._error import CANSessionError, DriverError, IncompatibleFlagsError, FilterError
from ._error import SocketNotOpenError, SocketOpenError, SocketCloseError
from ._error import SendError, ReceiveError, ReceiveTimeoutError, AlreadyListeningError
from ._frame import Frame, FrameKind, Identifier, PayloadLike
from ._filter import Filter, validate_filters, accepts
from ._validate import IdentifierLike, validate_outgoing, validate_remote
from ._batching import TransmissionStrategy, ImmediateTransmission
from ._listener import Listener
from ._stream import FrameStream, FramePredicate
from .driver import Driver, Handle


_logger = logging.getLogger(__name__)


class SessionState(enum.Enum):
    CLOSED = enum.auto()
    OPEN = enum.auto()


@dataclasses.dataclass
class SessionStatistics:
    frames_sent: int = 0
    """Frames accepted by the driver for transmission."""

    frames_received: int = 0
    """
    Frames handed over to a consumer: returned by :meth:`Session.receive`, passed to the listener handlers,
    or yielded by a frame stream. Frames discarded by a stream predicate are not counted.
    """

    frames_filtered: int = 0
    """Frames read from the driver but discarded by the acceptance filters of the session."""

    send_errors: int = 0
    receive_errors: int = 0
    timeouts: int = 0


class Session:
    """
    A session owns one open handle of a CAN interface and serializes access to it.
    The underlying driver is blocking; every driver call is performed on a dedicated worker thread
    (one for reception, one for transmission) so that the event loop is never blocked.

    Timeouts are expressed in seconds. A timeout of None means "use the default timeout of the session";
    :data:`math.inf` means "wait indefinitely".
    Indefinite waits are implemented as a sequence of bounded driver reads, so that closing the session
    terminates a pending reception promptly.

    >>> import asyncio
    >>> from cansession.driver.pythoncan import PythonCANDriver
    >>> async def main():
    ...     async with Session("virtual:doctest-session", PythonCANDriver(receive_own_messages=True)) as s:
    ...         await s.send(0x123, [1, 2, 3, 4])
    ...         return await s.receive(1.0)
    >>> asyncio.run(main())
    DataFrame(id=0x123, data=01020304)
    """

    _MAXIMAL_READ_TIMEOUT = 0.1
    """
    Upper bound of a single driver read; longer waits are split into several reads.
    """

    def __init__(
        self,
        interface_name: str,
        driver: Driver,
        *,
        fd: bool = False,
        default_timeout: typing.Optional[float] = None,
        strategy: typing.Optional[TransmissionStrategy] = None,
    ) -> None:
        """
        :param interface_name: Passed to the driver as-is; the format is defined by the driver.

        :param driver: The driver instance. It may be shared between several sessions.

        :param fd: Open the interface in CAN FD mode. A Classic CAN session rejects FD frames.

        :param default_timeout: Used by :meth:`receive` when no timeout is given. None waits indefinitely.

        :param strategy: Defines when the frames are handed over to the driver.
            Defaults to :class:`cansession.ImmediateTransmission`.
        """
        self._interface_name = str(interface_name)
        self._driver = driver
        self._fd = bool(fd)
        self._default_timeout = float(default_timeout) if default_timeout is not None else None
        self._strategy: TransmissionStrategy = strategy if strategy is not None else ImmediateTransmission()

        self._state = SessionState.CLOSED
        self._handle: typing.Optional[Handle] = None
        self._filters: typing.Tuple[Filter, ...] = ()
        self._pushback: typing.Deque[Frame] = collections.deque()
        self._statistics = SessionStatistics()
        self._rx_executor: typing.Optional[concurrent.futures.ThreadPoolExecutor] = None
        self._tx_executor: typing.Optional[concurrent.futures.ThreadPoolExecutor] = None
        self._listener = Listener(self)

    @property
    def interface_name(self) -> str:
        return self._interface_name

    @property
    def driver(self) -> Driver:
        return self._driver

    @property
    def fd(self) -> bool:
        return self._fd

    @property
    def default_timeout(self) -> typing.Optional[float]:
        return self._default_timeout

    @property
    def strategy(self) -> TransmissionStrategy:
        return self._strategy

    @property
    def state(self) -> SessionState:
        return self._state

    @property
    def is_open(self) -> bool:
        return self._state == SessionState.OPEN

    @property
    def filters(self) -> typing.Tuple[Filter, ...]:
        return self._filters

    @property
    def listener(self) -> Listener:
        return self._listener

    def sample_statistics(self) -> SessionStatistics:
        return copy.copy(self._statistics)

    # ----------------------------------------  LIFECYCLE  ----------------------------------------

    async def open(self) -> None:
        """
        Acquires a handle from the driver. Does nothing if the session is already open.

        :raises: :class:`cansession.SocketOpenError` if the driver could not open the interface;
            the session remains closed.
        """
        if self.is_open:
            return
        try:
            handle = await asyncio.get_running_loop().run_in_executor(
                None, self._driver.open_handle, self._interface_name, self._fd
            )
        except Exception as ex:
            raise SocketOpenError(f"{self}: could not open the interface: {ex}") from ex
        self._handle = handle
        self._rx_executor = concurrent.futures.ThreadPoolExecutor(max_workers=1, thread_name_prefix=f"{self}-rx")
        self._tx_executor = concurrent.futures.ThreadPoolExecutor(max_workers=1, thread_name_prefix=f"{self}-tx")
        self._state = SessionState.OPEN
        _logger.info("%s: opened", self)

    async def close(self) -> None:
        """
        Stops the listener, flushes the pending frames, and releases the handle.
        The session is closed when this method returns, even if it raises.
        Closing a closed session does nothing.

        :raises: :class:`cansession.SocketCloseError` if the driver failed to release the handle.
        """
        if not self.is_open:
            return
        self._listener.stop()
        if asyncio.current_task() is not self._listener.task:
            await self._listener.join()
        pending = self._strategy.pending
        try:
            await self._strategy.flush(self._sink)
        except Exception as ex:
            _logger.error("%s: %d pending frames could not be flushed before closing: %s", self, pending, ex)
        if not self.is_open:  # Closed concurrently while we were waiting.
            return

        handle, self._handle = self._handle, None
        self._pushback.clear()
        self._state = SessionState.CLOSED
        failure: typing.Optional[Exception] = None
        try:
            assert handle is not None
            self._driver.close_handle(handle)
        except Exception as ex:
            failure = ex
        finally:
            for executor in (self._rx_executor, self._tx_executor):
                if executor is not None:
                    executor.shutdown(wait=False)
            self._rx_executor, self._tx_executor = None, None
        if failure is not None:
            _logger.info("%s: closed with error: %s", self, failure)
            raise SocketCloseError(f"{self}: the driver failed to release the handle: {failure}") from failure
        _logger.info("%s: closed", self)

    async def __aenter__(self) -> Session:
        await self.open()
        return self

    async def __aexit__(self, *_: typing.Any) -> None:
        await self.close()

    # ----------------------------------------  TRANSMISSION  ----------------------------------------

    async def send(
        self,
        identifier: IdentifierLike,
        data: PayloadLike = b"",
        *,
        extended: typing.Optional[bool] = None,
        fd: bool = False,
        remote: bool = False,
    ) -> Frame:
        """
        Validates and transmits a frame; returns the frame that was sent.
        For remote frames, ``data`` is used only for its length, which becomes the requested DLC.

        :raises:
            - :class:`cansession.SocketNotOpenError` if the session is not open (nothing else is checked).
            - :class:`cansession.ValidationError` subclasses if the frame is invalid (the driver is not called).
            - :class:`cansession.IncompatibleFlagsError` if an FD frame is sent through a Classic CAN session.
            - :class:`cansession.SendError` if the driver failed.
        """
        self._ensure_open()
        frame = validate_outgoing(identifier, data, extended=extended, fd=fd, remote=remote)
        await self._transmit(frame)
        return frame

    async def send_remote(
        self, identifier: IdentifierLike, dlc: int = 0, *, extended: typing.Optional[bool] = None
    ) -> Frame:
        """
        Sends a remote transmission request asking for ``dlc`` bytes.
        """
        self._ensure_open()
        frame = validate_remote(identifier, dlc, extended=extended)
        await self._transmit(frame)
        return frame

    async def send_frame(self, frame: Frame) -> None:
        """
        Transmits a prebuilt frame. Frames are always valid by construction, so only the capability checks apply.
        Error frames cannot be transmitted.
        """
        self._ensure_open()
        if not isinstance(frame, Frame):
            raise TypeError(f"Expected a Frame, got {type(frame).__name__}")
        if frame.is_error:
            raise IncompatibleFlagsError("Error frames cannot be transmitted")
        await self._transmit(frame)

    async def flush(self) -> None:
        """
        Hands over the frames buffered by the transmission strategy to the driver.
        Does nothing if the strategy does not buffer.
        """
        self._ensure_open()
        await self._strategy.flush(self._sink)

    async def _transmit(self, frame: Frame) -> None:
        if frame.is_fd and not self._fd:
            raise IncompatibleFlagsError(f"{self}: CAN FD frames cannot be sent through a Classic CAN session")
        await self._strategy.enqueue(frame, self._sink)

    async def _sink(self, frames: typing.Sequence[Frame]) -> None:
        self._ensure_open()
        handle, executor = self._handle, self._tx_executor
        assert handle is not None and executor is not None
        loop = asyncio.get_running_loop()
        try:
            if len(frames) == 1:
                await loop.run_in_executor(executor, self._driver.send_frame, handle, frames[0])
            else:
                await loop.run_in_executor(executor, self._driver.send_frames, handle, list(frames))
        except DriverError:
            self._statistics.send_errors += 1
            raise
        except Exception as ex:
            self._statistics.send_errors += 1
            if not self.is_open:
                raise SocketNotOpenError(f"{self}: closed during transmission") from ex
            raise SendError(f"{self}: could not send {len(frames)} frame(s): {ex}") from ex
        self._statistics.frames_sent += len(frames)
        if _logger.isEnabledFor(logging.DEBUG):
            _logger.debug("%s: sent %s", self, ", ".join(map(repr, frames)))

    # ----------------------------------------  RECEPTION  ----------------------------------------

    async def receive(self, timeout: typing.Optional[float] = None) -> Frame:
        """
        Waits for one frame that passes the acceptance filters of the session.

        :param timeout: Seconds. None uses the default timeout of the session; :data:`math.inf` waits indefinitely.

        :raises:
            - :class:`cansession.SocketNotOpenError` if the session is not open or is closed while waiting.
            - :class:`cansession.AlreadyListeningError` if the listener is active.
            - :class:`cansession.ReceiveTimeoutError` if no frame was received in time.
            - :class:`cansession.ReceiveError` if the driver failed.
        """
        self._ensure_open()
        self._ensure_not_listening()
        frame = await self._read(timeout if timeout is not None else self._default_timeout)
        self._mark_delivered(frame)
        return frame

    async def _read(
        self,
        timeout: typing.Optional[float],
        interrupt: typing.Optional[typing.Callable[[], bool]] = None,
    ) -> Frame:
        """
        The common reception path of :meth:`receive`, the listener, and the frame streams.
        None or infinity waits indefinitely.

        The interrupt predicate is checked before every driver step; when it returns True,
        :class:`cansession.ReceiveTimeoutError` is raised without consuming anything.
        The returned frame is not yet accounted as delivered; the consumer either calls :meth:`_mark_delivered`
        or returns the frame with :meth:`_push_back`.
        """
        loop = asyncio.get_running_loop()
        deadline = None if timeout is None or math.isinf(timeout) else loop.time() + max(0.0, float(timeout))
        first = True
        while True:
            self._ensure_open()
            if interrupt is not None and interrupt():
                raise ReceiveTimeoutError(f"{self}: reception interrupted")
            if self._pushback:
                return self._pushback.popleft()
            if deadline is not None and not first and loop.time() >= deadline:
                self._statistics.timeouts += 1
                raise ReceiveTimeoutError(f"{self}: no frame received within {timeout} s")
            first = False
            step = self._MAXIMAL_READ_TIMEOUT
            if deadline is not None:
                step = min(step, max(0.0, deadline - loop.time()))
            handle, executor = self._handle, self._rx_executor
            assert handle is not None and executor is not None
            future = loop.run_in_executor(executor, self._driver.read_frame, handle, step)
            try:
                frame = await asyncio.shield(future)
            except asyncio.CancelledError:
                # The driver read cannot be aborted; its frame is kept for the next reader.
                future.add_done_callback(self._salvage)
                raise
            except ReceiveTimeoutError:
                continue
            except Exception as ex:
                if not self.is_open:
                    raise SocketNotOpenError(f"{self}: closed during reception") from ex
                self._statistics.receive_errors += 1
                if isinstance(ex, CANSessionError):
                    raise
                raise ReceiveError(f"{self}: could not read a frame: {ex}") from ex
            if not accepts(self._filters, frame):
                self._statistics.frames_filtered += 1
                _logger.debug("%s: frame %r rejected by the acceptance filters", self, frame)
                continue
            if self._pushback:  # Salvaged from an abandoned read that completed earlier.
                self._pushback.append(frame)
                frame = self._pushback.popleft()
            _logger.debug("%s: read %r", self, frame)
            return frame

    def _mark_delivered(self, frame: Frame) -> None:
        self._statistics.frames_received += 1
        _logger.debug("%s: delivered %r", self, frame)

    def _push_back(self, frame: Frame) -> None:
        """
        Returns a frame obtained from :meth:`_read` but not consumed; the next read returns it first.
        """
        if self.is_open:
            self._pushback.appendleft(frame)

    def _salvage(self, future: asyncio.Future[Frame]) -> None:
        if future.cancelled():
            return
        ex = future.exception()
        if ex is not None:
            if not isinstance(ex, ReceiveTimeoutError):
                _logger.info("%s: abandoned read failed: %s", self, ex)
            return
        frame = future.result()
        if not self.is_open:
            _logger.debug("%s: dropping %r read after closure", self, frame)
        elif accepts(self._filters, frame):
            self._pushback.append(frame)
        else:
            self._statistics.frames_filtered += 1

    # ----------------------------------------  FILTERING  ----------------------------------------

    def set_filters(self, filters: typing.Iterable[Filter]) -> None:
        """
        Replaces the acceptance filters. A frame is accepted if it matches any of the filters;
        an empty set accepts everything. The new filters apply to the frames read after this call.

        :raises:
            - :class:`cansession.InvalidFilterError` if the set is malformed (nothing is changed).
            - :class:`cansession.FilterError` if the driver failed to install the filters;
              the session still applies them in-process.
        """
        self._ensure_open()
        validated = validate_filters(filters)
        self._filters = validated
        _logger.debug("%s: acceptance filters: %s", self, ", ".join(map(str, validated)) or "(accept all)")
        assert self._handle is not None
        try:
            self._driver.install_filters(self._handle, list(validated))
        except Exception as ex:
            raise FilterError(f"{self}: could not install the acceptance filters: {ex}") from ex

    def clear_filters(self) -> None:
        """
        Removes all acceptance filters, so that every frame is accepted.
        """
        self._ensure_open()
        self._filters = ()
        assert self._handle is not None
        try:
            self._driver.clear_filters(self._handle)
        except Exception as ex:
            raise FilterError(f"{self}: could not clear the acceptance filters: {ex}") from ex

    # ----------------------------------------  STREAMS  ----------------------------------------

    def frames(
        self,
        *,
        timeout: float = FrameStream.DEFAULT_TIMEOUT,
        max_count: typing.Optional[int] = None,
        predicate: typing.Optional[FramePredicate] = None,
    ) -> FrameStream:
        """
        Returns a new independent stream of received frames; see :class:`cansession.FrameStream`.
        The session state is checked when a frame is pulled, not here.
        """
        return FrameStream(self, timeout=timeout, max_count=max_count, predicate=predicate)

    def frames_with_id(
        self,
        identifier: IdentifierLike,
        *,
        timeout: float = FrameStream.DEFAULT_TIMEOUT,
        max_count: typing.Optional[int] = None,
    ) -> FrameStream:
        """
        A stream of the frames with the given identifier. A plain integer matches both formats;
        an :class:`cansession.Identifier` matches its own format only.
        """
        return self.frames(timeout=timeout, max_count=max_count, predicate=_match_identifier(identifier))

    def frames_of_type(
        self,
        kind: typing.Union[FrameKind, str],
        *,
        timeout: float = FrameStream.DEFAULT_TIMEOUT,
        max_count: typing.Optional[int] = None,
    ) -> FrameStream:
        """
        A stream of the frames of the given kind: ``"data"``, ``"fd"``, ``"remote"``, or ``"error"``.
        """
        try:
            k = FrameKind(kind)
        except ValueError:
            raise ValueError(f"Unknown frame kind: {kind!r}") from None
        return self.frames(timeout=timeout, max_count=max_count, predicate=functools.partial(_match_kind, k))

    async def collect_frames(
        self,
        max_count: int,
        timeout: float = FrameStream.DEFAULT_TIMEOUT,
        predicate: typing.Optional[FramePredicate] = None,
    ) -> typing.List[Frame]:
        """
        Receives exactly ``max_count`` frames (that satisfy the predicate, if given) and returns them in order.
        """
        return await self.frames(timeout=timeout, max_count=max_count, predicate=predicate).collect()

    # ----------------------------------------  INTERNALS  ----------------------------------------

    def _ensure_open(self) -> None:
        if not self.is_open:
            raise SocketNotOpenError(f"{self} is not open")

    def _ensure_not_listening(self) -> None:
        if self._listener.is_listening:
            raise AlreadyListeningError(f"{self}: the listener is the sole consumer of the received frames")

    def __repr__(self) -> str:
        return util.repr_attributes(self, repr(self._interface_name), fd=self._fd, state=self._state.name)


def _match_identifier(identifier: IdentifierLike) -> FramePredicate:
    if isinstance(identifier, Identifier):
        return lambda f: f.identifier == identifier.value and f.format == identifier.format
    if isinstance(identifier, bool) or not isinstance(identifier, int):
        raise TypeError(f"Expected an integer or Identifier, got {identifier!r}")
    value = int(identifier)
    return lambda f: f.identifier == value


def _match_kind(kind: FrameKind, frame: Frame) -> bool:
    return frame.kind == kind
