# Copyright (c) 2026 cansession contributors
# This software is distributed under the terms of the MIT License.

from __future__ import annotations
import enum
import typing
import asyncio
import logging
from . import util
from ._error import CANSessionError, ReceiveTimeoutError, AlreadyListeningError, ListeningError, SocketNotOpenError

if typing.TYPE_CHECKING:
    from ._session import Session  # pylint: disable=cyclic-import


_logger = logging.getLogger(__name__)


class ListeningState(enum.Enum):
    IDLE = enum.auto()
    LISTENING = enum.auto()


class ListenerEvent(enum.Enum):
    FRAME = "frame"
    """The handler receives the :class:`cansession.Frame`."""

    ERROR = "error"
    """The handler receives the exception that terminated the loop."""

    STARTED = "listening-started"
    STOPPED = "listening-stopped"


Handler = typing.Callable[..., None]


class Listener:
    """
    Background reception loop that pushes the received frames to the subscribed handlers.
    Each session has exactly one listener; see :attr:`cansession.Session.listener`.

    The handlers are invoked synchronously from the loop in the order of subscription.
    Exceptions raised by the handlers are logged and suppressed; they never stop the loop.
    While the loop is running, it is the sole consumer of the received frames:
    :meth:`cansession.Session.receive` and the frame streams are rejected with
    :class:`cansession.AlreadyListeningError`.

    A reception timeout is not an error; the loop simply tries again.
    Any other reception error is reported via :attr:`ListenerEvent.ERROR` and terminates the loop,
    but the session stays open.
    """

    DEFAULT_POLL_INTERVAL = 0.01
    """Seconds."""

    _YIELD_INTERVAL = 0.001

    def __init__(self, session: Session) -> None:
        """Use :attr:`cansession.Session.listener`."""
        self._session = session
        self._state = ListeningState.IDLE
        self._stop_requested = False
        self._task: typing.Optional[asyncio.Task[None]] = None
        self._handlers: typing.Dict[ListenerEvent, typing.List[Handler]] = {e: [] for e in ListenerEvent}

    @property
    def state(self) -> ListeningState:
        return self._state

    @property
    def is_listening(self) -> bool:
        return self._state == ListeningState.LISTENING

    @property
    def task(self) -> typing.Optional[asyncio.Task[None]]:
        """
        The task running the loop, or None if the loop was never started.
        """
        return self._task

    def subscribe(self, event: ListenerEvent, handler: Handler) -> None:
        """
        The same handler can be subscribed more than once; it will be invoked once per subscription.
        """
        self._handlers[ListenerEvent(event)].append(handler)

    def unsubscribe(self, event: ListenerEvent, handler: Handler) -> None:
        """
        Removes the earliest subscription of the handler.

        :raises: :class:`ValueError` if the handler is not subscribed to the event.
        """
        try:
            self._handlers[ListenerEvent(event)].remove(handler)
        except ValueError:
            raise ValueError(f"{handler} is not subscribed to {event}") from None

    def start(self, poll_interval: float = DEFAULT_POLL_INTERVAL) -> asyncio.Task[None]:
        """
        Launches the reception loop as a task on the running event loop and returns the task.
        The state becomes LISTENING and :attr:`ListenerEvent.STARTED` is emitted before this method returns.

        :param poll_interval: Seconds; the timeout of each read.

        :raises:
            - :class:`cansession.AlreadyListeningError` if the loop is already running.
            - :class:`cansession.SocketNotOpenError` if the session is not open.
            - :class:`ValueError` if the poll interval is not positive.
        """
        if self.is_listening:
            raise AlreadyListeningError(f"{self._session}: already listening")
        if not self._session.is_open:
            raise SocketNotOpenError(f"{self._session} is not open")
        poll_interval = float(poll_interval)
        if not poll_interval > 0:
            raise ValueError(f"Invalid poll interval: {poll_interval}")
        loop = asyncio.get_running_loop()
        self._stop_requested = False
        self._state = ListeningState.LISTENING
        _logger.info("%s: listening started with poll interval %.3f s", self._session, poll_interval)
        self._emit(ListenerEvent.STARTED)
        self._task = loop.create_task(self._run(poll_interval))
        return self._task

    def stop(self) -> None:
        """
        Requests the loop to stop. The loop finishes within one bounded driver read;
        no frames are delivered to the handlers after this call.
        Does nothing if the listener is idle. Use :meth:`join` to wait for the loop to finish.
        """
        if self.is_listening and not self._stop_requested:
            _logger.debug("%s: stop requested", self._session)
        self._stop_requested = True

    async def join(self) -> None:
        """
        Waits until the loop task is finished. Returns immediately if the loop is not running.
        """
        task = self._task
        if task is not None and not task.done():
            await asyncio.wait([task])

    async def _run(self, poll_interval: float) -> None:
        # pylint: disable=protected-access
        try:
            while not self._stop_requested:
                try:
                    frame = await self._session._read(poll_interval, self._is_stop_requested)
                except ReceiveTimeoutError:
                    pass
                except Exception as ex:
                    if self._stop_requested and isinstance(ex, SocketNotOpenError):
                        break  # The session is being closed; this is not a failure.
                    if not isinstance(ex, CANSessionError):
                        err: Exception = ListeningError(f"{self._session}: the listening loop failed: {ex}")
                        err.__cause__ = ex
                    else:
                        err = ex
                    _logger.info("%s: listening loop terminated by error: %s", self._session, err)
                    self._emit(ListenerEvent.ERROR, err)
                    break
                else:
                    if self._stop_requested:
                        self._session._push_back(frame)  # Left for the next consumer.
                        break
                    self._session._mark_delivered(frame)
                    self._emit(ListenerEvent.FRAME, frame)
                await asyncio.sleep(self._YIELD_INTERVAL)
        finally:
            self._state = ListeningState.IDLE
            _logger.info("%s: listening stopped", self._session)
            self._emit(ListenerEvent.STOPPED)

    def _is_stop_requested(self) -> bool:
        return self._stop_requested

    def _emit(self, event: ListenerEvent, *args: typing.Any) -> None:
        util.broadcast(self._handlers[event])(*args)

    def __repr__(self) -> str:
        return util.repr_attributes(self, self._session, state=self._state.name)
