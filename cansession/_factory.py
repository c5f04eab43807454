# Copyright (c) 2026 cansession contributors
# This software is distributed under the terms of the MIT License.

from __future__ import annotations
import os
import sys
import typing
import logging
from ._error import InvalidConfigurationError
from ._batching import TransmissionStrategy, ImmediateTransmission, BatchedTransmission
from ._session import Session
from .driver import Driver

_logger = logging.getLogger(__name__)

ENVIRONMENT_PREFIX = "CANSESSION__"


def make_session(
    iface: str,
    *,
    fd: bool = False,
    default_timeout: typing.Optional[float] = None,
    batch_size: int = 0,
    loopback: bool = False,
    bitrate: typing.Optional[typing.Union[int, typing.Tuple[int, int]]] = None,
) -> Session:
    """
    Constructs a closed session with the driver chosen from the interface name.
    The session has to be opened before use.

    :param iface: ``<interface>:<channel>``, where the interface is a python-can interface name;
        e.g., ``socketcan:vcan0``, ``virtual:0``, ``pcan:PCAN_USBBUS1``.
        On GNU/Linux, the ``socketcan:`` prefix selects :mod:`cansession.driver.socketcan`
        instead of python-can.

    :param fd: Open the interface in CAN FD mode.

    :param default_timeout: Default reception timeout in seconds; None waits indefinitely.

    :param batch_size: Zero sends every frame immediately;
        a positive value enables :class:`cansession.BatchedTransmission` with the given batch size.

    :param loopback: Ask the driver to deliver the transmitted frames back to the same session.

    :param bitrate: Passed to python-can; either one value or the arbitration and data bit rates.
        The raw SocketCAN driver ignores it because the bit rate is a property of the network interface.

    :raises: :class:`cansession.InvalidConfigurationError` if the parameters are invalid.

    >>> s = make_session("virtual:0", fd=True, batch_size=10)
    >>> s
    Session('virtual:0', fd=True, state=CLOSED)
    >>> s.strategy
    BatchedTransmission(batch_size=10, pending=0)
    >>> make_session("vcan0")
    Traceback (most recent call last):
      ...
    cansession._error.InvalidConfigurationError: Interface name 'vcan0' does not match the format 'interface:channel'
    """
    iface = str(iface).strip()
    kind, sep, channel = iface.partition(":")
    if not sep or not kind:
        raise InvalidConfigurationError(f"Interface name {iface!r} does not match the format 'interface:channel'")
    if default_timeout is not None and not float(default_timeout) >= 0:
        raise InvalidConfigurationError(f"Invalid default timeout: {default_timeout!r}")
    if isinstance(batch_size, bool) or not isinstance(batch_size, int) or batch_size < 0:
        raise InvalidConfigurationError(f"Invalid batch size: {batch_size!r}")

    driver: Driver
    if kind.lower() == "socketcan" and sys.platform == "linux":
        if not channel:
            raise InvalidConfigurationError(f"SocketCAN interface name is missing in {iface!r}")
        from .driver.socketcan import SocketCANDriver

        driver = SocketCANDriver(receive_own_messages=loopback)
    else:
        from .driver.pythoncan import PythonCANDriver

        driver = PythonCANDriver(bitrate, receive_own_messages=loopback)

    strategy: TransmissionStrategy = BatchedTransmission(batch_size) if batch_size > 0 else ImmediateTransmission()
    session = Session(iface, driver, fd=fd, default_timeout=default_timeout, strategy=strategy)
    _logger.debug("Constructed %s with %s and %s", session, driver, strategy)
    return session


def make_session_from_environment(
    environ: typing.Optional[typing.Mapping[str, str]] = None,
) -> typing.Optional[Session]:
    """
    Like :func:`make_session` but the configuration is read from the environment variables
    (or the supplied mapping, which is useful for testing):

    +----------------------------+----------------------------------------------------------------------+
    | Variable                   | Semantics                                                            |
    +============================+======================================================================+
    | ``CANSESSION__IFACE``      | The interface name. If not set, None is returned.                    |
    +----------------------------+----------------------------------------------------------------------+
    | ``CANSESSION__FD``         | ``1``/``true``/``yes`` enables CAN FD; ``0``/``false``/``no`` is the |
    |                            | default.                                                             |
    +----------------------------+----------------------------------------------------------------------+
    | ``CANSESSION__TIMEOUT``    | Default reception timeout in seconds.                                |
    +----------------------------+----------------------------------------------------------------------+
    | ``CANSESSION__BATCH``      | Transmission batch size; 0 (default) sends every frame immediately.  |
    +----------------------------+----------------------------------------------------------------------+
    | ``CANSESSION__LOOPBACK``   | Receive own frames; boolean like ``CANSESSION__FD``.                 |
    +----------------------------+----------------------------------------------------------------------+
    | ``CANSESSION__BITRATE``    | One or two whitespace-separated integers: arbitration and data rate. |
    +----------------------------+----------------------------------------------------------------------+

    >>> make_session_from_environment({}) is None
    True
    >>> make_session_from_environment({"CANSESSION__IFACE": "virtual:0", "CANSESSION__FD": "yes"})
    Session('virtual:0', fd=True, state=CLOSED)
    """
    env = os.environ if environ is None else environ

    def get(name: str) -> typing.Optional[str]:
        value = env.get(ENVIRONMENT_PREFIX + name)
        return value.strip() if value is not None and value.strip() else None

    iface = get("IFACE")
    if iface is None:
        _logger.debug("%sIFACE is not set", ENVIRONMENT_PREFIX)
        return None

    timeout_text, batch_text, bitrate_text = get("TIMEOUT"), get("BATCH"), get("BITRATE")
    try:
        default_timeout = float(timeout_text) if timeout_text is not None else None
        batch_size = int(batch_text) if batch_text is not None else 0
        bitrate: typing.Optional[typing.Union[int, typing.Tuple[int, int]]] = None
        if bitrate_text is not None:
            rates = [int(x) for x in bitrate_text.split()]
            if len(rates) == 1:
                bitrate = rates[0]
            elif len(rates) == 2:
                bitrate = rates[0], rates[1]
            else:
                raise ValueError(f"expected one or two values, got {len(rates)}")
    except ValueError as ex:
        raise InvalidConfigurationError(f"Invalid {ENVIRONMENT_PREFIX}* environment configuration: {ex}") from ex

    return make_session(
        iface,
        fd=_parse_bool("FD", get("FD")),
        default_timeout=default_timeout,
        batch_size=batch_size,
        loopback=_parse_bool("LOOPBACK", get("LOOPBACK")),
        bitrate=bitrate,
    )


def _parse_bool(name: str, value: typing.Optional[str]) -> bool:
    if value is None:
        return False
    try:
        return _BOOLEANS[value.lower()]
    except KeyError:
        raise InvalidConfigurationError(f"{ENVIRONMENT_PREFIX}{name}: expected a boolean, got {value!r}") from None


_BOOLEANS = {
    "1": True,
    "true": True,
    "yes": True,
    "0": False,
    "false": False,
    "no": False,
}
