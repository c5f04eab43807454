# Copyright (c) 2026 cansession contributors
# This software is distributed under the terms of the MIT License.

r"""
Asynchronous access to CAN buses: validated frame construction, sessions over pluggable drivers,
a background listener, and async frame streams.

A minimal example using the in-process virtual bus of python-can::

    import asyncio, cansession

    async def main():
        async with cansession.make_session("virtual:0", loopback=True) as session:
            await session.send(0x123, [1, 2, 3, 4])
            print(await session.receive(1.0))

    asyncio.run(main())

Submodule import policy
+++++++++++++++++++++++

The driver implementations under :mod:`cansession.driver` are not auto-imported when the root module
``cansession`` is imported; :func:`make_session` imports the one it needs.

Log level override
++++++++++++++++++

The environment variable ``CANSESSION_LOGLEVEL`` can be set to one of the following values to override
the library log level:

- ``CRITICAL``
- ``FATAL``
- ``ERROR``
- ``WARNING``
- ``INFO``
- ``DEBUG``
"""

import os as _os

from ._version import __version__ as __version__

__version_info__ = tuple(map(int, __version__.split(".")[:3]))
__license__ = "MIT"


_log_level_from_env = _os.environ.get("CANSESSION_LOGLEVEL")
if _log_level_from_env is not None:
    import logging as _logging

    _logging.basicConfig(
        format="%(asctime)s %(process)5d %(levelname)-8s %(name)s: %(message)s", level=_log_level_from_env
    )
    _logging.getLogger(__name__).setLevel(_log_level_from_env)
    _logging.getLogger(__name__).info("Log config from env var; level: %r", _log_level_from_env)


# pylint: disable=wrong-import-position
from . import util as util

from ._error import CANSessionError as CANSessionError
from ._error import ValidationError as ValidationError
from ._error import InvalidIdentifierError as InvalidIdentifierError
from ._error import PayloadTooLongError as PayloadTooLongError
from ._error import InvalidByteError as InvalidByteError
from ._error import IncompatibleFlagsError as IncompatibleFlagsError
from ._error import InvalidFilterError as InvalidFilterError
from ._error import InvalidFormatError as InvalidFormatError
from ._error import InvalidConfigurationError as InvalidConfigurationError
from ._error import SocketNotOpenError as SocketNotOpenError
from ._error import SocketOpenError as SocketOpenError
from ._error import SocketCloseError as SocketCloseError
from ._error import DriverError as DriverError
from ._error import SendError as SendError
from ._error import ReceiveError as ReceiveError
from ._error import ReceiveTimeoutError as ReceiveTimeoutError
from ._error import FilterError as FilterError
from ._error import AlreadyListeningError as AlreadyListeningError
from ._error import ListeningError as ListeningError

from ._frame import FrameFormat as FrameFormat
from ._frame import FrameKind as FrameKind
from ._frame import ErrorClass as ErrorClass
from ._frame import Identifier as Identifier
from ._frame import Frame as Frame
from ._frame import DataFrame as DataFrame
from ._frame import FDFrame as FDFrame
from ._frame import RemoteFrame as RemoteFrame
from ._frame import ErrorFrame as ErrorFrame
from ._frame import MAX_STANDARD_ID as MAX_STANDARD_ID
from ._frame import MAX_EXTENDED_ID as MAX_EXTENDED_ID
from ._frame import MAX_CLASSIC_DATA_LENGTH as MAX_CLASSIC_DATA_LENGTH
from ._frame import MAX_FD_DATA_LENGTH as MAX_FD_DATA_LENGTH
from ._frame import convert_dlc_to_length as convert_dlc_to_length
from ._frame import convert_length_to_dlc as convert_length_to_dlc

from ._validate import validate_outgoing as validate_outgoing
from ._validate import validate_remote as validate_remote
from ._validate import resolve_identifier as resolve_identifier

from ._text import format_frame as format_frame
from ._text import parse_frame as parse_frame
from ._text import format_identifier as format_identifier
from ._text import format_data as format_data
from ._text import make_random_frame as make_random_frame

from ._filter import Filter as Filter
from ._filter import validate_filters as validate_filters
from ._filter import accepts as accepts

from ._batching import TransmissionStrategy as TransmissionStrategy
from ._batching import ImmediateTransmission as ImmediateTransmission
from ._batching import BatchedTransmission as BatchedTransmission

from ._listener import Listener as Listener
from ._listener import ListenerEvent as ListenerEvent
from ._listener import ListeningState as ListeningState

from ._stream import FrameStream as FrameStream

from ._session import Session as Session
from ._session import SessionState as SessionState
from ._session import SessionStatistics as SessionStatistics

from ._factory import make_session as make_session
from ._factory import make_session_from_environment as make_session_from_environment
