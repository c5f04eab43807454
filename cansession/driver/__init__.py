# Copyright (c) 2026 cansession contributors
# This software is distributed under the terms of the MIT License.

"""
Drivers connect the session to a concrete CAN interface.
The implementations live in the subpackages and are not imported automatically:

- :class:`cansession.driver.pythoncan.PythonCANDriver` works with any interface supported by python-can.
- :class:`cansession.driver.socketcan.SocketCANDriver` uses raw SocketCAN sockets directly (GNU/Linux only).
"""

from ._driver import Driver as Driver
from ._driver import Handle as Handle
