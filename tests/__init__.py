# Copyright (c) 2026 cansession contributors
# This software is distributed under the terms of the MIT License.

import os
import sys
import pytest

VCAN_IFACE = os.environ.get("CANSESSION_TEST_VCAN", "vcan0")
"""
The virtual SocketCAN interface used by the tests that need a real kernel CAN stack.
It has to be configured beforehand (the test suite does not attempt to obtain root privileges); see
:mod:`cansession.driver.socketcan` for the commands.
"""


def vcan_available(iface: str = VCAN_IFACE) -> bool:
    return sys.platform == "linux" and os.path.exists(f"/sys/class/net/{iface}")


requires_vcan = pytest.mark.skipif(not vcan_available(), reason=f"SocketCAN interface {VCAN_IFACE} is not available")
