# Copyright (c) 2026 cansession contributors
# This software is distributed under the terms of the MIT License.

import sys
import logging
import pytest
from . import VCAN_IFACE, vcan_available

_logger = logging.getLogger(__name__)


@pytest.fixture(scope="session", autouse=True)  # type: ignore
def _report_host_environment() -> None:
    _logger.info("Python %s on %s", sys.version.replace("\n", " "), sys.platform)
    if vcan_available():
        _logger.info("SocketCAN interface %s is available; the raw SocketCAN tests will run", VCAN_IFACE)
    else:
        _logger.info("SocketCAN interface %s is not available; the raw SocketCAN tests will be skipped", VCAN_IFACE)
