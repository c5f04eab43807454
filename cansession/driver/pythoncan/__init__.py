# Copyright (c) 2026 cansession contributors
# This software is distributed under the terms of the MIT License.

"""
Driver based on `python-can <https://python-can.readthedocs.io/>`_.
Works on every platform python-can supports; the CAN hardware is selected by the interface name
``<python-can interface>:<channel>``, e.g., ``socketcan:vcan0``, ``virtual:0``, ``pcan:PCAN_USBBUS1``.
"""

from ._pythoncan import PythonCANDriver as PythonCANDriver
