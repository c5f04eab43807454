# Copyright (c) 2026 cansession contributors
# This software is distributed under the terms of the MIT License.

"""
Small helpers shared across the library.
"""

from ._broadcast import broadcast as broadcast

from ._repr import repr_attributes as repr_attributes
