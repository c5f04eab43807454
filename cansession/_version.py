# Copyright (c) 2026 cansession contributors
# This software is distributed under the terms of the MIT License.

__version__ = "1.0.0"
