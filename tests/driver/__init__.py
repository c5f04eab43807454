# Copyright (c) 2026 cansession contributors
# This software is distributed under the terms of the MIT License.
