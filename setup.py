#!/usr/bin/env python
#
# Copyright (c) 2026 cansession contributors
# This software is distributed under the terms of the MIT License.
#

import os
from setuptools import setup

__version__ = None
VERSION_FILE = os.path.join(os.path.dirname(__file__), "cansession", "_version.py")
exec(open(VERSION_FILE).read())  # Adds __version__ to globals

with open("README.md", "r") as fh:
    long_description = fh.read()

args = dict(
    name="cansession",
    version=__version__,
    description="Asynchronous session layer over raw CAN and CAN FD: framing, filtering, streaming and listening.",
    long_description=long_description,
    long_description_content_type="text/markdown",
    packages=[
        "cansession",
        "cansession.util",
        "cansession.driver",
        "cansession.driver.pythoncan",
        "cansession.driver.socketcan",
    ],
    package_data={
        "cansession": ["py.typed"],
    },
    python_requires=">=3.8",
    install_requires=[
        "python-can ~= 4.0",
        "wrapt ~= 1.10",  # Required by can.ThreadSafeBus
    ],
    extras_require={
        "testing": [
            "pytest ~= 7.1",
            "pytest-asyncio >= 0.18",
            "coverage ~= 6.3",
        ],
    },
    license="MIT",
    classifiers=[
        "Development Status :: 4 - Beta",
        "Intended Audience :: Developers",
        "Topic :: Software Development :: Libraries",
        "Topic :: System :: Networking",
        "License :: OSI Approved :: MIT License",
        "Programming Language :: Python",
        "Programming Language :: Python :: 3",
        "Operating System :: OS Independent",
    ],
    keywords="can can-fd socketcan asyncio",
)

setup(**args)
