#!/usr/bin/env python3
"""
kv-remote Setup Script
======================
Allows installation of the kv-remote package.

Usage:
    pip install -e .           # Development install
    pip install -e .[test]     # With test dependencies
    pip install .              # Regular install
"""

from setuptools import setup, find_packages

setup(
    name="kv-remote",
    version="1.0.0",
    packages=find_packages(exclude=["tests", "tests.*"]),
    python_requires=">=3.10",
    install_requires=[
        "msgpack>=1.0",
    ],
    extras_require={
        "test": [
            "pytest>=7.0",
            "pytest-asyncio>=0.23",
        ],
    },
    entry_points={
        "console_scripts": [
            "kv-remote-server=kv_remote.server:main",
            "kv-remote-client=kv_remote.client:main",
        ],
    },
)
