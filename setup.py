#!/usr/bin/env python3
"""
Setup script for the WebSocket echo demo (resilient client, minimal client, echo server)
"""

from setuptools import setup, find_namespace_packages

setup(
    name="echo-ws",
    version="0.0.1",
    description="WebSocket echo server with a reconnecting client",
    packages=find_namespace_packages(include=["client", "client.*", "server", "server.*", "shared", "shared.*"]),
    install_requires=[
        "websockets==15.0",
        "click==8.1.7",
        "typer==0.12.3",
        "rich==13.9.2",
        "PyYAML==6.0.1",
    ],
    extras_require={
        "test": [
            "pytest==8.4.2",
            "pytest-asyncio==1.2.0",
        ],
    },
    python_requires=">=3.10",
    entry_points={
        'console_scripts': [
            'echo-server=server.server:main',
            'echo-client=client.echo_cli:main',
        ],
    },
)
