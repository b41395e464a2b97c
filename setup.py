#!/usr/bin/env python3
"""Setup script for the portfolio intelligence data layer."""

from setuptools import setup, find_packages

setup(
    name="portfolio-intel",
    version="1.0.0",
    packages=find_packages(exclude=["tests", "tests.*"]),
    python_requires=">=3.11",
    install_requires=[
        "aiohttp>=3.9.0",
        "fastapi>=0.104.0",
        "pydantic>=2.5.0",
        "pydantic-settings>=2.1.0",
        "structlog>=23.2.0",
        "prometheus-client>=0.19.0",
    ],
    extras_require={
        "test": [
            "pytest>=7.4.0",
            "pytest-asyncio>=0.23.0",
            "httpx>=0.25.0",
        ],
    },
)
