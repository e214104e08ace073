#!/usr/bin/env python3
"""
Setup script for CREWDECK
Installs the crew execution console API and its `crewdeck` command
"""

from setuptools import setup, find_packages
from pathlib import Path

# Read the README file
this_directory = Path(__file__).parent
readme = this_directory / "README.md"
long_description = readme.read_text() if readme.exists() else ""

setup(
    name="crewdeck",
    version="1.0.0",
    description="CREWDECK - Crew execution console with a live WebSocket progress feed",
    long_description=long_description,
    long_description_content_type="text/markdown",
    author="CREWDECK Team",
    packages=find_packages(exclude=["tests", "tests.*"]),

    # Entry points - this makes it installable as a command
    entry_points={
        "console_scripts": [
            "crewdeck=crewdeck.main:main",
        ],
    },

    # Dependencies
    install_requires=[
        "fastapi>=0.110.0",
        "uvicorn[standard]>=0.27.0",
        "pydantic>=2.5.0",
        "loguru>=0.7.0",
        "python-dotenv>=1.0.0",
        "httpx>=0.27.0",
        "websockets>=12.0",
    ],

    # Optional dependencies
    extras_require={
        "dev": [
            "pytest>=7.0.0",
            "pytest-asyncio>=0.21.0",
            "black>=22.0.0",
            "flake8>=4.0.0",
            "mypy>=0.991",
        ],
    },

    # Python version requirement
    python_requires=">=3.9",

    # Classifiers
    classifiers=[
        "Development Status :: 4 - Beta",
        "Intended Audience :: Developers",
        "Programming Language :: Python :: 3",
        "Programming Language :: Python :: 3.9",
        "Programming Language :: Python :: 3.10",
        "Programming Language :: Python :: 3.11",
        "Programming Language :: Python :: 3.12",
        "Topic :: Internet :: WWW/HTTP :: HTTP Servers",
        "Topic :: Scientific/Engineering :: Artificial Intelligence",
    ],

    # Keywords
    keywords="crew, agents, executions, websocket, monitoring, crewdeck",
)
