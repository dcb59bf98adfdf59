#!/usr/bin/env python3
"""Setup script for nuheat2mqtt package."""
from setuptools import setup, find_packages

with open("README.md", "r", encoding="utf-8") as fh:
    long_description = fh.read()

setup(
    name="nuheat2mqtt",
    version="0.1.0",
    author="",
    author_email="",
    description="Bridge NuHeat cloud thermostats to a home-automation hub via MQTT",
    long_description=long_description,
    long_description_content_type="text/markdown",
    packages=find_packages(include=["nuheat", "nuheat.*", "nuheat2mqtt", "nuheat2mqtt.*"]),
    package_data={"nuheat2mqtt": ["configdoc.md"]},
    classifiers=[
        "Development Status :: 4 - Beta",
        "Intended Audience :: End Users/Desktop",
        "License :: OSI Approved :: MIT License",
        "Operating System :: OS Independent",
        "Programming Language :: Python :: 3",
        "Programming Language :: Python :: 3.9",
        "Programming Language :: Python :: 3.10",
        "Programming Language :: Python :: 3.11",
        "Programming Language :: Python :: 3.12",
        "Topic :: Home Automation",
    ],
    keywords="nuheat thermostat mqtt home-automation",
    install_requires=[
        "aiohttp>=3.8",
        "markdown>=3.4",
        "paho-mqtt>=2.0",
        "pyyaml>=6.0",
    ],
    extras_require={
        "test": [
            "pytest>=7.0",
            "pytest-asyncio>=0.21",
        ],
    },
    entry_points={
        "console_scripts": [
            "nuheat2mqtt=nuheat2mqtt.__main__:main",
        ],
    },
    python_requires=">=3.9",
)
