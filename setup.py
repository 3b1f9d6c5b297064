"""Setup configuration for ezjob."""

from setuptools import setup, find_packages

setup(
    name="ezjob",
    version="1.0.0",
    description="Background job scheduling, rate limiting and security events for the EzJob tracker",
    packages=find_packages(include=["ezjob", "ezjob.*"]),
    install_requires=[
        "click>=8.1.7",
        "pydantic>=2.5.0",
        "pydantic-settings>=2.1.0",
        "tzdata",
    ],
    extras_require={
        "test": ["pytest>=7.4"],
    },
    entry_points={
        "console_scripts": [
            "ezjob=ezjob.cli:cli",
        ],
    },
    python_requires=">=3.9",
)
