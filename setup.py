"""
TaskTrack setup.py — Package configuration and CLI entry point.
"""

from setuptools import find_packages, setup

setup(
    name="tasktrack",
    version="1.0.0",
    description="TaskTrack — project and task tracking backend with weighted progress rollup",
    packages=find_packages(include=["tasktrack", "tasktrack.*"]),
    python_requires=">=3.11",
    entry_points={
        "console_scripts": [
            "tasktrack=tasktrack.cli:main",
        ],
    },
    install_requires=[
        "sqlalchemy>=2.0",
        "psycopg2-binary>=2.9",
        "pydantic[email]>=2.5",
        "bcrypt>=4.1",
        "pyyaml>=6.0",
    ],
    extras_require={
        "test": [
            "pytest>=8.0",
        ],
    },
)
