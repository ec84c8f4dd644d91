"""
TaskTrack — project and task tracking backend with weighted progress rollup.
"""

__version__ = "1.0.0"
__all__ = ["engine", "db", "services", "cli"]
