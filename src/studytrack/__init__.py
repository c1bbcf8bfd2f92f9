"""
studytrack: a local study-productivity engine.

Tasks, study sessions and user settings are the canonical state; statistics,
streaks and achievement progress are always re-derived from them.
"""

__version__ = "0.1.0"
