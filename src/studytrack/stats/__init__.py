"""Derived metrics: aggregate Stats and study streaks."""
