"""
Task subsystem.

Components:
- task_models.py: data structures (Task, Priority) and record invariants
- task_store.py: in-memory canonical store with the task lifecycle rules
- task_filters.py: list-view filters (today, overdue, this week, ...)
"""
