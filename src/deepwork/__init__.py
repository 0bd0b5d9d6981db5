"""
deepwork: a local tracker for deep-work tasks and focus sessions.

Subpackages:
- storage: SQLite record store + backup export/import
- tasks: task/session models, repository (lifecycle), recommendation engine
- focus: crash-resilient focus session manager
- cli: composition root, slash commands, console loop
"""

__version__ = "0.1.0"
