"""
Storage subsystem.

- store.py: SQLite document store (tasks/sessions/settings) with transactions
- backup.py: full export/import of the store as one JSON document
"""
