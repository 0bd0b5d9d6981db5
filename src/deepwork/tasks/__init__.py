"""
Task subsystem.

Components:
- task_models.py: data structures (Task, Session, TaskState, TaskCategory)
- task_repo.py: lifecycle transitions + session queries over the record store
- recommend.py: pure ranking of what to work on within a time window
"""
