"""
Focus sessions.

- session_manager.py: start/finish/abandon with the one-focusing-task rule
- snapshot_file.py: durable JSON home of the open session
"""
