"""
Command-line front end.

- bootstrap.py: composition root (settings -> AppState)
- commands.py: slash-command registry and handlers
- console.py: interactive loop
- main.py: entry point
"""
