"""
Core wiring.

- ports.py: Protocols the services depend on (record store, snapshot store)
- state.py: AppState, the explicit context object passed to connectors
"""
