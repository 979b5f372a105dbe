"""
Stateful services built on the pure engine.

- history: bounded undo/redo log
- builder: editing session (edit -> history -> validation)
- value_resolver: asynchronous field option sources
"""
