"""
Repository layer for saved rules.

Encapsulates how saved rules and folders are stored in a key-value store.
"""
