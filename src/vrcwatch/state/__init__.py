"""State/store layer.

The single source of truth for the last known location of every watched
user, and the only owner of the snapshot file.
"""
