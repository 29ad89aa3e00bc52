"""State/store layer.

This package is the single source of truth for how membership changes from
the push feed and from snapshot polling are merged into a versioned,
per-collection wall snapshot.
"""
