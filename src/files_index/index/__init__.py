"""
Secondary index over the file records of the object store.

The snapshot is a materialized view kept loosely consistent with the store by
an operation log that is folded in by merge, and replaced wholesale by rebuild.
Queries read the latest committed snapshot and report when it cannot be used,
in which case callers fall back to scanning the store.
"""
