"""
Adapter layer for the Files Index service.

Contains the object store abstraction with local filesystem and S3
implementations selected by deployment mode.
"""
