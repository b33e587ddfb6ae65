"""
Configuration management for the Files Index service.

Contains the Pydantic settings and the mode-aware configuration that works
across local-dev, aws-mock, and aws-prod deployment modes.
"""
