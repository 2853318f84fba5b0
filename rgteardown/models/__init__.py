"""Data models for resource groups, teardown plans and outcomes."""
