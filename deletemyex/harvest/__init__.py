"""Batch face harvesting: record building and sequential orchestration."""
