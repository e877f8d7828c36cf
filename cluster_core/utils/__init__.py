"""
Shared utilities: structured logging, error types and progress tracking.
"""
