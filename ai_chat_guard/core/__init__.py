"""
Core modules for AI Chat Guard.

This package contains the message pipeline: admission control, token
budgeting, stream parsing, retry, safety filtering and post-processing.
"""
