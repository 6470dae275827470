"""
Trust-cascade form field classifier.

This package provides tools for classifying job-application form fields:
- Deterministic pattern rules and a hierarchical, self-learning cache
- Embedding and zero-shot signals combined by weighted consensus
- Paid oracle verification and classification behind a small interface
- A review queue that gates what the cache learns
- A type guard that keeps Yes/No answers out of free-text fields
"""
