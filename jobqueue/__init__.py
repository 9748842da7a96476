"""
Async Job Queue

Decouples submitting work from performing it: jobs are persisted by a
pluggable backend (in-memory or Redis), executed by a supervised worker pool,
retried with exponential backoff and dead-lettered once retries run out.
"""

__version__ = "1.0.0"
