"""
Worker module.
Contains the supervised worker pool and the job handler registry.
"""

from jobqueue.worker.handlers import HandlerExecutor, register_handler
from jobqueue.worker.worker import Worker

__all__ = [
    "Worker",
    "HandlerExecutor",
    "register_handler",
]
