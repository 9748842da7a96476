"""
Queue statistics snapshot.
"""

from pydantic import BaseModel


class QueueStats(BaseModel):
    """
    Best-effort counters for a queue.

    Values are eventually consistent observability signals and are not
    used for control flow.
    """

    pending: int = 0
    processing: int = 0
    retrying: int = 0
    dead_letter: int = 0
    processed: int = 0

    @property
    def total(self) -> int:
        """Jobs that still have work ahead of them."""
        return self.pending + self.processing + self.retrying
