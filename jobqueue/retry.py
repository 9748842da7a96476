"""
Exponential backoff for failed jobs.
"""

from dataclasses import dataclass


@dataclass(frozen=True)
class RetryPolicy:
    """
    Retry backoff configuration.

    The delay doubles with every recorded attempt and is capped at
    ``max_delay_seconds``. There is no jitter, so the schedule is
    deterministic. A policy with both delays at zero retries immediately
    and turns the worker into a busy loop; that is a caller misconfiguration.
    """

    base_delay_seconds: float = 5.0
    max_delay_seconds: float = 300.0

    def get_delay(self, attempts: int) -> float:
        """
        Calculate the backoff before the next attempt.

        Args:
            attempts: Attempts recorded so far (before prepare_retry increments).

        Returns:
            Delay in seconds.
        """
        return min(self.max_delay_seconds, self.base_delay_seconds * (2**attempts))

    @property
    def is_busy_loop(self) -> bool:
        return self.base_delay_seconds <= 0 and self.max_delay_seconds <= 0
