"""
Cooperative cancellation for long-running refreshes and page loads.
"""


class CancellationToken:
    """
    Liveness flag shared between an owner and the work it started.

    Work scheduled after a suspension point checks ``cancelled`` before
    applying results, so a torn-down owner never receives late updates.
    """

    def __init__(self):
        self._cancelled = False

    @property
    def cancelled(self) -> bool:
        return self._cancelled

    def cancel(self) -> None:
        self._cancelled = True
