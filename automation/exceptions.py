"""
Exceptions raised by the fulfillment pipeline.

Business outcomes (unknown code, already claimed, no stock) are recorded as
claim states, not raised. These are for infrastructure trouble only.
"""


class FulfillmentError(Exception):
    """A claim could not be processed. The claim keeps its prior state."""

    retryable = False


class TransientFulfillmentError(FulfillmentError):
    """Temporary failure (store unavailable, timeout). Safe to retry on the next sweep."""

    retryable = True


class AllocationContention(TransientFulfillmentError):
    """Every candidate key was taken by concurrent callers before we could claim one."""

    def __init__(self, attempts):
        self.attempts = attempts
        super().__init__(f'Key allocation lost {attempts} consecutive races')


class ManualAssignmentError(FulfillmentError):
    """An admin key assignment was refused. Nothing was changed."""

    def __init__(self, message, status_code=400):
        self.status_code = status_code
        super().__init__(message)
