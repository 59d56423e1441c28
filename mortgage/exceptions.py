class MortgageError(Exception):
    """Base class for exceptions from within this application."""


class NotFoundError(MortgageError):
    """Raised if the referenced application does not exist."""


class ForbiddenError(MortgageError):
    """Raised if the actor is neither the owner of the application nor holds a role that permits the action."""


class InvalidTransitionError(MortgageError):
    """Raised if the requested status is not reachable from the current status."""

    def __init__(self, current: str, target: str):
        self.current = current
        self.target = target
        super().__init__(f"Invalid status transition from {current} to {target}")


class ConflictError(MortgageError):
    """
    Raised if another writer changed the application first.

    The caller must read the application again and resubmit. No retry is attempted.
    """


class PublishError(MortgageError):
    """
    Raised if a status change was committed, but its event could not be published.

    The event remains in the outbox. Run ``python -m mortgage republish-events`` to publish it.
    """


class ProcessorError(MortgageError):
    """Raised after a batch of queued messages is processed, if any message failed."""

    def __init__(self, failures: list[tuple[str, Exception]]):
        #: Pairs of message ID and exception.
        self.failures = failures
        super().__init__(f"Failed to process {len(failures)} records")
