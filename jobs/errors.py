class QueueError(Exception):
    """The queue's backing store could not be reached or refused the operation."""


class JobStalledError(Exception):
    """An active job outlived its visibility timeout without being settled."""
