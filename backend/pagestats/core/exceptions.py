class StoreError(Exception):
    """The database rejected or could not execute a statement.

    The original driver/SQLAlchemy error is chained as ``__cause__``. For a
    merge this means the counter was not updated and the whole merge should
    be retried.
    """


class StoreTimeoutError(StoreError):
    """A merge did not finish within its timeout and was rolled back."""


class EmptyBatchError(ValueError):
    """``save_hits`` was called without any hits."""
