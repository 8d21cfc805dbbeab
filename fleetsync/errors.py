"""
Error taxonomy shared by the store and the controllers.

Retryability is expressed through the RetryableError / NonRetryableError
mixins so the controller runner can classify failures without knowing
every concrete store error.
"""


class RetryableError(Exception):
    """Exception that should trigger a requeue with backoff."""
    pass


class NonRetryableError(Exception):
    """Exception that signals a programming or configuration error."""
    pass


class StoreError(Exception):
    """Base class for object store failures."""
    pass


class NotFoundError(StoreError):
    """The addressed object does not exist."""

    def __init__(self, kind: str, namespace: str, name: str):
        super().__init__(f"{kind} {namespace}/{name} not found")
        self.kind = kind
        self.namespace = namespace
        self.name = name


class ConflictError(StoreError, RetryableError):
    """A write carried a stale resource version."""
    pass


class AlreadyExistsError(ConflictError):
    """A create raced with another writer that created the same object."""
    pass


class TransientStoreError(StoreError, RetryableError):
    """The store is temporarily unavailable."""
    pass


class UnknownKindError(StoreError, NonRetryableError):
    """The object kind is not registered with the scheme in use."""
    pass
