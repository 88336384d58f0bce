class StoreError(Exception):
    """Base class for failures talking to the document store."""


class NotConnectedError(StoreError):
    def __init__(self, message: str = "not connected to any database"):
        super().__init__(message)


class QueryFailedError(StoreError):
    pass


class DecodeFailedError(QueryFailedError):
    """A stored document does not have the expected shape."""

    def __init__(self, collection: str, doc_id, reason: str):
        self.collection = collection
        self.doc_id = doc_id
        self.reason = reason
        super().__init__(f"cannot decode {collection} document {doc_id!r}: {reason}")


class UnknownEntityError(ValueError):
    def __init__(self, entity: str):
        self.entity = entity
        super().__init__(f"unknown entity '{entity}'")
