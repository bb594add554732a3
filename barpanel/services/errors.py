"""
Errors raised at the storage boundary
"""


class StoreError(Exception):
    """The remote store rejected or failed a request"""


class RowNotFound(StoreError):
    """No row matched the given identity"""

    def __init__(self, collection: str, row_id):
        self.collection = collection
        self.row_id = row_id
        super().__init__(f"{collection} row {row_id} not found")


class InvalidQuery(ValueError):
    """A grid query names a column or filter the grid does not support"""


class BackendUnavailable(StoreError):
    """The configured store is disabled, unconfigured or refused our credentials"""
