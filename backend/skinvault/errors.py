class CatalogError(Exception):
    """base for every failure raised by the import and assignment pipelines"""


class TransportError(CatalogError):
    """network, DNS or HTTP status failure talking to the catalog API"""


class RequestTimeout(TransportError, TimeoutError):
    """a catalog request exceeded its time bound"""


class InvalidResponseError(CatalogError):
    """the catalog API answered, but not with the expected envelope"""


class ValidationError(CatalogError):
    """a single weapon, skin or tier record failed schema checks"""


class PersistenceError(CatalogError):
    """the store rejected a write"""


class EmptyResultError(CatalogError):
    """a pipeline stage produced nothing where at least one item was required"""
