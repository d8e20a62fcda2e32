class RepositoryAccessError(Exception):
    """An object, its content-unit metadata, or its content could not be read."""

    def __init__(self, message: str, object_id: str = "", unit_id: str = ""):
        super().__init__(message)
        self.object_id = object_id
        self.unit_id = unit_id


class IndexQueryError(RepositoryAccessError):
    """The search index could not resolve an object's children."""

    pass
