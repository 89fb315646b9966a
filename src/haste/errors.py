"""Exceptions raised by the haste store."""


class HasteError(Exception):
    """Base class for every error the store raises."""


class NotFoundError(HasteError):
    def __init__(self, item_id: int):
        super().__init__(f"Item {item_id} not found")
        self.item_id = item_id


class ValidationError(HasteError, ValueError):
    """Malformed caller input: unknown kind, bad limit, undecodable string."""


class StorageError(HasteError):
    """The SQLite engine failed while running an operation.

    Carries the operation name and its target (item id or path) so callers
    can log something useful. The original ``sqlite3.Error`` is chained.
    """

    def __init__(self, operation: str, target: object = None, detail: str = ""):
        message = f"{operation} failed"
        if target is not None:
            message += f" for {target}"
        if detail:
            message += f": {detail}"
        super().__init__(message)
        self.operation = operation
        self.target = target


class MigrationError(HasteError):
    def __init__(self, version: int, name: str, detail: str = ""):
        message = f"Migration {version} ({name}) failed"
        if detail:
            message += f": {detail}"
        super().__init__(message)
        self.version = version
        self.name = name
