import typing


class DomainError(ValueError):
    """Base class for errors a caller can show to the user as-is.

    ``code`` is a stable key that transport layers translate into their own
    status codes (``not_found`` -> 404, ``not_owner`` -> 403, ...).
    """

    code = "invalid_argument"

    def __init__(self, message: typing.Optional[str] = None) -> None:
        self.message = message or self.code
        super().__init__(self.message)


class ValidationError(DomainError):
    code = "invalid_argument"


class NotFoundError(DomainError):
    code = "not_found"

    def __init__(self, entity: str, entity_id: typing.Any) -> None:
        self.entity = entity
        self.entity_id = entity_id
        super().__init__(f"{entity} with id {entity_id} not found")


class ForbiddenError(DomainError):
    code = "not_owner"


class DuplicateError(DomainError):
    code = "already_exists"


class InvalidStateError(DomainError):
    code = "invalid_state"


class ImportFileError(ValidationError):
    code = "invalid_import_file"


class RowValidationError(ValidationError):
    code = "invalid_row"
