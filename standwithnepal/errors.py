"""
Service-layer errors. Routes let these propagate; the app-level handler
renders them as {"success": false, "message": ...} with the carried status.
"""


class ServiceError(Exception):
    status_code = 400

    def __init__(self, message: str, status_code: int = None):
        super().__init__(message)
        self.message = message
        if status_code is not None:
            self.status_code = status_code


class InvalidInput(ServiceError):
    status_code = 400


class NotAuthenticated(ServiceError):
    status_code = 401


class Forbidden(ServiceError):
    status_code = 403


class NotFound(ServiceError):
    status_code = 404


class Conflict(ServiceError):
    status_code = 409


def missing_field(name: str) -> InvalidInput:
    return InvalidInput(f"Missing required field: {name}")


# Where pydantic says an error is; the first element is dropped when it names the request part
_REQUEST_PARTS = ("body", "query", "path", "header", "cookie")


def validation_message(errors: list) -> str:
    """One human-readable message for a list of pydantic error dicts."""
    if not errors:
        return "Invalid input"
    err = errors[0]
    if err.get("type") == "json_invalid":
        return "Invalid JSON"
    loc = [str(part) for part in err.get("loc", ())]
    if loc and loc[0] in _REQUEST_PARTS:
        loc = loc[1:]
    field = ".".join(loc)
    if not field:
        return "Invalid input"
    if err.get("type") == "missing":
        return f"Missing required field: {field}"
    return f"Invalid {field}: {err.get('msg', 'invalid value')}"
