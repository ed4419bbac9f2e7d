class ServiceError(Exception):
    """Base class for errors the HTTP layer translates to a status code."""

    status_code: int = 500

    def __init__(self, detail: str = ""):
        super().__init__(detail)
        self.detail = detail or self.__class__.__name__


class ValidationError(ServiceError):
    status_code = 400


class NotFound(ServiceError):
    status_code = 404


class Forbidden(ServiceError):
    status_code = 403


class Unauthenticated(ServiceError):
    status_code = 401


class TransientTransportError(ServiceError):
    """Message bus or downstream HTTP failure worth retrying."""

    status_code = 503


class FatalStoreError(ServiceError):
    """Persistence failed; the mutation was not committed."""

    status_code = 500
