"""Error kinds raised by the grading services.

Each error carries a machine-checkable ``kind`` and the HTTP status used by
the JSON views when it is turned into the result envelope.
"""


class CotesError(Exception):
    kind = 'error'
    status = 500

    def __init__(self, message, **metadata):
        super().__init__(message)
        self.message = message
        self.metadata = metadata

    def to_dict(self):
        return {
            'success': False,
            'error': self.message,
            'metadata': {'kind': self.kind, 'code': self.status, **self.metadata},
        }


class NotFound(CotesError):
    kind = 'not_found'
    status = 404


class Conflict(CotesError):
    kind = 'conflict'
    status = 409


class InvalidArgument(CotesError):
    kind = 'invalid_argument'
    status = 400


class PermissionDenied(CotesError):
    kind = 'permission_denied'
    status = 403


class StorageFault(CotesError):
    kind = 'storage_fault'
    status = 500


class NotAuthenticated(CotesError):
    kind = 'not_authenticated'
    status = 401


class MethodNotAllowed(CotesError):
    kind = 'method_not_allowed'
    status = 405
