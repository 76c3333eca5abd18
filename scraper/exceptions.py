"""Exceptions raised while fetching and converting BFV calendars."""
from typing import Optional

SNIPPET_LENGTH = 1200


class BfvError(Exception):
    """Base exception for all pipeline errors."""

    status_code = 500

    def __init__(self, message: str, status_code: Optional[int] = None):
        super().__init__(message)
        self.message = message
        if status_code is not None:
            self.status_code = status_code

    def to_dict(self) -> dict:
        return {'error': self.message, 'error_type': type(self).__name__}


class MissingParameter(BfvError):
    """A required query parameter is absent."""

    status_code = 400


class InvalidUrl(BfvError):
    """The URL string cannot be parsed."""

    status_code = 400


class InvalidRequest(BfvError):
    """A request parameter other than a URL is malformed."""

    status_code = 400


class UnsupportedScheme(BfvError):
    """The URL uses a scheme other than https."""

    status_code = 400


class HostNotAllowed(BfvError):
    """The URL host is not on the allow-list."""

    status_code = 403


class UpstreamFetchFailed(BfvError):
    """Upstream answered with a non-2xx status or could not be reached."""

    status_code = 502

    def __init__(self, message: str, upstream_status: Optional[int] = None, body: str = ''):
        super().__init__(message)
        self.upstream_status = upstream_status
        self.snippet = (body or '')[:SNIPPET_LENGTH]

    def to_dict(self) -> dict:
        data = super().to_dict()
        data['status'] = self.upstream_status
        data['text'] = self.snippet
        return data


class PaginationAborted(BfvError):
    """The "load more" chain hit a URL that may not be fetched."""

    status_code = 400


class UnrecognizedResponseFormat(BfvError):
    """Upstream body is neither a calendar nor yields any events."""

    status_code = 422
