"""GitHub API exceptions and the status code mapping that produces them."""

import time
from typing import Any, Dict, Optional


class GitHubAPIError(Exception):
    """Base exception for GitHub API errors."""

    def __init__(
        self,
        message: str,
        status_code: Optional[int] = None,
        response_data: Optional[dict] = None,
    ):
        super().__init__(message)
        self.status_code = status_code
        self.response_data = response_data


class GitHubAuthenticationError(GitHubAPIError):
    """Token missing, expired or rejected (HTTP 401)."""


class GitHubRateLimitError(GitHubAPIError):
    """Primary or secondary rate limit hit.

    ``retry_after`` is the number of seconds GitHub asked us to wait, taken
    from ``Retry-After`` or derived from ``X-RateLimit-Reset``.
    """

    def __init__(self, retry_after: int = 60, **kwargs):
        super().__init__(
            f'Rate limit exceeded. Retry after {retry_after} seconds', **kwargs
        )
        self.retry_after = retry_after


class GitHubNotFoundError(GitHubAPIError):
    """Resource not found (HTTP 404)."""


class GitHubPermissionError(GitHubAPIError):
    """Token lacks access to the resource (HTTP 403)."""


class GitHubValidationError(GitHubAPIError):
    """Request rejected by GitHub's validation (HTTP 422)."""


def _error_message(data: Any, status: int) -> str:
    if isinstance(data, dict) and data.get('message'):
        message = data['message']
        errors = data.get('errors')
        if errors:
            message = f'{message}: {errors}'
        return message
    return f'HTTP {status}'


def _retry_after(headers: Dict[str, str]) -> int:
    if headers.get('retry-after', '').isdigit():
        return int(headers['retry-after'])
    reset = headers.get('x-ratelimit-reset', '')
    if reset.isdigit():
        return max(int(reset) - int(time.time()), 1)
    return 60


def error_for_status(
    status: int, headers: Dict[str, str], data: Any
) -> Optional[GitHubAPIError]:
    """Map an HTTP status to the matching exception, or None on success.

    A 403 with ``X-RateLimit-Remaining: 0`` is a rate limit, not a
    permission problem.
    """
    if status < 400:
        return None

    lowered = {k.lower(): v for k, v in headers.items()}
    body = data if isinstance(data, dict) else None

    if status == 429 or (status == 403 and lowered.get('x-ratelimit-remaining') == '0'):
        return GitHubRateLimitError(retry_after=_retry_after(lowered), status_code=status)
    if status == 401:
        return GitHubAuthenticationError('Authentication failed', status_code=status)
    if status == 403:
        return GitHubPermissionError(
            f'Permission denied: {_error_message(data, status)}',
            status_code=status,
            response_data=body,
        )
    if status == 404:
        return GitHubNotFoundError('Resource not found', status_code=status)
    if status == 422:
        return GitHubValidationError(
            f'Validation failed: {_error_message(data, status)}',
            status_code=status,
            response_data=body,
        )
    return GitHubAPIError(
        f'API request failed: {_error_message(data, status)}',
        status_code=status,
        response_data=body,
    )
