"""GitHub API client implementation."""

import asyncio
import json
from typing import Any, Dict, List, Optional
from urllib.parse import urljoin

import aiohttp
import requests
from loguru import logger
from pydantic import BaseModel

from ..config.config import GitHubConfig
from .exceptions import (
    GitHubAPIError,
    GitHubAuthenticationError,
    GitHubNotFoundError,
    GitHubValidationError,
    error_for_status,
)
from .rate_limiter import RateLimiter

USER_AGENT = 'fleet-migrate/0.1.0'
API_VERSION = '2022-11-28'


class APIResponse(BaseModel):
    """Standard API response wrapper."""

    status_code: int
    data: Any
    headers: Dict[str, str]
    success: bool

    def header(self, name: str) -> Optional[str]:
        """Look up a response header case-insensitively."""
        lowered = name.lower()
        for key, value in self.headers.items():
            if key.lower() == lowered:
                return value
        return None


def _raise_for_status(status: int, headers: Dict[str, str], data: Any) -> None:
    error = error_for_status(status, headers, data)
    if error is not None:
        raise error


class GitHubClient:
    """GitHub API client with bearer authentication."""

    def __init__(self, config: GitHubConfig):
        """Initialize GitHub client.

        Args:
            config: GitHub API configuration
        """
        if not config.token:
            raise GitHubAuthenticationError('No authentication token provided')

        self.config = config
        self.base_url = config.api_url.rstrip('/')
        self.rate_limiter = RateLimiter(config.rate_limit_per_second)
        self.session = requests.Session()
        self.session.headers.update(self._default_headers())

        logger.info(f'Initialized GitHub client for {self.base_url}')

    def _default_headers(self) -> Dict[str, str]:
        return {
            'Authorization': f'Bearer {self.config.token}',
            'Accept': 'application/vnd.github+json',
            'X-GitHub-Api-Version': API_VERSION,
            'User-Agent': USER_AGENT,
        }

    def _build_url(self, endpoint: str) -> str:
        """Build full API URL from endpoint.

        Absolute URLs (such as pagination links) are returned unchanged.

        Args:
            endpoint: API endpoint path or absolute URL

        Returns:
            Full API URL
        """
        if endpoint.startswith(('http://', 'https://')):
            return endpoint
        return urljoin(self.base_url + '/', endpoint.lstrip('/'))

    def _handle_response(self, response: requests.Response) -> APIResponse:
        """Handle API response and convert to standard format.

        Args:
            response: Raw HTTP response

        Returns:
            Standardized API response

        Raises:
            GitHubAPIError: For various API errors
        """
        headers = dict(response.headers)

        if response.status_code >= 400:
            try:
                error_data = response.json()
            except ValueError:
                error_data = None
            _raise_for_status(response.status_code, headers, error_data)

        try:
            data = response.json() if response.content else None
        except ValueError:
            data = response.text

        return APIResponse(
            status_code=response.status_code,
            data=data,
            headers=headers,
            success=200 <= response.status_code < 300,
        )

    async def _make_request_async(
        self,
        method: str,
        endpoint: str,
        params: Optional[Dict[str, Any]] = None,
        data: Optional[Dict[str, Any]] = None,
        **kwargs,
    ) -> APIResponse:
        """Make asynchronous API request.

        Args:
            method: HTTP method
            endpoint: API endpoint
            params: Query parameters
            data: Request body data
            **kwargs: Additional request arguments

        Returns:
            API response
        """
        url = self._build_url(endpoint)
        await self.rate_limiter.acquire()

        timeout = aiohttp.ClientTimeout(total=self.config.timeout)
        async with aiohttp.ClientSession(
            headers=self._default_headers(), timeout=timeout
        ) as session:
            try:
                async with session.request(
                    method=method, url=url, params=params, json=data, **kwargs
                ) as response:
                    response_headers = dict(response.headers)
                    response_text = await response.text()

                    try:
                        response_data = (
                            json.loads(response_text) if response_text else None
                        )
                    except ValueError:
                        response_data = response_text

                    _raise_for_status(response.status, response_headers, response_data)

                    return APIResponse(
                        status_code=response.status,
                        data=response_data,
                        headers=response_headers,
                        success=200 <= response.status < 300,
                    )

            except aiohttp.ClientError as e:
                logger.error(f'Network error during API request: {e}')
                raise GitHubAPIError(f'Network error: {e}')
            except asyncio.TimeoutError as e:
                logger.error(f'API request to {url} timed out')
                raise GitHubAPIError(
                    f'Request timed out after {self.config.timeout} seconds'
                ) from e

    def get(
        self, endpoint: str, params: Optional[Dict[str, Any]] = None, **kwargs
    ) -> APIResponse:
        """Make GET request.

        Args:
            endpoint: API endpoint or absolute URL
            params: Query parameters
            **kwargs: Additional request arguments

        Returns:
            API response
        """
        url = self._build_url(endpoint)
        self.rate_limiter.acquire_sync()

        try:
            response = self.session.get(
                url, params=params, timeout=self.config.timeout, **kwargs
            )
            return self._handle_response(response)
        except requests.RequestException as e:
            logger.error(f'Network error during GET request: {e}')
            raise GitHubAPIError(f'Network error: {e}')

    def post(
        self, endpoint: str, data: Optional[Dict[str, Any]] = None, **kwargs
    ) -> APIResponse:
        """Make POST request.

        Args:
            endpoint: API endpoint
            data: Request body data
            **kwargs: Additional request arguments

        Returns:
            API response
        """
        url = self._build_url(endpoint)
        self.rate_limiter.acquire_sync()

        try:
            response = self.session.post(
                url, json=data, timeout=self.config.timeout, **kwargs
            )
            return self._handle_response(response)
        except requests.RequestException as e:
            logger.error(f'Network error during POST request: {e}')
            raise GitHubAPIError(f'Network error: {e}')

    async def get_async(
        self, endpoint: str, params: Optional[Dict[str, Any]] = None, **kwargs
    ) -> APIResponse:
        """Make asynchronous GET request."""
        return await self._make_request_async('GET', endpoint, params=params, **kwargs)

    async def post_async(
        self, endpoint: str, data: Optional[Dict[str, Any]] = None, **kwargs
    ) -> APIResponse:
        """Make asynchronous POST request."""
        return await self._make_request_async('POST', endpoint, data=data, **kwargs)

    def organization_repos_endpoint(self, organization: str) -> str:
        """Endpoint listing every repository of an organization."""
        return f'/orgs/{organization}/repos'

    async def content_exists_async(
        self, organization: str, repository: str, path: str
    ) -> bool:
        """Check whether a file exists on the repository's default branch.

        Args:
            organization: Repository owner
            repository: Repository name
            path: File path inside the repository

        Returns:
            True if the contents API answers 200, False on 404

        Raises:
            GitHubAPIError: For any other failure
        """
        try:
            response = await self.get_async(
                f'/repos/{organization}/{repository}/contents/{path.lstrip("/")}'
            )
        except GitHubNotFoundError:
            return False
        return response.success

    async def create_pull_request_async(
        self,
        organization: str,
        repository: str,
        head: str,
        base: str,
        title: str,
        body: Optional[str] = None,
    ) -> Dict[str, Any]:
        """Open a pull request, reusing an already open one for the same head.

        Returns:
            Pull request data as returned by the API
        """
        payload = {'title': title, 'head': head, 'base': base, 'body': body or title}
        try:
            response = await self.post_async(
                f'/repos/{organization}/{repository}/pulls', data=payload
            )
            return response.data
        except GitHubValidationError as e:
            if 'already exists' not in str(e):
                raise
            existing = await self.find_pull_request_async(
                organization, repository, head, base
            )
            if existing is None:
                raise
            logger.info(
                f'Pull request for {organization}/{repository}:{head} already exists: '
                f'{existing.get("html_url")}'
            )
            return existing

    async def find_pull_request_async(
        self, organization: str, repository: str, head: str, base: str
    ) -> Optional[Dict[str, Any]]:
        """Find the open pull request for ``head`` against ``base``."""
        response = await self.get_async(
            f'/repos/{organization}/{repository}/pulls',
            params={'head': f'{organization}:{head}', 'base': base, 'state': 'open'},
        )
        pulls = response.data or []
        return pulls[0] if pulls else None

    async def request_reviewers_async(
        self, organization: str, repository: str, number: int, reviewer: str
    ) -> APIResponse:
        """Request a review from a user or an ``org/team`` slug."""
        if '/' in reviewer:
            payload: Dict[str, List[str]] = {
                'team_reviewers': [reviewer.split('/', 1)[1]]
            }
        else:
            payload = {'reviewers': [reviewer]}

        return await self.post_async(
            f'/repos/{organization}/{repository}/pulls/{number}/requested_reviewers',
            data=payload,
        )

    def test_connection(self) -> bool:
        """Test connection to the GitHub API.

        Returns:
            True if connection successful, False otherwise
        """
        try:
            response = self.get('/user')
            return response.success
        except GitHubAPIError as e:
            logger.error(f'Connection test failed: {e}')
            return False

    def close(self):
        """Close the client session."""
        self.session.close()
        logger.info('GitHub client session closed')

    def __enter__(self):
        """Context manager entry."""
        return self

    def __exit__(self, exc_type, exc_val, exc_tb):
        """Context manager exit."""
        self.close()


class GitHubClientFactory:
    """Factory for creating GitHub API clients."""

    @staticmethod
    def create_client(config: GitHubConfig) -> GitHubClient:
        """Create GitHub client from configuration.

        Args:
            config: GitHub API configuration

        Returns:
            Configured GitHub client

        Raises:
            GitHubAuthenticationError: If no token is configured
        """
        if not config.token:
            raise GitHubAuthenticationError('GITHUB_TOKEN must be set')

        return GitHubClient(config)
