"""Tests for GitHub API client."""

import asyncio
import json

import pytest
from unittest.mock import Mock, patch
import requests
import aiohttp

from src.fleet_migrate.api.client import GitHubClient, GitHubClientFactory, APIResponse
from src.fleet_migrate.api.exceptions import (
    GitHubAPIError,
    GitHubAuthenticationError,
    GitHubNotFoundError,
    GitHubPermissionError,
    GitHubRateLimitError,
    GitHubValidationError,
    error_for_status,
)
from src.fleet_migrate.api.rate_limiter import RateLimiter
from src.fleet_migrate.config.config import GitHubConfig


class FakeResponse:
    """Minimal stand-in for an aiohttp response context manager."""

    def __init__(self, status, payload=None, headers=None):
        self.status = status
        self.headers = headers or {}
        self._text = json.dumps(payload) if payload is not None else ''

    async def text(self):
        return self._text

    async def __aenter__(self):
        return self

    async def __aexit__(self, exc_type, exc, tb):
        return None


class FakeSession:
    """Minimal stand-in for aiohttp.ClientSession replaying queued responses."""

    def __init__(self, *responses):
        self.responses = list(responses)
        self.calls = []

    def request(self, method, url, params=None, json=None, **kwargs):
        self.calls.append({'method': method, 'url': url, 'params': params, 'json': json})
        response = self.responses.pop(0)
        if isinstance(response, Exception):
            raise response
        return response

    async def __aenter__(self):
        return self

    async def __aexit__(self, exc_type, exc, tb):
        return None


def make_response(status_code=200, payload=None, headers=None):
    mock_response = Mock()
    mock_response.status_code = status_code
    mock_response.json.return_value = payload
    mock_response.headers = headers or {}
    mock_response.content = json.dumps(payload).encode() if payload is not None else b''
    return mock_response


class TestAPIResponse:
    """Test API response model."""

    def test_api_response_creation(self):
        """Test API response creation."""
        response = APIResponse(
            status_code=200,
            data={'id': 1, 'name': 'test'},
            headers={'Content-Type': 'application/json'},
            success=True,
        )

        assert response.status_code == 200
        assert response.data == {'id': 1, 'name': 'test'}
        assert response.success is True

    def test_header_lookup_is_case_insensitive(self):
        """Test header lookup ignores case."""
        response = APIResponse(
            status_code=200, data=[], headers={'link': '<u>; rel="next"'}, success=True
        )

        assert response.header('Link') == '<u>; rel="next"'
        assert response.header('X-Missing') is None


class TestGitHubClient:
    """Test GitHub API client."""

    def setup_method(self):
        """Set up test fixtures."""
        self.config = GitHubConfig(
            api_url='https://api.github.com',
            organization='acme',
            token='test-token',
            timeout=30,
            rate_limit_per_second=100,
        )

    def test_client_initialization(self):
        """Test client initialization."""
        client = GitHubClient(self.config)

        assert client.config == self.config
        assert client.base_url == 'https://api.github.com'
        assert client.session.headers['Authorization'] == 'Bearer test-token'
        assert client.session.headers['Accept'] == 'application/vnd.github+json'
        assert client.session.headers['X-GitHub-Api-Version'] == '2022-11-28'

    def test_build_url(self):
        """Test URL building."""
        client = GitHubClient(self.config)

        assert client._build_url('/orgs/acme/repos') == 'https://api.github.com/orgs/acme/repos'
        assert client._build_url('user') == 'https://api.github.com/user'
        assert (
            client._build_url('https://api.github.com/organizations/1/repos?page=2')
            == 'https://api.github.com/organizations/1/repos?page=2'
        )

    def test_build_url_with_path_prefix(self):
        """Test URL building keeps an enterprise API prefix."""
        config = GitHubConfig(
            api_url='https://github.example.com/api/v3', organization='acme', token='t'
        )
        client = GitHubClient(config)

        assert (
            client._build_url('/orgs/acme/repos')
            == 'https://github.example.com/api/v3/orgs/acme/repos'
        )

    @patch('requests.Session.get')
    def test_get_request_success(self, mock_get):
        """Test successful GET request."""
        mock_get.return_value = make_response(
            200, [{'name': 'svc'}], {'Link': '<https://next>; rel="next"'}
        )

        client = GitHubClient(self.config)
        response = client.get('/orgs/acme/repos', params={'per_page': 100})

        assert response.success is True
        assert response.data == [{'name': 'svc'}]
        assert response.header('link') == '<https://next>; rel="next"'
        mock_get.assert_called_once_with(
            'https://api.github.com/orgs/acme/repos', params={'per_page': 100}, timeout=30
        )

    @patch('requests.Session.get')
    def test_get_request_404(self, mock_get):
        """Test GET request with 404 error."""
        mock_get.return_value = make_response(404, {'message': 'Not Found'})

        client = GitHubClient(self.config)

        with pytest.raises(GitHubNotFoundError):
            client.get('/orgs/missing/repos')

    @patch('requests.Session.get')
    def test_get_request_401(self, mock_get):
        """Test GET request with authentication error."""
        mock_get.return_value = make_response(401, {'message': 'Bad credentials'})

        client = GitHubClient(self.config)

        with pytest.raises(GitHubAuthenticationError):
            client.get('/user')

    @patch('requests.Session.get')
    def test_get_request_429(self, mock_get):
        """Test GET request with rate limit error."""
        mock_get.return_value = make_response(429, None, {'Retry-After': '42'})

        client = GitHubClient(self.config)

        with pytest.raises(GitHubRateLimitError) as exc_info:
            client.get('/user')

        assert exc_info.value.retry_after == 42

    @patch('requests.Session.get')
    def test_get_request_403_exhausted_quota(self, mock_get):
        """Test 403 with an exhausted quota is a rate limit error."""
        mock_get.return_value = make_response(
            403, {'message': 'API rate limit exceeded'}, {'X-RateLimit-Remaining': '0'}
        )

        client = GitHubClient(self.config)

        with pytest.raises(GitHubRateLimitError):
            client.get('/user')

    @patch('requests.Session.get')
    def test_get_request_403_permission(self, mock_get):
        """Test plain 403 is a permission error."""
        mock_get.return_value = make_response(403, {'message': 'Resource not accessible'})

        client = GitHubClient(self.config)

        with pytest.raises(GitHubPermissionError, match='Resource not accessible'):
            client.get('/orgs/acme/repos')

    @patch('requests.Session.get')
    def test_get_network_error(self, mock_get):
        """Test transport errors become GitHubAPIError."""
        mock_get.side_effect = requests.ConnectionError('connection refused')

        client = GitHubClient(self.config)

        with pytest.raises(GitHubAPIError, match='Network error'):
            client.get('/user')

    @patch('requests.Session.post')
    def test_post_request_success(self, mock_post):
        """Test successful POST request."""
        mock_post.return_value = make_response(201, {'number': 7})

        client = GitHubClient(self.config)
        response = client.post('/repos/acme/svc/pulls', data={'title': 't'})

        assert response.success is True
        assert response.status_code == 201
        assert response.data == {'number': 7}
        mock_post.assert_called_once()

    @patch('requests.Session.get')
    def test_test_connection_success(self, mock_get):
        """Test successful connection test."""
        mock_get.return_value = make_response(200, {'login': 'bot'})

        client = GitHubClient(self.config)

        assert client.test_connection() is True

    @patch('requests.Session.get')
    def test_test_connection_failure(self, mock_get):
        """Test failed connection test."""
        mock_get.side_effect = requests.RequestException('Connection failed')

        client = GitHubClient(self.config)

        assert client.test_connection() is False

    def test_context_manager(self):
        """Test client as context manager."""
        with patch.object(GitHubClient, 'close') as mock_close:
            with GitHubClient(self.config) as client:
                assert isinstance(client, GitHubClient)
            mock_close.assert_called_once()


class TestGitHubClientFactory:
    """Test GitHub client factory."""

    def test_create_client_with_token(self):
        """Test client creation with token."""
        config = GitHubConfig(organization='acme', token='test-token')

        client = GitHubClientFactory.create_client(config)

        assert isinstance(client, GitHubClient)
        assert client.config == config

    def test_create_client_no_token(self):
        """Test client creation without a token."""
        config = GitHubConfig.construct(
            api_url='https://api.github.com', organization='acme', token=None
        )

        with pytest.raises(GitHubAuthenticationError):
            GitHubClientFactory.create_client(config)


class TestAsyncMethods:
    """Test asynchronous API methods."""

    def setup_method(self):
        """Set up test fixtures."""
        self.config = GitHubConfig(
            organization='acme', token='test-token', rate_limit_per_second=100
        )

    @pytest.mark.asyncio
    async def test_get_async_success(self):
        """Test successful async GET request."""
        session = FakeSession(FakeResponse(200, {'name': 'svc'}))

        with patch('aiohttp.ClientSession', return_value=session):
            client = GitHubClient(self.config)
            response = await client.get_async('/repos/acme/svc')

        assert response.success is True
        assert response.data == {'name': 'svc'}
        assert session.calls[0]['url'] == 'https://api.github.com/repos/acme/svc'

    @pytest.mark.asyncio
    async def test_get_async_404(self):
        """Test async GET request with 404 error."""
        session = FakeSession(FakeResponse(404, {'message': 'Not Found'}))

        with patch('aiohttp.ClientSession', return_value=session):
            client = GitHubClient(self.config)

            with pytest.raises(GitHubNotFoundError):
                await client.get_async('/repos/acme/missing')

    @pytest.mark.asyncio
    async def test_get_async_network_error(self):
        """Test aiohttp client errors become GitHubAPIError."""
        session = FakeSession(aiohttp.ClientConnectionError('reset'))

        with patch('aiohttp.ClientSession', return_value=session):
            client = GitHubClient(self.config)

            with pytest.raises(GitHubAPIError, match='Network error'):
                await client.get_async('/repos/acme/svc')

    @pytest.mark.asyncio
    async def test_get_async_timeout(self):
        """Test an expired aiohttp timeout becomes GitHubAPIError."""
        session = FakeSession(asyncio.TimeoutError())

        with patch('aiohttp.ClientSession', return_value=session):
            client = GitHubClient(self.config)

            with pytest.raises(GitHubAPIError, match='timed out after 30 seconds'):
                await client.post_async('/repos/acme/svc/pulls', data={'title': 't'})

    @pytest.mark.asyncio
    async def test_content_exists(self):
        """Test content probe distinguishes present and absent files."""
        session = FakeSession(
            FakeResponse(200, {'type': 'file'}),
            FakeResponse(404, {'message': 'Not Found'}),
        )

        with patch('aiohttp.ClientSession', return_value=session):
            client = GitHubClient(self.config)
            present = await client.content_exists_async(
                'acme', 'svc', 'repository_metadata.yaml'
            )
            absent = await client.content_exists_async(
                'acme', 'other', 'repository_metadata.yaml'
            )

        assert present is True
        assert absent is False
        assert session.calls[0]['url'].endswith(
            '/repos/acme/svc/contents/repository_metadata.yaml'
        )

    @pytest.mark.asyncio
    async def test_content_exists_propagates_other_errors(self):
        """Test probe failures other than 404 are raised."""
        session = FakeSession(FakeResponse(500, {'message': 'Server Error'}))

        with patch('aiohttp.ClientSession', return_value=session):
            client = GitHubClient(self.config)

            with pytest.raises(GitHubAPIError):
                await client.content_exists_async('acme', 'svc', 'repository_metadata.yaml')

    @pytest.mark.asyncio
    async def test_create_pull_request(self):
        """Test pull request creation payload."""
        session = FakeSession(
            FakeResponse(201, {'number': 3, 'html_url': 'https://github.com/acme/svc/pull/3'})
        )

        with patch('aiohttp.ClientSession', return_value=session):
            client = GitHubClient(self.config)
            pull_request = await client.create_pull_request_async(
                'acme', 'svc', head='T-1/fix', base='main', title='T-1/Fix things'
            )

        assert pull_request['number'] == 3
        assert session.calls[0]['method'] == 'POST'
        assert session.calls[0]['json'] == {
            'title': 'T-1/Fix things',
            'head': 'T-1/fix',
            'base': 'main',
            'body': 'T-1/Fix things',
        }

    @pytest.mark.asyncio
    async def test_create_pull_request_reuses_existing(self):
        """Test an already open pull request is returned instead of failing."""
        session = FakeSession(
            FakeResponse(
                422,
                {
                    'message': 'Validation Failed',
                    'errors': [{'message': 'A pull request already exists for acme:T-1/fix.'}],
                },
            ),
            FakeResponse(200, [{'number': 9, 'html_url': 'https://github.com/acme/svc/pull/9'}]),
        )

        with patch('aiohttp.ClientSession', return_value=session):
            client = GitHubClient(self.config)
            pull_request = await client.create_pull_request_async(
                'acme', 'svc', head='T-1/fix', base='main', title='T-1/Fix things'
            )

        assert pull_request['number'] == 9
        assert session.calls[1]['method'] == 'GET'
        assert session.calls[1]['params'] == {
            'head': 'acme:T-1/fix',
            'base': 'main',
            'state': 'open',
        }

    @pytest.mark.asyncio
    async def test_create_pull_request_other_validation_error(self):
        """Test unrelated validation errors are raised."""
        session = FakeSession(
            FakeResponse(422, {'message': 'Validation Failed', 'errors': ['No commits']})
        )

        with patch('aiohttp.ClientSession', return_value=session):
            client = GitHubClient(self.config)

            with pytest.raises(GitHubValidationError):
                await client.create_pull_request_async(
                    'acme', 'svc', head='T-1/fix', base='main', title='t'
                )

    @pytest.mark.asyncio
    @pytest.mark.parametrize(
        'reviewer,payload',
        [
            ('octocat', {'reviewers': ['octocat']}),
            ('acme/devops', {'team_reviewers': ['devops']}),
        ],
    )
    async def test_request_reviewers(self, reviewer, payload):
        """Test users and org/team slugs map to the right field."""
        session = FakeSession(FakeResponse(201, {'number': 3}))

        with patch('aiohttp.ClientSession', return_value=session):
            client = GitHubClient(self.config)
            await client.request_reviewers_async('acme', 'svc', 3, reviewer)

        assert session.calls[0]['url'].endswith('/repos/acme/svc/pulls/3/requested_reviewers')
        assert session.calls[0]['json'] == payload


class TestRateLimiter:
    """Test token bucket rate limiter."""

    def test_initial_burst_is_free(self):
        """Test a full bucket does not delay."""
        limiter = RateLimiter(requests_per_second=5)

        assert limiter._take() == 0.0
        assert limiter.time_until_next_request() == 0.0

    def test_empty_bucket_requires_wait(self):
        """Test an exhausted bucket reports a delay."""
        limiter = RateLimiter(requests_per_second=2)
        limiter._take()
        limiter._take()

        assert limiter._take() > 0

    def test_invalid_rate(self):
        """Test non-positive rates are rejected."""
        with pytest.raises(ValueError):
            RateLimiter(requests_per_second=0)


class TestErrorForStatus:
    """Test status code to exception mapping."""

    def test_success_maps_to_none(self):
        """Test non-error statuses produce no exception."""
        assert error_for_status(201, {}, {'number': 1}) is None

    @patch('src.fleet_migrate.api.exceptions.time.time', return_value=1000)
    def test_rate_limit_reset_header(self, mock_time):
        """Test the wait is derived from X-RateLimit-Reset without Retry-After."""
        error = error_for_status(
            403, {'X-RateLimit-Remaining': '0', 'X-RateLimit-Reset': '1300'}, None
        )

        assert isinstance(error, GitHubRateLimitError)
        assert error.retry_after == 300
        assert error.status_code == 403

    def test_server_error_keeps_body(self):
        """Test unexpected statuses carry the API message and body."""
        error = error_for_status(502, {}, {'message': 'Bad gateway'})

        assert type(error) is GitHubAPIError
        assert str(error) == 'API request failed: Bad gateway'
        assert error.response_data == {'message': 'Bad gateway'}
