"""Link-header pagination over repository listings."""

import re
from typing import Any, Dict, Iterator, Optional

from loguru import logger
from pydantic import ValidationError

from ..migration.exceptions import DiscoveryError
from ..models.repository import RepositoryDescriptor
from .client import GitHubClient
from .exceptions import GitHubAPIError

LINK_PATTERN = re.compile(r'<([^>]+)>;\s*rel="([^"]+)"')


def parse_link_header(header: Optional[str]) -> Dict[str, str]:
    """Parse an RFC 8288 style ``Link`` header into ``{rel: url}``.

    >>> parse_link_header('<https://x/?page=2>; rel="next", <https://x/?page=5>; rel="last"')
    {'next': 'https://x/?page=2', 'last': 'https://x/?page=5'}
    """
    links: Dict[str, str] = {}
    if not header:
        return links

    for url, rel in LINK_PATTERN.findall(header):
        # rel may hold several space-separated relation types
        for name in rel.split():
            links[name] = url
    return links


class PageWalker:
    """Lazily yields repository descriptors across every listing page.

    Each page is fetched only when the previous one has been consumed.
    Any transport or parse failure raises :class:`DiscoveryError`.
    """

    def __init__(
        self,
        client: GitHubClient,
        start_url: str,
        params: Optional[Dict[str, Any]] = None,
    ):
        """Initialize page walker.

        Args:
            client: GitHub API client
            start_url: Endpoint or absolute URL of the first page
            params: Query parameters for the first request only; later
                pages use the URL from the ``next`` link verbatim
        """
        self.client = client
        self.start_url = start_url
        self.params = params
        self.pages_fetched = 0
        self.logger = logger.bind(component='PageWalker')

    def __iter__(self) -> Iterator[RepositoryDescriptor]:
        url: Optional[str] = self.start_url
        params = self.params

        while url:
            try:
                response = self.client.get(url, params=params)
            except GitHubAPIError as e:
                raise DiscoveryError(f'Failed to fetch listing page {url}: {e}') from e

            self.pages_fetched += 1
            records = response.data
            if not isinstance(records, list):
                raise DiscoveryError(
                    f'Listing page {url} did not contain a list of repositories'
                )

            self.logger.debug(
                f'Fetched page {self.pages_fetched} with {len(records)} repositories'
            )

            for record in records:
                try:
                    descriptor = RepositoryDescriptor.from_api(record)
                except (KeyError, TypeError, ValidationError) as e:
                    raise DiscoveryError(
                        f'Malformed repository record on page {url}: {e}'
                    ) from e
                yield descriptor

            url = parse_link_header(response.header('Link')).get('next')
            params = None

        self.logger.info(f'Listing exhausted after {self.pages_fetched} page(s)')
