"""GitHub REST API client with Link-header pagination."""

import re
import time
from typing import Any, List, Optional

import requests

from ..shared.logging_setup import get_logger

DEFAULT_BASE_URL = "https://api.github.com"
DEFAULT_API_VERSION = "2022-11-28"
USER_AGENT = "CopilotMetricsIngestion"
REQUEST_TIMEOUT = 30

_TOKEN_PATTERNS = [
    r'gh[pousr]_[A-Za-z0-9]{20,}',
    r'github_pat_[A-Za-z0-9_]{20,}',
    r'(["\']?authorization["\']?\s*[:=]\s*["\']?(?:Bearer\s+)?)([A-Za-z0-9_\-\.]{15,})(["\']?)',
]


def _sanitize_sensitive_data(text: str) -> str:
    """Remove anything that looks like a GitHub credential from ``text``."""
    if not text:
        return text

    sanitized_text = text
    for pattern in _TOKEN_PATTERNS:
        if '(' in pattern:
            sanitized_text = re.sub(
                pattern,
                lambda match: match.group(1) + '[REDACTED_CREDENTIAL]' + match.group(3),
                sanitized_text,
                flags=re.IGNORECASE,
            )
        else:
            sanitized_text = re.sub(pattern, '[REDACTED_CREDENTIAL]', sanitized_text)
    return sanitized_text


class GitHubAPIError(Exception):
    """GitHub API request failed."""

    def __init__(self, message: str, status_code: Optional[int] = None, response_text: Optional[str] = None):
        self.status_code = status_code
        self.response_text = response_text
        super().__init__(message)


class GitHubNotFoundError(GitHubAPIError):
    """The requested resource does not exist (HTTP 404)."""
    pass


class GitHubTransportError(GitHubAPIError):
    """Network failure or malformed URL; no HTTP status available."""
    pass


class GitHubDecodeError(GitHubAPIError):
    """Response body was not the JSON shape we expected."""
    pass


class PaginationLimitError(GitHubAPIError):
    """The server kept returning next links past the configured page cap."""
    pass


def parse_next_link(link_header: Optional[str]) -> Optional[str]:
    """
    Extract the ``rel="next"`` URL from a Link header.

    Example header:
        <https://api.github.com/orgs/acme/copilot/billing/seats?page=2>; rel="next",
        <https://api.github.com/orgs/acme/copilot/billing/seats?page=5>; rel="last"
    """
    if not link_header:
        return None

    for link in link_header.split(","):
        parts = link.split(";")
        if len(parts) < 2:
            continue
        if any(re.search(r'rel="?next"?', part.strip()) for part in parts[1:]):
            return parts[0].strip().strip("<>")
    return None


class GitHubClient:
    """Authenticated client for the GitHub REST API."""

    def __init__(self, token: str, base_url: str = DEFAULT_BASE_URL,
                 api_version: str = DEFAULT_API_VERSION, max_pages: int = 1000,
                 session: Optional[requests.Session] = None):
        self.logger = get_logger("github_client")
        self.base_url = (base_url or DEFAULT_BASE_URL).rstrip('/')
        self.max_pages = max_pages
        self.session = session or requests.Session()
        self.session.headers.update({
            'Authorization': f'Bearer {token}',
            'Accept': 'application/vnd.github+json',
            'X-GitHub-Api-Version': api_version or DEFAULT_API_VERSION,
            'User-Agent': USER_AGENT,
        })

    def _build_url(self, path: str) -> str:
        if path.startswith("http://") or path.startswith("https://"):
            return path
        if not path.startswith("/"):
            path = "/" + path
        return f"{self.base_url}{path}"

    def normalize_path(self, link: Optional[str]) -> Optional[str]:
        """
        Turn a next-page link into a path relative to the API root.

        Relative links pass through. Absolute links under ``base_url`` have
        the base stripped. Absolute links on another host fall back to
        whatever follows the host name.
        """
        if not link:
            return None
        if not (link.startswith("http://") or link.startswith("https://")):
            return link

        if link == self.base_url or link.startswith((self.base_url + "/", self.base_url + "?")):
            path = link[len(self.base_url):]
            return path if path.startswith("/") else "/" + path

        self.logger.warning(
            f"Next page URL {link} doesn't match base URL {self.base_url}",
            extra={"next_link": link, "base_url": self.base_url}
        )
        parts = link.split("/", 3)
        if len(parts) >= 4:
            return "/" + parts[3]
        return None

    def _request(self, method: str, path: str) -> requests.Response:
        """Issue one request and map failures onto the GitHubAPIError family."""
        url = self._build_url(path)
        request_start_time = time.time()

        try:
            response = self.session.request(method, url, timeout=REQUEST_TIMEOUT)
        except (requests.exceptions.RequestException, ValueError) as e:
            raise GitHubTransportError(f"Request to {path} failed: {e}") from e

        response_time_ms = (time.time() - request_start_time) * 1000
        self.logger.debug(
            f"{method} {path} -> {response.status_code} in {response_time_ms:.0f}ms",
            extra={"endpoint": path, "status_code": response.status_code, "duration_ms": response_time_ms}
        )

        if response.status_code == 404:
            raise GitHubNotFoundError(
                f"Resource not found: {path}",
                status_code=404,
                response_text=_sanitize_sensitive_data(response.text)
            )

        if not 200 <= response.status_code < 300:
            sanitized_response = _sanitize_sensitive_data(response.text)
            raise GitHubAPIError(
                f"API request failed with status {response.status_code}: {sanitized_response}",
                status_code=response.status_code,
                response_text=sanitized_response
            )

        return response

    @staticmethod
    def _decode(response: requests.Response, path: str) -> Any:
        try:
            return response.json()
        except ValueError as e:
            raise GitHubDecodeError(
                f"Invalid JSON from {path}: {e}",
                status_code=response.status_code,
                response_text=_sanitize_sensitive_data(response.text[:500])
            ) from e

    def get_json(self, path: str) -> Any:
        """GET a single resource and return the decoded JSON body."""
        response = self._request("GET", path)
        return self._decode(response, path)

    def get_paginated(self, path: str, items_key: Optional[str] = None) -> List[Any]:
        """
        GET every page of a collection, following ``Link: rel="next"``.

        Args:
            path: Path relative to the API root (or an absolute URL)
            items_key: Key holding the page's items, e.g. ``"seats"``; when
                None the page body itself must be a list

        Returns:
            Items of all pages, in page order
        """
        items: List[Any] = []
        next_path: Optional[str] = path
        pages = 0

        while next_path:
            if pages >= self.max_pages:
                raise PaginationLimitError(
                    f"Stopped after {pages} pages of {path}; next link was {next_path}"
                )

            response = self._request("GET", next_path)
            body = self._decode(response, next_path)
            items.extend(self._page_items(body, items_key, next_path))
            pages += 1

            next_path = self.normalize_path(parse_next_link(response.headers.get("Link")))
            self.logger.debug(f"Pagination next path: {next_path}")

        self.logger.info(f"Fetched {len(items)} items across {pages} pages from {path}")
        return items

    @staticmethod
    def _page_items(body: Any, items_key: Optional[str], path: str) -> List[Any]:
        if items_key is None:
            page_items = body
        elif isinstance(body, dict):
            page_items = body.get(items_key) or []
        else:
            page_items = None

        if not isinstance(page_items, list):
            raise GitHubDecodeError(f"Expected a list of items from {path}, got {type(body).__name__}")
        return page_items

    def health_check(self) -> bool:
        """Check that the API is reachable and the token is accepted."""
        try:
            self.get_json("/rate_limit")
            return True
        except GitHubAPIError as e:
            self.logger.error(f"GitHub health check failed: {e}")
            return False

    def close(self) -> None:
        self.session.close()
