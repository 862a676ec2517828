"""
GitHub API client for contribution metrics.

This module provides a client for interacting with the GitHub REST and
Search APIs to fetch pull requests, issues, reviews, comments, commits
and contributor statistics.
"""

import os
import logging
from concurrent.futures import ThreadPoolExecutor
from datetime import datetime, time, timezone
from typing import Dict, List, Optional, Any

import requests
from dateutil import parser as date_parser


DEFAULT_BASE_URL = "https://api.github.com"
PER_PAGE = 100
MAX_PAGES = 10
REQUEST_TIMEOUT = 30

PR_STATES = ('all', 'open', 'closed', 'merged')


class GitHubAPIError(Exception):
    """Custom exception for GitHub API related errors."""
    pass


class GitHubRateLimitError(GitHubAPIError):
    """Exception raised when GitHub API rate limit is exceeded."""
    pass


class GitHubAuthenticationError(GitHubAPIError):
    """Exception raised when GitHub API authentication fails."""
    pass


class GitHubNotFoundError(GitHubAPIError):
    """Exception raised when a resource is missing or not accessible."""
    pass


def parse_timestamp(value: Optional[str]) -> Optional[datetime]:
    """
    Parse a GitHub ISO 8601 timestamp into an aware UTC datetime.

    Args:
        value: Timestamp string such as '2024-12-01T10:00:00Z', or None

    Returns:
        Timezone-aware datetime, or None if value is empty
    """
    if not value:
        return None

    parsed = date_parser.isoparse(value)
    if parsed.tzinfo is None:
        parsed = parsed.replace(tzinfo=timezone.utc)
    return parsed


def parse_date_bound(value: Optional[str], end_of_day: bool = False) -> Optional[datetime]:
    """
    Parse a YYYY-MM-DD filter value into an aware UTC datetime.

    Args:
        value: Date string from the command line, or None
        end_of_day: Return the last instant of that day instead of midnight

    Returns:
        Timezone-aware datetime, or None if value is empty

    Raises:
        ValueError: If the value is not a valid date
    """
    if not value:
        return None

    day = date_parser.isoparse(value).date()
    bound = datetime.combine(day, time.max if end_of_day else time.min)
    return bound.replace(tzinfo=timezone.utc)


def parse_repo_from_url(repository_url: str) -> str:
    """
    Extract 'owner/name' from an API repository URL.

    Args:
        repository_url: e.g. 'https://api.github.com/repos/octo/hello'

    Returns:
        Repository full name
    """
    parts = repository_url.rstrip('/').split('/')
    return f"{parts[-2]}/{parts[-1]}"


class GitHubClient:
    """
    Client for interacting with the GitHub API to fetch contribution data.

    This client handles authentication, pagination and error mapping, and
    provides one method per endpoint the metrics commands need.
    """

    def __init__(self, token: str, base_url: Optional[str] = None):
        """
        Initialize GitHub client with authentication token.

        Args:
            token: GitHub personal access token for API authentication
            base_url: API root, defaults to GITHUB_API_URL or api.github.com

        Raises:
            GitHubAuthenticationError: If token is empty or None
        """
        if not token:
            raise GitHubAuthenticationError(
                "GitHub token is required. Set GITHUB_TOKEN env var or use --token flag"
            )

        self.token = token
        self.base_url = (base_url or os.environ.get('GITHUB_API_URL') or DEFAULT_BASE_URL).rstrip('/')
        self.session = requests.Session()
        self.session.headers.update({
            'Authorization': f'token {token}',
            'Accept': 'application/vnd.github.v3+json',
            'User-Agent': 'github-metrics-calculator/1.0.0'
        })

        self.logger = logging.getLogger(__name__)

    @classmethod
    def get_token(cls, explicit: Optional[str] = None) -> str:
        """
        Resolve the GitHub token from the --token flag or GITHUB_TOKEN.

        Args:
            explicit: Token passed on the command line, takes precedence

        Returns:
            GitHub token

        Raises:
            GitHubAuthenticationError: If no token is available
        """
        token = explicit or os.environ.get('GITHUB_TOKEN')
        if not token:
            raise GitHubAuthenticationError(
                "GitHub token is required. Set GITHUB_TOKEN env var or use --token flag"
            )
        return token

    def _check_rate_limit(self, response: requests.Response) -> None:
        """Raise on an exhausted rate limit and warn when it is running low."""
        if 'X-RateLimit-Remaining' not in response.headers:
            return

        remaining = int(response.headers.get('X-RateLimit-Remaining', 0))
        limit = int(response.headers.get('X-RateLimit-Limit', 5000))
        reset = int(response.headers.get('X-RateLimit-Reset', 0))

        if response.status_code in (403, 429) and remaining == 0:
            reset_time_str = datetime.fromtimestamp(reset).strftime('%Y-%m-%d %H:%M:%S')
            raise GitHubRateLimitError(
                f"GitHub API rate limit exceeded ({limit} requests). Rate limit resets at {reset_time_str}"
            )

        if remaining < 100:
            self.logger.warning(f"GitHub API rate limit running low: {remaining}/{limit} remaining")
        else:
            self.logger.debug(f"API rate limit: {remaining}/{limit} remaining")

    def _make_api_request(self, url: str, params: Optional[Dict[str, Any]] = None) -> Any:
        """
        Make a single authenticated GET request.

        Args:
            url: API endpoint URL
            params: Query parameters for the request

        Returns:
            Decoded JSON response, None when GitHub answers 202 Accepted
            (still computing), or an empty list for 204 No Content

        Raises:
            GitHubAuthenticationError: If the token is rejected
            GitHubRateLimitError: If the rate limit is exhausted
            GitHubNotFoundError: If the resource does not exist or is hidden
            GitHubAPIError: For any other failure
        """
        try:
            response = self.session.get(url, params=params, timeout=REQUEST_TIMEOUT)
        except requests.RequestException as e:
            raise GitHubAPIError(f"Failed to connect to GitHub API: {e}")

        self._check_rate_limit(response)

        if response.status_code == 401:
            raise GitHubAuthenticationError("GitHub token is invalid or expired")
        elif response.status_code == 404:
            raise GitHubNotFoundError(f"Resource not found or not accessible: {url}")
        elif response.status_code == 202:
            self.logger.debug(f"GitHub is still computing {url}")
            return None
        elif response.status_code == 204:
            # Stats endpoints answer 204 for repositories without commits
            self.logger.debug(f"No content for {url}")
            return []
        elif response.status_code != 200:
            raise GitHubAPIError(f"API request failed: {response.status_code} - {response.text}")

        return response.json()

    def _paginate(self, url: str, params: Optional[Dict[str, Any]] = None,
                  max_pages: int = MAX_PAGES, items_key: Optional[str] = None) -> List[Dict[str, Any]]:
        """
        Fetch pages of PER_PAGE items until a short page or the page cap.

        Args:
            url: API endpoint URL
            params: Extra query parameters
            max_pages: Hard cap on the number of pages requested
            items_key: Key holding the item list (Search API uses 'items')

        Returns:
            Concatenated list of items from all pages
        """
        items = []

        for page in range(1, max_pages + 1):
            page_params = dict(params or {})
            page_params.update({'per_page': PER_PAGE, 'page': page})

            data = self._make_api_request(url, page_params)
            page_items = (data or {}).get(items_key, []) if items_key else (data or [])

            items.extend(page_items)

            if len(page_items) < PER_PAGE:
                break
        else:
            self.logger.warning(f"Stopped paginating {url} after {max_pages} pages, results may be incomplete")

        return items

    def list_pull_requests(self, owner: str, repo: str, state: str = 'all',
                           since: Optional[datetime] = None, until: Optional[datetime] = None,
                           author: Optional[str] = None) -> List[Dict[str, Any]]:
        """
        Fetch pull requests from a repository with client-side filters.

        PRs are requested newest first so pagination stops as soon as a page
        reaches PRs created before `since`.

        Args:
            owner: Repository owner (user or organization)
            repo: Repository name
            state: all, open, closed or merged
            since: Only keep PRs created at or after this instant
            until: Only keep PRs created at or before this instant
            author: Only keep PRs opened by this login

        Returns:
            List of pull request data dictionaries

        Raises:
            GitHubAPIError: If API request fails
        """
        if state not in PR_STATES:
            raise GitHubAPIError(f"Invalid PR state: {state}")

        url = f"{self.base_url}/repos/{owner}/{repo}/pulls"
        api_state = 'closed' if state == 'merged' else state

        self.logger.info(f"Fetching {state} pull requests from {owner}/{repo}")

        all_prs = []
        for page in range(1, MAX_PAGES + 1):
            params = {
                'state': api_state,
                'sort': 'created',
                'direction': 'desc',
                'per_page': PER_PAGE,
                'page': page
            }
            prs_data = self._make_api_request(url, params) or []

            reached_since = False
            for pr in prs_data:
                created = parse_timestamp(pr.get('created_at'))
                if since and created and created < since:
                    reached_since = True
                    break
                if until and created and created > until:
                    continue
                if author and (pr.get('user') or {}).get('login') != author:
                    continue
                if state == 'merged' and not pr.get('merged_at'):
                    continue
                all_prs.append(pr)

            if reached_since:
                self.logger.debug(f"Reached PRs older than {since}, stopping pagination")
                break
            if len(prs_data) < PER_PAGE:
                break
        else:
            self.logger.warning(
                f"Stopped listing pull requests in {owner}/{repo} after {MAX_PAGES} pages; "
                f"older PRs were not analysed, narrow the range with --since"
            )

        self.logger.info(f"Fetched {len(all_prs)} pull requests from {owner}/{repo}")
        return all_prs

    def get_pull_request(self, owner: str, repo: str, pr_number: int) -> Dict[str, Any]:
        """Fetch the full pull request object, including line stats."""
        return self._make_api_request(f"{self.base_url}/repos/{owner}/{repo}/pulls/{pr_number}")

    def list_issue_comments(self, owner: str, repo: str, number: int) -> List[Dict[str, Any]]:
        """Fetch conversation comments on an issue or pull request."""
        return self._paginate(f"{self.base_url}/repos/{owner}/{repo}/issues/{number}/comments")

    def list_review_comments(self, owner: str, repo: str, pr_number: int) -> List[Dict[str, Any]]:
        """Fetch inline review comments on a pull request diff."""
        return self._paginate(f"{self.base_url}/repos/{owner}/{repo}/pulls/{pr_number}/comments")

    def list_reviews(self, owner: str, repo: str, pr_number: int) -> List[Dict[str, Any]]:
        """Fetch submitted reviews for a pull request."""
        return self._paginate(f"{self.base_url}/repos/{owner}/{repo}/pulls/{pr_number}/reviews")

    def list_pr_commits(self, owner: str, repo: str, pr_number: int) -> List[Dict[str, Any]]:
        """Fetch the commits of a pull request, messages included."""
        return self._paginate(f"{self.base_url}/repos/{owner}/{repo}/pulls/{pr_number}/commits")

    def get_pr_details(self, owner: str, repo: str, pr_number: int,
                       include_pr: bool = True) -> Dict[str, Any]:
        """
        Fetch everything needed to score one pull request.

        The independent requests are issued together on a thread pool and
        awaited as a set; the first failure propagates to the caller.

        Args:
            owner: Repository owner
            repo: Repository name
            pr_number: Pull request number
            include_pr: Also fetch the pull request object itself

        Returns:
            Dictionary with 'pr', 'issue_comments', 'review_comments',
            'reviews' and 'commits' keys ('pr' is None when not requested)
        """
        calls = {
            'issue_comments': self.list_issue_comments,
            'review_comments': self.list_review_comments,
            'reviews': self.list_reviews,
            'commits': self.list_pr_commits,
        }
        if include_pr:
            calls['pr'] = self.get_pull_request

        with ThreadPoolExecutor(max_workers=len(calls)) as executor:
            futures = {
                key: executor.submit(call, owner, repo, pr_number)
                for key, call in calls.items()
            }
            details = {key: future.result() for key, future in futures.items()}

        details.setdefault('pr', None)
        self.logger.debug(
            f"Fetched PR #{pr_number} in {owner}/{repo}: {len(details['reviews'])} reviews, "
            f"{len(details['commits'])} commits"
        )
        return details

    def _build_search_query(self, username: str, kind: str, orgs: Optional[List[str]] = None,
                            repo: Optional[str] = None, since: Optional[str] = None,
                            until: Optional[str] = None, state: Optional[str] = None) -> str:
        """Assemble a Search API query for a user's PRs or issues."""
        query = f"author:{username} is:{kind}"

        if orgs:
            org_query = ' '.join(f"org:{org}" for org in orgs)
            query += f" ({org_query})"
        if repo:
            query += f" repo:{repo}"
        if since:
            query += f" created:>={since}"
        if until:
            query += f" created:<={until}"
        if state in ('merged', 'open', 'closed'):
            query += f" is:{state}"

        return query

    def _search_issues(self, query: str) -> List[Dict[str, Any]]:
        params = {'q': query, 'sort': 'created', 'order': 'desc'}
        self.logger.debug(f"Search query: {query}")
        return self._paginate(f"{self.base_url}/search/issues", params, items_key='items')

    def search_user_pull_requests(self, username: str, orgs: Optional[List[str]] = None,
                                  repo: Optional[str] = None, since: Optional[str] = None,
                                  until: Optional[str] = None,
                                  state: Optional[str] = None) -> List[Dict[str, Any]]:
        """
        Fetch a user's pull requests across repositories via the Search API.

        Results are capped at MAX_PAGES pages (1000 items).

        Args:
            username: PR author login
            orgs: Restrict to these organizations
            repo: Restrict to one 'owner/name' repository
            since: YYYY-MM-DD lower bound on creation date
            until: YYYY-MM-DD upper bound on creation date
            state: merged, open or closed (anything else means all)

        Returns:
            List of search result items
        """
        query = self._build_search_query(username, 'pr', orgs, repo, since, until, state)
        prs = self._search_issues(query)
        self.logger.info(f"Search found {len(prs)} pull requests by {username}")
        return prs

    def search_user_issues(self, username: str, orgs: Optional[List[str]] = None,
                           since: Optional[str] = None,
                           until: Optional[str] = None) -> List[Dict[str, Any]]:
        """Fetch issues opened by a user across repositories via the Search API."""
        query = self._build_search_query(username, 'issue', orgs, since=since, until=until)
        issues = self._search_issues(query)
        self.logger.info(f"Search found {len(issues)} issues by {username}")
        return issues

    def get_contributor_stats(self, owner: str, repo: str) -> Optional[List[Dict[str, Any]]]:
        """
        Fetch per-contributor commit statistics for a repository.

        Args:
            owner: Repository owner
            repo: Repository name

        Returns:
            List of contributor stat objects (empty for a repository without
            commits), or None while GitHub computes them
        """
        url = f"{self.base_url}/repos/{owner}/{repo}/stats/contributors"
        return self._make_api_request(url)
