"""
Unit tests for GitHub API client.

This module contains tests for the GitHubClient class, including
authentication, error mapping, pagination, date filtering and search
query construction.
"""

import os
import pytest
from unittest.mock import Mock, patch
import requests
from datetime import datetime, timezone

from github_client import (
    GitHubClient,
    GitHubAPIError,
    GitHubRateLimitError,
    GitHubAuthenticationError,
    GitHubNotFoundError,
    MAX_PAGES,
    PER_PAGE,
    parse_date_bound,
    parse_repo_from_url,
    parse_timestamp
)


def make_response(status_code=200, json_data=None, headers=None, text=''):
    """Build a mock requests.Response."""
    response = Mock()
    response.status_code = status_code
    response.json.return_value = json_data
    response.headers = headers or {}
    response.text = text
    return response


def make_pr(number, created_at, login='alice', merged_at=None, state='closed'):
    return {
        'number': number,
        'created_at': created_at,
        'merged_at': merged_at,
        'state': state,
        'user': {'login': login}
    }


class TestGitHubClient:
    """Test cases for GitHubClient class."""

    def test_init_with_valid_token(self):
        """Test GitHubClient initialization with valid token."""
        client = GitHubClient("test_token_123")

        assert client.token == "test_token_123"
        assert client.session.headers['Authorization'] == 'token test_token_123'
        assert 'application/vnd.github.v3+json' in client.session.headers['Accept']
        assert 'github-metrics-calculator' in client.session.headers['User-Agent']

    def test_init_with_empty_token(self):
        """Test GitHubClient initialization with empty token raises error."""
        with pytest.raises(GitHubAuthenticationError, match="GitHub token is required"):
            GitHubClient("")

    def test_init_with_none_token(self):
        """Test GitHubClient initialization with None token raises error."""
        with pytest.raises(GitHubAuthenticationError, match="GitHub token is required"):
            GitHubClient(None)

    @patch.dict(os.environ, {}, clear=True)
    def test_default_base_url(self):
        """Test that the public API is used when no base URL is configured."""
        client = GitHubClient("test_token")
        assert client.base_url == "https://api.github.com"

    @patch.dict(os.environ, {'GITHUB_API_URL': 'https://ghe.example.com/api/v3/'})
    def test_base_url_from_environment(self):
        """Test GitHub Enterprise base URL from environment, trailing slash stripped."""
        client = GitHubClient("test_token")
        assert client.base_url == "https://ghe.example.com/api/v3"


class TestTokenResolution:
    """Test cases for resolving the token from flag or environment."""

    @patch.dict(os.environ, {'GITHUB_TOKEN': 'env_token_456'})
    def test_token_reading_from_env(self):
        """Test reading GitHub token from environment variable."""
        assert GitHubClient.get_token() == "env_token_456"

    @patch.dict(os.environ, {'GITHUB_TOKEN': 'env_token_456'})
    def test_explicit_token_wins(self):
        """Test that the --token value takes precedence over the environment."""
        assert GitHubClient.get_token("flag_token") == "flag_token"

    @patch.dict(os.environ, {}, clear=True)
    def test_missing_token(self):
        """Test error when no token is available."""
        with pytest.raises(GitHubAuthenticationError, match="GITHUB_TOKEN"):
            GitHubClient.get_token()

    @patch.dict(os.environ, {'GITHUB_TOKEN': ''})
    def test_empty_environment_token(self):
        """Test error when GITHUB_TOKEN environment variable is empty."""
        with pytest.raises(GitHubAuthenticationError):
            GitHubClient.get_token()


class TestAPIRequestHandling:
    """Test cases for status code mapping in _make_api_request."""

    def setup_method(self):
        """Set up test client for each test method."""
        self.client = GitHubClient("test_token")
        self.url = "https://api.github.com/repos/o/r"

    @patch('requests.Session.get')
    def test_successful_api_request(self, mock_get):
        """Test successful request returns decoded JSON."""
        mock_get.return_value = make_response(200, {'id': 1})

        assert self.client._make_api_request(self.url, {'a': 1}) == {'id': 1}
        mock_get.assert_called_once()
        assert mock_get.call_args.kwargs['params'] == {'a': 1}

    @patch('requests.Session.get')
    def test_expired_token_handling(self, mock_get):
        """Test 401 maps to GitHubAuthenticationError."""
        mock_get.return_value = make_response(401)

        with pytest.raises(GitHubAuthenticationError, match="invalid or expired"):
            self.client._make_api_request(self.url)

    @patch('requests.Session.get')
    def test_not_found_handling(self, mock_get):
        """Test 404 maps to GitHubNotFoundError."""
        mock_get.return_value = make_response(404)

        with pytest.raises(GitHubNotFoundError):
            self.client._make_api_request(self.url)

    @patch('requests.Session.get')
    def test_accepted_returns_none(self, mock_get):
        """Test 202 (stats still computing) returns None."""
        mock_get.return_value = make_response(202)

        assert self.client._make_api_request(self.url) is None

    @patch('requests.Session.get')
    def test_server_error(self, mock_get):
        """Test other non-200 statuses raise GitHubAPIError without retrying."""
        mock_get.return_value = make_response(500, text='boom')

        with pytest.raises(GitHubAPIError, match="API request failed: 500"):
            self.client._make_api_request(self.url)
        assert mock_get.call_count == 1

    @patch('requests.Session.get')
    def test_connection_error_in_api_request(self, mock_get):
        """Test network errors are wrapped in GitHubAPIError."""
        mock_get.side_effect = requests.ConnectionError("Connection failed")

        with pytest.raises(GitHubAPIError, match="Failed to connect to GitHub API"):
            self.client._make_api_request(self.url)


class TestRateLimitHandling:
    """Test cases for rate limit detection."""

    def setup_method(self):
        """Set up test client for each test method."""
        self.client = GitHubClient("test_token")

    @patch('requests.Session.get')
    def test_rate_limit_exhausted(self, mock_get):
        """Test 403 with zero remaining raises GitHubRateLimitError."""
        mock_get.return_value = make_response(403, headers={
            'X-RateLimit-Remaining': '0',
            'X-RateLimit-Limit': '5000',
            'X-RateLimit-Reset': '1700000000'
        })

        with pytest.raises(GitHubRateLimitError, match="rate limit exceeded"):
            self.client._make_api_request("https://api.github.com/x")

    @patch('requests.Session.get')
    def test_403_without_rate_limit_headers(self, mock_get):
        """Test plain 403 is a regular API error, not a rate limit."""
        mock_get.return_value = make_response(403, text='Forbidden')

        with pytest.raises(GitHubAPIError) as exc_info:
            self.client._make_api_request("https://api.github.com/x")
        assert not isinstance(exc_info.value, GitHubRateLimitError)

    @patch('requests.Session.get')
    def test_low_rate_limit_logs_warning(self, mock_get, caplog):
        """Test a warning is logged when the remaining budget is low."""
        mock_get.return_value = make_response(200, [], headers={
            'X-RateLimit-Remaining': '50',
            'X-RateLimit-Limit': '5000',
            'X-RateLimit-Reset': '1700000000'
        })

        with caplog.at_level('WARNING', logger='github_client'):
            self.client._make_api_request("https://api.github.com/x")

        assert "rate limit running low" in caplog.text


class TestPagination:
    """Test cases for the generic pagination loop."""

    def setup_method(self):
        """Set up test client for each test method."""
        self.client = GitHubClient("test_token")

    @patch('requests.Session.get')
    def test_stops_on_short_page(self, mock_get):
        """Test pagination stops once a page has fewer than PER_PAGE items."""
        mock_get.side_effect = [
            make_response(200, [{'id': i} for i in range(PER_PAGE)]),
            make_response(200, [{'id': 'last'}]),
        ]

        items = self.client._paginate("https://api.github.com/x")

        assert len(items) == PER_PAGE + 1
        assert mock_get.call_count == 2
        assert mock_get.call_args_list[1].kwargs['params']['page'] == 2

    @patch('requests.Session.get')
    def test_stops_at_page_cap(self, mock_get):
        """Test pagination never requests more than MAX_PAGES pages."""
        mock_get.return_value = make_response(200, [{'id': i} for i in range(PER_PAGE)])

        items = self.client._paginate("https://api.github.com/x")

        assert mock_get.call_count == MAX_PAGES
        assert len(items) == PER_PAGE * MAX_PAGES

    @patch('requests.Session.get')
    def test_page_cap_warns(self, mock_get, caplog):
        """Test hitting the page cap is reported as a warning."""
        mock_get.return_value = make_response(200, [{'id': i} for i in range(PER_PAGE)])

        with caplog.at_level('WARNING', logger='github_client'):
            self.client._paginate("https://api.github.com/x")

        assert "results may be incomplete" in caplog.text

    @patch('requests.Session.get')
    def test_search_items_key(self, mock_get):
        """Test Search API pages are unwrapped from the 'items' key."""
        mock_get.return_value = make_response(200, {'total_count': 2, 'items': [{'id': 1}, {'id': 2}]})

        items = self.client._paginate("https://api.github.com/search/issues", {'q': 'x'}, items_key='items')

        assert items == [{'id': 1}, {'id': 2}]
        assert mock_get.call_args.kwargs['params']['q'] == 'x'
        assert mock_get.call_args.kwargs['params']['per_page'] == PER_PAGE


class TestPullRequestListing:
    """Test cases for repository PR listing with client-side filters."""

    def setup_method(self):
        """Set up test client for each test method."""
        self.client = GitHubClient("test_token")

    @patch('requests.Session.get')
    def test_filters_by_author(self, mock_get):
        """Test only PRs by the requested author are kept."""
        mock_get.return_value = make_response(200, [
            make_pr(3, '2024-12-03T10:00:00Z', login='alice'),
            make_pr(2, '2024-12-02T10:00:00Z', login='bob'),
            make_pr(1, '2024-12-01T10:00:00Z', login='alice'),
        ])

        prs = self.client.list_pull_requests('o', 'r', author='alice')

        assert [pr['number'] for pr in prs] == [3, 1]

    @patch('requests.Session.get')
    def test_date_filtering_and_early_termination(self, mock_get):
        """Test since/until filters and stopping once PRs predate since."""
        full_page = [make_pr(100 - i, '2024-12-20T10:00:00Z') for i in range(PER_PAGE - 2)]
        full_page += [make_pr(2, '2024-12-05T10:00:00Z'), make_pr(1, '2024-11-01T10:00:00Z')]
        mock_get.return_value = make_response(200, full_page)

        prs = self.client.list_pull_requests(
            'o', 'r',
            since=parse_date_bound('2024-12-01'),
            until=parse_date_bound('2024-12-10', end_of_day=True)
        )

        assert [pr['number'] for pr in prs] == [2]
        assert mock_get.call_count == 1

    @patch('requests.Session.get')
    def test_until_is_inclusive_of_whole_day(self, mock_get):
        """Test a PR created late on the until date is kept."""
        mock_get.return_value = make_response(200, [make_pr(1, '2024-12-10T23:30:00Z')])

        prs = self.client.list_pull_requests('o', 'r', until=parse_date_bound('2024-12-10', end_of_day=True))

        assert len(prs) == 1

    @patch('requests.Session.get')
    def test_merged_state_lists_closed_and_keeps_merged(self, mock_get):
        """Test the merged pseudo-state."""
        mock_get.return_value = make_response(200, [
            make_pr(2, '2024-12-02T10:00:00Z', merged_at='2024-12-03T10:00:00Z'),
            make_pr(1, '2024-12-01T10:00:00Z'),
        ])

        prs = self.client.list_pull_requests('o', 'r', state='merged')

        assert [pr['number'] for pr in prs] == [2]
        assert mock_get.call_args.kwargs['params']['state'] == 'closed'

    @patch('requests.Session.get')
    def test_listing_cap_warns(self, mock_get, caplog):
        """Test a listing cut off by the page cap is reported as a warning."""
        mock_get.return_value = make_response(200, [make_pr(1, '2024-12-01T10:00:00Z')] * PER_PAGE)

        with caplog.at_level('WARNING', logger='github_client'):
            self.client.list_pull_requests('o', 'r', author='nobody')

        assert mock_get.call_count == MAX_PAGES
        assert "older PRs were not analysed" in caplog.text

    def test_invalid_state(self):
        """Test unknown states are rejected before any request."""
        with pytest.raises(GitHubAPIError, match="Invalid PR state"):
            self.client.list_pull_requests('o', 'r', state='draft')


class TestPRDetails:
    """Test cases for the parallel per-PR fetch."""

    def setup_method(self):
        """Set up test client with stubbed endpoint methods."""
        self.client = GitHubClient("test_token")
        self.client.get_pull_request = Mock(return_value={'number': 7})
        self.client.list_issue_comments = Mock(return_value=[{'id': 1}])
        self.client.list_review_comments = Mock(return_value=[])
        self.client.list_reviews = Mock(return_value=[{'state': 'APPROVED'}])
        self.client.list_pr_commits = Mock(return_value=[{'sha': 'abc'}])

    def test_get_pr_details_joins_all_endpoints(self):
        """Test every endpoint is called once and joined under its key."""
        details = self.client.get_pr_details('o', 'r', 7)

        assert details == {
            'pr': {'number': 7},
            'issue_comments': [{'id': 1}],
            'review_comments': [],
            'reviews': [{'state': 'APPROVED'}],
            'commits': [{'sha': 'abc'}],
        }
        self.client.list_reviews.assert_called_once_with('o', 'r', 7)

    def test_get_pr_details_without_pr(self):
        """Test the PR object fetch can be skipped."""
        details = self.client.get_pr_details('o', 'r', 7, include_pr=False)

        assert details['pr'] is None
        self.client.get_pull_request.assert_not_called()

    def test_get_pr_details_propagates_failure(self):
        """Test a failing endpoint fails the whole PR."""
        self.client.list_pr_commits.side_effect = GitHubNotFoundError("gone")

        with pytest.raises(GitHubNotFoundError):
            self.client.get_pr_details('o', 'r', 7)


class TestSearch:
    """Test cases for Search API query construction."""

    def setup_method(self):
        """Set up test client for each test method."""
        self.client = GitHubClient("test_token")

    def test_pr_query_with_all_filters(self):
        """Test query string for PR search with every filter."""
        query = self.client._build_search_query(
            'alice', 'pr', orgs=['adobe', 'aemdemos'], repo='adobe/helix',
            since='2024-01-01', until='2024-06-30', state='merged'
        )

        assert query == (
            "author:alice is:pr (org:adobe org:aemdemos) repo:adobe/helix "
            "created:>=2024-01-01 created:<=2024-06-30 is:merged"
        )

    def test_issue_query_minimal(self):
        """Test query string without optional filters."""
        assert self.client._build_search_query('bob', 'issue') == "author:bob is:issue"

    def test_all_state_adds_no_qualifier(self):
        """Test state 'all' adds no is: qualifier."""
        assert self.client._build_search_query('bob', 'pr', state='all') == "author:bob is:pr"

    @patch('requests.Session.get')
    def test_search_user_pull_requests(self, mock_get):
        """Test PR search hits the issues search endpoint."""
        mock_get.return_value = make_response(200, {'items': [{'number': 1}]})

        prs = self.client.search_user_pull_requests('alice', orgs=['adobe'])

        assert prs == [{'number': 1}]
        assert mock_get.call_args.args[0] == "https://api.github.com/search/issues"
        assert mock_get.call_args.kwargs['params']['q'] == "author:alice is:pr (org:adobe)"


class TestContributorStats:
    """Test cases for contributor statistics."""

    @patch('requests.Session.get')
    def test_stats_being_computed(self, mock_get):
        """Test None is returned while GitHub computes stats."""
        mock_get.return_value = make_response(202)

        assert GitHubClient("t").get_contributor_stats('o', 'r') is None

    @patch('requests.Session.get')
    def test_stats_for_empty_repository(self, mock_get):
        """Test 204 No Content gives an empty stats list, not an error."""
        mock_get.return_value = make_response(204)

        assert GitHubClient("t").get_contributor_stats('o', 'r') == []

    @patch('requests.Session.get')
    def test_stats_returned(self, mock_get):
        """Test stats list is passed through."""
        mock_get.return_value = make_response(200, [{'total': 3}])

        assert GitHubClient("t").get_contributor_stats('o', 'r') == [{'total': 3}]


class TestParsingHelpers:
    """Test cases for timestamp, date and URL helpers."""

    def test_parse_timestamp_zulu(self):
        assert parse_timestamp('2024-12-01T10:00:00Z') == datetime(2024, 12, 1, 10, tzinfo=timezone.utc)

    def test_parse_timestamp_empty(self):
        assert parse_timestamp(None) is None
        assert parse_timestamp('') is None

    def test_parse_date_bound(self):
        assert parse_date_bound('2024-03-05') == datetime(2024, 3, 5, tzinfo=timezone.utc)
        end = parse_date_bound('2024-03-05', end_of_day=True)
        assert (end.hour, end.minute, end.second) == (23, 59, 59)

    def test_parse_date_bound_invalid(self):
        with pytest.raises(ValueError):
            parse_date_bound('not-a-date')

    def test_parse_repo_from_url(self):
        assert parse_repo_from_url('https://api.github.com/repos/octo/hello-world') == 'octo/hello-world'
