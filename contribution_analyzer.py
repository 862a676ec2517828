"""
Cross-repository contribution analysis for a single user.

Backs both the `user` and the `summary`/`all` commands: they share one
result shape and differ only in how the table view is laid out.
"""

import logging
from concurrent.futures import ThreadPoolExecutor
from typing import Any, Dict, List, Optional

from ai_detection import count_ai_tools, detect_pr_ai_assistance
from github_client import (
    GitHubClient,
    GitHubAPIError,
    GitHubAuthenticationError,
    GitHubRateLimitError,
    parse_repo_from_url,
    parse_timestamp
)
from metrics_stats import days_between, mean, median, percentage, top_n
from models import IssueRecord, PullRequestRecord, RepoAggregate
from pr_analyzer import AnalysisError, ProgressCallback, count_pr_states, review_outcome_stats


class ContributionAnalyzer:
    """
    Aggregates a user's pull requests and issues across repositories.

    Search results are fetched in parallel, then each PR is joined with its
    reviews, comments and commits one PR at a time.
    """

    def __init__(self, github_client: GitHubClient):
        if not github_client:
            raise AnalysisError("GitHubClient is required")

        if not isinstance(github_client, GitHubClient):
            raise AnalysisError("Invalid GitHubClient instance provided")

        self.github_client = github_client
        self.logger = logging.getLogger(__name__)

    def fetch_contributions(self, username: str, orgs: Optional[List[str]] = None,
                            since: Optional[str] = None,
                            until: Optional[str] = None) -> Dict[str, List[Dict[str, Any]]]:
        """
        Fetch a user's PR and issue search results together.

        Args:
            username: GitHub login
            orgs: Restrict to these organizations
            since: YYYY-MM-DD, inclusive
            until: YYYY-MM-DD, inclusive

        Returns:
            Dictionary with 'prs' and 'issues' search result lists
        """
        if not username:
            raise AnalysisError("Username is required")

        with ThreadPoolExecutor(max_workers=2) as executor:
            prs_future = executor.submit(
                self.github_client.search_user_pull_requests,
                username, orgs=orgs, since=since, until=until
            )
            issues_future = executor.submit(
                self.github_client.search_user_issues,
                username, orgs=orgs, since=since, until=until
            )
            return {'prs': prs_future.result(), 'issues': issues_future.result()}

    def build_pr_record(self, item: Dict[str, Any], details: Dict[str, Any]) -> PullRequestRecord:
        """
        Join a search result item with its fetched reviews, comments and commits.

        Args:
            item: Pull request item from the Search API
            details: Output of GitHubClient.get_pr_details(include_pr=False)

        Returns:
            PullRequestRecord for the PR
        """
        reviews = details.get('reviews') or []
        comments = len(details.get('issue_comments') or []) + len(details.get('review_comments') or [])
        reviewers = {(r.get('user') or {}).get('login') for r in reviews} - {None}

        merged_at = (item.get('pull_request') or {}).get('merged_at')
        created_at = parse_timestamp(item.get('created_at'))
        ai = detect_pr_ai_assistance(details.get('commits') or [])

        return PullRequestRecord(
            number=item['number'],
            title=item.get('title') or '',
            repo=parse_repo_from_url(item['repository_url']),
            state=item.get('state', 'unknown'),
            merged=bool(merged_at),
            author=(item.get('user') or {}).get('login') or '',
            comments=comments,
            changes_requested=sum(1 for r in reviews if r.get('state') == 'CHANGES_REQUESTED'),
            approvals=sum(1 for r in reviews if r.get('state') == 'APPROVED'),
            reviewers=len(reviewers),
            commit_count=len(details.get('commits') or []),
            time_to_merge=days_between(created_at, parse_timestamp(merged_at)),
            time_to_close=days_between(created_at, parse_timestamp(item.get('closed_at'))),
            created_at=item.get('created_at'),
            merged_at=merged_at,
            closed_at=item.get('closed_at'),
            url=item.get('html_url') or '',
            ai_assisted=ai.is_ai_assisted,
            ai_tools=ai.ai_tools
        )

    def build_issue_record(self, item: Dict[str, Any]) -> IssueRecord:
        return IssueRecord(
            number=item['number'],
            title=item.get('title') or '',
            repo=parse_repo_from_url(item['repository_url']),
            state=item.get('state', 'unknown'),
            comments=item.get('comments') or 0,
            created_at=item.get('created_at'),
            closed_at=item.get('closed_at'),
            url=item.get('html_url') or ''
        )

    def calculate_summary(self, records: List[PullRequestRecord],
                          issues: List[IssueRecord], repos: int) -> Dict[str, Any]:
        """
        Calculate the summary block for a contribution report.

        Args:
            records: Analysed pull requests
            issues: Issues opened by the user
            repos: Number of distinct repositories with analysed PRs

        Returns:
            Dictionary of counts, averages, percentages and distributions
        """
        states = count_pr_states(records)
        total = states['total_prs']
        comments = [pr.comments for pr in records]
        changes = [pr.changes_requested for pr in records]
        reviewers = [pr.reviewers for pr in records]
        merge_times = [pr.time_to_merge for pr in records
                       if pr.merged and pr.time_to_merge is not None]
        ai_assisted = sum(1 for pr in records if pr.ai_assisted)
        open_issues = sum(1 for issue in issues if issue.state == 'open')

        summary = dict(states)
        summary.update({
            'merged_percentage': percentage(states['merged_prs'], total),
            'open_percentage': percentage(states['open_prs'], total),
            'closed_percentage': percentage(states['closed_prs'], total),
            'repos_contributed': repos,
            'total_comments': sum(comments),
            'avg_comments_per_pr': mean(comments),
            'median_comments_per_pr': median(comments),
            'total_changes_requested': sum(changes),
            'avg_changes_requested_per_pr': mean(changes),
            'median_changes_requested_per_pr': median(changes),
            'avg_reviewers_per_pr': mean(reviewers),
            'median_reviewers_per_pr': median(reviewers),
            'avg_time_to_merge': mean(merge_times),
            'median_time_to_merge': median(merge_times),
            'ai_assisted_prs': ai_assisted,
            'ai_assisted_percentage': percentage(ai_assisted, total),
            'human_only_prs': total - ai_assisted,
            'human_only_percentage': round(100 - percentage(ai_assisted, total), 1) if total else 0,
            'ai_tools_breakdown': count_ai_tools(records),
            'total_issues': len(issues),
            'open_issues': open_issues,
            'closed_issues': len(issues) - open_issues,
        })
        summary.update(review_outcome_stats(records))
        return summary

    def analyze_user(self, username: str, orgs: Optional[List[str]] = None,
                     since: Optional[str] = None, until: Optional[str] = None,
                     top: int = 10, progress: Optional[ProgressCallback] = None) -> Dict[str, Any]:
        """
        Run the full contribution analysis for a user.

        PRs in repositories the token cannot read are skipped and reported
        through `progress(False)`; they are left out of every aggregate.

        Args:
            username: GitHub login
            orgs: Restrict to these organizations
            since: YYYY-MM-DD, inclusive
            until: YYYY-MM-DD, inclusive
            top: Number of repositories kept in the breakdown
            progress: Called with True per analysed PR and False per skipped PR

        Returns:
            Result dictionary ready for formatting and export
        """
        if top is not None and top < 1:
            raise AnalysisError("top must be at least 1")

        found = self.fetch_contributions(username, orgs, since, until)
        self.logger.info(f"Found {len(found['prs'])} PRs and {len(found['issues'])} issues by {username}")

        records = []
        repo_map: Dict[str, RepoAggregate] = {}
        skipped = 0

        for item in found['prs']:
            try:
                owner, repo = parse_repo_from_url(item['repository_url']).split('/')
                details = self.github_client.get_pr_details(owner, repo, item['number'], include_pr=False)
                record = self.build_pr_record(item, details)
            except (GitHubAuthenticationError, GitHubRateLimitError):
                raise
            except (GitHubAPIError, KeyError, TypeError, ValueError) as e:
                skipped += 1
                self.logger.warning(f"Skipping PR #{item.get('number', 'unknown')}: {e}")
                if progress:
                    progress(False)
                continue

            records.append(record)
            repo_map.setdefault(record.repo, RepoAggregate(repo=record.repo)).add(record)
            if progress:
                progress(True)

        issues = []
        for item in found['issues']:
            try:
                issues.append(self.build_issue_record(item))
            except (KeyError, IndexError) as e:
                self.logger.warning(f"Skipping malformed issue {item.get('number', 'unknown')}: {e}")

        summary = self.calculate_summary(records, issues, len(repo_map))
        summary['skipped_prs'] = skipped

        repo_breakdown = top_n(repo_map.values(), key=lambda r: r.total_prs, n=top)

        return {
            'user': username,
            'org_filter': ','.join(orgs) if orgs else None,
            'date_range': {'since': since, 'until': until},
            'summary': summary,
            'repo_breakdown': [r.to_dict() for r in repo_breakdown],
            'prs': [record.to_dict() for record in records],
            'issues': [issue.to_dict() for issue in issues],
        }
