"""
Pull request analysis for a single user in a single repository.

This module fetches a user's pull requests, joins each one with its
comments, reviews and commits, and derives per-PR metrics plus the
summary statistics shown by the `pr` command.
"""

import logging
from typing import Any, Callable, Dict, List, Optional

from ai_detection import detect_pr_ai_assistance
from github_client import (
    GitHubClient,
    GitHubAPIError,
    GitHubAuthenticationError,
    GitHubRateLimitError,
    parse_date_bound,
    parse_timestamp
)
from metrics_stats import days_between, distribution, mean, median, percentage
from models import PRMetrics, PullRequestRecord


ProgressCallback = Callable[[bool], None]


class AnalysisError(Exception):
    """Custom exception for analyzer input and workflow errors."""
    pass


def _login(obj: Optional[Dict[str, Any]]) -> Optional[str]:
    # Deleted accounts come back with user set to null
    return (obj.get('user') or {}).get('login') if obj else None


def count_pr_states(records: List[PullRequestRecord]) -> Dict[str, int]:
    """
    Split PRs into merged, open and closed-without-merge.

    The three buckets are disjoint and always add up to the total.
    """
    merged = sum(1 for pr in records if pr.merged)
    open_prs = sum(1 for pr in records if not pr.merged and pr.state == 'open')
    return {
        'total_prs': len(records),
        'merged_prs': merged,
        'open_prs': open_prs,
        'closed_prs': len(records) - merged - open_prs,
    }


def review_outcome_stats(records: List[PullRequestRecord]) -> Dict[str, Any]:
    """Changes-requested histogram and share of PRs that needed no changes."""
    changes = [pr.changes_requested for pr in records]
    clean = sum(1 for value in changes if value == 0)
    return {
        'changes_requested_distribution': distribution(changes),
        'clean_prs': clean,
        'clean_pr_percentage': percentage(clean, len(changes)),
    }


class PRAnalyzer:
    """
    Analyzer for one user's pull requests in one repository.

    This class orchestrates the collection of pull request data from GitHub
    and turns it into per-PR records and summary statistics.
    """

    def __init__(self, github_client: GitHubClient):
        """
        Initialize PR analyzer with a GitHub client.

        Args:
            github_client: GitHubClient instance for API interactions

        Raises:
            AnalysisError: If github_client is None or invalid
        """
        if not github_client:
            raise AnalysisError("GitHubClient is required")

        if not isinstance(github_client, GitHubClient):
            raise AnalysisError("Invalid GitHubClient instance provided")

        self.github_client = github_client
        self.logger = logging.getLogger(__name__)

    def fetch_user_prs(self, owner: str, repo: str, username: str, state: str = 'all',
                       since: Optional[str] = None, until: Optional[str] = None) -> List[Dict[str, Any]]:
        """
        Fetch the pull requests a user opened in a repository.

        Args:
            owner: Repository owner (user or organization)
            repo: Repository name
            username: PR author login
            state: all, open, closed or merged
            since: YYYY-MM-DD, inclusive
            until: YYYY-MM-DD, inclusive

        Returns:
            List of pull request data dictionaries

        Raises:
            AnalysisError: If required arguments are missing
            GitHubAPIError: If GitHub API requests fail
        """
        if not owner or not repo:
            raise AnalysisError("Repository owner and name are required")

        if not username:
            raise AnalysisError("Username is required")

        return self.github_client.list_pull_requests(
            owner, repo,
            state=state,
            since=parse_date_bound(since),
            until=parse_date_bound(until, end_of_day=True),
            author=username
        )

    def calculate_pr_metrics(self, details: Dict[str, Any], repository: str) -> PullRequestRecord:
        """
        Calculate metrics for a single PR from its joined API records.

        Args:
            details: Output of GitHubClient.get_pr_details()
            repository: 'owner/name' of the PR's repository

        Returns:
            PullRequestRecord with a populated PRMetrics

        Raises:
            GitHubAPIError: If the pull request object itself is unavailable
        """
        pr = details.get('pr')
        if not pr:
            raise GitHubAPIError(f"Pull request data not available for {repository}")

        issue_comments = details.get('issue_comments') or []
        review_comments = details.get('review_comments') or []
        reviews = details.get('reviews') or []
        commits = details.get('commits') or []

        total_comments = len(issue_comments) + len(review_comments)

        reviewers = {_login(r) for r in reviews} - {None}
        commenters = {_login(c) for c in issue_comments + review_comments} - {None}
        participants = commenters | reviewers

        changes_requested = sum(1 for r in reviews if r.get('state') == 'CHANGES_REQUESTED')
        approved = sum(1 for r in reviews if r.get('state') == 'APPROVED')

        created_at = parse_timestamp(pr.get('created_at'))
        time_to_merge = days_between(created_at, parse_timestamp(pr.get('merged_at')))
        time_to_close = days_between(created_at, parse_timestamp(pr.get('closed_at')))

        density = round(total_comments / len(commits), 2) if commits else 0
        ai = detect_pr_ai_assistance(commits)

        metrics = PRMetrics(
            total_comments=total_comments,
            issue_comments=len(issue_comments),
            review_comments=len(review_comments),
            reviews=len(reviews),
            changes_requested=changes_requested,
            approved=approved,
            unique_reviewers=len(reviewers),
            unique_participants=len(participants),
            commits=len(commits),
            conversation_density=density,
            additions=pr.get('additions') or 0,
            deletions=pr.get('deletions') or 0,
            changed_files=pr.get('changed_files') or 0,
            time_to_merge_days=time_to_merge,
            time_to_close_days=time_to_close
        )

        return PullRequestRecord(
            number=pr['number'],
            title=pr.get('title') or '',
            repo=repository,
            state=pr.get('state', 'unknown'),
            merged=pr.get('merged_at') is not None,
            author=_login(pr) or '',
            comments=total_comments,
            changes_requested=changes_requested,
            approvals=approved,
            reviewers=len(reviewers),
            commit_count=len(commits),
            time_to_merge=time_to_merge,
            time_to_close=time_to_close,
            created_at=pr.get('created_at'),
            merged_at=pr.get('merged_at'),
            closed_at=pr.get('closed_at'),
            url=pr.get('html_url') or '',
            ai_assisted=ai.is_ai_assisted,
            ai_tools=ai.ai_tools,
            metrics=metrics
        )

    def calculate_summary(self, records: List[PullRequestRecord]) -> Dict[str, Any]:
        """
        Calculate summary statistics over analysed PRs.

        Args:
            records: PullRequestRecord list with metrics populated

        Returns:
            Dictionary of averages, medians, totals and distributions
        """
        metrics = [pr.metrics for pr in records]
        comments = [m.total_comments for m in metrics]
        changes = [m.changes_requested for m in metrics]
        reviewers = [m.unique_reviewers for m in metrics]
        merge_times = [pr.time_to_merge for pr in records
                       if pr.merged and pr.time_to_merge is not None]
        ai_assisted = sum(1 for pr in records if pr.ai_assisted)

        summary = {
            'average_comments': mean(comments),
            'median_comments': median(comments),
            'average_review_comments': mean([m.review_comments for m in metrics]),
            'average_changes_requested': mean(changes),
            'median_changes_requested': median(changes),
            'average_reviewers': mean(reviewers),
            'median_reviewers': median(reviewers),
            'average_participants': mean([m.unique_participants for m in metrics]),
            'average_commits_per_pr': mean([m.commits for m in metrics]),
            'average_time_to_merge': mean(merge_times),
            'median_time_to_merge': median(merge_times),
            'max_comments': max(comments) if comments else 0,
            'min_comments': min(comments) if comments else 0,
            'total_comments': sum(comments),
            'ai_assisted_prs': ai_assisted,
            'ai_assisted_percentage': percentage(ai_assisted, len(records)),
        }
        summary.update(review_outcome_stats(records))
        return summary

    def analyze_user_prs(self, owner: str, repo: str, username: str, state: str = 'all',
                         since: Optional[str] = None, until: Optional[str] = None,
                         progress: Optional[ProgressCallback] = None) -> Dict[str, Any]:
        """
        Run the full `pr` command analysis.

        PRs whose details cannot be fetched are skipped and reported through
        `progress(False)`; they do not contribute to any aggregate.

        Args:
            owner: Repository owner
            repo: Repository name
            username: PR author login
            state: all, open, closed or merged
            since: YYYY-MM-DD, inclusive
            until: YYYY-MM-DD, inclusive
            progress: Called with True per analysed PR and False per skipped PR

        Returns:
            Result dictionary ready for formatting and export
        """
        repository = f"{owner}/{repo}"
        prs = self.fetch_user_prs(owner, repo, username, state, since, until)

        self.logger.info(f"Found {len(prs)} PRs by {username} in {repository}")

        records = []
        skipped = 0
        for pr in prs:
            pr_number = pr.get('number')
            try:
                details = self.github_client.get_pr_details(owner, repo, pr_number)
                records.append(self.calculate_pr_metrics(details, repository))
                if progress:
                    progress(True)
            except (GitHubAuthenticationError, GitHubRateLimitError):
                raise
            except (GitHubAPIError, KeyError, TypeError, ValueError) as e:
                skipped += 1
                self.logger.warning(f"Skipping PR #{pr_number} in {repository}: {e}")
                if progress:
                    progress(False)

        if skipped:
            self.logger.warning(f"{skipped} PRs could not be analysed and were skipped")

        result = {
            'user': username,
            'repository': repository,
            'state': state,
            'date_range': {'since': since, 'until': until},
            'skipped_prs': skipped,
        }
        result.update(count_pr_states(records))
        result['summary'] = self.calculate_summary(records)
        result['prs'] = [record.to_dict() for record in records]
        return result
