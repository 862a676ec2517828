"""
Repository contribution statistics.

Combines GitHub's per-contributor commit statistics with the repository's
pull request list to rank contributors for the `repo` command.
"""

import logging
from collections import Counter
from typing import Any, Dict, List, Optional

from github_client import GitHubClient, parse_date_bound
from metrics_stats import percentage, top_n
from models import ContributorRecord
from pr_analyzer import AnalysisError


SORT_FIELDS = ('commits', 'prs', 'additions', 'deletions')


class RepoAnalyzer:
    """Ranks the contributors of a single repository."""

    def __init__(self, github_client: GitHubClient):
        if not github_client:
            raise AnalysisError("GitHubClient is required")

        if not isinstance(github_client, GitHubClient):
            raise AnalysisError("Invalid GitHubClient instance provided")

        self.github_client = github_client
        self.logger = logging.getLogger(__name__)

    def build_contributors(self, contributor_stats: List[Dict[str, Any]],
                           prs: List[Dict[str, Any]]) -> List[ContributorRecord]:
        """
        Merge commit statistics with per-author PR counts.

        Args:
            contributor_stats: Objects from the stats/contributors endpoint
            prs: Pull requests in the analysed date range

        Returns:
            One ContributorRecord per contributor with a known login
        """
        pr_counts = Counter((pr.get('user') or {}).get('login') for pr in prs)

        contributors = []
        for entry in contributor_stats:
            login = (entry.get('author') or {}).get('login')
            if not login:
                self.logger.debug("Skipping contributor stats entry without author")
                continue

            weeks = entry.get('weeks') or []
            contributors.append(ContributorRecord(
                login=login,
                commits=entry.get('total', 0),
                additions=sum(week.get('a', 0) for week in weeks),
                deletions=sum(week.get('d', 0) for week in weeks),
                prs=pr_counts.get(login, 0)
            ))

        return contributors

    def analyze_repo(self, owner: str, repo: str, since: Optional[str] = None,
                     until: Optional[str] = None, top: int = 10,
                     sort_by: str = 'commits') -> Optional[Dict[str, Any]]:
        """
        Run the full `repo` command analysis.

        Args:
            owner: Repository owner
            repo: Repository name
            since: YYYY-MM-DD, inclusive, applied to PR creation dates
            until: YYYY-MM-DD, inclusive, applied to PR creation dates
            top: Number of contributors kept in the ranking
            sort_by: commits, prs, additions or deletions

        Returns:
            Result dictionary, or None while GitHub is still computing
            contributor statistics

        Raises:
            AnalysisError: If arguments are invalid
            GitHubAPIError: If GitHub API requests fail
        """
        if not owner or not repo:
            raise AnalysisError("Repository owner and name are required")

        if sort_by not in SORT_FIELDS:
            raise AnalysisError(f"sort_by must be one of: {', '.join(SORT_FIELDS)}")

        if top is not None and top < 1:
            raise AnalysisError("top must be at least 1")

        contributor_stats = self.github_client.get_contributor_stats(owner, repo)
        if contributor_stats is None:
            self.logger.info(f"Contributor statistics for {owner}/{repo} are still being computed")
            return None

        prs = self.github_client.list_pull_requests(
            owner, repo,
            since=parse_date_bound(since),
            until=parse_date_bound(until, end_of_day=True)
        )

        contributors = self.build_contributors(contributor_stats, prs)
        ranked = top_n(contributors, key=lambda c: getattr(c, sort_by), n=top)

        merged = sum(1 for pr in prs if pr.get('merged_at'))
        open_prs = sum(1 for pr in prs if pr.get('state') == 'open')

        return {
            'repository': f"{owner}/{repo}",
            'total_contributors': len(contributor_stats),
            'total_prs': len(prs),
            'merged_prs': merged,
            'open_prs': open_prs,
            'closed_prs': len(prs) - merged - open_prs,
            'merged_percentage': percentage(merged, len(prs)),
            'sort_by': sort_by,
            'date_range': {'since': since, 'until': until},
            'contributors': [c.to_dict() for c in ranked],
        }
