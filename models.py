"""Record types shared by the analyzers, formatters and CSV reporter."""

from dataclasses import asdict, dataclass, field
from typing import Any, Dict, List, Optional


@dataclass
class PRMetrics:
    """Detailed per-PR counters used by the single-repository report."""
    total_comments: int = 0
    issue_comments: int = 0
    review_comments: int = 0
    reviews: int = 0
    changes_requested: int = 0
    approved: int = 0
    unique_reviewers: int = 0
    unique_participants: int = 0
    commits: int = 0
    conversation_density: float = 0.0
    additions: int = 0
    deletions: int = 0
    changed_files: int = 0
    time_to_merge_days: Optional[float] = None
    time_to_close_days: Optional[float] = None


@dataclass
class PullRequestRecord:
    number: int
    title: str
    repo: str
    state: str
    merged: bool
    author: str = ''
    comments: int = 0
    changes_requested: int = 0
    approvals: int = 0
    reviewers: int = 0
    commit_count: int = 0
    time_to_merge: Optional[float] = None
    time_to_close: Optional[float] = None
    created_at: Optional[str] = None
    merged_at: Optional[str] = None
    closed_at: Optional[str] = None
    url: str = ''
    ai_assisted: bool = False
    ai_tools: List[str] = field(default_factory=list)
    metrics: Optional[PRMetrics] = None

    @property
    def status(self) -> str:
        """Merged, Open or Closed, as shown in reports."""
        if self.merged:
            return 'Merged'
        return 'Open' if self.state == 'open' else 'Closed'

    def to_dict(self) -> Dict[str, Any]:
        data = asdict(self)
        if self.metrics is None:
            data.pop('metrics')
        return data


@dataclass
class IssueRecord:
    number: int
    title: str
    repo: str
    state: str
    comments: int = 0
    created_at: Optional[str] = None
    closed_at: Optional[str] = None
    url: str = ''

    def to_dict(self) -> Dict[str, Any]:
        return asdict(self)


@dataclass
class RepoAggregate:
    """Running per-repository totals; averages are derived on demand."""
    repo: str
    total_prs: int = 0
    merged_prs: int = 0
    total_comments: int = 0
    changes_requested: int = 0
    merge_times_sum: float = 0.0
    merge_times_count: int = 0

    def add(self, record: PullRequestRecord) -> None:
        self.total_prs += 1
        if record.merged:
            self.merged_prs += 1
        self.total_comments += record.comments
        self.changes_requested += record.changes_requested
        if record.time_to_merge is not None:
            self.merge_times_sum += record.time_to_merge
            self.merge_times_count += 1

    @property
    def avg_time_to_merge(self) -> Optional[float]:
        if not self.merge_times_count:
            return None
        return round(self.merge_times_sum / self.merge_times_count, 2)

    def to_dict(self) -> Dict[str, Any]:
        data = asdict(self)
        data['merge_times_sum'] = round(self.merge_times_sum, 2)
        data['avg_time_to_merge'] = self.avg_time_to_merge
        return data


@dataclass
class ContributorRecord:
    login: str
    commits: int = 0
    additions: int = 0
    deletions: int = 0
    prs: int = 0

    def to_dict(self) -> Dict[str, Any]:
        return asdict(self)
