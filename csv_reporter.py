"""
CSV reporting module for GitHub metrics results.

This module renders report results as CSV, either as a single table on a
stream (stdout) or as a set of files, one per table, on export. Values are
written unformatted so that CSV and JSON exports carry the same numbers.
"""

import csv
import logging
import sys
from pathlib import Path
from typing import Any, Dict, List, Optional, TextIO, Tuple


Table = Tuple[List[str], List[List[Any]]]

REPORT_TYPES = ('pr', 'user', 'summary', 'repo')


class CSVReportError(Exception):
    """Custom exception for CSV reporting related errors."""
    pass


PR_METRICS_COLUMNS = [
    ('pr_number', lambda pr: pr['number']),
    ('title', lambda pr: pr['title']),
    ('state', lambda pr: pr['state']),
    ('merged', lambda pr: pr['merged']),
    ('total_comments', lambda pr: pr['metrics']['total_comments']),
    ('issue_comments', lambda pr: pr['metrics']['issue_comments']),
    ('review_comments', lambda pr: pr['metrics']['review_comments']),
    ('reviews', lambda pr: pr['metrics']['reviews']),
    ('changes_requested', lambda pr: pr['metrics']['changes_requested']),
    ('approved', lambda pr: pr['metrics']['approved']),
    ('reviewers', lambda pr: pr['metrics']['unique_reviewers']),
    ('participants', lambda pr: pr['metrics']['unique_participants']),
    ('commits', lambda pr: pr['metrics']['commits']),
    ('conversation_density', lambda pr: pr['metrics']['conversation_density']),
    ('additions', lambda pr: pr['metrics']['additions']),
    ('deletions', lambda pr: pr['metrics']['deletions']),
    ('files_changed', lambda pr: pr['metrics']['changed_files']),
    ('time_to_merge_days', lambda pr: pr['time_to_merge']),
    ('time_to_close_days', lambda pr: pr['time_to_close']),
    ('ai_assisted', lambda pr: pr['ai_assisted']),
    ('ai_tools', lambda pr: ';'.join(pr['ai_tools'])),
    ('created_at', lambda pr: pr['created_at']),
    ('url', lambda pr: pr['url']),
]

PR_COLUMNS = [
    ('pr_number', lambda pr: pr['number']),
    ('repository', lambda pr: pr['repo']),
    ('title', lambda pr: pr['title']),
    ('state', lambda pr: pr['state']),
    ('merged', lambda pr: pr['merged']),
    ('comments', lambda pr: pr['comments']),
    ('changes_requested', lambda pr: pr['changes_requested']),
    ('approvals', lambda pr: pr['approvals']),
    ('reviewers', lambda pr: pr['reviewers']),
    ('commits', lambda pr: pr['commit_count']),
    ('time_to_merge_days', lambda pr: pr['time_to_merge']),
    ('time_to_close_days', lambda pr: pr['time_to_close']),
    ('ai_assisted', lambda pr: pr['ai_assisted']),
    ('ai_tools', lambda pr: ';'.join(pr['ai_tools'])),
    ('created_at', lambda pr: pr['created_at']),
    ('url', lambda pr: pr['url']),
]

ISSUE_COLUMNS = [
    ('issue_number', lambda issue: issue['number']),
    ('repository', lambda issue: issue['repo']),
    ('title', lambda issue: issue['title']),
    ('state', lambda issue: issue['state']),
    ('comments', lambda issue: issue['comments']),
    ('created_at', lambda issue: issue['created_at']),
    ('closed_at', lambda issue: issue['closed_at']),
    ('url', lambda issue: issue['url']),
]

REPO_COLUMNS = [
    ('repository', lambda repo: repo['repo']),
    ('total_prs', lambda repo: repo['total_prs']),
    ('merged_prs', lambda repo: repo['merged_prs']),
    ('total_comments', lambda repo: repo['total_comments']),
    ('changes_requested', lambda repo: repo['changes_requested']),
    ('avg_time_to_merge_days', lambda repo: repo['avg_time_to_merge']),
]

CONTRIBUTOR_COLUMNS = [
    ('login', lambda c: c['login']),
    ('commits', lambda c: c['commits']),
    ('additions', lambda c: c['additions']),
    ('deletions', lambda c: c['deletions']),
    ('prs', lambda c: c['prs']),
]

SCALAR_TYPES = (str, int, float, bool, type(None))


class CSVReporter:
    """
    CSV reporter for metrics results.

    This class turns a result dictionary into named tables and writes them
    to a stream or to files next to a base output path.
    """

    def __init__(self, report_type: str):
        """
        Initialize CSV reporter for one kind of report.

        Args:
            report_type: pr, user, summary or repo

        Raises:
            CSVReportError: If report_type is unknown
        """
        if report_type not in REPORT_TYPES:
            raise CSVReportError(f"Unknown report type: {report_type}")

        self.report_type = report_type
        self.logger = logging.getLogger(__name__)

    def _format_table(self, columns, records: List[Dict[str, Any]]) -> Table:
        headers = [name for name, _ in columns]
        rows = []
        for record in records or []:
            try:
                rows.append([self._format_value(getter(record)) for _, getter in columns])
            except (KeyError, TypeError) as e:
                self.logger.warning(f"Failed to format record {record.get('number', 'unknown')}: {e}")
        return headers, rows

    def _format_value(self, value: Any) -> Any:
        """Blank for missing values, collapsed whitespace for text."""
        if value is None:
            return ''
        if isinstance(value, str):
            return ' '.join(value.split())
        return value

    def _summary_table(self, result: Dict[str, Any]) -> Table:
        """
        Flatten scalar result fields and the summary block into metric rows.

        Nested dictionaries such as distributions become dotted metric names
        ('changes_requested_distribution.0').
        """
        rows = []
        for key, value in result.items():
            if key != 'date_range' and isinstance(value, SCALAR_TYPES):
                rows.append([key, self._format_value(value)])
        for key, value in (result.get('date_range') or {}).items():
            rows.append([key, self._format_value(value)])
        for key, value in (result.get('summary') or {}).items():
            if isinstance(value, dict):
                rows.extend([f"{key}.{sub_key}", sub_value] for sub_key, sub_value in value.items())
            else:
                rows.append([key, self._format_value(value)])
        return ['metric', 'value'], rows

    def build_tables(self, result: Dict[str, Any]) -> Dict[str, Table]:
        """
        Split a result dictionary into named CSV tables.

        The first table is the report's primary record table.

        Args:
            result: Analyzer result dictionary

        Returns:
            Ordered mapping of table name to (headers, rows)

        Raises:
            CSVReportError: If the result does not match the report type
        """
        if not isinstance(result, dict):
            raise CSVReportError("Result must be a dictionary")

        try:
            if self.report_type == 'pr':
                tables = {'prs': self._format_table(PR_METRICS_COLUMNS, result['prs'])}
            elif self.report_type == 'repo':
                tables = {'contributors': self._format_table(CONTRIBUTOR_COLUMNS, result['contributors'])}
            else:
                tables = {
                    'prs': self._format_table(PR_COLUMNS, result['prs']),
                    'issues': self._format_table(ISSUE_COLUMNS, result['issues']),
                    'repos': self._format_table(REPO_COLUMNS, result['repo_breakdown']),
                }
        except KeyError as e:
            raise CSVReportError(f"Result for '{self.report_type}' report is missing {e}")

        tables['summary'] = self._summary_table(result)
        return tables

    def write_table(self, stream: TextIO, table: Table) -> None:
        headers, rows = table
        writer = csv.writer(stream)
        writer.writerow(headers)
        writer.writerows(rows)

    def write_primary(self, result: Dict[str, Any], stream: Optional[TextIO] = None) -> None:
        """Write the primary record table, stdout by default."""
        tables = self.build_tables(result)
        self.write_table(stream or sys.stdout, next(iter(tables.values())))

    def export(self, result: Dict[str, Any], output_path: str) -> List[str]:
        """
        Write every table to its own file.

        For an output path of 'report.csv' the files are 'report_prs.csv',
        'report_summary.csv' and so on.

        Args:
            result: Analyzer result dictionary
            output_path: Base CSV path

        Returns:
            Paths of the written files

        Raises:
            CSVReportError: If output path is missing or writing fails
        """
        if not output_path:
            raise CSVReportError("Output path is required")

        base = Path(output_path)
        tables = self.build_tables(result)
        written = []

        try:
            base.parent.mkdir(parents=True, exist_ok=True)
            for name, table in tables.items():
                path = base.with_name(f"{base.stem}_{name}.csv")
                with open(path, 'w', newline='', encoding='utf-8') as csvfile:
                    self.write_table(csvfile, table)
                written.append(str(path))
        except OSError as e:
            raise CSVReportError(f"Failed to write CSV report: {e}")

        self.logger.info(f"Exported {len(written)} CSV files next to {base}")
        return written
