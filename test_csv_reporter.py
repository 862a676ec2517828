"""
Unit tests for CSV reporter module.

This module contains tests for the CSVReporter class, including table
building, stdout output, multi-file export and error handling.
"""

import pytest
import tempfile
import shutil
import csv
import io
import json
from pathlib import Path
from unittest.mock import patch

from csv_reporter import CSVReporter, CSVReportError
from formatters import to_json


def pr_result():
    return {
        'user': 'alice',
        'repository': 'octo/app',
        'state': 'all',
        'date_range': {'since': '2024-12-01', 'until': None},
        'skipped_prs': 0,
        'total_prs': 1, 'merged_prs': 1, 'open_prs': 0, 'closed_prs': 0,
        'summary': {
            'average_comments': 3, 'clean_pr_percentage': 0.0,
            'changes_requested_distribution': {1: 1},
        },
        'prs': [{
            'number': 42,
            'title': 'Fix "quoted", commas\nand newlines',
            'repo': 'octo/app',
            'state': 'closed',
            'merged': True,
            'comments': 3,
            'changes_requested': 1,
            'approvals': 1,
            'reviewers': 2,
            'commit_count': 2,
            'time_to_merge': 1.25,
            'time_to_close': 1.25,
            'created_at': '2024-12-01T10:00:00Z',
            'url': 'https://github.com/octo/app/pull/42',
            'ai_assisted': True,
            'ai_tools': ['Claude', 'GitHub Copilot'],
            'metrics': {
                'total_comments': 3, 'issue_comments': 1, 'review_comments': 2, 'reviews': 2,
                'changes_requested': 1, 'approved': 1, 'unique_reviewers': 2,
                'unique_participants': 3, 'commits': 2, 'conversation_density': 1.5,
                'additions': 10, 'deletions': 2, 'changed_files': 1,
                'time_to_merge_days': 1.25, 'time_to_close_days': 1.25,
            },
        }],
    }


def user_result():
    return {
        'user': 'alice',
        'org_filter': None,
        'date_range': {'since': None, 'until': None},
        'summary': {
            'total_prs': 1, 'avg_time_to_merge': 0,
            'ai_tools_breakdown': {'Claude': 1},
            'changes_requested_distribution': {0: 1},
        },
        'repo_breakdown': [{
            'repo': 'octo/app', 'total_prs': 1, 'merged_prs': 0, 'total_comments': 2,
            'changes_requested': 0, 'merge_times_sum': 0.0, 'merge_times_count': 0,
            'avg_time_to_merge': None,
        }],
        'prs': [{
            'number': 7, 'title': 'Open PR', 'repo': 'octo/app', 'state': 'open', 'merged': False,
            'comments': 2, 'changes_requested': 0, 'approvals': 0, 'reviewers': 0,
            'commit_count': 1, 'time_to_merge': None, 'time_to_close': None,
            'created_at': '2024-12-01T10:00:00Z', 'url': 'https://github.com/octo/app/pull/7',
            'ai_assisted': True, 'ai_tools': ['Claude'],
        }],
        'issues': [{
            'number': 8, 'title': 'Bug', 'repo': 'octo/app', 'state': 'open', 'comments': 0,
            'created_at': '2024-12-02T10:00:00Z', 'closed_at': None,
            'url': 'https://github.com/octo/app/issues/8',
        }],
    }


def read_rows(path):
    with open(path, newline='', encoding='utf-8') as csvfile:
        return list(csv.reader(csvfile))


class TestCSVReporter:
    """Test cases for CSVReporter class initialization."""

    def test_init_with_valid_report_type(self):
        reporter = CSVReporter('summary')

        assert reporter.report_type == 'summary'
        assert reporter.logger is not None

    def test_init_with_unknown_report_type(self):
        with pytest.raises(CSVReportError, match="Unknown report type: weekly"):
            CSVReporter('weekly')


class TestTableBuilding:
    """Test cases for splitting results into tables."""

    def test_pr_tables(self):
        tables = CSVReporter('pr').build_tables(pr_result())

        assert list(tables) == ['prs', 'summary']
        headers, rows = tables['prs']
        assert headers[:3] == ['pr_number', 'title', 'state']
        assert len(rows) == 1
        row = dict(zip(headers, rows[0]))
        assert row['ai_tools'] == 'Claude;GitHub Copilot'
        assert row['files_changed'] == 1
        assert row['time_to_merge_days'] == 1.25

    def test_contribution_tables(self):
        tables = CSVReporter('user').build_tables(user_result())

        assert list(tables) == ['prs', 'issues', 'repos', 'summary']
        headers, rows = tables['prs']
        row = dict(zip(headers, rows[0]))
        assert row['time_to_merge_days'] == ''
        assert row['repository'] == 'octo/app'

    def test_repo_tables(self):
        result = {
            'repository': 'octo/app', 'total_contributors': 1, 'sort_by': 'commits',
            'date_range': {'since': None, 'until': None},
            'contributors': [{'login': 'bob', 'commits': 3, 'additions': 5, 'deletions': 1, 'prs': 0}],
        }

        tables = CSVReporter('repo').build_tables(result)

        assert tables['contributors'] == (
            ['login', 'commits', 'additions', 'deletions', 'prs'],
            [['bob', 3, 5, 1, 0]]
        )

    def test_summary_flattening(self):
        """Test nested summary values become dotted metric names."""
        headers, rows = CSVReporter('user').build_tables(user_result())['summary']
        metrics = dict(rows)

        assert headers == ['metric', 'value']
        assert metrics['user'] == 'alice'
        assert metrics['org_filter'] == ''
        assert metrics['since'] == ''
        assert metrics['total_prs'] == 1
        assert metrics['ai_tools_breakdown.Claude'] == 1
        assert metrics['changes_requested_distribution.0'] == 1

    def test_title_whitespace_collapsed(self):
        headers, rows = CSVReporter('pr').build_tables(pr_result())['prs']

        assert rows[0][headers.index('title')] == 'Fix "quoted", commas and newlines'

    def test_non_dict_result(self):
        with pytest.raises(CSVReportError, match="Result must be a dictionary"):
            CSVReporter('pr').build_tables([])

    def test_missing_records(self):
        result = user_result()
        del result['issues']

        with pytest.raises(CSVReportError, match="missing"):
            CSVReporter('summary').build_tables(result)


class TestCSVOutput:
    """Test cases for writing CSV to stdout and files."""

    def setup_method(self):
        """Set up temporary directory for each test."""
        self.tmpdir = tempfile.mkdtemp()

    def teardown_method(self):
        """Clean up temporary directory after each test."""
        shutil.rmtree(self.tmpdir, ignore_errors=True)

    def test_write_primary_quotes_special_characters(self):
        stream = io.StringIO()

        CSVReporter('pr').write_primary(pr_result(), stream)

        stream.seek(0)
        rows = list(csv.reader(stream))
        assert rows[0][0] == 'pr_number'
        assert rows[1][1] == 'Fix "quoted", commas and newlines'
        assert len(rows) == 2

    def test_write_primary_defaults_to_stdout(self, capsys):
        CSVReporter('user').write_primary(user_result())

        out = capsys.readouterr().out
        assert out.splitlines()[0].startswith('pr_number,repository,title')

    def test_export_writes_one_file_per_table(self):
        output_path = Path(self.tmpdir) / 'nested' / 'report.csv'

        written = CSVReporter('summary').export(user_result(), str(output_path))

        assert [Path(p).name for p in written] == [
            'report_prs.csv', 'report_issues.csv', 'report_repos.csv', 'report_summary.csv'
        ]
        for path in written:
            assert Path(path).exists()

        issues = read_rows(Path(self.tmpdir) / 'nested' / 'report_issues.csv')
        assert issues[0] == ['issue_number', 'repository', 'title', 'state', 'comments',
                             'created_at', 'closed_at', 'url']
        assert issues[1][0] == '8'

        repos = read_rows(Path(self.tmpdir) / 'nested' / 'report_repos.csv')
        assert repos[1][-1] == ''

    def test_csv_values_match_json(self):
        """Test CSV export carries the same numbers and timestamps as JSON."""
        result = pr_result()
        written = CSVReporter('pr').export(result, str(Path(self.tmpdir) / 'pr.csv'))
        exported = json.loads(to_json(result))['prs'][0]

        rows = read_rows(written[0])
        row = dict(zip(rows[0], rows[1]))

        assert float(row['time_to_merge_days']) == exported['time_to_merge']
        assert int(row['total_comments']) == exported['metrics']['total_comments']
        assert row['created_at'] == exported['created_at']
        assert row['url'] == exported['url']

    def test_export_requires_path(self):
        with pytest.raises(CSVReportError, match="Output path is required"):
            CSVReporter('pr').export(pr_result(), '')

    def test_export_write_error(self):
        with patch('builtins.open', side_effect=PermissionError("Permission denied")):
            with pytest.raises(CSVReportError, match="Failed to write CSV report"):
                CSVReporter('pr').export(pr_result(), str(Path(self.tmpdir) / 'pr.csv'))
