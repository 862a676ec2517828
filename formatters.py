"""
Output formatters for metrics reports.

Table views are rendered with Rich; JSON is a direct serialization of the
result dictionary. Status and progress messages go to stderr so that JSON
and CSV on stdout stay machine-readable.
"""

import json
import logging
from pathlib import Path
from typing import Any, Dict, Iterable, List, Optional, Tuple

from rich import box
from rich.console import Console
from rich.markup import escape
from rich.table import Table
from rich.text import Text

from metrics_stats import highlight_threshold


console = Console()
err_console = Console(stderr=True)

logger = logging.getLogger(__name__)

BANNER_WIDTH = 80
SUMMARY_BANNER_WIDTH = 105


def color_number(value: Any, low: float = 3, high: float = 10, inverse: bool = False) -> Text:
    """
    Colour a number by threshold.

    By default low values are red and high values green; `inverse` flips
    that for metrics where less is better.
    """
    num = float(value)
    if num <= low:
        style = 'green' if inverse else 'red'
    elif num >= high:
        style = 'red' if inverse else 'green'
    else:
        style = 'yellow'
    return Text(str(value), style=style)


def truncate(text: str, width: int) -> str:
    """Shorten text to `width` characters, ending in '...' when cut."""
    if len(text) <= width:
        return text
    return text[:width - 3] + '...'


def status_text(pr: Dict[str, Any]) -> Text:
    if pr.get('merged'):
        return Text('Merged', style='green')
    if pr.get('state') == 'open':
        return Text('Open', style='yellow')
    return Text('Closed', style='bright_black')


def _banner(out: Console, title: str, width: int = BANNER_WIDTH) -> None:
    out.print()
    out.print('═' * width, style='bold blue')
    out.print(f"  {escape(title)}", style='bold white')
    out.print('═' * width, style='bold blue')


def _section(out: Console, title: str, width: int = BANNER_WIDTH) -> None:
    out.print()
    out.print(f"  {title}", style='bold yellow')
    out.print('  ' + '─' * (width - 4), style='bright_black')


def _label(out: Console, label: str, value: Any, style: str = 'white') -> None:
    out.print(f"  [bright_black]{label}[/bright_black] [{style}]{escape(str(value))}[/{style}]")


def _kv_table(rows: Iterable[Tuple[str, Any]]) -> Table:
    """Two-column key/value table without a header row."""
    table = Table(box=box.SQUARE, show_header=False, border_style='bright_black')
    table.add_column('Metric', style='cyan')
    table.add_column('Value')
    for key, value in rows:
        table.add_row(key, value if isinstance(value, Text) else escape(str(value)))
    return table


def _days(value: Optional[float], suffix: str = 'd') -> str:
    return f"{value}{suffix}" if value is not None else '-'


def _period(out: Console, date_range: Dict[str, Any], start_label: str = 'start') -> None:
    since, until = date_range.get('since'), date_range.get('until')
    if since or until:
        _label(out, 'Period:', f"{since or start_label} to {until or 'now'}")


def render_pr_metrics_table(data: Dict[str, Any], out: Optional[Console] = None) -> None:
    """Render the `pr` command report."""
    out = out or console
    summary = data['summary']

    _banner(out, 'GitHub PR Metrics Report')
    _label(out, 'User:', data['user'])
    _label(out, 'Repository:', data['repository'])
    _period(out, data.get('date_range', {}))
    _label(out, 'Total PRs:', data['total_prs'], 'cyan')
    _label(out, 'Merged PRs:', data['merged_prs'], 'green')
    _label(out, 'Open PRs:', data['open_prs'], 'yellow')
    _label(out, 'Closed (not merged):', data['closed_prs'], 'red')

    _section(out, 'Summary Statistics')
    out.print(_kv_table([
        ('Avg Comments/PR', summary['average_comments']),
        ('Median Comments/PR', summary['median_comments']),
        ('Avg Review Comments', summary['average_review_comments']),
        ('Avg Changes Requested', color_number(summary['average_changes_requested'], low=0.5, high=2, inverse=True)),
        ('Avg Reviewers/PR', summary['average_reviewers']),
        ('Avg Participants/PR', summary['average_participants']),
        ('Avg Commits/PR', summary['average_commits_per_pr']),
        ('Avg Time to Merge', f"{summary['average_time_to_merge']} days"),
        ('Median Time to Merge', f"{summary['median_time_to_merge']} days"),
        ('Clean PRs (no changes requested)', f"{summary['clean_prs']} ({summary['clean_pr_percentage']}%)"),
        ('Total Comments', summary['total_comments']),
    ]))

    _render_distribution(out, summary['changes_requested_distribution'])

    _section(out, 'Individual PRs')
    table = Table(box=box.SQUARE, header_style='cyan', border_style='bright_black')
    for header, width in (('PR', 8), ('Title', 30), ('Status', 10), ('Comments', 10),
                          ('Reviews', 9), ('Changes Req', 12), ('Time', 10)):
        table.add_column(header, width=width, overflow='fold')

    for pr in data['prs']:
        metrics = pr.get('metrics') or {}
        table.add_row(
            f"#{pr['number']}",
            escape(pr['title'][:28]),
            status_text(pr),
            str(metrics.get('total_comments', pr.get('comments', 0))),
            str(metrics.get('reviews', 0)),
            str(pr['changes_requested']),
            _days(pr.get('time_to_merge'))
        )

    out.print(table)
    out.print()


def _render_distribution(out: Console, dist: Dict[Any, int]) -> None:
    if not dist:
        return

    _section(out, 'Changes Requested Distribution')
    table = Table(box=box.SQUARE, header_style='cyan', border_style='bright_black')
    table.add_column('Changes Requested', width=18, justify='right')
    table.add_column('PRs', width=8, justify='right')
    for value, count in dist.items():
        table.add_row(str(value), str(count))
    out.print(table)


def _render_ai_section(out: Console, summary: Dict[str, Any], width: int) -> None:
    _section(out, 'AI Assistance Detection', width)
    rows = [
        ('AI-Assisted PRs', f"{summary['ai_assisted_prs']} ({summary['ai_assisted_percentage']}%)"),
        ('Human-Only PRs', f"{summary['human_only_prs']} ({summary['human_only_percentage']}%)"),
    ]
    rows.extend((f"  └─ {tool}", count) for tool, count in summary['ai_tools_breakdown'].items())
    out.print(_kv_table(rows))
    out.print('  Note: AI detection based on Co-Authored-By commit trailers', style='bright_black')


def _render_repo_breakdown(out: Console, repos: List[Dict[str, Any]], width: int,
                           title: str, repo_width: int) -> None:
    if not repos:
        return

    _section(out, title, width)
    table = Table(box=box.SQUARE, header_style='cyan', border_style='bright_black')
    for header, col_width in (('Repository', repo_width), ('PRs', 8), ('Merged', 9), ('Comments', 11),
                              ('Changes Req', 13), ('Avg Merge Time', 15)):
        table.add_column(header, width=col_width)

    for repo in repos:
        table.add_row(
            escape(truncate(repo['repo'], repo_width - 2)),
            str(repo['total_prs']),
            Text(str(repo['merged_prs']), style='green'),
            str(repo['total_comments']),
            str(repo['changes_requested']),
            _days(repo.get('avg_time_to_merge'), ' days')
        )
    out.print(table)


def _render_pr_list(out: Console, prs: List[Dict[str, Any]], width: int, link_width: int) -> None:
    if not prs:
        return

    threshold = highlight_threshold([pr['changes_requested'] for pr in prs])

    _section(out, 'Pull Requests', width)
    out.print(f"  (Highlighted: PRs with {threshold}+ changes requested)", style='bright_black')

    table = Table(box=box.SQUARE, header_style='cyan', border_style='bright_black')
    for header, col_width in (('PR', 8), ('Repository', 25), ('Status', 10), ('Comments', 10),
                              ('Chg Req', 9), ('AI', 6), ('Link', link_width)):
        table.add_column(header, width=col_width, overflow='fold')

    for pr in prs:
        highlighted = pr['changes_requested'] >= threshold
        table.add_row(
            Text(f" #{pr['number']} ", style='white on red') if highlighted else f"#{pr['number']}",
            escape(truncate(pr['repo'], 23)),
            status_text(pr),
            str(pr['comments']),
            Text(str(pr['changes_requested']), style='bold red') if highlighted else str(pr['changes_requested']),
            Text('Yes', style='magenta') if pr.get('ai_assisted') else Text('-', style='bright_black'),
            Text(pr['url'], style='underline blue')
        )
    out.print(table)


def _render_issue_list(out: Console, issues: List[Dict[str, Any]], width: int) -> None:
    if not issues:
        return

    _section(out, 'Issues', width)
    table = Table(box=box.SQUARE, header_style='cyan', border_style='bright_black')
    for header, col_width in (('Issue', 8), ('Repository', 25), ('Status', 10), ('Comments', 10), ('Link', 55)):
        table.add_column(header, width=col_width, overflow='fold')

    for issue in issues:
        table.add_row(
            f"#{issue['number']}",
            escape(truncate(issue['repo'], 23)),
            Text('Open', style='yellow') if issue['state'] == 'open' else Text('Closed', style='green'),
            str(issue['comments']),
            Text(issue['url'], style='underline blue')
        )
    out.print(table)


def _pr_stats_rows(summary: Dict[str, Any]) -> List[Tuple[str, Any]]:
    return [
        ('Merged', Text(f"{summary['merged_prs']} ({summary['merged_percentage']}%)", style='green')),
        ('Open', Text(f"{summary['open_prs']} ({summary['open_percentage']}%)", style='yellow')),
        ('Closed (not merged)', Text(f"{summary['closed_prs']} ({summary['closed_percentage']}%)", style='red')),
        ('Total Comments Received', summary['total_comments']),
        ('Avg Comments/PR', summary['avg_comments_per_pr']),
        ('Median Comments/PR', summary['median_comments_per_pr']),
        ('Total Changes Requested', summary['total_changes_requested']),
        ('Avg Changes Requested/PR', color_number(summary['avg_changes_requested_per_pr'], low=0.5, high=2, inverse=True)),
        ('Clean PRs (no changes requested)', f"{summary['clean_prs']} ({summary['clean_pr_percentage']}%)"),
        ('Avg Reviewers/PR', summary['avg_reviewers_per_pr']),
        ('Avg Time to Merge', f"{summary['avg_time_to_merge']} days"),
        ('Median Time to Merge', f"{summary['median_time_to_merge']} days"),
    ]


def render_user_stats_table(data: Dict[str, Any], out: Optional[Console] = None) -> None:
    """Render the `user` command report."""
    out = out or console
    summary = data['summary']
    width = BANNER_WIDTH

    _banner(out, 'GitHub User PR Metrics (Cross-Repository)', width)
    _label(out, 'User:', data['user'])
    if data.get('org_filter'):
        _label(out, 'Organization(s):', data['org_filter'])
    _period(out, data.get('date_range', {}))

    _section(out, 'Overall PR Statistics', width)
    out.print(_kv_table([
        ('Total PRs Raised', Text(str(summary['total_prs']), style='cyan')),
        ('Repos Contributed', Text(str(summary['repos_contributed']), style='cyan')),
    ] + _pr_stats_rows(summary)[:3]))

    _section(out, 'Issue Statistics', width)
    out.print(_kv_table([
        ('Total Issues Opened', Text(str(summary['total_issues']), style='cyan')),
        ('Open Issues', Text(str(summary['open_issues']), style='yellow')),
        ('Closed Issues', Text(str(summary['closed_issues']), style='green')),
    ]))

    _section(out, 'Review Feedback Summary', width)
    out.print(_kv_table(_pr_stats_rows(summary)[3:]))

    _render_distribution(out, summary['changes_requested_distribution'])
    _render_ai_section(out, summary, width)
    _render_repo_breakdown(out, data.get('repo_breakdown'), width, 'PRs by Repository', 30)
    _render_pr_list(out, data.get('prs'), width, 45)
    _render_issue_list(out, data.get('issues'), width)
    out.print()


def render_summary_table(data: Dict[str, Any], out: Optional[Console] = None) -> None:
    """Render the `summary` command report."""
    out = out or console
    summary = data['summary']
    width = SUMMARY_BANNER_WIDTH

    _banner(out, f"GitHub Contribution Summary: {data['user']}", width)
    if data.get('org_filter'):
        _label(out, 'Organization(s):', data['org_filter'])
    _period(out, data.get('date_range', {}), 'all time')

    _section(out, 'Overview', width)
    out.print(_kv_table([
        ('Total PRs', Text(str(summary['total_prs']), style='cyan')),
        ('Total Issues', Text(str(summary['total_issues']), style='cyan')),
        ('Repos Contributed', Text(str(summary['repos_contributed']), style='cyan')),
    ]))

    _section(out, 'Pull Request Metrics', width)
    out.print(_kv_table(_pr_stats_rows(summary)))

    _section(out, 'Issue Metrics', width)
    out.print(_kv_table([
        ('Open Issues', Text(str(summary['open_issues']), style='yellow')),
        ('Closed Issues', Text(str(summary['closed_issues']), style='green')),
    ]))

    _render_distribution(out, summary['changes_requested_distribution'])
    _render_ai_section(out, summary, width)
    _render_repo_breakdown(out, data.get('repo_breakdown'), width, 'Contribution by Repository', 35)
    _render_pr_list(out, data.get('prs'), width, 50)
    _render_issue_list(out, data.get('issues'), width)

    out.print()
    out.print('═' * width, style='bold blue')
    out.print()


def render_repo_stats_table(data: Dict[str, Any], out: Optional[Console] = None) -> None:
    """Render the `repo` command report."""
    out = out or console

    _banner(out, 'Repository Contribution Report')
    _label(out, 'Repository:', data['repository'])
    _period(out, data.get('date_range', {}))
    _label(out, 'Total Contributors:', data['total_contributors'], 'cyan')
    _label(out, 'Total PRs:', data['total_prs'], 'cyan')
    _label(out, 'Merged PRs:', f"{data['merged_prs']} ({data['merged_percentage']}%)", 'green')

    _section(out, f"Top Contributors (by {data.get('sort_by', 'commits')})")
    table = Table(box=box.SQUARE, header_style='cyan', border_style='bright_black')
    for header, width in (('Contributor', 25), ('Commits', 10), ('Additions', 15), ('Deletions', 15), ('PRs', 10)):
        table.add_column(header, width=width)

    for contributor in data['contributors']:
        table.add_row(
            escape(contributor['login']),
            str(contributor['commits']),
            Text(f"+{contributor['additions']:,}", style='green'),
            Text(f"-{contributor['deletions']:,}", style='red'),
            str(contributor['prs'])
        )

    out.print(table)
    out.print()


def to_json(data: Dict[str, Any]) -> str:
    """Serialize a result dictionary exactly as exported."""
    return json.dumps(data, indent=2, default=str)


def format_json(data: Dict[str, Any]) -> None:
    # Plain print: Rich would re-wrap long lines
    print(to_json(data))


def export_to_file(data: Dict[str, Any], filename: str) -> str:
    """
    Write a result dictionary to a JSON file.

    Args:
        data: Result dictionary
        filename: Destination path, parent directories are created

    Returns:
        Path of the written file
    """
    path = Path(filename)
    path.parent.mkdir(parents=True, exist_ok=True)
    path.write_text(to_json(data) + '\n', encoding='utf-8')
    logger.info(f"Exported JSON report to {path}")
    return str(path)


def print_error(message: str) -> None:
    err_console.print(f"\n✗ Error: {escape(message)}", style='red')


def print_success(message: str) -> None:
    err_console.print(f"\n✓ {escape(message)}", style='green')


def print_info(message: str) -> None:
    err_console.print(f"ℹ {escape(message)}", style='blue')


def print_progress(ok: bool) -> None:
    """Progress marker per analysed item: '.' on success, 'x' when skipped."""
    err_console.print('.' if ok else 'x', end='', highlight=False)
