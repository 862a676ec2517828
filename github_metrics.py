#!/usr/bin/env python3
"""
GitHub Metrics Calculator

This tool analyzes GitHub pull requests, issues and contributors to report:
- Per-PR review metrics (comments, reviews, changes requested, time to merge)
- A user's contributions across repositories, with AI co-authorship detection
- Repository contributor rankings

Usage:
    ghmetrics pr --owner OWNER --repo REPO --user USER [options]
    ghmetrics user --user USER [options]
    ghmetrics repo --owner OWNER --repo REPO [options]
    ghmetrics summary --user USER [options]

Environment Variables:
    GITHUB_TOKEN: GitHub personal access token (required unless --token is given)
    GITHUB_API_URL: API root for GitHub Enterprise (optional)

Examples:
    ghmetrics pr -o facebook -r react -u gaearon --since 2024-01-01
    ghmetrics summary -u octocat --org github,octo-org --format json
    ghmetrics repo -o kubernetes -r kubernetes --top 20 --export k8s.csv
"""

import argparse
import logging
import sys
from typing import Any, Callable, Dict, List, Optional

from dotenv import load_dotenv

from contribution_analyzer import ContributionAnalyzer
from csv_reporter import CSVReporter, CSVReportError
from formatters import (
    err_console,
    export_to_file,
    format_json,
    print_error,
    print_info,
    print_progress,
    print_success,
    render_pr_metrics_table,
    render_repo_stats_table,
    render_summary_table,
    render_user_stats_table
)
from github_client import (
    GitHubClient,
    GitHubAPIError,
    GitHubAuthenticationError,
    PR_STATES,
    parse_date_bound
)
from pr_analyzer import AnalysisError, PRAnalyzer
from repo_analyzer import RepoAnalyzer, SORT_FIELDS


__version__ = '1.0.0'

DEFAULT_TOP = 10
OUTPUT_FORMATS = ('table', 'json', 'csv')

TABLE_RENDERERS: Dict[str, Callable[[Dict[str, Any]], None]] = {
    'pr': render_pr_metrics_table,
    'user': render_user_stats_table,
    'summary': render_summary_table,
    'repo': render_repo_stats_table,
}


def setup_logging(level: str = "WARNING", verbose: bool = False) -> None:
    """
    Configure logging for the application.

    Args:
        level: Logging level (DEBUG, INFO, WARNING, ERROR)
        verbose: Include module and line information in log records
    """
    log_level = getattr(logging, level.upper(), logging.WARNING)

    if verbose:
        log_format = '%(asctime)s - %(name)s - %(levelname)s - %(filename)s:%(lineno)d - %(message)s'
    else:
        log_format = '%(asctime)s - %(levelname)s - %(message)s'

    logging.basicConfig(
        level=log_level,
        format=log_format,
        datefmt='%Y-%m-%d %H:%M:%S',
        stream=sys.stderr
    )


def _add_common_options(parser: argparse.ArgumentParser, top: bool = True) -> None:
    parser.add_argument('-t', '--token', help='GitHub token (or use GITHUB_TOKEN env var)')
    parser.add_argument('--since', help='Only include items created on or after this date (YYYY-MM-DD)')
    parser.add_argument('--until', help='Only include items created on or before this date (YYYY-MM-DD)')
    if top:
        parser.add_argument('--top', type=int, default=DEFAULT_TOP,
                            help=f'Number of entries kept in rankings (default: {DEFAULT_TOP})')
    parser.add_argument('--export', metavar='FILE',
                        help='Export results to FILE (.json, or .csv for one file per table)')
    parser.add_argument('--format', choices=OUTPUT_FORMATS, default='table',
                        help='Output format (default: table)')


def parse_arguments(argv: Optional[List[str]] = None) -> argparse.Namespace:
    """
    Parse command-line arguments.

    Args:
        argv: Argument list, defaults to sys.argv[1:]

    Returns:
        Parsed arguments namespace
    """
    parser = argparse.ArgumentParser(
        prog='ghmetrics',
        description='GitHub Metrics Calculator - Analyze PR metrics and user contributions',
        formatter_class=argparse.RawDescriptionHelpFormatter,
        epilog="""
Environment Variables:
  GITHUB_TOKEN    GitHub personal access token (required unless --token is given)
  GITHUB_API_URL  API root for GitHub Enterprise (default: https://api.github.com)
        """
    )
    parser.add_argument('--version', action='version', version=f'%(prog)s {__version__}')
    parser.add_argument('--verbose', '-v', action='store_true', help='Enable verbose logging')
    parser.add_argument('--debug', action='store_true', help='Enable debug logging')
    parser.add_argument('--quiet', '-q', action='store_true', help='Suppress all output except results and errors')

    subparsers = parser.add_subparsers(dest='command', metavar='COMMAND')
    subparsers.required = True

    pr_parser = subparsers.add_parser('pr', help='Analyze PR metrics for a user in a specific repository')
    pr_parser.add_argument('-o', '--owner', required=True, help='Repository owner (org or user)')
    pr_parser.add_argument('-r', '--repo', required=True, help='Repository name')
    pr_parser.add_argument('-u', '--user', required=True, help='GitHub username to analyze')
    pr_parser.add_argument('--state', choices=PR_STATES, default='all', help='PR state (default: all)')
    _add_common_options(pr_parser, top=False)
    pr_parser.set_defaults(report='pr')

    user_parser = subparsers.add_parser('user', help="Analyze a user's contributions across repositories")
    user_parser.add_argument('-u', '--user', required=True, help='GitHub username to analyze')
    user_parser.add_argument('-o', '--org', help='Filter by organization(s), comma-separated')
    _add_common_options(user_parser)
    user_parser.set_defaults(report='user')

    repo_parser = subparsers.add_parser('repo', help='Analyze overall repository contribution statistics')
    repo_parser.add_argument('-o', '--owner', required=True, help='Repository owner (org or user)')
    repo_parser.add_argument('-r', '--repo', required=True, help='Repository name')
    repo_parser.add_argument('--sort-by', choices=SORT_FIELDS, default='commits',
                             help='Contributor ranking metric (default: commits)')
    _add_common_options(repo_parser)
    repo_parser.set_defaults(report='repo')

    summary_parser = subparsers.add_parser('summary', aliases=['all'],
                                           help='All-in-one metrics: PRs, issues, AI detection, repo breakdown')
    summary_parser.add_argument('-u', '--user', required=True, help='GitHub username to analyze')
    summary_parser.add_argument('-o', '--org', help='Filter by organization(s), comma-separated')
    _add_common_options(summary_parser)
    summary_parser.set_defaults(report='summary')

    return parser.parse_args(argv)


def parse_orgs(value: Optional[str]) -> Optional[List[str]]:
    """Split a comma-separated organization list, dropping blanks."""
    if not value:
        return None
    orgs = [org.strip() for org in value.split(',') if org.strip()]
    return orgs or None


def validate_inputs(args: argparse.Namespace) -> None:
    """
    Validate command-line inputs that argparse cannot check on its own.

    Args:
        args: Parsed command-line arguments

    Raises:
        ValueError: If inputs are invalid
    """
    try:
        since = parse_date_bound(args.since)
        until = parse_date_bound(args.until, end_of_day=True)
    except ValueError:
        raise ValueError("Dates must be in YYYY-MM-DD format")

    if since and until and until < since:
        raise ValueError("--until must not be before --since")

    if getattr(args, 'top', DEFAULT_TOP) < 1:
        raise ValueError("--top must be at least 1")

    for name in ('owner', 'repo', 'user'):
        value = getattr(args, name, None)
        if value is not None and (not value.strip() or '/' in value or ' ' in value.strip()):
            raise ValueError(f"Invalid --{name} value: '{value}'")


def run_report(args: argparse.Namespace, client: GitHubClient,
               progress: Optional[Callable[[bool], None]]) -> Optional[Dict[str, Any]]:
    """
    Run the analyzer for the selected command.

    Returns:
        Result dictionary, or None when there is nothing to report
    """
    if args.report == 'pr':
        result = PRAnalyzer(client).analyze_user_prs(
            args.owner, args.repo, args.user,
            state=args.state, since=args.since, until=args.until,
            progress=progress
        )
        if not result['total_prs'] and not result['skipped_prs']:
            return None
        return result

    if args.report == 'repo':
        return RepoAnalyzer(client).analyze_repo(
            args.owner, args.repo,
            since=args.since, until=args.until,
            top=args.top, sort_by=args.sort_by
        )

    result = ContributionAnalyzer(client).analyze_user(
        args.user, orgs=parse_orgs(args.org),
        since=args.since, until=args.until,
        top=args.top, progress=progress
    )
    summary = result['summary']
    if not summary['total_prs'] and not summary['skipped_prs'] and not summary['total_issues']:
        return None
    return result


def output_result(result: Dict[str, Any], report: str, output_format: str) -> None:
    """Write the result to stdout in the requested format."""
    if output_format == 'json':
        format_json(result)
    elif output_format == 'csv':
        CSVReporter(report).write_primary(result)
    else:
        TABLE_RENDERERS[report](result)


def export_result(result: Dict[str, Any], report: str, filename: str) -> List[str]:
    """Export to JSON, or to one CSV file per table when FILE ends in .csv."""
    if filename.lower().endswith('.csv'):
        return CSVReporter(report).export(result, filename)
    return [export_to_file(result, filename)]


def describe_target(args: argparse.Namespace) -> str:
    if args.report == 'pr':
        return f"PRs by {args.user} in {args.owner}/{args.repo}"
    if args.report == 'repo':
        return f"stats for {args.owner}/{args.repo}"
    scope = f" in org(s): {args.org}" if args.org else " across all repositories"
    return f"PRs and issues by {args.user}{scope}"


def main(argv: Optional[List[str]] = None) -> int:
    """
    Main application entry point.

    Returns:
        Exit code (0 for success, 1 for error, 130 when interrupted)
    """
    logger = logging.getLogger(__name__)

    try:
        load_dotenv()
        args = parse_arguments(argv)

        if args.debug:
            log_level = "DEBUG"
        elif args.quiet:
            log_level = "ERROR"
        elif args.verbose:
            log_level = "INFO"
        else:
            log_level = "WARNING"

        setup_logging(log_level, args.verbose)

        try:
            validate_inputs(args)
        except ValueError as e:
            print_error(str(e))
            return 1

        try:
            client = GitHubClient(GitHubClient.get_token(args.token))
        except GitHubAuthenticationError as e:
            logger.error(f"GitHub authentication failed: {e}")
            print_error(str(e))
            return 1

        info = (lambda message: None) if args.quiet else print_info
        progress = None if args.quiet else print_progress

        info(f"Fetching {describe_target(args)}...")

        try:
            result = run_report(args, client, progress)
        except (GitHubAPIError, AnalysisError) as e:
            if progress:
                err_console.print()
            logger.error(f"Analysis failed: {e}")
            print_error(str(e))
            return 1

        if progress and args.report != 'repo':
            err_console.print()

        if result is None:
            if args.report == 'repo':
                info("GitHub is computing stats. Please try again in a few seconds.")
            elif args.report == 'pr':
                info(f"No PRs found for user {args.user}")
            else:
                info(f"No PRs or issues found for user {args.user}")
            return 0

        output_result(result, args.report, args.format)

        if args.export:
            try:
                written = export_result(result, args.report, args.export)
            except (CSVReportError, OSError) as e:
                logger.error(f"Export failed: {e}")
                print_error(f"Failed to export results: {e}")
                return 1
            if not args.quiet:
                print_success(f"Data exported to {', '.join(written)}")

        logger.info("Analysis completed successfully")
        return 0

    except KeyboardInterrupt:
        print_error("Analysis interrupted by user")
        return 130

    except Exception as e:
        logger.debug("Unexpected error", exc_info=True)
        print_error(f"Unexpected error occurred: {e}")
        print_info("Run with --debug for detailed error information")
        return 1


if __name__ == "__main__":
    sys.exit(main())
