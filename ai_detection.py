"""
AI co-authorship detection from commit messages.

A commit counts as AI-assisted when its message carries a Co-Authored-By
trailer naming a known assistant, or one of the bracketed AI tags.
"""

import re
from collections import Counter
from dataclasses import dataclass, field
from typing import Any, Dict, Iterable, List


AI_PATTERNS = [
    (re.compile(r'co-authored-by:.*claude', re.IGNORECASE), 'Claude'),
    (re.compile(r'co-authored-by:.*anthropic', re.IGNORECASE), 'Claude'),
    (re.compile(r'co-authored-by:.*copilot', re.IGNORECASE), 'GitHub Copilot'),
    (re.compile(r'co-authored-by:.*openai', re.IGNORECASE), 'OpenAI'),
    (re.compile(r'co-authored-by:.*chatgpt', re.IGNORECASE), 'ChatGPT'),
    (re.compile(r'co-authored-by:.*cursor', re.IGNORECASE), 'Cursor'),
    (re.compile(r'\[ai\]|\[ai-generated\]|\[copilot\]|\[claude\]', re.IGNORECASE), 'AI (tagged)'),
]


@dataclass
class AIDetection:
    """Outcome of scanning one or more commit messages."""
    is_ai_assisted: bool = False
    ai_tools: List[str] = field(default_factory=list)


def _merge_tools(tools: List[str], found: Iterable[str]) -> None:
    for tool in found:
        if tool not in tools:
            tools.append(tool)


def detect_ai_coauthorship(commit_message: str) -> AIDetection:
    """
    Scan a single commit message for AI trailers or tags.

    Args:
        commit_message: Full commit message including trailers

    Returns:
        AIDetection with tool names in pattern order, without duplicates
    """
    tools: List[str] = []
    if commit_message:
        _merge_tools(tools, (tool for pattern, tool in AI_PATTERNS if pattern.search(commit_message)))

    return AIDetection(is_ai_assisted=bool(tools), ai_tools=tools)


def detect_pr_ai_assistance(commits: List[Dict[str, Any]]) -> AIDetection:
    """
    Combine detection over every commit of a pull request.

    Args:
        commits: Commit objects as returned by the pulls commits endpoint

    Returns:
        AIDetection that is positive if any commit matched
    """
    tools: List[str] = []
    for commit in commits or []:
        message = (commit.get('commit') or {}).get('message') or ''
        _merge_tools(tools, detect_ai_coauthorship(message).ai_tools)

    return AIDetection(is_ai_assisted=bool(tools), ai_tools=tools)


def count_ai_tools(records: Iterable[Any]) -> Dict[str, int]:
    """Count how many AI-assisted PRs mention each tool."""
    counts = Counter()
    for record in records:
        if record.ai_assisted:
            counts.update(record.ai_tools)
    return dict(counts)
