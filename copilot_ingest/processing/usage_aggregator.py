"""Flatten daily Copilot metrics documents into usage summaries.

Counters are summed across documents that share a date. User counts take the
maximum, so an organization-level document and its team-level documents do
not count the same people twice. Breakdown rows are appended in input order
and never merged with each other, even when (language, editor) repeats.
"""

from typing import Dict, Iterable, List

from ..shared.models import MetricsRecord, UsageBreakdown, UsageSummary
from .identity import record_id


def summarize_document(document: MetricsRecord) -> UsageSummary:
    """
    Compute the usage contribution of a single metrics document.

    Args:
        document: Metrics for one day and one scope

    Returns:
        UsageSummary without an identifier
    """
    summary = UsageSummary(
        day=document.date,
        organization=document.organization,
        enterprise=document.enterprise,
        team=document.team,
    )

    # The code completions figure is more specific than the document total
    summary.total_active_users = document.total_engaged_users
    completions = document.copilot_ide_code_completions
    if completions is not None:
        summary.total_active_users = completions.total_engaged_users
        for editor in completions.editors:
            for model in editor.models:
                for language in model.languages:
                    summary.breakdown.append(UsageBreakdown(
                        day=document.date,
                        language=language.name,
                        editor=editor.name,
                        suggestions_count=language.total_code_suggestions,
                        acceptances_count=language.total_code_acceptances,
                        lines_suggested=language.total_code_lines_suggested,
                        lines_accepted=language.total_code_lines_accepted,
                        active_users=language.total_engaged_users,
                        organization=document.organization,
                        enterprise=document.enterprise,
                        team=document.team,
                    ))
                    summary.total_suggestions_count += language.total_code_suggestions
                    summary.total_acceptances_count += language.total_code_acceptances
                    summary.total_lines_suggested += language.total_code_lines_suggested
                    summary.total_lines_accepted += language.total_code_lines_accepted

    ide_chat = document.copilot_ide_chat
    if ide_chat is not None:
        summary.total_active_chat_users = ide_chat.total_engaged_users
        for editor in ide_chat.editors:
            for model in editor.models:
                summary.total_chat_turns += model.total_chats
                summary.total_chat_acceptances += model.total_chat_copy_events + model.total_chat_insertion_events

    # Web chat users are added on top of the IDE chat baseline
    web_chat = document.copilot_dotcom_chat
    if web_chat is not None and web_chat.total_engaged_users > 0:
        summary.total_active_chat_users += web_chat.total_engaged_users
        for model in web_chat.models:
            summary.total_chat_turns += model.total_chats

    return summary


def merge_summary(target: UsageSummary, contribution: UsageSummary) -> UsageSummary:
    """Fold a same-day contribution into ``target`` in place."""
    target.total_suggestions_count += contribution.total_suggestions_count
    target.total_acceptances_count += contribution.total_acceptances_count
    target.total_lines_suggested += contribution.total_lines_suggested
    target.total_lines_accepted += contribution.total_lines_accepted
    target.total_chat_acceptances += contribution.total_chat_acceptances
    target.total_chat_turns += contribution.total_chat_turns

    target.total_active_users = max(target.total_active_users, contribution.total_active_users)
    target.total_active_chat_users = max(target.total_active_chat_users, contribution.total_active_chat_users)

    target.breakdown.extend(contribution.breakdown)

    # A summary mixing several teams belongs to the enclosing scope
    if target.team != contribution.team:
        target.team = None
    return target


def aggregate_usage(documents: Iterable[MetricsRecord]) -> List[UsageSummary]:
    """
    Aggregate metrics documents into one usage summary per date.

    Args:
        documents: Metrics documents, e.g. the organization-level fetch
            followed by each team-level fetch

    Returns:
        Usage summaries sorted by day, each with its identifier assigned
    """
    by_day: Dict[str, UsageSummary] = {}

    for document in documents:
        contribution = summarize_document(document)
        existing = by_day.get(contribution.day)
        if existing is None:
            by_day[contribution.day] = contribution
        else:
            merge_summary(existing, contribution)

    summaries = sorted(by_day.values(), key=lambda summary: summary.day)
    for summary in summaries:
        summary.id = record_id(summary.day, summary.organization, summary.enterprise, summary.team)
    return summaries
