"""
member_atlas/reports/dashboard_report.py — Markdown and CSV exports.

    export_report_markdown — the dashboard and analytics views of an
                             AtlasReport as one Markdown document
    members_frame          — one row per member with contact details and
                             activity counts (pandas DataFrame)
    export_members_csv     — members_frame() written to CSV

Writes go through a ``.tmp`` file and os.replace() so a half-written export
never replaces a good one.
"""

import logging
import os
from typing import Optional

import pandas as pd

from member_atlas.metrics.leaderboards import LeaderboardEntry
from member_atlas.models import MemberRecord
from member_atlas.pipeline import AtlasReport
from member_atlas.reports.formatting import (
    NOT_AVAILABLE,
    format_date,
    format_language_value,
    format_number,
    member_display_name,
    member_email,
    member_phone,
)

logger = logging.getLogger(__name__)

MEMBER_CSV_COLUMNS = [
    "ID",
    "Name",
    "Email",
    "Phone",
    "GitHub",
    "Connected",
    "Public Repos",
    "Private Repos",
    "Stars",
    "Forks",
    "Pull Requests",
    "Commits",
    "Issues",
    "Joined",
]


def _write_atomic(path: str, content: str) -> None:
    directory = os.path.dirname(path)
    if directory:
        os.makedirs(directory, exist_ok=True)
    tmp = path + ".tmp"
    with open(tmp, "w", encoding="utf-8", newline="") as fh:
        fh.write(content)
    os.replace(tmp, path)


def _leaderboard_table(entries: list[LeaderboardEntry], value_label: str) -> list[str]:
    if not entries:
        return ["_No data available._", ""]
    detail_keys = list(entries[0].details.keys())
    header = ["#", "Member", value_label] + [k.capitalize() for k in detail_keys]
    lines = [
        "| " + " | ".join(header) + " |",
        "|" + "|".join("---" for _ in header) + "|",
    ]
    for rank, entry in enumerate(entries, start=1):
        cells = [str(rank), entry.name, format_number(entry.value)]
        cells += [format_number(entry.details.get(k)) for k in detail_keys]
        lines.append("| " + " | ".join(cells) + " |")
    lines.append("")
    return lines


def export_report_markdown(report: AtlasReport, output_path: Optional[str] = None) -> str:
    """
    Render an AtlasReport as Markdown.

    Structure:
        # Member Atlas — Dashboard Report
        ## Dashboard            headline counts + PR trend table
        ## Activity Statistics  totals and averages
        ## Repositories / ## Pull Requests
        ## Languages
        ## Top Committers / ## Top PR Creators / ## Top Contributors

    Args:
        report:      Output of pipeline.run_report().
        output_path: When given, the document is also written there.

    Returns:
        The Markdown document.
    """
    dash = report.dashboard
    ana = report.analytics
    s = dash.summary
    st = ana.stats
    lines: list[str] = []

    # ── Title ─────────────────────────────────────────────────────────────────
    lines += [
        "# Member Atlas — Dashboard Report",
        "",
        f"**Generated:** {report.generated_at} | **Members:** {report.member_count} "
        f"| **Data source:** {report.cache_outcome or NOT_AVAILABLE}",
        "",
        "---",
        "",
    ]

    # ── Dashboard ─────────────────────────────────────────────────────────────
    lines += [
        "## Dashboard",
        "",
        "| Metric | Value |",
        "|--------|-------|",
        f"| Total Members | {format_number(s.total_members)} |",
        f"| Total Repositories | {format_number(s.total_repos)} |",
        f"| Total Stars | {format_number(s.total_stars)} |",
        f"| Total Pull Requests | {format_number(s.total_prs)} |",
        f"| Total Commits | {format_number(s.total_commits)} |",
        "",
        f"### Pull Requests — last {len(dash.trend_counts)} days",
        "",
        "| Day | Pull Requests |",
        "|-----|---------------|",
    ]
    lines += [
        f"| {label} | {count} |"
        for label, count in zip(dash.trend_labels, dash.trend_counts)
    ]
    lines.append("")

    # ── Activity statistics ───────────────────────────────────────────────────
    lines += [
        "## Activity Statistics",
        "",
        "| Metric | Value |",
        "|--------|-------|",
        f"| Connected Members | {format_number(st.connected_members)} |",
        f"| Total Repositories | {format_number(st.total_repos)} |",
        f"| Total Stars | {format_number(st.total_stars)} |",
        f"| Total Forks | {format_number(st.total_forks)} |",
        f"| Total Pull Requests | {format_number(st.total_prs)} |",
        f"| Total Commits | {format_number(st.total_commits)} |",
        f"| Total Issues | {format_number(st.total_issues)} |",
        f"| Avg Repositories / Member | {format_number(st.avg_repos)} |",
        f"| Avg Stars / Member | {format_number(st.avg_stars)} |",
        f"| Avg Pull Requests / Member | {format_number(st.avg_prs)} |",
        "",
    ]

    # ── Repositories & pull requests ──────────────────────────────────────────
    r = ana.repositories
    p = ana.pull_requests
    lines += [
        "## Repositories",
        "",
        "| Public | Private | Stars | Forks | Pull Requests | Commits |",
        "|--------|---------|-------|-------|---------------|---------|",
        f"| {format_number(r.public)} | {format_number(r.private)} | {format_number(r.stars)} "
        f"| {format_number(r.forks)} | {format_number(r.prs)} | {format_number(r.commits)} |",
        "",
        "## Pull Requests",
        "",
        "| Total | Open | Merged | Closed |",
        "|-------|------|--------|--------|",
        f"| {format_number(p.total)} | {format_number(p.open)} | {format_number(p.merged)} "
        f"| {format_number(p.closed)} |",
        "",
    ]

    # ── Languages ─────────────────────────────────────────────────────────────
    lang = ana.languages
    lines += ["## Languages", ""]
    if lang.labels:
        total = sum(lang.values)
        lines += ["| Language | Share | Amount |", "|----------|-------|--------|"]
        for label, value in zip(lang.labels, lang.values):
            share = (value / total * 100) if total > 0 else 0.0
            lines.append(f"| {label} | {share:.1f}% | {format_language_value(value, lang.is_bytes)} |")
        lines.append("")
    else:
        lines += ["_No language data available._", ""]

    # ── Leaderboards ──────────────────────────────────────────────────────────
    lines += ["## Top Committers", ""] + _leaderboard_table(ana.top_committers, "Commits")
    lines += ["## Top PR Creators", ""] + _leaderboard_table(ana.top_pr_creators, "Pull Requests")
    lines += ["## Top Contributors", ""] + _leaderboard_table(ana.top_contributors, "Contributions")

    document = "\n".join(lines)
    if output_path:
        _write_atomic(output_path, document)
        logger.info("Dashboard report written to %s", output_path)
    return document


def members_frame(members: list[MemberRecord]) -> pd.DataFrame:
    """One row per member; absent counts are 0, absent text is 'N/A'."""
    rows = []
    for m in members:
        a = m.activity
        rows.append({
            "ID": m.id,
            "Name": member_display_name(m),
            "Email": member_email(m),
            "Phone": member_phone(m),
            "GitHub": m.github_username or NOT_AVAILABLE,
            "Connected": "Yes" if m.github_connected else "No",
            "Public Repos": (a.public_repos or 0) if a else 0,
            "Private Repos": (a.private_repos or 0) if a else 0,
            "Stars": (a.total_stars or 0) if a else 0,
            "Forks": (a.total_forks or 0) if a else 0,
            "Pull Requests": (a.pull_requests or 0) if a else 0,
            "Commits": (a.commits or 0) if a else 0,
            "Issues": (a.issues or 0) if a else 0,
            "Joined": format_date(m.joined_at),
        })
    return pd.DataFrame(rows, columns=MEMBER_CSV_COLUMNS)


def export_members_csv(members: list[MemberRecord], output_path: str) -> pd.DataFrame:
    """Write members_frame(members) to *output_path* and return the frame."""
    df = members_frame(members)
    _write_atomic(output_path, df.to_csv(index=False))
    logger.info("Exported %d members to %s", len(df), output_path)
    return df
