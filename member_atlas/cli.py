"""
member_atlas/cli.py — Command-line interface for the member dashboard backend.

Usage:
    python -m member_atlas refresh              # reload members from Firestore
    python -m member_atlas refresh --activity   # ... and rebuild GitHub activity
    python -m member_atlas dashboard            # dashboard view
    python -m member_atlas analytics            # analytics view
    python -m member_atlas member <ID>          # one member + live GitHub detail
    python -m member_atlas cache status         # persisted cache state
    python -m member_atlas cache clear          # drop the persisted cache
    python -m member_atlas export               # Markdown report + members CSV

All commands read GITHUB_TOKEN and ADMIN_EMAIL from .env in the repo root (or
the path given by --env-file) before falling back to the environment.
Members come from Firestore unless --members-json points at an export.
"""

from __future__ import annotations

import argparse
import json
import logging
import os
import sys
from dataclasses import asdict
from datetime import datetime
from pathlib import Path

from member_atlas.config import DEFAULT_CONFIG, load_credentials
from member_atlas.context import AppContext
from member_atlas.storage.kv_store import FileKeyValueStore
from member_atlas.storage.member_cache import MemberCache
from member_atlas.storage.member_source import (
    FirestoreMemberSource,
    JsonMemberSource,
    MemberSource,
)


# ── .env loader (stdlib only, no python-dotenv) ────────────────────────

def _load_dotenv(env_file: str | None = None) -> dict[str, str]:
    """Load key=value pairs from a .env file into the environment.

    Existing environment values are NOT overwritten. Returns the dict of
    values that were newly loaded.

    Args:
        env_file: Explicit path. If None, searches for .env starting from the
                  repo root up to the filesystem root.
    """
    if env_file is None:
        start = Path(__file__).parent.parent
        for directory in [start, *start.parents]:
            candidate = directory / ".env"
            if candidate.is_file():
                env_file = str(candidate)
                break

    if not env_file or not Path(env_file).is_file():
        return {}

    loaded: dict[str, str] = {}
    with open(env_file, encoding="utf-8") as fh:
        for raw_line in fh:
            line = raw_line.strip()
            if not line or line.startswith("#") or "=" not in line:
                continue
            key, _, value = line.partition("=")
            key = key.strip()
            value = value.strip()
            if len(value) >= 2 and value[0] == value[-1] and value[0] in ('"', "'"):
                value = value[1:-1]
            if key and key not in os.environ:
                os.environ[key] = value
                loaded[key] = value

    return loaded


# ── Logging setup ─────────────────────────────────────────────────────────────

def _setup_logging(level: str = "INFO") -> None:
    numeric = getattr(logging, level.upper(), logging.INFO)
    fmt = "%(asctime)s  %(levelname)-8s  %(name)s — %(message)s"
    logging.basicConfig(level=numeric, format=fmt, datefmt="%H:%M:%S", stream=sys.stderr)
    logging.getLogger("urllib3").setLevel(logging.WARNING)
    logging.getLogger("urllib.request").setLevel(logging.WARNING)
    logging.getLogger("google").setLevel(logging.WARNING)


logger = logging.getLogger("member_atlas.cli")


# ── Shared setup ──────────────────────────────────────────────────────────────

def _bootstrap(args: argparse.Namespace) -> tuple[AppContext, MemberSource, MemberCache]:
    """Load .env, configure logging and build context, source and cache."""
    _load_dotenv(args.env_file)
    _setup_logging(args.log_level)

    ctx = AppContext(credentials=load_credentials(github_token=args.token))
    if args.members_json:
        source: MemberSource = JsonMemberSource(args.members_json)
    else:
        source = FirestoreMemberSource(
            collection=ctx.config.members_collection, project=args.project
        )
    store = FileKeyValueStore(args.cache_dir or ctx.config.cache_dir)
    return ctx, source, MemberCache(ctx, source, store)


def _print_json(payload) -> None:
    print(json.dumps(payload, indent=2, default=str))


def _rule(title: str) -> None:
    print()
    print("=" * 60)
    print(f"  {title}")
    print("=" * 60)


def _print_leaderboard(title: str, entries, unit: str) -> None:
    from member_atlas.reports.formatting import format_number

    print(f"\n  {title}:")
    if not entries:
        print("    (no data)")
        return
    for rank, entry in enumerate(entries, start=1):
        print(f"    #{rank:<3} {entry.name:<30} {format_number(entry.value):>10} {unit}")


# ── Subcommand: refresh ───────────────────────────────────────────────────────

def cmd_refresh(args: argparse.Namespace) -> int:
    """Reload members from the document store; optionally rebuild activity."""
    ctx, source, cache = _bootstrap(args)
    from member_atlas.ingestion.activity import refresh_member_activity

    members = cache.load(force_refresh=True)
    outcome = cache.last_outcome.value if cache.last_outcome else "?"

    _rule("MEMBER ATLAS — REFRESH")
    print(f"  Members          : {len(members)}")
    print(f"  Source           : {outcome}")
    print(f"  GitHub token     : {'present' if ctx.credentials.has_token else 'ABSENT'}")

    if args.activity:
        summary = refresh_member_activity(ctx, cache, source, args.member or None)
        print(f"  Refreshed        : {len(summary.refreshed)}")
        print(f"  Partial          : {len(summary.partial)}")
        print(f"  Skipped          : {len(summary.skipped)}")
        print(f"  Failed           : {len(summary.failed)}")
        for member_id, reason in list(summary.failed.items())[:10]:
            print(f"    [{member_id}] {reason}")
    print("=" * 60)
    return 0 if outcome != "empty_fallback" else 1


# ── Subcommand: dashboard ─────────────────────────────────────────────────────

def cmd_dashboard(args: argparse.Namespace) -> int:
    ctx, _, cache = _bootstrap(args)
    from member_atlas.pipeline import build_dashboard_view
    from member_atlas.reports.formatting import format_number

    view = build_dashboard_view(cache.load(), ctx.config)
    if args.json:
        _print_json(asdict(view))
        return 0

    s = view.summary
    _rule("MEMBER ATLAS — DASHBOARD")
    print(f"  Total members    : {format_number(s.total_members)}")
    print(f"  Total repos      : {format_number(s.total_repos)}")
    print(f"  Total stars      : {format_number(s.total_stars)}")
    print(f"  Pull requests    : {format_number(s.total_prs)}")
    print(f"  Commits          : {format_number(s.total_commits)}")
    print(f"\n  Pull requests, last {len(view.trend_counts)} days:")
    for label, count in zip(view.trend_labels, view.trend_counts):
        print(f"    {label:<8} {'#' * min(count, 50)} {count}")
    _print_leaderboard("Top committers", view.top_committers, "commits")
    print("=" * 60)
    return 0


# ── Subcommand: analytics ─────────────────────────────────────────────────────

def cmd_analytics(args: argparse.Namespace) -> int:
    ctx, _, cache = _bootstrap(args)
    from member_atlas.ingestion.activity import backfill_public_repos
    from member_atlas.pipeline import build_analytics_view
    from member_atlas.reports.formatting import format_language_value, format_number

    members = cache.load()
    fallback = backfill_public_repos(ctx, members) if args.backfill else None
    view = build_analytics_view(members, ctx.config, fallback)
    if args.json:
        _print_json(asdict(view))
        return 0

    st = view.stats
    r = view.repositories
    p = view.pull_requests
    _rule("MEMBER ATLAS — ANALYTICS")
    print(f"  Connected members: {format_number(st.connected_members)}")
    print(f"  Repos (total/avg): {format_number(st.total_repos)} / {format_number(st.avg_repos)}")
    print(f"  Stars (total/avg): {format_number(st.total_stars)} / {format_number(st.avg_stars)}")
    print(f"  PRs (total/avg)  : {format_number(st.total_prs)} / {format_number(st.avg_prs)}")
    print(f"  Commits          : {format_number(st.total_commits)}")
    print(f"  Issues           : {format_number(st.total_issues)}")
    print(f"  Forks            : {format_number(st.total_forks)}")
    print(f"\n  Repositories     : {format_number(r.public)} public, {format_number(r.private)} private, "
          f"{format_number(r.stars)} stars, {format_number(r.forks)} forks")
    print(f"  Pull requests    : {format_number(p.total)} total, {format_number(p.open)} open, "
          f"{format_number(p.merged)} merged, {format_number(p.closed)} closed")

    print("\n  Languages:")
    if not view.languages.has_data:
        print("    (no language data)")
    for label, value in zip(view.languages.labels, view.languages.values):
        print(f"    {label:<20} {format_language_value(value, view.languages.is_bytes)}")

    _print_leaderboard("Top committers", view.top_committers, "commits")
    _print_leaderboard("Top PR creators", view.top_pr_creators, "PRs")
    _print_leaderboard("Top contributors", view.top_contributors, "contributions")
    print("=" * 60)
    return 0


# ── Subcommand: member ────────────────────────────────────────────────────────

def cmd_member(args: argparse.Namespace) -> int:
    ctx, _, cache = _bootstrap(args)
    from member_atlas.ingestion.activity import fetch_member_details
    from member_atlas.reports.formatting import (
        format_date,
        format_datetime,
        format_number,
        member_display_name,
        member_email,
        member_phone,
    )

    cache.load()
    member = cache.get_member_by_id(args.member_id)
    if member is None:
        print(f"Member '{args.member_id}' not found.", file=sys.stderr)
        return 1

    detail = fetch_member_details(ctx, member) if not args.offline else None
    if args.json:
        payload = {"member": member.to_document()}
        if detail is not None:
            payload["github"] = {
                "profile": asdict(detail.profile) if detail.profile else None,
                "repositories": [asdict(x) for x in detail.repositories],
                "pull_requests": [asdict(x) for x in detail.pull_requests],
                "commits": [asdict(x) for x in detail.commits],
            }
        _print_json(payload)
        return 0

    _rule(f"MEMBER — {member_display_name(member)}")
    print(f"  Email            : {member_email(member)}")
    print(f"  Phone            : {member_phone(member)}")
    print(f"  Joined           : {format_date(member.joined_at)}")
    print(f"  Last updated     : {format_datetime(member.last_updated)}")
    print(f"  GitHub           : {member.github_username or 'N/A'}"
          f" ({'connected' if member.github_connected else 'not connected'})")
    a = member.activity
    if a is not None:
        print(f"  Stored activity  : {format_number(a.pull_requests)} PRs "
              f"({format_number(a.open_prs)} open, {format_number(a.merged_prs)} merged, "
              f"{format_number(a.closed_prs)} closed), {format_number(a.commits)} commits, "
              f"{format_number(a.issues)} issues")

    if detail is not None and detail.profile is not None:
        prof = detail.profile
        print(f"\n  Profile          : {prof.html_url}")
        print(f"  Public repos     : {format_number(prof.public_repos)}")
        print(f"  Followers        : {format_number(prof.followers)} / following {format_number(prof.following)}")
        print(f"  Repositories     : {len(detail.repositories)} listed, "
              f"{format_number(detail.repo_stars)} stars, {format_number(detail.repo_forks)} forks")
        print(f"  Pull requests    : {detail.open_prs} open, {detail.merged_prs} merged, "
              f"{detail.closed_prs} closed")
        print("\n  Recent commits:")
        for commit in detail.commits[:20]:
            print(f"    {commit.sha[:7]} {commit.repository:<30} {commit.message[:60]}")
        if not detail.commits:
            print("    (none)")
    print("=" * 60)
    return 0


# ── Subcommand: cache ─────────────────────────────────────────────────────────

def cmd_cache(args: argparse.Namespace) -> int:
    ctx, _, cache = _bootstrap(args)

    if args.action == "clear":
        cache.clear()
        print("Member cache cleared.")
        return 0

    cached_ms = cache.cached_at_ms()
    print("\nMember Atlas — Cache Status")
    print("=" * 40)
    print(f"  Valid          : {'✓ yes' if cache.is_valid() else '✗ no'}")
    if cached_ms:
        fetched = datetime.fromtimestamp(cached_ms / 1000)
        age_hours = (ctx.clock() * 1000 - cached_ms) / 3_600_000
        print(f"  Fetched at     : {fetched.strftime('%Y-%m-%d %H:%M:%S')}")
        print(f"  Age            : {age_hours:.1f} h (no expiry — refresh manually)")
    print(f"  Directory      : {args.cache_dir or ctx.config.cache_dir}")
    print()
    return 0


# ── Subcommand: export ────────────────────────────────────────────────────────

def cmd_export(args: argparse.Namespace) -> int:
    ctx, _, cache = _bootstrap(args)
    from member_atlas.pipeline import run_report
    from member_atlas.reports.dashboard_report import export_members_csv, export_report_markdown

    stamp = datetime.now().strftime("%Y%m%d_%H%M%S")
    out_dir = args.output_dir
    report_path = os.path.join(out_dir, f"dashboard_{stamp}.md")
    csv_path = os.path.join(out_dir, f"members_{stamp}.csv")

    report = run_report(ctx, cache, force_refresh=args.refresh, backfill=args.backfill)
    export_report_markdown(report, report_path)
    export_members_csv(cache.get(), csv_path)

    _rule("MEMBER ATLAS — EXPORT COMPLETE")
    print(f"  Members          : {report.member_count}")
    print(f"  Report           : {report_path}")
    print(f"  Members CSV      : {csv_path}")
    print("=" * 60)
    return 0


# ── Argument parser ───────────────────────────────────────────────────────────

def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        prog="member-atlas",
        description=(
            "Member Atlas — member directory and GitHub activity analytics.\n"
            "Reads GITHUB_TOKEN and ADMIN_EMAIL from .env automatically."
        ),
        formatter_class=argparse.RawDescriptionHelpFormatter,
        epilog="""
Examples:
  # Reload members from Firestore and rebuild everyone's GitHub activity
  member-atlas refresh --activity

  # Dashboard from the cached collection, as JSON
  member-atlas dashboard --json

  # Analytics using a local JSON export instead of Firestore
  member-atlas --members-json members.json analytics

  # One member's live GitHub detail
  member-atlas member abc123

  # Inspect or drop the persisted cache
  member-atlas cache status
  member-atlas cache clear
        """,
    )

    # Global flags
    parser.add_argument(
        "--env-file", default=None, metavar="PATH",
        help="Path to .env file (default: auto-detect .env in repo root)",
    )
    parser.add_argument(
        "--token", default=None, metavar="GITHUB_TOKEN",
        help="GitHub personal access token (overrides .env and environment)",
    )
    parser.add_argument(
        "--members-json", default=None, metavar="PATH",
        help="Read members from a JSON export instead of Firestore",
    )
    parser.add_argument(
        "--project", default=None, metavar="GCP_PROJECT",
        help="Google Cloud project for Firestore (default: from credentials)",
    )
    parser.add_argument(
        "--cache-dir", default=None, metavar="PATH",
        help=f"Persisted cache directory (default: {DEFAULT_CONFIG.cache_dir})",
    )
    parser.add_argument(
        "--log-level", default="INFO",
        choices=["DEBUG", "INFO", "WARNING", "ERROR"],
        help="Log level (default: INFO)",
    )

    subparsers = parser.add_subparsers(dest="command", metavar="COMMAND")
    subparsers.required = True

    # refresh
    p_refresh = subparsers.add_parser(
        "refresh", help="Reload members from the document store (bypasses the cache)",
    )
    p_refresh.add_argument(
        "--activity", action="store_true",
        help="Also rebuild GitHub activity snapshots and write them back",
    )
    p_refresh.add_argument(
        "--member", action="append", default=[], metavar="ID",
        help="Restrict --activity to this member id (repeatable)",
    )
    p_refresh.set_defaults(func=cmd_refresh)

    # dashboard
    p_dash = subparsers.add_parser("dashboard", help="Headline counts, PR trend, top committers")
    p_dash.add_argument("--json", action="store_true", help="Print JSON instead of text")
    p_dash.set_defaults(func=cmd_dashboard)

    # analytics
    p_ana = subparsers.add_parser("analytics", help="Activity stats, languages and leaderboards")
    p_ana.add_argument("--json", action="store_true", help="Print JSON instead of text")
    p_ana.add_argument(
        "--backfill", action="store_true",
        help="Look up public repo counts missing from stored activity (GitHub calls)",
    )
    p_ana.set_defaults(func=cmd_analytics)

    # member
    p_member = subparsers.add_parser("member", help="One member's record and live GitHub detail")
    p_member.add_argument("member_id", metavar="ID")
    p_member.add_argument("--json", action="store_true", help="Print JSON instead of text")
    p_member.add_argument("--offline", action="store_true", help="Skip GitHub calls")
    p_member.set_defaults(func=cmd_member)

    # cache
    p_cache = subparsers.add_parser("cache", help="Inspect or clear the persisted member cache")
    p_cache.add_argument("action", choices=["status", "clear"])
    p_cache.set_defaults(func=cmd_cache)

    # export
    p_export = subparsers.add_parser("export", help="Write the Markdown report and members CSV")
    p_export.add_argument(
        "--output-dir", default="exports", metavar="PATH",
        help="Output directory (default: exports/)",
    )
    p_export.add_argument("--refresh", action="store_true", help="Reload members first")
    p_export.add_argument(
        "--backfill", action="store_true",
        help="Look up public repo counts missing from stored activity",
    )
    p_export.set_defaults(func=cmd_export)

    return parser


def main(argv: list[str] | None = None) -> int:
    parser = build_parser()
    args = parser.parse_args(argv)
    return args.func(args)


if __name__ == "__main__":
    sys.exit(main())
