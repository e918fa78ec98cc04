"""
member_atlas.reports — Human-readable output.

Modules:
    formatting        — Number, byte, date and member-field display helpers.
    dashboard_report  — Markdown dashboard report and members CSV export.
"""
