#!/usr/bin/env python3
"""Append a Markdown run report for the release feed to the Actions job summary.

Reads run_multi.log ([SUMMARY] / [HEALTH] lines written by run_multi.py) and the
newest entries of the generated feed. Falls back to stdout when
$GITHUB_STEP_SUMMARY is not set, so it can be tried locally.
"""

import os
import re
import sys
import xml.etree.ElementTree as ET
from pathlib import Path

LOG_PATH = Path("run_multi.log")
FEED_PATH = Path(os.environ.get("FEED_OUTPUT", "docs/feed.xml"))
MAX_ITEMS = 5
MAX_FAIL_DETAILS = 5

SUMMARY_RE = re.compile(r"^\[SUMMARY\] Wrote (\d+) items from (\d+)/(\d+) repositories")
HEALTH_RE = re.compile(r'^\[HEALTH\] (OK|FAIL) name="([^"]+)" stage=(\w+)(?: error="(.*)")?')


def read_run_log(log_path: Path) -> dict:
    """Collect counters from one run log.

    Keys: items, repos_ok, repos_total (from [SUMMARY]; 0 when the run never got
    that far), failed (count of [HEALTH] FAIL lines), failures (first few as
    '`stage` owner/name: message').
    """
    report = {"items": 0, "repos_ok": 0, "repos_total": 0, "failed": 0, "failures": []}
    try:
        text = log_path.read_text(encoding="utf-8", errors="replace")
    except OSError:
        return report

    for line in text.splitlines():
        summary = SUMMARY_RE.match(line)
        if summary:
            report["items"], report["repos_ok"], report["repos_total"] = map(int, summary.groups())
            continue

        health = HEALTH_RE.match(line)
        if health is None or health.group(1) != "FAIL":
            continue
        report["failed"] += 1
        if len(report["failures"]) < MAX_FAIL_DETAILS:
            _, name, stage, error = health.groups()
            report["failures"].append(f"`{stage}` {name}" + (f": {error}" if error else ""))

    return report


def newest_items(feed_path: Path, limit: int) -> list[dict]:
    """First `limit` <item> entries of the feed; [] when it is missing or broken."""
    try:
        channel = ET.parse(feed_path).getroot().find("channel")
    except (OSError, ET.ParseError):
        return []
    if channel is None:
        return []

    return [
        {
            "title": (node.findtext("title") or "").strip(),
            "link": (node.findtext("link") or "").strip(),
            "date": (node.findtext("pubDate") or "").strip(),
            "repo": (node.findtext("source") or "").strip(),
        }
        for node in channel.findall("item")[:limit]
    ]


def table_cell(value: str) -> str:
    # one line per cell; a bare pipe would split the column
    return " ".join(value.split()).replace("|", r"\|")


def render(report: dict, items: list[dict]) -> str:
    out = ["## Release feed: run summary", ""]

    if report["repos_total"]:
        out.append(
            f"**Feed items: {report['items']}** "
            f"(repositories OK: {report['repos_ok']} / {report['repos_total']})"
        )
    else:
        out.append("**No summary line found in `run_multi.log` (the run may have failed early).**")

    if items:
        out += [
            "",
            f"### Newest releases (top {len(items)})",
            "",
            "| # | Repository | Release | Published |",
            "|---|------------|---------|-----------|",
        ]
        for n, item in enumerate(items, 1):
            title = table_cell(item["title"]) or "(untitled)"
            if len(title) > 60:
                title = title[:57] + "..."
            link = table_cell(item["link"])
            release = f"[{title}]({link})" if link else title
            out.append(f"| {n} | {table_cell(item['repo'])} | {release} | {table_cell(item['date']) or '-'} |")

    if report["failed"]:
        out += ["", f"<details><summary>Failed repositories: {report['failed']}</summary>", ""]
        out += [f"- {line}" for line in report["failures"]]
        out += ["", "</details>"]

    return "\n".join(out) + "\n"


def main() -> None:
    report = read_run_log(LOG_PATH)
    # Only read the feed when this run reached [SUMMARY] (avoids reporting a stale file)
    items = newest_items(FEED_PATH, MAX_ITEMS) if report["repos_total"] else []
    md = render(report, items)

    target = os.environ.get("GITHUB_STEP_SUMMARY")
    if not target:
        sys.stdout.write(md)
        return
    with open(target, "a", encoding="utf-8") as f:
        f.write(md)


if __name__ == "__main__":
    main()
