import write_summary
from write_summary import newest_items, read_run_log, render, table_cell


LOG = """\
[INFO] Loaded 3 repositories from repos.json
[HEALTH] OK name="acme/a" stage=fetch items=4
[HEALTH] FAIL name="acme/b" stage=fetch error="GitHub API request failed for acme/b: 404 Not Found"
[HEALTH] OK name="acme/c" stage=fetch items=1
[INFO] RSS feed written to docs/feed.xml
[SUMMARY] Wrote 5 items from 2/3 repositories
[WARN] Some repositories could not be processed:
[WARN] - acme/b: GitHub API request failed for acme/b: 404 Not Found
"""

FEED = """<?xml version="1.0" encoding="UTF-8"?>
<rss version="2.0">
  <channel>
    <title>t</title>
    <item>
      <title>acme/a v2.0.0 | big</title>
      <link>https://github.com/acme/a/releases/tag/v2.0.0</link>
      <pubDate>Wed, 01 May 2024 12:00:00 GMT</pubDate>
      <source url="https://github.com/acme/a">acme/a</source>
    </item>
    <item>
      <title>acme/c v1.1.0</title>
      <link>https://github.com/acme/c/releases/tag/v1.1.0</link>
      <source url="https://github.com/acme/c">acme/c</source>
    </item>
  </channel>
</rss>
"""


def test_read_run_log(tmp_path):
    log = tmp_path / "run_multi.log"
    log.write_text(LOG, encoding="utf-8")
    report = read_run_log(log)
    assert (report["items"], report["repos_ok"], report["repos_total"]) == (5, 2, 3)
    assert report["failed"] == 1
    assert report["failures"] == ["`fetch` acme/b: GitHub API request failed for acme/b: 404 Not Found"]


def test_read_run_log_missing_file(tmp_path):
    report = read_run_log(tmp_path / "missing.log")
    assert report["repos_total"] == 0
    assert report["failures"] == []


def test_newest_items(tmp_path):
    feed = tmp_path / "feed.xml"
    feed.write_text(FEED, encoding="utf-8")
    items = newest_items(feed, 5)
    assert [it["repo"] for it in items] == ["acme/a", "acme/c"]
    assert items[1]["date"] == ""
    assert newest_items(feed, 1)[0]["title"] == "acme/a v2.0.0 | big"

    broken = tmp_path / "broken.xml"
    broken.write_text("<rss><channel>", encoding="utf-8")
    assert newest_items(broken, 5) == []
    assert newest_items(tmp_path / "missing.xml", 5) == []


def test_table_cell():
    assert table_cell("a |\n b\t c") == "a \\| b c"


def test_render_table_and_failures():
    report = {"items": 5, "repos_ok": 2, "repos_total": 3, "failed": 1, "failures": ["`fetch` acme/b: 404"]}
    items = [{"title": "acme/a v2.0.0 | big", "link": "https://x/y", "date": "", "repo": "acme/a"}]
    md = render(report, items)
    assert "**Feed items: 5** (repositories OK: 2 / 3)" in md
    assert "| 1 | acme/a | [acme/a v2.0.0 \\| big](https://x/y) | - |" in md
    assert "- `fetch` acme/b: 404" in md


def test_render_without_summary_line():
    report = {"items": 0, "repos_ok": 0, "repos_total": 0, "failed": 0, "failures": []}
    assert "No summary line found" in render(report, [])


def test_main_appends_to_step_summary(tmp_path, monkeypatch):
    log = tmp_path / "run_multi.log"
    log.write_text(LOG, encoding="utf-8")
    feed = tmp_path / "feed.xml"
    feed.write_text(FEED, encoding="utf-8")
    summary = tmp_path / "summary.md"
    summary.write_text("existing\n", encoding="utf-8")

    monkeypatch.setattr(write_summary, "LOG_PATH", log)
    monkeypatch.setattr(write_summary, "FEED_PATH", feed)
    monkeypatch.setenv("GITHUB_STEP_SUMMARY", str(summary))

    write_summary.main()

    text = summary.read_text(encoding="utf-8")
    assert text.startswith("existing\n## Release feed: run summary")
    assert "acme/c v1.1.0" in text
