import os
import re
import html
from dataclasses import dataclass
from datetime import datetime, timezone
from typing import Optional

from bs4 import BeautifulSoup

from errors import ConfigError, WriteError


OUTPUT_FILE = os.environ.get("FEED_OUTPUT", os.path.join("docs", "feed.xml"))

# RSSの description に載せる要約の上限（文字数）。環境変数 SUMMARY_LIMIT で上書き
SUMMARY_LIMIT = 300

NO_NOTES_TEXT = "No release notes provided."
NO_NOTES_HTML = "<p>No release notes provided.</p>"

GENERATOR = "repo-release-feed"

EPOCH = datetime(1970, 1, 1, tzinfo=timezone.utc)


def env_int(key: str, default: int) -> int:
    """正の整数の環境変数を読む。不正値は ConfigError（main で [ERROR] として扱う）。"""
    raw = (os.environ.get(key) or "").strip()
    if not raw:
        return default
    try:
        value = int(raw)
    except ValueError:
        raise ConfigError(f"{key} must be a positive integer, got {raw!r}") from None
    if value < 1:
        raise ConfigError(f"{key} must be a positive integer, got {raw!r}")
    return value


def guess_base_url() -> str:
    site = (os.environ.get("SITE_URL") or "").strip()
    if site:
        return site.rstrip("/") + "/"
    # GitHub Actions では GITHUB_REPOSITORY=owner/repo が入る
    repo = os.environ.get("GITHUB_REPOSITORY", "")
    if repo and "/" in repo:
        owner, name = repo.split("/", 1)
        return f"https://{owner}.github.io/{name}/"
    return "http://localhost/"


@dataclass(frozen=True)
class FeedSettings:
    """Channel-level metadata, fixed for the whole run."""

    title: str = "Major & Minor Releases Feed"
    link: str = "http://localhost/"
    description: str = (
        "Aggregated RSS feed with the latest major/minor releases from selected GitHub repositories."
    )
    language: str = "en"
    generator: str = GENERATOR
    ttl: int = 60
    summary_limit: int = SUMMARY_LIMIT

    @classmethod
    def from_env(cls) -> "FeedSettings":
        defaults = cls()
        return cls(
            title=os.environ.get("FEED_TITLE", defaults.title),
            link=guess_base_url(),
            description=os.environ.get("FEED_DESCRIPTION", defaults.description),
            language=os.environ.get("FEED_LANGUAGE", defaults.language),
            ttl=env_int("FEED_TTL", defaults.ttl),
            summary_limit=env_int("SUMMARY_LIMIT", defaults.summary_limit),
        )


def feed_url(link: str) -> str:
    """サイトURLから自身のフィードURLを作る（区切りの / はちょうど1つ）。"""
    return link.rstrip("/") + "/feed.xml"


def rss_escape(s: str) -> str:
    return html.escape(sanitize_xml_10(s), quote=True)


def sanitize_xml_10(s: str) -> str:
    """XML 1.0で不正な制御文字を除去する（RSSパーサのエラー回避）"""
    if not s:
        return ""
    # 許可: TAB(0x09), LF(0x0A), CR(0x0D)
    return re.sub(r"[\x00-\x08\x0B\x0C\x0E-\x1F]", "", s)


def cdata_wrap(s: str) -> str:
    """CDATAを安全に包む。本文に ']]>' が含まれるとXMLが壊れるため分割する。"""
    s = sanitize_xml_10(s or "")
    return "<![CDATA[" + s.replace("]]>", "]]]]><![CDATA[>") + "]]>"


def format_rfc822(dt: datetime) -> str:
    return dt.astimezone(timezone.utc).strftime("%a, %d %b %Y %H:%M:%S GMT")


def summarize_html(body_html: str, limit: int = SUMMARY_LIMIT) -> str:
    """HTML本文からタグを除いた短い要約を作る。空なら固定文言。"""
    text = ""
    if body_html and body_html.strip():
        text = BeautifulSoup(body_html, "html.parser").get_text(separator=" ")
    text = re.sub(r"\s+", " ", text).strip()
    if not text:
        return NO_NOTES_TEXT
    if limit and len(text) > limit:
        return text[: limit - 1].rstrip() + "…"
    return text


def sort_key(item) -> datetime:
    return item.published_at or EPOCH


def cap_per_repository(groups: list) -> list:
    """groups: [(RepositoryTarget, [FeedItem, ...]), ...]

    リポジトリごとに API の並び（新しい順）で先頭 max_releases 件だけ残してから結合する。
    """
    merged = []
    for target, items in groups:
        merged.extend(items[: target.max_releases])
    return merged


def sort_items(items: list) -> list:
    # sorted は安定ソート（reverse=True でも同値の順序は保たれる）
    return sorted(items, key=sort_key, reverse=True)


def render_item(item, summary_limit: int = SUMMARY_LIMIT) -> str:
    is_permalink = "true" if item.html_url and item.id == item.html_url else "false"
    content = item.description_html if item.description_html.strip() else NO_NOTES_HTML

    lines = [
        "    <item>",
        f"      <title>{rss_escape(item.name)}</title>",
        f"      <link>{rss_escape(item.html_url)}</link>",
        f'      <guid isPermaLink="{is_permalink}">{rss_escape(item.id)}</guid>',
    ]
    # 日時が無い item は pubDate を出さない（毎回 now を入れると出力が揺れる）
    if item.published_at is not None:
        lines.append(f"      <pubDate>{format_rfc822(item.published_at)}</pubDate>")
    lines += [
        f"      <description>{rss_escape(summarize_html(item.description_html, summary_limit))}</description>",
        f"      <content:encoded>{cdata_wrap(content)}</content:encoded>",
        f"      <category>{rss_escape(item.owner)}</category>",
        f"      <category>{rss_escape(item.repo_name)}</category>",
        f'      <source url="{rss_escape(item.repo_url)}">{rss_escape(item.repo_slug)}</source>',
        "    </item>",
    ]
    return "\n".join(lines) + "\n"


def build_feed(items: list, settings: FeedSettings, now: Optional[datetime] = None) -> str:
    """items はソート済みの FeedItem。now は lastBuildDate 用（テストで固定できるように引数にする）。"""
    now = now or datetime.now(timezone.utc)

    header = f"""<?xml version="1.0" encoding="UTF-8"?>
<rss version="2.0" xmlns:content="http://purl.org/rss/1.0/modules/content/" xmlns:atom="http://www.w3.org/2005/Atom">
  <channel>
    <title>{rss_escape(settings.title)}</title>
    <link>{rss_escape(settings.link)}</link>
    <description>{rss_escape(settings.description)}</description>
    <language>{rss_escape(settings.language)}</language>
    <generator>{rss_escape(settings.generator)}</generator>
    <ttl>{int(settings.ttl)}</ttl>
    <lastBuildDate>{format_rfc822(now)}</lastBuildDate>
    <atom:link href="{rss_escape(feed_url(settings.link))}" rel="self" type="application/rss+xml"/>
"""
    footer = """  </channel>
</rss>
"""

    out = [header]
    for it in items:
        out.append(render_item(it, settings.summary_limit))
    out.append(footer)
    return "".join(out)


def assemble_feed(groups: list, settings: FeedSettings, now: Optional[datetime] = None) -> tuple:
    """(rss_text, item_count) を返す。"""
    items = sort_items(cap_per_repository(groups))
    return build_feed(items, settings, now=now), len(items)


def ensure_dir(path: str) -> None:
    if path and not os.path.exists(path):
        os.makedirs(path, exist_ok=True)


def write_feed(content: str, path: str = OUTPUT_FILE) -> None:
    try:
        ensure_dir(os.path.dirname(path))
        with open(path, "w", encoding="utf-8") as f:
            f.write(content)
    except OSError as e:
        raise WriteError(f"Failed to write feed to {path}: {e}") from e
