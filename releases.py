import os
import re
from dataclasses import dataclass
from datetime import datetime, timezone
from typing import Optional

import markdown
import requests

from errors import FetchError
from targets import RepositoryTarget


API_URL = os.environ.get("GITHUB_API_URL", "https://api.github.com").rstrip("/")
SERVER_URL = os.environ.get("GITHUB_SERVER_URL", "https://github.com").rstrip("/")

USER_AGENT = "repo-release-feed"
REQUEST_TIMEOUT = 30

# GitHub API の per_page 上限
PER_PAGE_CAP = 50

# v1.2 / v1.2.3 / 1.2.0-beta.1 / 1.2.0+build.5
# \d は Unicode 数字にも一致するので [0-9] に限定する
SEMVER_RE = re.compile(
    r"v?(?P<major>[0-9]+)\.(?P<minor>[0-9]+)(?:\.(?P<patch>[0-9]+))?(?P<suffix>[-+].*)?",
    re.DOTALL,
)

# null か文字列のはずの項目
STRING_FIELDS = ("html_url", "tag_name", "name", "body", "published_at", "created_at")


@dataclass(frozen=True)
class RawRelease:
    """One release object as returned by GET /repos/{owner}/{repo}/releases."""

    id: object
    html_url: str = ""
    tag_name: Optional[str] = None
    name: Optional[str] = None
    body: Optional[str] = None
    draft: bool = False
    prerelease: bool = False
    published_at: Optional[str] = None
    created_at: Optional[str] = None

    @classmethod
    def from_api(cls, data: dict) -> "RawRelease":
        """API の dict から作る。文字列であるべき項目の型が違えば TypeError。"""
        for key in STRING_FIELDS:
            value = data.get(key)
            if value is not None and not isinstance(value, str):
                raise TypeError(f"release field {key!r} must be a string, got {type(value).__name__}")
        return cls(
            id=data.get("id"),
            html_url=data.get("html_url") or "",
            tag_name=data.get("tag_name"),
            name=data.get("name"),
            body=data.get("body"),
            draft=bool(data.get("draft")),
            prerelease=bool(data.get("prerelease")),
            published_at=data.get("published_at"),
            created_at=data.get("created_at"),
        )


@dataclass(frozen=True)
class SemanticVersion:
    major: int
    minor: int
    patch: int = 0
    suffix: str = ""


@dataclass(frozen=True)
class FeedItem:
    """Canonical feed entry built from one qualifying release."""

    repo_slug: str
    owner: str
    repo_name: str
    repo_url: str
    html_url: str
    tag_name: str
    published_at: Optional[datetime]
    description_html: str
    id: str
    name: str


def first_present(*values):
    """先頭から順に、None でも空白だけの文字列でもない最初の値を返す。"""
    for v in values:
        if v is None:
            continue
        if isinstance(v, str) and not v.strip():
            continue
        return v
    return None


def parse_iso_datetime(s: Optional[str]) -> Optional[datetime]:
    if not s:
        return None
    try:
        dt = datetime.fromisoformat(s.strip().replace("Z", "+00:00"))
    except ValueError:
        return None
    if dt.tzinfo is None:
        dt = dt.replace(tzinfo=timezone.utc)
    return dt.astimezone(timezone.utc)


def parse_semver(tag: Optional[str]) -> Optional[SemanticVersion]:
    """タグを major.minor[.patch][suffix] として解釈する。形が合わなければ None。

    前方一致ではなく fullmatch で、末尾のゴミ（"1.2.x" など）を弾く。
    """
    if not tag:
        return None
    m = SEMVER_RE.fullmatch(tag)
    if not m:
        return None

    try:
        major = int(m.group("major"))
        minor = int(m.group("minor"))
        patch = int(m.group("patch")) if m.group("patch") is not None else 0
    except ValueError:
        return None
    if major < 0 or minor < 0 or patch < 0:
        return None

    return SemanticVersion(major=major, minor=minor, patch=patch, suffix=m.group("suffix") or "")


def qualifies(release: RawRelease, include_patch_releases: bool = False) -> bool:
    """フィードに載せるリリースかどうか。最初に落ちたルールで打ち切る。"""
    if release.draft:
        return False
    if release.prerelease:
        return False
    if not release.tag_name:
        return False

    version = parse_semver(release.tag_name)
    if version is None:
        return False

    # suffix 自体では除外しない（patch 番号だけで判定）
    if not include_patch_releases and version.patch != 0:
        return False
    return True


def render_markdown(body: Optional[str]) -> str:
    text = (body or "").strip()
    if not text:
        return ""
    return markdown.markdown(text, extensions=["fenced_code", "tables"])


def normalize_release(release: RawRelease, target: RepositoryTarget) -> FeedItem:
    slug = target.slug
    tag = release.tag_name or "unknown"

    published = first_present(
        parse_iso_datetime(release.published_at),
        parse_iso_datetime(release.created_at),
    )

    return FeedItem(
        repo_slug=slug,
        owner=target.owner,
        repo_name=target.name,
        repo_url=f"{SERVER_URL}/{slug}",
        html_url=release.html_url,
        tag_name=tag,
        published_at=published,
        description_html=render_markdown(release.body),
        id=first_present(release.html_url, f"{slug}@{tag}"),
        name=first_present(release.name, f"{slug} {tag}"),
    )


def per_page_for(target: RepositoryTarget) -> int:
    # 除外（draft/prerelease/patch）で減る分を見込んで2倍取る
    return min(target.max_releases * 2, PER_PAGE_CAP)


def request_headers() -> dict:
    headers = {
        "User-Agent": USER_AGENT,
        "Accept": "application/vnd.github+json",
    }
    token = os.environ.get("GITHUB_TOKEN", "").strip()
    if token:
        headers["Authorization"] = f"Bearer {token}"
    return headers


def fetch_releases(target: RepositoryTarget) -> list:
    """リリース一覧を1リクエストで取得する。リトライはしない。"""
    url = f"{API_URL}/repos/{target.owner}/{target.name}/releases"
    try:
        r = requests.get(
            url,
            headers=request_headers(),
            params={"per_page": per_page_for(target)},
            timeout=REQUEST_TIMEOUT,
        )
    except requests.RequestException as e:
        raise FetchError(f"GitHub API request failed for {target.slug}: {e}") from e

    if not r.ok:
        raise FetchError(f"GitHub API request failed for {target.slug}: {r.status_code} {r.reason}")

    try:
        data = r.json()
    except ValueError as e:
        raise FetchError(f"Unexpected response format for {target.slug}: {e}") from e

    if not isinstance(data, list):
        raise FetchError(f"Unexpected response format for {target.slug}")

    try:
        return [RawRelease.from_api(it) for it in data if isinstance(it, dict)]
    except TypeError as e:
        raise FetchError(f"Unexpected response format for {target.slug}: {e}") from e


def collect_items(target: RepositoryTarget, releases: list) -> list:
    """対象リリースを FeedItem にする（API の並び＝新しい順を保つ）。"""
    return [
        normalize_release(rel, target)
        for rel in releases
        if qualifies(rel, target.include_patch_releases)
    ]
