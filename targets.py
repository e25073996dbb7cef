import os
import re
import json
from dataclasses import dataclass

from errors import ConfigError, TargetError


CONFIG_FILE = os.environ.get("FEED_CONFIG", "repos.json")

DEFAULT_MAX_RELEASES = 10

# GitHub の owner / repo 名に使える文字だけ許可
SLUG_RE = re.compile(r"(?P<owner>[A-Za-z0-9_.-]+)/(?P<name>[A-Za-z0-9_.-]+)")


@dataclass(frozen=True)
class RepositoryTarget:
    """Immutable repository target parsed from one config entry."""

    owner: str
    name: str
    max_releases: int = DEFAULT_MAX_RELEASES
    include_patch_releases: bool = False

    @property
    def slug(self) -> str:
        return f"{self.owner}/{self.name}"


def load_entries(path: str = CONFIG_FILE) -> list:
    """repos.json を読み、構造チェック済みの entry 一覧を返す。

    entry は "owner/name" 文字列か {"slug": ..., "maxReleases": ..., "includePatchReleases": ...}。
    ここでは slug の形（owner/name）までは見ない。形の不正は parse_target() で TargetError にする。
    """
    try:
        with open(path, "r", encoding="utf-8") as f:
            parsed = json.load(f)
    except (OSError, ValueError) as e:
        raise ConfigError(f"Failed to read repository config from {path}: {e}") from e

    if not isinstance(parsed, dict) or not isinstance(parsed.get("repositories"), list):
        raise ConfigError(f'Config {path} must contain a "repositories" array.')

    entries = parsed["repositories"]
    for entry in entries:
        check_entry(entry)
    return entries


def check_entry(entry) -> None:
    if isinstance(entry, str):
        return
    if not isinstance(entry, dict) or not isinstance(entry.get("slug"), str):
        raise ConfigError(f"Invalid repository entry: {json.dumps(entry)}")

    max_releases = entry.get("maxReleases")
    # bool は int のサブクラスなので明示的に弾く
    if max_releases is not None and (
        isinstance(max_releases, bool) or not isinstance(max_releases, int) or max_releases < 1
    ):
        raise ConfigError(f"maxReleases must be a positive integer: {json.dumps(entry)}")

    include_patch = entry.get("includePatchReleases")
    if include_patch is not None and not isinstance(include_patch, bool):
        raise ConfigError(f"includePatchReleases must be true or false: {json.dumps(entry)}")


def entry_slug(entry) -> str:
    """ログ表示用。check_entry() 済みの entry を前提にする。"""
    return entry if isinstance(entry, str) else entry["slug"]


def parse_target(entry) -> RepositoryTarget:
    check_entry(entry)

    if isinstance(entry, str):
        slug, options = entry, {}
    else:
        slug, options = entry["slug"], entry

    m = SLUG_RE.fullmatch(slug.strip())
    if not m:
        raise TargetError(f'Repository slug "{slug}" must be in "owner/name" format.')

    max_releases = options.get("maxReleases")
    include_patch = options.get("includePatchReleases")
    return RepositoryTarget(
        owner=m.group("owner"),
        name=m.group("name"),
        max_releases=DEFAULT_MAX_RELEASES if max_releases is None else max_releases,
        include_patch_releases=bool(include_patch),
    )
