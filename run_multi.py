import os
import sys
import argparse

from errors import ConfigError, FeedError, WriteError
from targets import load_entries, parse_target, entry_slug
from releases import RawRelease, fetch_releases, collect_items, qualifies
from generate_rss import FeedSettings, assemble_feed, write_feed


def process_entries(entries: list, fetch=fetch_releases) -> tuple:
    """各リポジトリを順番に処理する。

    1件の失敗（slug不正 / 取得失敗 / 変換失敗）は errors に記録して次へ進む。
    Returns:
        (groups, errors)  groups=[(RepositoryTarget, [FeedItem])], errors=["slug: message"]
    """
    groups = []
    errors = []

    for entry in entries:
        slug = entry_slug(entry)
        stage = "config"
        try:
            target = parse_target(entry)
            stage = "fetch"
            releases = fetch(target)
            stage = "normalize"
            items = collect_items(target, releases)
        except Exception as e:
            # 想定外の例外（API の型崩れ等）もリポジトリ単位で記録し、他のリポジトリは続行する
            msg = str(e) if isinstance(e, FeedError) else f"{type(e).__name__}: {e}"
            print(f'[HEALTH] FAIL name="{slug}" stage={stage} error="{msg}"')
            errors.append(f"{slug}: {msg}")
            continue

        print(f'[HEALTH] OK name="{target.slug}" stage=fetch items={len(items)}')
        groups.append((target, items))

    return groups, errors


def run_selftests(verbose: bool = False) -> bool:
    """リリース判定ルールの自己テスト。

    - ネットワークに出ない
    - feed.xml を書き換えない

    実行: `python3 run_multi.py --selftest`
    """
    tests = [
        {"id": "minor", "tag": "v1.2.0", "expect": True},
        {"id": "major_no_v", "tag": "2.0.0", "expect": True},
        {"id": "two_part", "tag": "1.2", "expect": True},
        {"id": "patch_excluded", "tag": "v1.2.3", "expect": False},
        {"id": "patch_allowed", "tag": "v1.2.3", "patch": True, "expect": True},
        {"id": "suffix_minor", "tag": "1.2.0-beta.1", "expect": True},
        {"id": "suffix_patch", "tag": "1.2.1+build.7", "expect": False},
        {"id": "wildcard", "tag": "1.2.x", "expect": False},
        {"id": "named", "tag": "release-1", "expect": False},
        {"id": "trailing_garbage", "tag": "v1.2.0rc1", "expect": False},
        {"id": "empty_tag", "tag": "", "expect": False},
        {"id": "draft", "tag": "v3.0.0", "draft": True, "expect": False},
        {"id": "prerelease", "tag": "v3.0.0", "prerelease": True, "expect": False},
    ]

    ok = True
    print("[SELFTEST] release classification rules")

    for t in tests:
        rel = RawRelease(
            id=t["id"],
            tag_name=t["tag"],
            draft=t.get("draft", False),
            prerelease=t.get("prerelease", False),
        )
        got = qualifies(rel, include_patch_releases=t.get("patch", False))
        if got != t["expect"]:
            ok = False
            print(f"[FAIL] {t['id']}: tag={t['tag']!r} expected={t['expect']} got={got}")
        elif verbose:
            print(f"[PASS] {t['id']}: tag={t['tag']!r} qualifies={got}")
        else:
            print(f"[PASS] {t['id']}")

    print("[SELFTEST] RESULT:", "PASS" if ok else "FAIL")
    return ok


def main(config_path: str, output_path: str, settings: FeedSettings = None, fetch=fetch_releases) -> int:
    try:
        settings = settings or FeedSettings.from_env()
        entries = load_entries(config_path)
        print(f"[INFO] Loaded {len(entries)} repositories from {config_path}")

        groups, errors = process_entries(entries, fetch=fetch)

        rss, count = assemble_feed(groups, settings)
        if count == 0:
            print("[WARN] No major/minor releases found with current configuration.")

        write_feed(rss, output_path)
    except (ConfigError, WriteError) as e:
        print(f"[ERROR] {e}", file=sys.stderr)
        return 1

    print(f"[INFO] RSS feed written to {output_path}")
    print(f"[SUMMARY] Wrote {count} items from {len(groups)}/{len(entries)} repositories")

    if errors:
        print("[WARN] Some repositories could not be processed:")
        for line in errors:
            print(f"[WARN] - {line}")

    return 0


if __name__ == "__main__":
    parser = argparse.ArgumentParser(description="Major/minor release RSS feed generator")
    parser.add_argument("--config", default=os.environ.get("FEED_CONFIG", "repos.json"), help="Repository list (JSON)")
    parser.add_argument(
        "--output",
        default=os.environ.get("FEED_OUTPUT", os.path.join("docs", "feed.xml")),
        help="Output RSS file",
    )
    parser.add_argument("--selftest", action="store_true", help="Run classification self-tests without network or file writes")
    parser.add_argument("--verbose", action="store_true", help="Verbose output for selftest")
    args = parser.parse_args()

    if args.selftest:
        passed = run_selftests(verbose=args.verbose)
        raise SystemExit(0 if passed else 1)

    raise SystemExit(main(args.config, args.output))
