from datetime import datetime, timezone

import pytest

from releases import FeedItem


def api_release(tag, published="2024-05-01T12:00:00Z", **overrides):
    """GitHub API 形式の release dict を作る。"""
    data = {
        "id": abs(hash(tag)) % 100000,
        "html_url": f"https://github.com/acme/widget/releases/tag/{tag}",
        "tag_name": tag,
        "name": None,
        "body": f"Release {tag}",
        "draft": False,
        "prerelease": False,
        "published_at": published,
        "created_at": "2024-04-30T00:00:00Z",
    }
    data.update(overrides)
    return data


def make_item(slug="acme/widget", tag="v1.0.0", published=None, body_html="<p>notes</p>", item_id=None):
    owner, name = slug.split("/")
    html_url = f"https://github.com/{slug}/releases/tag/{tag}"
    return FeedItem(
        repo_slug=slug,
        owner=owner,
        repo_name=name,
        repo_url=f"https://github.com/{slug}",
        html_url=html_url,
        tag_name=tag,
        published_at=published,
        description_html=body_html,
        id=item_id or html_url,
        name=f"{slug} {tag}",
    )


def utc(*args):
    return datetime(*args, tzinfo=timezone.utc)


@pytest.fixture
def fixed_now():
    return utc(2024, 6, 1, 8, 30, 0)
