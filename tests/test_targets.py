import json

import pytest

from errors import ConfigError, TargetError
from targets import DEFAULT_MAX_RELEASES, RepositoryTarget, load_entries, parse_target


def write_config(tmp_path, data):
    path = tmp_path / "repos.json"
    path.write_text(json.dumps(data) if not isinstance(data, str) else data, encoding="utf-8")
    return str(path)


def test_load_entries_accepts_strings_and_objects(tmp_path):
    path = write_config(tmp_path, {"repositories": ["a/b", {"slug": "c/d", "maxReleases": 3}]})
    assert load_entries(path) == ["a/b", {"slug": "c/d", "maxReleases": 3}]


def test_load_entries_missing_file(tmp_path):
    with pytest.raises(ConfigError):
        load_entries(str(tmp_path / "nope.json"))


def test_load_entries_invalid_json(tmp_path):
    path = write_config(tmp_path, "{not json")
    with pytest.raises(ConfigError):
        load_entries(path)


@pytest.mark.parametrize("data", [{}, {"repositories": "a/b"}, ["a/b"]])
def test_load_entries_requires_repositories_list(tmp_path, data):
    with pytest.raises(ConfigError):
        load_entries(write_config(tmp_path, data))


@pytest.mark.parametrize(
    "entry",
    [
        42,
        {"maxReleases": 3},
        {"slug": 5},
        {"slug": "a/b", "maxReleases": 0},
        {"slug": "a/b", "maxReleases": True},
        {"slug": "a/b", "includePatchReleases": "yes"},
    ],
)
def test_load_entries_rejects_bad_entries(tmp_path, entry):
    with pytest.raises(ConfigError):
        load_entries(write_config(tmp_path, {"repositories": ["a/b", entry]}))


def test_parse_target_string_defaults():
    t = parse_target("nodejs/node")
    assert t == RepositoryTarget(owner="nodejs", name="node")
    assert t.slug == "nodejs/node"
    assert t.max_releases == DEFAULT_MAX_RELEASES
    assert t.include_patch_releases is False


def test_parse_target_object_options():
    t = parse_target({"slug": "microsoft/TypeScript", "maxReleases": 4, "includePatchReleases": True})
    assert (t.owner, t.name, t.max_releases, t.include_patch_releases) == ("microsoft", "TypeScript", 4, True)


@pytest.mark.parametrize("slug", ["node", "nodejs/", "/node", "a/b/c", "", "has space/x"])
def test_parse_target_bad_slug_shape(slug):
    with pytest.raises(TargetError):
        parse_target(slug)


def test_target_is_immutable():
    t = parse_target("a/b")
    with pytest.raises(Exception):
        t.owner = "x"
