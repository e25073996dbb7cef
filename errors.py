"""フィード生成で使う例外。

ConfigError / WriteError は実行全体を止める。
TargetError / FetchError はリポジトリ単位で記録して次へ進む。
"""


class FeedError(Exception):
    """Base class for release feed errors."""


class ConfigError(FeedError):
    """Repository config is unreadable or malformed."""


class TargetError(FeedError):
    """A configured repository identifier is not in owner/name form."""


class FetchError(FeedError):
    """The releases request for one repository failed."""


class WriteError(FeedError):
    """The feed file could not be written."""
