"""Run configuration objects and constants for the fixers."""

from __future__ import annotations

from dataclasses import dataclass
from datetime import datetime
from typing import Optional

DEFAULT_META_KEY = "_original_url"
DEFAULT_POST_TYPE = "post"
REPLACE_WITH_CHOICES = ("permalink", "src")


class ConfigurationError(ValueError):
    """Raised when a run is missing a required parameter or has an invalid one."""


class AuthorizationError(ConfigurationError):
    """Raised when the operator is not allowed to run imports."""


@dataclass(frozen=True)
class RunConfig:
    """Settings that stay fixed for the duration of one fixer run."""

    dry_run: bool = True
    meta_key: str = DEFAULT_META_KEY
    old_domain: str = ""
    post_type: str = DEFAULT_POST_TYPE
    before: Optional[datetime] = None
    after: Optional[datetime] = None
    replace_with: str = "permalink"
    page_size: Optional[int] = None
    upload_base_url: Optional[str] = None
    paginate_by_cursor: bool = True

    def __post_init__(self) -> None:
        if self.replace_with not in REPLACE_WITH_CHOICES:
            raise ConfigurationError(
                f"replace_with must be one of {', '.join(REPLACE_WITH_CHOICES)}, "
                f"got {self.replace_with!r}"
            )
        if self.page_size is not None and self.page_size < 1:
            raise ConfigurationError("page_size must be a positive integer")
        if not self.post_type:
            raise ConfigurationError("post_type must not be empty")
        if self.before and self.after and self.after > self.before:
            raise ConfigurationError(
                f"Date range is empty: after={self.after.isoformat()} "
                f"is later than before={self.before.isoformat()}"
            )
