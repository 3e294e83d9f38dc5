"""Remote existence checks for uploaded files."""

from __future__ import annotations

import logging
from typing import Optional

import requests

logger = logging.getLogger("import_fixers")

DEFAULT_TIMEOUT = 15.0
USER_AGENT = "import-fixers/2.0"


class UrlProber:
    """HEAD-probes URLs; anything other than a 2xx/3xx answer means "missing"."""

    def __init__(
        self,
        timeout: float = DEFAULT_TIMEOUT,
        session: Optional[requests.Session] = None,
    ) -> None:
        self.timeout = timeout
        if session is None:
            session = requests.Session()
            session.headers["User-Agent"] = USER_AGENT
        self.session = session

    def exists(self, url: str) -> bool:
        try:
            resp = self.session.head(url, timeout=self.timeout, allow_redirects=True)
            if resp.status_code == 405:
                # Some servers refuse HEAD; fall back to a streamed GET.
                resp = self.session.get(url, timeout=self.timeout, stream=True)
                resp.close()
        except requests.RequestException as exc:
            logger.warning("Failed to probe %s: %s", url, exc)
            return False
        if resp.status_code >= 400:
            logger.debug("Probe for %s returned HTTP %d", url, resp.status_code)
            return False
        return True

    def close(self) -> None:
        self.session.close()
