"""
Generic HTTP fetch shared by the crawler and every web-fallback provider.

One requests.Session with the configured user-agent, retry backoff on 5xx,
redirect following and a per-host insecure-TLS allowlist (some government
hosts serve incomplete certificate chains).
"""

import logging
from dataclasses import dataclass, field
from typing import Optional
from urllib.parse import urlparse

import requests
import urllib3
from requests.adapters import HTTPAdapter
from urllib3.util.retry import Retry

from .config import LegalCorpusConfig

logger = logging.getLogger(__name__)


@dataclass
class FetchResponse:
    """Status, headers and decoded body of one HTTP exchange."""
    url: str
    status: int
    text: str
    reason: str = ""
    headers: dict = field(default_factory=dict)  # lower-cased names

    @property
    def ok(self) -> bool:
        return 200 <= self.status < 300

    @property
    def content_type(self) -> str:
        return self.headers.get("content-type", "")

    def header(self, name: str) -> Optional[str]:
        return self.headers.get(name.lower())


def host_matches(hostname: str, hosts) -> bool:
    """True if hostname equals one of hosts or is a subdomain of one."""
    hostname = (hostname or "").lower()
    return any(hostname == h or hostname.endswith("." + h) for h in hosts)


def _make_session(config: LegalCorpusConfig) -> requests.Session:
    """Create a session with crawler headers and retry backoff."""
    s = requests.Session()
    s.headers.update({
        "User-Agent": config.user_agent,
        "Accept": config.accept,
        "Accept-Language": "ar,en;q=0.8",
    })
    retries = Retry(
        total=config.max_retries,
        backoff_factor=1,
        status_forcelist=[500, 502, 503, 504],
        allowed_methods=["GET", "HEAD"],
        raise_on_status=False,
    )
    adapter = HTTPAdapter(max_retries=retries)
    s.mount("https://", adapter)
    s.mount("http://", adapter)
    return s


class HttpFetcher:
    """
    Thin wrapper over requests used for every outbound call.

    Transport failures (DNS, TLS, timeout, connection reset) raise
    requests.RequestException; HTTP error statuses are returned, not raised.
    """

    def __init__(
        self,
        config: Optional[LegalCorpusConfig] = None,
        session: Optional[requests.Session] = None,
    ):
        self.config = config or LegalCorpusConfig()
        self._session = session or _make_session(self.config)
        self._insecure_hosts = [h.lower() for h in self.config.insecure_tls_hosts]
        if self._insecure_hosts:
            urllib3.disable_warnings(urllib3.exceptions.InsecureRequestWarning)
            logger.warning(f"TLS verification disabled for hosts: {', '.join(self._insecure_hosts)}")

    def _verify_for(self, url: str) -> bool:
        return not host_matches(urlparse(url).hostname or "", self._insecure_hosts)

    def _to_response(self, resp: requests.Response) -> FetchResponse:
        # requests falls back to ISO-8859-1 for text/* without a charset,
        # which garbles Arabic pages
        if not resp.encoding or resp.encoding.lower() == "iso-8859-1":
            resp.encoding = resp.apparent_encoding or "utf-8"
        return FetchResponse(
            url=resp.url,
            status=resp.status_code,
            reason=resp.reason or "",
            text=resp.text,
            headers={k.lower(): v for k, v in resp.headers.items()},
        )

    def get(
        self,
        url: str,
        headers: Optional[dict] = None,
        params: Optional[dict] = None,
        timeout: Optional[float] = None,
    ) -> FetchResponse:
        """GET a URL, following redirects."""
        resp = self._session.get(
            url,
            headers=headers,
            params=params,
            timeout=timeout or self.config.fetch_timeout_s,
            allow_redirects=True,
            verify=self._verify_for(url),
        )
        return self._to_response(resp)

    def post(
        self,
        url: str,
        json: Optional[dict] = None,
        headers: Optional[dict] = None,
        timeout: Optional[float] = None,
    ) -> FetchResponse:
        """POST a JSON body, following redirects."""
        resp = self._session.post(
            url,
            json=json,
            headers=headers,
            timeout=timeout or self.config.fetch_timeout_s,
            allow_redirects=True,
            verify=self._verify_for(url),
        )
        return self._to_response(resp)

    def close(self) -> None:
        self._session.close()
