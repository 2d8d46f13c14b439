from __future__ import annotations

import random
import time
from dataclasses import dataclass, field
from typing import Any, Callable, Dict

import requests


@dataclass
class HttpConfig:
    user_agent: str
    bearer_token: str | None = None
    connect_timeout: float = 10.0
    read_timeout: float = 30.0
    max_retries: int = 3
    backoff_base_sec: float = 2.0
    backoff_max_sec: float = 60.0
    extra_headers: Dict[str, str] = field(default_factory=dict)


class HttpClient:
    """Thin requests.Session wrapper.

    Only connection-level failures are retried here. Every HTTP status,
    429 included, is returned to the caller untouched.
    """

    def __init__(self, cfg: HttpConfig, session: requests.Session | None = None, sleep: Callable[[float], None] = time.sleep):
        self.cfg = cfg
        self.session = session or requests.Session()
        self.session.headers.update({"User-Agent": cfg.user_agent, "Accept": "application/json"})
        if cfg.bearer_token:
            self.session.headers["Authorization"] = f"Bearer {cfg.bearer_token}"
        self.session.headers.update(cfg.extra_headers)
        self._sleep_fn = sleep

    def request(self, method: str, url: str, **kwargs: Any) -> requests.Response:
        timeout = kwargs.pop("timeout", (self.cfg.connect_timeout, self.cfg.read_timeout))

        attempt = 0
        while True:
            attempt += 1
            try:
                return self.session.request(method, url, timeout=timeout, **kwargs)
            except requests.RequestException:
                if attempt <= self.cfg.max_retries:
                    self._sleep(attempt)
                    continue
                raise

    def get(self, url: str, **kwargs: Any) -> requests.Response:
        return self.request("GET", url, **kwargs)

    def _sleep(self, attempt: int) -> None:
        base = self.cfg.backoff_base_sec * (2 ** (attempt - 1))
        wait = min(base, self.cfg.backoff_max_sec)
        jitter = random.uniform(0, 0.25 * wait)
        self._sleep_fn(wait + jitter)
