from __future__ import annotations

from dataclasses import dataclass, field
from typing import Any, Dict, Mapping, Optional

import requests

from .config import Settings, clamp_page_size
from .exceptions import TransportError
from .http_client import HttpClient, HttpConfig

USER_FIELDS = "id,username,name,verified,public_metrics"


@dataclass(frozen=True)
class ApiResponse:
    status: int
    body: str
    headers: Mapping[str, Any] = field(default_factory=dict)


class ListsClient:
    """X API v2 list endpoints used by the export."""

    def __init__(self, http: HttpClient, api_host: str = "https://api.x.com", page_size: int = 100):
        self.http = http
        self.api_host = api_host.rstrip("/")
        self.page_size = clamp_page_size(page_size)

    @classmethod
    def from_settings(cls, settings: Settings) -> "ListsClient":
        http = HttpClient(
            HttpConfig(
                user_agent=settings.user_agent,
                bearer_token=settings.bearer_token,
                connect_timeout=settings.connect_timeout,
                read_timeout=settings.read_timeout,
            )
        )
        return cls(http, api_host=settings.api_host, page_size=settings.page_size)

    def fetch_metadata(self, list_id: str) -> ApiResponse:
        return self._get(f"{self.api_host}/2/lists/{list_id}")

    def fetch_page(self, list_id: str, resume_token: Optional[str] = None) -> ApiResponse:
        params: Dict[str, Any] = {"max_results": self.page_size, "user.fields": USER_FIELDS}
        if resume_token is not None:
            params["pagination_token"] = resume_token
        return self._get(f"{self.api_host}/2/lists/{list_id}/members", params=params)

    def _get(self, url: str, **kwargs: Any) -> ApiResponse:
        try:
            resp = self.http.get(url, **kwargs)
        except requests.RequestException as e:
            raise TransportError(f"request to {url} failed: {e}") from e
        return ApiResponse(status=resp.status_code, body=resp.text, headers=resp.headers)
