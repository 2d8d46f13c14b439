import json
from typing import List, Optional

from list_export.client import ApiResponse


def member(username, user_id, **extra):
    obj = {"username": username, "id": user_id}
    obj.update(extra)
    return obj


def page_body(members, next_token: Optional[str] = None) -> str:
    body = {"data": members, "meta": {"result_count": len(members)}}
    if next_token is not None:
        body["meta"]["next_token"] = next_token
    return json.dumps(body)


def ok(members, next_token=None) -> ApiResponse:
    return ApiResponse(status=200, body=page_body(members, next_token))


def members(prefix: str, n: int) -> List[dict]:
    return [member(f"{prefix}{i}", str(1000 + i)) for i in range(n)]


class FakeListsClient:
    """Replays scripted responses and records the tokens it was asked for."""

    def __init__(self, responses, metadata=None):
        self.responses = list(responses)
        self.metadata = list(metadata or [])
        self.page_calls = []
        self.metadata_calls = []

    def fetch_page(self, list_id, resume_token=None):
        self.page_calls.append((list_id, resume_token))
        if not self.responses:
            raise AssertionError("unexpected extra page request")
        return self.responses.pop(0)

    def fetch_metadata(self, list_id):
        self.metadata_calls.append(list_id)
        return self.metadata.pop(0)


class SleepRecorder:
    def __init__(self):
        self.calls = []

    def __call__(self, seconds):
        self.calls.append(seconds)
