import json

import requests

from livechat_client import LivechatAPI


class FakeResponse:
    def __init__(self, status_code=200, payload=None):
        self.status_code = status_code
        self._payload = payload
        self.content = json.dumps(payload).encode() if payload is not None else b""
        self.text = self.content.decode()

    def json(self):
        if self._payload is None:
            raise ValueError("no body")
        return self._payload

    def raise_for_status(self):
        if self.status_code >= 400:
            raise requests.HTTPError(f"{self.status_code} error", response=self)


class FakeSession:
    def __init__(self, response):
        self.response = response
        self.requests = []

    def request(self, **kwargs):
        self.requests.append(kwargs)
        if isinstance(self.response, Exception):
            raise self.response
        return self.response


def make_client(response):
    session = FakeSession(response)
    return LivechatAPI(base_url="http://chat.test/api/v1/", api_key="tok", session=session), session


def test_list_departments_builds_query_and_auth_header():
    api, session = make_client(FakeResponse(payload={"success": True, "departments": []}))

    data, error = api.list_departments(text="sales", enabled=True, count=10, sort={"name": 1})

    assert error is None
    assert data["success"] is True
    sent = session.requests[0]
    assert sent["method"] == "GET"
    assert sent["url"] == "http://chat.test/api/v1/livechat/department"
    assert sent["params"] == {"text": "sales", "enabled": "true", "count": 10, "sort": '{"name": 1}'}
    assert sent["headers"] == {"Authorization": "Bearer tok"}


def test_create_department_sends_agents():
    api, session = make_client(FakeResponse(payload={"success": True}))

    api.create_department({"name": "Sales", "enabled": True}, agents=["a1"])

    assert session.requests[0]["json"] == {"department": {"name": "Sales", "enabled": True}, "agents": ["a1"]}


def test_list_by_ids_uses_array_param():
    api, session = make_client(FakeResponse(payload={"success": True, "departments": []}))

    api.list_departments_by_ids(["d1"], fields={"name": 1})

    assert session.requests[0]["params"] == {"ids[]": ["d1"], "fields": '{"name": 1}'}


def test_failure_envelope_becomes_error():
    api, _ = make_client(FakeResponse(400, {"success": False, "error": "The 'ids' param is required"}))

    data, error = api.list_departments_by_ids([])

    assert data is None
    assert error == {"status_code": 400, "message": "The 'ids' param is required"}


def test_connection_errors_are_reported():
    api, _ = make_client(requests.ConnectionError("refused"))

    data, error = api.delete_department("d1")

    assert data is None
    assert error == {"status_code": None, "message": "refused"}
