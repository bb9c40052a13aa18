import json

import pytest
import httpx

from app.core import settings as settings_module
from app.db.base import Base
from app.db.session import get_engine, init_engine
from app.main import app


@pytest.fixture()
def anyio_backend():
    return "asyncio"


@pytest.fixture(autouse=True)
def _use_test_db(tmp_path, monkeypatch):
    db_path = tmp_path / "test.db"
    database_url = f"sqlite+pysqlite:///{db_path}"

    monkeypatch.setattr(settings_module.settings, "database_url", database_url)
    monkeypatch.setattr(settings_module.settings, "db_auto_create", True)
    monkeypatch.setattr(settings_module.settings, "reference_image_root", str(tmp_path / "reference-images"))

    init_engine(database_url)
    Base.metadata.create_all(bind=get_engine())

    yield


@pytest.fixture()
async def client():
    async with app.router.lifespan_context(app):
        transport = httpx.ASGITransport(app=app)
        async with httpx.AsyncClient(transport=transport, base_url="http://test") as client:
            yield client


class FakeKie:
    """Scripted stand-in for the KIE job API, served through ``httpx.MockTransport``.

    ``states`` is consumed one entry per ``recordInfo`` call; the last entry
    repeats once the script runs out. ``submit_data`` and ``record_data``
    replace the ``data`` member of the respective response when set, and
    ``result_json`` replaces the ``resultJson`` of a successful record.
    """

    def __init__(self, states=("success",), image_url="https://cdn.example.com/out.png", submit_status=200):
        self.states = list(states)
        self.image_url = image_url
        self.submit_status = submit_status
        self.submit_data = None
        self.record_data = None
        self.result_json = None
        self.submitted: list[dict] = []
        self.polls = 0

    def handler(self, request: httpx.Request) -> httpx.Response:
        if request.url.path.endswith("/jobs/createTask"):
            self.submitted.append(json.loads(request.content))
            if self.submit_status != 200:
                return httpx.Response(self.submit_status, json={"code": self.submit_status, "msg": "rejected"})
            if self.submit_data is not None:
                return httpx.Response(200, json={"code": 200, "data": self.submit_data})
            return httpx.Response(200, json={"code": 200, "data": {"taskId": f"task-{len(self.submitted)}"}})

        if request.url.path.endswith("/jobs/recordInfo"):
            index = min(self.polls, len(self.states) - 1)
            self.polls += 1
            if self.record_data is not None:
                return httpx.Response(200, json={"code": 200, "data": self.record_data})
            state = self.states[index]
            data = {"taskId": request.url.params.get("taskId"), "state": state}
            if state == "success":
                data["resultJson"] = self.result_json or json.dumps({"resultUrls": [self.image_url]})
            if state == "fail":
                data["failMsg"] = "content policy violation"
            return httpx.Response(200, json={"code": 200, "data": data})

        return httpx.Response(404, json={"code": 404, "msg": "not found"})

    def client(self) -> httpx.AsyncClient:
        return httpx.AsyncClient(transport=httpx.MockTransport(self.handler))


@pytest.fixture()
def fake_kie():
    return FakeKie()
