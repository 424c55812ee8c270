import asyncio
import json
import sys
from pathlib import Path

import httpx
import pytest

sys.path.insert(0, str(Path(__file__).resolve().parents[1]))

from app.models.schemas import TransactionRecord
from app.services.cache_store import MemoryCacheStore
from app.services.sales_api_client import SalesApiClient
from app.sync.dataset_cache import DatasetCache

API_URL = "https://sheet.example.test/exec"


class FakeSalesApi:
    """
    In-process stand-in for the spreadsheet web app.

    GET handlers are keyed by action and return an envelope dict (or an
    httpx.Response); POST bodies are recorded in `mutations`. A gated action
    holds its response until the gate's event is set.
    """

    def __init__(self):
        self.handlers = {}
        self.requests = []
        self.mutations = []
        self.on_mutation = None
        self.gates = {}

    def on(self, action, handler):
        self.handlers[action] = handler

    def gate(self, action):
        event = asyncio.Event()
        self.gates[action] = event
        return event

    async def reached(self, action, times=1):
        """Yield to the loop until `action` has been requested `times` times"""
        for _ in range(1000):
            if self.count(action) >= times:
                break
            await asyncio.sleep(0)
        # give the other pending tasks a turn to reach their own waits
        for _ in range(20):
            await asyncio.sleep(0)
        assert self.count(action) >= times

    async def handle(self, request: httpx.Request) -> httpx.Response:
        if request.method == "POST":
            payload = json.loads(request.content.decode("utf-8"))
            self.mutations.append(payload)
            if self.on_mutation is not None:
                self.on_mutation(payload)
            return httpx.Response(200, text="ok")

        params = dict(request.url.params)
        action = params.pop("action", "")
        self.requests.append((action, params))

        gate = self.gates.get(action)
        if gate is not None:
            await gate.wait()

        handler = self.handlers.get(action)
        if handler is None:
            return httpx.Response(200, json={"success": False, "error": f"Unknown action: {action}"})

        body = handler(params) if callable(handler) else handler
        if isinstance(body, httpx.Response):
            return body
        return httpx.Response(200, json=body)

    def actions(self):
        return [action for action, _ in self.requests]

    def count(self, action):
        return self.actions().count(action)

    def client(self) -> SalesApiClient:
        return SalesApiClient(
            base_url=API_URL,
            timeout=5,
            transport=httpx.MockTransport(self.handle)
        )


def _row(**overrides):
    row = {
        "registYearMonth": "2025/01",
        "abbr": "TK",
        "branch": "東京",
        "repName": "山田 太郎",
        "clientName": "テスト商事",
        "customerName": "テスト商事 本社",
        "productCode": "P-001",
        "productName": "ﾃｽﾄ商品",
        "quantity": 1,
        "unitPrice": 1000,
        "hqFlag": False,
        "isSummary": False,
    }
    row.update(overrides)
    return row


@pytest.fixture()
def fake_api():
    return FakeSalesApi()


@pytest.fixture()
def sales_client(fake_api):
    return fake_api.client()


@pytest.fixture()
def memory_store():
    return MemoryCacheStore()


@pytest.fixture()
def dataset_cache(memory_store):
    return DatasetCache(memory_store)


@pytest.fixture()
def make_row():
    """Raw wire-format row with sensible defaults"""
    return _row


@pytest.fixture()
def make_record():
    def factory(**overrides):
        return TransactionRecord.model_validate(_row(**overrides))
    return factory
