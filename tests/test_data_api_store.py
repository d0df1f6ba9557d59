# tests/test_data_api_store.py
from __future__ import annotations

import json
from typing import Any, Callable, Dict, List

import httpx
import pytest

import jrscore.storage.data_api_store as store_mod
from jrscore.storage.data_api_store import DataApiStore
from jrscore.utils.exceptions import PersistenceError
from jrscore.utils.http_client import HttpClient
from jrscore.utils.settings import Settings
from schemas.score_schema import CareerAnalysisRecord


@pytest.fixture
def anyio_backend():
    return "asyncio"


@pytest.fixture(autouse=True)
def _endpoint_templates(monkeypatch: pytest.MonkeyPatch) -> None:
    # Avoid reading parameters/config.yaml
    store_mod.load_store_config.cache_clear()
    monkeypatch.setattr(
        store_mod,
        "load_store_config",
        lambda: {
            "data_api": {
                "endpoints": {
                    "onboarding_profile": "/v1/users/{user_id}/onboarding-profile",
                    "career_analysis": "/v1/users/{user_id}/career-analysis",
                    "career_analyses": "/v1/career-analyses",
                    "roles": "/v1/roles",
                }
            }
        },
    )


RECORD_JSON: Dict[str, Any] = {
    "user_id": "u#1",
    "completion_id": "c1",
    "jr_score": 64,
    "confidence": 60,
    "clarity": 62,
    "consistency": 66,
    "execution_readiness": 58,
    "source": "gemini",
    "risk_flags": [],
    "extra_column": "ignored",
}


class _Recorder:
    def __init__(self, responses: List[Any]) -> None:
        self.responses = list(responses)
        self.requests: List[httpx.Request] = []

    def __call__(self, request: httpx.Request) -> httpx.Response:
        self.requests.append(request)
        item = self.responses.pop(0) if len(self.responses) > 1 else self.responses[0]
        if isinstance(item, Exception):
            raise item
        return item


async def _run(responses: List[Any], call: Callable, *, max_retries: int = 0) -> Any:
    recorder = _Recorder(responses)
    settings = Settings(data_api_base_url="https://data.example", max_retries=max_retries)
    async with HttpClient(transport=httpx.MockTransport(recorder)) as http:
        store = DataApiStore(settings, http)
        result = await call(store)
    return result, recorder.requests


@pytest.mark.anyio
async def test_get_profile_url_encodes_user_id_and_unwraps_data() -> None:
    out, requests = await _run(
        [httpx.Response(200, json={"success": True, "data": {"name": "Asha"}})],
        lambda s: s.get_onboarding_profile("u#1"),
    )

    assert out == {"name": "Asha"}
    assert str(requests[0].url) == "https://data.example/v1/users/u%231/onboarding-profile"
    assert requests[0].method == "GET"


@pytest.mark.anyio
async def test_get_profile_returns_raw_dict_if_not_wrapped() -> None:
    out, _ = await _run([httpx.Response(200, json={"name": "Asha"})], lambda s: s.get_onboarding_profile("u1"))
    assert out == {"name": "Asha"}


@pytest.mark.anyio
@pytest.mark.parametrize(
    "response",
    [httpx.Response(404, json={"error": "not found"}), httpx.Response(200, json={"data": None})],
)
async def test_missing_profile_is_none(response: httpx.Response) -> None:
    out, _ = await _run([response], lambda s: s.get_onboarding_profile("u1"))
    assert out is None


@pytest.mark.anyio
async def test_get_career_analysis_parses_record() -> None:
    out, _ = await _run([httpx.Response(200, json={"data": RECORD_JSON})], lambda s: s.get_career_analysis("u#1"))

    assert isinstance(out, CareerAnalysisRecord)
    assert out.jr_score == 64
    assert out.source == "gemini"


@pytest.mark.anyio
async def test_corrupt_stored_record_is_persistence_error() -> None:
    bad = {**RECORD_JSON, "jr_score": 140}
    with pytest.raises(PersistenceError) as exc_info:
        await _run([httpx.Response(200, json=bad)], lambda s: s.get_career_analysis("u1"))
    assert exc_info.value.details["operation"] == "get_career_analysis"


@pytest.mark.anyio
async def test_save_puts_record_json() -> None:
    record = CareerAnalysisRecord.model_validate(RECORD_JSON)

    out, requests = await _run([httpx.Response(204)], lambda s: s.save_career_analysis(record))

    assert out == record
    assert requests[0].method == "PUT"
    assert requests[0].url.raw_path == b"/v1/users/u%231/career-analysis"
    sent = json.loads(requests[0].content)
    assert sent["jr_score"] == 64
    assert sent["completion_id"] == "c1"
    assert "extra_column" not in sent


@pytest.mark.anyio
async def test_save_returns_stored_version_when_echoed() -> None:
    record = CareerAnalysisRecord.model_validate(RECORD_JSON)
    echoed = {**RECORD_JSON, "updated_at": "2026-10-19T00:00:00+00:00"}

    out, _ = await _run([httpx.Response(200, json={"data": echoed})], lambda s: s.save_career_analysis(record))

    assert out.updated_at == "2026-10-19T00:00:00+00:00"


@pytest.mark.anyio
async def test_server_errors_are_retried_then_succeed() -> None:
    out, requests = await _run(
        [httpx.Response(503), httpx.Response(502), httpx.Response(200, json={"data": [{"id": "r1"}, "junk"]})],
        lambda s: s.list_roles(),
        max_retries=2,
    )

    assert out == [{"id": "r1"}]
    assert len(requests) == 3


@pytest.mark.anyio
async def test_transport_errors_exhaust_retries() -> None:
    with pytest.raises(PersistenceError, match="unreachable"):
        await _run([httpx.ConnectError("refused")], lambda s: s.list_roles(), max_retries=1)


@pytest.mark.anyio
async def test_client_errors_are_not_retried() -> None:
    recorder = _Recorder([httpx.Response(400, text="bad request")])
    settings = Settings(data_api_base_url="https://data.example", max_retries=3)

    async with HttpClient(transport=httpx.MockTransport(recorder)) as http:
        with pytest.raises(PersistenceError) as exc_info:
            await DataApiStore(settings, http).list_career_analyses()

    assert len(recorder.requests) == 1
    assert exc_info.value.details == {"operation": "list_career_analyses", "status_code": 400}


@pytest.mark.anyio
async def test_list_career_analyses() -> None:
    out, _ = await _run(
        [httpx.Response(200, json={"data": [RECORD_JSON, {**RECORD_JSON, "user_id": "u2"}]})],
        lambda s: s.list_career_analyses(),
    )
    assert [r.user_id for r in out] == ["u#1", "u2"]


@pytest.mark.anyio
async def test_non_list_roles_payload_is_persistence_error() -> None:
    with pytest.raises(PersistenceError):
        await _run([httpx.Response(200, json={"data": {"id": "r1"}})], lambda s: s.list_roles())


@pytest.mark.anyio
async def test_non_json_body_is_persistence_error() -> None:
    with pytest.raises(PersistenceError, match="non-JSON"):
        await _run([httpx.Response(200, text="<html>")], lambda s: s.list_roles())


@pytest.mark.anyio
async def test_missing_endpoint_template_raises_runtimeerror(monkeypatch: pytest.MonkeyPatch) -> None:
    monkeypatch.setattr(store_mod, "load_store_config", lambda: {"data_api": {"endpoints": {}}})

    with pytest.raises(RuntimeError, match="data_api.roles"):
        await _run([httpx.Response(200, json=[])], lambda s: s.list_roles())


def test_store_requires_base_url() -> None:
    with pytest.raises(ValueError):
        DataApiStore(Settings(data_api_base_url=None), HttpClient())
