import asyncio
import json
from datetime import date
from pathlib import Path
from zoneinfo import ZoneInfo

import httpx
from structlog.testing import capture_logs

from market_prices.client import ProviderClient
from market_prices.models import AggregateResult, Query
from market_prices.pipeline import MarketPriceEngine
from market_prices.resolver import FIELD_CANDIDATES

FIXTURES = Path(__file__).parent / "fixtures"
SEOUL = ZoneInfo("Asia/Seoul")
TODAY = date(2025, 1, 15)


def load_fixture(name):
    return json.loads((FIXTURES / name).read_text(encoding="utf-8"))


def make_engine(handler, **kwargs):
    client = ProviderClient(
        base_url="http://upstream.test/trades",
        api_key="secret-key",
        timeout=1.0,
        user_agent="test-agent",
        transport=httpx.MockTransport(handler),
    )
    options = {"max_pages": 3, "rows_per_page": 500, "request_timeout": 2.0}
    options.update(kwargs)
    return MarketPriceEngine(client, SEOUL, clock=lambda: TODAY, **options)


def fixture_handler(request):
    return httpx.Response(200, json=load_fixture("sample_page.json"))


def run(engine, query, **kwargs):
    return asyncio.run(engine.fetch(query, **kwargs))


def events(logs, name):
    return [entry for entry in logs if entry["event"] == name]


def test_end_to_end_normalizes_sorts_and_averages():
    result = run(make_engine(fixture_handler), Query("사과"))

    assert [r.to_payload() for r in result.records] == [
        {
            "market_name": "부산엄궁농산물도매시장",
            "price": 30000,
            "grade": "premium",
            "date": "2025-01-15",
            "unit": "10kg",
            "product_name": "사과",
        },
        {
            "market_name": "서울가락도매시장",
            "price": 9200,
            "grade": "부사",
            "date": "2025-01-15",
            "unit": "1kg",
            "product_name": "사과/부사",
        },
        {
            "market_name": "서울가락도매시장",
            "price": 9000,
            "grade": "standard",
            "date": "2025-01-14",
            "unit": "1kg",
            "product_name": "사과",
        },
    ]
    assert result.average_price == 16067
    assert result.to_payload()["count"] == 3
    assert result.to_payload()["averagePrice"] == 16067


def test_region_filter_keeps_matching_markets():
    result = run(make_engine(fixture_handler), Query("사과", region="서울"))
    assert {r.market_name for r in result.records} == {"서울가락도매시장"}
    assert result.average_price == 9100


def test_unmatched_region_yields_empty_result():
    result = run(make_engine(fixture_handler), Query("사과", region="제주"))
    assert result == AggregateResult.empty()


def test_first_page_timeout_yields_empty_result():
    def handler(request):
        raise httpx.ConnectTimeout("timed out", request=request)

    result = run(make_engine(handler), Query("사과"))
    assert result.records == []
    assert result.average_price == 0


def test_overall_timeout_discards_partial_work():
    calls = []

    async def handler(request):
        calls.append(request.url.params["pageNo"])
        if len(calls) > 1:
            await asyncio.sleep(5)
        items = [{"scsbd_prc": "1000", "whsal_mrkt_nm": "가락"}] * 2
        return httpx.Response(200, json={"item": items})

    engine = make_engine(handler, rows_per_page=2)
    result = run(engine, Query("사과"), timeout=0.2)
    assert result == AggregateResult.empty()
    assert calls == ["1", "2"]


def test_cancel_signal_aborts_in_flight_request():
    async def handler(request):
        await asyncio.sleep(5)
        return httpx.Response(200, json=load_fixture("sample_page.json"))

    async def scenario():
        cancel = asyncio.Event()
        asyncio.get_running_loop().call_later(0.05, cancel.set)
        return await make_engine(handler).fetch(Query("사과"), timeout=3.0, cancel=cancel)

    assert asyncio.run(scenario()) == AggregateResult.empty()


def test_provider_no_data_yields_empty_result():
    def handler(request):
        return httpx.Response(200, json=load_fixture("no_data.json"))

    assert run(make_engine(handler), Query("사과")) == AggregateResult.empty()


def test_garbage_payload_yields_empty_result():
    def handler(request):
        return httpx.Response(200, text="<html>maintenance</html>", headers={"content-type": "text/html"})

    assert run(make_engine(handler), Query("사과")) == AggregateResult.empty()


def test_unexpected_stage_failure_is_absorbed(monkeypatch):
    engine = make_engine(fixture_handler)

    def explode(items, query, log=None):
        raise RuntimeError("boom")

    monkeypatch.setattr(engine, "normalize_items", explode)
    assert run(engine, Query("사과")) == AggregateResult.empty()


def test_same_day_duplicates_average():
    engine = make_engine(fixture_handler)
    items = [
        {"marketname": "Garak", "price": "9000", "date": "2025-01-15"},
        {"marketname": "Garak", "price": "9400", "date": "2025-01-15"},
    ]
    result = engine.build_result(items, Query("사과"), grade_aware=False)
    assert len(result.records) == 1
    assert result.records[0].price == 9200


def test_missing_price_drops_exactly_one_record():
    engine = make_engine(fixture_handler)
    items = load_fixture("sample_page.json")["response"]["body"]["items"]["item"]
    priced = [item for item in items if item["scsbd_prc"] != "-"]

    with_missing = engine.build_result(items, Query("사과"))
    without = engine.build_result(priced, Query("사과"))
    assert with_missing == without

    extra = dict(priced[0], whsal_mrkt_nm="광주각화도매시장")
    more = engine.build_result(priced + [extra], Query("사과"))
    less = engine.build_result(priced + [{k: v for k, v in extra.items() if k != "scsbd_prc"}], Query("사과"))
    assert len(less.records) == len(more.records) - 1


def test_price_key_does_not_change_result():
    engine = make_engine(fixture_handler)
    results = set()
    for key in FIELD_CANDIDATES["price"]:
        item = {"whsal_mrkt_nm": "가락", key: "7,700", "trd_clcln_ymd": "2025-01-15"}
        result = engine.build_result([item], Query("사과"))
        results.add((result.records[0].price, result.average_price))
    assert results == {(7700, 7700)}


def test_pipeline_is_idempotent():
    engine = make_engine(fixture_handler)
    items = load_fixture("sample_page.json")["response"]["body"]["items"]["item"]
    first = engine.build_result(items, Query("사과"))
    second = engine.build_result(items, Query("사과"))
    assert first == second
    assert json.dumps(first.to_payload(), ensure_ascii=False) == json.dumps(
        second.to_payload(), ensure_ascii=False
    )


def test_missing_market_and_product_fall_back():
    engine = make_engine(fixture_handler)
    result = engine.build_result([{"dpr1": "2,500"}], Query("배추"))
    record = result.records[0]
    assert record.market_name == "전국 평균"
    assert record.product_name == "배추"
    assert record.date == "2025-01-15"
    assert record.grade == "generic"
    assert record.unit == "1kg"


def test_each_transition_logs_one_stage_event():
    with capture_logs() as logs:
        run(make_engine(fixture_handler), Query("사과"))

    stages = [entry["stage"] for entry in events(logs, "pipeline_stage")]
    assert stages == ["fetching", "decoding", "normalizing", "aggregating", "done"]
    assert events(logs, "pipeline_error_absorbed") == []
    assert len(events(logs, "decoded_page")) == 1
    assert events(logs, "pipeline_stage")[-1]["average_price"] == 16067


def test_rejected_record_is_logged_with_sorted_keys():
    with capture_logs() as logs:
        run(make_engine(fixture_handler), Query("사과"))

    rejected = events(logs, "record_rejected")
    assert len(rejected) == 1
    assert rejected[0]["reason"] == "no positive price"
    assert rejected[0]["keys"] == ["corp_gds_item_nm", "scsbd_prc", "trd_clcln_ymd", "whsal_mrkt_nm"]


def test_first_page_failure_logs_one_absorbed_error():
    def handler(request):
        raise httpx.ConnectTimeout("timed out", request=request)

    with capture_logs() as logs:
        run(make_engine(handler), Query("사과"))

    absorbed = events(logs, "pipeline_error_absorbed")
    assert len(absorbed) == 1
    assert absorbed[0]["stage"] == "fetching"
    assert absorbed[0]["error_type"] == "TransportError"
    assert absorbed[0]["log_level"] == "warning"
    assert "secret-key" not in absorbed[0]["error"]
    assert [entry["stage"] for entry in events(logs, "pipeline_stage")] == ["fetching", "failed", "done"]


def test_overall_timeout_logs_one_absorbed_error():
    async def handler(request):
        await asyncio.sleep(5)
        return httpx.Response(200, json=load_fixture("sample_page.json"))

    with capture_logs() as logs:
        run(make_engine(handler), Query("사과"), timeout=0.1)

    absorbed = events(logs, "pipeline_error_absorbed")
    assert [(entry["stage"], entry["error_type"]) for entry in absorbed] == [("fetching", "TimeoutError")]
    failed = events(logs, "pipeline_stage")[-2]
    assert (failed["stage"], failed["reason"], failed["product"]) == ("failed", "timeout", "사과")
