"""Tests for venue feeds: QuoteBook, frame parsing, subscribe, heartbeat, reconnect."""

from __future__ import annotations

import asyncio
import json
from dataclasses import replace
from decimal import Decimal
from unittest.mock import AsyncMock, MagicMock

import pytest

from btc15arb.websocket.feed import (
    ExponentialBackoffReconnect,
    FixedDelayReconnect,
    best_levels,
)
from btc15arb.websocket.polymarket_ws import PolymarketFeed
from btc15arb.websocket.predictfun_ws import PredictFunFeed, build_url
from btc15arb.websocket.quote_book import QuoteBook
from conftest import DOWN, PF, PM, UP, FakeWebSocket

FAST = FixedDelayReconnect(0.01)


async def until(condition, timeout: float = 1.0) -> None:
    async def poll():
        while not condition():
            await asyncio.sleep(0.001)

    await asyncio.wait_for(poll(), timeout)


@pytest.fixture
def book():
    return QuoteBook()


def frame_json(payload) -> str:
    return json.dumps(payload)


def pm_book_frame(asset_id, bids, asks) -> dict:
    return {
        "asset_id": asset_id,
        "bids": [{"price": p, "size": s} for p, s in bids],
        "asks": [{"price": p, "size": s} for p, s in asks],
    }


# ---------------------------------------------------------------------------
# QuoteBook / helpers
# ---------------------------------------------------------------------------


class TestQuoteBook:
    def test_starts_empty(self, book):
        assert not book.get(PM, UP).has_data
        assert book.updates == 0

    def test_update_reports_change(self, book):
        assert book.update(PM, UP, Decimal("0.48"), Decimal("0.52")) is True
        assert book.update(PM, UP, Decimal("0.48"), Decimal("0.52")) is False
        assert book.update(PM, UP, Decimal("0.49"), Decimal("0.52")) is True
        assert book.updates == 3

    def test_snapshot_is_a_copy(self, book):
        book.update(PF, DOWN, Decimal("0.40"), Decimal("0.45"))
        snap = book.snapshot()
        book.update(PF, DOWN, Decimal("0.10"), Decimal("0.15"))
        assert snap.ask(PF, DOWN) == Decimal("0.45")

    def test_clear_venue(self, book):
        book.update(PM, UP, Decimal("0.48"), Decimal("0.52"))
        book.update(PF, UP, Decimal("0.48"), Decimal("0.52"))
        book.clear_venue(PM)
        assert not book.get(PM, UP).has_data
        assert book.get(PF, UP).has_data


class TestBestLevels:
    def test_dict_levels(self):
        bids = [{"price": "0.48", "size": "10"}, {"price": "0.49", "size": "5"}]
        asks = [{"price": "0.53", "size": "10"}, {"price": "0.52", "size": "3"}]
        assert best_levels(bids, asks) == (Decimal("0.49"), Decimal("0.52"))

    def test_list_levels(self):
        assert best_levels([[0.48, 10]], [[0.52, 5]]) == (Decimal("0.48"), Decimal("0.52"))

    def test_zero_size_ignored(self):
        asks = [{"price": "0.51", "size": "0"}, {"price": "0.52", "size": "1"}]
        assert best_levels([], asks) == (None, Decimal("0.52"))

    def test_empty_sides(self):
        assert best_levels(None, []) == (None, None)


class TestReconnectPolicy:
    def test_fixed(self):
        policy = FixedDelayReconnect(5.0)
        assert [policy.delay(n) for n in (1, 2, 10)] == [5.0, 5.0, 5.0]

    def test_exponential_capped(self):
        policy = ExponentialBackoffReconnect(base=1.0, cap=5.0)
        assert [policy.delay(n) for n in (1, 2, 3, 4)] == [1.0, 2.0, 4.0, 5.0]


# ---------------------------------------------------------------------------
# Polymarket frames
# ---------------------------------------------------------------------------


class TestPolymarketParse:
    @pytest.fixture
    async def feed(self, book, pm_window):
        feed = PolymarketFeed(book)
        await feed.retarget(pm_window)
        return feed

    async def test_book_snapshot_list(self, feed, book):
        frame = [
            pm_book_frame("pm_up_tok", [("0.48", "10"), ("0.49", "5")], [("0.52", "10")]),
            pm_book_frame("pm_down_tok", [("0.47", "10")], [("0.51", "10")]),
        ]
        assert await feed.handle_message(frame_json(frame)) is True
        assert book.get(PM, UP).best_bid == Decimal("0.49")
        assert book.get(PM, UP).best_ask == Decimal("0.52")
        assert book.get(PM, DOWN).best_ask == Decimal("0.51")

    async def test_single_book(self, feed, book):
        frame = pm_book_frame("pm_down_tok", [("0.40", "1")], [("0.45", "1")])
        assert await feed.handle_message(frame_json(frame)) is True
        assert book.get(PM, DOWN).best_bid == Decimal("0.40")

    async def test_price_changes(self, feed, book):
        frame = {"price_changes": [
            {"asset_id": "pm_up_tok", "best_bid": "0.50", "best_ask": "0.53"},
        ]}
        assert await feed.handle_message(frame_json(frame)) is True
        assert book.get(PM, UP).best_ask == Decimal("0.53")

    async def test_price_change_missing_field_keeps_value(self, feed, book):
        book.update(PM, UP, Decimal("0.48"), Decimal("0.52"))
        frame = {"price_changes": [{"asset_id": "pm_up_tok", "best_ask": "0.51"}]}
        await feed.handle_message(frame_json(frame))
        assert book.get(PM, UP).best_bid == Decimal("0.48")
        assert book.get(PM, UP).best_ask == Decimal("0.51")

    async def test_unknown_asset_ignored(self, feed, book):
        frame = pm_book_frame("someone_else", [("0.40", "1")], [("0.45", "1")])
        assert await feed.handle_message(frame_json(frame)) is False
        assert not book.get(PM, UP).has_data

    async def test_unchanged_quote_no_callback(self, feed, book):
        callback = MagicMock()
        feed.set_on_update(callback)
        frame = pm_book_frame("pm_up_tok", [("0.48", "1")], [("0.52", "1")])
        await feed.handle_message(frame_json(frame))
        await feed.handle_message(frame_json(frame))
        callback.assert_called_once_with(PM)

    @pytest.mark.parametrize("raw", ["not json", "[1, 2, 3]", '"hello"', "{}"])
    async def test_malformed_frames_dropped(self, feed, book, raw):
        assert await feed.handle_message(raw) is False
        assert not book.get(PM, UP).has_data

    async def test_callback_error_does_not_propagate(self, feed):
        feed.set_on_update(MagicMock(side_effect=RuntimeError("boom")))
        frame = pm_book_frame("pm_up_tok", [("0.48", "1")], [("0.52", "1")])
        assert await feed.handle_message(frame_json(frame)) is True


# ---------------------------------------------------------------------------
# predict.fun frames
# ---------------------------------------------------------------------------


class TestPredictFunParse:
    @pytest.fixture
    async def feed(self, book, pf_window):
        feed = PredictFunFeed(book, api_key="key123")
        await feed.retarget(pf_window)
        return feed

    async def test_url_and_topic(self, feed):
        assert build_url("key123") == "wss://ws.predict.fun/ws?apiKey=key123"
        assert build_url("") == "wss://ws.predict.fun/ws"
        assert feed.topic == "predictOrderbook/4242"

    async def test_orderbook_derives_down(self, feed, book):
        frame = {
            "type": "M",
            "topic": "predictOrderbook/4242",
            "data": {"bids": [[0.48, 10], [0.47, 3]], "asks": [[0.53, 5], [0.52, 1]]},
        }
        assert await feed.handle_message(frame_json(frame)) is True
        assert book.get(PF, UP).best_bid == Decimal("0.48")
        assert book.get(PF, UP).best_ask == Decimal("0.52")
        assert book.get(PF, DOWN).best_bid == Decimal("0.48")
        assert book.get(PF, DOWN).best_ask == Decimal("0.52")

    async def test_one_sided_book(self, feed, book):
        frame = {"type": "M", "topic": "predictOrderbook/4242",
                 "data": {"bids": [], "asks": [[0.60, 5]]}}
        await feed.handle_message(frame_json(frame))
        assert book.get(PF, UP).best_bid is None
        assert book.get(PF, DOWN).best_bid == Decimal("0.40")
        assert book.get(PF, DOWN).best_ask is None

    async def test_other_topic_ignored(self, feed, book):
        frame = {"type": "M", "topic": "predictOrderbook/1", "data": {"bids": [[0.5, 1]]}}
        assert await feed.handle_message(frame_json(frame)) is False
        assert not book.get(PF, UP).has_data

    async def test_subscribe_response_ignored(self, feed):
        frame = {"type": "R", "requestId": 1, "success": False, "error": "bad"}
        assert await feed.handle_message(frame_json(frame)) is False

    async def test_non_dict_data_ignored(self, feed):
        frame = {"type": "M", "topic": "predictOrderbook/4242", "data": "x"}
        assert await feed.handle_message(frame_json(frame)) is False


# ---------------------------------------------------------------------------
# Connection lifecycle
# ---------------------------------------------------------------------------


class TestLifecycle:
    async def test_polymarket_subscribes_both_tokens(self, book, pm_window):
        ws = FakeWebSocket()
        feed = PolymarketFeed(book, policy=FAST, connect=AsyncMock(return_value=ws))
        await feed.retarget(pm_window)
        task = asyncio.create_task(feed.run())

        await until(lambda: len(ws.sent) == 2)
        assert ws.sent == [
            {"type": "Market", "assets_ids": ["pm_up_tok"]},
            {"type": "Market", "assets_ids": ["pm_down_tok"]},
        ]
        assert feed.connected

        ws.feed(pm_book_frame("pm_up_tok", [("0.48", "1")], [("0.52", "1")]))
        await until(lambda: book.get(PM, UP).has_data)

        await feed.stop()
        await asyncio.wait_for(task, 1)
        assert not feed.connected

    async def test_heartbeat_echo(self, book, pf_window):
        ws = FakeWebSocket()
        feed = PredictFunFeed(book, api_key="k", policy=FAST, connect=AsyncMock(return_value=ws))
        await feed.retarget(pf_window)
        task = asyncio.create_task(feed.run())

        ws.feed({"type": "M", "topic": "heartbeat", "data": 1767621600})
        await until(lambda: len(ws.sent) == 2)
        assert ws.sent[0] == {
            "method": "subscribe", "requestId": 1, "params": ["predictOrderbook/4242"],
        }
        assert ws.sent[1] == {"method": "heartbeat", "data": 1767621600}
        assert feed.heartbeats == 1

        await feed.stop()
        await asyncio.wait_for(task, 1)

    async def test_waits_for_window(self, book, pm_window):
        ws = FakeWebSocket()
        connect = AsyncMock(return_value=ws)
        feed = PolymarketFeed(book, policy=FAST, connect=connect)
        task = asyncio.create_task(feed.run())

        await asyncio.sleep(0.02)
        connect.assert_not_awaited()

        await feed.retarget(pm_window)
        await until(lambda: len(ws.sent) == 2)
        connect.assert_awaited_once()

        await feed.stop()
        await asyncio.wait_for(task, 1)

    async def test_reconnect_resubscribes(self, book, pf_window):
        first, second = FakeWebSocket(), FakeWebSocket()
        connect = AsyncMock(side_effect=[first, second])
        feed = PredictFunFeed(book, api_key="k", policy=FAST, connect=connect)
        await feed.retarget(pf_window)
        task = asyncio.create_task(feed.run())

        await until(lambda: len(first.sent) == 1)
        await first.close()  # 서버 측 종료
        await until(lambda: len(second.sent) == 1)

        assert second.sent[0]["params"] == ["predictOrderbook/4242"]
        assert second.sent[0]["requestId"] == 2
        assert feed.reconnects == 1

        await feed.stop()
        await asyncio.wait_for(task, 1)

    async def test_connect_failure_retries(self, book, pm_window):
        ws = FakeWebSocket()
        connect = AsyncMock(side_effect=[OSError("refused"), ws])
        feed = PolymarketFeed(book, policy=FAST, connect=connect)
        await feed.retarget(pm_window)
        task = asyncio.create_task(feed.run())

        await until(lambda: len(ws.sent) == 2)
        assert connect.await_count == 2

        await feed.stop()
        await asyncio.wait_for(task, 1)

    async def test_retarget_switches_tokens(self, book, pm_window):
        first, second = FakeWebSocket(), FakeWebSocket()
        feed = PolymarketFeed(
            book, policy=FixedDelayReconnect(60), connect=AsyncMock(side_effect=[first, second]),
        )
        await feed.retarget(pm_window)
        task = asyncio.create_task(feed.run())
        await until(lambda: len(first.sent) == 2)

        nxt = replace(pm_window, market_id="pm_mkt_2", up_token_id="up2", down_token_id="down2")
        await feed.retarget(nxt)

        # 재연결 지연 없이 즉시 재구독
        await until(lambda: len(second.sent) == 2)
        assert first.closed
        assert second.sent[0] == {"type": "Market", "assets_ids": ["up2"]}
        assert feed.window is nxt
        assert feed.reconnects == 0

        await feed.stop()
        await asyncio.wait_for(task, 1)
