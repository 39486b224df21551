import itertools
import unittest
from decimal import Decimal
from urllib.parse import parse_qsl, urlsplit

import requests

from fakes import FakeResponse, FakeSession
from tradebot.core.errors import ExchangeError, MarketDataError
from tradebot.core.types import OrderRequest, Side
from tradebot.exchange.client import ExchangeClient
from tradebot.exchange.signing import Credentials, SignedRequestBuilder


def _query(call):
    return parse_qsl(urlsplit(call["url"]).query)


class ExchangeClientTests(unittest.TestCase):
    def setUp(self):
        ticks = itertools.count(1700000000000)
        self.builder = SignedRequestBuilder(Credentials("key", "secret"), clock=lambda: next(ticks))
        self.session = FakeSession()
        self.sleeps = []
        self.client = ExchangeClient(self.builder, session=self.session, timeout=7.0, sleep=self.sleeps.append)

    # ---- market data

    def test_get_price(self):
        self.session.route("/api/v3/ticker/price", FakeResponse(200, {"symbol": "BTCUSDT", "price": "50000.10"}))
        self.assertEqual(self.client.get_price("BTCUSDT"), Decimal("50000.10"))
        call = self.session.calls[0]
        self.assertEqual(call["url"], "https://api.binance.com/api/v3/ticker/price?symbol=BTCUSDT")
        self.assertEqual(call["headers"], {})
        self.assertEqual(call["timeout"], 7.0)

    def test_get_price_malformed(self):
        self.session.route("/api/v3/ticker/price", FakeResponse(200, {"symbol": "BTCUSDT"}))
        with self.assertRaises(MarketDataError):
            self.client.get_price("BTCUSDT")

    def test_get_price_rejected(self):
        self.session.route("/api/v3/ticker/price", FakeResponse(400, {"code": -1121, "msg": "Invalid symbol."}))
        with self.assertRaises(MarketDataError) as ctx:
            self.client.get_price("NOPE")
        self.assertIn("Invalid symbol.", str(ctx.exception))

    def test_get_24h_stats(self):
        self.session.route("/api/v3/ticker/24hr", FakeResponse(200, {
            "priceChange": "-94.99999800",
            "priceChangePercent": "-95.960",
            "highPrice": "100.00000000",
            "lowPrice": "0.10000000",
            "volume": "8913.30000000",
        }))
        stats = self.client.get_24h_stats("BTCUSDT")
        self.assertEqual(stats.price_change, Decimal("-94.99999800"))
        self.assertEqual(stats.high, Decimal("100.00000000"))
        self.assertEqual(stats.to_dict()["priceChangePercent"], "-95.960")

    # ---- account

    def test_balance_keeps_positive_wallet_balances(self):
        self.session.route("/fapi/v2/account", FakeResponse(200, {"assets": [
            {"asset": "USDT", "walletBalance": "1000.5"},
            {"asset": "BNB", "walletBalance": "0.00000000"},
            {"asset": "BUSD", "walletBalance": "0"},
        ]}))
        balances = self.client.get_account_balance()
        self.assertEqual([b["asset"] for b in balances], ["USDT"])
        call = self.session.calls[0]
        self.assertEqual(call["headers"], {"X-MBX-APIKEY": "key"})
        self.assertEqual([k for k, _ in _query(call)], ["timestamp", "signature"])

    def test_positions_keep_non_zero_amounts(self):
        self.session.route("/fapi/v2/account", FakeResponse(200, {"positions": [
            {"symbol": "BTCUSDT", "positionAmt": "0.010"},
            {"symbol": "ETHUSDT", "positionAmt": "-1.5"},
            {"symbol": "SOLUSDT", "positionAmt": "0.000"},
        ]}))
        positions = self.client.get_account_positions()
        self.assertEqual([p["symbol"] for p in positions], ["BTCUSDT", "ETHUSDT"])

    def test_read_retries_with_fresh_signatures(self):
        self.session.route("/fapi/v2/account", [
            FakeResponse(503, None, text="unavailable"),
            requests.ConnectionError("reset"),
            FakeResponse(200, {"assets": [{"asset": "USDT", "walletBalance": "1"}]}),
        ])
        balances = self.client.get_account_balance()
        self.assertEqual(len(balances), 1)
        self.assertEqual(len(self.session.calls), 3)
        signatures = {dict(_query(c))["signature"] for c in self.session.calls}
        self.assertEqual(len(signatures), 3)
        self.assertEqual(len(self.sleeps), 2)

    def test_read_gives_up_after_max_attempts(self):
        self.session.route("/fapi/v2/account", requests.Timeout("read timed out"))
        with self.assertRaises(ExchangeError):
            self.client.get_account_balance()
        self.assertEqual(len(self.session.calls), 3)

    def test_market_data_transport_failure(self):
        self.session.route("/api/v3/ticker/price", requests.ConnectionError("down"))
        with self.assertRaises(MarketDataError):
            self.client.get_price("BTCUSDT")

    def test_last_transient_status_is_decoded(self):
        self.session.route("/fapi/v2/account", FakeResponse(429, {"code": -1003, "msg": "Too many requests."}))
        with self.assertRaises(ExchangeError) as ctx:
            self.client.get_account_balance()
        self.assertEqual(ctx.exception.code, -1003)
        self.assertEqual(ctx.exception.status, 429)

    # ---- trading

    def test_set_leverage(self):
        self.session.route("/fapi/v1/leverage", FakeResponse(200, {"leverage": 10, "symbol": "BTCUSDT"}))
        self.client.set_leverage("BTCUSDT", 10)
        call = self.session.calls[0]
        self.assertEqual(call["method"], "POST")
        params = dict(_query(call))
        self.assertEqual((params["symbol"], params["leverage"]), ("BTCUSDT", "10"))

    def test_market_order(self):
        self.session.route("/fapi/v1/order", FakeResponse(200, {"orderId": 42, "status": "NEW", "symbol": "BTCUSDT"}))
        result = self.client.place_order(OrderRequest("BTCUSDT", Side.BUY, 0.002))
        self.assertEqual((result.order_id, result.status), ("42", "NEW"))
        keys = [k for k, _ in _query(self.session.calls[0])]
        self.assertEqual(keys, ["symbol", "side", "type", "quantity", "timestamp", "signature"])
        params = dict(_query(self.session.calls[0]))
        self.assertEqual((params["side"], params["type"], params["quantity"]), ("BUY", "MARKET", "0.002"))

    def test_limit_order(self):
        self.session.route("/fapi/v1/order", FakeResponse(200, {"orderId": 1, "status": "NEW"}))
        self.client.place_order(OrderRequest("BTCUSDT", Side.SELL, 0.5, price=51000.5, client_order_id="cid-1"))
        params = _query(self.session.calls[0])
        self.assertEqual(
            [k for k, _ in params],
            ["symbol", "side", "type", "quantity", "price", "timeInForce", "newClientOrderId", "timestamp", "signature"],
        )
        d = dict(params)
        self.assertEqual((d["type"], d["price"], d["timeInForce"]), ("LIMIT", "51000.5", "GTC"))

    def test_stop_order_wins_over_price(self):
        self.session.route("/fapi/v1/order", FakeResponse(200, {"orderId": 1, "status": "NEW"}))
        self.client.place_order(OrderRequest("BTCUSDT", Side.SELL, 0.5, price=51000, stop_price=49000))
        d = dict(_query(self.session.calls[0]))
        self.assertEqual(d["type"], "STOP_MARKET")
        self.assertEqual(d["stopPrice"], "49000")
        self.assertNotIn("price", d)

    def test_insufficient_margin_is_not_retried(self):
        self.session.route("/fapi/v1/order", FakeResponse(400, {"code": -2019, "msg": "Margin is insufficient."}))
        with self.assertRaises(ExchangeError) as ctx:
            self.client.place_order(OrderRequest("BTCUSDT", Side.BUY, 1.0))
        exc = ctx.exception
        self.assertEqual((exc.code, exc.status, exc.message), (-2019, 400, "Margin is insufficient."))
        self.assertIn("Margin is insufficient.", str(exc))
        self.assertEqual(len(self.session.calls), 1)

    def test_writes_are_single_shot_on_transient_status(self):
        self.session.route("/fapi/v1/order", FakeResponse(503, None, text="unavailable"))
        with self.assertRaises(ExchangeError):
            self.client.place_order(OrderRequest("BTCUSDT", Side.BUY, 1.0))
        self.assertEqual(len(self.session.calls), 1)
        self.assertEqual(self.sleeps, [])


if __name__ == "__main__":
    unittest.main()
