from __future__ import annotations
from typing import Any, Optional

from fastapi import FastAPI, Request
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse
from pydantic import BaseModel

from tradebot.core.errors import ConfigError, ExchangeError, MarketDataError, ValidationError
from tradebot.core.logging import log
from tradebot.core.types import OrderRequest, Side
from tradebot.utils.ids import generate_client_order_id


# Validated by the controller, not by pydantic.
class StartRequest(BaseModel):
    mode: Optional[str] = None
    strategy: Optional[str] = None
    symbols: Optional[Any] = None
    leverage: Optional[Any] = None
    riskPercent: Optional[Any] = None


class ModeRequest(BaseModel):
    mode: Optional[str] = None


class StrategyRequest(BaseModel):
    strategy: Optional[str] = None


class TradeRequest(BaseModel):
    symbol: Optional[str] = None
    side: Optional[str] = None
    quantity: Optional[float] = None
    price: Optional[float] = None
    stopPrice: Optional[float] = None


def _order_from_request(req: TradeRequest) -> OrderRequest:
    symbol = (req.symbol or "").strip().upper()
    if not symbol:
        raise ValidationError("symbol is required")
    try:
        side = Side((req.side or "").strip().lower())
    except ValueError:
        raise ValidationError(f"Invalid side: {req.side!r} (expected buy or sell)") from None
    if req.quantity is None or req.quantity <= 0:
        raise ValidationError("quantity must be > 0")
    for name, val in (("price", req.price), ("stopPrice", req.stopPrice)):
        if val is not None and val <= 0:
            raise ValidationError(f"{name} must be > 0")
    return OrderRequest(
        symbol=symbol,
        side=side,
        quantity=req.quantity,
        price=req.price,
        stop_price=req.stopPrice,
        client_order_id=generate_client_order_id("manual"),
    )


def create_app(controller, exchange) -> FastAPI:
    app = FastAPI(title="tradebot", description="Operator API for the futures trading bot.")
    app.add_middleware(
        CORSMiddleware,
        allow_origins=["*"],
        allow_methods=["*"],
        allow_headers=["*"],
    )

    @app.exception_handler(ValidationError)
    async def _validation_error(request: Request, exc: ValidationError):
        return JSONResponse(status_code=400, content={"success": False, "message": str(exc)})

    @app.exception_handler(ExchangeError)
    async def _exchange_error(request: Request, exc: ExchangeError):
        log(f"[api] {request.method} {request.url.path} exchange error: {exc}", level="ERROR")
        return JSONResponse(
            status_code=502,
            content={"success": False, "message": "Exchange rejected the request", "error": exc.message, "code": exc.code},
        )

    @app.exception_handler(MarketDataError)
    async def _market_data_error(request: Request, exc: MarketDataError):
        log(f"[api] {request.method} {request.url.path} market data error: {exc}", level="ERROR")
        return JSONResponse(status_code=502, content={"success": False, "message": "Market data unavailable", "error": str(exc)})

    @app.exception_handler(ConfigError)
    async def _config_error(request: Request, exc: ConfigError):
        return JSONResponse(status_code=500, content={"success": False, "message": "Configuration error", "error": str(exc)})

    @app.get("/api/health")
    def health():
        return {"status": "ok", "state": controller.state.value}

    # ---- bot control

    @app.post("/api/bot/start")
    def start_bot(body: StartRequest):
        return controller.start(body.model_dump()).to_dict()

    @app.post("/api/bot/stop")
    def stop_bot():
        return controller.stop()

    @app.post("/api/bot/mode")
    def set_mode(body: ModeRequest):
        return controller.set_mode(body.mode)

    @app.post("/api/bot/strategy")
    def set_strategy(body: StrategyRequest):
        return controller.set_strategy(body.strategy)

    @app.get("/api/bot/status")
    def bot_status():
        return {"success": True, **controller.status()}

    # ---- market data

    @app.get("/api/market/price/{symbol}")
    def price(symbol: str):
        sym = symbol.upper()
        return {"success": True, "symbol": sym, "price": str(exchange.get_price(sym))}

    @app.get("/api/market/24hr/{symbol}")
    def stats_24h(symbol: str):
        sym = symbol.upper()
        return {"success": True, "symbol": sym, "stats": exchange.get_24h_stats(sym).to_dict()}

    # ---- portfolio

    @app.get("/api/portfolio/balance")
    def balance():
        return {"success": True, "balance": exchange.get_account_balance()}

    @app.get("/api/portfolio/positions")
    def positions():
        return {"success": True, "positions": exchange.get_account_positions()}

    # ---- trading

    @app.post("/api/trade/place")
    def place_order(body: TradeRequest):
        result = controller.place_manual_order(_order_from_request(body))
        return {"success": True, "order": result.to_dict()}

    return app


__all__ = ["create_app"]
