from __future__ import annotations
import sys
from dataclasses import dataclass
from typing import Any, Callable, Optional

import requests

from tradebot.core.config import Settings, load_settings
from tradebot.core.errors import ConfigError
from tradebot.core.logging import log
from tradebot.exchange.client import ExchangeClient
from tradebot.exchange.signing import Credentials, SignedRequestBuilder
from tradebot.health.window import HealthWindow
from tradebot.runtime.backoff import Backoff
from tradebot.runtime.controller import BotController
from tradebot.streams.manager import StreamManager
from tradebot.trading.dispatcher import StrategyDispatcher


@dataclass
class Runtime:
    settings: Settings
    exchange: ExchangeClient
    streams: StreamManager
    dispatcher: StrategyDispatcher
    controller: BotController
    health: HealthWindow


def build_runtime(
    settings: Settings,
    session: Optional[requests.Session] = None,
    app_factory: Optional[Callable[..., Any]] = None,
    exchange: Optional[ExchangeClient] = None,
) -> Runtime:
    health = HealthWindow()
    if exchange is None:
        builder = SignedRequestBuilder(
            Credentials(settings.api_key, settings.api_secret),
            recv_window=settings.recv_window,
            spot_base_url=settings.spot_base_url,
            futures_base_url=settings.futures_base_url,
        )
        exchange = ExchangeClient(builder, session=session, timeout=settings.http_timeout)

    controller: Optional[BotController] = None

    dispatcher = StrategyDispatcher(
        exchange,
        config_provider=lambda: controller.config if controller else None,
        params_provider=lambda cfg: controller.trade_params(cfg),
        dry_run=settings.dry_run,
        health=health,
    )
    streams = StreamManager(
        on_candle=dispatcher.submit,
        on_status=lambda symbol, status, error: controller and controller.on_stream_status(symbol, status, error),
        ws_base_url=settings.futures_ws_url,
        max_reconnect_attempts=settings.ws_max_reconnects,
        backoff=Backoff(settings.ws_backoff_base, settings.ws_backoff_max),
        app_factory=app_factory,
        health=health,
    )
    controller = BotController(
        exchange,
        streams,
        dispatcher,
        health=health,
        quantity_precision=settings.quantity_precision,
    )
    return Runtime(settings, exchange, streams, dispatcher, controller, health)


def main() -> None:
    from dotenv import load_dotenv
    import uvicorn

    from tradebot.api.server import create_app

    load_dotenv()
    try:
        settings = load_settings()
    except ConfigError as exc:
        log(f"Startup blocked: {exc}", level="ERROR")
        sys.exit(2)

    runtime = build_runtime(settings)
    app = create_app(runtime.controller, runtime.exchange)
    log(f"=== tradebot listening on {settings.host}:{settings.port} dry_run={settings.dry_run} ===")
    try:
        uvicorn.run(app, host=settings.host, port=settings.port)
    finally:
        runtime.controller.shutdown()
        runtime.streams.unsubscribe_all(wait=True)
        log("=== tradebot exited ===")


if __name__ == "__main__":
    main()
