"""Main entry point: wires all layers together and runs the schedules."""
import asyncio
import signal

from dotenv import load_dotenv

load_dotenv()

from shared.config import Config
from shared.logging import setup_logging
from shared.schemas import BotId, utc_now
from feeds.fear_greed import FearGreedClient
from strategy.sentiment import SentimentReader
from execution.kraken_client import KrakenGateway
from execution.order_manager import OrderManager
from execution.paper_trader import PaperTrader
from execution.risk_gate import RiskGate, RiskLimits
from bots.bot_a import BotA
from bots.bot_b import BotB
from bots.maintenance import SnapshotRecorder, catch_up_maintenance, run_midnight_maintenance
from bots.scheduler import SingleFlight, run_periodically
from storage.db import Database
from dashboard.main import Services, app as dashboard_app, set_services

logger = setup_logging("charity-bot")


class CharityBotService:
    """Builds the components and runs the bot, sentiment and maintenance loops."""

    def __init__(self, config: Config):
        self.config = config
        self._shutdown = asyncio.Event()
        self.runners = {BotId.A: SingleFlight("bot_a"), BotId.B: SingleFlight("bot_b")}

        self.db = Database(config.DB_PATH)
        self.gateway = KrakenGateway(
            api_key=config.KRAKEN_API_KEY,
            api_secret=config.KRAKEN_API_SECRET,
            mock_mode=config.USE_MOCK_KRAKEN,
            base_url=config.KRAKEN_API_URL,
            asset_codes=config.asset_code_table,
            cache_ttl=config.BALANCE_CACHE_TTL,
            private_call_interval=config.PRIVATE_CALL_INTERVAL,
            timeout=config.HTTP_TIMEOUT,
        )
        self.sentiment = SentimentReader(
            self.db,
            self.gateway,
            FearGreedClient(timeout=config.HTTP_TIMEOUT),
            fetch_interval=config.FEAR_GREED_MIN_INTERVAL_SECONDS,
        )
        self.risk_gate = RiskGate(self.db, RiskLimits.from_config(config))
        self.order_manager = OrderManager(
            self.gateway,
            self.risk_gate,
            self.db,
            real_trading_enabled=config.ALLOW_REAL_TRADING,
            confirmation_required=config.TRADE_CONFIRMATION_REQUIRED,
        )
        paper_trader = PaperTrader(self.db)
        bot_kwargs = dict(
            order_manager=self.order_manager,
            real_trading=config.ALLOW_REAL_TRADING,
            max_position_size=config.MAX_POSITION_SIZE_USD,
        )
        self.bot_a = BotA(self.db, self.sentiment, self.gateway, paper_trader, **bot_kwargs)
        self.bot_b = BotB(self.db, self.sentiment, self.gateway, paper_trader, **bot_kwargs)
        self.snapshots = SnapshotRecorder(self.db, self.gateway)

    async def start(self):
        """Initialize and run all loops until shutdown."""
        logger.info(
            "Starting charity bot",
            extra={
                "mode": "mock" if self.config.USE_MOCK_KRAKEN else "live",
                "real_trading": self.config.ALLOW_REAL_TRADING,
                "confirmation_required": self.config.TRADE_CONFIRMATION_REQUIRED,
                "emergency_stop": self.config.EMERGENCY_STOP,
            },
        )
        if self.config.is_live and not self.config.has_credentials:
            logger.warning("KRAKEN_API_KEY / KRAKEN_API_SECRET not set; private endpoints disabled")

        await self.db.init()

        connection = await self.gateway.test_connection()
        if not connection["success"]:
            logger.warning("Kraken connection test failed", extra={"detail": connection["message"]})
        await self.snapshots.ensure_start_snapshot()
        await catch_up_maintenance(self.snapshots, self.bot_b)
        await self.sentiment.calculate_mcs()

        set_services(Services(
            config=self.config,
            db=self.db,
            gateway=self.gateway,
            risk_gate=self.risk_gate,
            sentiment=self.sentiment,
            order_manager=self.order_manager,
            bot_a=self.bot_a,
            bot_b=self.bot_b,
            runners=self.runners,
        ))

        cfg = self.config
        tasks = [
            asyncio.create_task(self._loop("sentiment", cfg.SENTIMENT_INTERVAL_SECONDS, self._sentiment_tick, run_immediately=False), name="sentiment"),
            asyncio.create_task(self._loop("market", cfg.MARKET_DATA_INTERVAL_SECONDS, self._market_tick), name="market"),
            asyncio.create_task(self._loop("bot_a", cfg.BOT_A_INTERVAL_SECONDS, self._bot_tick(BotId.A)), name="bot_a"),
            asyncio.create_task(self._loop("bot_b", cfg.BOT_B_INTERVAL_SECONDS, self._bot_tick(BotId.B)), name="bot_b"),
            asyncio.create_task(self._maintenance_loop(), name="maintenance"),
            asyncio.create_task(self._status_loop(), name="status"),
            asyncio.create_task(self._run_dashboard(), name="dashboard"),
        ]

        logger.info("All components started")

        await self._shutdown.wait()

        logger.info("Shutting down...")
        for t in tasks:
            t.cancel()
        await asyncio.gather(*tasks, return_exceptions=True)
        set_services(None)
        await self.db.close()
        logger.info("Shutdown complete")

    def _loop(self, name: str, interval: float, job, run_immediately: bool = True):
        return run_periodically(name, interval, job, self._shutdown, run_immediately)

    def _bot_tick(self, bot_id: BotId):
        bot = self.bot_a if bot_id == BotId.A else self.bot_b

        async def tick():
            await self.runners[bot_id].run(bot.run_once)

        return tick

    async def _sentiment_tick(self):
        await self.sentiment.calculate_mcs()
        await self.sentiment.clean_old_readings(self.config.SENTIMENT_RETENTION)

    async def _market_tick(self):
        tickers = await self.gateway.get_ticker(["BTCUSD", "ETHUSD"])
        logger.debug(
            "Market data refreshed",
            extra={pair: t.price for pair, t in tickers.items()},
        )

    async def _maintenance_loop(self):
        """Run midnight maintenance once per UTC day."""
        last_day = utc_now().date()
        while not self._shutdown.is_set():
            await asyncio.sleep(60)
            now = utc_now()
            if now.date() == last_day:
                continue
            last_day = now.date()
            try:
                await run_midnight_maintenance(self.snapshots, self.bot_b, now)
            except Exception as e:
                logger.error(f"Maintenance error: {e}", exc_info=True)

    async def _status_loop(self):
        """Periodically log status."""
        while not self._shutdown.is_set():
            await asyncio.sleep(60)
            try:
                state = await self.db.get_bot_state()
                summary = await self.db.get_pnl_summary()
                logger.info(
                    "Status update",
                    extra={
                        "bot_a_usd": f"${state.bot_a_virtual_usd:.2f}",
                        "bot_a_cycle": state.bot_a_cycle_number,
                        "bot_a_target": f"${state.bot_a_cycle_target:.2f}",
                        "bot_b_usd": f"${state.bot_b_virtual_usd:.2f}",
                        "bot_b_enabled": state.bot_b_enabled,
                        "total_trades": summary["total_trades"],
                        "total_pnl": f"${summary['total_pnl']:.2f}",
                        "mcs": await self.sentiment.get_latest_mcs(),
                    },
                )
            except Exception as e:
                logger.error(f"Status loop error: {e}")

    async def _run_dashboard(self):
        """Run the FastAPI app."""
        import uvicorn
        config = uvicorn.Config(
            dashboard_app,
            host="0.0.0.0",
            port=self.config.DASHBOARD_PORT,
            log_level="warning",
        )
        server = uvicorn.Server(config)
        logger.info(
            "Dashboard starting",
            extra={"port": self.config.DASHBOARD_PORT},
        )
        await server.serve()

    def shutdown(self):
        self._shutdown.set()


def main():
    config = Config.from_env()

    service = CharityBotService(config)

    loop = asyncio.new_event_loop()
    asyncio.set_event_loop(loop)

    def handle_signal(sig, frame):
        logger.info(f"Received signal {sig}")
        service.shutdown()

    signal.signal(signal.SIGINT, handle_signal)
    signal.signal(signal.SIGTERM, handle_signal)

    try:
        loop.run_until_complete(service.start())
    except KeyboardInterrupt:
        service.shutdown()
        loop.run_until_complete(asyncio.sleep(1))
    finally:
        loop.close()


if __name__ == "__main__":
    main()
