"""Market confidence score (MCS) from Fear & Greed plus an EMA-200 trend."""
import logging
import time
from datetime import timedelta
from typing import Callable, Optional

import aiosqlite
import httpx

from execution.kraken_client import KrakenGateway
from feeds.fear_greed import FearGreedClient
from shared.schemas import FearGreedReading, SentimentReading, TrendAnalysis, TrendDirection, utc_now
from storage.db import Database
from strategy.indicators import clamp, ema, percent_change
from strategy.thresholds import (
    EMA_PERIOD,
    FGI_BUCKETS,
    FGI_TOP_SCORE,
    NEUTRAL_FGI,
    NEUTRAL_MCS,
    TREND_DEADBAND,
    TREND_INTERVAL_MINUTES,
    TREND_SCORE,
)

logger = logging.getLogger(__name__)


def map_fgi_to_base(fgi: int) -> float:
    """Map a 0-100 Fear & Greed value onto the five base score buckets."""
    for upper, score in FGI_BUCKETS:
        if fgi <= upper:
            return score
    return FGI_TOP_SCORE


def classify_trend(difference: float) -> TrendDirection:
    if difference > TREND_DEADBAND:
        return TrendDirection.BULLISH
    if difference < -TREND_DEADBAND:
        return TrendDirection.BEARISH
    return TrendDirection.NEUTRAL


def trend_bucket(price: float, ema_value: float) -> float:
    """+0.2 above the deadband, -0.2 below it, 0 inside."""
    trend = classify_trend(percent_change(price, ema_value))
    if trend == TrendDirection.BULLISH:
        return TREND_SCORE
    if trend == TrendDirection.BEARISH:
        return -TREND_SCORE
    return 0.0


def combine_mcs(base: float, trend: float) -> float:
    return round(clamp(base + trend, 0.0, 1.0), 4)


class SentimentReader:
    """Computes and persists the market confidence score."""

    def __init__(
        self,
        db: Database,
        gateway: KrakenGateway,
        fear_greed: FearGreedClient,
        fetch_interval: float = 900.0,
        trend_pair: str = "BTCUSD",
        clock: Callable[[], float] = time.monotonic,
    ):
        self.db = db
        self.gateway = gateway
        self.fear_greed = fear_greed
        self.fetch_interval = fetch_interval
        self.trend_pair = trend_pair
        self._clock = clock
        self._last_fetch: Optional[float] = None
        self._last_reading: Optional[FearGreedReading] = None

    async def _last_known_fgi(self) -> Optional[int]:
        if self._last_reading is not None:
            return self._last_reading.value
        latest = await self.db.get_latest_sentiment()
        return latest.fgi_value if latest else None

    async def fetch_fear_greed(self) -> int:
        """Latest index value, hitting the API at most once per fetch interval."""
        now = self._clock()
        if self._last_fetch is not None and now - self._last_fetch < self.fetch_interval:
            known = await self._last_known_fgi()
            if known is not None:
                return known

        self._last_fetch = now
        try:
            reading = await self.fear_greed.fetch()
        except (httpx.HTTPError, ValueError) as e:
            logger.warning("Fear & Greed fetch failed", extra={"error": str(e)})
            known = await self._last_known_fgi()
            return known if known is not None else NEUTRAL_FGI
        self._last_reading = reading
        return reading.value

    async def get_trend_analysis(self, pair: Optional[str] = None) -> Optional[TrendAnalysis]:
        """Close vs EMA-200 on hourly candles; None without enough history."""
        pair = pair or self.trend_pair
        candles = await self.gateway.get_ohlc(pair, TREND_INTERVAL_MINUTES)
        closes = [c.close for c in candles]
        ema_value = ema(closes, EMA_PERIOD)
        if ema_value is None:
            logger.warning(
                "Not enough candles for trend",
                extra={"pair": pair, "candles": len(closes), "required": EMA_PERIOD},
            )
            return None
        current = closes[-1]
        difference = percent_change(current, ema_value)
        return TrendAnalysis(
            pair=pair,
            current_price=current,
            ema200=ema_value,
            difference_pct=difference * 100,
            trend=classify_trend(difference),
        )

    async def calculate_trend_score(self) -> float:
        analysis = await self.get_trend_analysis(self.trend_pair)
        if analysis is None:
            return 0.0
        return trend_bucket(analysis.current_price, analysis.ema200)

    async def calculate_mcs(self) -> float:
        """Compute, persist and return the MCS; 0.5 on any failure."""
        try:
            fgi = await self.fetch_fear_greed()
            trend = await self.calculate_trend_score()
            mcs = combine_mcs(map_fgi_to_base(fgi), trend)
            await self.db.log_sentiment(
                SentimentReading(fgi_value=fgi, trend_score=trend, mcs=mcs)
            )
        except Exception as e:
            logger.error(f"MCS calculation failed: {e}", exc_info=True)
            return NEUTRAL_MCS
        logger.info("MCS calculated", extra={"fgi": fgi, "trend_score": trend, "mcs": mcs})
        return mcs

    async def get_latest_mcs(self) -> float:
        try:
            latest = await self.db.get_latest_sentiment()
        except aiosqlite.Error as e:
            logger.error(f"Failed to read latest MCS: {e}")
            return NEUTRAL_MCS
        return latest.mcs if latest else NEUTRAL_MCS

    async def get_statistics(self, days: int = 7) -> dict:
        stats = await self.db.get_sentiment_stats(utc_now() - timedelta(days=days))
        result = {"days": days, "readings": stats["readings"]}
        for key in ("avg_mcs", "min_mcs", "max_mcs", "avg_fgi", "min_fgi", "max_fgi"):
            value = stats[key]
            result[key] = round(value, 4) if value is not None else None
        return result

    async def clean_old_readings(self, keep: int = 1000) -> int:
        deleted = await self.db.trim_sentiment(keep)
        if deleted:
            logger.info("Old sentiment readings removed", extra={"deleted": deleted, "kept": keep})
        return deleted

    def get_status(self) -> dict:
        age = None
        if self._last_fetch is not None:
            age = round(self._clock() - self._last_fetch, 1)
        return {
            "last_fgi": self._last_reading.value if self._last_reading else None,
            "classification": self._last_reading.classification if self._last_reading else None,
            "seconds_since_fetch": age,
            "fetch_interval": self.fetch_interval,
            "trend_pair": self.trend_pair,
        }
