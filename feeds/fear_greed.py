"""Crypto Fear & Greed index from alternative.me."""
import logging
from datetime import datetime, timezone
from typing import Optional

import httpx

from shared.schemas import FearGreedReading

logger = logging.getLogger(__name__)

FNG_URL = "https://api.alternative.me/fng/"


class FearGreedClient:
    """Fetches the latest Fear & Greed index value."""

    def __init__(
        self,
        url: str = FNG_URL,
        timeout: float = 10.0,
        transport: Optional[httpx.AsyncBaseTransport] = None,
    ):
        self.url = url
        self.timeout = timeout
        self._transport = transport

    async def fetch(self) -> FearGreedReading:
        """Return the latest reading.

        Raises httpx.HTTPError on transport failure and ValueError on a
        malformed payload.
        """
        async with httpx.AsyncClient(timeout=self.timeout, transport=self._transport) as client:
            resp = await client.get(
                self.url,
                params={"limit": 1},
                headers={"User-Agent": "charity-bot/1.0"},
            )
            resp.raise_for_status()
            payload = resp.json()

        data = payload.get("data") or []
        if not data:
            raise ValueError("Fear & Greed response has no data")
        entry = data[0]
        try:
            value = int(entry["value"])
        except (KeyError, TypeError, ValueError) as e:
            raise ValueError(f"Invalid Fear & Greed value: {entry.get('value')!r}") from e
        if not 0 <= value <= 100:
            raise ValueError(f"Fear & Greed value out of range: {value}")

        timestamp = datetime.now(timezone.utc)
        if entry.get("timestamp"):
            timestamp = datetime.fromtimestamp(int(entry["timestamp"]), tz=timezone.utc)

        reading = FearGreedReading(
            value=value,
            classification=entry.get("value_classification", ""),
            timestamp=timestamp,
        )
        logger.info(
            "Fear & Greed fetched",
            extra={"value": reading.value, "classification": reading.classification},
        )
        return reading
