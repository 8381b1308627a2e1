"""Asset-code priority table and balance resolution.

Kraken reports the same asset under several historical codes (``XXBT``,
``XBT``, ``BTC``). Display balances are resolved by walking one priority
list per asset and taking the first usable value.
"""
from decimal import Decimal, InvalidOperation

DEFAULT_ASSET_CODES: dict[str, list[str]] = {
    "USD": ["ZUSD", "USD"],
    "BTC": ["XXBT", "XBT", "BTC"],
    "ETH": ["XETH", "ETH"],
}

# Internal pair name -> (request code, response keys Kraken may use)
PAIRS: dict[str, tuple[str, list[str]]] = {
    "BTCUSD": ("XBTUSD", ["XXBTZUSD", "XBTUSD"]),
    "ETHUSD": ("ETHUSD", ["XETHZUSD", "ETHUSD"]),
}

# Used when the ticker cannot be reached
FALLBACK_PRICES: dict[str, float] = {
    "BTCUSD": 45000.25,
    "ETHUSD": 3000.12,
}


def normalize_pair(pair: str) -> str:
    """'BTC/USD', 'btcusd', 'XBTUSD' -> 'BTCUSD'."""
    compact = pair.replace("/", "").replace("-", "").upper()
    if compact.startswith("XBT"):
        compact = "BTC" + compact[3:]
    return compact


def display_pair(pair: str) -> str:
    """'BTCUSD' -> 'BTC/USD'."""
    compact = normalize_pair(pair)
    return f"{compact[:-3]}/{compact[-3:]}"


def _is_usable(value) -> bool:
    if value is None:
        return False
    text = str(value).strip()
    if not text:
        return False
    try:
        return Decimal(text) != 0
    except InvalidOperation:
        return False


def resolve_balance(balances: dict[str, str], codes: list[str]) -> str:
    """Return the first present, non-empty, non-zero balance in ``codes``, else "0"."""
    for code in codes:
        value = balances.get(code)
        if _is_usable(value):
            return str(value).strip()
    return "0"


def resolve_all(balances: dict[str, str], table: dict[str, list[str]]) -> dict[str, str]:
    return {asset: resolve_balance(balances, codes) for asset, codes in table.items()}
