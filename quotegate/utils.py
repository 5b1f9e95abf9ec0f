from datetime import UTC, datetime


def utc_now_iso() -> str:
    return datetime.now(tz=UTC).isoformat()


def normalize_symbol(symbol: str | None) -> str:
    return (symbol or "").strip().upper()
