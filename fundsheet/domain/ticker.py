"""Ticker symbol helpers.

Symbols in the workbook are stored with an exchange suffix ("JFC.PSE").
Users often type the bare symbol, so everything that reads a ticker from a
table runs it through normalize_ticker_symbol first.
"""

from __future__ import annotations

from typing import Any, Iterable


def normalize_ticker_symbol(value: Any, suffix: str = ".PSE") -> str:
    """Upper-case a symbol and append the exchange suffix when it has none.

    Returns an empty string for blank input.

    Examples:
        >>> normalize_ticker_symbol(" jfc ")
        'JFC.PSE'
        >>> normalize_ticker_symbol("AAPL.US")
        'AAPL.US'
    """
    if value is None:
        return ""
    symbol = str(value).strip().upper()
    if not symbol:
        return ""
    if "." in symbol or not suffix:
        return symbol
    return f"{symbol}{suffix.upper()}"


def base_ticker(symbol: str) -> str:
    """Strip the exchange suffix: 'JFC.PSE' -> 'JFC'."""
    return str(symbol or "").strip().upper().split(".", 1)[0]


def unique_symbols(values: Iterable[Any], suffix: str = ".PSE") -> list[str]:
    """Normalize symbols, dropping blanks and repeats while keeping order."""
    seen: set[str] = set()
    result: list[str] = []
    for value in values:
        symbol = normalize_ticker_symbol(value, suffix)
        if symbol and symbol not in seen:
            seen.add(symbol)
            result.append(symbol)
    return result
