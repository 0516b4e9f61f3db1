"""Heuristic mapping from free-text investment names to ticker symbols.

Users record holdings as free text ("VFV - S&P 500 ETF", "Petrobras PN",
"SHOP.TO"). The mapper runs an ordered pipeline and the first rule that
produces a symbol wins:

1. The name already carries a known exchange suffix.
2. A curated alias, looked up in the table for the holding's currency.
3. The first token looks like a ticker; the currency's exchange suffix
   is appended.

The mapper is pure: no I/O, no state beyond its tables.
"""

from __future__ import annotations

import re
from collections.abc import Mapping

from followinvest.errors import UnmappableSymbol

# Conventional Yahoo suffix for each currency's home market
EXCHANGE_SUFFIXES: dict[str, str] = {
    "CAD": ".TO",
    "BRL": ".SA",
    "USD": "",
}

# Curated aliases per currency, checked in order
DEFAULT_ALIASES: dict[str, tuple[tuple[str, str], ...]] = {
    "CAD": (
        ("SHOPIFY", "SHOP.TO"),
        ("SHOP", "SHOP.TO"),
        ("ROYAL BANK", "RY.TO"),
        ("RY", "RY.TO"),
        ("TD", "TD.TO"),
        ("CNR", "CNR.TO"),
        ("VFV", "VFV.TO"),
        ("XQQ", "XQQ.TO"),
        ("ZWB", "ZWB.TO"),
        ("BRE", "BRE.TO"),
    ),
    "BRL": (
        ("PETROBRAS", "PETR4.SA"),
        ("PETR4", "PETR4.SA"),
        ("ITAU", "ITUB4.SA"),
        ("ITUB4", "ITUB4.SA"),
        ("RBRF11", "RBRF11.SA"),
        ("HGLG11", "HGLG11.SA"),
        ("BTLG11", "BTLG11.SA"),
    ),
}

_TOKEN_SEPARATORS = re.compile(r"[ \-:|]+")
_MIN_TICKER_LEN = 2
_MAX_TICKER_LEN = 6


def _contains_word(name: str, alias: str) -> bool:
    """Whether ``alias`` appears in ``name`` delimited by non-alphanumerics."""
    pattern = rf"(?<![A-Z0-9]){re.escape(alias)}(?![A-Z0-9])"
    return re.search(pattern, name) is not None


class SymbolMapper:
    """Ordered rule pipeline turning investment names into symbols."""

    def __init__(
        self,
        aliases: Mapping[str, tuple[tuple[str, str], ...]] | None = None,
        suffixes: Mapping[str, str] | None = None,
    ) -> None:
        self.aliases = dict(DEFAULT_ALIASES if aliases is None else aliases)
        self.suffixes = dict(EXCHANGE_SUFFIXES if suffixes is None else suffixes)
        self._known_suffixes = tuple(s for s in self.suffixes.values() if s)

    def map_to_symbol(self, name: str, currency: str) -> str | None:
        """Map an investment name to a ticker symbol.

        Args:
            name: Free-text investment name.
            currency: Currency the holding is denominated in.

        Returns:
            The symbol, or None when every rule is exhausted.

        """
        normalized = (name or "").strip().upper()
        currency = (currency or "").strip().upper()
        if not normalized:
            return None

        if normalized.endswith(self._known_suffixes):
            return normalized

        for alias, symbol in self.aliases.get(currency, ()):
            if _contains_word(normalized, alias):
                return symbol

        return self._symbol_from_first_token(normalized, currency)

    def _symbol_from_first_token(self, normalized: str, currency: str) -> str | None:
        tokens = [t for t in _TOKEN_SEPARATORS.split(normalized) if t]
        if not tokens:
            return None
        candidate = tokens[0]
        if not (_MIN_TICKER_LEN <= len(candidate) <= _MAX_TICKER_LEN):
            return None
        if not candidate.isalnum():
            return None
        suffix = self.suffixes.get(currency)
        # No convention for this market; guessing would query the wrong exchange
        if suffix is None:
            return None
        return candidate + suffix

    def resolve_symbol(self, name: str, currency: str) -> str:
        """Strict variant of ``map_to_symbol``.

        Raises:
            UnmappableSymbol: If no rule produced a symbol.

        """
        symbol = self.map_to_symbol(name, currency)
        if symbol is None:
            raise UnmappableSymbol(name, currency)
        return symbol
