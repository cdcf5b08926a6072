"""
Price list service.

Loads the static product price list and resolves transactions to the
product they most likely paid for.
"""

from __future__ import annotations

import csv
from decimal import Decimal, InvalidOperation
from pathlib import Path
from typing import TYPE_CHECKING, Iterable, Optional

import structlog

from paysync.core.errors import PriceListLoadError, ProductNotFoundError
from paysync.prices.fuzzy import fuzzy_match
from paysync.prices.models import Price

if TYPE_CHECKING:
    from paysync.cache.memory import InMemoryCache

logger = structlog.get_logger(__name__)

PRICE_LIST_DELIMITER = ";"
PRICE_LIST_COLUMNS = 3

# Relative width of the price window used by the tolerance strategy
PRICE_TOLERANCE = Decimal("0.05")


def load_prices(path: str | Path) -> list[Price]:
    """
    Read a semicolon separated price list.

    The first row is a header (``Product;Price;Currency``) and is skipped.
    Every following row must have exactly three columns and a decimal price.

    Args:
        path: Location of the price list

    Returns:
        Price entries in file order

    Raises:
        PriceListLoadError: If the file is missing or any row is malformed
    """
    try:
        with open(path, newline="", encoding="utf-8") as f:
            rows = list(csv.reader(f, delimiter=PRICE_LIST_DELIMITER))
    except OSError as e:
        raise PriceListLoadError(f"failed to open price list {path}: {e}") from e
    except csv.Error as e:
        raise PriceListLoadError(f"failed to read price list {path}: {e}") from e

    # Trailing blank lines are not rows
    while rows and not any(cell.strip() for cell in rows[-1]):
        rows.pop()

    if len(rows) < 2:
        raise PriceListLoadError(
            "price list must contain at least a header and one data row"
        )

    prices: list[Price] = []
    for line_no, row in enumerate(rows[1:], start=2):
        if len(row) != PRICE_LIST_COLUMNS:
            raise PriceListLoadError(
                f"invalid record at line {line_no}: expected {PRICE_LIST_COLUMNS} "
                f"columns, got {len(row)}"
            )
        try:
            value = Decimal(row[1].strip())
        except InvalidOperation as e:
            raise PriceListLoadError(
                f"invalid price value at line {line_no}: {row[1]!r}"
            ) from e
        if not value.is_finite():
            raise PriceListLoadError(f"invalid price value at line {line_no}: {row[1]!r}")

        prices.append(
            Price(product=row[0].strip(), price=value, currency=row[2].strip())
        )

    return prices


def _to_decimal(amount: Decimal | float | int | str) -> Decimal:
    if isinstance(amount, Decimal):
        return amount
    return Decimal(str(amount))


class PriceService:
    """Holds the immutable price list and matches transactions against it."""

    def __init__(self, prices: Iterable[Price]):
        self._prices: tuple[Price, ...] = tuple(prices)

    @classmethod
    def from_csv(
        cls, path: str | Path, cache: Optional["InMemoryCache"] = None
    ) -> "PriceService":
        """
        Build the service from a price list file.

        Args:
            path: Location of the price list
            cache: When given, every price is also stored in it without expiry

        Raises:
            PriceListLoadError: If the file cannot be loaded
        """
        prices = load_prices(path)
        service = cls(prices)
        if cache is not None:
            service.publish(cache)

        logger.info("prices.loaded", path=str(path), count=len(prices))
        return service

    def publish(self, cache: "InMemoryCache") -> None:
        """Store all prices in the cache, keyed by product name."""
        for price in self._prices:
            cache.set_price(price.product, price)

    # ------------------------------------------------------------------
    # Lookups
    # ------------------------------------------------------------------

    def all_prices(self) -> list[Price]:
        return list(self._prices)

    def all_products(self) -> list[str]:
        return [p.product for p in self._prices]

    def get_price_by_product(self, product: str) -> Price:
        """Case-insensitive lookup by product name."""
        wanted = product.strip().casefold()
        for price in self._prices:
            if price.product.casefold() == wanted:
                return price
        raise ProductNotFoundError(f"product '{product.strip()}' not found")

    def get_products_by_price(self, price: Decimal | float | int | str) -> list[Price]:
        """All products listed at exactly ``price``."""
        wanted = _to_decimal(price)
        matching = [p for p in self._prices if p.price == wanted]
        if not matching:
            raise ProductNotFoundError(f"no products found with price {wanted:.2f}")
        return matching

    def get_products_by_price_range(
        self,
        min_price: Decimal | float | int | str,
        max_price: Decimal | float | int | str,
    ) -> list[Price]:
        """All products priced within ``[min_price, max_price]``."""
        low = _to_decimal(min_price)
        high = _to_decimal(max_price)
        if low > high:
            raise ValueError("minimum price cannot be greater than maximum price")
        return [p for p in self._prices if low <= p.price <= high]

    # ------------------------------------------------------------------
    # Matching
    # ------------------------------------------------------------------

    def find_best_match(
        self, amount: Decimal | float | int | str, description: str | None = ""
    ) -> Optional[Price]:
        """
        Find the product a transaction most likely paid for.

        Strategies, first success wins:
        1. exactly one product at the exact amount
        2. first product whose name fuzzy-matches the description
        3. several products at the exact amount: the first whose name
           matches the description, otherwise the first of them
        4. products within ±5% of the amount: first description match,
           otherwise the closest price

        Args:
            amount: Transaction amount in major units
            description: Transaction description

        Returns:
            Matched price entry, or None when nothing fits
        """
        value = _to_decimal(amount)
        description = description or ""

        exact = [p for p in self._prices if p.price == value]
        if len(exact) == 1:
            return exact[0]

        if description:
            for price in self._prices:
                if fuzzy_match(description, price.product):
                    return price

        if len(exact) > 1 and description:
            for price in exact:
                if fuzzy_match(description, price.product):
                    return price
            # Ambiguous amount and no description hit
            return exact[0]

        return self._match_within_tolerance(value, description)

    def _match_within_tolerance(self, value: Decimal, description: str) -> Optional[Price]:
        tolerance = value * PRICE_TOLERANCE
        low, high = value - tolerance, value + tolerance
        if low > high:
            return None

        in_range = [p for p in self._prices if low <= p.price <= high]
        if not in_range:
            return None

        if description:
            for price in in_range:
                if fuzzy_match(description, price.product):
                    return price

        closest: Optional[Price] = None
        smallest_diff: Optional[Decimal] = None
        for price in in_range:
            diff = abs(value - price.price)
            if smallest_diff is None or diff < smallest_diff:
                smallest_diff = diff
                closest = price
        return closest
