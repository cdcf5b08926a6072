"""Product price list and transaction to product matching."""

from paysync.prices.models import Price
from paysync.prices.fuzzy import fuzzy_match
from paysync.prices.service import PriceService, load_prices

__all__ = ["Price", "PriceService", "load_prices", "fuzzy_match"]
