"""Read-only selectors returning frozen records."""

from costing_kernel.selectors.base import BaseSelector
from costing_kernel.selectors.quote_selector import QuoteSelector

__all__ = ["BaseSelector", "QuoteSelector"]
