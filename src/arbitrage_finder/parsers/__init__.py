"""Marketplace search page parsers."""

from .registry import (
    MarketplaceParser,
    ParserContaminationError,
    parse_search_page,
    select_parser_by_hostname,
    validate_parser_selection,
)

__all__ = [
    "MarketplaceParser",
    "ParserContaminationError",
    "parse_search_page",
    "select_parser_by_hostname",
    "validate_parser_selection",
]
