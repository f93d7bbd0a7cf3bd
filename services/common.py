"""
Common utilities and shared functions.
Symbol and currency normalization, transaction input validation, and currency formatting.
"""

from typing import Optional, Tuple

from config import get_settings
from errors import AuthenticationRequired, ValidationError
from models import ASSET_TYPES, TRANSACTION_TYPES


# Display symbol and decimals per currency
CURRENCY_FORMATS = {
    "USD": ("$", 2),
    "IDR": ("Rp", 0),  # Indonesian Rupiah
    "EUR": ("€", 2),
    "GBP": ("£", 2),
    "JPY": ("¥", 0),
}


def normalize_symbol(symbol: str) -> str:
    """
    Normalize a ticker symbol for storage and price lookups.

    Examples:
        >>> normalize_symbol(" aapl ")
        'AAPL'
        >>> normalize_symbol("bbca.jk")
        'BBCA.JK'
    """
    return (symbol or "").strip().upper()


def infer_currency(symbol: str) -> str:
    """
    Infer the trading currency from symbol format.

    Indonesian listings carry the ".JK" suffix; crypto pairs carry the quote
    currency after a dash ("BTC-IDR"). Everything else defaults to USD.
    """
    symbol = normalize_symbol(symbol)
    if symbol.endswith(".JK"):
        return "IDR"
    if "-" in symbol:
        quote = symbol.rsplit("-", 1)[1]
        if quote in CURRENCY_FORMATS:
            return quote
    return "USD"


def require_user(user_id: Optional[str]) -> str:
    """Reject operations that arrive without an authenticated owner."""
    if user_id is None or not str(user_id).strip():
        raise AuthenticationRequired("An authenticated user is required")
    return str(user_id)


def validate_transaction_input(
    symbol: str,
    transaction_type: str,
    quantity: float,
    price: float,
    asset_type: str,
    currency: str
) -> Tuple[str, str, str, str]:
    """
    Validate the fields of a new transaction.

    Returns:
        Tuple of normalized (symbol, transaction_type, asset_type, currency)

    Raises:
        ValidationError: If any field is missing or out of range
    """
    normalized_symbol = normalize_symbol(symbol)
    if not normalized_symbol:
        raise ValidationError("Missing required field: symbol")

    kind = (transaction_type or "").strip().lower()
    if kind not in TRANSACTION_TYPES:
        raise ValidationError(f"Invalid transaction type: {transaction_type!r}")

    asset = (asset_type or "").strip().lower()
    if asset not in ASSET_TYPES:
        raise ValidationError(f"Invalid asset type: {asset_type!r}")

    code = (currency or "").strip().upper()
    if code not in get_settings().supported_currencies:
        raise ValidationError(f"Unsupported currency: {currency!r}")

    if quantity is None or not quantity > 0:
        raise ValidationError("Quantity must be greater than zero")
    if price is None or not price > 0:
        raise ValidationError("Price must be greater than zero")

    return normalized_symbol, kind, asset, code


def currency_decimals(currency: str) -> int:
    """Number of decimals conventionally shown for a currency (defaults to 2)."""
    return CURRENCY_FORMATS.get(currency, (currency, 2))[1]


def format_currency(amount: float, currency: str = "USD") -> str:
    """
    Format an amount with its currency symbol and thousands separators.

    Examples:
        >>> format_currency(1234.5, "USD")
        '$1,234.50'
        >>> format_currency(16460000, "IDR")
        'Rp16,460,000'
    """
    symbol, decimals = CURRENCY_FORMATS.get(currency, (currency, 2))
    sign = "-" if amount < 0 else ""
    return f"{sign}{symbol}{abs(amount):,.{decimals}f}"
