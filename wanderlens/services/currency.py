"""Local currency lookup for a resolved country."""
from typing import Optional

DEFAULT_CURRENCY = "USD"

COUNTRY_CURRENCY = {
    "US": "USD", "GB": "GBP", "EU": "EUR", "JP": "JPY", "CN": "CNY",
    "KR": "KRW", "IN": "INR", "AU": "AUD", "CA": "CAD", "CH": "CHF",
    "HK": "HKD", "SG": "SGD", "TH": "THB", "VN": "VND", "PH": "PHP",
    "MY": "MYR", "ID": "IDR", "TW": "TWD", "NZ": "NZD", "MX": "MXN",
    "BR": "BRL", "ZA": "ZAR", "AE": "AED", "SA": "SAR", "RU": "RUB",
    "TR": "TRY", "PL": "PLN", "SE": "SEK", "NO": "NOK", "DK": "DKK",
    "CZ": "CZK", "HU": "HUF",
    # Eurozone
    "DE": "EUR", "FR": "EUR", "IT": "EUR", "ES": "EUR", "NL": "EUR",
    "BE": "EUR", "AT": "EUR", "PT": "EUR", "IE": "EUR", "FI": "EUR",
    "GR": "EUR",
}

CURRENCY_SYMBOLS = {
    "USD": "$", "EUR": "€", "GBP": "£", "JPY": "¥", "CNY": "¥",
    "KRW": "₩", "INR": "₹", "AUD": "A$", "CAD": "C$", "CHF": "CHF",
    "HKD": "HK$", "SGD": "S$", "THB": "฿", "VND": "₫", "PHP": "₱",
    "MYR": "RM", "IDR": "Rp", "TWD": "NT$", "NZD": "NZ$", "MXN": "MX$",
    "BRL": "R$", "ZAR": "R", "AED": "د.إ", "SAR": "﷼", "RUB": "₽",
    "TRY": "₺", "PLN": "zł", "SEK": "kr", "NOK": "kr", "DKK": "kr",
    "CZK": "Kč", "HUF": "Ft",
}

CURRENCY_NAMES = {
    "USD": "US Dollar", "EUR": "Euro", "GBP": "British Pound", "JPY": "Japanese Yen",
    "CNY": "Chinese Yuan", "KRW": "South Korean Won", "INR": "Indian Rupee",
    "AUD": "Australian Dollar", "CAD": "Canadian Dollar", "CHF": "Swiss Franc",
    "HKD": "Hong Kong Dollar", "SGD": "Singapore Dollar", "THB": "Thai Baht",
    "VND": "Vietnamese Dong", "PHP": "Philippine Peso", "MYR": "Malaysian Ringgit",
    "IDR": "Indonesian Rupiah", "TWD": "New Taiwan Dollar", "NZD": "New Zealand Dollar",
    "MXN": "Mexican Peso", "BRL": "Brazilian Real", "ZAR": "South African Rand",
    "AED": "UAE Dirham", "SAR": "Saudi Riyal", "RUB": "Russian Ruble",
    "TRY": "Turkish Lira", "PLN": "Polish Zloty", "SEK": "Swedish Krona",
    "NOK": "Norwegian Krone", "DKK": "Danish Krone", "CZK": "Czech Koruna",
    "HUF": "Hungarian Forint",
}

NO_DECIMAL_CURRENCIES = {"JPY", "KRW", "VND", "IDR", "HUF"}


def currency_for_country(country_code: Optional[str]) -> str:
    if not country_code:
        return DEFAULT_CURRENCY
    return COUNTRY_CURRENCY.get(country_code.upper(), DEFAULT_CURRENCY)


def currency_name(currency_code: str) -> str:
    return CURRENCY_NAMES.get(currency_code, currency_code)


def format_currency(amount: float, currency_code: str) -> str:
    symbol = CURRENCY_SYMBOLS.get(currency_code, currency_code)
    if currency_code in NO_DECIMAL_CURRENCIES:
        return f"{symbol}{round(amount):,}"
    return f"{symbol}{amount:,.2f}"
