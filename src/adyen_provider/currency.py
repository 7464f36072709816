"""ISO 4217 currency helpers and minor-unit conversion."""

from decimal import Decimal
from typing import Dict, Union

# Active ISO 4217 codes that use the default of two minor-unit digits
_TWO_DECIMAL_CODES = (
    "AED AFN ALL AMD ANG AOA ARS AUD AWG AZN BAM BBD BDT BGN BMD BND BOB BRL "
    "BSD BTN BWP BYN BZD CAD CDF CHF CNY COP CRC CUP CVE CZK DKK DOP DZD EGP "
    "ERN ETB EUR FJD FKP GBP GEL GHS GIP GMD GTQ GYD HKD HNL HTG HUF IDR ILS "
    "INR IRR JMD KES KGS KHR KPW KYD KZT LAK LBP LKR LRD LSL MAD MDL MGA MKD "
    "MMK MNT MOP MRU MUR MVR MWK MXN MYR MZN NAD NGN NIO NOK NPR NZD PAB PEN "
    "PGK PHP PKR PLN QAR RON RSD RUB SAR SBD SCR SDG SEK SGD SHP SLE SOS SRD "
    "SSP STN SVC SYP SZL THB TJS TMT TOP TRY TTD TWD TZS UAH USD UYU UZS VES "
    "WST XCD YER ZAR ZMW ZWL"
).split()

_ZERO_DECIMAL_CODES = (
    "BIF CLP DJF GNF ISK JPY KMF KRW PYG RWF UGX UYI VND VUV XAF XOF XPF"
).split()

_THREE_DECIMAL_CODES = "BHD IQD JOD KWD LYD OMR TND".split()

CURRENCY_MINOR_UNITS: Dict[str, int] = {
    **{code: 2 for code in _TWO_DECIMAL_CODES},
    **{code: 0 for code in _ZERO_DECIMAL_CODES},
    **{code: 3 for code in _THREE_DECIMAL_CODES},
    "CLF": 4,
    "UYW": 4,
}


def normalize_currency_code(currency_code: str) -> str:
    """Upper-case a currency code and make sure it is a known ISO 4217 code.

    Raises:
        ValueError: If the code is not an ISO 4217 currency code.
    """
    code = (currency_code or "").strip().upper()
    if code not in CURRENCY_MINOR_UNITS:
        raise ValueError(f"Currency must be a valid ISO 4217 currency code: {currency_code!r}")
    return code


def is_valid_currency_code(currency_code: str) -> bool:
    return (currency_code or "").strip().upper() in CURRENCY_MINOR_UNITS


def minor_unit_digits(currency_code: str) -> int:
    return CURRENCY_MINOR_UNITS[normalize_currency_code(currency_code)]


def amount_to_minor_units(amount: Union[Decimal, int, str], currency_code: str) -> int:
    """Convert a major-unit amount into the currency's smallest unit.

    ``amount_to_minor_units(Decimal("19.99"), "USD") == 1999``

    Raises:
        ValueError: If the currency is unknown or the amount is finer than
            the currency's minor unit.
    """
    digits = minor_unit_digits(currency_code)
    scaled = Decimal(str(amount)).scaleb(digits)
    if scaled != scaled.to_integral_value():
        raise ValueError(f"Amount {amount} has more than {digits} decimal place(s) for {currency_code}")
    return int(scaled)


def amount_from_minor_units(value: int, currency_code: str) -> Decimal:
    """Convert minor units back into a major-unit Decimal.

    ``amount_from_minor_units(1999, "USD") == Decimal("19.99")``
    """
    digits = minor_unit_digits(currency_code)
    return Decimal(int(value)).scaleb(-digits)
