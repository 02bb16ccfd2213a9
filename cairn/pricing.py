"""Rough US monthly storage cost estimates in dollars per GB-month.

The rates are a snapshot of public list prices and go stale; refresh them
when cutting a release.
"""

from types import MappingProxyType

_DEFAULT_CLASS = "STANDARD"

_RATES = (
    (_DEFAULT_CLASS, 0.023),
    ("INTELLIGENT_TIERING", 0.023),
    ("REDUCED_REDUNDANCY", 0.024),
    ("STANDARD_IA", 0.0125),
    ("ONEZONE_IA", 0.01),
    ("GLACIER_IR", 0.004),
    ("GLACIER", 0.0036),
    ("DEEP_ARCHIVE", 0.00099),
)

# A blank class is stored by S3 as the default tier, so it shares that rate.
USD_PER_GB_MONTH = MappingProxyType(
    {**dict(_RATES), "": dict(_RATES)[_DEFAULT_CLASS]}
)

_GIB = 1 << 30


def monthly_estimate_usd(storage_class, bytes_total):
    """Return the estimated monthly cost of ``bytes_total`` in ``storage_class``.

    Blank or whitespace-only classes count as STANDARD, and classes missing
    from the table are charged at the STANDARD rate.
    """
    name = (storage_class or "").strip() or _DEFAULT_CLASS
    try:
        rate = USD_PER_GB_MONTH[name]
    except KeyError:
        rate = USD_PER_GB_MONTH[_DEFAULT_CLASS]
    return rate * (bytes_total / _GIB)


def disclaimer():
    """Return the caveat shown alongside cost estimates."""
    return (
        "estimated monthly storage cost "
        "(US$, stale table in cairn/pricing.py; not a quote)"
    )


def format_usd(value):
    """Render ``value`` as dollars with four decimal places."""
    return "${:.4f}".format(value)