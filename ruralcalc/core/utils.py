from datetime import date


def format_brl(value: float) -> str:
    """
    Formats a currency amount in Brazilian notation.
    Example: 1234567.891 -> R$ 1.234.567,89
    """
    sign = "-" if value < 0 else ""
    integer, decimals = f"{abs(value):,.2f}".split(".")
    return f"{sign}R$ {integer.replace(',', '.')},{decimals}"


def format_rate(rate: float, digits: int = 2) -> str:
    """
    Formats a percentage rate with the given precision.
    Example: 12.5 -> 12.50%
    """
    return f"{rate:.{digits}f}%"


def days_between(start: date, end: date) -> int:
    """Calendar days from start to end (negative when end precedes start)."""
    return (end - start).days


def months_between(start: date, end: date) -> int:
    """Calendar months from start to end, ignoring the day of month."""
    return (end.year - start.year) * 12 + (end.month - start.month)
