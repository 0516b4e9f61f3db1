"""Market data validation utilities.

Integrity checks applied to incoming bars before they are cached, so a
malformed provider row never becomes the last-known price for a symbol.

"""

from __future__ import annotations

from followinvest.models import SecurityPrice


def validate_bar(bar: SecurityPrice) -> list[str]:
    """Validate one daily bar.

    Checks:
    - Prices present are positive
    - High >= Low when both are present
    - Close is within [Low, High] when both are present
    - Volume is non-negative

    Args:
        bar: Bar to check.

    Returns:
        List of human-readable issues. Empty list if the bar is valid.

    """
    issues = [
        f"Non-positive {name} ({value})"
        for name, value in (
            ("open", bar.open),
            ("high", bar.high),
            ("low", bar.low),
            ("close", bar.close),
        )
        if value is not None and value <= 0
    ]

    if bar.high is not None and bar.low is not None:
        if bar.high < bar.low:
            issues.append(f"High is less than Low (high={bar.high}, low={bar.low})")
        elif not bar.low <= bar.close <= bar.high:
            issues.append(
                f"Close outside [Low, High] range "
                f"(close={bar.close}, low={bar.low}, high={bar.high})"
            )

    if bar.volume is not None and bar.volume < 0:
        issues.append(f"Negative volume ({bar.volume})")

    return issues
