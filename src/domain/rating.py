"""
Driver rating arithmetic.

A driver's rating is an exponential moving average with weight 1/2:
every finalised ride pulls the rating halfway towards the ride's rating.
This is the defined semantics, not an approximation of a mean over rides.
"""

from __future__ import annotations

from typing import Optional

MIN_RATE = 0.0
MAX_RATE = 10.0
DEFAULT_RATE = 10.0


def aggregate_rate(current: Optional[float], ride_rate: Optional[float]) -> float:
    """Return the driver's rate after a ride rated *ride_rate*.

    ``None`` on either side stands for the default rating.
    """
    current = DEFAULT_RATE if current is None else float(current)
    ride_rate = DEFAULT_RATE if ride_rate is None else float(ride_rate)
    for value in (current, ride_rate):
        if not MIN_RATE <= value <= MAX_RATE:
            raise ValueError(f"Rating {value} outside [{MIN_RATE}, {MAX_RATE}]")
    return (current + ride_rate) / 2
