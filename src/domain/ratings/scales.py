"""Conversions between Glicko ratings and the game-facing score scales."""

from __future__ import annotations

from math import log, log10, pi, sqrt
from typing import Final

GXE_SCALE: Final[float] = 25000.0
_LN10: Final[float] = log(10.0)


def qr_to_glicko(qr: float) -> float:
    qr = max(0.0, qr)
    return 1.28 * qr * qr + 500.0


def glicko_to_qr(rating: float) -> float:
    return sqrt(max(0.0, rating - 500.0) / 1.28)


def _gxe_denominator(rd: float) -> float:
    return sqrt(3.0 * _LN10 * _LN10 * rd * rd + 2500.0 * (64.0 * pi * pi + 147.0 * _LN10 * _LN10))


def glixare(rating: float, rd: float) -> float:
    """GLIXARE: estimated chance (scaled to 25000) of beating a random 1500/350 opponent.

    See https://www.smogon.com/forums/threads/gxe-glixare-a-much-better-way-of-estimating-a-players-overall-rating-than-shoddys-cre.51169/
    """
    exponent = ((1500.0 - rating) * pi) / _gxe_denominator(rd)
    return GXE_SCALE / (1.0 + 10.0**exponent)


def gxe_to_glicko(gxe: float, rd: float) -> float:
    """Inverse of :func:`glixare` for a fixed ``rd``; ``gxe`` is on the 0..1 scale."""
    if not 0.0 < gxe < 1.0:
        raise ValueError(f"gxe must be within (0, 1), got {gxe}")
    return -((log10(1.0 / gxe - 1.0) * _gxe_denominator(rd)) / pi - 1500.0)


__all__ = ["glicko_to_qr", "glixare", "gxe_to_glicko", "qr_to_glicko"]
