"""Glicko-2 rating-period math."""

from __future__ import annotations

import logging
from collections.abc import Sequence
from dataclasses import dataclass
from math import exp, log, pi, sqrt
from typing import Final

from domain.ratings.common import RatingTriple

logger = logging.getLogger(__name__)

GLICKO2_SCALE: Final[float] = 173.7178
DEFAULT_RATING: Final[float] = 1500.0
MIN_PHI: Final[float] = 1e-9


@dataclass(frozen=True)
class Glicko2Parameters:
    initial_rating: float = 1500.0
    initial_rd: float = 350.0
    initial_volatility: float = 0.06
    tau: float = 0.5
    min_rd: float = 30.0
    max_rd: float = 350.0
    epsilon: float = 1e-6
    max_iterations: int = 100

    def initial_triple(self) -> RatingTriple:
        return RatingTriple(
            rating=self.initial_rating,
            rd=self.initial_rd,
            volatility=self.initial_volatility,
        )


@dataclass(frozen=True)
class Glicko2OpponentResult:
    """One game inside a rating period, seen from the rated side."""

    opponent: RatingTriple
    score: float


def _to_mu(rating: float) -> float:
    return (rating - DEFAULT_RATING) / GLICKO2_SCALE


def _to_phi(rd: float) -> float:
    return max(rd / GLICKO2_SCALE, MIN_PHI)


def _from_mu(mu: float) -> float:
    return (mu * GLICKO2_SCALE) + DEFAULT_RATING


def _from_phi(phi: float) -> float:
    return phi * GLICKO2_SCALE


def _g(phi: float) -> float:
    return 1.0 / sqrt(1.0 + ((3.0 * (phi**2)) / (pi**2)))


def _expected(mu: float, opp_mu: float, opp_phi: float) -> float:
    exponent = -_g(opp_phi) * (mu - opp_mu)
    if exponent >= 0.0:
        exp_term = exp(-exponent)
        return exp_term / (1.0 + exp_term)
    exp_term = exp(exponent)
    return 1.0 / (1.0 + exp_term)


def calculate_expected_score(
    *,
    rating: float,
    opponent_rating: float,
    opponent_rd: float,
) -> float:
    """Compute expected score for one side under Glicko-2."""
    return _expected(
        _to_mu(rating),
        _to_mu(opponent_rating),
        _to_phi(opponent_rd),
    )


def _solve_volatility(
    *,
    phi: float,
    sigma: float,
    delta: float,
    v: float,
    tau: float,
    epsilon: float,
    max_iterations: int,
) -> float:
    """Illinois iteration for the new volatility (Glickman, step 5).

    Never raises: when the bracket cannot be found or the iteration cap is hit,
    the best estimate so far is returned and a warning is logged.
    """
    if sigma <= 0.0:
        return 0.0

    a = log(sigma**2)

    def f(x: float) -> float:
        ex = exp(x)
        numerator = ex * ((delta**2) - (phi**2) - v - ex)
        denominator = 2.0 * ((phi**2) + v + ex) ** 2
        return (numerator / denominator) - ((x - a) / (tau**2))

    a_value = a
    if (delta**2) > ((phi**2) + v):
        b_value = log((delta**2) - (phi**2) - v)
    else:
        k = 1
        b_value = a_value - (k * tau)
        while f(b_value) < 0.0:
            k += 1
            if k > max_iterations:
                logger.warning(
                    "Glicko-2 volatility solve failed to bracket root; keeping sigma=%.6f",
                    sigma,
                )
                return sigma
            b_value = a_value - (k * tau)

    f_a = f(a_value)
    f_b = f(b_value)
    iterations = 0
    while abs(b_value - a_value) > epsilon:
        iterations += 1
        if iterations > max_iterations:
            logger.warning(
                "Glicko-2 volatility solve hit %d iterations (|b-a|=%.3g); using best estimate",
                max_iterations,
                abs(b_value - a_value),
            )
            break
        if f_b == f_a:
            c_value = (a_value + b_value) / 2.0
        else:
            c_value = a_value + (((a_value - b_value) * f_a) / (f_b - f_a))
        f_c = f(c_value)
        if f_c * f_b <= 0.0:
            a_value = b_value
            f_a = f_b
        else:
            f_a /= 2.0
        b_value = c_value
        f_b = f_c

    return exp(a_value / 2.0)


def _clamp_rd(rd: float, params: Glicko2Parameters) -> float:
    return max(params.min_rd, min(rd, params.max_rd))


def inflate_rd(prior: RatingTriple, params: Glicko2Parameters) -> RatingTriple:
    """No-match update: deviation grows by one period of volatility, capped at max_rd."""
    if prior.rd >= params.max_rd:
        return prior
    phi = _to_phi(prior.rd)
    phi_star = sqrt((phi**2) + (prior.volatility**2))
    return RatingTriple(
        rating=prior.rating,
        rd=min(_from_phi(phi_star), params.max_rd),
        volatility=prior.volatility,
    )


def update_rating(
    prior: RatingTriple,
    results: Sequence[Glicko2OpponentResult],
    params: Glicko2Parameters,
) -> RatingTriple:
    """Update one entity for one Glicko-2 rating period."""
    if not results:
        return inflate_rd(prior, params)

    mu = _to_mu(prior.rating)
    phi = _to_phi(prior.rd)

    g_terms: list[float] = []
    e_terms: list[float] = []
    score_minus_e_terms: list[float] = []
    for result in results:
        opp_mu = _to_mu(result.opponent.rating)
        opp_phi = _to_phi(result.opponent.rd)
        g_term = _g(opp_phi)
        expected = _expected(mu, opp_mu, opp_phi)
        g_terms.append(g_term)
        e_terms.append(expected)
        score_minus_e_terms.append(result.score - expected)

    v_inverse = 0.0
    for g_term, expected in zip(g_terms, e_terms):
        v_inverse += (g_term**2) * expected * (1.0 - expected)
    if v_inverse <= 0.0:
        return inflate_rd(prior, params)

    v = 1.0 / v_inverse
    improvement = sum(g_term * score_minus_e for g_term, score_minus_e in zip(g_terms, score_minus_e_terms))
    delta = v * improvement
    sigma_prime = _solve_volatility(
        phi=phi,
        sigma=prior.volatility,
        delta=delta,
        v=v,
        tau=params.tau,
        epsilon=params.epsilon,
        max_iterations=params.max_iterations,
    )

    phi_star = sqrt((phi**2) + (sigma_prime**2))
    phi_prime = 1.0 / sqrt((1.0 / (phi_star**2)) + (1.0 / v))
    mu_prime = mu + (phi_prime**2) * improvement

    return RatingTriple(
        rating=_from_mu(mu_prime),
        rd=_clamp_rd(_from_phi(phi_prime), params),
        volatility=max(sigma_prime, 0.0),
    )
