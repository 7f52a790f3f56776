"""
Analytics Engine - Composite score, recommendation and insight per coin.

============================================================
PURPOSE
============================================================
Turns a NormalizedCoin into a CoinOverview. Applied uniformly to every
record regardless of which tier produced it.

Signals (all in [0, 1]):
- Liquidity:   volume / market cap
- Momentum:    24h change, +/-10% saturates
- Trend:       7-day sparkline change, +/-20% saturates, damped when noisy
- Market cap:  size tier

Weights: liquidity 30%, momentum 25%, trend 25%, market cap 20%.

Deterministic: no randomness, no clock, no I/O.
============================================================
"""

import logging
import math
from typing import Optional, Sequence

from market_data.history import trend_factor
from market_data.models import (
    CoinOverview,
    NormalizedCoin,
    Recommendation,
    ScoreBreakdown,
)


logger = logging.getLogger(__name__)


# ============================================================
# CONSTANTS
# ============================================================

WEIGHT_LIQUIDITY = 0.30
WEIGHT_MOMENTUM = 0.25
WEIGHT_TREND = 0.25
WEIGHT_MARKET_CAP = 0.20

MOMENTUM_SATURATION_PCT = 10.0
TREND_SATURATION_PCT = 20.0
TREND_VOLATILITY_LIMIT = 0.15
TREND_VOLATILITY_DAMPING = 0.7
ANOMALY_CHANGE_PCT = 15.0
MIN_TREND_POINTS = 7
DISPLAY_SPARKLINE_POINTS = 7

RECOMMENDATION_TEXT = {
    Recommendation.STRONG_BUY: "Strong buy: price action and trend show a strong buy signal, suitable for active allocation",
    Recommendation.BUY: "Buy: the market is performing well, suitable for a moderate position built up in stages",
    Recommendation.HOLD: "Hold: the market is neutral, keep current positions and wait for a clearer signal",
    Recommendation.SELL: "Reduce/sell: the market is weak, consider trimming or exiting to control risk",
}

RECOMMENDATION_LABEL = {
    Recommendation.STRONG_BUY: "strong buy",
    Recommendation.BUY: "buy",
    Recommendation.HOLD: "hold",
    Recommendation.SELL: "reduce/sell",
}


def clamp(value: float, low: float, high: float) -> float:
    return max(low, min(high, value))


def coefficient_of_variation(values: Sequence[float]) -> float:
    """Population standard deviation over mean; 0 for a non-positive mean."""
    mean = sum(values) / len(values)
    if mean <= 0:
        return 0.0
    variance = sum((v - mean) ** 2 for v in values) / len(values)
    return math.sqrt(variance) / mean


def market_cap_score(market_cap: float) -> float:
    if market_cap > 10e9:
        return 0.7
    if market_cap > 1e9:
        return 0.6
    if market_cap > 100e6:
        return 0.5
    return 0.3


def raw_trend_score(sparkline: Optional[Sequence[float]]) -> float:
    """
    Trend in [-1, 1] from the source sparkline.

    0 (neutral) when there is no sparkline, fewer than 7 points or a
    non-positive first point.
    """
    if not sparkline or len(sparkline) < MIN_TREND_POINTS:
        return 0.0
    first, last = sparkline[0], sparkline[-1]
    if first <= 0:
        return 0.0

    change_pct = (last - first) / first * 100
    trend = clamp(change_pct / TREND_SATURATION_PCT, -1.0, 1.0)
    if coefficient_of_variation(sparkline) > TREND_VOLATILITY_LIMIT:
        trend *= TREND_VOLATILITY_DAMPING
    return trend


def display_sparkline(coin: NormalizedCoin) -> tuple[float, ...]:
    """Source sparkline, or a straight line back along the 24h change."""
    if coin.sparkline_7d:
        return coin.sparkline_7d

    points = []
    for i in range(DISPLAY_SPARKLINE_POINTS):
        days_ago = DISPLAY_SPARKLINE_POINTS - 1 - i
        factor = trend_factor(coin.price_change_percentage_24h, days_ago, DISPLAY_SPARKLINE_POINTS)
        points.append(coin.current_price * factor)
    return tuple(points)


# ============================================================
# ANALYTICS ENGINE
# ============================================================

class AnalyticsEngine:
    """
    Derives score, recommendation and insight.

    Usage:
        engine = AnalyticsEngine()
        overviews = engine.analyze_all(coins)
    """

    def analyze_all(self, coins: Sequence[NormalizedCoin]) -> list[CoinOverview]:
        return [self.analyze(coin) for coin in coins]

    def analyze(self, coin: NormalizedCoin) -> CoinOverview:
        """Compute derived fields for one coin."""
        breakdown = self.score_breakdown(coin)
        score = clamp(
            WEIGHT_LIQUIDITY * breakdown.vol_score
            + WEIGHT_MOMENTUM * breakdown.momentum_score
            + WEIGHT_TREND * breakdown.trend_score
            + WEIGHT_MARKET_CAP * breakdown.market_cap_score,
            0.0,
            1.0,
        )
        recommendation = self.recommend(coin.price_change_percentage_24h, score, breakdown)
        insight = self.insight(coin, score, recommendation)

        return CoinOverview(
            id=coin.id,
            symbol=coin.symbol,
            name=coin.name,
            current_price=coin.current_price,
            price_change_percentage_24h=coin.price_change_percentage_24h,
            market_cap=coin.market_cap,
            total_volume=coin.total_volume,
            sparkline_7d=display_sparkline(coin),
            score=score,
            recommendation=recommendation,
            insight=insight,
            breakdown=breakdown,
        )

    def score_breakdown(self, coin: NormalizedCoin) -> ScoreBreakdown:
        vol = clamp(coin.total_volume / coin.market_cap, 0.0, 1.0) if coin.market_cap > 0 else 0.0
        momentum = (clamp(coin.price_change_percentage_24h / MOMENTUM_SATURATION_PCT, -1.0, 1.0) + 1) / 2
        raw_trend = raw_trend_score(coin.sparkline_7d)
        trend = (raw_trend + 1) / 2

        return ScoreBreakdown(
            vol_score=vol,
            momentum_score=momentum,
            trend_score=trend,
            raw_trend_score=raw_trend,
            market_cap_score=market_cap_score(coin.market_cap),
            buy_signal=0.4 * momentum + 0.4 * trend + 0.2 * vol,
            sell_signal=0.4 * (1 - momentum) + 0.4 * (1 - trend) + 0.2 * (1 - vol),
        )

    def recommend(
        self,
        change_24h: float,
        score: float,
        breakdown: ScoreBreakdown,
    ) -> Recommendation:
        # Moves beyond +/-15% are treated as anomalies
        if abs(change_24h) > ANOMALY_CHANGE_PCT:
            return Recommendation.HOLD

        if score > 0.75 and change_24h > 5 and breakdown.buy_signal > 0.7 and breakdown.raw_trend_score > 0.3:
            return Recommendation.STRONG_BUY
        if score > 0.6 and change_24h > 2 and breakdown.buy_signal > 0.55:
            return Recommendation.BUY
        if score < 0.3 and change_24h < -5 and breakdown.sell_signal > 0.7 and breakdown.raw_trend_score < -0.3:
            return Recommendation.SELL
        return Recommendation.HOLD

    def insight(self, coin: NormalizedCoin, score: float, recommendation: Recommendation) -> str:
        """Human-readable summary; falls back to a generic sentence."""
        try:
            text = self._compose_insight(coin, score, recommendation)
        except Exception as e:
            logger.exception(f"Insight composition failed for {coin.id}: {e}")
            text = ""

        if not text.strip():
            return self.fallback_insight(coin, score, recommendation)
        return text

    def fallback_insight(self, coin: NormalizedCoin, score: float, recommendation: Recommendation) -> str:
        return (
            f"Current price is ${coin.current_price:.4f} with a 24h change of "
            f"{coin.price_change_percentage_24h:.2f}%. Composite score is "
            f"{score * 100:.0f} out of 100 and the recommendation is "
            f"{RECOMMENDATION_LABEL[recommendation]}."
        )

    def _compose_insight(self, coin: NormalizedCoin, score: float, recommendation: Recommendation) -> str:
        parts = [_day_sentence(coin.price_change_percentage_24h)]

        sparkline = coin.sparkline_7d
        if sparkline and len(sparkline) >= MIN_TREND_POINTS and sparkline[0] > 0:
            week_change = (sparkline[-1] - sparkline[0]) / sparkline[0] * 100
            volatility_pct = coefficient_of_variation(sparkline) * 100
            parts.append(f"{_week_sentence(week_change)}, {_volatility_phrase(volatility_pct)}")

        ratio_pct = coin.total_volume / coin.market_cap * 100 if coin.market_cap > 0 else 0.0
        parts.append(_liquidity_sentence(ratio_pct))
        parts.append(_market_cap_sentence(coin.market_cap))
        parts.append(f"{_score_sentence(score)}. {RECOMMENDATION_TEXT[recommendation]}")

        return ". ".join(parts) + "."


# ============================================================
# INSIGHT SENTENCES
# ============================================================

def _day_sentence(change: float) -> str:
    magnitude = abs(change)
    if change > 10:
        return f"Surged {magnitude:.2f}% in 24h, sentiment is euphoric with heavy inflows"
    if change > 5:
        return f"Rallied {magnitude:.2f}% in 24h, sentiment is positive with strong buying"
    if change > 2:
        return f"Up {magnitude:.2f}% in 24h, steady performance with buyers in control"
    if change > 0:
        return f"Edged up {magnitude:.2f}% in 24h, the market is calm and balanced"
    if change > -2:
        return f"Edged down {magnitude:.2f}% in 24h, the market is calm with a normal pullback"
    if change > -5:
        return f"Down {magnitude:.2f}% in 24h, the market is correcting as sellers gain ground"
    if change > -10:
        return f"Dropped {magnitude:.2f}% in 24h, sentiment is weakening with rising sell pressure"
    return f"Plunged {magnitude:.2f}% in 24h, sentiment is deeply negative with heavy outflows"


def _week_sentence(change: float) -> str:
    magnitude = abs(change)
    if change > 10:
        return f"Up {magnitude:.1f}% over 7 days in a strong uptrend"
    if change > 5:
        return f"Up {magnitude:.1f}% over 7 days with steady upward momentum"
    if change > 0:
        return f"Up {magnitude:.1f}% over 7 days in a mild uptrend"
    if change > -5:
        return f"{change:.1f}% over 7 days, consolidating within a range"
    if change > -10:
        return f"Down {magnitude:.1f}% over 7 days in a modest pullback"
    return f"Down {magnitude:.1f}% over 7 days in a clear downtrend"


def _volatility_phrase(volatility_pct: float) -> str:
    if volatility_pct > 8:
        return "with high volatility"
    if volatility_pct > 4:
        return "with moderate volatility"
    return "with low volatility"


def _liquidity_sentence(ratio_pct: float) -> str:
    if ratio_pct > 15:
        return "Trading is very active with excellent liquidity"
    if ratio_pct > 8:
        return "Trading is fairly active with good liquidity"
    if ratio_pct > 4:
        return "Trading is normal with moderate liquidity"
    return "Trading is thin, watch for large-order slippage"


def _market_cap_sentence(market_cap: float) -> str:
    billions = market_cap / 1e9
    if billions > 100:
        return "A mega-cap coin with an established position and relatively low risk"
    if billions > 10:
        return "A large-cap coin with broad recognition and some resilience"
    if billions > 1:
        return "A mid-cap coin with room to grow but higher volatility"
    return "A small-cap coin with high potential returns and high risk"


def _score_sentence(score: float) -> str:
    if score > 0.75:
        return "The composite score is excellent across dimensions"
    if score > 0.6:
        return "The composite score is good with balanced indicators"
    if score > 0.4:
        return "The composite score is average, waiting for a better entry is advised"
    return "The composite score is low with weak indicators, proceed with caution"
