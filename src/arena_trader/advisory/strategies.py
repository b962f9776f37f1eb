"""Strategy labels an advisory service may choose from."""

STRATEGIES: dict[str, str] = {
    "momentum": (
        "Buys assets showing strong upward momentum (>5% gains). Sells when momentum "
        "weakens (<-3%). Best for trending markets."
    ),
    "swing": (
        "Buys oversold assets (<-8% drop) expecting bounce. Sells overbought assets "
        "(>12% gains). Best for volatile sideways markets."
    ),
    "conservative": (
        "Buys steady moderate gains (2-8%). Sells on any -2% drop. Lower position sizes. "
        "Best for risk-averse trading."
    ),
    "aggressive": (
        "Buys extreme volatility (>10% surge). Uses larger position sizes. Stop-loss at -5% "
        "or take-profit at +20%. Best for high-risk tolerance."
    ),
    "trend_follower": (
        "Rides established trends. Buys uptrends (>3%). Sells on trend reversal (<-4%). "
        "Best for strong directional markets."
    ),
    "mean_reversion": (
        "Buys extreme oversold (<-10%). Sells extreme overbought (>10%). Expects price to "
        "revert to average. Best for range-bound markets."
    ),
}
