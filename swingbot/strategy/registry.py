"""Strategy registry — maps strategy names to classes.

Used by the trading engine, the backtester and the CLI to select a variant.
"""

from swingbot.config import StrategyParams
from swingbot.strategy.base import StrategyProtocol
from swingbot.strategy.confluence import ConfluenceStrategy
from swingbot.strategy.dip import RsiDipStrategy


STRATEGY_REGISTRY: dict[str, type] = {
    "basic": RsiDipStrategy,
    "enhanced": ConfluenceStrategy,
}


def get_strategy(name: str, params: StrategyParams | None = None) -> StrategyProtocol:
    """Look up and instantiate a strategy by registry key.

    Raises ``KeyError`` if the strategy name is not registered.
    """
    if name not in STRATEGY_REGISTRY:
        raise KeyError(
            f"Unknown strategy '{name}'. "
            f"Available: {', '.join(STRATEGY_REGISTRY.keys())}"
        )
    return STRATEGY_REGISTRY[name](params or StrategyParams())
