"""
Cross-Chain Liquidity Aggregator

Core imports are lazily loaded so that importing a submodule does not pull
in the whole engine. For direct module access, import from submodules:

    from xliquidity.exchange import AggregatorEngine
    from xliquidity.tokens import InMemoryToken, TokenRegistry
    from xliquidity.config import load_config
"""

__version__ = "0.1.0"


# Lazy imports to avoid loading everything at package import
def __getattr__(name):
    if name == 'AggregatorEngine':
        from .exchange.engine import AggregatorEngine
        return AggregatorEngine
    elif name == 'AggregatorStateManager':
        from .exchange.state_manager import AggregatorStateManager
        return AggregatorStateManager
    elif name == 'load_config':
        from .config import load_config
        return load_config
    raise AttributeError(f"module 'xliquidity' has no attribute {name!r}")

__all__ = ['AggregatorEngine', 'AggregatorStateManager', 'load_config']
