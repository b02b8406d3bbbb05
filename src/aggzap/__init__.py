"""AggZap: cross-chain zap into yield pools over a unified bridge."""

__version__ = "0.1.0"
