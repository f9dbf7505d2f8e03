"""LiquidGlass: music module registry with sandboxing and network policy."""

__version__ = "1.0.0"
