"""Cache replacement simulation: a linear-regression eviction cache, a fixed-response cache, and feature and training-batch building for learned relaxed-Belady policies."""

__version__ = "0.1.0"