"""Vault Guardian - Vault Protection Engine

Risk math, stop-loss trigger metadata and the staged open-vault
transaction pipeline for Maker and Aave positions.
"""

__version__ = "0.1.0"
