"""SoulGate - keeps a local music catalog in line with a published artist whitelist."""

__version__ = "0.1.0"
