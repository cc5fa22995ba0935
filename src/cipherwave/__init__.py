"""CipherWave Sync: wallet sessions and FHE encrypted inputs for on-chain messages."""

__version__ = "0.1.0"
