"""
Client for a remote feature store: registers feature groups and training
datasets and materializes their rows into offline and online storage.
"""

__version__ = "1.0.0"
