"""
Door Ledger shared schemas

Wire models for door events, shared between the ledger server and the
touch front-end's generated client.
"""

__version__ = "0.1.0"
