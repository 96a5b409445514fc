"""
Door Ledger

Records door events (26 doors x 4 event types) with server-assigned
timestamps, one-way undo, CSV export and time-based retention.
"""

__version__ = "0.1.0"
