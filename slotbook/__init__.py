"""slotbook: weekly availability, booking approvals and calendar reconciliation."""

__version__ = "0.1.0"
