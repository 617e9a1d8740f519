"""Visit reconciliation and CRM analytics for self-service laundromats."""

__version__ = "0.1.0"
