"""Core module - shared plumbing for the fuel logistics back office.

This module contains configuration, the error taxonomy, observability
(logging and metrics), audit logging and the shared reference models.
It is intentionally free of any fuel-reconciliation business rules.

Business logic (balances, station mapping, yard linking) belongs in the
domain packages: /fuel_records/, /reconciliation/, /lpo/, /yard_fuel/.
"""

__version__ = "1.0.0"
