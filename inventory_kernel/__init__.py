"""
Inventory Kernel - lot tracking and reservation ledger

A tenant-isolated stock ledger with:
- Lot intake and package allocation under quantity conservation
- Location stock accounting driven by package moves
- Transfer workflow with GPS trail and proof of delivery
- Append-only chain-of-custody scan log
- Non-blocking, all-or-nothing stock reservations
"""

__version__ = "0.1.0"
