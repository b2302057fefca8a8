"""
Test package marker.

Lets test modules import shared helpers as `tests.fake_ledger`.
"""
