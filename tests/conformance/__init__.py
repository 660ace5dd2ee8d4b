"""
Conformance Test Suite

This suite defines the NORMATIVE behavior of the time token ledger.
Any compliant implementation MUST pass these tests.

The tests are organized by invariant:
1. conservation.py - Balances sum to zero, custody covers obligations
2. atomicity.py - All-or-nothing transaction semantics
3. idempotency.py - Duplicate execution handling and reproducible runs

These tests use hypothesis for property-based testing.
"""
