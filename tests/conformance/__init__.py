"""
Conformance Test Suite

This suite defines the NORMATIVE behavior of the trading simulation core.
Any compliant implementation MUST pass these tests.

The tests are organized by invariant:
1. test_lot_invariants.py - Lots always sum to the position; cash is conserved
2. test_market_properties.py - Monotone pricing, full fills when undersubscribed,
   limit-order marketability
3. test_replay_determinism.py - Identical draws reproduce identical sessions

These tests use hypothesis for property-based testing.
"""
