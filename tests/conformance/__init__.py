"""
Conformance Test Suite

This suite defines the NORMATIVE behavior of the collateral engine.
Any compliant implementation MUST pass these tests.

The tests are organized by invariant:
1. atomicity.py - All-or-nothing operation semantics
2. reentrancy.py - No nested or concurrent mutation
3. health_invariant.py - Positions with debt stay at or above the minimum
4. valuation_properties.py - Rounding direction and monotonicity

These tests use hypothesis for property-based testing.
"""
