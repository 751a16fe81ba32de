"""
Conformance Test Suite

This suite defines the NORMATIVE behavior of the engine.
Any compliant implementation MUST pass these tests.

The tests are organized by invariant:
1. atomicity.py - Failed operations leave no trace
2. solvency.py - Debt stays backed; supply matches debt; custody matches deposits
3. mint_boundary.py - Minting succeeds exactly up to a health factor of 1.0
4. liquidation_monotonicity.py - Liquidation strictly improves the target or aborts
5. idempotency.py - Reads never mutate state
6. reentrancy.py - Collaborators cannot call back into a running operation

These tests use hypothesis for property-based testing.
"""
