"""
FamilyVault - Test Helpers

Provides utilities for testing:
- Fake remote catalog (in-memory and PostgREST over MockTransport)
- Fixture builders
- Isolated store roots
"""
