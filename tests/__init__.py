"""
CarMarket Cache Test Suite
==========================

Test Organization
-----------------
- tests/unit/          : Fast unit tests against FakeRedis (no external dependencies)
- tests/integration/   : Integration tests with testcontainers (real Redis)

Testing Philosophy
------------------
- Unit tests: fast, isolated, one behaviour per test
- Integration tests: real Redis, marked ``integration``
- Follow AAA pattern: Arrange, Act, Assert
"""
