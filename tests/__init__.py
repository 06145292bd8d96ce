"""
hexturf Test Suite
==================

Test Organization
-----------------
- tests/unit/          : Fast unit tests with in-memory fakes and mocks
- tests/integration/   : Integration tests with testcontainers (PostgreSQL, Redis)
- tests/factories.py   : Builders for activities, claims, tiles and users
- tests/fakes.py       : In-memory ledger repositories and database

Testing Philosophy
------------------
- Unit tests: Fast, isolated, test ownership rules and service orchestration
- Integration tests: Slower, test locking, batching and queries for real
- Use pytest markers to categorize and selectively run tests
- Follow AAA pattern: Arrange, Act, Assert
"""
