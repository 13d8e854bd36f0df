"""Service layer for business logic.

Layer hierarchy:
    Routes (HTTP) -> Services (Business Logic) -> Repositories (Database)

- streaks_service: pure streak calculator over completion dates
- streak_status_service: read-only risk/expiry classifier
- habits_service / completions_service: the interactive paths
- reconciliation_service: the daily batch job

Services return ORM models or dataclasses and raise domain exceptions;
routes convert to schemas and HTTP status codes.
"""
