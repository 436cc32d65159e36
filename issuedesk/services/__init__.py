"""서비스 패키지 — 비즈니스 로직 계층.

Service package — Business logic layer.
Contains the service classes that enforce the issue lifecycle rules.
Services call repositories for DB operations and may call other services for cross-domain logic.
"""
