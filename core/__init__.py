# =============================================================================
# core/ - Business Logic Package
# =============================================================================
# This package contains the domain logic behind the console and API:
# - models/: SQLAlchemy tables and Pydantic request schemas
# - services/: Realm, user, API key and verification code operations
#
# Services take a SQLAlchemy Session argument and never touch the request.
# This keeps the logic testable and usable from the seed script.
# =============================================================================
