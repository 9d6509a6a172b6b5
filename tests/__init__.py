# =============================================================================
# tests/ - Test Suite
# =============================================================================
# This package contains all tests for the verification server:
# - test_models.py: ORM model and request schema validation
# - test_verification_codes.py: Issuing and redeeming codes
# - test_ratelimit.py: Limiter keys and stores
# - test_middleware.py: Middleware and route group dependencies
# - test_routes.py: Console and API endpoints
# - test_seed.py: Demo data seeder
#
# Run tests with: pytest
# =============================================================================
