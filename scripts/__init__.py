# =============================================================================
# scripts/ - Operational Scripts
# =============================================================================
# - seed.py: Demo data seeder for development and test environments
# =============================================================================
