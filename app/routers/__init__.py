# =============================================================================
# app/routers/ - Route Definitions
# =============================================================================
# This package contains FastAPI routers organized by feature:
# - index.py: Login page
# - health.py: Health check endpoint
# - realm.py: Realm list and selection
# - home.py: Code issue page and its AJAX endpoint
# - apikeys.py: API key management (realm admins)
# - users.py: Realm user management (realm admins)
# - realmadmin.py: Realm settings (realm admins)
# - api.py: API-key authenticated issue/verify endpoints
#
# Each router is mounted in main.py with a URL prefix and the ordered
# dependencies of its route group.
# =============================================================================

from . import health
from . import index
from . import realm
from . import home
from . import apikeys
from . import users
from . import realmadmin
from . import api

__all__ = [
    "health",
    "index",
    "realm",
    "home",
    "apikeys",
    "users",
    "realmadmin",
    "api",
]
