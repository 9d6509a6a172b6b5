#!/usr/bin/env python3
# =============================================================================
# scripts/seed.py - Demo Data Seeder
# =============================================================================
# Fills a fresh database with demo realms, users, API keys, mobile apps and
# a month of verification codes with synthetic ages.
#
# Usage:
#   # Seed the database in DATABASE_URL (and Firebase accounts)
#   python scripts/seed.py
#
#   # Local database only, reproducible
#   python scripts/seed.py --skip-firebase --seed 42
#
# Environment:
#   DATABASE_URL, FIREBASE_* (see app/config.py)
#   LOG_DEBUG=true for debug logging
#
# Realms, users, keys and apps are looked up by name first, so running the
# seeder twice only adds more codes.
# =============================================================================

import argparse
import logging
import os
import random
import secrets
import sys
from dataclasses import dataclass, field
from datetime import timedelta

# Add project root to path
sys.path.insert(0, os.path.dirname(os.path.dirname(os.path.abspath(__file__))))

from dotenv import load_dotenv
load_dotenv()

from sqlalchemy import select
from sqlalchemy.exc import IntegrityError
from sqlalchemy.orm import Session

from app.config import settings
from app.exceptions import CodeCollisionError
from core.models import (
    APIKeyType,
    AuthorizedApp,
    MobileApp,
    OSType,
    Realm,
    TestType,
    User,
    VerificationCode,
    new_realm_with_defaults,
)
from core.services import (
    APIKeyService,
    MobileAppService,
    RealmService,
    UserService,
    VerificationCodeService,
)
from lib.database import db_session, init_db
from lib.firebase_client import FirebaseClient
from lib.utils import utcnow

logger = logging.getLogger("seed")

DEMO_PASSWORD = "password"

# Share of codes issued through an API key; the rest come from console users
APP_ISSUED_RATIO = 0.6
# Share of app-issued codes carrying an external audit ID
EXTERNAL_ID_RATIO = 0.5
# Share of codes redeemed right away
CLAIMED_RATIO = 0.4

SEED_CODE_MAX_AGE = timedelta(hours=672)
SEED_TOKEN_DURATION = timedelta(hours=24)
ALL_TEST_TYPE_NAMES = {t.api_name for t in (TestType.CONFIRMED, TestType.LIKELY, TestType.NEGATIVE)}


@dataclass
class SeedResult:
    """What a seed run created (or found)."""
    realms: list[Realm] = field(default_factory=list)
    users: list[User] = field(default_factory=list)
    authorized_apps: list[AuthorizedApp] = field(default_factory=list)
    mobile_apps: list[MobileApp] = field(default_factory=list)
    # Raw keys of API keys created by this run, by app name
    api_keys: dict[str, str] = field(default_factory=dict)
    codes_created: int = 0
    codes_claimed: int = 0


# =============================================================================
# Get-or-create helpers
# =============================================================================

def get_or_create_realm(
    db: Session,
    name: str,
    region_code: str,
    allowed_test_types: TestType | None = None,
) -> Realm:
    realm = RealmService.find_realm_by_name(db, name)
    if realm is not None:
        return realm

    realm = new_realm_with_defaults(name)
    realm.region_code = region_code
    realm.abuse_prevention_enabled = True
    if allowed_test_types is not None:
        realm.allowed_test_types = int(allowed_test_types)
    RealmService.save_realm(db, realm)
    logger.info(f"created realm: {realm}")
    return realm


def get_or_create_user(
    db: Session,
    email: str,
    name: str,
    realms: tuple[Realm, ...] = (),
    admin_realms: tuple[Realm, ...] = (),
    system_admin: bool = False,
) -> User:
    user = UserService.find_user_by_email(db, email)
    if user is not None:
        return user

    user = User(email=email, name=name, system_admin=system_admin)
    for realm in realms:
        user.add_realm(realm)
    for realm in admin_realms:
        user.add_realm_admin(realm)
    UserService.save_user(db, user)
    logger.info(f"created user: {user}")
    return user


def get_or_create_authorized_app(
    db: Session,
    realm: Realm,
    name: str,
    api_key_type: APIKeyType,
    result: SeedResult,
) -> AuthorizedApp:
    stmt = select(AuthorizedApp).where(AuthorizedApp.realm_id == realm.id, AuthorizedApp.name == name)
    app = db.scalars(stmt).first()
    if app is not None:
        return app

    app, raw_key = APIKeyService.create_authorized_app(db, realm, name, api_key_type)
    result.api_keys[name] = raw_key
    logger.info(f"created {api_key_type.value} api key: {app.name} = {raw_key}")
    return app


def get_or_create_mobile_app(db: Session, app: MobileApp) -> MobileApp:
    stmt = select(MobileApp).where(MobileApp.realm_id == app.realm_id, MobileApp.name == app.name)
    existing = db.scalars(stmt).first()
    if existing is not None:
        return existing
    return MobileAppService.save_mobile_app(db, app)


# =============================================================================
# Codes
# =============================================================================

def create_seed_code(
    db: Session,
    realm: Realm,
    rng: random.Random,
    days_ago: int,
    issuing_user: User | None,
    issuing_app: AuthorizedApp | None,
    external_id: str,
) -> VerificationCode:
    """
    Save one code backdated by days_ago.

    Codes are drawn from rng, so a collision just draws again.

    Raises:
        CodeCollisionError: If every attempt collided
    """
    now = utcnow()
    test_date = (now - timedelta(hours=48)).date()

    for _ in range(settings.COLLISION_RETRY_COUNT):
        verification_code = VerificationCode(
            realm_id=realm.id,
            code=f"{rng.randrange(99999999):08d}",
            long_code=f"{rng.randrange(999999999999999):015d}",
            claimed=False,
            test_type=TestType.CONFIRMED.api_name,
            symptom_date=test_date,
            test_date=test_date,
            expires_at=now + timedelta(minutes=15),
            long_expires_at=now + timedelta(hours=24),
            issuing_user_id=issuing_user.id if issuing_user is not None else None,
            issuing_app_id=issuing_app.id if issuing_app is not None else None,
            issuing_external_id=external_id,
            created_at=now - timedelta(days=days_ago),
        )
        try:
            return VerificationCodeService.save_verification_code(db, verification_code, SEED_CODE_MAX_AGE)
        except IntegrityError:
            logger.debug("seed code collision, drawing again")

    raise CodeCollisionError(settings.COLLISION_RETRY_COUNT)


def seed_codes(
    db: Session,
    realm: Realm,
    users: list[User],
    apps: list[AuthorizedApp],
    rng: random.Random,
    result: SeedResult,
    days: int = 30,
    max_per_day: int = 50,
) -> None:
    external_ids = [secrets.token_hex(8) for _ in range(4)]

    for day in range(1, days + 1):
        for _ in range(rng.randrange(max_per_day) if max_per_day > 0 else 0):
            issuing_user = None
            issuing_app = None
            external_id = ""

            if rng.random() < APP_ISSUED_RATIO:
                issuing_app = rng.choice(apps)
                if rng.random() < EXTERNAL_ID_RATIO:
                    external_id = rng.choice(external_ids)
            else:
                issuing_user = rng.choice(users)

            verification_code = create_seed_code(db, realm, rng, day, issuing_user, issuing_app, external_id)
            result.codes_created += 1

            if rng.random() < CLAIMED_RATIO:
                VerificationCodeService.verify_code_and_issue_token(
                    db,
                    realm.id,
                    verification_code.code,
                    ALL_TEST_TYPE_NAMES,
                    SEED_TOKEN_DURATION,
                )
                result.codes_claimed += 1

        logger.debug(f"seeded codes for {day} day(s) ago")


# =============================================================================
# Entry Point
# =============================================================================

def seed(
    db: Session,
    firebase: type[FirebaseClient] | None = FirebaseClient,
    days: int = 30,
    max_per_day: int = 50,
    rng: random.Random | None = None,
) -> SeedResult:
    """
    Seed demo data.

    Args:
        db: Database session
        firebase: Client used to create the demo accounts, None to skip
        days: How many days back to generate codes for
        max_per_day: Upper bound (exclusive) of codes per day
        rng: Random source for the synthetic codes

    Returns:
        SeedResult describing the seeded records
    """
    rng = rng or random.Random()
    result = SeedResult()

    # Realms
    narnia = get_or_create_realm(db, "Narnia", "US-PA")
    wonderland = get_or_create_realm(
        db, "Wonderland", "US-WA", allowed_test_types=TestType.LIKELY | TestType.CONFIRMED
    )
    result.realms = [narnia, wonderland]

    # Users
    user = get_or_create_user(db, "user@example.com", "Demo User", realms=(narnia, wonderland))
    unverified = get_or_create_user(db, "unverified@example.com", "Unverified User", realms=(narnia,))
    admin = get_or_create_user(db, "admin@example.com", "Admin User", admin_realms=(narnia,))
    super_user = get_or_create_user(db, "super@example.com", "Super User", system_admin=True)
    result.users = [user, unverified, super_user, admin]

    # Firebase accounts (the unverified user deliberately gets none)
    if firebase is not None:
        for account in (user, admin, super_user):
            firebase.ensure_verified_user(account.email, account.name, DEMO_PASSWORD)
            logger.info(f"enabled user: {account.email}")
    else:
        logger.info("skipping Firebase accounts")

    # API keys
    device_app = get_or_create_authorized_app(db, narnia, "Corona Capture", APIKeyType.DEVICE, result)
    admin_app = get_or_create_authorized_app(db, narnia, "Tracing Tracker", APIKeyType.ADMIN, result)
    result.authorized_apps = [device_app, admin_app]

    # Mobile apps
    result.mobile_apps = [
        get_or_create_mobile_app(db, MobileApp(
            realm_id=narnia.id,
            name="Example iOS app",
            url="http://google.com/",
            os=OSType.IOS.value,
            app_id="ios.example.app",
        )),
        get_or_create_mobile_app(db, MobileApp(
            realm_id=narnia.id,
            name="Example Android app",
            url="http://google.com",
            os=OSType.ANDROID.value,
            app_id="android.example.app",
            sha=":".join(["AA"] * 32),
        )),
    ]

    # Codes
    seed_codes(db, narnia, result.users, result.authorized_apps, rng, result, days, max_per_day)
    logger.info(f"created {result.codes_created} codes ({result.codes_claimed} claimed)")

    return result


def parse_args(argv: list[str] | None = None) -> argparse.Namespace:
    parser = argparse.ArgumentParser(description="Seed the verification server database with demo data.")
    parser.add_argument("--days", type=int, default=30, help="days of codes to generate (default: 30)")
    parser.add_argument("--max-per-day", type=int, default=50, help="upper bound of codes per day (default: 50)")
    parser.add_argument("--skip-firebase", action="store_true", help="don't create Firebase accounts")
    parser.add_argument("--seed", type=int, default=None, help="random seed for reproducible codes")
    return parser.parse_args(argv)


def main(argv: list[str] | None = None) -> int:
    args = parse_args(argv)

    debug = os.getenv("LOG_DEBUG", "").strip().lower() in ("1", "true", "yes")
    logging.basicConfig(
        level=logging.DEBUG if debug else logging.INFO,
        format="%(asctime)s - %(name)s - %(levelname)s - %(message)s"
    )

    init_db()
    with db_session() as db:
        seed(
            db,
            firebase=None if args.skip_firebase else FirebaseClient,
            days=args.days,
            max_per_day=args.max_per_day,
            rng=random.Random(args.seed),
        )
    logger.info("seeding complete")
    return 0


if __name__ == "__main__":
    sys.exit(main())
