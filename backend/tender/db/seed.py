# tender/db/seed.py

"""
Database Seeding Script

Creates a demo account and three demo cases for local development.

    python -m tender.db.seed
"""
from typing import List

from sqlalchemy.orm import Session

from tender.core.logger import logger, setup_logging
from tender.core.security import get_password_hash
from tender.db.database import SessionLocal, init_db
from tender.db.models import Case, CaseStatus, User

DEMO_EMAIL = "testuser@example.com"
DEMO_PASSWORD = "password123"

DEMO_CASES = [
    ("Johnson v. MegaCorp", "CV-2024-001234"),
    ("Smith Medical Malpractice", "CV-2024-005678"),
    ("Rodriguez Employment Dispute", "CV-2024-009012"),
]


def get_or_create_demo_user(db: Session) -> User:
    user = db.query(User).filter(User.email == DEMO_EMAIL).first()
    if user:
        logger.info("Demo user already exists: %s", DEMO_EMAIL)
        return user

    user = User(
        email=DEMO_EMAIL,
        password_hash=get_password_hash(DEMO_PASSWORD),
        full_name="Test User",
        is_active=True,
    )
    db.add(user)
    db.commit()
    db.refresh(user)
    logger.info("Created demo user: %s / %s", DEMO_EMAIL, DEMO_PASSWORD)
    return user


def seed_cases(db: Session, user: User) -> List[Case]:
    """Insert the demo cases unless the database already has cases."""
    if db.query(Case).count() > 0:
        logger.info("Database already has cases, skipping seed")
        return []

    cases = [
        Case(owner_id=user.id, name=name, case_number=number, status=CaseStatus.active.value)
        for name, number in DEMO_CASES
    ]
    db.add_all(cases)
    db.commit()
    logger.info("Seeded %d cases", len(cases))
    return cases


def seed() -> None:
    init_db()
    db = SessionLocal()
    try:
        user = get_or_create_demo_user(db)
        seed_cases(db, user)
    except Exception:
        db.rollback()
        logger.exception("Seed failed")
        raise
    finally:
        db.close()


if __name__ == "__main__":
    setup_logging()
    seed()
