"""Create the schema and seed the initial admin account."""

from loguru import logger

from authentication.auth import get_password_hash
from models.config import settings
from repositories.database import Base, SessionLocal, engine
from repositories.db_models import Account


def init_db() -> bool:
    """
    Create all tables and, when ADMIN_EMAIL and ADMIN_PASSWORD are set,
    an admin account. Safe to run repeatedly.

    Returns:
        True when an admin account was created.
    """
    Base.metadata.create_all(bind=engine)

    if not settings.ADMIN_EMAIL or not settings.ADMIN_PASSWORD:
        logger.info("ADMIN_EMAIL/ADMIN_PASSWORD not set; skipping admin creation")
        return False

    email = settings.ADMIN_EMAIL.strip().lower()
    db = SessionLocal()
    try:
        if db.query(Account).filter(Account.email == email).first():
            logger.info(f"Admin account {email} already exists")
            return False

        db.add(
            Account(
                email=email,
                hashed_password=get_password_hash(settings.ADMIN_PASSWORD),
                is_admin=True,
            )
        )
        db.commit()
        logger.info(f"Admin account {email} created. Change its password in production!")
        return True
    except Exception:
        db.rollback()
        raise
    finally:
        db.close()


if __name__ == "__main__":
    init_db()
