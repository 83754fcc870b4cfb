"""
Concurrency tests for the single-statement counters and one-time credentials.

Each worker gets its own session on a file-backed SQLite database and waits
on a barrier, so the conditional UPDATEs race for real.
"""

import threading
from concurrent.futures import ThreadPoolExecutor

import pytest
from sqlalchemy import create_engine
from sqlalchemy.orm import sessionmaker
from sqlalchemy.pool import NullPool

import repositories.db_models as db_models
from authentication.auth import get_password_hash
from helpers.time_utils import utc_now
from models.exceptions import InvalidTokenException
from repositories.account_repository import AccountRepository
from repositories.database import Base
from repositories.mfa_repository import BackupCodeRepository
from services.refresh_token_service import RefreshTokenService

WORKERS = 8


@pytest.fixture
def file_sessions(tmp_path):
    """Session factory bound to a fresh SQLite file shared by all threads."""
    engine = create_engine(
        f"sqlite:///{tmp_path / 'concurrency.db'}",
        connect_args={"check_same_thread": False, "timeout": 30},
        poolclass=NullPool,
    )
    Base.metadata.create_all(bind=engine)
    try:
        yield sessionmaker(bind=engine, autoflush=False)
    finally:
        engine.dispose()


@pytest.fixture
def account_id(file_sessions) -> int:
    session = file_sessions()
    try:
        account = db_models.Account(
            email="racer@example.com",
            hashed_password=get_password_hash("CorrectHorse42!"),
        )
        session.add(account)
        session.commit()
        return account.id
    finally:
        session.close()


def run_concurrently(file_sessions, work) -> list:
    """Run ``work(session)`` in WORKERS threads released at the same instant."""
    barrier = threading.Barrier(WORKERS)

    def worker():
        session = file_sessions()
        try:
            barrier.wait()
            return work(session)
        finally:
            session.close()

    with ThreadPoolExecutor(max_workers=WORKERS) as executor:
        futures = [executor.submit(worker) for _ in range(WORKERS)]
        return [future.result() for future in futures]


class TestConcurrentConsumption:
    """Exactly one racer wins a one-time credential."""

    def test_backup_code_consumed_once(self, file_sessions, account_id) -> None:
        setup = file_sessions()
        code = BackupCodeRepository(setup).replace_codes(account_id, 1)[0]
        setup.commit()
        setup.close()

        def consume(session):
            used = BackupCodeRepository(session).consume(account_id, code)
            session.commit()
            return used

        results = run_concurrently(file_sessions, consume)

        assert results.count(True) == 1
        assert results.count(False) == WORKERS - 1

    def test_refresh_token_used_once(self, file_sessions, account_id) -> None:
        setup = file_sessions()
        raw_token = RefreshTokenService.create_refresh_token(setup, account_id).refresh_token
        setup.close()

        def refresh(session):
            try:
                RefreshTokenService.use_refresh_token(session, raw_token)
            except InvalidTokenException:
                return "invalid"
            return "ok"

        results = run_concurrently(file_sessions, refresh)

        assert results.count("ok") == 1
        assert results.count("invalid") == WORKERS - 1


class TestConcurrentFailureCounter:
    """Concurrent failures never lose an increment."""

    def test_every_increment_lands(self, file_sessions, account_id) -> None:
        now = utc_now()

        def increment(session):
            value = AccountRepository(session).increment_failed_attempts(account_id, now)
            session.commit()
            return value

        results = run_concurrently(file_sessions, increment)

        check = file_sessions()
        try:
            account = check.get(db_models.Account, account_id)
            assert account.failed_login_attempts == WORKERS
        finally:
            check.close()
        assert sorted(results) == list(range(1, WORKERS + 1))
