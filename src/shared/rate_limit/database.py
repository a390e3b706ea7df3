"""Shared SQL store for rate limiting across multiple server processes."""

import logging
from typing import Optional

from sqlalchemy import create_engine, Column, String, Integer, Float
from sqlalchemy.exc import IntegrityError
from sqlalchemy.orm import declarative_base, sessionmaker

from src.shared.rate_limit.rate_limiter import RateLimitRecord, apply_submission

Base = declarative_base()


class RateLimitRow(Base):
    """Rate-limit counter for one normalized identity (email or phone digits)."""
    __tablename__ = "rate_limit_records"

    identity_key = Column(String, primary_key=True)
    count = Column(Integer, nullable=False, default=0)
    # Epoch seconds; comparable across processes
    window_reset_at = Column(Float, nullable=False, index=True)


def create_rate_limit_engine(database_url: str, **engine_kwargs):
    """Create an engine with the same pool settings the service uses elsewhere."""
    if database_url.startswith("postgres://"):
        database_url = database_url.replace("postgres://", "postgresql://", 1)
    if not database_url.startswith("sqlite"):
        engine_kwargs.setdefault("pool_pre_ping", True)  # Verify connections before using
        engine_kwargs.setdefault("pool_recycle", 3600)
    return create_engine(database_url, **engine_kwargs)


class SqlRateLimitStore:
    """
    RateLimitStore backed by a SQL table.
    The counter row is locked (SELECT ... FOR UPDATE) for the read-modify-write,
    so concurrent processes cannot both admit the boundary submission.
    """

    def __init__(self, engine, create_tables: bool = True):
        self.engine = engine
        self._session_factory = sessionmaker(autocommit=False, autoflush=False, bind=engine)
        if create_tables:
            Base.metadata.create_all(bind=engine, checkfirst=True)

    def check_and_increment(self, identity_key: str, now: float,
                            window_seconds: float, max_requests: int) -> bool:
        for attempt in range(2):
            db = self._session_factory()
            try:
                row = (
                    db.query(RateLimitRow)
                    .filter(RateLimitRow.identity_key == identity_key)
                    .with_for_update()
                    .first()
                )
                current: Optional[RateLimitRecord] = None
                if row is not None:
                    current = RateLimitRecord(row.identity_key, row.count, row.window_reset_at)

                allowed, updated = apply_submission(current, identity_key, now, window_seconds, max_requests)

                if row is None:
                    db.add(RateLimitRow(
                        identity_key=updated.identity_key,
                        count=updated.count,
                        window_reset_at=updated.window_reset_at,
                    ))
                else:
                    row.count = updated.count
                    row.window_reset_at = updated.window_reset_at
                db.commit()
                return allowed
            except IntegrityError:
                # Another process created the row first; retry against it
                db.rollback()
                if attempt:
                    raise
                logging.info("Rate limit row created concurrently, retrying")
            except Exception:
                db.rollback()
                raise
            finally:
                db.close()
        return False

    def delete_expired(self, now: float) -> int:
        db = self._session_factory()
        try:
            removed = db.query(RateLimitRow).filter(
                RateLimitRow.window_reset_at <= now
            ).delete(synchronize_session=False)
            db.commit()
            return removed or 0
        except Exception as e:
            logging.warning(f"Failed to clean up expired rate limit records: {str(e)}")
            db.rollback()
            raise
        finally:
            db.close()

    def count(self) -> int:
        db = self._session_factory()
        try:
            return db.query(RateLimitRow).count()
        finally:
            db.close()
