"""
Allocation Outcome Store
========================
Writes the final matching to PostgreSQL.

The outcome table is rebuilt on every save:

    deferred_acceptance_outcome (
        id SERIAL PRIMARY KEY,
        block_id VARCHAR(64),          -- course id, NULL for an unmatched student
        student_block_id VARCHAR(64)   -- student id, NULL for an unmatched course
    )
"""

import logging
import os
from typing import Iterable, List, Optional, Tuple

import psycopg2
from psycopg2 import sql
from psycopg2.extras import RealDictCursor

from ta_allocation import config
from ta_allocation.matching.errors import AllocationError
from ta_allocation.matching.models import MatchPair

logger = logging.getLogger(__name__)


class OutcomeStoreError(AllocationError):
    """Persisting or reading the outcome failed."""
    pass


def get_db_connection():
    """Get database connection from environment variables."""
    if config.DATABASE_URL:
        return psycopg2.connect(config.DATABASE_URL, cursor_factory=RealDictCursor)

    return psycopg2.connect(
        host=os.environ.get('PGHOST', 'localhost'),
        port=os.environ.get('PGPORT', '5432'),
        database=os.environ.get('PGDATABASE', 'ta_allocation'),
        user=os.environ.get('PGUSER', 'postgres'),
        password=os.environ.get('PGPASSWORD', ''),
        cursor_factory=RealDictCursor
    )


def to_row(pair: MatchPair) -> Tuple[Optional[str], Optional[str]]:
    """(block_id, student_block_id) for one outcome pair."""
    return (pair.course_id, pair.student_id)


def save_matching(pairs: Iterable[MatchPair], conn=None, table: Optional[str] = None) -> int:
    """
    Replace the outcome table with `pairs`.

    Args:
        pairs: Final merged matching
        conn: Open psycopg2 connection; one is opened (and closed) if omitted
        table: Table name, defaults to ALLOCATION_OUTCOME_TABLE

    Returns:
        Number of rows written

    Raises:
        OutcomeStoreError: on any database failure (the transaction is rolled back)
    """
    table = table or config.ALLOCATION_OUTCOME_TABLE
    rows = [to_row(p) for p in pairs]
    owns_conn = conn is None

    try:
        if owns_conn:
            conn = get_db_connection()
        with conn.cursor() as cur:
            cur.execute(sql.SQL("DROP TABLE IF EXISTS {}").format(sql.Identifier(table)))
            cur.execute(sql.SQL("""
                CREATE TABLE {} (
                    id SERIAL PRIMARY KEY,
                    block_id VARCHAR(64),
                    student_block_id VARCHAR(64)
                )
            """).format(sql.Identifier(table)))
            cur.executemany(
                sql.SQL("INSERT INTO {} (block_id, student_block_id) VALUES (%s, %s)").format(
                    sql.Identifier(table)
                ),
                rows,
            )
        conn.commit()
    except psycopg2.Error as e:
        if conn is not None:
            conn.rollback()
        logger.error(f"Failed to save allocation outcome: {e}")
        raise OutcomeStoreError(f"failed to save allocation outcome: {e}") from e
    finally:
        if owns_conn and conn is not None:
            conn.close()

    logger.info(f"Saved {len(rows)} outcome rows to {table}")
    return len(rows)


def load_matching(conn=None, table: Optional[str] = None) -> List[MatchPair]:
    """Read the stored outcome back, in insertion order."""
    table = table or config.ALLOCATION_OUTCOME_TABLE
    owns_conn = conn is None

    try:
        if owns_conn:
            conn = get_db_connection()
        with conn.cursor(cursor_factory=RealDictCursor) as cur:
            cur.execute(
                sql.SQL("SELECT block_id, student_block_id FROM {} ORDER BY id").format(
                    sql.Identifier(table)
                )
            )
            rows = cur.fetchall()
    except psycopg2.Error as e:
        logger.error(f"Failed to load allocation outcome: {e}")
        raise OutcomeStoreError(f"failed to load allocation outcome: {e}") from e
    finally:
        if owns_conn and conn is not None:
            conn.close()

    return [
        MatchPair(student_id=row["student_block_id"], course_id=row["block_id"])
        for row in rows
    ]
