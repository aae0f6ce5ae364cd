import sqlite3
import time
import logging
from contextlib import contextmanager
from pathlib import Path
from teammate_graph.config import DATABASE_PATH
from teammate_graph.utils import normalize_name

logger = logging.getLogger(__name__)

# Use database path from config
DATABASE_NAME = str(DATABASE_PATH)

PLAYER_COLUMNS = '''
    player_id, name, position, country, image_url, current_club_id, current_club_name
'''

MAX_SEARCH_LIMIT = 20


@contextmanager
def get_db():
    """Context manager for database connections with proper timeout"""
    # Set timeout to 20 seconds to handle concurrent writes better
    conn = sqlite3.connect(DATABASE_NAME, timeout=20.0)
    conn.row_factory = sqlite3.Row
    try:
        yield conn
        conn.commit()
    except Exception as e:
        conn.rollback()
        raise e
    finally:
        conn.close()


def init_db():
    """Create the players/teammates tables and their indexes if they do not exist"""
    Path(DATABASE_NAME).parent.mkdir(parents=True, exist_ok=True)

    with get_db() as conn:
        cursor = conn.cursor()

        # WAL lets path queries read while the ingestion step writes
        cursor.execute('PRAGMA journal_mode=WAL')
        cursor.execute('PRAGMA busy_timeout=20000')

        cursor.execute('''
            CREATE TABLE IF NOT EXISTS players (
                player_id INTEGER PRIMARY KEY,
                name TEXT NOT NULL,
                position TEXT,
                country TEXT,
                image_url TEXT,
                current_club_id INTEGER,
                current_club_name TEXT,
                name_normalized TEXT
            )
        ''')

        cursor.execute('''
            CREATE TABLE IF NOT EXISTS teammates (
                player_id INTEGER,
                teammate_id INTEGER,
                games_together REAL,
                PRIMARY KEY (player_id, teammate_id)
            )
        ''')

        cursor.execute('''
            CREATE INDEX IF NOT EXISTS idx_players_name_normalized ON players(name_normalized)
        ''')
        cursor.execute('''
            CREATE INDEX IF NOT EXISTS idx_teammates_player ON teammates(player_id)
        ''')
        cursor.execute('''
            CREATE INDEX IF NOT EXISTS idx_teammates_teammate ON teammates(teammate_id)
        ''')


def _write_with_retry(write, max_retries=3):
    """
    Run a write callback inside a transaction, retrying when the database is locked

    Args:
        write: Callable receiving a cursor, returning the value to hand back
        max_retries: Maximum number of retry attempts (default: 3)

    Raises:
        sqlite3.OperationalError: If database remains locked after all retries
    """
    for attempt in range(max_retries):
        try:
            with get_db() as conn:
                return write(conn.cursor())

        except sqlite3.OperationalError as e:
            error_str = str(e).lower()
            if 'locked' in error_str or 'busy' in error_str:
                if attempt < max_retries - 1:
                    # Exponential backoff: 0.1s, 0.2s, 0.4s
                    sleep_time = 0.1 * (2 ** attempt)
                    logger.warning(f"Database locked, retrying in {sleep_time}s (attempt {attempt + 1}/{max_retries})")
                    time.sleep(sleep_time)
                    continue
            raise


def save_players(players, max_retries=3):
    """
    Insert or replace player records in a single transaction

    Write side of the store, for the external ingestion step that produces
    the dataset and for seeding test databases. The path search only reads.

    Args:
        players: Iterable of dicts with player_id, name and optional
            position, country, image_url, current_club_id, current_club_name
        max_retries: Maximum retry attempts for database lock errors

    Returns:
        int: Number of players written
    """
    rows = [
        (
            p['player_id'],
            p['name'],
            p.get('position'),
            p.get('country'),
            p.get('image_url'),
            p.get('current_club_id'),
            p.get('current_club_name'),
            normalize_name(p['name']),
        )
        for p in players
    ]

    def write(cursor):
        cursor.executemany('''
            INSERT OR REPLACE INTO players
            (player_id, name, position, country, image_url,
             current_club_id, current_club_name, name_normalized)
            VALUES (?, ?, ?, ?, ?, ?, ?, ?)
        ''', rows)
        return len(rows)

    return _write_with_retry(write, max_retries)


def save_teammates(pairs, max_retries=3):
    """
    Insert teammate relationships in a single transaction

    Used by the external ingestion step and test fixtures; duplicate
    (player_id, teammate_id) records are ignored.

    Args:
        pairs: Iterable of (player_id, teammate_id) or
            (player_id, teammate_id, games_together) tuples
        max_retries: Maximum retry attempts for database lock errors

    Returns:
        int: Number of records submitted
    """
    rows = [(pair[0], pair[1], pair[2] if len(pair) > 2 else None) for pair in pairs]

    def write(cursor):
        cursor.executemany('''
            INSERT OR IGNORE INTO teammates (player_id, teammate_id, games_together)
            VALUES (?, ?, ?)
        ''', rows)
        return len(rows)

    return _write_with_retry(write, max_retries)


def get_all_teammate_pairs():
    """
    Load every teammate relationship as (player_id, teammate_id) pairs

    Called once per graph build. Any sqlite3 error propagates to the caller.
    """
    with get_db() as conn:
        cursor = conn.cursor()
        cursor.execute('SELECT player_id, teammate_id FROM teammates')
        return [(row[0], row[1]) for row in cursor.fetchall()]


def get_player_by_id(player_id):
    """Get a player's display attributes, or None if the player is unknown"""
    with get_db() as conn:
        cursor = conn.cursor()
        cursor.execute(f'''
            SELECT {PLAYER_COLUMNS}
            FROM players
            WHERE player_id = ?
        ''', (player_id,))

        row = cursor.fetchone()
        return dict(row) if row else None


def search_players(query, limit=10):
    """
    Find players whose name contains the query

    Matching ignores case and accents. Names starting with the query rank
    first, then shorter names.

    Args:
        query: Free text entered by the user (at least 2 characters)
        limit: Maximum number of results (capped at 20)

    Returns:
        List of player dicts
    """
    normalized = normalize_name(query or '')
    if len(normalized) < 2:
        return []

    limit = max(1, min(limit, MAX_SEARCH_LIMIT))

    with get_db() as conn:
        cursor = conn.cursor()
        cursor.execute(f'''
            SELECT {PLAYER_COLUMNS}
            FROM players
            WHERE name_normalized LIKE ?
            ORDER BY
                CASE WHEN name_normalized LIKE ? THEN 0 ELSE 1 END,
                LENGTH(name)
            LIMIT ?
        ''', (f'%{normalized}%', f'{normalized}%', limit))

        return [dict(row) for row in cursor.fetchall()]
