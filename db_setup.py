import sqlite3

from config import get_settings


def init_db(db_path: str = None):
    conn = get_db_connection(db_path)
    cursor = conn.cursor()

    cursor.execute('''
        CREATE TABLE IF NOT EXISTS Contact (
            id INTEGER PRIMARY KEY AUTOINCREMENT,
            phoneNumber TEXT,
            email TEXT,
            linkedId INTEGER,
            linkPrecedence TEXT NOT NULL CHECK(linkPrecedence IN ('secondary', 'primary')),
            createdAt DATETIME NOT NULL,
            updatedAt DATETIME NOT NULL,
            deletedAt DATETIME,
            CHECK (email IS NOT NULL OR phoneNumber IS NOT NULL),
            FOREIGN KEY (linkedId) REFERENCES Contact (id)
        )
    ''')
    cursor.execute("CREATE INDEX IF NOT EXISTS idx_contact_email ON Contact (email)")
    cursor.execute("CREATE INDEX IF NOT EXISTS idx_contact_phone ON Contact (phoneNumber)")
    cursor.execute("CREATE INDEX IF NOT EXISTS idx_contact_linked ON Contact (linkedId)")

    conn.close()


def get_db_connection(db_path: str = None, timeout: float = None):
    """Open a connection in autocommit mode; callers manage transactions explicitly."""
    settings = get_settings()
    conn = sqlite3.connect(
        db_path or settings.database_path,
        timeout=settings.database_timeout if timeout is None else timeout,
        isolation_level=None,
        check_same_thread=False,
    )
    conn.row_factory = sqlite3.Row
    conn.execute("PRAGMA foreign_keys = ON")
    return conn
