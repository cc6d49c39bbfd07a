"""Database schema definitions"""

# Users table, credentials are kept as a serialized list per user
USERS_TABLE = """
CREATE TABLE IF NOT EXISTS users (
    id BLOB PRIMARY KEY,
    display_name TEXT NOT NULL,
    name TEXT NOT NULL UNIQUE,
    creds BLOB,  -- JSON array of credentials
    created_at DATETIME
)
"""

# Pending ceremonies, at most one per user
SESSIONS_TABLE = """
CREATE TABLE IF NOT EXISTS sessions (
    token TEXT PRIMARY KEY,
    user_id BLOB NOT NULL UNIQUE,
    ceremony TEXT NOT NULL,  -- 'registration' or 'login'
    session_data BLOB,  -- JSON object produced by the ceremony engine
    expires_at DATETIME NOT NULL,
    FOREIGN KEY (user_id) REFERENCES users (id) ON DELETE CASCADE
)
"""

# Authenticated sessions issued after a successful login
AUTH_SESSIONS_TABLE = """
CREATE TABLE IF NOT EXISTS auth_sessions (
    token TEXT PRIMARY KEY,
    user_id BLOB NOT NULL UNIQUE,
    created_at DATETIME NOT NULL,
    last_activity DATETIME NOT NULL,
    expires_at DATETIME NOT NULL,
    FOREIGN KEY (user_id) REFERENCES users (id) ON DELETE CASCADE
)
"""

# Schema version table for migrations
SCHEMA_VERSION_TABLE = """
CREATE TABLE IF NOT EXISTS schema_version (
    version INTEGER PRIMARY KEY,
    applied_at DATETIME NOT NULL,
    description TEXT
)
"""

INDEXES = [
    "CREATE INDEX IF NOT EXISTS idx_users_name ON users(name)",
    "CREATE INDEX IF NOT EXISTS idx_sessions_expires ON sessions(expires_at)",
    "CREATE INDEX IF NOT EXISTS idx_auth_sessions_expires ON auth_sessions(expires_at)"
]

# All tables in order of creation
ALL_TABLES = [
    SCHEMA_VERSION_TABLE,
    USERS_TABLE,
    SESSIONS_TABLE,
    AUTH_SESSIONS_TABLE
]
