"""SQLite schema definitions for the finance tracker."""

SCHEMA_SQL = """
-- Users mirrored from the identity provider
CREATE TABLE IF NOT EXISTS users (
    id TEXT PRIMARY KEY,  -- Opaque identity-provider user ID
    email TEXT NOT NULL DEFAULT '',
    first_name TEXT,
    last_name TEXT,
    image_url TEXT,
    created_at TEXT DEFAULT CURRENT_TIMESTAMP,
    updated_at TEXT DEFAULT CURRENT_TIMESTAMP
);

-- Categories table (shared by all users)
CREATE TABLE IF NOT EXISTS categories (
    id INTEGER PRIMARY KEY AUTOINCREMENT,
    name TEXT NOT NULL UNIQUE,
    color TEXT DEFAULT '#6B7280',  -- Color for charts (hex)
    icon TEXT DEFAULT 'circle',
    created_at TEXT DEFAULT CURRENT_TIMESTAMP
);

-- Transactions table
CREATE TABLE IF NOT EXISTS transactions (
    id INTEGER PRIMARY KEY AUTOINCREMENT,
    user_id TEXT NOT NULL,
    amount REAL NOT NULL CHECK (amount > 0),  -- Always positive, sign comes from type
    type TEXT NOT NULL CHECK (type IN ('income', 'expense')),
    description TEXT NOT NULL,
    category_id INTEGER,
    transaction_date TEXT NOT NULL,  -- ISO date (YYYY-MM-DD)
    created_at TEXT DEFAULT CURRENT_TIMESTAMP,
    updated_at TEXT DEFAULT CURRENT_TIMESTAMP,
    FOREIGN KEY (user_id) REFERENCES users(id) ON DELETE CASCADE,
    FOREIGN KEY (category_id) REFERENCES categories(id)
);

-- Budgets table, one per (user, category, period) checked before insert
CREATE TABLE IF NOT EXISTS budgets (
    id INTEGER PRIMARY KEY AUTOINCREMENT,
    user_id TEXT NOT NULL,
    category_id INTEGER NOT NULL,
    amount REAL NOT NULL,
    period TEXT NOT NULL DEFAULT 'monthly' CHECK (period IN ('monthly', 'yearly')),
    start_date TEXT NOT NULL,
    end_date TEXT NOT NULL,
    created_at TEXT DEFAULT CURRENT_TIMESTAMP,
    updated_at TEXT DEFAULT CURRENT_TIMESTAMP,
    FOREIGN KEY (user_id) REFERENCES users(id) ON DELETE CASCADE,
    FOREIGN KEY (category_id) REFERENCES categories(id)
);

-- Indexes for common queries
CREATE INDEX IF NOT EXISTS idx_transactions_user ON transactions(user_id);
CREATE INDEX IF NOT EXISTS idx_transactions_date ON transactions(transaction_date);
CREATE INDEX IF NOT EXISTS idx_transactions_category ON transactions(category_id);
CREATE INDEX IF NOT EXISTS idx_budgets_user ON budgets(user_id);
CREATE INDEX IF NOT EXISTS idx_budgets_lookup ON budgets(user_id, category_id, period);
"""

# Default category insert
DEFAULT_CATEGORIES_SQL = """
INSERT OR IGNORE INTO categories (name, color, icon) VALUES (?, ?, ?)
"""

# Transaction rows are always returned joined with their category
TRANSACTION_SELECT_SQL = """
SELECT t.*,
       c.name AS category_name,
       c.color AS category_color,
       c.icon AS category_icon
FROM transactions t
LEFT JOIN categories c ON c.id = t.category_id
"""

BUDGET_SELECT_SQL = """
SELECT b.*,
       c.name AS category_name,
       c.color AS category_color,
       c.icon AS category_icon
FROM budgets b
LEFT JOIN categories c ON c.id = b.category_id
"""
