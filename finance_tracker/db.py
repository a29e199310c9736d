"""SQLite document store for transactions, summaries and user documents.

Transactions and the two summary collections get their own tables so they
can be filtered in SQL. Everything else (categories, goals, assets, the
monthly budget, recurring items) is kept as JSON in ``documents`` keyed by
collection and id.
"""

from __future__ import annotations

import json
import logging
import sqlite3
from contextlib import contextmanager
from datetime import datetime, timezone
from typing import Any, Dict, Iterator, List, Optional, Sequence

import pandas as pd

from .config import DB_PATH, ensure_data_directories
from .models import Transaction

logger = logging.getLogger(__name__)

SCHEMA_SQL = """
PRAGMA journal_mode=WAL;
PRAGMA synchronous=NORMAL;

CREATE TABLE IF NOT EXISTS transactions (
    id TEXT PRIMARY KEY,
    date TEXT NOT NULL,
    year INTEGER NOT NULL,
    month INTEGER NOT NULL,
    description TEXT,
    category TEXT,
    type TEXT NOT NULL,
    amount REAL NOT NULL,
    payment_method TEXT,
    bank_account_id TEXT,
    recurring_transaction_id TEXT,
    tags TEXT,
    created_at TEXT
);

CREATE INDEX IF NOT EXISTS ix_txn_date ON transactions (date);
CREATE INDEX IF NOT EXISTS ix_txn_period ON transactions (year, month);
CREATE INDEX IF NOT EXISTS ix_txn_category ON transactions (category);

CREATE TABLE IF NOT EXISTS category_summaries (
    id TEXT PRIMARY KEY,
    year INTEGER NOT NULL,
    month INTEGER NOT NULL,
    category_id TEXT NOT NULL,
    total_spent REAL NOT NULL DEFAULT 0,
    transaction_count INTEGER NOT NULL DEFAULT 0,
    last_updated TEXT
);

CREATE INDEX IF NOT EXISTS ix_summary_period ON category_summaries (year, month);

CREATE TABLE IF NOT EXISTS monthly_summaries (
    id TEXT PRIMARY KEY,
    year INTEGER NOT NULL,
    month INTEGER NOT NULL,
    category_totals TEXT NOT NULL DEFAULT '{}',
    total_spent REAL NOT NULL DEFAULT 0,
    last_updated TEXT
);

CREATE TABLE IF NOT EXISTS documents (
    collection TEXT NOT NULL,
    doc_id TEXT NOT NULL,
    data TEXT NOT NULL,
    updated_at TEXT,
    PRIMARY KEY (collection, doc_id)
);
"""

TRANSACTION_COLUMNS = (
    'id', 'date', 'description', 'category', 'type', 'amount',
    'payment_method', 'bank_account_id', 'recurring_transaction_id', 'tags',
)

# Column labels used by the analytics frames
FRAME_COLUMNS = {
    'id': 'id',
    'date': 'Transaction Date',
    'description': 'Description',
    'category': 'Category',
    'type': 'Type',
    'amount': 'Amount',
    'payment_method': 'Payment Method',
    'bank_account_id': 'Bank Account',
    'recurring_transaction_id': 'Recurring Id',
}


def _now() -> str:
    return datetime.now(timezone.utc).isoformat()


@contextmanager
def connect() -> Iterator[sqlite3.Connection]:
    ensure_data_directories()
    DB_PATH.parent.mkdir(parents=True, exist_ok=True)
    conn = sqlite3.connect(str(DB_PATH))
    conn.row_factory = sqlite3.Row
    try:
        yield conn
    finally:
        conn.close()


def init_db() -> None:
    with connect() as conn:
        conn.executescript(SCHEMA_SQL)
        conn.commit()
        _migrate_database(conn)


def _migrate_database(conn: sqlite3.Connection) -> None:
    """Add columns introduced after the first schema version."""
    cursor = conn.cursor()
    cursor.execute("PRAGMA table_info(transactions)")
    existing_columns = [row[1] for row in cursor.fetchall()]

    new_columns = [
        ('recurring_transaction_id', 'TEXT'),
        ('tags', 'TEXT'),
        ('created_at', 'TEXT'),
    ]

    for column_name, column_type in new_columns:
        if column_name not in existing_columns:
            try:
                cursor.execute(f"ALTER TABLE transactions ADD COLUMN {column_name} {column_type}")
                logger.info("Added column %s to transactions table", column_name)
            except sqlite3.OperationalError as e:
                if "duplicate column name" not in str(e):
                    raise

    conn.commit()


def clear_database() -> None:
    """Remove every row from every table."""
    with connect() as conn:
        for table in ('transactions', 'category_summaries', 'monthly_summaries', 'documents'):
            conn.execute(f"DELETE FROM {table}")
        conn.commit()


# --- transactions ---------------------------------------------------------

def _row_to_transaction(row: sqlite3.Row) -> Transaction:
    data = {key: row[key] for key in TRANSACTION_COLUMNS}
    data['tags'] = json.loads(data['tags']) if data['tags'] else []
    return Transaction.from_dict(data)


def insert_transaction(txn: Transaction) -> Transaction:
    """Insert a transaction; a duplicate id raises ``sqlite3.IntegrityError``."""
    with connect() as conn:
        conn.execute(
            "INSERT INTO transactions (id, date, year, month, description, category, type, amount, "
            "payment_method, bank_account_id, recurring_transaction_id, tags, created_at) "
            "VALUES (?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?)",
            (
                txn.id, txn.date, txn.year, txn.month, txn.description, txn.category,
                txn.type, txn.amount, txn.payment_method, txn.bank_account_id,
                txn.recurring_transaction_id, json.dumps(txn.tags or []), _now(),
            ),
        )
        conn.commit()
    return txn


def get_transaction(transaction_id: str) -> Transaction:
    with connect() as conn:
        row = conn.execute(
            f"SELECT {', '.join(TRANSACTION_COLUMNS)} FROM transactions WHERE id = ?",
            (transaction_id,),
        ).fetchone()
    if row is None:
        raise KeyError(f"Transaction not found: {transaction_id}")
    return _row_to_transaction(row)


def update_transaction(txn: Transaction) -> bool:
    """Overwrite the stored copy of ``txn``.

    Returns True if a row was updated, False if the id is unknown.
    """
    with connect() as conn:
        cursor = conn.execute(
            "UPDATE transactions SET date = ?, year = ?, month = ?, description = ?, category = ?, "
            "type = ?, amount = ?, payment_method = ?, bank_account_id = ?, "
            "recurring_transaction_id = ?, tags = ? WHERE id = ?",
            (
                txn.date, txn.year, txn.month, txn.description, txn.category, txn.type,
                txn.amount, txn.payment_method, txn.bank_account_id,
                txn.recurring_transaction_id, json.dumps(txn.tags or []), txn.id,
            ),
        )
        conn.commit()
        return cursor.rowcount > 0


def delete_transaction(transaction_id: str) -> bool:
    with connect() as conn:
        cursor = conn.execute("DELETE FROM transactions WHERE id = ?", (transaction_id,))
        conn.commit()
        return cursor.rowcount > 0


def _transaction_filters(
    start_date: Optional[str],
    end_date: Optional[str],
    categories: Optional[Sequence[str]],
    types: Optional[Sequence[str]],
):
    where: List[str] = []
    params: List[Any] = []

    if start_date:
        where.append("date >= ?")
        params.append(start_date)
    if end_date:
        where.append("date <= ?")
        params.append(end_date)
    if categories:
        where.append("category IN ({})".format(",".join(["?" for _ in categories])))
        params.extend(list(categories))
    if types:
        where.append("type IN ({})".format(",".join(["?" for _ in types])))
        params.extend(list(types))
    return where, params


def list_transactions(
    start_date: Optional[str] = None,
    end_date: Optional[str] = None,
    categories: Optional[Sequence[str]] = None,
    types: Optional[Sequence[str]] = None,
) -> List[Transaction]:
    where, params = _transaction_filters(start_date, end_date, categories, types)
    sql = f"SELECT {', '.join(TRANSACTION_COLUMNS)} FROM transactions"
    if where:
        sql += " WHERE " + " AND ".join(where)
    sql += " ORDER BY date ASC, created_at ASC, id ASC"

    with connect() as conn:
        rows = conn.execute(sql, params).fetchall()
    return [_row_to_transaction(row) for row in rows]


def fetch_transactions(
    start_date: Optional[str] = None,
    end_date: Optional[str] = None,
    categories: Optional[Sequence[str]] = None,
    types: Optional[Sequence[str]] = None,
) -> pd.DataFrame:
    """Return the ledger as a DataFrame with display column names."""
    where, params = _transaction_filters(start_date, end_date, categories, types)
    select = ", ".join(f"{col} AS '{label}'" for col, label in FRAME_COLUMNS.items())
    sql = f"SELECT {select} FROM transactions"
    if where:
        sql += " WHERE " + " AND ".join(where)
    sql += " ORDER BY date ASC, id ASC"

    with connect() as conn:
        df = pd.read_sql_query(sql, conn, params=params)
    if not df.empty:
        df['Transaction Date'] = pd.to_datetime(df['Transaction Date'])
    return df


def count_transactions() -> int:
    with connect() as conn:
        return int(conn.execute("SELECT COUNT(*) FROM transactions").fetchone()[0])


# --- category summaries ---------------------------------------------------

def _summary_row(row: sqlite3.Row) -> Dict[str, Any]:
    return {
        'id': row['id'],
        'year': row['year'],
        'month': row['month'],
        'category_id': row['category_id'],
        'total_spent': row['total_spent'],
        'transaction_count': row['transaction_count'],
        'last_updated': row['last_updated'],
    }


def get_category_summary(summary_id: str) -> Optional[Dict[str, Any]]:
    with connect() as conn:
        row = conn.execute("SELECT * FROM category_summaries WHERE id = ?", (summary_id,)).fetchone()
    return _summary_row(row) if row else None


def put_category_summary(summary: Dict[str, Any]) -> None:
    with connect() as conn:
        conn.execute(
            "INSERT OR REPLACE INTO category_summaries "
            "(id, year, month, category_id, total_spent, transaction_count, last_updated) "
            "VALUES (?, ?, ?, ?, ?, ?, ?)",
            (
                summary['id'], summary['year'], summary['month'], summary['category_id'],
                summary['total_spent'], summary['transaction_count'], _now(),
            ),
        )
        conn.commit()


def delete_category_summary(summary_id: str) -> bool:
    with connect() as conn:
        cursor = conn.execute("DELETE FROM category_summaries WHERE id = ?", (summary_id,))
        conn.commit()
        return cursor.rowcount > 0


def list_category_summaries(year: Optional[int] = None, month: Optional[int] = None) -> List[Dict[str, Any]]:
    where: List[str] = []
    params: List[Any] = []
    if year is not None:
        where.append("year = ?")
        params.append(year)
    if month is not None:
        where.append("month = ?")
        params.append(month)
    sql = "SELECT * FROM category_summaries"
    if where:
        sql += " WHERE " + " AND ".join(where)
    sql += " ORDER BY year, month, category_id"
    with connect() as conn:
        rows = conn.execute(sql, params).fetchall()
    return [_summary_row(row) for row in rows]


def replace_category_summaries(summaries: Sequence[Dict[str, Any]]) -> int:
    """Drop every stored category summary and write ``summaries`` instead."""
    stamp = _now()
    with connect() as conn:
        conn.execute("DELETE FROM category_summaries")
        conn.executemany(
            "INSERT INTO category_summaries "
            "(id, year, month, category_id, total_spent, transaction_count, last_updated) "
            "VALUES (?, ?, ?, ?, ?, ?, ?)",
            [
                (s['id'], s['year'], s['month'], s['category_id'],
                 s['total_spent'], s['transaction_count'], stamp)
                for s in summaries
            ],
        )
        conn.commit()
    return len(summaries)


# --- monthly summaries ----------------------------------------------------

def _monthly_row(row: sqlite3.Row) -> Dict[str, Any]:
    return {
        'id': row['id'],
        'year': row['year'],
        'month': row['month'],
        'category_totals': json.loads(row['category_totals'] or '{}'),
        'total_spent': row['total_spent'],
        'last_updated': row['last_updated'],
    }


def get_monthly_summary(month_key: str) -> Optional[Dict[str, Any]]:
    with connect() as conn:
        row = conn.execute("SELECT * FROM monthly_summaries WHERE id = ?", (month_key,)).fetchone()
    return _monthly_row(row) if row else None


def put_monthly_summary(summary: Dict[str, Any]) -> None:
    with connect() as conn:
        conn.execute(
            "INSERT OR REPLACE INTO monthly_summaries "
            "(id, year, month, category_totals, total_spent, last_updated) VALUES (?, ?, ?, ?, ?, ?)",
            (
                summary['id'], summary['year'], summary['month'],
                json.dumps(summary['category_totals'], sort_keys=True),
                summary['total_spent'], _now(),
            ),
        )
        conn.commit()


def delete_monthly_summary(month_key: str) -> bool:
    with connect() as conn:
        cursor = conn.execute("DELETE FROM monthly_summaries WHERE id = ?", (month_key,))
        conn.commit()
        return cursor.rowcount > 0


def list_monthly_summaries(year: Optional[int] = None) -> List[Dict[str, Any]]:
    sql = "SELECT * FROM monthly_summaries"
    params: List[Any] = []
    if year is not None:
        sql += " WHERE year = ?"
        params.append(year)
    sql += " ORDER BY year, month"
    with connect() as conn:
        rows = conn.execute(sql, params).fetchall()
    return [_monthly_row(row) for row in rows]


def replace_monthly_summaries(summaries: Sequence[Dict[str, Any]]) -> int:
    stamp = _now()
    with connect() as conn:
        conn.execute("DELETE FROM monthly_summaries")
        conn.executemany(
            "INSERT INTO monthly_summaries "
            "(id, year, month, category_totals, total_spent, last_updated) VALUES (?, ?, ?, ?, ?, ?)",
            [
                (s['id'], s['year'], s['month'], json.dumps(s['category_totals'], sort_keys=True),
                 s['total_spent'], stamp)
                for s in summaries
            ],
        )
        conn.commit()
    return len(summaries)


# --- generic documents ----------------------------------------------------

def put_document(collection: str, doc_id: str, data: Dict[str, Any]) -> None:
    with connect() as conn:
        conn.execute(
            "INSERT OR REPLACE INTO documents (collection, doc_id, data, updated_at) VALUES (?, ?, ?, ?)",
            (collection, doc_id, json.dumps(data, ensure_ascii=False), _now()),
        )
        conn.commit()


def get_document(collection: str, doc_id: str) -> Dict[str, Any]:
    with connect() as conn:
        row = conn.execute(
            "SELECT data FROM documents WHERE collection = ? AND doc_id = ?",
            (collection, doc_id),
        ).fetchone()
    if row is None:
        raise KeyError(f"{collection}/{doc_id} not found")
    return json.loads(row['data'])


def list_documents(collection: str) -> List[Dict[str, Any]]:
    with connect() as conn:
        rows = conn.execute(
            "SELECT data FROM documents WHERE collection = ? ORDER BY doc_id",
            (collection,),
        ).fetchall()
    return [json.loads(row['data']) for row in rows]


def delete_document(collection: str, doc_id: str) -> bool:
    with connect() as conn:
        cursor = conn.execute(
            "DELETE FROM documents WHERE collection = ? AND doc_id = ?",
            (collection, doc_id),
        )
        conn.commit()
        return cursor.rowcount > 0
