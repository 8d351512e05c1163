"""SQLite schema and row-level helpers for processed jobs.

Helpers here never commit: callers wrap them in ``with conn:`` so a job (or a
whole batch) is written in one transaction and rolled back on any error.
"""

import json
import sqlite3
from datetime import datetime
from pathlib import Path
from typing import Any

from jobs_etl.core.schemas import JobRecord, ProcessedJob

_JOBS_TABLE = """
CREATE TABLE IF NOT EXISTS jobs (
    external_id     TEXT PRIMARY KEY,
    title           TEXT NOT NULL,
    agency          TEXT NOT NULL DEFAULT '',
    location        TEXT NOT NULL DEFAULT '',
    url             TEXT NOT NULL,
    salary          TEXT NOT NULL DEFAULT '',
    job_reference   TEXT NOT NULL DEFAULT '',
    posted_date     TEXT NOT NULL DEFAULT '',
    closing_date    TEXT NOT NULL DEFAULT '',
    job_family      TEXT NOT NULL DEFAULT '',
    job_function    TEXT NOT NULL DEFAULT '',
    version         TEXT NOT NULL,
    status          TEXT NOT NULL,
    processed_at    TEXT NOT NULL,
    stored_at       TEXT NOT NULL,
    raw_json        TEXT NOT NULL
);
"""

_CAPABILITIES_TABLE = """
CREATE TABLE IF NOT EXISTS job_capabilities (
    external_id     TEXT NOT NULL REFERENCES jobs(external_id),
    name            TEXT NOT NULL,
    level           TEXT NOT NULL,
    description     TEXT NOT NULL DEFAULT '',
    relevance       REAL NOT NULL DEFAULT 0.0
);
"""

_TAXONOMY_TABLE = """
CREATE TABLE IF NOT EXISTS job_taxonomy (
    external_id         TEXT PRIMARY KEY REFERENCES jobs(external_id),
    job_family          TEXT NOT NULL DEFAULT '',
    job_function        TEXT NOT NULL DEFAULT '',
    keywords_json       TEXT NOT NULL DEFAULT '[]',
    technical_json      TEXT NOT NULL DEFAULT '[]',
    soft_json           TEXT NOT NULL DEFAULT '[]'
);
"""

_EMBEDDINGS_TABLE = """
CREATE TABLE IF NOT EXISTS job_embeddings (
    id              INTEGER PRIMARY KEY AUTOINCREMENT,
    external_id     TEXT NOT NULL REFERENCES jobs(external_id),
    type            TEXT NOT NULL,
    source          TEXT NOT NULL,
    model           TEXT NOT NULL DEFAULT '',
    text            TEXT NOT NULL DEFAULT '',
    vector_json     TEXT NOT NULL,
    created_at      TEXT NOT NULL
);
"""

# Columns that may be used in lookups and ordering.
JOB_COLUMNS = frozenset(JobRecord.model_fields)

_RECORD_SELECT = "SELECT " + ", ".join(sorted(JOB_COLUMNS)) + " FROM jobs"


def init_db(path: str | Path) -> sqlite3.Connection:
    """Create the database and tables, returning a connection."""
    path = Path(path)
    path.parent.mkdir(parents=True, exist_ok=True)
    conn = sqlite3.connect(str(path))
    conn.row_factory = sqlite3.Row
    conn.execute("PRAGMA journal_mode=WAL")
    conn.execute("PRAGMA foreign_keys=ON")
    conn.execute(_JOBS_TABLE)
    conn.execute(_CAPABILITIES_TABLE)
    conn.execute(_TAXONOMY_TABLE)
    conn.execute(_EMBEDDINGS_TABLE)
    conn.commit()
    return conn


def write_job(conn: sqlite3.Connection, job: ProcessedJob, stored_at: datetime | None = None) -> None:
    """Upsert one processed job and replace its child rows (no commit)."""
    d = job.job_details
    stored = (stored_at or datetime.now()).isoformat()
    conn.execute(
        """
        INSERT INTO jobs
            (external_id, title, agency, location, url, salary, job_reference,
             posted_date, closing_date, job_family, job_function, version, status,
             processed_at, stored_at, raw_json)
        VALUES (?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?)
        ON CONFLICT(external_id) DO UPDATE SET
            title = excluded.title,
            agency = excluded.agency,
            location = excluded.location,
            url = excluded.url,
            salary = excluded.salary,
            job_reference = excluded.job_reference,
            posted_date = excluded.posted_date,
            closing_date = excluded.closing_date,
            job_family = excluded.job_family,
            job_function = excluded.job_function,
            version = excluded.version,
            status = excluded.status,
            processed_at = excluded.processed_at,
            stored_at = excluded.stored_at,
            raw_json = excluded.raw_json
        """,
        (
            d.id,
            d.title,
            d.agency,
            d.location,
            d.url,
            d.salary,
            d.job_reference,
            d.posted_date,
            d.closing_date,
            job.taxonomy.job_family,
            job.taxonomy.job_function,
            job.metadata.version,
            job.metadata.status,
            job.metadata.processed_at.isoformat(),
            stored,
            d.model_dump_json(),
        ),
    )

    for table in ("job_capabilities", "job_taxonomy", "job_embeddings"):
        conn.execute(f"DELETE FROM {table} WHERE external_id = ?", (d.id,))

    conn.executemany(
        "INSERT INTO job_capabilities (external_id, name, level, description, relevance) VALUES (?, ?, ?, ?, ?)",
        [(d.id, c.name, c.level, c.description, c.relevance) for c in job.capabilities.capabilities],
    )

    t = job.taxonomy
    conn.execute(
        """
        INSERT INTO job_taxonomy
            (external_id, job_family, job_function, keywords_json, technical_json, soft_json)
        VALUES (?, ?, ?, ?, ?, ?)
        """,
        (
            d.id,
            t.job_family,
            t.job_function,
            json.dumps(t.keywords),
            json.dumps(t.technical_skills),
            json.dumps(t.soft_skills),
        ),
    )

    e = job.embeddings
    conn.executemany(
        """
        INSERT INTO job_embeddings (external_id, type, source, model, text, vector_json, created_at)
        VALUES (?, ?, ?, ?, ?, ?, ?)
        """,
        [
            (
                d.id,
                emb.metadata.type,
                emb.metadata.source,
                emb.metadata.model,
                emb.text,
                json.dumps(emb.vector),
                emb.metadata.timestamp.isoformat(),
            )
            for emb in (e.job, *e.capabilities, *e.skills)
        ],
    )


def fetch_job(conn: sqlite3.Connection, external_id: str) -> JobRecord | None:
    row = conn.execute(f"{_RECORD_SELECT} WHERE external_id = ?", (external_id,)).fetchone()
    return JobRecord.model_validate(dict(row)) if row is not None else None


def fetch_jobs(
    conn: sqlite3.Connection,
    filters: dict[str, Any],
    *,
    limit: int | None = None,
    offset: int = 0,
    order_by: str | None = None,
    descending: bool = False,
) -> list[JobRecord]:
    """Return jobs whose columns equal the filter values.

    Raises:
        ValueError: if a filter or order_by column is unknown.
    """
    unknown = (set(filters) | ({order_by} if order_by else set())) - JOB_COLUMNS
    if unknown:
        msg = f"Unknown job column(s): {', '.join(sorted(unknown))}"
        raise ValueError(msg)

    sql = _RECORD_SELECT
    params: list[Any] = []
    if filters:
        sql += " WHERE " + " AND ".join(f"{col} = ?" for col in filters)
        params.extend(filters.values())
    if order_by:
        sql += f" ORDER BY {order_by} {'DESC' if descending else 'ASC'}"
    if limit is not None:
        sql += " LIMIT ? OFFSET ?"
        params.extend([limit, offset])
    elif offset:
        sql += " LIMIT -1 OFFSET ?"
        params.append(offset)

    return [JobRecord.model_validate(dict(row)) for row in conn.execute(sql, params).fetchall()]
