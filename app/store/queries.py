"""Reusable SQL templates for the embedded vector store.

Each query is a plain string with ``?`` placeholders ready for
``conn.execute(QUERY, params)`` usage. The native-search template takes the
distance function name via ``str.format`` — only names from the resolver's
fixed candidate list are ever interpolated.
"""

# ── Schema ─────────────────────────────────────────────────────────────────────

PRAGMA_WAL = "PRAGMA journal_mode = WAL"
PRAGMA_SYNCHRONOUS = "PRAGMA synchronous = NORMAL"
PRAGMA_INTEGRITY = "PRAGMA integrity_check"

CREATE_EMBEDDINGS = """
CREATE TABLE IF NOT EXISTS embeddings (
    id        TEXT PRIMARY KEY,
    content   TEXT NOT NULL,
    embedding BLOB NOT NULL CHECK (length(embedding) = {blob_size})
)
"""

CREATE_METADATA = """
CREATE TABLE IF NOT EXISTS metadata (
    key   TEXT PRIMARY KEY,
    value TEXT
)
"""

GET_METADATA = "SELECT value FROM metadata WHERE key = ?"
INSERT_METADATA = "INSERT INTO metadata (key, value) VALUES (?, ?)"

MODEL_KEY = "model"

# ── Writes ─────────────────────────────────────────────────────────────────────

UPSERT_EMBEDDING = """
INSERT OR REPLACE INTO embeddings (id, content, embedding)
VALUES (?, ?, ?)
"""

# ── Reads ──────────────────────────────────────────────────────────────────────

COUNT_EMBEDDINGS = "SELECT COUNT(*) AS count FROM embeddings"

ALL_EMBEDDINGS = "SELECT id, content, embedding FROM embeddings"

GET_EMBEDDING = "SELECT id, content, embedding FROM embeddings WHERE id = ?"

# Distance is computed once per row in the materialized CTE and reused by the
# filter, the ranking and the ORDER BY. sqlite-vec yields NULL where cosine
# distance is undefined (zero-magnitude or non-finite vectors); those rows are
# returned unranked so the caller can decide per row.
NATIVE_SEARCH = """
WITH scored AS MATERIALIZED (
    SELECT id, content, {func}(embedding, ?) AS distance
    FROM embeddings
),
ranked AS (
    SELECT id, content, distance,
           ROW_NUMBER() OVER (
               PARTITION BY distance IS NULL
               ORDER BY distance ASC, id ASC
           ) AS position
    FROM scored
    WHERE distance IS NULL OR distance <= ?
)
SELECT id, content, distance
FROM ranked
WHERE distance IS NULL OR position <= ?
ORDER BY distance ASC, id ASC
"""

# ── Stats ──────────────────────────────────────────────────────────────────────

EMBEDDING_STATS = """
SELECT
    COUNT(*)                AS total_embeddings,
    AVG(LENGTH(embedding))  AS avg_embedding_size,
    SUM(LENGTH(embedding))  AS total_storage_bytes
FROM embeddings
"""

DATABASE_SIZE = """
SELECT page_count * page_size AS size
FROM pragma_page_count(), pragma_page_size()
"""
