"""Backend adapters.

One adapter is constructed per process and shared by every invocation.
Each one is tagged with the BackendKind it serves; the catalog and the
dispatcher branch on that tag, never on the adapter's class.

Backends supported:
  - Postgres : psycopg2 connection pool (relational)
  - MySQL    : PyMySQL (relational)
  - SQLite   : stdlib sqlite3 (relational)
  - DuckDB   : local file or in-memory (relational)
  - Redis    : redis-py (key-value)
  - MongoDB  : pymongo (document)
  - LDAP     : ldap3 (directory)
"""
