"""
Schema migration engine for PostgreSQL.

Discovers versioned SQL migration files, applies them in order while
recording each one in a tracking table, detects drift between applied
migrations and their files, and rolls them back on request.
"""

__version__ = "0.1.0"
