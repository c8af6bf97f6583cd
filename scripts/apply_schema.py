#!/usr/bin/env python3
"""
Apply scripts/schema.sql to the Cachao MariaDB database.

This script:
1. Splits schema.sql into individual statements
2. Prints each statement's target (dry run)
3. With --apply, executes them one by one, skipping objects that already exist

Connection settings come from DB_HOST, DB_PORT, DB_USER, DB_PASSWORD and
DB_NAME. Per-environment overrides use the upper-cased env as prefix, e.g.
PROD_DB_HOST.

Usage:
    # Dry run (default)
    python scripts/apply_schema.py --env dev

    # Actually apply changes
    python scripts/apply_schema.py --env dev --apply
"""

import argparse
import os
import re
import sys
from pathlib import Path
from typing import Any, Dict, List

import mysql.connector
from mysql.connector import errorcode

SCHEMA_PATH = Path(__file__).with_name("schema.sql")
LOCAL_HOSTS = {"localhost", "127.0.0.1", "host.docker.internal"}

# Errors meaning "already there"
ALREADY_EXISTS_ERRORS = {
    errorcode.ER_TABLE_EXISTS_ERROR,
    errorcode.ER_DUP_KEYNAME,
    errorcode.ER_DUP_FIELDNAME,
}

CREATE_TARGET = re.compile(r"CREATE\s+TABLE\s+(?:IF\s+NOT\s+EXISTS\s+)?`?(\w+)`?", re.IGNORECASE)


def parse_args() -> argparse.Namespace:
    """Parse command line arguments."""
    parser = argparse.ArgumentParser(description="Apply the MariaDB schema")
    parser.add_argument(
        "--env",
        choices=["dev", "prod"],
        default="dev",
        help="Environment to migrate (default: dev)",
    )
    parser.add_argument(
        "--apply",
        action="store_true",
        help="Actually apply the changes (default is dry-run)",
    )
    return parser.parse_args()


def split_statements(sql: str) -> List[str]:
    """Drop ``--`` comment lines and split on the terminating semicolons."""
    lines = [line for line in sql.splitlines() if not line.strip().startswith("--")]
    return [statement.strip() for statement in "\n".join(lines).split(";") if statement.strip()]


def describe(statement: str) -> str:
    match = CREATE_TARGET.search(statement)
    if match:
        return f"table {match.group(1)}"
    return statement.split("\n", 1)[0][:80]


def connection_config(env: str) -> Dict[str, Any]:
    prefix = env.upper()

    def setting(name: str, default: str) -> str:
        return os.getenv(f"{prefix}_{name}") or os.getenv(name) or default

    host = setting("DB_HOST", "localhost")
    return {
        "host": host,
        "port": int(setting("DB_PORT", "3306")),
        "user": setting("DB_USER", "admin"),
        "password": setting("DB_PASSWORD", ""),
        "database": setting("DB_NAME", "cachao"),
        "ssl_disabled": host in LOCAL_HOSTS,
        "connection_timeout": 10,
    }


def apply_statements(statements: List[str], config: Dict[str, Any]) -> tuple[int, int]:
    """
    Execute statements in order.

    Returns:
        Tuple of (applied, skipped)
    """
    applied = 0
    skipped = 0
    connection = mysql.connector.connect(**config)
    try:
        cursor = connection.cursor()
        for statement in statements:
            target = describe(statement)
            try:
                cursor.execute(statement)
                connection.commit()
                applied += 1
                print(f"  ✓ {target}")
            except mysql.connector.Error as e:
                if e.errno in ALREADY_EXISTS_ERRORS:
                    skipped += 1
                    print(f"  - {target} already exists, skipped")
                    continue
                print(f"  ✗ {target}: {e}")
                raise
        cursor.close()
    finally:
        connection.close()
    return applied, skipped


def main() -> int:
    args = parse_args()
    statements = split_statements(SCHEMA_PATH.read_text())
    config = connection_config(args.env)

    print(f"\n{'='*80}")
    print(f"Schema: {SCHEMA_PATH.name} -> {config['user']}@{config['host']}/{config['database']} ({args.env})")
    print(f"{'='*80}\n")

    if not args.apply:
        for statement in statements:
            print(f"  {describe(statement)} (dry-run, not applied)")
        print(f"\n{len(statements)} statements. Re-run with --apply to execute.")
        return 0

    try:
        applied, skipped = apply_statements(statements, config)
    except mysql.connector.Error as e:
        print(f"\n❌ Schema migration failed: {e}")
        return 1

    print(f"\n✅ Applied {applied} statements, skipped {skipped}")
    return 0


if __name__ == "__main__":
    sys.exit(main())
