#!/usr/bin/env python3
"""Apply schema.sql to DATABASE_URL in a single transaction."""

import os

from dotenv import load_dotenv

load_dotenv()

from db import run_statements, close_pool

SCHEMA_PATH = os.path.join(os.path.dirname(os.path.abspath(__file__)), "schema.sql")


def split_statements(sql: str) -> list:
    """Split on ';' at line ends, dropping comment-only chunks."""
    statements = []
    for chunk in sql.split(";\n"):
        lines = [l for l in chunk.strip().splitlines() if not l.strip().startswith("--")]
        stmt = "\n".join(lines).strip().rstrip(";")
        if stmt:
            statements.append(stmt)
    return statements


def main():
    with open(SCHEMA_PATH, encoding="utf-8") as f:
        statements = split_statements(f.read())

    print(f"Running {len(statements)} statements from schema.sql...")
    for i, stmt in enumerate(statements, 1):
        print(f"{i}. {stmt.splitlines()[0]}")
    try:
        run_statements(statements)
    finally:
        close_pool()
    print("Migration complete!")


if __name__ == "__main__":
    main()
