"""
Supabase-py compatible wrapper over direct psycopg2 connections.

Provides the subset of the supabase-py Client's table() API that the
persistence layer uses:
    client = CompatClient()
    result = client.table('links').select('*').eq('user_id', uid).execute()
    result.data   # [{'id': ..., ...}]
    result.count  # int (when count='exact')

Operations: select, insert, update, delete
Filters: eq, neq, gt, gte, lt, lte, ilike, in_, is_
Modifiers: order, limit

get_client() picks the hosted Supabase client when SUPABASE_URL and
SUPABASE_KEY are configured and falls back to this wrapper otherwise.
"""

import os
from datetime import datetime, date
from decimal import Decimal
from uuid import UUID
from psycopg2.extras import RealDictCursor, Json

import db

_SQL_OPS = {
    'eq': '=',
    'neq': '!=',
    'gt': '>',
    'gte': '>=',
    'lt': '<',
    'lte': '<=',
    'ilike': 'ILIKE',
}


def _serialize_value(val):
    """Convert psycopg2 native types to the JSON shapes supabase-py returns."""
    if isinstance(val, datetime):
        s = val.isoformat()
        if val.tzinfo is None:
            s += "+00:00"
        return s
    if isinstance(val, date):
        return val.isoformat()
    if isinstance(val, Decimal):
        return float(val)
    if isinstance(val, UUID):
        return str(val)
    return val


def _serialize_row(row) -> dict:
    return {k: _serialize_value(v) for k, v in dict(row).items()}


def _prep_value(val):
    """Prepare a Python value for parameter binding (jsonb for dicts)."""
    if isinstance(val, dict):
        return Json(val)
    return val


class CompatResponse:
    """Mimics the supabase-py APIResponse."""
    __slots__ = ('data', 'count')

    def __init__(self, data=None, count=None):
        self.data = data or []
        self.count = count


class TableQuery:
    """Fluent query builder mirroring table().select().eq().execute()."""

    def __init__(self, table_name):
        self._table = table_name
        self._operation = None
        self._columns = '*'
        self._count_mode = None
        self._filters = []
        self._order_by = []
        self._limit_val = None
        self._payload = None

    # --- Operations ---

    def select(self, columns='*', count=None):
        self._operation = 'select'
        self._columns = columns
        self._count_mode = count
        return self

    def insert(self, data):
        self._operation = 'insert'
        self._payload = data
        return self

    def update(self, data):
        self._operation = 'update'
        self._payload = data
        return self

    def delete(self):
        self._operation = 'delete'
        return self

    # --- Filters ---

    def _add(self, op, column, value):
        self._filters.append((column, op, value))
        return self

    def eq(self, column, value):
        return self._add('eq', column, value)

    def neq(self, column, value):
        return self._add('neq', column, value)

    def gt(self, column, value):
        return self._add('gt', column, value)

    def gte(self, column, value):
        return self._add('gte', column, value)

    def lt(self, column, value):
        return self._add('lt', column, value)

    def lte(self, column, value):
        return self._add('lte', column, value)

    def ilike(self, column, pattern):
        return self._add('ilike', column, pattern)

    def in_(self, column, values):
        return self._add('in', column, tuple(values))

    def is_(self, column, value):
        return self._add('is', column, value)

    # --- Modifiers ---

    def order(self, column, desc=False):
        self._order_by.append((column, desc))
        return self

    def limit(self, n):
        self._limit_val = n
        return self

    # --- SQL building ---

    def _where(self, params):
        conditions = []
        for col, op, val in self._filters:
            if op == 'in':
                if not val:
                    conditions.append('FALSE')
                    continue
                conditions.append(f'"{col}" IN %s')
                params.append(val)
            elif op == 'is':
                if val is None or str(val).lower() == 'null':
                    conditions.append(f'"{col}" IS NULL')
                elif val is True or str(val).lower() == 'true':
                    conditions.append(f'"{col}" IS TRUE')
                else:
                    conditions.append(f'"{col}" IS FALSE')
            else:
                conditions.append(f'"{col}" {_SQL_OPS[op]} %s')
                params.append(val)
        if conditions:
            return ' WHERE ' + ' AND '.join(conditions)
        return ''

    def _columns_sql(self):
        cols = [c.strip() for c in (self._columns or '*').split(',') if c.strip()]
        if not cols or cols == ['*']:
            return '*'
        return ', '.join(f'"{c}"' for c in cols)

    def _rows(self):
        data = self._payload
        return data if isinstance(data, list) else [data]

    def to_sql(self):
        """Return (sql, params) for the current operation.

        Inserts with several rows return the statement for the first row;
        execute() reuses it per row.
        """
        params = []
        if self._operation == 'select':
            sql = f'SELECT {self._columns_sql()} FROM "{self._table}"'
            sql += self._where(params)
            if self._order_by:
                sql += ' ORDER BY ' + ', '.join(
                    f'"{col}" {"DESC" if desc else "ASC"}' for col, desc in self._order_by
                )
            if self._limit_val is not None:
                sql += f' LIMIT {int(self._limit_val)}'
            return sql, params

        if self._operation == 'insert':
            row = self._rows()[0]
            keys = list(row.keys())
            cols = ', '.join(f'"{k}"' for k in keys)
            placeholders = ', '.join(['%s'] * len(keys))
            params = [_prep_value(row[k]) for k in keys]
            return f'INSERT INTO "{self._table}" ({cols}) VALUES ({placeholders}) RETURNING *', params

        if self._operation == 'update':
            set_parts = []
            for k, v in self._payload.items():
                set_parts.append(f'"{k}" = %s')
                params.append(_prep_value(v))
            sql = f'UPDATE "{self._table}" SET {", ".join(set_parts)}'
            sql += self._where(params)
            return sql + ' RETURNING *', params

        if self._operation == 'delete':
            sql = f'DELETE FROM "{self._table}"' + self._where(params)
            return sql + ' RETURNING *', params

        raise ValueError("No operation set. Call select/insert/update/delete first.")

    # --- Execution ---

    def execute(self):
        if self._operation == 'insert':
            return self._exec_insert()
        sql, params = self.to_sql()
        count = None
        with db.get_conn() as conn:
            with conn.cursor(cursor_factory=RealDictCursor) as cur:
                cur.execute(sql, params or None)
                rows = [_serialize_row(r) for r in cur.fetchall()]
                if self._operation == 'select' and self._count_mode == 'exact':
                    count_params = []
                    count_sql = f'SELECT COUNT(*) AS cnt FROM "{self._table}"' + self._where(count_params)
                    cur.execute(count_sql, count_params or None)
                    count = cur.fetchone()['cnt']
        return CompatResponse(data=rows, count=count)

    def _exec_insert(self):
        if not self._payload:
            return CompatResponse()
        all_rows = []
        with db.get_conn() as conn:
            with conn.cursor(cursor_factory=RealDictCursor) as cur:
                for row in self._rows():
                    keys = list(row.keys())
                    cols = ', '.join(f'"{k}"' for k in keys)
                    placeholders = ', '.join(['%s'] * len(keys))
                    cur.execute(
                        f'INSERT INTO "{self._table}" ({cols}) VALUES ({placeholders}) RETURNING *',
                        [_prep_value(row[k]) for k in keys],
                    )
                    all_rows.extend(_serialize_row(r) for r in cur.fetchall())
        return CompatResponse(data=all_rows)


class CompatClient:
    """Drop-in replacement for supabase.Client -- table() API only, no storage."""

    storage = None

    def table(self, name):
        return TableQuery(name)


def get_client():
    """Return a Supabase client when configured, else the psycopg2 wrapper."""
    url = os.getenv('SUPABASE_URL')
    key = os.getenv('SUPABASE_KEY')
    if url and key:
        from supabase import create_client
        print("[DB] Using hosted Supabase client")
        return create_client(url, key)
    print("[DB] SUPABASE_URL/SUPABASE_KEY not set, using direct Postgres")
    return CompatClient()
