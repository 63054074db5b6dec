# =============================================================================
# File: tests/test_pg_record_store.py
# Description: SQL building and result handling of the PostgreSQL record store
# =============================================================================

import pytest

from bidroom.infra.persistence.pg_record_store import (
    PostgresRecordStore,
    _affected_rows,
    build_insert_sql,
    build_select_sql,
    build_update_sql,
)


class RecordingClient:
    """Stands in for PostgresClient; returns canned results and keeps the SQL."""

    def __init__(self, fetch_result=None, fetchrow_result=None, execute_result="UPDATE 0"):
        self.fetch_result = fetch_result or []
        self.fetchrow_result = fetchrow_result
        self.execute_result = execute_result
        self.statements = []

    async def fetch(self, sql, *args):
        self.statements.append((sql, args))
        return self.fetch_result

    async def fetchrow(self, sql, *args):
        self.statements.append((sql, args))
        return self.fetchrow_result

    async def execute(self, sql, *args):
        self.statements.append((sql, args))
        return self.execute_result


class TestSqlBuilders:

    def test_select_with_membership_null_order_and_limit(self):
        sql, args = build_select_sql(
            "messages",
            {"project_id": "p1", "id": ["m1", "m2"], "read_at": None},
            order_by="created_at",
            limit=5,
        )

        assert sql == (
            "SELECT * FROM messages WHERE project_id = $1 AND id = ANY($2) AND read_at IS NULL"
            " ORDER BY created_at ASC LIMIT $3"
        )
        assert args == ["p1", ["m1", "m2"], 5]

    def test_select_descending_without_filters(self):
        sql, args = build_select_sql("contractor_aliases", order_by="alias", descending=True)

        assert sql == "SELECT * FROM contractor_aliases ORDER BY alias DESC"
        assert args == []

    @pytest.mark.parametrize("table,filters,order_by", [
        ("users", None, None),
        ("messages", {"password": "x"}, None),
        ("messages", None, "created_at; DROP TABLE messages"),
    ])
    def test_select_rejects_unknown_identifiers(self, table, filters, order_by):
        with pytest.raises(ValueError):
            build_select_sql(table, filters, order_by)

    def test_multi_row_insert_ignoring_conflicts(self):
        sql = build_insert_sql("message_recipients", ["message_id", "recipient_id"], row_count=2,
                               ignore_conflicts=True)

        assert sql == (
            "INSERT INTO message_recipients (message_id, recipient_id) VALUES ($1, $2), ($3, $4)"
            " ON CONFLICT DO NOTHING RETURNING *"
        )

    def test_insert_needs_columns_and_rows(self):
        with pytest.raises(ValueError):
            build_insert_sql("messages", [])
        with pytest.raises(ValueError):
            build_insert_sql("messages", ["id"], row_count=0)

    def test_compare_and_set_update(self):
        sql, args = build_update_sql("messages", {"read_at": "t1"}, {"id": "m1"}, only_if_null="read_at")

        assert sql == "UPDATE messages SET read_at = $1 WHERE id = $2 AND read_at IS NULL"
        assert args == ["t1", "m1"]

    def test_update_refuses_missing_filters(self):
        with pytest.raises(ValueError):
            build_update_sql("messages", {"read_at": "t1"}, {})
        with pytest.raises(ValueError):
            build_update_sql("messages", {}, {"id": "m1"})

    @pytest.mark.parametrize("status,expected", [
        ("UPDATE 3", 3),
        ("UPDATE 0", 0),
        ("", 0),
        (None, 0),
    ])
    def test_affected_rows(self, status, expected):
        assert _affected_rows(status) == expected


class TestPostgresRecordStore:

    @pytest.mark.asyncio
    async def test_insert_returns_stored_row(self):
        client = RecordingClient(fetchrow_result={"project_id": "p1", "contractor_id": "c1", "alias": "A"})
        records = PostgresRecordStore(client)

        row = await records.insert("contractor_aliases", {"project_id": "p1", "contractor_id": "c1", "alias": "A"})

        assert row["alias"] == "A"
        sql, args = client.statements[0]
        assert sql.startswith("INSERT INTO contractor_aliases (project_id, contractor_id, alias)")
        assert args == ("p1", "c1", "A")

    @pytest.mark.asyncio
    async def test_conflicting_insert_returns_none(self):
        records = PostgresRecordStore(RecordingClient(fetchrow_result=None))

        row = await records.insert(
            "contractor_aliases",
            {"project_id": "p1", "contractor_id": "c1", "alias": "A"},
            ignore_conflicts=True,
        )

        assert row is None

    @pytest.mark.asyncio
    async def test_insert_many_flattens_arguments(self):
        client = RecordingClient(fetch_result=[{"message_id": "m1"}])
        records = PostgresRecordStore(client)

        count = await records.insert_many(
            "message_recipients",
            [{"message_id": "m1", "recipient_id": "a"}, {"message_id": "m1", "recipient_id": "b"}],
            ignore_conflicts=True,
        )

        assert count == 1
        assert client.statements[0][1] == ("m1", "a", "m1", "b")

    @pytest.mark.asyncio
    async def test_insert_many_of_nothing_skips_the_database(self):
        client = RecordingClient()

        assert await PostgresRecordStore(client).insert_many("message_recipients", []) == 0
        assert client.statements == []

    @pytest.mark.asyncio
    async def test_insert_many_rejects_ragged_rows(self):
        with pytest.raises(ValueError):
            await PostgresRecordStore(RecordingClient()).insert_many(
                "message_recipients",
                [{"message_id": "m1", "recipient_id": "a"}, {"recipient_id": "b", "message_id": "m1"}],
            )

    @pytest.mark.asyncio
    async def test_update_reports_affected_rows(self):
        records = PostgresRecordStore(RecordingClient(execute_result="UPDATE 1"))

        assert await records.update("messages", {"read_at": "t"}, {"id": "m1"}, only_if_null="read_at") == 1
