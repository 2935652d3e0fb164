"""Tests for insert, update, upsert, delete and truncate statements."""
from __future__ import annotations

import pytest

from fluentql.compile.sqlite import SQLiteGrammar
from fluentql.errors import InvalidArgumentError, UnsupportedOperationError
from fluentql.query.builder import Builder
from fluentql.query.expression import raw
from tests.fixtures import (
    RecordingConnection,
    get_builder,
    get_mysql_builder,
    get_postgres_builder,
    get_sqlite_builder,
    get_sqlserver_builder,
)


def _last(builder):
    return builder.get_connection().last


# ---------------------------------------------------------------------------
# Inserts
# ---------------------------------------------------------------------------


class TestInsert:
    def test_single_record(self):
        builder = get_builder().from_("users")
        assert builder.insert({"email": "foo"}) is True
        assert _last(builder) == ("insert", 'insert into "users" ("email") values (?)', ["foo"])

    def test_multiple_records_are_aligned_by_column(self):
        builder = get_builder().from_("users")
        builder.insert([{"email": "foo", "name": "taylor"}, {"name": "dayle", "email": "bar"}])
        assert _last(builder) == (
            "insert",
            'insert into "users" ("email", "name") values (?, ?), (?, ?)',
            ["foo", "taylor", "bar", "dayle"],
        )

    def test_expression_values_are_inlined(self):
        builder = get_builder().from_("users")
        builder.insert({"email": "foo", "created_at": raw("CURRENT_TIMESTAMP")})
        assert _last(builder) == (
            "insert",
            'insert into "users" ("email", "created_at") values (?, CURRENT_TIMESTAMP)',
            ["foo"],
        )

    def test_empty_insert_does_nothing(self):
        builder = get_builder().from_("users")
        assert builder.insert([]) is True
        assert builder.get_connection().executed == []

    def test_insert_or_ignore(self):
        builder = get_mysql_builder().from_("users")
        assert builder.insert_or_ignore({"email": "foo"}) == 1
        assert _last(builder)[1] == "insert ignore into `users` (`email`) values (?)"

        builder = get_postgres_builder().from_("users")
        builder.insert_or_ignore({"email": "foo"})
        assert _last(builder)[1] == 'insert into "users" ("email") values (?) on conflict do nothing'

        builder = get_sqlite_builder().from_("users")
        builder.insert_or_ignore({"email": "foo"})
        assert _last(builder)[1] == 'insert or ignore into "users" ("email") values (?)'

    def test_insert_or_ignore_unsupported(self):
        with pytest.raises(UnsupportedOperationError) as exc_info:
            get_builder().from_("users").insert_or_ignore({"email": "foo"})
        assert exc_info.value.grammar == "base"

        with pytest.raises(UnsupportedOperationError):
            get_sqlserver_builder().from_("users").insert_or_ignore({"email": "foo"})

    def test_insert_get_id(self):
        builder = get_builder().from_("users")
        builder.get_connection().inserted_id = "42"
        assert builder.insert_get_id({"email": "foo"}, "id") == 42
        assert _last(builder) == ("insert", 'insert into "users" ("email") values (?)', ["foo"])

    def test_postgres_insert_get_id_uses_returning(self):
        builder = get_postgres_builder(rows=[{"id": 7}]).from_("users")
        assert builder.insert_get_id({"email": "foo"}) == 7
        assert _last(builder) == ("select", 'insert into "users" ("email") values (?) returning "id"', ["foo"])

    def test_sqlserver_insert_get_id_selects_scope_identity(self):
        builder = get_sqlserver_builder(rows=[{"id": "3"}]).from_("users")
        assert builder.insert_get_id({"email": "foo"}) == 3
        assert _last(builder)[1] == "insert into [users] ([email]) values (?); select scope_identity() as id"

    def test_insert_get_id_with_empty_record(self):
        builder = get_postgres_builder(rows=[{"id": 1}]).from_("users")
        builder.insert_get_id({})
        assert _last(builder)[1] == 'insert into "users" default values returning "id"'

        builder = get_mysql_builder().from_("users")
        builder.insert_get_id({})
        assert _last(builder)[1] == "insert into `users` () values ()"

    def test_insert_using(self):
        builder = get_builder().from_("table1")
        builder.insert_using(["foo"], lambda q: q.select(["bar"]).from_("table2").where("foreign_id", "=", 5))
        assert _last(builder) == (
            "affecting_statement",
            'insert into "table1" ("foo") select "bar" from "table2" where "foreign_id" = ?',
            [5],
        )


# ---------------------------------------------------------------------------
# Updates
# ---------------------------------------------------------------------------


class TestUpdate:
    def test_basic_update(self):
        builder = get_builder().from_("users").where("id", "=", 1)
        assert builder.update({"email": "foo", "name": "bar"}) == 1
        assert _last(builder) == (
            "update",
            'update "users" set "email" = ?, "name" = ? where "id" = ?',
            ["foo", "bar", 1],
        )

    def test_update_with_expression(self):
        builder = get_builder().from_("users").where("id", 1)
        builder.update({"updated_at": raw("now()"), "name": "bar"})
        assert _last(builder)[1:] == ('update "users" set "updated_at" = now(), "name" = ? where "id" = ?', ["bar", 1])

    def test_update_ignores_select_bindings(self):
        builder = get_builder().from_("users").select_raw("?", ["x"]).where("id", 1)
        builder.update({"name": "bar"})
        assert _last(builder)[2] == ["bar", 1]

    def test_mysql_update_with_order_and_limit(self):
        builder = get_mysql_builder().from_("users").where("id", "=", 1).order_by("foo", "desc").limit(5)
        builder.update({"email": "foo", "name": "bar"})
        assert _last(builder)[1:] == (
            "update `users` set `email` = ?, `name` = ? where `id` = ? order by `foo` desc limit 5",
            ["foo", "bar", 1],
        )

    def test_update_with_joins(self):
        builder = get_builder().from_("users").join("orders", "users.id", "=", "orders.user_id").where("users.id", "=", 1)
        builder.update({"email": "foo", "name": "bar"})
        assert _last(builder)[1:] == (
            'update "users" inner join "orders" on "users"."id" = "orders"."user_id" '
            'set "email" = ?, "name" = ? where "users"."id" = ?',
            ["foo", "bar", 1],
        )

    def test_update_with_join_bindings_puts_them_first(self):
        builder = get_mysql_builder().from_("users").join(
            "orders", lambda j: j.on("users.id", "=", "orders.user_id").where("orders.status", "paid")
        ).where("users.id", 1)
        builder.update({"email": "foo"})
        assert _last(builder)[1:] == (
            "update `users` inner join `orders` on `users`.`id` = `orders`.`user_id` and `orders`.`status` = ? "
            "set `email` = ? where `users`.`id` = ?",
            ["paid", "foo", 1],
        )

    def test_postgres_update_with_joins(self):
        builder = get_postgres_builder().from_("users").join("orders", "users.id", "=", "orders.user_id").where("name", "bar")
        builder.update({"email": "foo"})
        assert _last(builder)[1:] == (
            'update "users" set "email" = ? where "ctid" in (select "users"."ctid" from "users" '
            'inner join "orders" on "users"."id" = "orders"."user_id" where "name" = ?)',
            ["foo", "bar"],
        )

    def test_postgres_update_with_limit(self):
        builder = get_postgres_builder().from_("users").where("name", "bar").limit(1)
        builder.update({"users.email": "foo"})
        assert _last(builder)[1:] == (
            'update "users" set "email" = ? where "ctid" in (select "users"."ctid" from "users" where "name" = ? limit 1)',
            ["foo", "bar"],
        )
        assert builder.columns == []

    def test_sqlite_update_with_limit(self):
        builder = get_sqlite_builder().from_("users").where("name", "bar").limit(1)
        builder.update({"email": "foo"})
        assert _last(builder)[1:] == (
            'update "users" set "email" = ? where "rowid" in (select "users"."rowid" from "users" where "name" = ? limit 1)',
            ["foo", "bar"],
        )

    def test_sqlserver_update_with_joins(self):
        builder = get_sqlserver_builder().from_("users").join("orders", "users.id", "=", "orders.user_id").where("users.id", "=", 1)
        builder.update({"email": "foo", "name": "bar"})
        assert _last(builder)[1:] == (
            "update [users] set [email] = ?, [name] = ? from [users] inner join [orders] "
            "on [users].[id] = [orders].[user_id] where [users].[id] = ?",
            ["foo", "bar", 1],
        )

    def test_mysql_json_update(self):
        builder = get_mysql_builder().from_("users").where("active", 1)
        builder.update({"meta->name->first_name": "John", "meta->name->last_name": "Doe"})
        assert _last(builder)[1:] == (
            "update `users` set `meta` = json_set(`meta`, '$.\"name\".\"first_name\"', ?), "
            "`meta` = json_set(`meta`, '$.\"name\".\"last_name\"', ?) where `active` = ?",
            ["John", "Doe", 1],
        )

    def test_mysql_json_update_with_boolean_and_document(self):
        builder = get_mysql_builder().from_("users")
        builder.update({"meta->enabled": True, "meta->tags": ["a", "b"]})
        assert _last(builder)[1:] == (
            "update `users` set `meta` = json_set(`meta`, '$.\"enabled\"', true), "
            "`meta` = json_set(`meta`, '$.\"tags\"', cast(? as json))",
            ['["a", "b"]'],
        )

    def test_postgres_json_update(self):
        builder = get_postgres_builder().from_("users")
        builder.update({"options->name->first_name": "John"})
        assert _last(builder)[1:] == (
            "update \"users\" set \"options\" = jsonb_set(\"options\"::jsonb, '{\"name\",\"first_name\"}', ?)",
            ['"John"'],
        )

    def test_sqlite_json_update_merges_paths(self):
        builder = get_sqlite_builder().from_("users").where("id", 1)
        builder.update({"name": "bar", "options->theme": "dark", "options->lang->code": "en"})
        assert _last(builder)[1:] == (
            "update \"users\" set \"name\" = ?, \"options\" = json_patch(ifnull(\"options\", json('{}')), json(?)) "
            'where "id" = ?',
            ["bar", '{"theme": "dark", "lang": {"code": "en"}}', 1],
        )


class TestIncrement:
    def test_increment(self):
        builder = get_builder().from_("users")
        builder.increment("votes")
        assert _last(builder)[1:] == ('update "users" set "votes" = "votes" + 1', [])

    def test_increment_with_amount_and_extra(self):
        builder = get_builder().from_("users").where("id", 1)
        builder.increment("votes", 5, {"name": "foo"})
        assert _last(builder)[1:] == ('update "users" set "votes" = "votes" + 5, "name" = ? where "id" = ?', ["foo", 1])

    def test_decrement(self):
        builder = get_mysql_builder().from_("users")
        builder.decrement("votes", 2.5)
        assert _last(builder)[1] == "update `users` set `votes` = `votes` - 2.5"

    def test_non_numeric_amount_raises(self):
        with pytest.raises(InvalidArgumentError, match="Non-numeric value passed to increment method."):
            get_builder().from_("users").increment("votes", "5")
        with pytest.raises(InvalidArgumentError, match="decrement"):
            get_builder().from_("users").decrement("votes", True)


class TestUpdateOrInsert:
    def test_inserts_when_missing(self):
        builder = get_builder(rows=[{"exists": 0}]).from_("users")
        assert builder.update_or_insert({"email": "foo"}, {"name": "bar"}) is True

        executed = builder.get_connection().executed
        assert executed[0] == ("select", 'select exists(select * from "users" where ("email" = ?)) as "exists"', ["foo"])
        assert executed[1] == ("insert", 'insert into "users" ("email", "name") values (?, ?)', ["foo", "bar"])

    def test_updates_when_present(self):
        builder = get_builder(rows=[{"exists": 1}]).from_("users")
        assert builder.update_or_insert({"email": "foo"}, {"name": "bar"}) is True
        assert _last(builder) == ("update", 'update "users" set "name" = ? where ("email" = ?)', ["bar", "foo"])

    def test_nothing_to_update(self):
        builder = get_builder(rows=[{"exists": 1}]).from_("users")
        assert builder.update_or_insert({"email": "foo"}) is True
        assert len(builder.get_connection().executed) == 1


# ---------------------------------------------------------------------------
# Upserts
# ---------------------------------------------------------------------------


_RECORDS = [{"email": "foo", "name": "bar"}, {"name": "bar2", "email": "foo2"}]


class TestUpsert:
    def test_mysql(self):
        builder = get_mysql_builder().from_("users")
        assert builder.upsert(_RECORDS, "email") == 1
        assert _last(builder) == (
            "affecting_statement",
            "insert into `users` (`email`, `name`) values (?, ?), (?, ?) "
            "on duplicate key update `email` = values(`email`), `name` = values(`name`)",
            ["foo", "bar", "foo2", "bar2"],
        )

    def test_postgres(self):
        builder = get_postgres_builder().from_("users")
        builder.upsert(_RECORDS, "email")
        assert _last(builder)[1] == (
            'insert into "users" ("email", "name") values (?, ?), (?, ?) on conflict ("email") '
            'do update set "email" = "excluded"."email", "name" = "excluded"."name"'
        )

    def test_sqlite(self):
        builder = get_sqlite_builder().from_("users")
        builder.upsert(_RECORDS, ["email"])
        assert _last(builder)[1] == (
            'insert into "users" ("email", "name") values (?, ?), (?, ?) on conflict ("email") '
            'do update set "email" = "excluded"."email", "name" = "excluded"."name"'
        )

    def test_sqlserver(self):
        builder = get_sqlserver_builder().from_("users")
        builder.upsert(_RECORDS, "email")
        assert _last(builder)[1:] == (
            "merge [users] using (values (?, ?), (?, ?)) [laravel_source] ([email], [name]) "
            "on [laravel_source].[email] = [users].[email] "
            "when matched then update set [email] = [laravel_source].[email], [name] = [laravel_source].[name] "
            "when not matched then insert ([email], [name]) values ([email], [name]);",
            ["foo", "bar", "foo2", "bar2"],
        )

    def test_single_record_columns_are_sorted(self):
        builder = get_postgres_builder().from_("users")
        builder.upsert({"name": "bar", "email": "foo"}, "email", ["name"])
        assert _last(builder)[1:] == (
            'insert into "users" ("email", "name") values (?, ?) on conflict ("email") '
            'do update set "name" = "excluded"."name"',
            ["foo", "bar"],
        )

    def test_explicit_update_values_are_bound_after_records(self):
        builder = get_postgres_builder().from_("users")
        builder.upsert(_RECORDS, "email", ["name", {"votes": 0, "updated_at": raw("now()")}])
        assert _last(builder)[1:] == (
            'insert into "users" ("email", "name") values (?, ?), (?, ?) on conflict ("email") '
            'do update set "name" = "excluded"."name", "votes" = ?, "updated_at" = now()',
            ["foo", "bar", "foo2", "bar2", 0],
        )

    def test_empty_update_is_a_plain_insert(self):
        builder = get_postgres_builder().from_("users")
        assert builder.upsert(_RECORDS, "email", []) == 1
        assert _last(builder)[0] == "insert"

    def test_empty_values_do_nothing(self):
        builder = get_postgres_builder().from_("users")
        assert builder.upsert([], "email") == 0
        assert builder.get_connection().executed == []

    def test_base_grammar_does_not_support_upserts(self):
        with pytest.raises(UnsupportedOperationError):
            get_builder().from_("users").upsert(_RECORDS, "email")


# ---------------------------------------------------------------------------
# Deletes and truncation
# ---------------------------------------------------------------------------


class TestDelete:
    def test_delete(self):
        builder = get_builder().from_("users").where("email", "=", "foo")
        assert builder.delete() == 1
        assert _last(builder) == ("delete", 'delete from "users" where "email" = ?', ["foo"])

    def test_delete_by_id(self):
        builder = get_builder().from_("users")
        builder.delete(1)
        assert _last(builder)[1:] == ('delete from "users" where "users"."id" = ?', [1])

    def test_mysql_delete_with_order_and_limit(self):
        builder = get_mysql_builder().from_("users").where("email", "=", "foo").order_by("id").take(1)
        builder.delete()
        assert _last(builder)[1] == "delete from `users` where `email` = ? order by `id` asc limit 1"

    def test_delete_with_joins(self):
        builder = get_builder().from_("users").join("contacts", "users.id", "=", "contacts.id").where("email", "=", "foo")
        builder.delete()
        assert _last(builder)[1:] == (
            'delete "users" from "users" inner join "contacts" on "users"."id" = "contacts"."id" where "email" = ?',
            ["foo"],
        )

    def test_delete_with_joins_uses_alias(self):
        builder = get_mysql_builder().from_("users as u").join("contacts as c", "u.id", "=", "c.id")
        builder.delete()
        assert _last(builder)[1] == (
            "delete `u` from `users` as `u` inner join `contacts` as `c` on `u`.`id` = `c`.`id`"
        )

    def test_postgres_delete_with_joins(self):
        builder = get_postgres_builder().from_("users").join("contacts", "users.id", "=", "contacts.id").where("email", "=", "foo")
        builder.delete()
        assert _last(builder)[1:] == (
            'delete from "users" where "ctid" in (select "users"."ctid" from "users" '
            'inner join "contacts" on "users"."id" = "contacts"."id" where "email" = ?)',
            ["foo"],
        )

    def test_sqlite_delete_with_limit(self):
        builder = get_sqlite_builder().from_("users").where("email", "=", "foo").order_by("id").take(1)
        builder.delete()
        assert _last(builder)[1:] == (
            'delete from "users" where "rowid" in (select "users"."rowid" from "users" '
            'where "email" = ? order by "id" asc limit 1)',
            ["foo"],
        )

    def test_sqlserver_delete_with_top(self):
        builder = get_sqlserver_builder().from_("users").where("email", "=", "foo").take(1)
        builder.delete()
        assert _last(builder)[1] == "delete top (1) from [users] where [email] = ?"


class TestTruncate:
    def test_base(self):
        builder = get_builder().from_("users")
        builder.truncate()
        assert _last(builder) == ("statement", 'truncate table "users"', [])

    def test_postgres(self):
        builder = get_postgres_builder().from_("users")
        builder.truncate()
        assert _last(builder)[1] == 'truncate "users" restart identity cascade'

    def test_sqlite_clears_sequence_then_rows(self):
        builder = get_sqlite_builder().from_("users")
        builder.truncate()
        assert builder.get_connection().executed == [
            ("statement", "delete from sqlite_sequence where name = ?", ["users"]),
            ("statement", 'delete from "users"', []),
        ]

    def test_sqlite_sequence_reset_uses_prefixed_table(self):
        builder = Builder(RecordingConnection(SQLiteGrammar().set_table_prefix("app_"))).from_("users")
        builder.truncate()
        assert builder.get_connection().executed == [
            ("statement", "delete from sqlite_sequence where name = ?", ["app_users"]),
            ("statement", 'delete from "app_users"', []),
        ]
