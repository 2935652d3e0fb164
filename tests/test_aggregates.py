"""Tests for aggregates, existence checks, pagination counts and row retrieval."""
from __future__ import annotations

from fluentql.query.expression import raw
from tests.fixtures import get_builder, get_sqlserver_builder


def _last_sql(builder):
    return builder.get_connection().last[1]


# ---------------------------------------------------------------------------
# Aggregates
# ---------------------------------------------------------------------------


def test_count():
    builder = get_builder(rows=[{"aggregate": 1}]).from_("users")
    assert builder.count() == 1
    assert _last_sql(builder) == 'select count(*) as aggregate from "users"'


def test_count_column():
    builder = get_builder(rows=[{"aggregate": 3}]).from_("users")
    assert builder.count("id") == 3
    assert _last_sql(builder) == 'select count("id") as aggregate from "users"'


def test_count_with_no_rows_is_zero():
    assert get_builder().from_("users").count() == 0


def test_aggregate_result_key_is_case_insensitive():
    assert get_builder(rows=[{"AGGREGATE": 4}]).from_("users").count() == 4


def test_distinct_count():
    builder = get_builder(rows=[{"aggregate": 1}]).from_("users").distinct()
    builder.count("id")
    assert _last_sql(builder) == 'select count(distinct "id") as aggregate from "users"'


def test_distinct_star_count_is_plain():
    builder = get_builder(rows=[{"aggregate": 1}]).from_("users").distinct()
    builder.count()
    assert _last_sql(builder) == 'select count(*) as aggregate from "users"'


def test_distinct_columns_count():
    builder = get_builder(rows=[{"aggregate": 1}]).from_("users").distinct("name", "email")
    builder.count()
    assert _last_sql(builder) == 'select count(distinct "name", "email") as aggregate from "users"'


def test_min_max_sum_avg():
    builder = get_builder(rows=[{"aggregate": 5}]).from_("users")
    assert builder.max("id") == 5
    assert _last_sql(builder) == 'select max("id") as aggregate from "users"'
    assert builder.min("id") == 5
    assert _last_sql(builder) == 'select min("id") as aggregate from "users"'
    assert builder.sum("votes") == 5
    assert _last_sql(builder) == 'select sum("votes") as aggregate from "users"'
    assert builder.avg("votes") == 5
    assert _last_sql(builder) == 'select avg("votes") as aggregate from "users"'
    assert builder.average("votes") == 5


def test_sum_of_nothing_is_zero():
    assert get_builder(rows=[{"aggregate": None}]).from_("users").sum("votes") == 0
    assert get_builder().from_("users").max("id") is None


def test_aggregate_leaves_the_builder_untouched():
    builder = get_builder(rows=[{"aggregate": 1}]).select("name").select_raw("?", ["x"]).from_("users").order_by("id")
    builder.count()

    assert _last_sql(builder) == 'select count(*) as aggregate from "users"'
    assert builder.columns[0] == "name"
    assert builder.aggregate_clause is None
    assert builder.to_sql() == 'select "name", ? from "users" order by "id" asc'
    assert builder.get_bindings() == ["x"]


def test_aggregate_keeps_order_when_grouped():
    builder = get_builder(rows=[{"aggregate": 1}]).from_("users").group_by("team").order_by("team")
    builder.count()
    assert _last_sql(builder) == 'select count(*) as aggregate from "users" group by "team" order by "team" asc'


def test_aggregate_with_having_wraps_the_query():
    builder = get_builder(rows=[{"aggregate": 2}]).from_("posts").select("author").group_by("author").having("total", ">", 1)
    builder.count()
    method, sql, bindings = builder.get_connection().last
    assert sql == (
        'select count(*) as aggregate from (select "author" from "posts" group by "author" '
        'having "total" > ?) as "temp_table"'
    )
    assert bindings == [1]


def test_numeric_aggregate():
    assert get_builder(rows=[{"aggregate": "1.5"}]).from_("users").numeric_aggregate("avg", ["votes"]) == 1.5
    assert get_builder(rows=[{"aggregate": "2"}]).from_("users").numeric_aggregate("sum", ["votes"]) == 2
    assert get_builder().from_("users").numeric_aggregate("sum", ["votes"]) == 0


# ---------------------------------------------------------------------------
# Existence
# ---------------------------------------------------------------------------


def test_exists():
    builder = get_builder(rows=[{"exists": 1}]).from_("users")
    assert builder.exists() is True
    assert _last_sql(builder) == 'select exists(select * from "users") as "exists"'


def test_doesnt_exist():
    builder = get_builder(rows=[{"exists": 0}]).from_("users").where("id", 1)
    assert builder.doesnt_exist() is True
    assert builder.get_connection().last[2] == [1]


def test_exists_or_and_doesnt_exist_or():
    assert get_builder(rows=[{"exists": 1}]).from_("users").exists_or(lambda: "missing") is True
    assert get_builder(rows=[{"exists": 0}]).from_("users").exists_or(lambda: "missing") == "missing"
    assert get_builder(rows=[{"exists": 0}]).from_("users").doesnt_exist_or(lambda: "found") is True
    assert get_builder(rows=[{"exists": 1}]).from_("users").doesnt_exist_or(lambda: "found") == "found"


def test_sqlserver_exists():
    builder = get_sqlserver_builder(rows=[{"exists": 1}]).from_("users")
    assert builder.exists() is True
    assert _last_sql(builder) == "select top 1 1 [exists] from [users]"
    assert builder.columns == []


def test_sqlserver_exists_drops_select_bindings():
    builder = get_sqlserver_builder(rows=[{"exists": 1}]).from_("users")
    builder.select_sub(get_sqlserver_builder().from_("posts").select_raw("count(*)").where("title", "x"), "n")
    builder.where("id", "=", 5)

    assert builder.exists() is True
    _, sql, bindings = builder.get_connection().last
    assert sql == "select top 1 1 [exists] from [users] where [id] = ?"
    assert bindings == [5]
    assert builder.get_bindings() == ["x", 5]


# ---------------------------------------------------------------------------
# Pagination counts
# ---------------------------------------------------------------------------


def test_count_for_pagination_drops_columns_orders_and_limits():
    builder = get_builder(rows=[{"aggregate": 1}]).from_("posts").select("id", "body").order_by("id").limit(10).offset(5)
    assert builder.get_count_for_pagination() == 1
    assert _last_sql(builder) == 'select count(*) as aggregate from "posts"'


def test_count_for_pagination_with_columns_strips_aliases():
    builder = get_builder(rows=[{"aggregate": 1}]).from_("posts")
    builder.get_count_for_pagination(["body", "teaser", "posts.created as published"])
    assert _last_sql(builder) == 'select count("body", "teaser", "posts"."created") as aggregate from "posts"'


def test_count_for_pagination_with_groups():
    builder = get_builder(rows=[{"aggregate": 1}]).from_("posts").select("id").group_by("id")
    builder.get_count_for_pagination()
    assert _last_sql(builder) == (
        'select count(*) as aggregate from (select "id" from "posts" group by "id") as "aggregate_table"'
    )


def test_count_for_pagination_with_groups_and_joins_selects_base_table():
    builder = (
        get_builder(rows=[{"aggregate": 1}])
        .from_("posts")
        .join("users", "users.id", "=", "posts.user_id")
        .group_by("posts.id")
    )
    builder.get_count_for_pagination()
    assert _last_sql(builder) == (
        'select count(*) as aggregate from (select "posts".* from "posts" inner join "users" '
        'on "users"."id" = "posts"."user_id" group by "posts"."id") as "aggregate_table"'
    )


def test_count_for_pagination_with_unions():
    builder = get_builder(rows=[{"aggregate": 1}]).from_("posts").select("id").union(
        get_builder().from_("videos").select("id")
    )
    builder.get_count_for_pagination()
    assert _last_sql(builder) == (
        'select count(*) as aggregate from ((select "id" from "posts") union (select "id" from "videos")) '
        'as "temp_table"'
    )


def test_count_for_pagination_keeps_where_bindings():
    builder = get_builder(rows=[{"aggregate": 7}]).from_("posts").where("published", 1).order_by_raw("field(id, ?)", [3])
    assert builder.get_count_for_pagination() == 7
    assert builder.get_connection().last[2] == [1]


# ---------------------------------------------------------------------------
# Retrieval
# ---------------------------------------------------------------------------


def test_get_returns_rows():
    builder = get_builder(rows=[{"id": 1}, {"id": 2}]).from_("users")
    assert builder.get() == [{"id": 1}, {"id": 2}]
    assert _last_sql(builder) == 'select * from "users"'


def test_get_with_columns_does_not_stick():
    builder = get_builder().from_("users")
    builder.get(["id", "name"])
    assert _last_sql(builder) == 'select "id", "name" from "users"'
    assert builder.columns == []


def test_first_and_find():
    builder = get_builder(rows=[{"id": 1, "name": "foo"}]).from_("users")
    assert builder.find(1) == {"id": 1, "name": "foo"}
    method, sql, bindings = builder.get_connection().last
    assert sql == 'select * from "users" where "id" = ? limit 1'
    assert bindings == [1]


def test_first_with_no_rows():
    assert get_builder().from_("users").first() is None


def test_value():
    builder = get_builder(rows=[{"name": "foo"}]).from_("users")
    assert builder.value("name") == "foo"
    assert _last_sql(builder) == 'select "name" from "users" limit 1'


def test_pluck():
    builder = get_builder(rows=[{"name": "foo", "id": 1}, {"name": "bar", "id": 2}]).from_("users")
    assert builder.pluck("name") == ["foo", "bar"]
    assert _last_sql(builder) == 'select "name" from "users"'
    assert builder.pluck("name", "id") == {1: "foo", 2: "bar"}
    assert _last_sql(builder) == 'select "name", "id" from "users"'


def test_pluck_strips_table_and_alias():
    builder = get_builder(rows=[{"name": "foo", "key": 1}]).from_("users")
    assert builder.pluck("users.name", "users.id as key") == {1: "foo"}


def test_pluck_keeps_existing_columns():
    builder = get_builder(rows=[{"name": "foo"}]).from_("users").select(raw("upper(name) as name"))
    builder.pluck("name")
    assert _last_sql(builder) == 'select upper(name) as name from "users"'


def test_implode():
    builder = get_builder(rows=[{"name": "foo"}, {"name": "bar"}]).from_("users")
    assert builder.implode("name", ", ") == "foo, bar"
