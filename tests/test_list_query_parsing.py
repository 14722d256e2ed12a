import os
import unittest

os.environ.setdefault("DATABASE_URL", "sqlite+pysqlite:///:memory:")
os.environ.setdefault("REDIS_URL", "redis://localhost:6379/0")
os.environ.setdefault("APP_ENV", "test")

from pydantic import ValidationError

from boilerplate.core.errors import ListQueryError
from boilerplate.schemas.listing import (
    FilterClause,
    FilterOperator,
    ListQueryBody,
    ListQueryRequest,
    SortDirection,
    flatten_filter_map,
    parse_list_query,
)


class QueryStringParserTests(unittest.TestCase):
    def test_defaults(self):
        lq = parse_list_query([])
        self.assertEqual(lq.page, 1)
        self.assertEqual(lq.limit, 10)
        self.assertIsNone(lq.sort_by)
        self.assertEqual(lq.sort_order, SortDirection.DESC)
        self.assertEqual(lq.filters, ())

    def test_numbers_and_sort_are_normalized(self):
        lq = parse_list_query(
            [("page", "3"), ("limit", "20"), ("sortBy", "username,created_at"), ("sortOrder", "asc")]
        )
        self.assertEqual((lq.page, lq.limit), (3, 20))
        self.assertEqual(lq.sort_by, "username,created_at")
        self.assertEqual(lq.sort_order, SortDirection.ASC)

    def test_snake_case_aliases_are_accepted(self):
        lq = parse_list_query({"sort_by": "email", "sort_order": "DESC"})
        self.assertEqual(lq.sort_by, "email")
        self.assertEqual(lq.sort_order, SortDirection.DESC)

    def test_bracket_filters_become_clauses(self):
        lq = parse_list_query(
            [
                ("filters[role]", "ADMIN"),
                ("filters[username][like]", "ali"),
                ("filters[created_at][gte]", "2026-01-01"),
                ("filters[created_at][lte]", "2026-02-01"),
                ("filters[email][in]", "a@x.io, b@x.io,"),
            ]
        )
        self.assertEqual(
            list(lq.filters),
            [
                FilterClause(field="role", op=FilterOperator.EQ, value="ADMIN"),
                FilterClause(field="username", op=FilterOperator.LIKE, value="ali"),
                FilterClause(field="created_at", op=FilterOperator.GTE, value="2026-01-01"),
                FilterClause(field="created_at", op=FilterOperator.LTE, value="2026-02-01"),
                FilterClause(field="email", op=FilterOperator.IN, value=["a@x.io", "b@x.io"]),
            ],
        )

    def test_json_filters_parameter(self):
        lq = parse_list_query({"filters": '{"role": {"ne": "USER"}, "username": "bob"}'})
        self.assertEqual(
            list(lq.filters),
            [
                FilterClause(field="role", op=FilterOperator.NE, value="USER"),
                FilterClause(field="username", op=FilterOperator.EQ, value="bob"),
            ],
        )

    def test_invalid_json_filters_parameter(self):
        with self.assertRaises(ListQueryError):
            parse_list_query({"filters": "{not json"})
        with self.assertRaises(ListQueryError):
            parse_list_query({"filters": "[1, 2]"})

    def test_unsupported_operator_is_named(self):
        with self.assertRaises(ListQueryError) as ctx:
            parse_list_query([("filters[username][regex]", "^a")])
        self.assertIn("Unsupported filter operator: regex", ctx.exception.message)

    def test_page_below_one_is_rejected(self):
        for raw in ("0", "-2"):
            with self.assertRaises(ListQueryError):
                parse_list_query({"page": raw})

    def test_out_of_range_limit_is_kept_for_clamping(self):
        self.assertEqual(parse_list_query({"limit": "150"}).limit, 150)
        self.assertEqual(parse_list_query({"limit": "0"}).limit, 0)

    def test_non_integer_pagination_is_rejected(self):
        with self.assertRaises(ListQueryError):
            parse_list_query({"page": "abc"})
        with self.assertRaises(ListQueryError):
            parse_list_query({"limit": "1.5"})

    def test_invalid_sort_order_is_rejected(self):
        with self.assertRaises(ListQueryError):
            parse_list_query({"sortOrder": "sideways"})


class JsonBodyParserTests(unittest.TestCase):
    def test_body_flattens_nested_filters(self):
        body = ListQueryBody.model_validate(
            {
                "page": 2,
                "limit": 5,
                "sortBy": "role",
                "sortOrder": "ASC",
                "filters": {"role": {"in": ["ADMIN", "USER"]}, "age": {"gte": 18, "lt": 65}},
            }
        )
        lq = body.to_request()
        self.assertEqual((lq.page, lq.limit, lq.sort_by, lq.sort_order), (2, 5, "role", SortDirection.ASC))
        self.assertEqual(
            [(c.field, c.op, c.value) for c in lq.filters],
            [
                ("role", FilterOperator.IN, ["ADMIN", "USER"]),
                ("age", FilterOperator.GTE, 18),
                ("age", FilterOperator.LT, 65),
            ],
        )

    def test_filter_keys_without_operators_are_recorded(self):
        body = ListQueryBody.model_validate({"filters": {"password_hash": {}, "role": {"eq": "USER"}}})
        lq = body.to_request()
        self.assertEqual([c.field for c in lq.filters], ["role"])
        self.assertEqual(lq.filter_fields, ("password_hash", "role"))

        lq = parse_list_query([("filters", '{"secret": {}}'), ("filters[username][like]", "al")])
        self.assertEqual(lq.filter_fields, ("secret", "username"))

    def test_scalar_filter_means_equality(self):
        clauses = flatten_filter_map({"username": "alice"})
        self.assertEqual(clauses, [FilterClause(field="username", op=FilterOperator.EQ, value="alice")])

    def test_request_is_immutable(self):
        lq = ListQueryRequest()
        with self.assertRaises(ValidationError):
            lq.page = 2


if __name__ == "__main__":
    unittest.main()
