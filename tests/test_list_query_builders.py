import os
import unittest
from datetime import datetime

os.environ.setdefault("DATABASE_URL", "sqlite+pysqlite:///:memory:")
os.environ.setdefault("REDIS_URL", "redis://localhost:6379/0")
os.environ.setdefault("APP_ENV", "test")

from sqlalchemy import DateTime, Integer, String, select
from sqlalchemy.dialects import postgresql, sqlite
from sqlalchemy.orm import DeclarativeBase, Mapped, mapped_column

from boilerplate.core.errors import ListQueryError
from boilerplate.schemas.listing import FilterClause, FilterOperator, SortDirection
from boilerplate.services.list_query import (
    ListResource,
    SortClause,
    build_page_metadata,
    build_predicates,
    build_sort_clauses,
    compute_pagination,
    escape_like_pattern,
    validate_fields,
)


class _Base(DeclarativeBase):
    pass


class _Account(_Base):
    __tablename__ = "_lq_accounts"

    id: Mapped[int] = mapped_column(Integer, primary_key=True)
    username: Mapped[str] = mapped_column(String(50))
    age: Mapped[int] = mapped_column(Integer)
    created_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), nullable=True)


ALLOWED = {"username", "email", "role", "age"}


class PaginationCalculatorTests(unittest.TestCase):
    def test_offset_is_page_minus_one_times_limit(self):
        for page in (1, 2, 3, 17, 999):
            for limit in (1, 10, 20, 55, 100):
                offset, bounded = compute_pagination(page, limit)
                self.assertEqual(bounded, limit)
                self.assertEqual(offset, (page - 1) * limit)
        self.assertEqual(compute_pagination(3, 20), (40, 20))

    def test_limit_is_clamped_to_bounds(self):
        self.assertEqual(compute_pagination(1, 150), (0, 100))
        self.assertEqual(compute_pagination(2, 150), (100, 100))
        self.assertEqual(compute_pagination(1, 0), (0, 1))
        self.assertEqual(compute_pagination(4, -5), (3, 1))
        for requested in (-10, 0, 1, 50, 100, 101, 10_000):
            _, bounded = compute_pagination(1, requested)
            self.assertEqual(bounded, min(max(requested, 1), 100))


class PageMetadataTests(unittest.TestCase):
    def test_last_page_has_no_next(self):
        meta = build_page_metadata(page=5, limit=10, total_count=50)
        self.assertEqual(meta.total_pages, 5)
        self.assertFalse(meta.has_next_page)
        self.assertTrue(meta.has_previous_page)

    def test_metadata_is_consistent_for_many_totals(self):
        for total in (0, 1, 9, 10, 11, 99, 100, 101):
            for limit in (1, 3, 10, 100):
                expected_pages = -(-total // limit)
                for page in (1, 2, expected_pages, expected_pages + 1):
                    if page < 1:
                        continue
                    meta = build_page_metadata(page=page, limit=limit, total_count=total)
                    self.assertEqual(meta.total_pages, expected_pages)
                    self.assertEqual(meta.has_next_page, page < expected_pages)
                    self.assertEqual(meta.has_previous_page, page > 1)

    def test_empty_result_has_zero_pages(self):
        meta = build_page_metadata(page=1, limit=10, total_count=0)
        self.assertEqual(meta.total_pages, 0)
        self.assertFalse(meta.has_next_page)
        self.assertFalse(meta.has_previous_page)

    def test_wire_form_uses_camel_case(self):
        dumped = build_page_metadata(page=2, limit=10, total_count=25).model_dump(by_alias=True)
        self.assertEqual(
            dumped,
            {
                "page": 2,
                "limit": 10,
                "totalCount": 25,
                "totalPages": 3,
                "hasNextPage": True,
                "hasPreviousPage": True,
            },
        )


class FieldAllowlistTests(unittest.TestCase):
    def test_allowed_fields_pass(self):
        validate_fields(["username", "age"], ALLOWED, "filter")

    def test_unknown_field_names_field_and_allowlist(self):
        with self.assertRaises(ListQueryError) as ctx:
            validate_fields(["username", "password_hash"], ALLOWED, "sort")
        message = ctx.exception.message
        self.assertIn("Invalid sort field: password_hash", message)
        self.assertIn("age, email, role, username", message)
        self.assertEqual(ctx.exception.details["field"], "password_hash")


class SortClauseBuilderTests(unittest.TestCase):
    def test_defaults_to_primary_key_descending(self):
        self.assertEqual(build_sort_clauses(None, SortDirection.ASC, ALLOWED), [SortClause("id", SortDirection.DESC)])
        self.assertEqual(build_sort_clauses("  ", "ASC", ALLOWED), [SortClause("id", SortDirection.DESC)])

    def test_multiple_fields_keep_listed_order_and_share_direction(self):
        clauses = build_sort_clauses("role,age", SortDirection.ASC, ALLOWED)
        self.assertEqual(clauses, [SortClause("role", SortDirection.ASC), SortClause("age", SortDirection.ASC)])

    def test_whitespace_around_fields_is_trimmed(self):
        clauses = build_sort_clauses(" username , email ", "DESC", ALLOWED)
        self.assertEqual([c.field for c in clauses], ["username", "email"])
        self.assertTrue(all(c.direction is SortDirection.DESC for c in clauses))

    def test_any_unknown_field_rejects_whole_sort(self):
        with self.assertRaises(ListQueryError):
            build_sort_clauses("username,password_hash", "ASC", ALLOWED)

    def test_empty_name_between_commas_is_rejected(self):
        for sort_by in ("username,", ",,", "username,,email", ",email"):
            with self.assertRaises(ListQueryError, msg=sort_by) as ctx:
                build_sort_clauses(sort_by, "ASC", ALLOWED)
            self.assertEqual(ctx.exception.details["field"], "")


class PredicateBuilderTests(unittest.TestCase):
    def test_range_on_same_field_gets_distinct_param_names(self):
        predicates = build_predicates(
            [
                FilterClause(field="age", op=FilterOperator.GTE, value=18),
                FilterClause(field="age", op=FilterOperator.LTE, value=65),
            ],
            ALLOWED,
            alias="user",
        )
        self.assertEqual([p.operator for p in predicates], [FilterOperator.GTE, FilterOperator.LTE])
        names = [p.param_name for p in predicates]
        self.assertEqual(len(set(names)), 2)
        self.assertEqual(predicates[0].field_path, "user.age")

    def test_repeated_identical_filters_still_get_unique_names(self):
        predicates = build_predicates(
            [FilterClause(field="role", op=FilterOperator.NE, value=v) for v in ("a", "b", "c")],
            ALLOWED,
        )
        self.assertEqual(len({p.param_name for p in predicates}), 3)

    def test_dotted_field_path_is_kept(self):
        predicates = build_predicates(
            [FilterClause(field="roles.name", value="ADMIN")],
            {"roles.name"},
            alias="user",
        )
        self.assertEqual(predicates[0].field_path, "roles.name")
        self.assertEqual(predicates[0].param_name, "roles_name_eq_1")

    def test_like_value_escapes_wildcards(self):
        predicates = build_predicates(
            [FilterClause(field="username", op=FilterOperator.LIKE, value="test%user_name")],
            ALLOWED,
        )
        self.assertEqual(predicates[0].bound_value, "%test\\%user\\_name%")

    def test_escape_like_pattern_handles_backslash_first(self):
        self.assertEqual(escape_like_pattern("a\\b%c_d"), "a\\\\b\\%c\\_d")
        self.assertEqual(escape_like_pattern("plain"), "plain")

    def test_in_requires_sequence(self):
        with self.assertRaises(ListQueryError):
            build_predicates([FilterClause(field="role", op=FilterOperator.IN, value="ADMIN")], ALLOWED)
        with self.assertRaises(ListQueryError):
            build_predicates([FilterClause(field="role", op=FilterOperator.IN, value=5)], ALLOWED)

    def test_all_fields_validated_before_any_predicate(self):
        with self.assertRaises(ListQueryError) as ctx:
            build_predicates(
                [
                    FilterClause(field="username", value="alice"),
                    FilterClause(field="secret", value="x"),
                ],
                ALLOWED,
            )
        self.assertIn("Invalid filter field: secret", ctx.exception.message)

    def test_expressions_bind_values_instead_of_inlining(self):
        predicates = build_predicates(
            [
                FilterClause(field="username", op=FilterOperator.LIKE, value="x'; DROP TABLE users; --"),
                FilterClause(field="age", op=FilterOperator.GT, value="21"),
                FilterClause(field="age", op=FilterOperator.IN, value=["30", 40]),
            ],
            ALLOWED,
        )
        conditions = [p.to_expression(getattr(_Account, p.field)) for p in predicates]
        compiled = select(_Account).where(*conditions).compile(dialect=sqlite.dialect())
        sql = str(compiled)
        self.assertNotIn("DROP TABLE", sql)
        self.assertIn("lower(_lq_accounts.username) LIKE lower(", sql)
        self.assertIn("ESCAPE", sql)
        params = compiled.params
        self.assertEqual(params["username_like_1"], "%x'; DROP TABLE users; --%")
        self.assertEqual(params["age_gt_2"], 21)
        self.assertEqual(params["age_in_3"], [30, 40])

    def test_like_on_non_text_columns_casts_before_lower(self):
        predicates = build_predicates(
            [
                FilterClause(field="created_at", op=FilterOperator.LIKE, value="2026-01"),
                FilterClause(field="age", op=FilterOperator.LIKE, value="4"),
                FilterClause(field="username", op=FilterOperator.LIKE, value="al"),
            ],
            {"created_at", "age", "username"},
        )
        conditions = [p.to_expression(getattr(_Account, p.field)) for p in predicates]
        sql = str(select(_Account).where(*conditions).compile(dialect=postgresql.dialect()))
        self.assertIn("lower(CAST(_lq_accounts.created_at AS VARCHAR)) LIKE lower(", sql)
        self.assertIn("lower(CAST(_lq_accounts.age AS VARCHAR)) LIKE lower(", sql)
        self.assertIn("lower(_lq_accounts.username) LIKE lower(", sql)

    def test_columns_resolve_through_field_path(self):
        resource = ListResource(
            name="accounts",
            model=_Account,
            sortable=frozenset({"username"}),
            filterable=frozenset({"username", "owner.name"}),
            columns={"owner.name": _Account.username},
        )
        predicates = build_predicates(
            [FilterClause(field="username", value="a"), FilterClause(field="owner.name", value="b")],
            resource.filterable,
            alias=resource.alias,
        )
        self.assertEqual([p.field_path for p in predicates], ["_lq_accounts.username", "owner.name"])
        self.assertIs(resource.resolve(predicates[0].field_path), _Account.username)
        self.assertIs(resource.resolve(predicates[1].field_path), _Account.username)
        with self.assertRaises(ListQueryError):
            resource.resolve("other.username")

    def test_non_numeric_value_for_integer_column_is_rejected(self):
        predicates = build_predicates([FilterClause(field="age", op=FilterOperator.GTE, value="old")], ALLOWED)
        with self.assertRaises(ListQueryError):
            predicates[0].to_expression(_Account.age)

    def test_null_equality_uses_is_null(self):
        predicates = build_predicates([FilterClause(field="username", value=None)], ALLOWED)
        sql = str(select(_Account).where(predicates[0].to_expression(_Account.username)).compile(dialect=sqlite.dialect()))
        self.assertIn("username IS NULL", sql)


if __name__ == "__main__":
    unittest.main()
