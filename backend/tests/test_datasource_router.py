"""
Tests for the execution context router.
"""

import logging
import threading

import pytest

from text2sql.services.datasource_router import (
    DataSourceRouter,
    get_active_datasource,
)


class TestResolution:
    """Selector resolution is total and case-insensitive."""

    def test_resolve_by_name(self, router, hr_db, sales_db):
        assert router.resolve("hr") is hr_db
        assert router.resolve("sales") is sales_db

    def test_resolve_is_case_insensitive(self, router, sales_db):
        assert router.resolve("SALES") is sales_db
        assert router.resolve("  Sales ") is sales_db

    def test_resolve_alias(self, router, hr_db, sales_db):
        assert router.resolve("people") is hr_db
        assert router.resolve("Orders") is sales_db

    @pytest.mark.parametrize("selector", [None, "", "   "])
    def test_absent_selector_uses_default(self, router, hr_db, selector):
        assert router.resolve(selector) is hr_db

    def test_unknown_selector_falls_back_to_default(
        self, router, hr_db, caplog,
    ):
        with caplog.at_level(logging.WARNING):
            assert router.resolve("warehouse") is hr_db
        assert "unknown datasource" in caplog.text

    def test_read_selector_rotates_through_pool(self, router):
        names = [router.resolve("read").name for _ in range(4)]
        assert names == ["hr", "sales", "hr", "sales"]

    def test_current_without_override_is_default(self, router, hr_db):
        assert router.current() is hr_db

    def test_names_and_aliases(self, router):
        assert router.names == ["hr", "sales"]
        assert router.aliases == {"people": "hr", "orders": "sales"}


class TestScopedOverride:
    """``use_datasource`` restores the enclosing selector on exit."""

    def test_override_and_restore(self, router, hr_db, sales_db):
        with router.use_datasource("sales") as handle:
            assert handle is sales_db
            assert router.current() is sales_db
            assert get_active_datasource() == "sales"
        assert router.current() is hr_db
        assert get_active_datasource() is None

    def test_nested_overrides_unwind_one_level_at_a_time(
        self, router, hr_db, sales_db,
    ):
        with router.use_datasource("sales"):
            with router.use_datasource("people"):
                assert router.current() is hr_db
                with router.use_datasource("orders"):
                    assert router.current() is sales_db
                assert router.current() is hr_db
            assert router.current() is sales_db
        assert get_active_datasource() is None

    def test_restore_after_exception(self, router, sales_db):
        with router.use_datasource("sales"):
            with pytest.raises(RuntimeError):
                with router.use_datasource("hr"):
                    raise RuntimeError("boom")
            assert router.current() is sales_db
        assert get_active_datasource() is None

    def test_read_selector_is_stable_inside_block(self, router):
        with router.use_datasource("read") as handle:
            assert router.current() is handle
            assert router.current() is handle

    def test_with_selector(self, router):
        name = router.with_selector(
            "orders", lambda: router.current().name,
        )
        assert name == "sales"
        assert get_active_datasource() is None

    def test_with_selector_restores_on_error(self, router):
        def body():
            raise ValueError("bad")

        with pytest.raises(ValueError):
            router.with_selector("sales", body)
        assert get_active_datasource() is None

    def test_threads_are_isolated(self, router):
        barrier = threading.Barrier(2)
        seen = {}

        def worker(selector):
            with router.use_datasource(selector):
                barrier.wait(timeout=5)
                seen[selector] = router.current().name
                barrier.wait(timeout=5)

        threads = [
            threading.Thread(target=worker, args=(selector,))
            for selector in ("hr", "sales")
        ]
        for thread in threads:
            thread.start()
        for thread in threads:
            thread.join()

        assert seen == {"hr": "hr", "sales": "sales"}
        assert get_active_datasource() is None


class TestConfiguration:
    """Invalid router configurations fail fast."""

    def test_unknown_default(self, hr_db):
        with pytest.raises(ValueError):
            DataSourceRouter({"hr": hr_db}, default="sales")

    def test_alias_to_unknown_datasource(self, hr_db):
        with pytest.raises(ValueError):
            DataSourceRouter(
                {"hr": hr_db}, default="hr", aliases={"x": "missing"},
            )

    def test_no_datasources(self):
        with pytest.raises(ValueError):
            DataSourceRouter({}, default="hr")

    def test_read_pool_defaults_to_default(self, hr_db, sales_db):
        router = DataSourceRouter(
            {"hr": hr_db, "sales": sales_db}, default="sales",
        )
        assert router.resolve("replica") is sales_db


def test_all_connections(router):
    results = router.test_all_connections()
    assert set(results) == {"hr", "sales"}
    assert all(result["success"] for result in results.values())
