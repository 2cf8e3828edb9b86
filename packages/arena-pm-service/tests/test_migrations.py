"""Tests for the plan seed statement."""

from sqlalchemy.dialects import postgresql

from arena_pm_service.db.migrations import PLAN_SEED, plan_upsert


def _sql() -> str:
    return str(plan_upsert().compile(dialect=postgresql.dialect()))


def test_plans_are_upserted_not_skipped():
    sql = _sql()
    assert "ON CONFLICT (id) DO UPDATE" in sql
    assert "DO NOTHING" not in sql


def test_every_seed_column_is_refreshed():
    sql = _sql()
    for column in PLAN_SEED[0]:
        if column == "id":
            continue
        assert f"{column} = excluded.{column}" in sql
