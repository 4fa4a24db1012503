from datetime import timedelta

import pytest

from core.database import DatabaseManager, MetricRepository
from core.metrics import Metric
from conftest import NOW


@pytest.fixture
def db_session(tmp_path):
    """Provide a session bound to a fresh SQLite database."""
    manager = DatabaseManager(f"sqlite:///{tmp_path / 'metrics.db'}")
    manager.create_tables()
    sessions = manager.get_session()
    session = next(sessions)
    yield session
    sessions.close()
    manager.dispose()


def _metric(metric_id, hours_ago):
    return Metric(
        id=metric_id,
        category="GitHub",
        name="Pull Request Count",
        value=4,
        unit="count",
        additional_info="Based on 4 PRs",
        source="GitHub",
        timestamp=NOW - timedelta(hours=hours_ago),
    )


def test_store_and_read_newest_first(db_session):
    repository = MetricRepository(db_session)

    stored = repository.store_metrics([_metric("old", 5), _metric("new", 1)])

    assert stored == 2
    assert repository.count() == 2
    metrics = repository.get_metrics(page=1, page_size=10)
    assert [m.id for m in metrics] == ["new", "old"]
    assert metrics[0].timestamp == NOW - timedelta(hours=1)
    assert metrics[0].value == 4


def test_storing_again_appends_rows(db_session):
    """Test that stored metrics are never updated in place."""
    repository = MetricRepository(db_session)
    repository.store_metrics([_metric("m", 1)])
    repository.store_metrics([_metric("m", 1)])

    assert repository.count() == 2


def test_pagination(db_session):
    repository = MetricRepository(db_session)
    repository.store_metrics([_metric(f"m{i}", i) for i in range(5)])

    assert [m.id for m in repository.get_metrics(page=2, page_size=2)] == ["m2", "m3"]
    assert repository.get_metrics(page=4, page_size=2) == []


def test_reset(db_session):
    repository = MetricRepository(db_session)
    repository.store_metrics([_metric("a", 1), _metric("b", 2)])

    assert repository.reset() == 2
    assert repository.count() == 0
