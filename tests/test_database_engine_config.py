import pytest

from aikanban.errors import ConfigurationError


def test_get_engine_kwargs_sqlite_has_check_same_thread():
    from aikanban.database import database as db

    kwargs = db.get_engine_kwargs("sqlite:///./aikanban.db")
    assert kwargs["connect_args"]["check_same_thread"] is False
    # SQLite should not require pool sizing knobs.
    assert "pool_size" not in kwargs
    assert "max_overflow" not in kwargs
    assert kwargs["pool_pre_ping"] is True


def test_get_engine_kwargs_postgres_has_conservative_pooling(monkeypatch):
    from aikanban.database import database as db

    monkeypatch.setenv("DB_POOL_SIZE", "7")
    monkeypatch.setenv("DB_MAX_OVERFLOW", "3")
    monkeypatch.setenv("DB_POOL_TIMEOUT_SEC", "10")

    kwargs = db.get_engine_kwargs("postgresql+psycopg://u:p@localhost:5432/db")
    assert "connect_args" not in kwargs
    assert kwargs["pool_size"] == 7
    assert kwargs["max_overflow"] == 3
    assert kwargs["pool_timeout"] == 10


def test_is_sqlite_url():
    from aikanban.database import database as db

    assert db._is_sqlite_url("sqlite:///./aikanban.db") is True
    assert db._is_sqlite_url("postgresql+psycopg://u:p@localhost/db") is False


@pytest.mark.parametrize("value", [None, "", "   "])
def test_missing_database_url_is_a_configuration_error(monkeypatch, value):
    from aikanban.database import database as db

    if value is None:
        monkeypatch.delenv("DATABASE_URL", raising=False)
    else:
        monkeypatch.setenv("DATABASE_URL", value)

    with pytest.raises(ConfigurationError):
        db.get_database_url()


def test_build_engine_enables_sqlite_foreign_keys(tmp_path):
    from sqlalchemy import text
    from aikanban.database import database as db

    engine = db.build_engine(f"sqlite:///{tmp_path / 'board.db'}")
    try:
        with engine.connect() as conn:
            assert conn.execute(text("PRAGMA foreign_keys")).scalar() == 1
    finally:
        engine.dispose()
