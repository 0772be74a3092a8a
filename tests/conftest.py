import sys
from pathlib import Path

import pytest

ROOT = Path(__file__).resolve().parents[1]
if str(ROOT) not in sys.path:
    sys.path.insert(0, str(ROOT))


@pytest.fixture
def temp_db(monkeypatch, tmp_path):
    import db

    db_path = tmp_path / "test.db"
    monkeypatch.setattr(db, "DB_PATH", str(db_path))

    # Reset the global pool reference for each test
    monkeypatch.setattr(db, "_pool", db.SQLiteConnectionPool(str(db_path), max_connections=10))
    db.init()
    yield str(db_path)
    db._pool.close_all()


@pytest.fixture
def student(temp_db):
    from schemas import User

    return User(id="user_1_ana", name="Ana", role="student", grade="10", subjects=["matematicas"])


@pytest.fixture
def teacher(temp_db):
    from schemas import User

    return User(id="user_2_luis", name="Luis", role="teacher", subjects=["fisica", "quimica"])
