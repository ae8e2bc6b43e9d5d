"""
Shared fixtures: SQLite database tạm (aiosqlite) với bảng users / items / ratings.

Dataset:
    users:   uid | season | region
             1   | summer | north
             2   | summer | south
             3   | winter | north
             4   | spring | south     (không có rating)
    items:   iid 1..4                  (item 4 không có rating)
    ratings: (1, 1, 5) (1, 2, 3) (2, 1, 4) (2, 3, 2) (3, 2, 1) (3, 3, 4)
"""
import pytest
import pytest_asyncio
from sqlalchemy import Column, Integer, MetaData, REAL, String, Table

from app.config import Settings
from app.db.gateway import QueryGateway
from app.web.utils.database import build_engine, get_sessionmaker

USERS = [
    {"uid": 1, "season": "summer", "region": "north"},
    {"uid": 2, "season": "summer", "region": "south"},
    {"uid": 3, "season": "winter", "region": "north"},
    {"uid": 4, "season": "spring", "region": "south"},
]
ITEMS = [{"iid": i, "title": f"item {i}"} for i in range(1, 5)]
RATINGS = [
    {"uid": 1, "iid": 1, "score": 5.0},
    {"uid": 1, "iid": 2, "score": 3.0},
    {"uid": 2, "iid": 1, "score": 4.0},
    {"uid": 2, "iid": 3, "score": 2.0},
    {"uid": 3, "iid": 2, "score": 1.0},
    {"uid": 3, "iid": 3, "score": 4.0},
]


def source_tables(metadata: MetaData):
    users = Table(
        "users", metadata,
        Column("uid", Integer, primary_key=True, autoincrement=False),
        Column("season", String),
        Column("region", String),
    )
    items = Table(
        "items", metadata,
        Column("iid", Integer, primary_key=True, autoincrement=False),
        Column("title", String),
    )
    ratings = Table(
        "ratings", metadata,
        Column("uid", Integer),
        Column("iid", Integer),
        Column("score", REAL),
    )
    return users, items, ratings


@pytest.fixture
def test_settings():
    """Settings nhỏ cho SVD để test chạy nhanh."""
    s = Settings()
    s.read_only = False
    s.svd_factors = 3
    s.svd_epochs = 5
    s.svd_random_state = 7
    return s


@pytest_asyncio.fixture
async def engine(tmp_path):
    engine = build_engine(f"sqlite:///{tmp_path / 'recommender.db'}")
    metadata = MetaData()
    users, items, ratings = source_tables(metadata)
    async with engine.begin() as conn:
        await conn.run_sync(metadata.create_all)
        await conn.execute(users.insert(), USERS)
        await conn.execute(items.insert(), ITEMS)
        await conn.execute(ratings.insert(), RATINGS)
    yield engine
    await engine.dispose()


@pytest_asyncio.fixture
async def session_factory(engine):
    return get_sessionmaker(engine)


@pytest_asyncio.fixture
async def db(session_factory):
    async with session_factory() as session:
        yield session
        await session.rollback()


@pytest.fixture
def gateway(db):
    return QueryGateway(db)

