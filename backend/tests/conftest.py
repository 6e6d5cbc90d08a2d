"""共通フィクスチャ: SQLite インメモリDB + テストクライアント"""
import os

os.environ["DATABASE_URL"] = "sqlite://"
os.environ["RATE_LIMIT_ENABLED"] = "false"
os.environ["AUTO_START_TRIAL"] = "true"
os.environ["DEBUG"] = "false"

from collections.abc import AsyncGenerator, Generator
from datetime import datetime

import pytest
from httpx import ASGITransport, AsyncClient
from sqlalchemy import create_engine
from sqlalchemy.orm import Session, sessionmaker
from sqlalchemy.pool import StaticPool

# モデルを全て読み込んでメタデータを揃える
import homelist.models  # noqa: F401
from homelist.core.database import Base, get_db
from homelist.main import app
from homelist.models.house import House
from homelist.models.item import Item
from homelist.models.room import Room
from homelist.models.user import User
from homelist.routers.deps import get_current_user
from homelist.services import auth_service, plan_service

NOW = datetime(2026, 3, 1, 12, 0, 0)


@pytest.fixture
def engine():
    eng = create_engine(
        "sqlite://",
        connect_args={"check_same_thread": False},
        poolclass=StaticPool,
    )
    Base.metadata.create_all(eng)
    yield eng
    Base.metadata.drop_all(eng)
    eng.dispose()


@pytest.fixture
def db(engine) -> Generator[Session, None, None]:
    sess = sessionmaker(bind=engine, autocommit=False, autoflush=False)()
    yield sess
    sess.close()


@pytest.fixture
async def client(db) -> AsyncGenerator[AsyncClient, None]:
    """HTTPX非同期クライアント (DBセッション差し替え済み)"""

    def _override_db():
        yield db

    app.dependency_overrides[get_db] = _override_db

    transport = ASGITransport(app=app)
    async with AsyncClient(transport=transport, base_url="http://test") as ac:
        yield ac

    app.dependency_overrides.clear()


@pytest.fixture
def login_as():
    """指定ユーザーでログインした状態にする"""

    def _login(user: User):
        app.dependency_overrides[get_current_user] = lambda: user

    return _login


@pytest.fixture
def plans(db) -> dict:
    """trial / basic / unlimited / legacy(無効) の4プラン"""
    return {
        "trial": plan_service.create_plan(
            db, "trial", "トライアル", max_houses=1, max_rooms_per_house=3,
            max_items_per_room=10, allow_trial=True, sort_order=0,
        ),
        "basic": plan_service.create_plan(
            db, "basic", "ベーシック", price=500, max_houses=2, max_rooms_per_house=5,
            max_items_per_room=50, sort_order=1,
        ),
        "unlimited": plan_service.create_plan(
            db, "unlimited", "無制限", price=1500, sort_order=2,
        ),
        "legacy": plan_service.create_plan(
            db, "legacy", "旧プラン", price=300, max_houses=1, max_rooms_per_house=1,
            max_items_per_room=1, is_active=False, sort_order=9,
        ),
    }


@pytest.fixture
def make_user(db):
    counter = {"n": 0}

    def _make(role: str = "USER", email: str = None) -> User:
        counter["n"] += 1
        return auth_service.create_user(
            db,
            email=email or f"user{counter['n']}@example.com",
            password="Passw0rd!",
            name=f"テスト{counter['n']}",
            role=role,
        )

    return _make


@pytest.fixture
def user(make_user) -> User:
    return make_user()


@pytest.fixture
def admin(make_user) -> User:
    return make_user(role="ADMIN", email="admin@example.com")


@pytest.fixture
def add_contents(db):
    """家屋・部屋・品目を作成する。rooms は各部屋の品目数のリスト"""

    def _add(user_id: int, rooms: list[int]) -> House:
        house = House(user_id=user_id, name="自宅", address1="1-1", city="港区", state="東京都", zip_code="1000001")
        db.add(house)
        db.flush()
        for i, item_count in enumerate(rooms):
            room = Room(house_id=house.id, name=f"部屋{i + 1}")
            db.add(room)
            db.flush()
            for j in range(item_count):
                db.add(Item(room_id=room.id, name=f"品目{j + 1}"))
        db.commit()
        return house

    return _add
