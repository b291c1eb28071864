import pytest
import pytest_asyncio
from typing import AsyncGenerator, Optional
from httpx import AsyncClient, ASGITransport
from sqlalchemy.ext.asyncio import AsyncSession, create_async_engine, async_sessionmaker
from sqlalchemy.pool import StaticPool
from beanie import init_beanie
from mongomock_motor import AsyncMongoMockClient

from snappy.main import app
from snappy.database.mysql import Base, get_async_session
from snappy.models.users import User
from snappy.models.group_chat_rooms import GroupChatRoom
from snappy.models.group_room_members import GroupRoomMember
from snappy.models.messages import Message
from snappy.websockets import create_realtime
from tests.fakes import FakeWebSocket, FakeMessageStore, FakeUsers, FakeGroups, GROUP_ID, GROUP_MEMBERS


# 테스트용 인메모리 SQLite 데이터베이스 설정
TEST_DATABASE_URL = "sqlite+aiosqlite:///:memory:"


# =============================================================================
# 실시간 처리용 가짜 구성 요소
# =============================================================================

@pytest.fixture
def message_store() -> FakeMessageStore:
    return FakeMessageStore()


@pytest.fixture
def fake_users() -> FakeUsers:
    return FakeUsers()


@pytest.fixture
def fake_groups() -> FakeGroups:
    return FakeGroups({GROUP_ID: set(GROUP_MEMBERS)})


@pytest.fixture
def realtime(fake_users, message_store, fake_groups):
    """가짜 저장소로 연결된 실시간 구성 요소"""
    return create_realtime(users=fake_users, messages=message_store, groups=fake_groups)


@pytest.fixture
def connect(realtime):
    """세션을 연결하고 user_id가 주어지면 add-user까지 처리하는 헬퍼"""
    async def _connect(user_id: Optional[int] = None):
        websocket = FakeWebSocket()
        connection = await realtime.manager.connect(websocket)
        if user_id is not None:
            await realtime.router.handle_frame(connection, {"event": "add-user", "data": user_id})
        return connection, websocket
    return _connect


# =============================================================================
# 데이터베이스 / HTTP 클라이언트
# =============================================================================

@pytest_asyncio.fixture
async def test_engine():
    """테스트용 비동기 데이터베이스 엔진 생성"""
    engine = create_async_engine(
        TEST_DATABASE_URL,
        poolclass=StaticPool,
        connect_args={"check_same_thread": False},
        echo=False
    )

    # 테이블 생성
    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)

    yield engine

    # 정리
    await engine.dispose()


@pytest_asyncio.fixture
async def test_session(test_engine) -> AsyncGenerator[AsyncSession, None]:
    """테스트용 데이터베이스 세션"""
    async_session = async_sessionmaker(
        test_engine, class_=AsyncSession, expire_on_commit=False
    )

    async with async_session() as session:
        yield session


@pytest_asyncio.fixture
async def client(test_session, realtime) -> AsyncGenerator[AsyncClient, None]:
    """테스트용 비동기 HTTP 클라이언트 (lifespan 대신 실시간 구성 요소를 직접 주입)"""
    def get_test_session():
        return test_session

    app.dependency_overrides[get_async_session] = get_test_session
    app.state.realtime = realtime

    transport = ASGITransport(app=app)
    async with AsyncClient(transport=transport, base_url="http://test") as client:
        yield client

    app.dependency_overrides.clear()
    app.state.realtime = None


async def _create_user(session: AsyncSession, username: str, **kwargs) -> User:
    user = User(username=username, email=f"{username}@example.com", **kwargs)
    session.add(user)
    await session.commit()
    await session.refresh(user)
    return user


@pytest_asyncio.fixture
async def test_user_1(test_session) -> User:
    """테스트용 사용자 1"""
    return await _create_user(test_session, "alice")


@pytest_asyncio.fixture
async def test_user_2(test_session) -> User:
    """테스트용 사용자 2"""
    return await _create_user(test_session, "bob")


@pytest_asyncio.fixture
async def test_user_3(test_session) -> User:
    """테스트용 사용자 3 (그룹 비회원)"""
    return await _create_user(test_session, "carol")


@pytest_asyncio.fixture
async def test_group(test_session, test_user_1, test_user_2, test_user_3) -> GroupChatRoom:
    """사용자 1, 2가 속한 그룹"""
    group = GroupChatRoom(name="weekend", admin_id=test_user_1.id)
    test_session.add(group)
    await test_session.commit()
    await test_session.refresh(group)

    for user in (test_user_1, test_user_2):
        test_session.add(GroupRoomMember(user_id=user.id, group_room_id=group.id))
    await test_session.commit()
    return group


# =============================================================================
# MongoDB (Beanie)
# =============================================================================

@pytest_asyncio.fixture
async def beanie_db():
    """mongomock-motor 위에 Beanie를 초기화한 테스트용 메시지 저장소"""
    client = AsyncMongoMockClient()
    database = client.get_database("snappy_test")
    await init_beanie(database=database, document_models=[Message])
    yield database
