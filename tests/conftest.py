import pytest
from httpx import ASGITransport, AsyncClient
from sqlalchemy import event
from sqlalchemy.dialects import postgresql
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

from app.database import build_engine, create_db_and_tables, get_db
from app.main import app
from app.models.ngo import NGO, NGOStaff, ResourceInventoryItem, ServiceArea
from app.models.victim import Event, Victim

@pytest.fixture
async def engine(tmp_path):
    # A file database so separate sessions (and the HTTP app) share state
    engine = build_engine(f"sqlite+aiosqlite:///{tmp_path / 'test.db'}")
    await create_db_and_tables(bind=engine)
    yield engine
    await engine.dispose()

@pytest.fixture
def session_factory(engine):
    return async_sessionmaker(engine, class_=AsyncSession, expire_on_commit=False)

@pytest.fixture
async def db(session_factory):
    async with session_factory() as session:
        yield session

@pytest.fixture
async def client(session_factory):
    async def override_get_db():
        async with session_factory() as session:
            yield session

    app.dependency_overrides[get_db] = override_get_db
    async with AsyncClient(transport=ASGITransport(app=app), base_url="http://test") as ac:
        yield ac
    app.dependency_overrides.clear()

@pytest.fixture
def seed(session_factory):
    """
    Insert rows in a short-lived session and return their ids.
    Each call commits and closes, so no write lock is left open.
    """
    async def _seed(*rows):
        async with session_factory() as session:
            session.add_all(rows)
            await session.commit()
            return [row.id for row in rows]

    return _seed

def make_ngo(**kwargs) -> NGO:
    kwargs.setdefault("name", "Relief NGO")
    return NGO(**kwargs)

def make_staff(ngo_id: int, **kwargs) -> NGOStaff:
    kwargs.setdefault("name", "Field Worker")
    kwargs.setdefault("role", "coordinator")
    return NGOStaff(ngo_id=ngo_id, **kwargs)

def make_area(ngo_id: int, latitude: float, longitude: float, radius_km: float, **kwargs) -> ServiceArea:
    kwargs.setdefault("location_name", "Area")
    return ServiceArea(ngo_id=ngo_id, latitude=latitude, longitude=longitude, radius_km=radius_km, **kwargs)

def make_inventory(ngo_id: int, resource_type: str, quantity: int, **kwargs) -> ResourceInventoryItem:
    kwargs.setdefault("resource_name", f"{resource_type} kit")
    return ResourceInventoryItem(ngo_id=ngo_id, resource_type=resource_type, quantity=quantity, **kwargs)

def make_victim(victim_id: int, **kwargs) -> Victim:
    kwargs.setdefault("name", "Victim")
    return Victim(id=victim_id, **kwargs)

def make_event(**kwargs) -> Event:
    kwargs.setdefault("description", "Flood")
    return Event(**kwargs)

def capture_orm_sql(session: AsyncSession) -> list:
    """
    Record every ORM statement the session runs, compiled for PostgreSQL.
    SQLite drops row-locking clauses, so locks are checked this way.
    """
    statements = []

    def _capture(orm_execute_state):
        statements.append(str(orm_execute_state.statement.compile(dialect=postgresql.dialect())))

    event.listen(session.sync_session, "do_orm_execute", _capture)
    return statements
