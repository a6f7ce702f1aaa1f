"""
Test configuration and fixtures
"""

import io
import json
import os
import tempfile
from typing import AsyncGenerator

os.environ.setdefault("LOG_TO_FILE", "false")
os.environ.setdefault("UPLOAD_DIR", tempfile.mkdtemp(prefix="impact-uploads-"))

import pytest
from httpx import AsyncClient, ASGITransport
from PIL import Image
from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession, create_async_engine, async_sessionmaker
from sqlalchemy.pool import StaticPool

from impact_api.main import app
from impact_api.db.database import Base, get_db
from impact_api.core.security import create_access_token
from impact_api.models.category import Category
from impact_api.models.country import Country
from impact_api.models.impact import Impact
from impact_api.models.pillar import Pillar, PillarFocusArea
from impact_api.models.team import TeamMember
from impact_api.models.user import User
from impact_api.schemas.project import ProjectInput
from impact_api.services.project_composer import ProjectComposer
from impact_api.services.file_storage import LocalFileStorage, get_file_storage


TEST_DATABASE_URL = "sqlite+aiosqlite:///:memory:"


@pytest.fixture
async def test_engine():
    """Create test database engine"""
    engine = create_async_engine(
        TEST_DATABASE_URL,
        connect_args={"check_same_thread": False},
        poolclass=StaticPool,
        echo=False
    )

    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)

    yield engine

    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.drop_all)

    await engine.dispose()


@pytest.fixture
async def test_db(test_engine) -> AsyncGenerator[AsyncSession, None]:
    """Create test database session"""
    async_session = async_sessionmaker(
        test_engine, class_=AsyncSession, expire_on_commit=False
    )

    async with async_session() as session:
        yield session


@pytest.fixture
def upload_dir(tmp_path):
    path = tmp_path / "uploads"
    path.mkdir()
    return path


@pytest.fixture
def storage(upload_dir) -> LocalFileStorage:
    return LocalFileStorage(upload_dir=str(upload_dir))


@pytest.fixture
async def client(test_db: AsyncSession, storage: LocalFileStorage) -> AsyncGenerator[AsyncClient, None]:
    """Create test client with database and storage overrides"""

    async def override_get_db():
        yield test_db

    app.dependency_overrides[get_db] = override_get_db
    app.dependency_overrides[get_file_storage] = lambda: storage

    transport = ASGITransport(app=app)
    async with AsyncClient(transport=transport, base_url="http://localhost") as ac:
        yield ac

    app.dependency_overrides.clear()


@pytest.fixture
async def admin_user(test_db: AsyncSession) -> User:
    admin = User(email="admin@example.org", full_name="Admin", is_active=True, is_superuser=True)
    test_db.add(admin)
    await test_db.commit()
    await test_db.refresh(admin)
    return admin


@pytest.fixture
async def viewer_user(test_db: AsyncSession) -> User:
    """Authenticated user without write permissions"""
    viewer = User(email="viewer@example.org", full_name="Viewer", is_active=True, permissions=[])
    test_db.add(viewer)
    await test_db.commit()
    await test_db.refresh(viewer)
    return viewer


@pytest.fixture
def admin_headers(admin_user: User) -> dict:
    token = create_access_token(data={"sub": str(admin_user.id)})
    return {"Authorization": f"Bearer {token}"}


@pytest.fixture
def viewer_headers(viewer_user: User) -> dict:
    token = create_access_token(data={"sub": str(viewer_user.id)})
    return {"Authorization": f"Bearer {token}"}


@pytest.fixture
async def focus_areas(test_db: AsyncSession) -> dict:
    """Focus areas keyed by name"""
    names = ["Climate", "Education", "Health", "Water"]
    created = {}
    for name in names:
        category = Category(name=name, description=f"{name} programmes")
        test_db.add(category)
        created[name] = category
    await test_db.commit()
    return {name: category.id for name, category in created.items()}


@pytest.fixture
async def pillar(test_db: AsyncSession, focus_areas: dict) -> int:
    """Pillar offering Climate and Water"""
    environment = Pillar(name="Environment", description="Environmental work", order_index=0)
    test_db.add(environment)
    await test_db.flush()
    for name in ("Climate", "Water"):
        test_db.add(PillarFocusArea(pillar_id=environment.id, category_id=focus_areas[name]))
    await test_db.commit()
    return environment.id


@pytest.fixture
async def other_pillar(test_db: AsyncSession, focus_areas: dict) -> int:
    """Pillar offering Education and Health"""
    people = Pillar(name="People", description="Community work", order_index=1)
    test_db.add(people)
    await test_db.flush()
    for name in ("Education", "Health"):
        test_db.add(PillarFocusArea(pillar_id=people.id, category_id=focus_areas[name]))
    await test_db.commit()
    return people.id


@pytest.fixture
async def country(test_db: AsyncSession) -> int:
    kenya = Country(name="Kenya", code="KE")
    test_db.add(kenya)
    await test_db.commit()
    return kenya.id


async def make_impact(db: AsyncSession, name: str, starting_value: int = 0, order_index: int = 0) -> int:
    impact = Impact(
        name=name,
        unit="units",
        starting_value=starting_value,
        current_value=starting_value,
        order_index=order_index,
    )
    db.add(impact)
    await db.commit()
    return impact.id


@pytest.fixture
async def trees_impact(test_db: AsyncSession) -> int:
    return await make_impact(test_db, "Trees Planted", starting_value=1000, order_index=0)


@pytest.fixture
async def people_impact(test_db: AsyncSession) -> int:
    return await make_impact(test_db, "People Served", starting_value=0, order_index=1)


@pytest.fixture
async def team_member(test_db: AsyncSession, pillar: int) -> int:
    member = TeamMember(name="Field Lead", position="Coordinator", pillar_id=pillar, is_active=True)
    test_db.add(member)
    await test_db.commit()
    return member.id


@pytest.fixture
def read_total(test_db: AsyncSession):
    """Read an impact total straight from the table, bypassing the identity map"""

    async def _read(impact_id: int) -> int:
        result = await test_db.execute(select(Impact.current_value).where(Impact.id == impact_id))
        return result.scalar_one()

    return _read


@pytest.fixture
def make_project(test_db: AsyncSession, pillar: int, focus_areas: dict):
    """Create a project through the composer and return its id"""

    async def _make(contributions: dict = None, **fields) -> int:
        fields.setdefault("title", "Mangrove Restoration")
        fields.setdefault("description", "Restoring coastal mangroves")
        fields.setdefault("pillar_id", pillar)
        fields.setdefault("focus_area_ids", [focus_areas["Climate"]])
        payload = ProjectInput(
            project_impacts=[
                {"impact_id": impact_id, "contribution_value": value}
                for impact_id, value in (contributions or {}).items()
            ],
            **fields
        )
        project = await ProjectComposer(test_db).create_project(payload)
        return project.id

    return _make


def project_form(pillar_id: int, focus_area_ids: list, project_impacts: list = None, **fields) -> dict:
    data = {
        "title": fields.pop("title", "Mangrove Restoration"),
        "description": fields.pop("description", "Restoring coastal mangroves"),
        "pillarId": str(pillar_id),
        "focus_area_ids": json.dumps(focus_area_ids),
    }
    if project_impacts is not None:
        data["project_impacts"] = json.dumps(project_impacts)
    for key, value in fields.items():
        data[key] = value if isinstance(value, str) else json.dumps(value)
    return data


@pytest.fixture
def form():
    """Build multipart form fields for the project endpoints"""
    return project_form


@pytest.fixture
def png_bytes() -> bytes:
    buffer = io.BytesIO()
    Image.new("RGB", (4, 4), color=(20, 120, 60)).save(buffer, format="PNG")
    return buffer.getvalue()
