import sys
from pathlib import Path

# 프로젝트 루트 경로를 sys.path에 추가 (…/<project-root>)
ROOT = Path(__file__).resolve().parents[2]
if str(ROOT) not in sys.path:
    sys.path.insert(0, str(ROOT))

from datetime import datetime, timezone

import pytest

from search_api.app.domain.models import (
    Actor, Capability, Journal, Project, ProjectStatus, WikiPage, WorkItem,
)
from search_api.tests.fakes import FakeOpenSearch, FakeOracle, FakeRecords

INDEX = "tracker-test"


@pytest.fixture
def engine():
    """빈 in-memory 검색 엔진"""
    fake = FakeOpenSearch()
    fake.indices.create(index=INDEX)
    return fake


@pytest.fixture
def public_project():
    return Project(id=1, name="Cookbook", identifier="cookbook", is_public=True,
                   created_on=datetime(2024, 1, 1, tzinfo=timezone.utc))


@pytest.fixture
def private_project():
    return Project(id=2, name="Secret Kitchen", identifier="secret", is_public=False,
                   created_on=datetime(2024, 1, 1, tzinfo=timezone.utc))


@pytest.fixture
def archived_project():
    return Project(id=3, name="Old Menu", identifier="old-menu", is_public=True,
                   status=ProjectStatus.ARCHIVED)


@pytest.fixture
def work_item(public_project):
    return WorkItem(
        id=10,
        project=public_project,
        subject="Recipe bug",
        description="The pancake recipe page crashes",
        author_id=100,
        journals=[
            Journal(id=1, notes="Reproduced on staging", user_id=100),
            Journal(id=2, notes="   ", user_id=101),
            Journal(id=3, notes="Fixed the syrup parser", user_id=101),
        ],
        created_on=datetime(2024, 1, 15, 9, 30, tzinfo=timezone.utc),
        updated_on=datetime(2024, 1, 16, 9, 30, tzinfo=timezone.utc),
    )


@pytest.fixture
def wiki_page(public_project):
    return WikiPage(id=20, project=public_project, title="Recipes", text="All recipe pages live here",
                    created_on=datetime(2024, 3, 2, tzinfo=timezone.utc))


@pytest.fixture
def member():
    """프로젝트 1 멤버(일감/위키 조회 가능)"""
    return Actor(id=100, member_project_ids=frozenset({1}))


@pytest.fixture
def admin():
    return Actor(id=1, admin=True)


@pytest.fixture
def oracle():
    return FakeOracle(grants={
        100: {Capability.view_work_items: {1}, Capability.view_wiki_pages: {1}},
        None: {Capability.view_work_items: {1}},
    })


@pytest.fixture
def records(public_project, private_project, archived_project):
    return FakeRecords(public_project, private_project, archived_project)
