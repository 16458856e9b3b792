"""Pytest configuration and shared fixtures."""

import os
import tempfile
from pathlib import Path
from unittest.mock import MagicMock, patch

import pytest
from hypothesis import settings

from src.config import Config
from src.database import Database
from src.interfaces import (
    CodeHostClient,
    Issue,
    Notifier,
    Project,
    ProjectCard,
    User,
)
from src.process import ProcessInfo

# Configure Hypothesis profiles for different environments
settings.register_profile("ci", max_examples=100, deadline=None)
settings.register_profile("dev", max_examples=50, deadline=None)
settings.load_profile(os.environ.get("HYPOTHESIS_PROFILE", "dev"))


def pytest_configure(config):
    """Register custom markers."""
    config.addinivalue_line(
        "markers",
        "unit: fast tests with mocked collaborators",
    )
    config.addinivalue_line(
        "markers",
        "hypothesis: marks property-based tests using Hypothesis",
    )


@pytest.fixture
def temp_db():
    """Fixture providing a temporary database for tests."""
    with tempfile.NamedTemporaryFile(mode="w", suffix=".db", delete=False) as f:
        db_path = f.name

    db = Database(db_path)
    yield db

    db.close()
    Path(db_path).unlink(missing_ok=True)


@pytest.fixture
def mock_gh_subprocess():
    """Fixture for mocking subprocess calls to gh CLI."""
    with patch("subprocess.run") as mock_run:
        yield mock_run


@pytest.fixture
def ticket_client():
    """Code-hosting collaborator double."""
    client = MagicMock(spec=CodeHostClient)
    client.create_issue.return_value = Issue(number=900, user=User("triagebot"))
    client.create_project_card.return_value = ProjectCard(id=5000)
    return client


@pytest.fixture
def notifier():
    """Chat collaborator double."""
    return MagicMock(spec=Notifier)


@pytest.fixture
def config():
    """Config with short, easy-to-reason-about durations (seconds)."""
    return Config(
        github_organization="acme",
        matrix_access_token="token",
        matrix_default_room_id="!default:matrix.org",
        triage_repo_name="triage",
        project_confirmation_timeout=100,
        no_project_author_is_core_ping=100,
        no_project_author_is_core_close_pr=300,
        no_project_author_not_core_close_pr=50,
    )


@pytest.fixture
def process_info():
    return ProcessInfo(
        project_name="Networking",
        owner="alice",
        matrix_room_id="!net:matrix.org",
        delegated_reviewer="bob",
        whitelist=("carol",),
    )


@pytest.fixture
def project():
    return Project(
        id=10,
        name="Networking",
        html_url="https://github.com/orgs/acme/projects/10",
        columns_url="https://api.github.com/projects/10/columns",
    )


@pytest.fixture
def issue():
    return Issue(
        number=42,
        user=User("dave"),
        id=4242,
        title="Packets dropped",
        body="Steps to reproduce...",
        html_url="https://github.com/acme/netd/issues/42",
        assignee=User("erin"),
        repository_name="netd",
    )

