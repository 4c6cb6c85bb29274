import pytest

from tests.fakes import TEST_USER_ID, FakeClassifier, FakeWorkItemRepository, RecordingEventBus
from workos.auth.verify import current_user_id


@pytest.fixture
def repository():
    return FakeWorkItemRepository()


@pytest.fixture
def classifier():
    return FakeClassifier()


@pytest.fixture
def event_bus():
    return RecordingEventBus()


@pytest.fixture
def user_override():
    def _override():
        return TEST_USER_ID

    return _override


@pytest.fixture
def apply_auth_override(user_override):
    def _apply(app):
        app.dependency_overrides[current_user_id] = user_override

    return _apply
