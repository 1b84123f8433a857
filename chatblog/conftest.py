import pytest

from chatblog.users.models import User
from chatblog.users.tests.factories import create_user


@pytest.fixture
def user(db) -> User:
    return create_user("alice", first_name="Alice", last_name="Liddell")
