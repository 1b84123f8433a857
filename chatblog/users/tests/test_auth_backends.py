import pytest
from django.contrib.auth import get_user_model

from chatblog.users.auth_backends import UsernameOrEmailBackend

pytestmark = pytest.mark.django_db
User = get_user_model()


class TestUsernameOrEmailBackend:
    def setup_method(self):
        self.backend = UsernameOrEmailBackend()
        self.password = "Sahm1232"  # noqa: S105  # Allow hardcoded password in test
        self.user = User.objects.create_user(
            username="test",
            email="test@gmail.com",
            password=self.password,
        )

    @pytest.mark.parametrize("login", ["test", "TEST", "test@gmail.com", "Test@Gmail.com"])
    def test_authenticate_with_username_or_email(self, login):
        user = self.backend.authenticate(None, username=login, password=self.password)
        assert user == self.user

    @pytest.mark.parametrize(
        ("login", "password"),
        [
            ("wronguser", "Sahm1232"),
            ("wrong@gmail.com", "Sahm1232"),
            ("test", "wrongpass"),
            ("test@gmail.com", "wrongpass"),
            ("wronguser", "wrongpass"),
        ],
    )
    def test_rejects_bad_credentials(self, login, password):
        assert self.backend.authenticate(None, username=login, password=password) is None

    def test_inactive_user_cannot_authenticate(self):
        self.user.is_active = False
        self.user.save()

        user = self.backend.authenticate(None, username="test", password=self.password)
        assert user is None

    def test_missing_password(self):
        assert self.backend.authenticate(None, username="test", password=None) is None

    def test_email_match_wins_over_username_match(self):
        User.objects.create_user(
            username="TEST@gmail.com",
            email="alias@gmail.com",
            password="Other1234",  # noqa: S106
        )

        user = self.backend.authenticate(None, username="test@gmail.com", password=self.password)
        assert user == self.user
