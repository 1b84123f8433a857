from django.contrib.auth import get_user_model
from django.contrib.auth.backends import ModelBackend
from django.db.models import Q


class UsernameOrEmailBackend(ModelBackend):
    """Log chat users in by username or by email address, case-insensitively.

    When a login string matches one account's email and another account's
    username, the email match wins.
    """

    def authenticate(self, request, username=None, password=None, **kwargs):
        user_model = get_user_model()
        login = username if username is not None else kwargs.get(user_model.USERNAME_FIELD)
        if not login or password is None:
            return None

        candidates = list(
            user_model._default_manager.filter(  # noqa: SLF001
                Q(email__iexact=login) | Q(username__iexact=login),
            ).order_by("pk"),
        )
        if not candidates:
            # Hash anyway, as ModelBackend does for unknown users.
            user_model().set_password(password)
            return None

        by_email = [u for u in candidates if u.email.lower() == login.lower()]
        user = (by_email or candidates)[0]
        if user.check_password(password) and self.user_can_authenticate(user):
            return user
        return None
