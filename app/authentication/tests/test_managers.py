import pytest

from authentication.models import User

PASSWORD = "SecurePass123!"


class TestCreateUser:
    def test_stores_hashed_password(self, db):
        """
        Given an email and a password
        When a user is created
        Then the password is checkable but not stored in clear
        """
        user = User.objects.create_user("hashing@example.com", PASSWORD)

        assert user.check_password(PASSWORD)
        assert user.password != PASSWORD

    def test_lowercases_only_the_domain(self, db):
        user = User.objects.create_user("Mixed.Case@EXAMPLE.COM", PASSWORD)

        assert user.email == "Mixed.Case@example.com"

    def test_no_password_means_no_login(self, db):
        user = User.objects.create_user("passwordless@example.com")

        assert not user.has_usable_password()

    def test_plain_user_flags(self, db):
        user = User.objects.create_user("flags@example.com", PASSWORD)

        assert (user.is_active, user.is_staff, user.is_superuser) == (True, False, False)

    def test_email_is_required(self, db):
        with pytest.raises(ValueError, match="Email field must be set"):
            User.objects.create_user("", PASSWORD)

    def test_name_helpers_fall_back_to_email(self, db):
        user = User.objects.create_user("fallback@example.com", PASSWORD)

        assert user.get_full_name() == "fallback@example.com"
        assert user.get_short_name() == "fallback"


class TestCreateSuperuser:
    def test_gets_staff_and_verified_email(self, db):
        root = User.objects.create_superuser("root@example.com", PASSWORD)

        assert root.is_staff and root.is_superuser and root.email_verified

    def test_is_not_a_credit_admin(self, db):
        """
        Given a Django superuser
        When its credit account is opened
        Then it still pays for actions until promoted
        """
        root = User.objects.create_superuser("root2@example.com", PASSWORD)

        assert root.credit_account.is_admin is False

    @pytest.mark.parametrize("flag", ["is_staff", "is_superuser"])
    def test_rejects_flag_set_to_false(self, db, flag):
        with pytest.raises(ValueError, match=flag):
            User.objects.create_superuser("bad@example.com", PASSWORD, **{flag: False})
