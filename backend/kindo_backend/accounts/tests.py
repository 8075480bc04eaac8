from django.contrib.auth.tokens import default_token_generator
from django.test import override_settings
from django.urls import reverse
from rest_framework.authtoken.models import Token
from rest_framework.test import APITestCase

from .models import User

PASSWORD = "secret-pass-123"


def make_user(email, role=User.ROLE_AUTHOR, status=User.STATUS_ACTIVE, name=None):
    return User.objects.create_user(
        email=email, password=PASSWORD, name=name or email.split("@")[0], role=role, status=status,
    )


class AuthenticatedTestCase(APITestCase):
    def authenticate(self, user):
        token, _ = Token.objects.get_or_create(user=user)
        self.client.credentials(HTTP_AUTHORIZATION=f"Bearer {token.key}")
        return token


@override_settings(SENDGRID_API_KEY="")
class RegistrationAndLoginTests(AuthenticatedTestCase):
    def test_registration_creates_inactive_author_without_token(self):
        response = self.client.post(reverse("auth-register"), {
            "name": "Neema",
            "email": "neema@example.com",
            "password": PASSWORD,
            "password_confirmation": PASSWORD,
            "role": "admin",
        }, format="json")

        self.assertEqual(response.status_code, 201)
        self.assertTrue(response.data["success"])
        self.assertNotIn("token", response.data["data"])
        user = User.objects.get(email="neema@example.com")
        self.assertEqual(user.role, User.ROLE_AUTHOR)
        self.assertEqual(user.status, User.STATUS_INACTIVE)
        self.assertFalse(Token.objects.filter(user=user).exists())

    def test_registration_rejects_duplicate_email_and_mismatched_confirmation(self):
        make_user("taken@example.com")
        response = self.client.post(reverse("auth-register"), {
            "name": "Other",
            "email": "taken@example.com",
            "password": PASSWORD,
            "password_confirmation": "different-pass",
        }, format="json")

        self.assertEqual(response.status_code, 422)
        self.assertFalse(response.data["success"])
        self.assertEqual(response.data["message"], "Validation errors occurred")
        self.assertIn("email", response.data["errors"])

    @override_settings(AUTH_PASSWORD_VALIDATORS=[
        {"NAME": "django.contrib.auth.password_validation.NumericPasswordValidator"},
    ])
    def test_registration_runs_password_validators(self):
        response = self.client.post(reverse("auth-register"), {
            "name": "Neema",
            "email": "neema@example.com",
            "password": "1234567890",
            "password_confirmation": "1234567890",
        }, format="json")

        self.assertEqual(response.status_code, 422)
        self.assertFalse(User.objects.filter(email="neema@example.com").exists())

    def test_login_with_wrong_password_is_a_validation_error(self):
        make_user("author@example.com")
        response = self.client.post(reverse("auth-login"), {"email": "author@example.com", "password": "wrong-pass"}, format="json")
        self.assertEqual(response.status_code, 422)
        self.assertIn("email", response.data["errors"])

    def test_login_refused_for_inactive_and_suspended_accounts(self):
        make_user("pending@example.com", status=User.STATUS_INACTIVE)
        make_user("banned@example.com", status=User.STATUS_SUSPENDED)

        pending = self.client.post(reverse("auth-login"), {"email": "pending@example.com", "password": PASSWORD}, format="json")
        banned = self.client.post(reverse("auth-login"), {"email": "banned@example.com", "password": PASSWORD}, format="json")

        self.assertEqual(pending.status_code, 403)
        self.assertIn("pending admin activation", pending.data["message"])
        self.assertEqual(banned.status_code, 403)
        self.assertIn("suspended", banned.data["message"])

    def test_login_issues_bearer_token_usable_until_logout(self):
        make_user("author@example.com")
        response = self.client.post(reverse("auth-login"), {"email": "author@example.com", "password": PASSWORD}, format="json")
        self.assertEqual(response.status_code, 200)
        token = response.data["data"]["token"]

        self.client.credentials(HTTP_AUTHORIZATION=f"Bearer {token}")
        me = self.client.get(reverse("auth-user"))
        self.assertEqual(me.status_code, 200)
        self.assertEqual(me.data["data"]["user"]["email"], "author@example.com")

        self.assertEqual(self.client.post(reverse("auth-logout")).status_code, 200)
        self.assertEqual(self.client.get(reverse("auth-user")).status_code, 401)

    def test_anonymous_request_to_protected_endpoint_is_401(self):
        response = self.client.get(reverse("auth-user"))
        self.assertEqual(response.status_code, 401)
        self.assertFalse(response.data["success"])


@override_settings(SENDGRID_API_KEY="")
class PasswordTests(AuthenticatedTestCase):
    def setUp(self):
        self.user = make_user("author@example.com")

    def test_change_password_requires_current_password(self):
        self.authenticate(self.user)
        response = self.client.post(reverse("auth-change-password"), {
            "current_password": "not-my-password",
            "password": "brand-new-pass-1",
            "password_confirmation": "brand-new-pass-1",
        }, format="json")
        self.assertEqual(response.status_code, 422)

        response = self.client.post(reverse("auth-change-password"), {
            "current_password": PASSWORD,
            "password": "brand-new-pass-1",
            "password_confirmation": "brand-new-pass-1",
        }, format="json")
        self.assertEqual(response.status_code, 200)
        self.user.refresh_from_db()
        self.assertTrue(self.user.check_password("brand-new-pass-1"))

    def test_forgot_password_for_unknown_email_is_rejected(self):
        response = self.client.post(reverse("auth-forgot-password"), {"email": "ghost@example.com"}, format="json")
        self.assertEqual(response.status_code, 422)

    def test_reset_password_with_valid_token(self):
        self.assertEqual(
            self.client.post(reverse("auth-forgot-password"), {"email": self.user.email}, format="json").status_code,
            200,
        )
        Token.objects.create(user=self.user)
        token = default_token_generator.make_token(self.user)

        response = self.client.post(reverse("auth-reset-password"), {
            "email": self.user.email,
            "token": token,
            "password": "reset-pass-456",
            "password_confirmation": "reset-pass-456",
        }, format="json")

        self.assertEqual(response.status_code, 200)
        self.user.refresh_from_db()
        self.assertTrue(self.user.check_password("reset-pass-456"))
        self.assertFalse(Token.objects.filter(user=self.user).exists())

    def test_reset_password_with_bad_token(self):
        response = self.client.post(reverse("auth-reset-password"), {
            "email": self.user.email,
            "token": "bogus-token",
            "password": "reset-pass-456",
            "password_confirmation": "reset-pass-456",
        }, format="json")
        self.assertEqual(response.status_code, 422)
        self.assertEqual(response.data["message"], "Invalid or expired reset token.")


class UserManagementTests(AuthenticatedTestCase):
    def setUp(self):
        self.admin = make_user("admin@example.com", role=User.ROLE_ADMIN)
        self.author = make_user("author@example.com")

    def test_author_cannot_manage_users(self):
        self.authenticate(self.author)
        response = self.client.get(reverse("users"))
        self.assertEqual(response.status_code, 403)
        self.assertEqual(response.data["message"], "Access denied. Admin privileges required.")

    def test_user_list_filters_and_stats(self):
        make_user("pending@example.com", status=User.STATUS_INACTIVE)
        self.authenticate(self.admin)

        response = self.client.get(reverse("users"), {"status": User.STATUS_INACTIVE})

        self.assertEqual(response.status_code, 200)
        emails = [user["email"] for user in response.data["data"]["results"]]
        self.assertEqual(emails, ["pending@example.com"])
        self.assertEqual(response.data["stats"]["total_users"], 3)
        self.assertEqual(response.data["stats"]["pending_activation"], 1)

    def test_activate_and_suspend_author(self):
        pending = make_user("pending@example.com", status=User.STATUS_INACTIVE)
        Token.objects.create(user=pending)
        self.authenticate(self.admin)

        response = self.client.post(reverse("user-activate", args=[pending.pk]))
        self.assertEqual(response.status_code, 200)
        pending.refresh_from_db()
        self.assertEqual(pending.status, User.STATUS_ACTIVE)

        response = self.client.put(reverse("user-status", args=[pending.pk]), {"status": User.STATUS_SUSPENDED}, format="json")
        self.assertEqual(response.status_code, 200)
        pending.refresh_from_db()
        self.assertEqual(pending.status, User.STATUS_SUSPENDED)
        self.assertFalse(Token.objects.filter(user=pending).exists())

    def test_token_of_deactivated_user_stops_working(self):
        token = Token.objects.create(user=self.author)
        self.author.status = User.STATUS_INACTIVE
        self.author.save()

        self.client.credentials(HTTP_AUTHORIZATION=f"Bearer {token.key}")
        self.assertEqual(self.client.get(reverse("auth-user")).status_code, 401)

    def test_user_detail_includes_latest_posts(self):
        self.authenticate(self.admin)
        response = self.client.get(reverse("user-detail", args=[self.author.pk]))
        self.assertEqual(response.status_code, 200)
        self.assertEqual(response.data["data"]["posts_count"], 0)
        self.assertEqual(response.data["data"]["posts"], [])

    def test_missing_user_is_404(self):
        self.authenticate(self.admin)
        response = self.client.get(reverse("user-detail", args=[9999]))
        self.assertEqual(response.status_code, 404)
        self.assertEqual(response.data["message"], "User not found.")

    def test_update_rejects_email_taken_by_another_user(self):
        self.authenticate(self.admin)
        response = self.client.put(reverse("user-detail", args=[self.author.pk]), {"email": "admin@example.com"}, format="json")
        self.assertEqual(response.status_code, 422)


class LastActiveAdminTests(AuthenticatedTestCase):
    def setUp(self):
        self.admin = make_user("admin@example.com", role=User.ROLE_ADMIN)
        self.authenticate(self.admin)

    def test_sole_admin_cannot_deactivate_or_suspend_themselves(self):
        response = self.client.post(reverse("user-deactivate", args=[self.admin.pk]))
        self.assertEqual(response.status_code, 403)
        self.assertEqual(response.data["message"], "Cannot deactivate the last active admin account.")

        response = self.client.put(reverse("user-status", args=[self.admin.pk]), {"status": User.STATUS_SUSPENDED}, format="json")
        self.assertEqual(response.status_code, 403)

        self.admin.refresh_from_db()
        self.assertEqual(self.admin.status, User.STATUS_ACTIVE)

    def test_sole_admin_deleting_themselves_gets_last_admin_message(self):
        response = self.client.delete(reverse("user-detail", args=[self.admin.pk]))
        self.assertEqual(response.status_code, 403)
        self.assertEqual(response.data["message"], "Cannot delete the last administrator.")
        self.assertTrue(User.objects.filter(pk=self.admin.pk).exists())

    def test_sole_admin_cannot_be_demoted(self):
        response = self.client.put(reverse("user-detail", args=[self.admin.pk]), {"role": User.ROLE_AUTHOR}, format="json")
        self.assertEqual(response.status_code, 403)
        self.admin.refresh_from_db()
        self.assertEqual(self.admin.role, User.ROLE_ADMIN)

    def test_with_a_second_admin_self_deletion_is_still_refused(self):
        make_user("second@example.com", role=User.ROLE_ADMIN)
        response = self.client.delete(reverse("user-detail", args=[self.admin.pk]))
        self.assertEqual(response.status_code, 403)
        self.assertEqual(response.data["message"], "You cannot delete your own account.")

    def test_with_a_second_admin_the_other_can_be_deactivated(self):
        second = make_user("second@example.com", role=User.ROLE_ADMIN)
        response = self.client.post(reverse("user-deactivate", args=[second.pk]))
        self.assertEqual(response.status_code, 200)

        # second is inactive now, so self.admin is the last active admin again
        response = self.client.post(reverse("user-deactivate", args=[self.admin.pk]))
        self.assertEqual(response.status_code, 403)

    def test_with_a_second_admin_the_other_can_be_deleted(self):
        second = make_user("second@example.com", role=User.ROLE_ADMIN)
        response = self.client.delete(reverse("user-detail", args=[second.pk]))
        self.assertEqual(response.status_code, 200)
        self.assertFalse(User.objects.filter(pk=second.pk).exists())

    def test_inactive_admin_counts_as_last_admin_case(self):
        # the guard applies to any admin target while at most one admin is active
        dormant = make_user("dormant@example.com", role=User.ROLE_ADMIN, status=User.STATUS_INACTIVE)
        response = self.client.delete(reverse("user-detail", args=[dormant.pk]))
        self.assertEqual(response.status_code, 403)
