import io
import os
from unittest import mock

from django.core.management import call_command
from django.test import TestCase, override_settings
from django.urls import reverse
from rest_framework.test import APIClient
from rest_framework import status

from apps.accounts.models import User, Role


class UserManagerTests(TestCase):

    def test_email_is_normalized_to_lowercase(self):
        user = User.objects.create_user(email="  Buyer@Example.COM ", password="pass12345")
        self.assertEqual(user.email, "buyer@example.com")
        self.assertEqual(user.role, Role.CUSTOMER)
        self.assertFalse(user.is_admin)

    def test_superuser_is_admin(self):
        admin = User.objects.create_superuser(email="root@example.com", password="pass12345")
        self.assertTrue(admin.is_staff)
        self.assertEqual(admin.role, Role.ADMIN)
        self.assertTrue(admin.is_admin)

    def test_email_required(self):
        with self.assertRaises(ValueError):
            User.objects.create_user(email="")


class AuthFlowTests(TestCase):

    def setUp(self):
        self.client = APIClient()
        self.user = User.objects.create_user(email="buyer@example.com", password="pass12345")

    def test_token_login_is_case_insensitive_and_me_returns_identity(self):
        resp = self.client.post(
            reverse("token-obtain"),
            {"email": "BUYER@example.com", "password": "pass12345"},
            format="json",
        )
        self.assertEqual(resp.status_code, status.HTTP_200_OK)

        self.client.credentials(HTTP_AUTHORIZATION=f"Bearer {resp.data['access']}")
        me = self.client.get(reverse("accounts-me"))
        self.assertEqual(me.status_code, status.HTTP_200_OK)
        self.assertEqual(me.data["email"], "buyer@example.com")
        self.assertEqual(me.data["id"], str(self.user.id))

    def test_me_requires_auth(self):
        resp = self.client.get(reverse("accounts-me"))
        self.assertEqual(resp.status_code, status.HTTP_401_UNAUTHORIZED)

    def test_role_cannot_be_self_assigned(self):
        self.client.force_authenticate(self.user)
        resp = self.client.patch(reverse("accounts-me"), {"role": "ADMIN", "name": "Ali"}, format="json")
        self.assertEqual(resp.status_code, status.HTTP_200_OK)
        self.user.refresh_from_db()
        self.assertEqual(self.user.role, Role.CUSTOMER)
        self.assertEqual(self.user.name, "Ali")


class CreateAdminCommandTests(TestCase):

    @override_settings(DEBUG=True)
    def test_creates_then_updates_admin_from_env(self):
        env = {"ADMIN_EMAIL": "Ops@Example.com", "ADMIN_PASSWORD": "pass12345"}
        with mock.patch.dict(os.environ, env):
            call_command("create_admin", stdout=io.StringIO())
            call_command("create_admin", stdout=io.StringIO())

        admin = User.objects.get(email="ops@example.com")
        self.assertTrue(admin.is_superuser)
        self.assertEqual(admin.role, Role.ADMIN)
        self.assertTrue(admin.check_password("pass12345"))

    @override_settings(DEBUG=False)
    def test_refuses_in_production_without_opt_in(self):
        err = io.StringIO()
        with mock.patch.dict(os.environ, {"ADMIN_EMAIL": "ops@example.com", "ADMIN_PASSWORD": "x"}):
            os.environ.pop("ALLOW_CREATE_ADMIN_IN_PROD", None)
            call_command("create_admin", stdout=io.StringIO(), stderr=err)
        self.assertIn("Production Lock", err.getvalue())
        self.assertFalse(User.objects.exists())
