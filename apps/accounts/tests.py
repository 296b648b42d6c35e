from django.contrib.auth import get_user_model
from django.test import TestCase

from .identity import Identity, Role

User = get_user_model()


class IdentityTests(TestCase):

    def test_regular_user_maps_to_user_role(self):
        user = User.objects.create_user(username="alice", password="testpass")
        identity = Identity.from_user(user)

        self.assertEqual(identity.user_id, user.pk)
        self.assertEqual(identity.role, Role.USER)
        self.assertFalse(identity.is_admin)

    def test_staff_and_superusers_are_admins(self):
        staff = User.objects.create_user(username="staff", password="testpass", is_staff=True)
        root = User.objects.create_superuser(username="root", password="testpass", email="root@example.com")

        self.assertTrue(Identity.from_user(staff).is_admin)
        self.assertTrue(Identity.from_user(root).is_admin)

    def test_identity_is_immutable(self):
        identity = Identity(user_id=1)
        with self.assertRaises(Exception):
            identity.role = Role.ADMIN
