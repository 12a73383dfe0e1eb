from django.test import TestCase

from .models import CustomUser


class CustomUserTests(TestCase):

    def test_email_is_the_login(self):
        user = CustomUser.objects.create_user(email='Bendahara@Sekolah.ID', password='secret123', full_name='Ibu Sari')
        self.assertEqual(user.email, 'Bendahara@sekolah.id')
        self.assertTrue(user.check_password('secret123'))
        self.assertEqual(user.user_type, 'accountant')

    def test_email_required(self):
        with self.assertRaises(ValueError):
            CustomUser.objects.create_user(email='', password='secret123')

    def test_finance_roles(self):
        for user_type in ('principal', 'manager', 'accountant'):
            self.assertTrue(CustomUser(email=f'{user_type}@test.com', user_type=user_type).can_manage_finance)
        for user_type in ('teacher', 'parent'):
            self.assertFalse(CustomUser(email=f'{user_type}@test.com', user_type=user_type).can_manage_finance)

    def test_superuser_manages_finance(self):
        admin = CustomUser.objects.create_superuser(email='admin@test.com', password='secret123')
        self.assertEqual(admin.user_type, 'principal')
        admin.user_type = 'teacher'
        self.assertTrue(admin.can_manage_finance)
