from datetime import datetime, timedelta, timezone

import pytest

from db.admin_operations import AdminOperations
from db.session_store import SupabaseSessionStore
from db.user_operations import UserOperations
from exceptions import AuthError, ConflictError, NotFoundError, ValidationError

ADMIN = {'employee_id': 'A1', 'fullname': 'Grace Hopper', 'email': 'grace@univ.edu', 'password': 'cobol60'}


@pytest.fixture
def admins(supabase):
    return AdminOperations(supabase)


class TestAdmins:

    def test_bootstrap_admin_is_super_admin(self, admins, supabase):
        admin = admins.register_admin(dict(ADMIN, role='moderator'), bootstrap=True)
        assert admin['role'] == 'super-admin'
        assert 'password' not in admin
        assert supabase.rows('admins')[0]['password'] != ADMIN['password']

    def test_racing_bootstrap_caught_by_unique_index(self, admins, supabase):
        def concurrent_bootstrap(record):
            # another first registration passed the empty-table check and wrote first
            supabase.insert_row('admins', dict(record, employee_id='A0', email='other@univ.edu'))

        supabase.before_insert['admins'] = concurrent_bootstrap
        with pytest.raises(ConflictError, match='first admin') as info:
            admins.register_admin(ADMIN, bootstrap=True)
        assert info.value.status_code == 409
        assert [a['employee_id'] for a in supabase.rows('admins')] == ['A0']

    def test_only_bootstrap_rows_are_unique(self, admins):
        admins.register_admin(ADMIN, bootstrap=True)
        second = admins.register_admin(dict(ADMIN, employee_id='A2', email='ada@univ.edu', role='super-admin'))
        assert second['role'] == 'super-admin'

    def test_duplicate_email_conflicts_with_409(self, admins):
        admins.register_admin(ADMIN)
        with pytest.raises(ConflictError) as info:
            admins.register_admin(dict(ADMIN, employee_id='A2', email='GRACE@univ.edu'))
        assert info.value.status_code == 409

    def test_unknown_role_rejected(self, admins):
        with pytest.raises(ValidationError, match='role'):
            admins.register_admin(dict(ADMIN, role='owner'))

    def test_authenticate(self, admins):
        admins.register_admin(ADMIN)
        assert admins.authenticate('Grace@Univ.edu', 'cobol60')['email'] == 'grace@univ.edu'
        with pytest.raises(AuthError) as info:
            admins.authenticate('grace@univ.edu', 'wrong')
        assert info.value.status_code == 401
        with pytest.raises(AuthError):
            admins.authenticate('nobody@univ.edu', 'cobol60')

    def test_deactivated_admin_cannot_log_in(self, admins):
        admin = admins.register_admin(ADMIN)
        admins.deactivate_admin(admin['id'])
        with pytest.raises(AuthError) as info:
            admins.authenticate(ADMIN['email'], ADMIN['password'])
        assert info.value.status_code == 403

    def test_super_admin_is_protected(self, admins):
        root = admins.register_admin(ADMIN, bootstrap=True)
        for action in (admins.delete_admin, admins.deactivate_admin):
            with pytest.raises(AuthError) as info:
                action(root['id'])
            assert info.value.status_code == 403

    def test_delete_admin(self, admins, supabase):
        admin = admins.register_admin(ADMIN)
        admins.delete_admin(admin['id'])
        assert supabase.rows('admins') == []
        with pytest.raises(NotFoundError):
            admins.delete_admin(admin['id'])


class TestUsers:

    def test_register_user(self, supabase):
        user = UserOperations(supabase).register_user(
            {'employee_id': 'U1', 'password': 'pw', 'email': 'u1@univ.edu', 'role': 'HOD'})
        assert user['role'] == 'HOD'
        assert 'password' not in user

    def test_duplicate_user_is_400(self, supabase):
        users = UserOperations(supabase)
        users.register_user({'employee_id': 'U1', 'password': 'pw', 'email': 'u1@univ.edu'})
        with pytest.raises(ConflictError, match='User already exists') as info:
            users.register_user({'employee_id': 'U1', 'password': 'pw', 'email': 'other@univ.edu'})
        assert info.value.status_code == 400


class TestSessions:

    @pytest.fixture
    def clock(self):
        now = {'value': datetime(2024, 6, 1, tzinfo=timezone.utc)}

        def tick():
            return now['value']
        tick.advance = lambda **kw: now.update(value=now['value'] + timedelta(**kw))
        return tick

    @pytest.fixture
    def admin(self, admins):
        return admins.register_admin(ADMIN, bootstrap=True)

    def test_session_round_trip(self, supabase, admin, clock):
        store = SupabaseSessionStore(supabase, clock=clock)
        sid = store.set(admin)
        assert store.get(sid)['admin_id'] == admin['id']
        store.destroy(sid)
        assert store.get(sid) is None

    def test_sliding_expiry(self, supabase, admin, clock):
        store = SupabaseSessionStore(supabase, ttl_seconds=3600, clock=clock)
        sid = store.set(admin)

        clock.advance(minutes=50)
        store.touch(sid)
        clock.advance(minutes=50)
        assert store.get(sid) is not None

        clock.advance(minutes=61)
        assert store.get(sid) is None
        assert supabase.rows('admin_sessions') == []

    def test_unknown_session(self, supabase, clock):
        assert SupabaseSessionStore(supabase, clock=clock).get('no-such-session') is None
