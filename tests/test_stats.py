import pytest
from datetime import date, datetime, timedelta
from models import db, PomodoroSession, Stats, User, Notification
from errors import DatabaseError, ValidationError
from services.stats_service import refresh_stats, reset_stale_streaks, upsert_stats
from services.streak_service import get_today

def add_session(user, completed_at, type='work', duration=1500, completed=True):
    s = PomodoroSession(user_id=user.id, type=type, duration=duration, completed=completed, completed_at=completed_at)
    db.session.add(s)
    db.session.commit()
    return s

def utc_days_ago(n):
    return datetime.utcnow().replace(hour=12, minute=0, second=0, microsecond=0) - timedelta(days=n)

def test_stats_endpoint_recomputes_streak(auth_client):
    client, user = auth_client
    for n in (0, 1, 2, 5, 6, 7, 8):
        add_session(user, utc_days_ago(n))

    response = client.get('/api/stats?tz=UTC')
    assert response.status_code == 200
    assert response.json['streak'] == 3
    assert response.json['longest_streak'] == 4
    assert response.json['total_sessions'] == 7
    assert response.json['total_focus_time'] == 7 * 25
    assert response.json['last_active_date'] == utc_days_ago(0).date().isoformat()

def test_stats_for_new_user(auth_client):
    client, _ = auth_client
    response = client.get('/api/stats')
    assert response.json['streak'] == 0
    assert response.json['longest_streak'] == 0
    assert response.json['last_active_date'] is None

def test_refresh_is_idempotent(auth_client):
    _, user = auth_client
    add_session(user, utc_days_ago(1))
    add_session(user, utc_days_ago(0))

    first = refresh_stats(user, 'UTC')
    snapshot = (first.streak, first.longest_streak, first.total_sessions, first.updated_at)
    second = refresh_stats(user, 'UTC')

    assert (second.streak, second.longest_streak, second.total_sessions, second.updated_at) == snapshot
    assert Stats.query.filter_by(user_id=user.id).count() == 1

def test_refresh_uses_user_timezone(auth_client):
    _, user = auth_client
    # 02:00 UTC today is still yesterday in New York
    today = datetime.utcnow().date()
    add_session(user, datetime(today.year, today.month, today.day, 2, 0))

    user.timezone = 'America/New_York'
    db.session.commit()
    stats = refresh_stats(user)
    assert stats.last_active_date == today - timedelta(days=1)

def test_explicit_timezone_overrides_user(auth_client):
    _, user = auth_client
    today = datetime.utcnow().date()
    add_session(user, datetime(today.year, today.month, today.day, 2, 0))
    user.timezone = 'America/New_York'
    db.session.commit()
    assert refresh_stats(user, 'UTC').last_active_date == today

def test_unknown_timezone_is_a_validation_error(auth_client):
    client, _ = auth_client
    response = client.get('/api/stats?tz=Nowhere/Special')
    assert response.status_code == 400
    assert response.json['error']['code'] == 'VALIDATION_ERROR'

def test_upsert_leaves_unrelated_fields(auth_client):
    _, user = auth_client
    upsert_stats(user.id, {'total_sessions': 4, 'total_focus_time': 100, 'streak': 0, 'longest_streak': 0})
    stats = upsert_stats(user.id, {'streak': 2, 'longest_streak': 5})
    assert (stats.total_sessions, stats.streak, stats.longest_streak) == (4, 2, 5)

def test_upsert_wraps_database_errors(auth_client, monkeypatch):
    _, user = auth_client
    from sqlalchemy.exc import OperationalError

    def broken_commit():
        raise OperationalError('UPDATE stats', {}, Exception('disk I/O error'))

    monkeypatch.setattr(db.session, 'commit', broken_commit)
    with pytest.raises(DatabaseError):
        upsert_stats(user.id, {'streak': 1})

def test_refresh_surfaces_bad_session_rows(auth_client, monkeypatch):
    _, user = auth_client
    from services import stats_service
    from services.streak_service import SessionRecord

    monkeypatch.setattr(stats_service, 'fetch_session_records',
                        lambda user_id: [SessionRecord(id=1, user_id=user_id, completed_at=None)])
    with pytest.raises(ValidationError):
        refresh_stats(user, 'UTC')
    assert Stats.query.filter_by(user_id=user.id).first() is None

def test_leaderboard(auth_client):
    client, user = auth_client
    other = User(username='partner', password_hash='hash')
    db.session.add(other)
    db.session.commit()

    add_session(user, utc_days_ago(0), duration=1800)
    add_session(other, utc_days_ago(0), duration=3600)
    refresh_stats(user, 'UTC')
    refresh_stats(other, 'UTC')

    response = client.get('/api/leaderboard')
    assert response.status_code == 200
    assert [row['username'] for row in response.json] == ['partner', 'testuser']
    assert response.json[1]['stats']['total_focus_time'] == 30

def test_reset_stale_streaks(auth_client):
    _, user = auth_client
    today = date(2026, 10, 19)
    db.session.add(Stats(user_id=user.id, streak=4, longest_streak=6, last_active_date=today - timedelta(days=2)))
    db.session.commit()

    summary = reset_stale_streaks(today=today)
    assert summary == {'users_checked': 1, 'streaks_reset': 1, 'notifications_sent': 1}

    stats = Stats.query.filter_by(user_id=user.id).first()
    assert stats.streak == 0
    assert stats.longest_streak == 6

    notif = Notification.query.filter_by(user_id=user.id, type='streak_lost').first()
    assert notif is not None
    assert '4-day streak' in notif.message

def test_reset_keeps_live_streaks(auth_client):
    _, user = auth_client
    today = date(2026, 10, 19)
    db.session.add(Stats(user_id=user.id, streak=2, longest_streak=2, last_active_date=today - timedelta(days=1)))
    db.session.commit()

    summary = reset_stale_streaks(today=today)
    assert summary['streaks_reset'] == 0
    assert Stats.query.filter_by(user_id=user.id).first().streak == 2

def test_reset_uses_each_users_local_today(auth_client):
    _, user = auth_client
    behind = User(username='honolulu', password_hash='hash', timezone='Pacific/Honolulu')
    db.session.add(behind)
    user.timezone = 'Pacific/Kiritimati'
    db.session.commit()

    db.session.add(Stats(user_id=behind.id, streak=3, longest_streak=3,
                         last_active_date=get_today('Pacific/Honolulu') - timedelta(days=1)))
    db.session.add(Stats(user_id=user.id, streak=3, longest_streak=3,
                         last_active_date=get_today('Pacific/Kiritimati') - timedelta(days=2)))
    db.session.commit()

    assert reset_stale_streaks()['streaks_reset'] == 1
    assert db.session.get(User, behind.id).stats.streak == 3
    assert Stats.query.filter_by(user_id=user.id).first().streak == 0

def test_check_streaks_command(auth_client, runner):
    _, user = auth_client
    db.session.add(Stats(user_id=user.id, streak=5, longest_streak=5, last_active_date=date(2026, 10, 1)))
    db.session.commit()

    result = runner.invoke(args=['check-streaks', '--today', '2026-10-19'])
    assert result.exit_code == 0
    assert 'streaks reset: 1' in result.output
