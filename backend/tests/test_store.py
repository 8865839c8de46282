from quiz_engine import db
from quiz_engine.models import SessionSnapshot
from quiz_engine.services.quiz.store import MemorySessionStore, SqlSessionStore


def _snapshot(session_id, user_id=None, status='active'):
    return {'session_id': session_id, 'user_id': user_id, 'status': status, 'created_at': 1.0}


def test_memory_store_roundtrip_and_ttl(clock):
    store = MemorySessionStore(clock=clock)
    store.put('s1', _snapshot('s1', 'u1'), ttl_sec=60)
    assert store.get('s1')['user_id'] == 'u1'

    # writes replace the whole snapshot and refresh the ttl
    clock.advance(50)
    store.put('s1', _snapshot('s1', 'u1', status='paused'), ttl_sec=60)
    clock.advance(50)
    assert store.get('s1')['status'] == 'paused'

    clock.advance(11)
    assert store.get('s1') is None
    assert store.get('missing') is None


def test_memory_store_returns_copies(clock):
    store = MemorySessionStore(clock=clock)
    store.put('s1', _snapshot('s1'), ttl_sec=60)
    first = store.get('s1')
    first['status'] = 'mutated'
    assert store.get('s1')['status'] == 'active'


def test_memory_store_scan_and_sweep(clock):
    store = MemorySessionStore(clock=clock)
    store.put('a', _snapshot('a', 'u1'), ttl_sec=10)
    store.put('b', _snapshot('b', 'u2'), ttl_sec=100)
    store.put('c', _snapshot('c', 'u1'), ttl_sec=100)

    assert {s['session_id'] for s in store.scan()} == {'a', 'b', 'c'}
    assert {s['session_id'] for s in store.scan(user_id='u1')} == {'a', 'c'}

    clock.advance(20)
    assert {s['session_id'] for s in store.scan(user_id='u1')} == {'c'}
    assert len(store) == 3
    assert store.sweep() == 1
    assert len(store) == 2

    store.delete('b')
    assert store.get('b') is None


def test_sql_store_roundtrip(flask_app, clock):
    store = SqlSessionStore(clock=clock)
    store.put('s1', _snapshot('s1', 'u1'), ttl_sec=60)
    row = db.session.get(SessionSnapshot, 's1')
    assert row.user_id == 'u1'
    assert row.status == 'active'
    assert row.expires_at == clock() + 60

    store.put('s1', _snapshot('s1', 'u1', status='completed'), ttl_sec=60)
    assert store.get('s1')['status'] == 'completed'
    assert SessionSnapshot.query.count() == 1

    clock.advance(61)
    assert store.get('s1') is None


def test_sql_store_scan_sweep_delete(flask_app, clock):
    store = SqlSessionStore(clock=clock)
    store.put('a', _snapshot('a', 'u1'), ttl_sec=10)
    store.put('b', _snapshot('b', 'u2'), ttl_sec=100)
    store.put('c', _snapshot('c', 'u1'), ttl_sec=100)

    assert {s['session_id'] for s in store.scan(user_id='u1')} == {'a', 'c'}

    clock.advance(20)
    assert {s['session_id'] for s in store.scan()} == {'b', 'c'}
    assert store.sweep() == 1
    assert SessionSnapshot.query.count() == 2

    store.delete('c')
    assert store.get('c') is None
    assert [s['session_id'] for s in store.scan()] == ['b']
