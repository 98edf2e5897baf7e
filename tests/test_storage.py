from lex_tutor.db import get_connection
from lex_tutor.storage import ABSENT, KeyValueStore, make_key


def test_set_then_get_round_trips_json(store):
    store.set("alice", "progress", {"completedTopics": ["Sandhi"]})
    assert store.get("alice", "progress") == {"completedTopics": ["Sandhi"]}


def test_missing_key_is_absent(store):
    assert store.get("alice", "nothing") is ABSENT
    assert not ABSENT
    assert repr(ABSENT) == "ABSENT"


def test_get_returns_given_default(store):
    assert store.get("alice", "nothing", default=None) is None


def test_keys_are_namespaced_per_user(store):
    store.set("alice", "stats", 1)
    store.set("bob", "stats", 2)
    assert store.get("alice", "stats") == 1
    assert store.get("bob", "stats") == 2
    assert make_key("alice", "stats") == "alice:stats"


def test_set_overwrites(store):
    store.set("alice", "flag", False)
    store.set("alice", "flag", True)
    assert store.get("alice", "flag") is True


def test_corrupt_json_degrades_to_absent(store, tmp_db):
    conn = get_connection(tmp_db)
    conn.execute("INSERT INTO kv_store (key, value) VALUES (?, ?)", ("alice:stats", "{not json"))
    conn.commit()
    conn.close()
    assert store.get("alice", "stats") is ABSENT


def test_unserializable_value_is_not_stored(store):
    store.set("alice", "bad", {1, 2, 3})
    assert store.get("alice", "bad") is ABSENT


def test_remove_is_silent_when_absent(store):
    store.remove("alice", "never-set")
    store.set("alice", "sections", [])
    store.remove("alice", "sections")
    assert store.get("alice", "sections") is ABSENT


def test_remove_many(store):
    store.set("alice", "sections", [1])
    store.set("alice", "isSyllabusCustom", True)
    store.set("alice", "stats", {})
    store.remove_many("alice", ["sections", "isSyllabusCustom"])
    assert store.get("alice", "sections") is ABSENT
    assert store.get("alice", "isSyllabusCustom") is ABSENT
    assert store.get("alice", "stats") == {}


def test_unavailable_storage_never_raises(tmp_path):
    blocker = tmp_path / "blocker"
    blocker.write_text("a file, not a directory")
    store = KeyValueStore(str(blocker / "tutor.db"))
    store.set("alice", "stats", {"streak": 1})
    assert store.get("alice", "stats") is ABSENT
    store.remove("alice", "stats")
