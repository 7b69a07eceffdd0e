from console_auth.utils.db import TokenStore


def test_empty_store_loads_nothing(store):
    assert store.load() is None


def test_save_overwrites_single_key(store):
    store.save("first")
    store.save("second")
    assert store.load() == "second"


def test_token_survives_a_new_store_instance(tmp_path):
    url = f"sqlite:///{tmp_path / 'nested' / 'client.db'}"
    TokenStore(url).save("persisted")
    assert TokenStore(url).load() == "persisted"


def test_clear_is_idempotent(store):
    store.save("abc")
    store.clear()
    store.clear()
    assert store.load() is None


def test_keys_are_independent(tmp_path):
    url = f"sqlite:///{tmp_path / 'client.db'}"
    a = TokenStore(url, key="token")
    b = TokenStore(url, key="other")
    a.save("a")
    b.save("b")
    a.clear()
    assert a.load() is None
    assert b.load() == "b"
