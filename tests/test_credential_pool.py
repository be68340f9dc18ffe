from core.credential_pool import CredentialPool, load_credentials


def test_round_robin_visits_each_key_once_then_repeats():
    keys = ["keyA", "keyB", "keyC"]
    pool = CredentialPool(keys)

    handed_out = [pool.next() for _ in range(len(keys))]

    assert handed_out == keys
    assert pool.next() == "keyA"


def test_single_key_always_returned_and_cursor_wraps():
    pool = CredentialPool(["only"])

    assert [pool.next() for _ in range(3)] == ["only", "only", "only"]
    assert pool.cursor == 0


def test_empty_pool_is_not_an_error():
    pool = CredentialPool([])

    assert pool.next() is None
    assert pool.all() == []
    assert pool.count == 0
    assert len(pool) == 0


def test_blank_credentials_never_enter_pool():
    pool = CredentialPool(["  ", "", " k1 ", "\t"])

    assert pool.all() == ["k1"]
    assert [pool.next() for _ in range(2)] == ["k1", "k1"]
    assert pool.count == 1


def test_reset_rewinds_cursor():
    pool = CredentialPool(["a", "b", "c"])
    pool.next()
    pool.next()

    pool.reset()

    assert pool.next() == "a"


def test_all_returns_copy_in_configuration_order():
    pool = CredentialPool(["a", "b"])

    keys = pool.all()
    keys.append("mutated")

    assert pool.all() == ["a", "b"]


def test_all_is_independent_of_rotation():
    pool = CredentialPool(["a", "b", "c"])
    pool.next()

    assert pool.all() == ["a", "b", "c"]


def test_load_skips_blank_and_unset_slots_and_keeps_order():
    env = {
        "GEMINI_API_KEY1": "first",
        "GEMINI_API_KEY2": "   ",
        "GEMINI_API_KEY4": "fourth",
        "GEMINI_API_KEYS": "listed-1, ,listed-2",
    }

    assert load_credentials(env) == ["first", "fourth", "listed-1", "listed-2"]


def test_load_is_fresh_and_does_not_touch_environment():
    env = {"GEMINI_API_KEY1": "k1"}

    first = CredentialPool.load(env)
    first.append("extra")

    assert CredentialPool.load(env) == ["k1"]
    assert env == {"GEMINI_API_KEY1": "k1"}


def test_from_env_with_nothing_configured():
    pool = CredentialPool.from_env({})

    assert pool.count == 0
    assert pool.next() is None


def test_repr_hides_key_material():
    pool = CredentialPool(["super-secret-key"])

    assert "super-secret-key" not in repr(pool)
