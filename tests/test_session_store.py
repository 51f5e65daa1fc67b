from product_assistant.catalog.models import Product
from product_assistant.session_store import FLOW_IDLE, SessionStore


def test_get_creates_once():
    store = SessionStore()
    context = store.get("s1")
    assert store.get("s1") is context
    assert context.flow_state == FLOW_IDLE
    assert store.list_sessions()[0].title == "New Chat"


def test_append_sets_title_and_history():
    store = SessionStore()
    store.append("s1", "user", "Do you sell hedge trimmers?\nthanks")
    store.append("s1", "assistant", "Yes we do.")
    assert store.list_sessions()[0].title == "Do you sell hedge trimmers?"
    assert [message.role for message in store.get_messages("s1")] == ["user", "assistant"]
    assert store.get_messages("unknown") == []


def test_recent_history_window():
    store = SessionStore()
    for index in range(5):
        store.append("s1", "user", f"message {index}")
    history = store.recent_history("s1", 2)
    assert history == [
        {"role": "user", "content": "message 3"},
        {"role": "user", "content": "message 4"},
    ]
    assert store.recent_history("s1", 0) == []


def test_set_focus_single_and_multiple():
    store = SessionStore()
    first = Product(name="Orca")
    second = Product(name="Koala")
    store.set_focus("s1", first)
    assert store.get("s1").last_product is first

    store.set_focus("s1", [first, second])
    context = store.get("s1")
    assert context.last_products == [first, second]
    assert context.last_product is first

    store.set_focus("s1", [second])
    assert store.get("s1").last_product is second

    store.set_focus("s1", None)
    assert store.get("s1").last_product is None
    assert store.get("s1").last_products == []


def test_max_sessions_prunes_least_recent():
    store = SessionStore(max_sessions=2)
    store.append("old", "user", "a")
    store.append("middle", "user", "b")
    store.get("old").updated_at = 0
    store.append("new", "user", "c")
    ids = {summary.session_id for summary in store.list_sessions()}
    assert ids == {"middle", "new"}
