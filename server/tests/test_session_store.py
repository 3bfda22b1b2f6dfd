from __future__ import annotations

from pagewright.models.domain import Role, count_opening_tags
from pagewright.services.session_store import SessionStore


def test_ensure_generates_id_and_is_idempotent() -> None:
    store = SessionStore()

    generated = store.ensure()
    assert generated in store

    store.append_message(generated, Role.USER, "hello")
    store.append_to_body(generated, "<p>x</p>")

    assert store.ensure(generated) == generated
    assert store.ensure(generated) == generated
    assert len(store.list_messages(generated)) == 1
    assert store.get_document(generated).body_html == "<p>x</p>"


def test_messages_keep_call_order_with_unique_ids() -> None:
    store = SessionStore()

    appended = [store.append_message("s1", Role.USER if i % 2 == 0 else Role.MODEL, f"m{i}") for i in range(6)]
    listed = store.list_messages("s1")

    assert [m.content for m in listed] == [f"m{i}" for i in range(6)]
    assert [m.id for m in listed] == [m.id for m in appended]
    assert len({m.id for m in listed}) == 6
    assert all(m.session_id == "s1" for m in listed)


def test_append_message_keeps_supplied_id() -> None:
    store = SessionStore()

    message = store.append_message("s1", Role.USER, "hi", message_id="fixed")

    assert message.id == "fixed"
    assert message.role is Role.USER
    assert message.created_at.tzinfo is not None


def test_unknown_session_is_created_on_read() -> None:
    store = SessionStore()

    assert store.list_messages("fresh") == []
    assert "fresh" in store
    assert store.get_document("fresh").body_html == ""


def test_list_messages_returns_a_copy() -> None:
    store = SessionStore()
    store.append_message("s1", Role.USER, "hi")

    store.list_messages("s1").clear()

    assert len(store.list_messages("s1")) == 1


def test_append_to_body_index_counts_existing_opening_tags() -> None:
    store = SessionStore()

    assert store.append_to_body("s1", "<a>x</a>").index == 0
    assert store.append_to_body("s1", "<b>y</b>").index == 1
    assert store.append_to_body("s1", '<div class="c"><span>z</span><br/></div>').index == 2
    assert store.append_to_body("s1", "<p>w</p>").index == 5
    assert store.get_document("s1").body_html == '<a>x</a><b>y</b><div class="c"><span>z</span><br/></div><p>w</p>'


def test_maintained_index_matches_rescanning_the_markup() -> None:
    store = SessionStore()
    fragments = ["<h1>Title</h1>", "<p>plain</p>", "<ul><li>1</li><li>2</li></ul>", "<p>a <b>bold</b> word</p>"]

    for fragment in fragments:
        before = store.get_document("s1").body_html
        assert store.append_to_body("s1", fragment).index == count_opening_tags(before)


def test_document_snapshot_is_detached() -> None:
    store = SessionStore()
    snapshot = store.get_document("s1")

    snapshot.body_html = "<tampered></tampered>"

    assert store.get_document("s1").body_html == ""


def test_sessions_are_isolated() -> None:
    store = SessionStore()
    store.append_message("a", Role.USER, "for a")
    store.append_to_body("a", "<p>a</p>")

    assert store.list_messages("b") == []
    assert store.get_document("b").body_html == ""
    assert store.append_to_body("b", "<p>b</p>").index == 0


def test_empty_session_id_is_kept_as_given() -> None:
    store = SessionStore()

    assert store.ensure("") == ""
    assert "" in store
    assert len(store) == 1
