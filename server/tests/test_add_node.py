from __future__ import annotations

import asyncio

import pytest
from pydantic import ValidationError

from pagewright.models.events import DocumentNodeAdded, ToolCallEvent, ToolEventType
from pagewright.services.event_bus import EventBus, TopicKey
from pagewright.services.session_store import SessionStore
from pagewright.tools.add_node import AddNodeArgs, AddNodeTool, render_node

from support import drain


def _run(coro):  # noqa: ANN001
    return asyncio.run(coro)


def test_render_escapes_only_quotes_in_attribute_values() -> None:
    args = AddNodeArgs(tag="div", text="hi", attributes={"class": 'x"y'})

    assert render_node(args) == '<div class="x&quot;y">hi</div>'


def test_render_without_attributes_or_text() -> None:
    assert render_node(AddNodeArgs(tag="hr")) == "<hr></hr>"
    assert render_node(AddNodeArgs(tag="p", attributes={})) == "<p></p>"


def test_render_keeps_text_verbatim() -> None:
    args = AddNodeArgs(tag="p", text="<b>bold</b> & more")

    assert render_node(args) == "<p><b>bold</b> & more</p>"


def test_render_keeps_attribute_order() -> None:
    args = AddNodeArgs(tag="a", text="docs", attributes={"href": "/docs", "id": "link"})

    assert render_node(args) == '<a href="/docs" id="link">docs</a>'


@pytest.mark.parametrize("tag", ["", "1div", "div class", "p>"])
def test_invalid_tags_are_rejected(tag: str) -> None:
    with pytest.raises(ValidationError):
        AddNodeArgs(tag=tag)


def test_invalid_attribute_names_are_rejected() -> None:
    with pytest.raises(ValidationError):
        AddNodeArgs(tag="div", attributes={"on click": "x"})


def test_tool_emits_lifecycle_in_order_with_shared_id() -> None:
    async def scenario():
        store = SessionStore()
        bus = EventBus()
        sub = bus.subscribe(TopicKey.tool_event("s1"), TopicKey.document_updated("s1"))
        tool = AddNodeTool("s1", store, bus)
        result = await tool(AddNodeArgs(tag="div", text="hi", attributes={"class": 'x"y'}))
        return result, await drain(sub), store.get_document("s1")

    result, events, document = _run(scenario())

    assert result.html == '<div class="x&quot;y">hi</div>'
    assert result.index == 0
    assert document.body_html == result.html

    started, progress, delta, completed = events
    assert isinstance(started, ToolCallEvent) and started.type is ToolEventType.STARTED
    assert started.args == {"tag": "div", "text": "hi", "attributes": {"class": 'x"y'}}
    assert progress.type is ToolEventType.PROGRESS
    assert progress.args == {"html_preview": result.html}
    assert isinstance(delta, DocumentNodeAdded)
    assert (delta.html, delta.index) == (result.html, 0)
    assert completed.type is ToolEventType.COMPLETED
    assert completed.args == {"index": 0}
    assert {started.id, progress.id, delta.id, completed.id} == {result.id}
    assert all(event.session_id == "s1" for event in events)


def test_progress_preview_is_truncated() -> None:
    async def scenario():
        bus = EventBus()
        sub = bus.subscribe(TopicKey.tool_event("s1"))
        await AddNodeTool("s1", SessionStore(), bus)(AddNodeArgs(tag="p", text="x" * 200))
        return await drain(sub)

    events = _run(scenario())
    preview = events[1].args["html_preview"]
    assert len(preview) == 80
    assert preview.startswith("<p>xxx")


def test_document_is_updated_before_delta_is_observed() -> None:
    async def scenario():
        store = SessionStore()
        bus = EventBus()
        sub = bus.subscribe(TopicKey.document_updated("s1"))
        tool = AddNodeTool("s1", store, bus)
        task = asyncio.create_task(tool(AddNodeArgs(tag="h1", text="Title")))
        delta = await sub.__anext__()
        seen = store.get_document("s1").body_html
        await task
        return delta, seen

    delta, seen = _run(scenario())
    assert seen.endswith(delta.html)


def test_failure_after_start_publishes_error(monkeypatch: pytest.MonkeyPatch) -> None:
    async def scenario():
        store = SessionStore()
        bus = EventBus()
        sub = bus.subscribe(TopicKey.tool_event("s1"), TopicKey.document_updated("s1"))

        def broken_append(session_id: str, html: str):  # noqa: ANN202
            raise RuntimeError("disk full")

        monkeypatch.setattr(store, "append_to_body", broken_append)
        with pytest.raises(RuntimeError, match="disk full"):
            await AddNodeTool("s1", store, bus)(AddNodeArgs(tag="p", text="x"))
        return await drain(sub)

    events = _run(scenario())
    assert [event.type for event in events] == [ToolEventType.STARTED, ToolEventType.PROGRESS, ToolEventType.ERROR]
    assert events[-1].args == {"error": "disk full"}
    assert len({event.id for event in events}) == 1


def test_concurrent_invocations_for_a_session_do_not_interleave() -> None:
    async def scenario():
        store = SessionStore()
        bus = EventBus()
        sub = bus.subscribe(TopicKey.tool_event("s1"), TopicKey.document_updated("s1"))
        lock = asyncio.Lock()
        tool_a = AddNodeTool("s1", store, bus, lock=lock)
        tool_b = AddNodeTool("s1", store, bus, lock=lock)
        results = await asyncio.gather(
            tool_a(AddNodeArgs(tag="p", text="a")),
            tool_b(AddNodeArgs(tag="p", text="b")),
        )
        return results, await drain(sub)

    results, events = _run(scenario())
    assert sorted(result.index for result in results) == [0, 1]
    ids = [event.id for event in events]
    assert ids[:4] == [ids[0]] * 4
    assert ids[4:] == [ids[4]] * 4
