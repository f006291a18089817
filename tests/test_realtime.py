import asyncio
import json

from conftest import create_wish, sign_up
from wishwall.main import app
from wishwall.realtime import ChangeEvent, ChangeFeed, ChangeType, format_sse
from wishwall.routers.realtime import public_wish_events


def test_filter_matches_new_or_old_row():
    public = {"is_public": True}
    assert ChangeEvent("wishes", ChangeType.INSERT, record={"is_public": True}).matches(public)
    assert not ChangeEvent("wishes", ChangeType.INSERT, record={"is_public": False}).matches(public)
    # public → private still concerns the public feed
    flipped = ChangeEvent(
        "wishes", ChangeType.UPDATE, record={"is_public": False}, old_record={"is_public": True}
    )
    assert flipped.matches(public)
    assert ChangeEvent("wishes", ChangeType.DELETE, old_record={"is_public": True}).matches(public)
    assert ChangeEvent("wishes", ChangeType.DELETE).matches(None)


def test_event_dict_round_trip_and_sse_frame():
    event = ChangeEvent("wishes", ChangeType.UPDATE, record={"id": "w1", "is_public": True})
    assert ChangeEvent.from_dict(event.to_dict()) == event

    frame = format_sse(event)
    assert frame.startswith("event: UPDATE\n")
    assert frame.endswith("\n\n")
    data_line = frame.splitlines()[1]
    assert json.loads(data_line[len("data: "):])["record"]["id"] == "w1"


async def test_subscribe_publish_unsubscribe():
    feed = ChangeFeed()
    received: list[ChangeEvent] = []
    got = asyncio.Event()

    async def handler(event):
        received.append(event)
        got.set()

    sub = feed.subscribe("wishes", handler, filter={"is_public": True})
    assert feed.subscriber_count == 1

    await feed.publish(ChangeEvent("likes", ChangeType.INSERT, record={"wish_id": "w1"}))
    await feed.publish(ChangeEvent("wishes", ChangeType.INSERT, record={"is_public": False}))
    await feed.publish(ChangeEvent("wishes", ChangeType.INSERT, record={"is_public": True}))
    await asyncio.wait_for(got.wait(), timeout=1)

    assert len(received) == 1
    assert received[0].record == {"is_public": True}

    sub.unsubscribe()
    assert feed.subscriber_count == 0
    await asyncio.sleep(0.01)
    assert not sub.active


async def test_failing_handler_keeps_subscription_alive():
    feed = ChangeFeed()
    calls = []
    second = asyncio.Event()

    async def handler(event):
        calls.append(event)
        if len(calls) == 1:
            raise RuntimeError("boom")
        second.set()

    feed.subscribe("wishes", handler)
    await feed.publish(ChangeEvent("wishes", ChangeType.INSERT, record={}))
    await feed.publish(ChangeEvent("wishes", ChangeType.DELETE, old_record={}))
    await asyncio.wait_for(second.wait(), timeout=1)
    assert len(calls) == 2
    feed.close()


async def test_mirror_failure_does_not_propagate():
    async def broken_mirror(event):
        raise ConnectionError("kafka down")

    feed = ChangeFeed(mirror=broken_mirror)
    await feed.publish(ChangeEvent("wishes", ChangeType.INSERT, record={}))


async def test_sse_stream_yields_events_and_cleans_up():
    feed = ChangeFeed()
    stream = public_wish_events(feed)

    assert await stream.__anext__() == ": connected\n\n"
    assert feed.subscriber_count == 1

    await feed.publish(ChangeEvent("wishes", ChangeType.INSERT, record={"id": "w1", "is_public": True}))
    frame = await asyncio.wait_for(stream.__anext__(), timeout=1)
    assert frame.startswith("event: INSERT")

    await stream.aclose()
    assert feed.subscriber_count == 0


async def test_wish_writes_publish_after_commit(api, change_feed):
    events: list[ChangeEvent] = []
    seen = asyncio.Event()

    async def handler(event):
        events.append(event)
        if len(events) == 3:
            seen.set()

    change_feed.subscribe("wishes", handler, filter={"is_public": True})

    headers = await sign_up(api, "owner@example.com")
    wish = await create_wish(api, headers)
    await api.post(f"/wishes/{wish['id']}/like", headers=headers)
    await api.delete(f"/wishes/{wish['id']}", headers=headers)

    await asyncio.wait_for(seen.wait(), timeout=1)
    assert [e.type for e in events] == [ChangeType.INSERT, ChangeType.UPDATE, ChangeType.DELETE]
    assert events[0].record["id"] == wish["id"]
    assert events[1].record["likes_count"] == 1
    assert events[2].old_record["id"] == wish["id"]


async def test_private_wish_does_not_reach_public_subscribers(api, change_feed):
    events: list[ChangeEvent] = []

    async def handler(event):
        events.append(event)

    change_feed.subscribe("wishes", handler, filter={"is_public": True})
    headers = await sign_up(api, "owner@example.com")
    await create_wish(api, headers, is_public=False)
    await asyncio.sleep(0.05)
    assert events == []


def test_stream_route_registered():
    assert "/realtime/wishes/public" in {route.path for route in app.routes}
