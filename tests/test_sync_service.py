import json
import os
import sys
from unittest import mock

import pytest
import requests

sys.path.append(os.path.dirname(os.path.dirname(__file__)))
from client import RemoteSyncClient
from config import StoreConfig
from db import AsyncKeyValueRepository
from sync_service import (
    HttpSyncSink,
    LocalNamespaceSink,
    SyncDispatcher,
    build_sink,
)


def fake_response(status_code=200, text=""):
    resp = mock.Mock(status_code=status_code, text=text)
    if status_code >= 400:
        resp.raise_for_status.side_effect = requests.HTTPError(str(status_code))
    return resp


def test_push_collection_posts_payload():
    client = RemoteSyncClient("http://sync/", token="tok", timeout=2)
    with mock.patch("client.requests.post", return_value=fake_response()) as post:
        client.push_collection("u1", "fitness_clients", "[]")
    post.assert_called_once_with(
        "http://sync/users/u1/fitness_clients",
        data="[]",
        headers={"Content-Type": "application/json", "Authorization": "Bearer tok"},
        timeout=2,
    )


def test_fetch_collection():
    client = RemoteSyncClient("http://sync")
    with mock.patch("client.requests.get", return_value=fake_response(404)):
        assert client.fetch_collection("u1", "fitness_clients") is None
    with mock.patch("client.requests.get", return_value=fake_response(200, '[{"id": "c1"}]')):
        assert client.fetch_collection("u1", "fitness_clients") == '[{"id": "c1"}]'
    with mock.patch("client.requests.get", return_value=fake_response(500)):
        with pytest.raises(requests.HTTPError):
            client.fetch_collection("u1", "fitness_clients")


@pytest.mark.asyncio
async def test_local_namespace_sink_round_trip(tmp_path):
    storage = AsyncKeyValueRepository(str(tmp_path / "sync.db"))
    dispatcher = SyncDispatcher(LocalNamespaceSink(storage))
    assert await dispatcher.sync_collection("u1", [{"id": "c1"}], "fitness_clients", 5)
    assert await storage.get_item("user_u1_fitness_clients") == json.dumps([{"id": "c1"}])
    assert await dispatcher.load_collection("u1", "fitness_clients") == [{"id": "c1"}]
    assert await dispatcher.load_collection("u2", "fitness_clients") is None
    # an older revision does not overwrite the stored snapshot
    await dispatcher.sync_collection("u1", [], "fitness_clients", 4)
    assert await dispatcher.load_collection("u1", "fitness_clients") == [{"id": "c1"}]


@pytest.mark.asyncio
async def test_http_sink_failures_are_logged(caplog):
    dispatcher = SyncDispatcher(HttpSyncSink(RemoteSyncClient("http://sync")))
    with mock.patch("client.requests.post", side_effect=requests.ConnectionError("down")):
        assert not await dispatcher.sync_collection("u1", [], "fitness_workouts")
    with mock.patch("client.requests.get", return_value=fake_response(200, "{broken")):
        assert await dispatcher.load_collection("u1", "fitness_workouts") is None
    assert "Error syncing fitness_workouts for user u1" in caplog.text
    assert "Error loading fitness_workouts for user u1" in caplog.text


def test_build_sink(tmp_path, monkeypatch):
    storage = AsyncKeyValueRepository(str(tmp_path / "sink.db"))
    missing = str(tmp_path / "none.yaml")
    assert isinstance(build_sink(StoreConfig(missing), storage), LocalNamespaceSink)
    monkeypatch.setenv("COACHLOG_SYNC_MODE", "http")
    with pytest.raises(ValueError):
        build_sink(StoreConfig(missing), storage)
    monkeypatch.setenv("COACHLOG_SYNC_URL", "http://sync")
    sink = build_sink(StoreConfig(missing), storage)
    assert isinstance(sink, HttpSyncSink)
    assert sink.client.base_url == "http://sync"
