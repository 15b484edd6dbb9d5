import asyncio
import json

import httpx
import pytest

from edutracker.errors import PersistenceWarning
from edutracker.remote import SupabaseRemoteStore


def make_store(handler):
    return SupabaseRemoteStore("https://demo.supabase.co/", "anon-key",
                               transport=httpx.MockTransport(handler))


def run(coro):
    return asyncio.run(coro)


def test_upsert_merges_on_id():
    seen = []

    def handler(request):
        seen.append(request)
        return httpx.Response(201)

    store = make_store(handler)
    run(store.upsert("competencies", {"id": "p1", "name": "Leitura"}))
    run(store.aclose())

    request = seen[0]
    assert request.method == "POST"
    assert request.url.path == "/rest/v1/skills_bncc"
    assert request.url.params["on_conflict"] == "id"
    assert request.headers["Prefer"] == "resolution=merge-duplicates,return=minimal"
    assert request.headers["apikey"] == "anon-key"
    assert request.headers["Authorization"] == "Bearer anon-key"
    assert json.loads(request.content) == {"id": "p1", "name": "Leitura"}


def test_delete_filters_by_id():
    seen = []

    def handler(request):
        seen.append(request)
        return httpx.Response(204)

    run(make_store(handler).delete("attendance", "att-g-2024-03-05"))
    assert seen[0].method == "DELETE"
    assert seen[0].url.path == "/rest/v1/attendance_records"
    assert seen[0].url.params["id"] == "eq.att-g-2024-03-05"


def test_fetch_all():
    def handler(request):
        assert request.url.params["select"] == "*"
        return httpx.Response(200, json=[{"id": "s-1", "name": "Ana"}])

    assert run(make_store(handler).fetch_all("students")) == [{"id": "s-1", "name": "Ana"}]


def test_error_status_becomes_persistence_warning():
    def handler(request):
        return httpx.Response(409, text="duplicate key")

    with pytest.raises(PersistenceWarning) as excinfo:
        run(make_store(handler).upsert("students", {"id": "s-1"}))
    assert excinfo.value.status_code == 409
    assert "duplicate key" in str(excinfo.value)


def test_transport_error_becomes_persistence_warning():
    def handler(request):
        raise httpx.ConnectError("connection refused", request=request)

    with pytest.raises(PersistenceWarning) as excinfo:
        run(make_store(handler).fetch_all("classes"))
    assert excinfo.value.status_code is None


def test_non_list_body_is_rejected():
    def handler(request):
        return httpx.Response(200, json={"message": "not a list"})

    with pytest.raises(PersistenceWarning):
        run(make_store(handler).fetch_all("invites"))
