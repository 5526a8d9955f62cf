"""Tests ensuring observability wiring is safe by default."""
from __future__ import annotations

import pytest

from app.core.context import request_id_ctx_var, user_id_ctx_var
from app.observability import client as client_module
from app.observability import tracing


class _DummyTrace:
    def __init__(self, metadata=None, **kwargs):
        self.metadata = metadata or {}
        self.errors = []
        self.ended = False

    def update(self, error_info=None, **kwargs):
        if error_info:
            self.errors.append(error_info)

    def end(self):
        self.ended = True


class _DummyOpik:
    def __init__(self, *args, **kwargs):
        self.traces = []

    def trace(self, **kwargs):
        trace = _DummyTrace(metadata=kwargs.get("metadata"))
        self.traces.append(trace)
        return trace


@pytest.fixture()
def fresh_client_state(monkeypatch):
    monkeypatch.setattr(client_module, "_client", None)
    monkeypatch.setattr(client_module, "_init_attempted", False)
    yield


def test_init_opik_returns_none_when_disabled(monkeypatch, fresh_client_state) -> None:
    monkeypatch.setattr(client_module.settings, "opik_enabled", False)

    assert client_module.init_opik() is None
    assert client_module.get_opik_client() is None


def test_init_opik_needs_api_key(monkeypatch, fresh_client_state) -> None:
    monkeypatch.setattr(client_module.settings, "opik_enabled", True)
    monkeypatch.setattr(client_module.settings, "opik_api_key", None)

    assert client_module.init_opik() is None


def test_init_opik_builds_client_once(monkeypatch, fresh_client_state) -> None:
    monkeypatch.setattr(client_module.settings, "opik_enabled", True)
    monkeypatch.setattr(client_module.settings, "opik_api_key", "key")
    monkeypatch.setattr(client_module, "Opik", _DummyOpik)

    first = client_module.init_opik()
    assert isinstance(first, _DummyOpik)
    assert client_module.init_opik() is first


def test_trace_yields_none_without_client(monkeypatch) -> None:
    monkeypatch.setattr(tracing, "get_opik_client", lambda: None)

    with tracing.trace("noop") as span:
        assert span is None


def test_trace_defaults_ids_from_request_context(monkeypatch) -> None:
    dummy = _DummyOpik()
    monkeypatch.setattr(tracing, "get_opik_client", lambda: dummy)
    request_token = request_id_ctx_var.set("req-1")
    user_token = user_id_ctx_var.set("user-1")
    try:
        with tracing.trace("plan.create", metadata={"date": "2025-06-01", "skip": None}):
            pass
    finally:
        user_id_ctx_var.reset(user_token)
        request_id_ctx_var.reset(request_token)

    recorded = dummy.traces[0]
    assert recorded.metadata == {"date": "2025-06-01", "user_id": "user-1", "request_id": "req-1"}
    assert recorded.ended is True


def test_trace_records_error_and_reraises(monkeypatch) -> None:
    dummy = _DummyOpik()
    monkeypatch.setattr(tracing, "get_opik_client", lambda: dummy)

    with pytest.raises(RuntimeError):
        with tracing.trace("boom"):
            raise RuntimeError("kaput")

    assert dummy.traces[0].errors == [{"message": "kaput", "type": "RuntimeError"}]
    assert dummy.traces[0].ended is True
