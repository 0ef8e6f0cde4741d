from __future__ import annotations

import ramadan_clock.__main__ as entrypoint


def test_main_serves_on_configured_host_and_port(monkeypatch) -> None:
    calls: list[tuple[tuple, dict]] = []
    monkeypatch.setattr(entrypoint.uvicorn, "run", lambda *args, **kwargs: calls.append((args, kwargs)))
    monkeypatch.setenv("APP_HOST", "127.0.0.1")
    monkeypatch.setenv("APP_PORT", "9123")
    monkeypatch.setenv("LOG_LEVEL", "WARNING")

    entrypoint.main()

    (args, kwargs), = calls
    assert args == ("ramadan_clock.main:create_app",)
    assert kwargs["factory"] is True
    assert kwargs["host"] == "127.0.0.1"
    assert kwargs["port"] == 9123
    assert kwargs["log_level"] == "warning"
