from recallbot.logging import _redact_event, mask_secret, register_secret


def test_mask_secret() -> None:
    assert mask_secret("sk-abc123456789xyz") == "sk-a****9xyz"
    assert mask_secret("short") == "****"


def test_redaction_processor_masks_known_secret_shapes() -> None:
    event = {
        "event": "llm_call_failed",
        "error": "bad key AIzaSyABCDEFGHIJKLMNOPQRSTUVWX in request",
        "token": "123456789:ABCdefGHIjklMNOpqrSTUvwxYZ0123456789",
        "auth": "Bearer abcdefghijklmnop",
        "count": 3,
    }

    out = _redact_event(None, "info", event)

    assert "AIzaSyABCDEFGHIJKLMNOPQRSTUVWX" not in out["error"]
    assert out["error"].startswith("bad key AIza****")
    assert "ABCdefGHIjklMNOpqrSTUvwxYZ0123456789" not in out["token"]
    assert "abcdefghijklmnop" not in out["auth"]
    assert out["count"] == 3


def test_registered_secret_is_masked_inside_nested_values() -> None:
    register_secret("plain-config-secret-123")
    register_secret("$UNRESOLVED")

    out = _redact_event(None, "info", {
        "event": "x",
        "details": {"url": "https://api?key=plain-config-secret-123"},
        "items": ["plain-config-secret-123"],
    })

    assert out["details"]["url"] == "https://api?key=plai****-123"
    assert out["items"] == ["plai****-123"]
