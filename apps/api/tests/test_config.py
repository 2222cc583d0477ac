# apps/api/tests/test_config.py
from podcast_api.core.config import Settings
from podcast_api.core.errors import Conflict, Internal


def test_defaults_validate_without_overrides(monkeypatch):
    monkeypatch.delenv("EMAIL_FROM", raising=False)
    monkeypatch.delenv("SENTRY_DSN", raising=False)

    defaults = Settings(_env_file=None)
    assert defaults.EMAIL_FROM == "no-reply@podcast.example.com"
    assert defaults.SENTRY_DSN is None


def test_app_error_carries_code_and_context():
    error = Conflict("Plan already exists", error_code="DUPLICATE_PLAN", context={"name": "Pro"})
    assert error.status_code == 409
    assert error.context == {"name": "Pro"}
    assert error.to_dict() == {"detail": "Plan already exists", "error_code": "DUPLICATE_PLAN"}

    assert Conflict("x").context == {}
    assert Conflict("x").error_code == "CONFLICT"


def test_internal_error_hides_message():
    assert Internal("stripe key revoked").to_dict() == {
        "detail": "Internal server error",
        "error_code": "INTERNAL_ERROR",
    }
