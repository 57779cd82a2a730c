from app.core.config import settings
from app.core.rate_limiter import rate_limiter


def test_failed_basic_auth_is_rate_limited(client, staff_auth):
    original_limit = settings.auth_max_failed_attempts
    original_window = settings.auth_rate_limit_window_seconds
    settings.auth_max_failed_attempts = 2
    settings.auth_rate_limit_window_seconds = 60
    rate_limiter.reset()
    try:
        wrong = (staff_auth[0], "WrongPass123")
        first = client.get("/api/users/me", auth=wrong)
        second = client.get("/api/users/me", auth=wrong)
        third = client.get("/api/users/me", auth=wrong)
        correct_while_blocked = client.get("/api/users/me", auth=staff_auth)

        assert first.status_code == 401
        assert second.status_code == 401
        assert third.status_code == 429
        assert third.json()["error"]["code"] == "http_429"
        assert third.headers.get("Retry-After")
        assert correct_while_blocked.status_code == 429
    finally:
        settings.auth_max_failed_attempts = original_limit
        settings.auth_rate_limit_window_seconds = original_window
        rate_limiter.reset()


def test_successful_login_clears_failed_attempts(client, staff_auth):
    original_limit = settings.auth_max_failed_attempts
    settings.auth_max_failed_attempts = 2
    rate_limiter.reset()
    try:
        wrong = (staff_auth[0], "WrongPass123")
        assert client.get("/api/users/me", auth=wrong).status_code == 401
        assert client.get("/api/users/me", auth=staff_auth).status_code == 200
        assert client.get("/api/users/me", auth=wrong).status_code == 401
        assert client.get("/api/users/me", auth=staff_auth).status_code == 200
    finally:
        settings.auth_max_failed_attempts = original_limit
        rate_limiter.reset()
