from booking_api.auth import issue_token_pair
from booking_api.config import get_settings
from booking_api.main import app
from booking_api.models import OTPVerification, User
from booking_api.whatsapp import DispatchError, DispatchErrorKind

PHONE = "+919876543210"


def login(client, dispatcher, phone=PHONE):
    response = client.post("/auth/send-otp", json={"phone_number": phone})
    assert response.status_code == 200
    code = dispatcher.last_code
    response = client.post("/auth/verify-otp", json={"phone_number": phone, "otp_code": code})
    assert response.status_code == 200
    return response


def set_cookie_headers(response):
    return response.headers.get_list("set-cookie")


def cookie_attributes(cookie):
    return [part.strip().lower() for part in cookie.split(";")[1:]]


def test_send_otp(client, dispatcher):
    response = client.post("/auth/send-otp", json={"phone_number": PHONE})

    assert response.status_code == 200
    body = response.json()
    assert body["success"] is True
    assert body["message"] == "OTP sent successfully"
    assert body["data"]["expires_in"] == 600
    assert body["data"]["message_id"] == "msg-123"
    assert "otp_code" not in body["data"]
    assert dispatcher.sent[0][0] == PHONE


def test_send_otp_requires_phone(client, dispatcher):
    response = client.post("/auth/send-otp", json={})

    assert response.status_code == 400
    assert response.json()["success"] is False
    assert dispatcher.sent == []


def test_send_otp_rejects_malformed_phone(client, dispatcher, db):
    response = client.post("/auth/send-otp", json={"phone_number": "call-me"})

    assert response.status_code == 400
    assert response.json() == {"success": False, "error": "Invalid phone number format"}
    assert dispatcher.sent == []
    assert db.query(OTPVerification).count() == 0


def test_resend_otp(client, dispatcher):
    client.post("/auth/send-otp", json={"phone_number": PHONE})
    response = client.post("/auth/resend-otp", json={"phone_number": PHONE})

    assert response.status_code == 200
    assert response.json()["message"] == "OTP resent successfully"
    assert len(dispatcher.sent) == 2


def test_verify_otp_creates_user_and_sets_cookies(client, dispatcher, db):
    response = login(client, dispatcher)

    body = response.json()
    assert body["message"] == "OTP verified successfully"
    user = body["data"]["user"]
    assert set(user) == {"id", "phone_number", "name", "email", "is_verified"}
    assert user["phone_number"] == PHONE
    assert user["is_verified"] is True

    cookies = set_cookie_headers(response)
    access = next(c for c in cookies if c.startswith("access_token="))
    refresh = next(c for c in cookies if c.startswith("refresh_token="))
    for cookie in (access, refresh):
        attrs = cookie_attributes(cookie)
        assert "httponly" in attrs
        assert "samesite=lax" in attrs
        assert "path=/" in attrs
        assert "secure" not in attrs
    assert "Max-Age=900" in access
    assert f"Max-Age={365 * 24 * 60 * 60}" in refresh

    assert db.query(User).count() == 1


def test_verify_otp_existing_user_updates_login(client, dispatcher, db):
    first = login(client, dispatcher).json()["data"]["user"]
    second = login(client, dispatcher).json()["data"]["user"]

    assert first["id"] == second["id"]
    user = db.query(User).one()
    assert user.last_login_at is not None


def test_verify_otp_normalizes_phone_for_user(client, dispatcher, db):
    login(client, dispatcher, phone="9876543210")
    assert db.query(User).one().phone_number == PHONE


def test_verify_otp_wrong_code(client, dispatcher):
    client.post("/auth/send-otp", json={"phone_number": PHONE})
    wrong = "000000" if dispatcher.last_code != "000000" else "111111"

    response = client.post("/auth/verify-otp", json={"phone_number": PHONE, "otp_code": wrong})

    assert response.status_code == 400
    assert response.json()["error"] == "Invalid or expired OTP"


def test_verify_otp_twice_fails(client, dispatcher):
    client.post("/auth/send-otp", json={"phone_number": PHONE})
    payload = {"phone_number": PHONE, "otp_code": dispatcher.last_code}

    assert client.post("/auth/verify-otp", json=payload).status_code == 200
    assert client.post("/auth/verify-otp", json=payload).status_code == 400


def test_verify_otp_malformed_code(client):
    response = client.post("/auth/verify-otp", json={"phone_number": PHONE, "otp_code": "12ab"})
    assert response.status_code == 400
    assert response.json()["error"] == "OTP must be 6 digits"


def test_test_number_login(client, dispatcher, db):
    send = client.post("/auth/send-otp", json={"phone_number": "9999999999"})
    assert send.status_code == 200
    assert dispatcher.sent == []

    response = client.post("/auth/verify-otp", json={"phone_number": "9999999999", "otp_code": "123456"})
    assert response.status_code == 200
    assert response.json()["data"]["user"]["phone_number"] == "+919999999999"


def test_test_number_verify_without_send(client):
    response = client.post("/auth/verify-otp", json={"phone_number": "+919999999999", "otp_code": "123456"})
    assert response.status_code == 200


def test_me_with_cookie(client, dispatcher):
    login(client, dispatcher)

    response = client.get("/auth/me")

    assert response.status_code == 200
    data = response.json()["data"]
    assert data["phone_number"] == PHONE
    assert "created_at" in data


def test_me_with_bearer_header(client, dispatcher, settings):
    user_id = login(client, dispatcher).json()["data"]["user"]["id"]
    client.cookies.clear()
    access, _ = issue_token_pair(settings, user_id, PHONE)

    response = client.get("/auth/me", headers={"Authorization": f"Bearer {access}"})
    assert response.status_code == 200


def test_me_requires_token(client):
    response = client.get("/auth/me")
    assert response.status_code == 401
    assert response.json() == {"success": False, "error": "Authorization token required"}


def test_me_rejects_refresh_token_as_access(client, settings):
    _, refresh = issue_token_pair(settings, 1, PHONE)
    response = client.get("/auth/me", headers={"Authorization": f"Bearer {refresh}"})
    assert response.status_code == 401
    assert response.json()["error"] == "Invalid or expired token"


def test_me_unknown_user(client, settings):
    access, _ = issue_token_pair(settings, 999, PHONE)
    response = client.get("/auth/me", headers={"Authorization": f"Bearer {access}"})
    assert response.status_code == 404
    assert response.json()["error"] == "User not found"


def test_refresh_rotates_both_tokens(client, dispatcher):
    login(client, dispatcher)
    old_access = client.cookies.get("access_token")
    old_refresh = client.cookies.get("refresh_token")

    response = client.post("/auth/refresh-token")

    assert response.status_code == 200
    assert response.json()["message"] == "Token refreshed successfully"
    new_access = client.cookies.get("access_token")
    new_refresh = client.cookies.get("refresh_token")
    assert new_refresh != old_refresh
    assert new_access != old_access

    # both access tokens keep working until they expire
    for token in (old_access, new_access):
        me = client.get("/auth/me", headers={"Authorization": f"Bearer {token}"})
        assert me.status_code == 200


def test_refresh_from_body(client, settings):
    _, refresh = issue_token_pair(settings, 1, PHONE)

    response = client.post("/auth/refresh-token", json={"refresh_token": refresh})

    assert response.status_code == 200
    cookies = set_cookie_headers(response)
    assert any(c.startswith("access_token=") for c in cookies)
    assert any(c.startswith("refresh_token=") for c in cookies)


def test_refresh_requires_token(client):
    response = client.post("/auth/refresh-token")
    assert response.status_code == 400
    assert response.json()["error"] == "Refresh token is required"


def test_refresh_rejects_invalid_token(client, settings):
    access, _ = issue_token_pair(settings, 1, PHONE)
    for token in ("garbage", access):
        response = client.post("/auth/refresh-token", json={"refresh_token": token})
        assert response.status_code == 401
        assert response.json()["error"] == "Invalid or expired refresh token"


def test_logout_clears_cookies(client, dispatcher):
    login(client, dispatcher)

    response = client.post("/auth/logout")

    assert response.status_code == 200
    assert response.json()["message"] == "Logged out successfully"
    cookies = set_cookie_headers(response)
    for name in ("access_token", "refresh_token"):
        cleared = next(c for c in cookies if c.startswith(f"{name}="))
        attrs = cookie_attributes(cleared)
        assert "max-age=0" in attrs
        assert "path=/" in attrs
        assert "httponly" in attrs
        assert "samesite=lax" in attrs


def test_logout_requires_auth(client):
    assert client.post("/auth/logout").status_code == 401


def test_root_and_health(client):
    assert client.get("/").json()["status"] == "running"
    assert client.get("/healthz").json() == {"ok": True, "status": "UP"}


def test_send_otp_quota_returns_429_envelope_in_production(client, dispatcher, production_settings):
    app.dependency_overrides[get_settings] = lambda: production_settings

    for _ in range(3):
        assert client.post("/auth/send-otp", json={"phone_number": PHONE}).status_code == 200
    response = client.post("/auth/send-otp", json={"phone_number": PHONE})

    assert response.status_code == 429
    body = response.json()
    assert body["success"] is False
    assert "OTP limit exceeded" in body["error"]
    assert len(dispatcher.sent) == 3


def test_send_otp_provider_failure_hides_provider_text(client, dispatcher, db):
    dispatcher.error = DispatchError(DispatchErrorKind.PROVIDER_ERROR, "upstream trace id=xyz-42", 502)

    response = client.post("/auth/send-otp", json={"phone_number": PHONE})

    assert response.status_code == 500
    assert response.json() == {"success": False, "error": "Failed to send OTP. Please try again."}
    assert "xyz-42" not in response.text
    assert db.query(OTPVerification).count() == 1


def test_send_otp_accepts_longest_international_number(client, dispatcher, db):
    response = client.post("/auth/send-otp", json={"phone_number": "+123456789012345"})

    assert response.status_code == 200
    assert db.query(OTPVerification).one().phone_number == "+123456789012345"
