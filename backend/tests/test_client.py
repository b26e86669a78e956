"""Tests for the synchronous API client, using httpx.MockTransport"""
import json

import httpx
import pytest

from land_registry.client import (
    ApiError,
    AuthContext,
    ClientConfig,
    ClientStorage,
    LandRegistryClient,
    NotificationStore,
    PaymentFlow,
    validate_upload,
)
from land_registry.client import errors

MB = 1024 * 1024
USER = {"id": 1, "email": "owner@example.com", "role": "user"}


class Recorder:
    """MockTransport handler that serves canned responses and records requests"""

    def __init__(self, routes):
        self.routes = routes
        self.requests = []

    def __call__(self, request: httpx.Request) -> httpx.Response:
        self.requests.append(request)
        handler = self.routes.get((request.method, request.url.path))
        if handler is None:
            return httpx.Response(404, json={"error": "NOT_FOUND", "message": "No route"})
        if callable(handler):
            return handler(request)
        return handler


def make_client(routes, storage=None, token=None):
    recorder = Recorder(routes)
    auth = AuthContext(storage or ClientStorage()).open()
    if token:
        auth.login(USER, token)
    client = LandRegistryClient(ClientConfig(), auth=auth, transport=httpx.MockTransport(recorder))
    return client, recorder


class TestErrorMapping:
    """Tests for classifying failed calls"""

    @pytest.mark.parametrize("status_code,code", [
        (400, errors.VALIDATION_ERROR),
        (401, errors.AUTH_REQUIRED),
        (403, errors.FORBIDDEN),
        (404, errors.NOT_FOUND),
        (409, errors.VALIDATION_ERROR),
        (413, errors.VALIDATION_ERROR),
        (422, errors.VALIDATION_ERROR),
        (500, errors.SERVER_ERROR),
        (503, errors.SERVER_ERROR),
        (418, errors.UNKNOWN_ERROR),
    ])
    def test_code_for_status(self, status_code, code):
        assert errors.code_for_status(status_code) == code

    def test_server_error_body_is_read(self):
        client, _ = make_client({
            ("GET", "/api/properties/7"): httpx.Response(409, json={
                "error": "INVALID_TRANSITION",
                "message": "Property cannot be edited",
                "details": {"current_state": "approved"},
            }),
        }, token="abc")

        with pytest.raises(ApiError) as exc_info:
            client.get_property(7)

        error = exc_info.value
        assert error.code == errors.VALIDATION_ERROR
        assert error.status_code == 409
        assert error.message == "Property cannot be edited"
        assert error.details == {"current_state": "approved", "server_code": "INVALID_TRANSITION"}
        assert error.retryable is False

    def test_fastapi_validation_detail(self):
        client, _ = make_client({
            ("POST", "/api/properties"): httpx.Response(422, json={"detail": [{"loc": ["body", "area"]}]}),
        }, token="abc")

        with pytest.raises(ApiError) as exc_info:
            client.create_property(plot_number="X")

        assert exc_info.value.details["errors"][0]["loc"] == ["body", "area"]
        assert "422" in exc_info.value.message

    def test_server_errors_are_retryable(self):
        client, _ = make_client({
            ("GET", "/api/reports/user-dashboard"): httpx.Response(502, text="bad gateway"),
        }, token="abc")

        with pytest.raises(ApiError) as exc_info:
            client.dashboard()
        assert exc_info.value.code == errors.SERVER_ERROR
        assert exc_info.value.retryable is True

    def test_timeout(self):
        def slow(request):
            raise httpx.ReadTimeout("timed out", request=request)

        client, _ = make_client({("GET", "/api/notifications"): slow}, token="abc")

        with pytest.raises(ApiError) as exc_info:
            client.notifications()

        assert exc_info.value.code == errors.NETWORK_ERROR
        assert exc_info.value.is_timeout is True
        assert exc_info.value.retryable is True

    def test_connection_error(self):
        def refused(request):
            raise httpx.ConnectError("connection refused", request=request)

        client, _ = make_client({("GET", "/api/auth/me"): refused}, token="abc")

        with pytest.raises(ApiError) as exc_info:
            client.me()
        assert exc_info.value.code == errors.NETWORK_ERROR
        assert exc_info.value.is_timeout is False


class TestSession:
    """Tests for AuthContext and ClientStorage"""

    def test_login_stores_token_and_sends_it(self, tmp_path):
        storage = ClientStorage(str(tmp_path / "session.json"))

        def login(request):
            assert b"username=owner%40example.com" in request.content
            return httpx.Response(200, json={"access_token": "tok-1", "refresh_token": "r", "user": USER})

        client, recorder = make_client({
            ("POST", "/api/auth/login"): login,
            ("GET", "/api/properties/user"): httpx.Response(200, json=[]),
        }, storage=storage)

        assert client.login("owner@example.com", "Password123") == USER
        assert client.my_properties() == []
        assert recorder.requests[1].headers["Authorization"] == "Bearer tok-1"

        saved = json.loads((tmp_path / "session.json").read_text())
        assert saved == {"user": USER, "token": "tok-1"}

        with AuthContext(ClientStorage(str(tmp_path / "session.json"))) as restored:
            assert restored.is_authenticated
            assert restored.role == "user"

    def test_401_clears_session(self):
        storage = ClientStorage()
        client, _ = make_client({
            ("GET", "/api/auth/me"): httpx.Response(401, json={"error": "AUTHENTICATION_ERROR", "message": "Expired"}),
        }, storage=storage, token="stale")

        with pytest.raises(ApiError) as exc_info:
            client.me()

        assert exc_info.value.code == errors.AUTH_REQUIRED
        assert client.auth.is_authenticated is False
        assert storage.get("token") is None
        assert storage.get("user") is None

    def test_403_keeps_session(self):
        client, _ = make_client({
            ("GET", "/api/reports/user-dashboard"): httpx.Response(403, json={"message": "Forbidden"}),
        }, token="abc")

        with pytest.raises(ApiError):
            client.dashboard()
        assert client.auth.is_authenticated is True

    def test_corrupt_storage_file_ignored(self, tmp_path):
        path = tmp_path / "session.json"
        path.write_text("{not json")
        assert ClientStorage(str(path)).get("token") is None


class TestUploads:
    """Uploads are checked locally before any request"""

    def test_validate_upload(self):
        config = ClientConfig()
        assert validate_upload("deed.pdf", 4 * MB, config) is None
        assert "too large" in validate_upload("deed.pdf", 6 * MB, config)
        assert "not allowed" in validate_upload("notes.txt", 1024, config)
        assert validate_upload("deed.pdf", 0, config) == "File is empty"
        assert validate_upload("deed.pdf", 1024, config, "application/pdf") is None
        assert "MIME type" in validate_upload("deed.pdf", 1024, config, "text/html")

    def test_disallowed_mime_type_sends_nothing(self):
        client, recorder = make_client({}, token="abc")

        with pytest.raises(ApiError) as exc_info:
            client.upload_document(
                3, "title_deed", ("deed.pdf", b"%PDF-1.4"), content_type="application/x-msdownload"
            )

        assert exc_info.value.code == errors.VALIDATION_ERROR
        assert recorder.requests == []

    def test_oversized_upload_sends_nothing(self):
        client, recorder = make_client({}, token="abc")

        with pytest.raises(ApiError) as exc_info:
            client.upload_document(3, "title_deed", ("deed.pdf", b"0" * (6 * MB)))

        assert exc_info.value.code == errors.VALIDATION_ERROR
        assert recorder.requests == []

    def test_text_upload_sends_nothing(self):
        client, recorder = make_client({}, token="abc")

        with pytest.raises(ApiError):
            client.upload_document(3, "title_deed", ("notes.txt", b"hello"))
        assert recorder.requests == []

    def test_upload_from_path(self, tmp_path):
        path = tmp_path / "deed.pdf"
        path.write_bytes(b"%PDF-1.4")

        def upload(request):
            assert b'name="document_type"' in request.content
            assert b'filename="deed.pdf"' in request.content
            assert b"application/pdf" in request.content
            return httpx.Response(201, json={"id": 9, "status": "pending"})

        client, _ = make_client({("POST", "/api/documents/property/3"): upload}, token="abc")

        assert client.upload_document(3, "title_deed", str(path)) == {"id": 9, "status": "pending"}


class TestDisputes:

    def test_withdraw_requires_reason_locally(self):
        client, recorder = make_client({}, token="abc")

        with pytest.raises(ApiError):
            client.withdraw_dispute(4, "   ")
        assert recorder.requests == []

    def test_withdraw(self):
        def withdraw(request):
            assert json.loads(request.content) == {"reason": "duplicate filing"}
            return httpx.Response(200, json={"id": 4, "status": "withdrawn"})

        client, _ = make_client({("PUT", "/api/disputes/4/withdraw"): withdraw}, token="abc")
        assert client.withdraw_dispute(4, "duplicate filing")["status"] == "withdrawn"


class TestNotificationStore:
    """Tests for the client-local notification list"""

    def test_newest_first_and_unread(self):
        store = NotificationStore(ClientStorage()).load()
        first = store.add({"type": "info", "title": "One", "message": "first"})
        store.add({"type": "info", "title": "Two", "message": "second"})

        assert [n["title"] for n in store.notifications] == ["Two", "One"]
        assert store.unread_count == 2

        assert store.mark_as_read(first["id"]) is True
        assert store.unread_count == 1
        assert store.mark_as_read("missing") is False

        store.mark_all_as_read()
        assert store.unread_count == 0

    def test_persisted_across_loads(self, tmp_path):
        path = str(tmp_path / "client.json")
        store = NotificationStore(ClientStorage(path)).load()
        item = store.add({"type": "payment_success", "title": "Paid", "message": "ok", "property_id": 3})
        store.close()

        reloaded = NotificationStore(ClientStorage(path)).load()
        assert reloaded.get(item["id"])["property_id"] == 3

        assert reloaded.remove(item["id"]) is True
        assert reloaded.notifications == []

    def test_merge_skips_known(self):
        store = NotificationStore(ClientStorage()).load()
        server = [
            {"id": 1, "type": "payment_required", "title": "Pay", "message": "m", "created_at": "2024-01-01T00:00:00"},
            {"id": 2, "type": "property_approved", "title": "Ok", "message": "m", "created_at": "2024-01-02T00:00:00"},
        ]

        assert store.merge(server) == 2
        assert store.merge(server) == 0
        assert [n["id"] for n in store.notifications] == [2, 1]

    def test_add_before_load_keeps_stored_list(self, tmp_path):
        path = str(tmp_path / "client.json")
        store = NotificationStore(ClientStorage(path)).load()
        kept = store.add({"type": "info", "title": "Kept", "message": "m"})
        store.close()

        reopened = NotificationStore(ClientStorage(path))
        reopened.add({"type": "info", "title": "New", "message": "m"})

        stored = NotificationStore(ClientStorage(path)).load()
        assert [n["title"] for n in stored.notifications] == ["New", "Kept"]
        assert stored.get(kept["id"]) is not None

    def test_add_after_close_keeps_stored_list(self, tmp_path):
        path = str(tmp_path / "client.json")
        store = NotificationStore(ClientStorage(path)).load()
        store.add({"type": "info", "title": "First", "message": "m"})
        store.close()

        store.add({"type": "info", "title": "Second", "message": "m"})
        assert store.unread_count == 2

        stored = NotificationStore(ClientStorage(path)).load()
        assert [n["title"] for n in stored.notifications] == ["Second", "First"]


def _property(**overrides):
    data = {"id": 3, "status": "documents_validated", "documents_validated": True, "payment_completed": False}
    data.update(overrides)
    return data


class TestPaymentFlow:
    """Tests for the client payment flow"""

    def test_refuses_until_documents_validated(self):
        client, recorder = make_client({
            ("GET", "/api/properties/3"): httpx.Response(
                200, json=_property(status="documents_pending", documents_validated=False)
            ),
        }, token="abc")

        with pytest.raises(ApiError) as exc_info:
            PaymentFlow(client).start(3, "cbe_birr")

        assert exc_info.value.details == {"status": "documents_pending"}
        assert [r.url.path for r in recorder.requests] == ["/api/properties/3"]

    def test_refuses_when_already_paid(self):
        client, _ = make_client({
            ("GET", "/api/properties/3"): httpx.Response(200, json=_property(payment_completed=True)),
        }, token="abc")

        with pytest.raises(ApiError):
            PaymentFlow(client).start(3, "telebirr")

    def test_pay_success_adds_notification(self):
        payment = {"id": 11, "status": "completed", "total_amount": 550.0, "currency": "ETB"}

        def process(request):
            assert json.loads(request.content) == {"details": {"account_number": "1000123456789", "pin": "1234"}}
            return httpx.Response(200, json={
                "success": True,
                "payment": payment,
                "property": _property(status="payment_completed", payment_completed=True),
                "error": None,
            })

        client, _ = make_client({
            ("GET", "/api/properties/3"): httpx.Response(200, json=_property()),
            ("POST", "/api/payments/initialize/3"): httpx.Response(201, json={
                "payment": {"id": 11}, "transaction_id": "CBE123", "payment_url": None,
                "session_id": "s", "expires_at": "2024-01-01T00:30:00", "instructions": ["Enter PIN"],
            }),
            ("POST", "/api/payments/process/CBE123"): process,
        }, token="abc")
        store = NotificationStore(ClientStorage()).load()

        outcome = PaymentFlow(client, store).pay(3, "cbe_birr", {"account_number": "1000123456789", "pin": "1234"})

        assert outcome.success is True
        assert outcome.property["payment_completed"] is True
        assert outcome.instructions == ["Enter PIN"]
        assert store.notifications[0]["type"] == "payment_success"
        assert "550.0 ETB" in store.notifications[0]["message"]

    def test_failed_payment_recorded(self):
        client, _ = make_client({
            ("POST", "/api/payments/process/CBE9"): httpx.Response(200, json={
                "success": False,
                "payment": {"id": 12, "status": "failed", "total_amount": 550.0, "currency": "ETB"},
                "property": _property(status="payment_pending"),
                "error": "Transaction declined by provider",
            }),
        }, token="abc")
        store = NotificationStore(ClientStorage()).load()

        outcome = PaymentFlow(client, store).confirm("CBE9", {"account_number": "1", "pin": "1"})

        assert outcome.success is False
        assert outcome.property["payment_completed"] is False
        assert store.notifications[0]["message"] == "Transaction declined by provider"

    def test_cash_cannot_be_paid_online(self):
        client, _ = make_client({
            ("GET", "/api/properties/3"): httpx.Response(200, json=_property()),
            ("POST", "/api/payments/initialize/3"): httpx.Response(201, json={
                "payment": {"id": 13}, "transaction_id": None, "payment_url": None,
                "session_id": "s", "expires_at": "2024-01-01T00:30:00", "instructions": ["Visit the office"],
            }),
        }, token="abc")

        with pytest.raises(ApiError) as exc_info:
            PaymentFlow(client).pay(3, "cash", {})
        assert exc_info.value.details["instructions"] == ["Visit the office"]
