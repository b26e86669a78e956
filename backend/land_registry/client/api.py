"""Synchronous HTTP client for the land registry API"""
import logging
import mimetypes
import os
from typing import Any, Dict, List, Optional, Tuple, Union

import httpx

from land_registry.client.config import ClientConfig
from land_registry.client.errors import ApiError, AUTH_REQUIRED, VALIDATION_ERROR
from land_registry.client.session import AuthContext

logger = logging.getLogger(__name__)


def validate_upload(
    filename: str,
    file_size: int,
    config: ClientConfig,
    content_type: Optional[str] = None,
) -> Optional[str]:
    """Reason the file would be refused by the server, or None if it is acceptable"""
    if file_size <= 0:
        return "File is empty"
    if file_size > config.max_upload_size_bytes:
        size_mb = file_size / (1024 * 1024)
        return f"File too large ({size_mb:.1f}MB). Maximum size is {config.max_upload_size_mb}MB"
    ext = os.path.splitext(filename)[1].lower()
    if ext not in config.allowed_extensions:
        return f"File type '{ext or 'unknown'}' not allowed. Allowed types: {', '.join(config.allowed_extensions)}"
    content_type = (content_type or "").lower()
    if content_type and content_type != "application/octet-stream" and content_type not in config.allowed_mimetypes:
        return f"MIME type '{content_type}' not allowed. Allowed types: {', '.join(config.allowed_mimetypes)}"
    return None


class LandRegistryClient:
    """
    Calls the REST API with the bearer token from an AuthContext.

    Each call uses one of the configured timeout tiers. Failures are raised
    as ApiError; a 401 response also ends the stored session.
    """

    def __init__(
        self,
        config: Optional[ClientConfig] = None,
        auth: Optional[AuthContext] = None,
        transport: Optional[httpx.BaseTransport] = None,
    ):
        self.config = config or ClientConfig()
        self.auth = auth or AuthContext(user_key=self.config.user_key, token_key=self.config.token_key)
        self._http = httpx.Client(
            base_url=self.config.base_url.rstrip("/"),
            timeout=self.config.default_timeout,
            transport=transport,
        )

    def close(self) -> None:
        self._http.close()

    def __enter__(self) -> "LandRegistryClient":
        return self

    def __exit__(self, exc_type, exc, tb) -> None:
        self.close()

    def _headers(self) -> Dict[str, str]:
        if self.auth.token:
            return {"Authorization": f"Bearer {self.auth.token}"}
        return {}

    def _request(self, method: str, path: str, timeout: Optional[float] = None, **kwargs) -> Any:
        try:
            response = self._http.request(
                method,
                path,
                headers=self._headers(),
                timeout=timeout or self.config.default_timeout,
                **kwargs,
            )
        except httpx.RequestError as e:
            error = ApiError.from_transport(e)
            logger.warning(f"{method} {path} failed: {error.message}")
            raise error from e

        if response.status_code >= 400:
            error = ApiError.from_response(response)
            if error.code == AUTH_REQUIRED:
                # Token expired or revoked
                self.auth.logout()
            logger.warning(f"{method} {path} returned {response.status_code}: {error.message}")
            raise error

        if not response.content:
            return None
        return response.json()

    # Auth

    def _start_session(self, data: Dict[str, Any]) -> Dict[str, Any]:
        self.auth.login(data["user"], data["access_token"])
        return data["user"]

    def register(self, email: str, password: str, full_name: Optional[str] = None, **profile) -> Dict[str, Any]:
        data = self._request(
            "POST", "/auth/register",
            json={"email": email, "password": password, "full_name": full_name, **profile},
        )
        return self._start_session(data)

    def login(self, email: str, password: str) -> Dict[str, Any]:
        data = self._request("POST", "/auth/login", data={"username": email, "password": password})
        return self._start_session(data)

    def logout(self) -> None:
        self.auth.logout()

    def me(self) -> Dict[str, Any]:
        return self._request("GET", "/auth/me")

    # Properties

    def create_property(self, **fields) -> Dict[str, Any]:
        return self._request("POST", "/properties", json=fields)

    def my_properties(self) -> List[Dict[str, Any]]:
        return self._request("GET", "/properties/user")

    def get_property(self, property_id: int) -> Dict[str, Any]:
        return self._request("GET", f"/properties/{property_id}")

    def update_property(self, property_id: int, **fields) -> Dict[str, Any]:
        return self._request("PUT", f"/properties/{property_id}", json=fields)

    def delete_property(self, property_id: int) -> Dict[str, Any]:
        return self._request("DELETE", f"/properties/{property_id}")

    def payment_requirements(self, property_id: int) -> Dict[str, Any]:
        return self._request("GET", f"/properties/{property_id}/payment-requirements")

    # Documents

    def upload_document(
        self,
        property_id: int,
        document_type: str,
        file: Union[str, Tuple[str, bytes]],
        document_name: Optional[str] = None,
        content_type: Optional[str] = None,
    ) -> Dict[str, Any]:
        """
        Upload a document from a path or a (filename, bytes) pair.

        The file is checked against the size, extension and MIME type limits
        before any request is made.
        """
        if isinstance(file, str):
            filename = os.path.basename(file)
            with open(file, "rb") as f:
                content = f.read()
        else:
            filename, content = file

        content_type = content_type or mimetypes.guess_type(filename)[0] or "application/octet-stream"
        reason = validate_upload(filename, len(content), self.config, content_type)
        if reason:
            raise ApiError(reason, code=VALIDATION_ERROR)

        form = {"document_type": document_type}
        if document_name:
            form["document_name"] = document_name
        return self._request(
            "POST", f"/documents/property/{property_id}",
            timeout=self.config.upload_timeout,
            data=form,
            files={"file": (filename, content, content_type)},
        )

    def property_documents(self, property_id: int) -> List[Dict[str, Any]]:
        return self._request("GET", f"/documents/property/{property_id}")

    def delete_document(self, document_id: int) -> Dict[str, Any]:
        return self._request("DELETE", f"/documents/{document_id}")

    # Payments

    def payment_methods(self) -> List[Dict[str, Any]]:
        return self._request("GET", "/payments/methods")

    def initialize_payment(self, property_id: int, payment_method: str, **options) -> Dict[str, Any]:
        return self._request(
            "POST", f"/payments/initialize/{property_id}",
            json={"payment_method": payment_method, **options},
        )

    def process_payment(self, transaction_id: str, details: Dict[str, Any]) -> Dict[str, Any]:
        return self._request("POST", f"/payments/process/{transaction_id}", json={"details": details})

    def my_payments(self) -> List[Dict[str, Any]]:
        return self._request("GET", "/payments/user")

    # Disputes

    def submit_dispute(
        self, property_id: int, dispute_type: str, title: str, description: str, priority: str = "medium"
    ) -> Dict[str, Any]:
        return self._request("POST", "/disputes", json={
            "property_id": property_id,
            "dispute_type": dispute_type,
            "title": title,
            "description": description,
            "priority": priority,
        })

    def my_disputes(self) -> List[Dict[str, Any]]:
        return self._request("GET", "/disputes/my-disputes")

    def withdraw_dispute(self, dispute_id: int, reason: str) -> Dict[str, Any]:
        if not reason or not reason.strip():
            raise ApiError("A reason is required to withdraw a dispute", code=VALIDATION_ERROR)
        return self._request("PUT", f"/disputes/{dispute_id}/withdraw", json={"reason": reason})

    # Notifications

    def notifications(self, unread_only: bool = False) -> Dict[str, Any]:
        return self._request(
            "GET", "/notifications",
            timeout=self.config.dashboard_timeout,
            params={"unread_only": str(unread_only).lower()},
        )

    def mark_notification_read(self, notification_id: int) -> Dict[str, Any]:
        return self._request("PUT", f"/notifications/{notification_id}/read")

    def mark_all_notifications_read(self) -> Dict[str, Any]:
        return self._request("PUT", "/notifications/read-all")

    # Dashboard and activity

    def dashboard(self) -> Dict[str, Any]:
        return self._request("GET", "/reports/user-dashboard", timeout=self.config.dashboard_timeout)

    def recent_activity(self, limit: int = 10) -> List[Dict[str, Any]]:
        return self._request(
            "GET", "/logs/user/recent", timeout=self.config.activity_timeout, params={"limit": limit}
        )

    def property_timeline(self, property_id: int) -> List[Dict[str, Any]]:
        return self._request("GET", f"/logs/property/{property_id}", timeout=self.config.activity_timeout)
