from __future__ import annotations

import base64

from carrier_onboarding.core.auth import Role, create_access_token


def auth_headers(user_id: str = "carrier-1", role: Role = Role.CARRIER) -> dict[str, str]:
    token = create_access_token(user_id, roles=[role.value], email="ops@lonestarhaulers.com")
    return {"Authorization": f"Bearer {token}"}


def upload_payload(filename: str = "document.pdf", content: bytes = b"%PDF-1.7 test") -> dict:
    """JSON body for the document upload endpoints."""
    return {
        "filename": filename,
        "content_type": "application/pdf",
        "content": base64.b64encode(content).decode(),
    }
