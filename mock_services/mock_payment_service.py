"""
mock_payment_service.py — Mock Implementation of the Payment Gateway (REST API)

This module provides a simulated payment gateway for local development and tests.
It exposes a simple FastAPI application that mimics hosted checkout sessions.

Simulation Scenarios:
    • Successful session creation (same URL for a repeated Idempotency-Key)
    • Gateway failure (HTTP 503) for keys starting with "fail-"
    • Timeout simulation for keys starting with "timeout-"

Endpoints:
    POST /v1/sessions — Creates a payment session.

Port:
    Default: 8001 (HTTP)
"""

import logging
import threading
import time
import uuid

from fastapi import FastAPI, Header, HTTPException
from pydantic import BaseModel, Field

app = FastAPI(title="Mock Payment Gateway")
logging.basicConfig(level=logging.INFO)

CHECKOUT_BASE_URL = "https://checkout.example.test/pay"

# Idempotency-Key -> session
_sessions = {}
_sessions_lock = threading.Lock()


class SessionRequest(BaseModel):
    """
    Represents a payment session request payload.

    Attributes:
        amount (int): Amount in the smallest currency unit.
        currency (str): ISO 4217 currency code.
        orderId (str): Order the session pays for.
        tenantId (str): Tenant of the order.
    """
    amount: int = Field(..., ge=0)
    currency: str
    orderId: str
    tenantId: str


@app.post("/v1/sessions")
def create_session(
        request: SessionRequest,
        idempotency_key: str = Header(..., alias="Idempotency-Key")
):
    """
    Creates (or returns the existing) payment session for an Idempotency-Key.

    Returns:
        dict: paymentUrl, sessionId, amount and createdAt.

    Raises:
        HTTPException(503): If the key asks for a simulated gateway failure.
    """
    logging.info(f"[PG] Session-Anfrage für {request.orderId} (Idempotenz: {idempotency_key})")

    if idempotency_key.startswith("fail-"):
        logging.warning(f"[PG] Simulierter Ausfall für {request.orderId}.")
        raise HTTPException(
            status_code=503,
            detail={"errorCode": "gateway_unavailable", "message": "Gateway nicht verfügbar."}
        )

    if idempotency_key.startswith("timeout-"):
        logging.info(f"[PG] Simuliere Timeout für {request.orderId}...")
        time.sleep(10)

    with _sessions_lock:
        existing = _sessions.get(idempotency_key)
        if existing is not None:
            logging.info(f"[PG] Bestehende Session für {request.orderId} zurückgegeben.")
            return existing

        session_id = f"cs_{uuid.uuid4().hex}"
        session = {
            "sessionId": session_id,
            "paymentUrl": f"{CHECKOUT_BASE_URL}/{session_id}",
            "amount": request.amount,
            "currency": request.currency,
            "createdAt": time.strftime("%Y-%m-%dT%H:%M:%SZ", time.gmtime()),
        }
        _sessions[idempotency_key] = session

    logging.info(f"[PG] Session für {request.orderId} erstellt.")
    return session


if __name__ == "__main__":
    import uvicorn

    uvicorn.run(app, host="0.0.0.0", port=8001)
