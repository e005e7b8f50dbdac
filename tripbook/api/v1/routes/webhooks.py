from fastapi import APIRouter, Depends, Request
from sqlalchemy.orm import Session
from starlette.concurrency import run_in_threadpool

from tripbook.db.session import get_db
from tripbook.api.deps import get_gateway
from tripbook.services.gateway import PaymentGateway
from tripbook.services.webhook_service import handle_webhook

router = APIRouter(tags=["webhooks"])


@router.post("/payments/webhook")
async def razorpay_webhook(request: Request, db: Session = Depends(get_db),
                           gateway: PaymentGateway = Depends(get_gateway)):
    # Signature is over the exact bytes received; read before any JSON parsing.
    body = await request.body()
    signature = request.headers.get("X-Razorpay-Signature")
    return await run_in_threadpool(handle_webhook, db, gateway, body, signature)
