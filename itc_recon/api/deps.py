from fastapi import Header
from itc_recon.core.service import ReconciliationService
from itc_recon.db.memory import store


def get_service(x_user_id: str = Header(..., alias="X-User-ID")) -> ReconciliationService:
    return ReconciliationService(user_id=x_user_id, store=store)
