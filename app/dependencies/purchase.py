from fastapi import Request

from app.services.purchase_service import PurchaseService


def get_purchase_service(request: Request) -> PurchaseService:
    return request.app.state.purchase_service
