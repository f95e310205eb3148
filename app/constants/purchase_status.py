from app.models.purchase import PurchaseStatus

ALLOWED_TRANSITIONS = {
    PurchaseStatus.pending.value: [
        PurchaseStatus.completed.value,
        PurchaseStatus.failed.value,
        PurchaseStatus.cancelled.value,
    ],
    PurchaseStatus.completed.value: [],
    PurchaseStatus.failed.value: [],
    PurchaseStatus.cancelled.value: [],
}


def can_transition(current: str, target: str) -> bool:
    return target in ALLOWED_TRANSITIONS.get(current, [])
