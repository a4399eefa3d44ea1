from typing import Annotated, List, Literal, Optional, Union

from pydantic import BaseModel, Field

from app.services.access_service import Role, has_clearance

Utorid = Annotated[str, Field(min_length=7, max_length=8)]
Remark = Annotated[Optional[str], Field(max_length=255)]


class PurchaseCreate(BaseModel):
    utorid: Utorid
    type: Literal["purchase"]
    spent: float = Field(gt=0)
    promotionIds: Optional[List[Annotated[int, Field(gt=0)]]] = None
    remark: Remark = None

    class Config:
        extra = "forbid"


class AdjustmentCreate(BaseModel):
    utorid: Utorid
    type: Literal["adjustment"]
    amount: int
    relatedId: int = Field(gt=0)
    promotionIds: Optional[List[Annotated[int, Field(gt=0)]]] = None
    remark: Remark = None

    class Config:
        extra = "forbid"


TransactionCreate = Union[PurchaseCreate, AdjustmentCreate]


class TransferCreate(BaseModel):
    type: Literal["transfer"]
    amount: int = Field(gt=0)
    remark: Remark = None

    class Config:
        extra = "forbid"


class RedemptionCreate(BaseModel):
    type: Literal["redemption"]
    amount: int = Field(gt=0)
    remark: Remark = None

    class Config:
        extra = "forbid"


class RedemptionProcess(BaseModel):
    processed: Literal[True]

    class Config:
        extra = "forbid"


class SuspiciousUpdate(BaseModel):
    suspicious: bool

    class Config:
        extra = "forbid"


class TransactionOut(BaseModel):
    id: int
    utorid: str
    type: str

    amount: int
    spent: Optional[float] = None
    redeemed: Optional[int] = None
    relatedId: Optional[int] = None

    promotionIds: List[int] = []

    suspicious: bool = False
    remark: str = ""

    createdBy: str
    processedBy: Optional[str] = None


def transaction_out(transaction) -> TransactionOut:
    return TransactionOut(
        id=transaction.id,
        utorid=transaction.utorid,
        type=transaction.type,
        amount=transaction.amount,
        spent=transaction.spent,
        redeemed=transaction.redeemed,
        relatedId=transaction.related_id,
        promotionIds=[p.id for p in transaction.promotions],
        suspicious=bool(transaction.suspicious),
        remark=transaction.remark or "",
        createdBy=transaction.created_by,
        processedBy=transaction.processed_by,
    )


# per-type fields shown on top of id/utorid/type/promotionIds/remark/createdBy
_TYPE_FIELDS = {
    "purchase": ("amount", "spent"),
    "redemption": ("amount", "relatedId", "redeemed", "processedBy"),
    "adjustment": ("amount", "relatedId"),
    "transfer": ("amount", "relatedId"),
    "event": ("amount", "relatedId"),
}


def present_transaction(transaction, viewer_role) -> dict:
    """
    Shapes a transaction for a viewer. Every field is available from
    transaction_out(); regular users never see the suspicious flag.
    """
    full = transaction_out(transaction).model_dump()

    view = {k: full[k] for k in ("id", "utorid", "type", "promotionIds", "remark", "createdBy")}
    for field in _TYPE_FIELDS.get(transaction.type, ("amount",)):
        view[field] = full[field]

    if has_clearance(viewer_role, Role.CASHIER):
        view["suspicious"] = full["suspicious"]

    return view
