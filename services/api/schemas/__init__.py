"""
Pydantic schemas for API request/response validation.
"""
from .common import DocumentFields, LineItem, calculate_totals, priced_items
from .material_request import MaterialRequestCreate, MaterialRequestUpdate
from .price_quote import PriceQuoteCreate, PriceQuoteUpdate
from .purchase_order import PurchaseOrderCreate, PurchaseOrderUpdate
from .receipt import ReceiptCreate, ReceiptUpdate
from .record import (
    ArtifactOut,
    DeleteOut,
    NextNumberOut,
    Pagination,
    RecordList,
    RecordOut,
    RecordResponse,
    SequenceResetIn,
    SequenceResetOut,
)
from .rfq import RfqCreate, RfqUpdate
