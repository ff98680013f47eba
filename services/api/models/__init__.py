from .document_type import (
    DOCUMENT_TYPES,
    DocumentType,
    MATERIAL_REQUEST,
    PRICE_QUOTE,
    PURCHASE_ORDER,
    RECEIPT,
    RFQ,
)
from .record import SYSTEM_FIELDS, strip_system_fields
