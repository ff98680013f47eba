from __future__ import annotations

from dataclasses import dataclass
from typing import Any, Dict, Tuple, Type

from pydantic import BaseModel

from schemas import (
    MaterialRequestCreate,
    MaterialRequestUpdate,
    PriceQuoteCreate,
    PriceQuoteUpdate,
    PurchaseOrderCreate,
    PurchaseOrderUpdate,
    ReceiptCreate,
    ReceiptUpdate,
    RfqCreate,
    RfqUpdate,
    calculate_totals,
    priced_items,
)


@dataclass(frozen=True)
class DocumentType:
    """
    Everything the generic record service needs to know about one kind of
    document: where it is stored, how it is numbered and how it is printed.
    """
    key: str                      # "purchase-order"
    route: str                    # URL prefix, "purchase-orders"
    collection: str               # data/<collection>.json
    sequence: str                 # counter name, also the number prefix ("PO")
    template: str                 # template folder under templates_dir
    doc_code: str                 # form code printed in the footer
    title_en: str
    title_ar: str
    label_field: str              # feeds the artifact filename (supplier, client…)
    create_schema: Type[BaseModel]
    update_schema: Type[BaseModel]
    language_fields: Tuple[str, ...] = ()
    priced: bool = False          # items carry prices -> subtotal/tax/total
    tax_flag_field: str = ""      # boolean field switching tax on/off ("" = always on)

    def prepare(self, fields: Dict[str, Any]) -> Dict[str, Any]:
        """Derived values stored with the record (line totals, document totals)."""
        prepared = dict(fields)
        items = prepared.get("items") or []
        if self.priced:
            prepared["items"] = priced_items(items)
            include_tax = bool(prepared.get(self.tax_flag_field, True)) if self.tax_flag_field else True
            prepared.update(
                calculate_totals(prepared["items"], prepared.get("tax_rate"), include_tax)
            )
        else:
            prepared["items"] = [dict(i) for i in items]
        return prepared

    def label_for(self, record: Dict[str, Any]) -> str:
        return str(record.get(self.label_field) or "")


PURCHASE_ORDER = DocumentType(
    key="purchase-order",
    route="purchase-orders",
    collection="purchases",
    sequence="PO",
    template="purchase-order",
    doc_code="BO-PUR-05",
    title_en="PURCHASE ORDER",
    title_ar="أمر شراء",
    label_field="supplier",
    create_schema=PurchaseOrderCreate,
    update_schema=PurchaseOrderUpdate,
    language_fields=("supplier", "supplier_address", "receiver_name", "delivery_location", "notes"),
    priced=True,
)

PRICE_QUOTE = DocumentType(
    key="price-quote",
    route="price-quotes",
    collection="price_quotes",
    sequence="PQ",
    template="price-quote",
    doc_code="BO-SAL-06",
    title_en="PRICE QUOTATION",
    title_ar="عرض سعر",
    label_field="client_name",
    create_schema=PriceQuoteCreate,
    update_schema=PriceQuoteUpdate,
    language_fields=("client_name", "client_address", "client_city", "project_name", "notes"),
    priced=True,
    tax_flag_field="include_tax",
)

RECEIPT = DocumentType(
    key="receipt",
    route="receipts",
    collection="receipts",
    sequence="RN",
    template="receipt",
    doc_code="BO-RIC-01",
    title_en="DELIVERY RECEIPT",
    title_ar="سند استلام",
    label_field="to",
    create_schema=ReceiptCreate,
    update_schema=ReceiptUpdate,
    language_fields=("to", "address", "attention", "work_location", "additional_text", "notes"),
)

MATERIAL_REQUEST = DocumentType(
    key="material-request",
    route="material-requests",
    collection="materials",
    sequence="IMR",
    template="material-request",
    doc_code="BO-MAT-01",
    title_en="INTERNAL MATERIAL REQUEST",
    title_ar="طلب مواد داخلي",
    label_field="requester",
    create_schema=MaterialRequestCreate,
    update_schema=MaterialRequestUpdate,
    language_fields=("requester", "department", "project_name", "notes"),
)

RFQ = DocumentType(
    key="rfq",
    route="rfqs",
    collection="rfqs",
    sequence="RFQ",
    template="rfq",
    doc_code="BO-RFQ-01",
    title_en="REQUEST FOR QUOTATION",
    title_ar="طلب عرض سعر",
    label_field="supplier",
    create_schema=RfqCreate,
    update_schema=RfqUpdate,
    language_fields=("supplier", "supplier_contact", "project_name", "notes"),
)

DOCUMENT_TYPES: Dict[str, DocumentType] = {
    t.key: t for t in (PURCHASE_ORDER, PRICE_QUOTE, RECEIPT, MATERIAL_REQUEST, RFQ)
}
