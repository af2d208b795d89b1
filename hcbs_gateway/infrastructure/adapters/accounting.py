"""Accounting system integration (QuickBooks, Sage, NetSuite)"""

import csv
import io
import logging
import posixpath
from dataclasses import replace
from typing import Any, Dict, List, Optional

from hcbs_gateway.domain.enums import IntegrationProtocol
from hcbs_gateway.domain.exceptions import ConfigurationError
from hcbs_gateway.domain.models import (
    AccountingIntegrationConfig,
    IntegrationConfig,
    IntegrationResponse,
    RequestOptions,
    utcnow,
)
from hcbs_gateway.infrastructure.adapters.base import IntegrationAdapter
from hcbs_gateway.utils.date_utils import compact_timestamp
from hcbs_gateway.utils.money import format_cents

logger = logging.getLogger(__name__)

SYSTEM_ENDPOINTS: Dict[str, Dict[str, str]] = {
    "quickbooks": {
        "postPayment": "payment",
        "createInvoice": "invoice",
        "getCustomers": "query?query=select * from Customer",
        "getAccounts": "query?query=select * from Account",
        "syncFinancialData": "batch",
    },
    "sage": {
        "postPayment": "sales/payments",
        "createInvoice": "sales/invoices",
        "getCustomers": "customers",
        "getAccounts": "ledger_accounts",
        "syncFinancialData": "journals",
    },
    "netsuite": {
        "postPayment": "record/customerpayment",
        "createInvoice": "record/invoice",
        "getCustomers": "record/customer",
        "getAccounts": "record/account",
        "syncFinancialData": "restlet.nl",
    },
}

# Only methods with a real QuickBooks equivalent are sent; others are left off
QUICKBOOKS_PAYMENT_TYPES = {"cash": "Cash", "check": "Check", "credit_card": "CreditCard"}

NETSUITE_PAYMENT_METHOD_IDS = {"eft": "1", "check": "2", "credit_card": "3", "cash": "4", "other": "5"}
NETSUITE_OTHER_PAYMENT_METHOD = "5"

PAYMENT_BATCH_COLUMNS = ["PaymentID", "PayerID", "PaymentDate", "Amount", "Method", "ReferenceNumber"]


def _dollars(cents: Optional[int]) -> Optional[float]:
    return None if cents is None else round(cents / 100, 2)


def _method(payment: Dict[str, Any]) -> str:
    return str(payment.get("paymentMethod") or "").lower()


def render_payment_batch(payments: List[Dict[str, Any]]) -> str:
    buffer = io.StringIO()
    writer = csv.writer(buffer, lineterminator="\n")
    writer.writerow(PAYMENT_BATCH_COLUMNS)
    for payment in payments:
        writer.writerow(
            [
                payment.get("id", ""),
                payment.get("payerId", ""),
                payment.get("paymentDate", ""),
                format_cents(payment.get("paymentAmount")),
                payment.get("paymentMethod", ""),
                payment.get("referenceNumber") or "",
            ]
        )
    return buffer.getvalue()


class AccountingAdapter(IntegrationAdapter):
    """
    Posts payments and invoices to, and reads reference data from, an accounting system.

    Each supported system contributes an operation -> endpoint map and its
    own request body layout for payments and invoices. Amounts arrive in
    cents and are sent as dollars.
    """

    def __init__(self, config: IntegrationConfig, accounting_config: AccountingIntegrationConfig, **kwargs: Any):
        self.system = accounting_config.accounting_system.lower()
        endpoints = {"exportPaymentBatch": "payment-batches"}
        endpoints.update(SYSTEM_ENDPOINTS.get(self.system, {}))
        endpoints.update(config.endpoints)
        method_overrides = {"syncFinancialData": "POST", **config.method_overrides}
        super().__init__(replace(config, endpoints=endpoints, method_overrides=method_overrides), **kwargs)
        self.accounting_config = accounting_config

    async def call(self, operation: str, data: Any, options: RequestOptions) -> IntegrationResponse:
        if self.config.protocol == IntegrationProtocol.FILE:
            return await self._call_file(operation, data, options)

        if operation not in self.config.endpoints:
            raise ConfigurationError(
                f"Unsupported operation for {self.accounting_config.accounting_system}: {operation}",
                service=self.name,
                endpoint=operation,
            )
        return await self.dispatcher.dispatch(operation, self.shape_request(operation, data), options)

    async def _call_file(self, operation: str, data: Any, options: RequestOptions) -> IntegrationResponse:
        if operation != "exportPaymentBatch":
            return await self.dispatcher.dispatch(operation, data, options)

        payments = list((data or {}).get("payments", []))
        file_name = f"payment_batch_{compact_timestamp(utcnow())}.csv"
        if self.accounting_config.export_directory:
            file_name = posixpath.join(self.accounting_config.export_directory, file_name)

        response = await self.dispatcher.dispatch(
            "putFile", {"fileName": file_name, "content": render_payment_batch(payments)}, options
        )
        logger.info(
            "Payment batch exported",
            extra={"service": self.name, "payment_count": len(payments), "file": response.data.get("path")},
        )
        response.data["payment_count"] = len(payments)
        return response

    def shape_request(self, operation: str, data: Any) -> Any:
        """System-specific body for postPayment and createInvoice; other operations pass through"""
        if operation not in ("postPayment", "createInvoice") or not isinstance(data, dict):
            return data

        if self.system == "quickbooks":
            return self._quickbooks(operation, data)
        if self.system == "sage":
            return self._sage(operation, data)
        if self.system == "netsuite":
            return self._netsuite(operation, data)
        return data

    def _quickbooks(self, operation: str, data: Dict[str, Any]) -> Dict[str, Any]:
        if operation == "postPayment":
            body: Dict[str, Any] = {
                "CustomerRef": {"value": data.get("payerId")},
                "TotalAmt": _dollars(data.get("paymentAmount")),
                "TxnDate": data.get("paymentDate"),
            }
            payment_type = QUICKBOOKS_PAYMENT_TYPES.get(_method(data))
            if payment_type:
                body["PaymentType"] = payment_type
            return body

        return {
            "CustomerRef": {"value": data.get("clientId")},
            "TxnDate": data.get("invoiceDate"),
            "Line": [
                {
                    "DetailType": "SalesItemLineDetail",
                    "Amount": _dollars(item.get("amount")),
                    "SalesItemLineDetail": {
                        "ItemRef": {"value": item.get("serviceCode")},
                        "Qty": item.get("quantity"),
                        "UnitPrice": _dollars(item.get("unitPrice")),
                    },
                }
                for item in data.get("items", [])
            ],
        }

    def _sage(self, operation: str, data: Dict[str, Any]) -> Dict[str, Any]:
        if operation == "postPayment":
            payment = {
                "transaction_type_id": "RECEIPT",
                "contact_id": data.get("payerId"),
                "date": data.get("paymentDate"),
                "total_amount": _dollars(data.get("paymentAmount")),
            }
            if _method(data):
                payment["payment_method"] = _method(data)
            return {"payment": payment}

        return {
            "invoice": {
                "contact_id": data.get("clientId"),
                "date": data.get("invoiceDate"),
                "due_date": data.get("dueDate"),
                "invoice_lines": [
                    {
                        "description": item.get("description"),
                        "quantity": item.get("quantity"),
                        "unit_price": _dollars(item.get("unitPrice")),
                        "tax_rate_id": item.get("taxRateId"),
                    }
                    for item in data.get("items", [])
                ],
            }
        }

    def _netsuite(self, operation: str, data: Dict[str, Any]) -> Dict[str, Any]:
        if operation == "postPayment":
            return {
                "customer": {"id": data.get("payerId")},
                "payment": _dollars(data.get("paymentAmount")),
                "tranDate": data.get("paymentDate"),
                "paymentMethod": {"id": NETSUITE_PAYMENT_METHOD_IDS.get(_method(data), NETSUITE_OTHER_PAYMENT_METHOD)},
            }

        return {
            "entity": {"id": data.get("clientId")},
            "tranDate": data.get("invoiceDate"),
            "item": [
                {
                    "item": {"id": item.get("serviceCode")},
                    "quantity": item.get("quantity"),
                    "rate": _dollars(item.get("unitPrice")),
                    "amount": _dollars(item.get("amount")),
                }
                for item in data.get("items", [])
            ],
        }

    # Convenience wrappers over execute()

    async def post_payment(self, payment: Dict[str, Any], options: Optional[RequestOptions] = None) -> IntegrationResponse:
        return await self.execute("postPayment", payment, options)

    async def create_invoice(self, invoice: Dict[str, Any], options: Optional[RequestOptions] = None) -> IntegrationResponse:
        return await self.execute("createInvoice", invoice, options)

    async def get_customers(self, filters: Optional[Dict[str, Any]] = None, options: Optional[RequestOptions] = None) -> IntegrationResponse:
        return await self.execute("getCustomers", filters, options)

    async def get_accounts(self, filters: Optional[Dict[str, Any]] = None, options: Optional[RequestOptions] = None) -> IntegrationResponse:
        return await self.execute("getAccounts", filters, options)

    async def sync_financial_data(self, start_date: str, end_date: str, options: Optional[RequestOptions] = None) -> IntegrationResponse:
        return await self.execute("syncFinancialData", {"startDate": start_date, "endDate": end_date}, options)

    async def export_payment_batch(self, payments: List[Dict[str, Any]], options: Optional[RequestOptions] = None) -> IntegrationResponse:
        return await self.execute("exportPaymentBatch", {"payments": payments}, options)
