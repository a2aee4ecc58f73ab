"""Lightning Network nodes and normalized invoice updates.

This module provides:
- LightningNode: abstract provider interface
- BitvoraNode: custodial provider, settlement pushed by webhook
- LndNode: self-hosted node, settlement pulled from an RPC stream
"""

from paybridge.lightning.bitvora import BitvoraNode, BitvoraPayment, BitvoraWebhook
from paybridge.lightning.lnd import InvoiceState, LndNode, LndRpc, PaymentStatus, map_invoice
from paybridge.lightning.models import (
    AddInvoiceRequest,
    AddInvoiceResponse,
    InvoiceCanceled,
    InvoiceCreated,
    InvoiceError,
    InvoiceSettled,
    InvoiceStream,
    InvoiceUnknown,
    InvoiceUpdate,
    PayInvoiceRequest,
    PayInvoiceResponse,
    payment_hash_of,
)
from paybridge.lightning.node import LightningNode

__all__ = [
    # Interface
    "LightningNode",
    # Models
    "AddInvoiceRequest",
    "AddInvoiceResponse",
    "PayInvoiceRequest",
    "PayInvoiceResponse",
    "payment_hash_of",
    # Updates
    "InvoiceUpdate",
    "InvoiceCreated",
    "InvoiceSettled",
    "InvoiceCanceled",
    "InvoiceUnknown",
    "InvoiceError",
    "InvoiceStream",
    # Providers
    "BitvoraNode",
    "BitvoraWebhook",
    "BitvoraPayment",
    "LndNode",
    "LndRpc",
    "InvoiceState",
    "PaymentStatus",
    "map_invoice",
]
