# Test data and fixtures

# Exit permit as posted by the requester's client
SAMPLE_EXIT_PERMIT_DATA = {
    "documentType": "exit_permit",
    "company": "acme",
    "recipient": "Pars Trading",
    "lineItems": [
        {"name": "Steel rods", "requestedQuantity": 10, "requestedWeight": 100},
        {"name": "Copper wire", "requestedQuantity": 5, "requestedWeight": 20},
    ],
    "destinations": [{"recipientName": "Pars Trading", "address": "Tehran"}],
    "details": {"driver": "Ali", "plate": "12A345"},
}

SAMPLE_PAYMENT_ORDER_DATA = {
    "documentType": "payment_order",
    "company": "acme",
    "recipient": "Pars Trading",
    "lineItems": [{"name": "Invoice 1402-17", "requestedQuantity": 1}],
    "details": {"amount": 125000000, "method": "transfer"},
}

# Browser PushSubscription as returned by pushManager.subscribe()
SAMPLE_PUSH_SUBSCRIPTION = {
    "endpoint": "https://fcm.googleapis.com/fcm/send/abc123",
    "expirationTime": None,
    "keys": {"p256dh": "BNcRdreALRFXTkOOUHK1EtK2wtaz5Ry4YfYCA", "auth": "tBHItJI5svbpez7KI4CCXg"},
}
