"""Builders for WhatsApp Cloud API webhook payloads used across tests."""

PHONE_NUMBER_ID = "111111111111111"
VERIFY_TOKEN = "verify-token-tenant-one"


def change(value: dict, field: str = "messages") -> dict:
    """Wrap one change value in a full delivery."""
    return {
        "object": "whatsapp_business_account",
        "entry": [{"id": "WABA_ID", "changes": [{"field": field, "value": value}]}],
    }


def text_message_value(
    message_id: str,
    sender: str = "923001234567",
    body: str = "Hello",
    phone_number_id: str = PHONE_NUMBER_ID,
    profile_name: str = "Ali",
    timestamp: str = "1700000000",
) -> dict:
    return {
        "messaging_product": "whatsapp",
        "metadata": {"display_phone_number": "15550001111", "phone_number_id": phone_number_id},
        "contacts": [{"profile": {"name": profile_name}, "wa_id": sender}],
        "messages": [
            {
                "from": sender,
                "id": message_id,
                "timestamp": timestamp,
                "type": "text",
                "text": {"body": body},
            }
        ],
    }


def text_message_payload(message_id: str, **kwargs) -> dict:
    """A ``messages`` delivery with one text message."""
    return change(text_message_value(message_id, **kwargs))


def status_payload(message_id: str, status: str, phone_number_id: str = PHONE_NUMBER_ID) -> dict:
    """A delivery carrying one status update."""
    return change(
        {
            "messaging_product": "whatsapp",
            "metadata": {"phone_number_id": phone_number_id},
            "statuses": [
                {
                    "id": message_id,
                    "status": status,
                    "timestamp": "1700000100",
                    "recipient_id": "923001234567",
                    "errors": [{"code": 131026, "title": "Message undeliverable"}] if status == "failed" else [],
                }
            ],
        }
    )
