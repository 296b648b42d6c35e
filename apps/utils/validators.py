import re
from rest_framework import serializers

# ASCII digits only: \d would also accept other scripts' digits
CARD_NUMBER_RE = re.compile(r"[0-9]{16}")
EXPIRY_RE = re.compile(r"(0[1-9]|1[0-2])/[0-9]{2}")
CVV_RE = re.compile(r"[0-9]{3,4}")
PHONE_RE = re.compile(r"\+?[0-9]{10,15}")


def validate_phone(value):
    if not PHONE_RE.fullmatch(str(value)):
        raise serializers.ValidationError("Invalid phone number format.")
    return value


def normalize_card_number(value):
    return re.sub(r"[\s-]", "", str(value or ""))


def validate_card_number(value):
    if not CARD_NUMBER_RE.fullmatch(normalize_card_number(value)):
        raise serializers.ValidationError("Card number must be 16 digits.")
    return value


def validate_expiry_date(value):
    if not EXPIRY_RE.fullmatch(str(value or "")):
        raise serializers.ValidationError("Expiry date must be in MM/YY format.")
    return value


def validate_cvv(value):
    if not CVV_RE.fullmatch(str(value or "")):
        raise serializers.ValidationError("CVV must be 3 or 4 digits.")
    return value
