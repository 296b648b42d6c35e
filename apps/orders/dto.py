from dataclasses import dataclass, asdict

from apps.utils.exceptions import ValidationFailed

REQUIRED_ADDRESS_PARTS = ("line1", "city", "state", "postal_code", "country")


@dataclass(frozen=True)
class Address:
    line1: str
    city: str
    state: str
    postal_code: str
    country: str
    line2: str = ""

    def validate(self, label="address"):
        missing = [part for part in REQUIRED_ADDRESS_PARTS if not (getattr(self, part) or "").strip()]
        if missing:
            raise ValidationFailed(
                f"Incomplete {label}: {', '.join(missing)} required.",
                code="invalid_address",
                fields=missing,
            )
        return self

    def as_dict(self):
        return asdict(self)


@dataclass(frozen=True)
class ContactInfo:
    email: str
    phone: str = ""

    def validate(self):
        if not (self.email or "").strip() or "@" not in self.email:
            raise ValidationFailed("A valid customer email is required.", code="invalid_contact")
        return self
