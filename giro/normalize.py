"""Field cleanup and validation applied to every extracted row."""

from __future__ import annotations

from .constants import BRANCH_CODE_LENGTH
from .types import BankRecord


def _clean(value: object) -> str:
    if value is None:
        return ""
    return str(value).replace("\x00", "").strip()


def _split_postal_code(address: str) -> tuple[str, str] | None:
    # "1139 Budapest, Váci út 71." -> ("1139", "Budapest, Váci út 71.")
    if len(address) <= 5 or address.find(" ") != 4:
        return None
    head = address[:4]
    if not all("0" <= ch <= "9" for ch in head):
        return None
    return head, address[5:]


def normalize_record(
    bank_code: object,
    name: object,
    postal_code: object,
    address: object,
    bic: object = "",
) -> BankRecord:
    """Build a cleaned record from raw field values.

    Whitespace and NUL bytes are removed from every field. A postal code that
    the source did not separate from the address is recovered from the
    address' first four digits.
    """

    code = _clean(bank_code)
    clean_name = _clean(name)
    postal = _clean(postal_code)
    addr = _clean(address)

    if not postal:
        split = _split_postal_code(addr)
        if split is not None:
            postal, addr = split

    return BankRecord(
        bank_code=code,
        bic=_clean(bic),
        name=clean_name,
        postal_code=postal,
        address=addr,
    )


def is_valid_record(record: BankRecord) -> bool:
    return not record.is_empty() and len(record.bank_code) == BRANCH_CODE_LENGTH


def is_complete_record(record: BankRecord) -> bool:
    """Coarse completeness check used after a whole document is parsed."""

    return bool(record.bank_code and record.name and (record.postal_code or record.address))


def check_append(
    records: list[BankRecord],
    bank_code: object,
    name: object,
    postal_code: object,
    address: object,
    bic: object = "",
) -> BankRecord | None:
    """Normalize one raw row and append it to ``records`` when valid."""

    record = normalize_record(bank_code, name, postal_code, address, bic=bic)
    if not is_valid_record(record):
        return None
    records.append(record)
    return record


__all__ = [
    "check_append",
    "is_complete_record",
    "is_valid_record",
    "normalize_record",
]
