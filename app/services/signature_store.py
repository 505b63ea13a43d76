"""Opaque storage for signature images.

Signatures arrive from the signature pad either as bare base64 or as a
``data:image/png;base64,...`` URL. They are stored as blobs and referenced by id.
"""

import base64
import binascii
import hashlib
import re
from typing import Optional, Tuple

from sqlalchemy.orm import Session

from app.core.errors import NotFound, ValidationError
from app.models.signature import Signature

DEFAULT_CONTENT_TYPE = "image/png"
MAX_SIGNATURE_BYTES = 2 * 1024 * 1024

_DATA_URL_RE = re.compile(r"^data:(?P<content_type>[\w.+-]+/[\w.+-]+);base64,(?P<data>.*)$", re.DOTALL)


def decode_signature(value: Optional[str]) -> Tuple[str, bytes]:
    if value is None or not str(value).strip():
        raise ValidationError("Signature is required", field="signature")

    value = str(value).strip()
    content_type = DEFAULT_CONTENT_TYPE

    match = _DATA_URL_RE.match(value)
    if match:
        content_type = match.group("content_type")
        value = match.group("data")

    if not content_type.startswith("image/"):
        raise ValidationError("Signature must be an image", field="signature")

    try:
        data = base64.b64decode("".join(value.split()), validate=True)
    except (binascii.Error, ValueError) as exc:
        raise ValidationError("Signature is not valid base64", field="signature") from exc

    if not data:
        raise ValidationError("Signature is required", field="signature")
    if len(data) > MAX_SIGNATURE_BYTES:
        raise ValidationError("Signature image is too large", field="signature")

    return content_type, data


def save_signature(
    db: Session,
    *,
    company_id: int,
    value: Optional[str],
    created_by: Optional[str] = None,
) -> Signature:
    content_type, data = decode_signature(value)
    row = Signature(
        company_id=int(company_id),
        content_type=content_type,
        data=data,
        sha256=hashlib.sha256(data).hexdigest(),
        created_by=created_by,
    )
    db.add(row)
    db.flush()
    return row


def load_signature(db: Session, *, company_id: int, signature_id: str) -> Signature:
    row = (
        db.query(Signature)
        .filter(Signature.id == str(signature_id), Signature.company_id == int(company_id))
        .one_or_none()
    )
    if row is None:
        raise NotFound("Signature not found", signature_id=str(signature_id))
    return row


def to_data_url(row: Optional[Signature]) -> Optional[str]:
    if row is None:
        return None
    encoded = base64.b64encode(row.data).decode("ascii")
    return f"data:{row.content_type};base64,{encoded}"
