import base64

import pytest

from app.core.errors import NotFound, ValidationError
from app.database import SessionLocal
from app.services import signature_store

PNG = b"\x89PNG\r\n\x1a\nstrokes"


def test_decode_data_url():
    value = "data:image/jpeg;base64," + base64.b64encode(PNG).decode()
    assert signature_store.decode_signature(value) == ("image/jpeg", PNG)


def test_decode_bare_base64_defaults_to_png():
    content_type, data = signature_store.decode_signature(base64.b64encode(PNG).decode())
    assert content_type == "image/png"
    assert data == PNG


@pytest.mark.parametrize(
    "value",
    [None, "", "   ", "data:image/png;base64,", "not base64 at all!", "data:text/plain;base64,aGk="],
)
def test_decode_rejects_bad_input(value):
    with pytest.raises(ValidationError):
        signature_store.decode_signature(value)


def test_decode_rejects_oversized_image(monkeypatch):
    monkeypatch.setattr(signature_store, "MAX_SIGNATURE_BYTES", 4)
    with pytest.raises(ValidationError):
        signature_store.decode_signature(base64.b64encode(PNG).decode())


def test_saved_signature_round_trips_as_data_url():
    value = "data:image/png;base64," + base64.b64encode(PNG).decode()

    db = SessionLocal()
    try:
        row = signature_store.save_signature(db, company_id=1, value=value, created_by="client-user")
        db.commit()

        loaded = signature_store.load_signature(db, company_id=1, signature_id=row.id)
        assert signature_store.to_data_url(loaded) == value
        assert len(loaded.sha256) == 64

        with pytest.raises(NotFound):
            signature_store.load_signature(db, company_id=2, signature_id=row.id)
    finally:
        db.close()
