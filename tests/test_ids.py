import sys
import os

sys.path.append(os.path.abspath(os.path.join(os.path.dirname(__file__), "..")))
from core.domain import PaymentMethod, BANK
from core.ids import ensure_canonical, is_canonical_id, new_id, normalize_ids


def test_new_id_is_canonical():
    value = new_id()
    assert len(value) == 36
    assert is_canonical_id(value)
    assert new_id() != value


def test_legacy_ids_are_not_canonical():
    assert not is_canonical_id("1")
    assert not is_canonical_id("")
    assert not is_canonical_id(None)
    assert is_canonical_id("550E8400-E29B-41D4-A716-446655440001")


def test_ensure_canonical_keeps_good_record():
    method = PaymentMethod(id=new_id(), type=BANK, name="BCA")
    assert ensure_canonical(method) is method


def test_ensure_canonical_replaces_legacy_id():
    method = PaymentMethod(id="1", type=BANK, name="BCA")
    fixed = ensure_canonical(method)
    assert is_canonical_id(fixed.id)
    assert fixed.name == "BCA"
    assert method.id == "1"


def test_normalize_ids():
    good = PaymentMethod(id=new_id(), type=BANK, name="A")
    legacy = PaymentMethod(id="2", type=BANK, name="B")

    fixed, changed = normalize_ids((good, legacy))
    assert changed
    assert fixed[0] is good
    assert is_canonical_id(fixed[1].id)

    again, changed_again = normalize_ids(fixed)
    assert not changed_again
    assert again is fixed
