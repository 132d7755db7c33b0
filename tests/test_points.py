import pytest
from django.utils import timezone

from shop.errors import InsufficientPointsError, NotFoundError, ValidationError
from shop.services import transfer_point

pytestmark = pytest.mark.django_db


@pytest.fixture
def sender(make_user):
    return make_user("sender", point=10)


@pytest.fixture
def receiver(make_user):
    return make_user("receiver", point=1)


def test_transfer_moves_points(sender, receiver):
    updated_sender, updated_receiver = transfer_point(sender.pk, receiver.pk, 4)

    assert updated_sender.point == 6
    assert updated_receiver.point == 5
    sender.refresh_from_db()
    receiver.refresh_from_db()
    assert (sender.point, receiver.point) == (6, 5)


def test_transfer_whole_balance(sender, receiver):
    updated_sender, _ = transfer_point(sender.pk, receiver.pk, 10)
    assert updated_sender.point == 0


def test_self_transfer_is_rejected(sender):
    with pytest.raises(ValidationError, match="Can't self transfer point"):
        transfer_point(sender.pk, sender.pk, 1)
    sender.refresh_from_db()
    assert sender.point == 10


def test_transfer_above_balance_changes_nothing(sender, receiver):
    with pytest.raises(InsufficientPointsError):
        transfer_point(sender.pk, receiver.pk, 11)

    sender.refresh_from_db()
    receiver.refresh_from_db()
    assert (sender.point, receiver.point) == (10, 1)


@pytest.mark.parametrize("amount", [0, -5, 2.5, True, "3"])
def test_transfer_amount_must_be_positive_int(sender, receiver, amount):
    with pytest.raises(ValidationError):
        transfer_point(sender.pk, receiver.pk, amount)


def test_unknown_receiver(sender):
    with pytest.raises(NotFoundError, match="Sender or Receiver not found"):
        transfer_point(sender.pk, sender.pk + 999, 1)


def test_deactivated_receiver(sender, make_user):
    gone = make_user("gone", deleted_at=timezone.now())
    with pytest.raises(NotFoundError):
        transfer_point(sender.pk, gone.pk, 1)
    sender.refresh_from_db()
    assert sender.point == 10


def test_receiver_beyond_the_id_range_is_not_found(sender):
    with pytest.raises(NotFoundError, match="Sender or Receiver not found"):
        transfer_point(sender.pk, 10**20, 1)
    sender.refresh_from_db()
    assert sender.point == 10
