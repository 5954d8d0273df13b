"""Per-contact notifier: channel selection, aggregation, isolation of failures."""

import asyncio
import time
from datetime import datetime, timezone

from shakti.crud import crud
from shakti.schemas.enums import AlertMethod
from shakti.schemas.notifications import NotificationPayload
from shakti.schemas.trusted_contacts import TrustedContactCreate
from shakti.utils.firebase import PushChannel
from shakti.utils.notifier import ContactNotifier

from conftest import FakeChannel, FakeMessaging


def _payload():
    return NotificationPayload(
        sos_id=1,
        user_name="Priya",
        user_phone="+919876540001",
        latitude=40.7128,
        longitude=-74.0060,
        address="New York, NY",
        message="Emergency SOS activated",
        timestamp=datetime.now(timezone.utc),
    )


def _contact(db, user, name="Mom", phone="+15550000001", email="mom@test.com"):
    return crud.create_trusted_contact(db, user.id, TrustedContactCreate(name=name, phone=phone, email=email))


def _notifier(sms=None, email=None, fcm=None, timeout=2):
    return ContactNotifier(
        sms or FakeChannel(AlertMethod.SMS),
        email or FakeChannel(AlertMethod.EMAIL),
        PushChannel(fcm or FakeMessaging()),
        channel_timeout=timeout,
    )


def test_push_alone_makes_contact_notified(db, make_user):
    """SMS and email both fail, but the contact is a registered user with a token: overall success."""
    user = make_user()
    make_user(name="Mom", email="MOM@test.com", fcm_token="mom-device")
    contact = _contact(db, user)
    fcm = FakeMessaging()

    notifier = _notifier(
        sms=FakeChannel(AlertMethod.SMS, fail=True),
        email=FakeChannel(AlertMethod.EMAIL, fail=True),
        fcm=fcm,
    )
    result = asyncio.run(notifier.notify(db, contact, _payload()))

    assert result.success is True
    assert result.successful_count == 1
    assert result.failed_count == 2
    assert sorted(r.method.value for r in result.results) == ["email", "push", "sms"]
    assert [m.token for m in fcm.single_messages] == ["mom-device"]


def test_all_channels_failing_without_registered_user(db, make_user):
    user = make_user()
    contact = _contact(db, user)

    notifier = _notifier(
        sms=FakeChannel(AlertMethod.SMS, fail=True),
        email=FakeChannel(AlertMethod.EMAIL, fail=True),
    )
    result = asyncio.run(notifier.notify(db, contact, _payload()))

    assert result.success is False
    assert len(result.results) == 2
    assert len(result.errors) == 2


def test_registered_user_without_token_gets_no_push(db, make_user):
    user = make_user()
    make_user(name="Mom", email="mom@test.com", fcm_token=None)
    contact = _contact(db, user)
    fcm = FakeMessaging()

    result = asyncio.run(_notifier(fcm=fcm).notify(db, contact, _payload()))

    assert AlertMethod.PUSH not in [r.method for r in result.results]
    assert fcm.single_messages == []


def test_contact_matched_by_phone(db, make_user):
    user = make_user()
    make_user(name="Dad", email="dad@elsewhere.com", phone="+15550000007", fcm_token="dad-device")
    contact = _contact(db, user, name="Dad", phone="+15550000007", email=None)
    fcm = FakeMessaging()

    result = asyncio.run(_notifier(fcm=fcm).notify(db, contact, _payload()))

    assert sorted(r.method.value for r in result.results) == ["push", "sms"]
    assert result.successful_count == 2


def test_raising_channel_only_fails_that_channel(db, make_user):
    user = make_user()
    contact = _contact(db, user)

    notifier = _notifier(sms=FakeChannel(AlertMethod.SMS, raises=RuntimeError("boom")))
    result = asyncio.run(notifier.notify(db, contact, _payload()))

    by_method = {r.method: r for r in result.results}
    assert by_method[AlertMethod.SMS].success is False
    assert "boom" in by_method[AlertMethod.SMS].error
    assert by_method[AlertMethod.EMAIL].success is True
    assert result.success is True


def test_slow_channel_times_out(db, make_user):
    user = make_user()
    contact = _contact(db, user)

    notifier = _notifier(sms=FakeChannel(AlertMethod.SMS, delay=0.5), timeout=0.05)
    result = asyncio.run(notifier.notify(db, contact, _payload()))

    by_method = {r.method: r for r in result.results}
    assert by_method[AlertMethod.SMS].success is False
    assert "timed out" in by_method[AlertMethod.SMS].error
    assert by_method[AlertMethod.EMAIL].success is True


def test_notify_all_keeps_contact_order(db, make_user):
    """The first contact's sends are slower, results still follow the contact list."""
    user = make_user()
    slow = _contact(db, user, name="Slow", phone="+15550000001", email=None)
    fast = _contact(db, user, name="Fast", phone="+15550000002", email=None)

    class SlowForOne(FakeChannel):
        def send(self, target, payload):
            if target == slow.phone:
                time.sleep(0.2)
            return super().send(target, payload)

    sms = SlowForOne(AlertMethod.SMS)
    results = asyncio.run(_notifier(sms=sms).notify_all(db, [slow, fast], _payload()))

    assert [r.name for r in results] == ["Slow", "Fast"]
    assert sms.targets == [fast.phone, slow.phone]
