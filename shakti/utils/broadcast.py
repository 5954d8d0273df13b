import logging
from concurrent.futures import ThreadPoolExecutor
from typing import Callable, List

from sqlalchemy.orm import Session

from shakti.crud import crud
from shakti.schemas.notifications import BroadcastResult, BroadcastSummary, NotificationPayload
from shakti.utils.firebase import FirebaseMessaging, build_multicast_message, is_invalid_token_error
from shakti.utils.sms import SmsChannel

logger = logging.getLogger(__name__)

SessionFactory = Callable[[], Session]


def _batches(items: List, size: int):
    for i in range(0, len(items), size):
        yield items[i:i + size]


class PushBroadcaster:
    """
    Multicast push to every registered user holding an FCM token.
    - Tokens are sent in batches of batch_size (FCM multicast limit is 500).
    - Tokens rejected as unregistered / invalid are nulled in one bulk update after all batches.
    - Never raises; errors come back as BroadcastResult(success=False, error=...).
    """

    def __init__(self, fcm: FirebaseMessaging, session_factory: SessionFactory, batch_size: int = 500):
        self.fcm = fcm
        self.session_factory = session_factory
        self.batch_size = max(1, min(batch_size, 500))

    def broadcast(self, payload: NotificationPayload) -> BroadcastResult:
        try:
            return self._broadcast(payload)
        except Exception as e:
            logger.exception("Push broadcast failed: %s", e)
            return BroadcastResult(success=False, error=str(e))

    def _broadcast(self, payload: NotificationPayload) -> BroadcastResult:
        if not self.fcm.available:
            return BroadcastResult(success=False, error=self.fcm.init_error or "Firebase not initialized")

        db = self.session_factory()
        try:
            tokens = [u.fcm_token for u in crud.get_users_with_push_token(db)]
            if not tokens:
                return BroadcastResult(total_users=0)

            sent = 0
            failed = 0
            invalid_tokens: List[str] = []

            for batch in _batches(tokens, self.batch_size):
                try:
                    response = self.fcm.send_each_for_multicast(build_multicast_message(batch, payload))
                except Exception as e:
                    # One failed batch should not stop the rest of the user base
                    logger.warning("Multicast batch of %s tokens failed: %s", len(batch), e)
                    failed += len(batch)
                    continue

                sent += response.success_count
                failed += response.failure_count
                for token, send_response in zip(batch, response.responses):
                    if not send_response.success and is_invalid_token_error(send_response.exception):
                        invalid_tokens.append(token)

            removed = 0
            if invalid_tokens:
                removed = crud.clear_fcm_tokens(db, invalid_tokens)

            result = BroadcastResult(
                total_users=len(tokens),
                sent=sent,
                failed=failed,
                invalid_tokens_removed=removed,
            )
            logger.info("📲 Push broadcast done: %s", result.model_dump())
            return result
        finally:
            db.close()


class SmsFallbackBroadcaster:
    """
    SMS to users without a usable push token, so the broadcast still reaches them.
    Sends run on a small thread pool; never raises.
    """

    def __init__(self, sms: SmsChannel, session_factory: SessionFactory, max_workers: int = 4):
        self.sms = sms
        self.session_factory = session_factory
        self.max_workers = max(1, max_workers)

    def broadcast(self, payload: NotificationPayload) -> BroadcastResult:
        try:
            return self._broadcast(payload)
        except Exception as e:
            logger.exception("SMS fallback broadcast failed: %s", e)
            return BroadcastResult(success=False, error=str(e))

    def _broadcast(self, payload: NotificationPayload) -> BroadcastResult:
        db = self.session_factory()
        try:
            phones = [u.phone for u in crud.get_users_without_push_token(db)]
        finally:
            db.close()

        if not phones:
            return BroadcastResult(total_users=0)

        with ThreadPoolExecutor(max_workers=self.max_workers) as pool:
            results = list(pool.map(lambda phone: self.sms.send(phone, payload), phones))

        sent = sum(1 for r in results if r.success)
        result = BroadcastResult(total_users=len(phones), sent=sent, failed=len(results) - sent)
        logger.info("📨 SMS fallback broadcast done: %s", result.model_dump())
        return result


def broadcast_to_all_users(
    push: PushBroadcaster,
    sms_fallback: SmsFallbackBroadcaster,
    payload: NotificationPayload,
) -> BroadcastSummary:
    """Push to everyone with a token, then SMS to everyone without one."""
    push_result = push.broadcast(payload)
    sms_result = sms_fallback.broadcast(payload)
    return BroadcastSummary(push=push_result, sms=sms_result)
