import logging

from django.dispatch import Signal, receiver

logger = logging.getLogger(__name__)

# Sent after a payment is saved as PAID with the "generate receipt" box ticked.
# Receivers get ``payment`` and ``is_new_payment``.
receipt_requested = Signal()


@receiver(receipt_requested)
def log_receipt_request(sender, payment, is_new_payment, **kwargs):
    logger.info(
        "Receipt requested for payment %s (%s payment, paid %s)",
        payment.pk,
        "new" if is_new_payment else "existing",
        payment.paid_date,
    )
