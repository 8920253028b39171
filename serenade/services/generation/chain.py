"""
Chain trigger: enqueue the next generation step for an order without waiting for it.
Enqueue failures are logged and reported as False; the caller's response never fails on them.
A stalled order is picked up again by the stale sweep or a manual retry.
"""
import logging

logger = logging.getLogger(__name__)


def enqueue_generation(order_id: str) -> bool:
    try:
        from serenade.workers.tasks.generate_variant import generate_variant_step

        generate_variant_step.delay(order_id)
        return True
    except Exception as e:
        logger.error("generation_chain_enqueue_failed", extra={"order_id": order_id, "error": str(e)})
        return False
