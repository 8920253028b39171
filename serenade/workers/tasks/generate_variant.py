"""
One link of the generation chain: render the next pending variant of an order, then
enqueue the following link while variants remain.
"""
import logging

from serenade.core.celery_app import celery_app
from serenade.db.session import SessionLocal
from serenade.services.generation.chain import enqueue_generation
from serenade.services.generation.engine import STATUS_GENERATED, VariantGenerationEngine

logger = logging.getLogger(__name__)


@celery_app.task(
    name="serenade.workers.tasks.generate_variant.generate_variant_step",
    time_limit=300,
    soft_time_limit=280,
)
def generate_variant_step(order_id: str) -> dict:
    db = SessionLocal()
    try:
        result = VariantGenerationEngine(db).generate_next_variant(order_id)
        chained = False
        if result.status == STATUS_GENERATED and result.remaining > 0:
            chained = enqueue_generation(order_id)
        return {**result.as_dict(), "chained": chained}
    except Exception:
        logger.exception("generate_variant_step_error", extra={"order_id": order_id})
        db.rollback()
        return {"status": "error", "remaining": 0}
    finally:
        db.close()
