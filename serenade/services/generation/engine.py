"""
VariantGenerationEngine: one step of the per-order generation state machine.

Each call claims at most one pending variant (lowest variant_number) with a conditional
UPDATE on generation_status='pending', renders it, stores it, and marks it complete or
failed. The caller chains another call while `remaining` > 0. A caller that loses the
claim does no work and reports no_pending_variants.

Provider and storage failures never escape generate_next_variant: they become the
variant's `failed` transition plus a FailedJob row with enough context to retry.
"""
import logging
import time
from dataclasses import dataclass
from datetime import datetime, timezone

import pybreaker
from sqlalchemy import func, update
from sqlalchemy.orm import Session

from serenade.core.config import settings
from serenade.models.customization import Customization, CustomizationTweak
from serenade.models.failed_job import JOB_TYPE_SONG_GENERATION
from serenade.models.order import ORDER_STATUS_GENERATING, ORDER_STATUS_PAID, Order
from serenade.models.song_variant import (
    VARIANT_COMPLETE,
    VARIANT_FAILED,
    VARIANT_GENERATING,
    VARIANT_PENDING,
    SongVariant,
    variant_storage_path,
)
from serenade.services.audio_generation import (
    AudioGenerationError,
    AudioGenerationProvider,
    AudioGenerationRequest,
    AudioProviderFactory,
    FailureType,
    generate_with_retry,
)
from serenade.services.failures.service import FailureRecoveryService
from serenade.services.generation.prompt_builder import brief_from_customization, build_prompt
from serenade.services.orders.service import OrderService
from serenade.storage.base import Storage
from serenade.utils.metrics import (
    generation_duration_seconds,
    variants_failed_total,
    variants_generated_total,
)

logger = logging.getLogger(__name__)

STATUS_GENERATED = "generated"
STATUS_NO_PENDING = "no_pending_variants"


class GenerationError(Exception):
    pass


@dataclass
class GenerationResult:
    status: str
    remaining: int = 0
    variant_id: str | None = None
    variant_number: int | None = None
    variant_status: str | None = None
    order_status: str | None = None

    def as_dict(self) -> dict:
        data = {"status": self.status, "remaining": self.remaining}
        if self.variant_id:
            data["variantId"] = self.variant_id
            data["variantNumber"] = self.variant_number
        return data


class VariantGenerationEngine:
    def __init__(
        self,
        db: Session,
        provider: AudioGenerationProvider | None = None,
        storage: Storage | None = None,
        breaker=None,
    ) -> None:
        self.db = db
        self._provider = provider
        self._storage = storage
        self._breaker = breaker

    @property
    def provider(self) -> AudioGenerationProvider:
        if self._provider is None:
            self._provider = AudioProviderFactory.create_from_settings(settings)
        return self._provider

    @property
    def storage(self) -> Storage:
        if self._storage is None:
            from serenade.storage.local import get_storage

            self._storage = get_storage()
        return self._storage

    @property
    def breaker(self):
        if self._breaker is None:
            from serenade.services.circuit_breaker import audio_provider_breaker

            self._breaker = audio_provider_breaker
        return self._breaker

    # ------------------------------------------------------------------

    def generate_next_variant(self, order_id: str) -> GenerationResult:
        order = self.db.query(Order).filter(Order.id == order_id).one_or_none()
        if order is None:
            logger.warning("generation_order_not_found", extra={"order_id": order_id})
            return GenerationResult(status=STATUS_NO_PENDING, remaining=0)

        variant = (
            self.db.query(SongVariant)
            .filter(SongVariant.order_id == order_id, SongVariant.generation_status == VARIANT_PENDING)
            .order_by(SongVariant.variant_number.asc())
            .first()
        )
        if variant is None:
            return GenerationResult(status=STATUS_NO_PENDING, remaining=0)

        if not self._claim(variant):
            logger.info(
                "variant_claim_lost",
                extra={"order_id": order_id, "variant_id": variant.id, "variant_number": variant.variant_number},
            )
            return GenerationResult(status=STATUS_NO_PENDING, remaining=0)

        self.db.execute(
            update(Order)
            .where(Order.id == order_id, Order.status == ORDER_STATUS_PAID)
            .values(status=ORDER_STATUS_GENERATING, updated_at=datetime.now(timezone.utc))
            .execution_options(synchronize_session=False)
        )
        self.db.commit()

        variant_status = self._render(order, variant)

        remaining = (
            self.db.query(func.count(SongVariant.id))
            .filter(SongVariant.order_id == order_id, SongVariant.generation_status == VARIANT_PENDING)
            .scalar()
        ) or 0
        order_status = None
        if remaining == 0:
            order_status = OrderService(self.db).finalize_order_if_settled(order_id)

        logger.info(
            "generation_step_done",
            extra={
                "order_id": order_id,
                "variant_id": variant.id,
                "variant_number": variant.variant_number,
                "status": variant_status,
                "remaining": remaining,
            },
        )
        return GenerationResult(
            status=STATUS_GENERATED,
            remaining=remaining,
            variant_id=variant.id,
            variant_number=variant.variant_number,
            variant_status=variant_status,
            order_status=order_status,
        )

    def _claim(self, variant: SongVariant) -> bool:
        result = self.db.execute(
            update(SongVariant)
            .where(SongVariant.id == variant.id, SongVariant.generation_status == VARIANT_PENDING)
            .values(generation_status=VARIANT_GENERATING, updated_at=datetime.now(timezone.utc))
            .execution_options(synchronize_session=False)
        )
        self.db.commit()
        return result.rowcount > 0

    def _render(self, order: Order, variant: SongVariant) -> str:
        # Plain values up front: after a rollback the ORM instances are expired.
        order_id, variant_id, number = order.id, variant.id, variant.variant_number
        storage_path = variant.storage_path or variant_storage_path(order_id, number)
        started = time.monotonic()
        try:
            request = self._build_request(order, variant)
            response = self.breaker.call(generate_with_retry, self.provider, request, settings)
            generation_duration_seconds.observe(time.monotonic() - started)
            if not response.audio_content:
                raise GenerationError("provider returned no audio")
            self.storage.upload(storage_path, response.audio_content, content_type="audio/mpeg")
        except Exception as e:
            self.db.rollback()
            self._mark_failed(order_id, variant_id, number, e)
            return VARIANT_FAILED

        result = self.db.execute(
            update(SongVariant)
            .where(SongVariant.id == variant_id, SongVariant.generation_status == VARIANT_GENERATING)
            .values(
                generation_status=VARIANT_COMPLETE,
                storage_path=storage_path,
                duration_ms=response.duration_ms,
                completed_at=datetime.now(timezone.utc),
                updated_at=datetime.now(timezone.utc),
            )
            .execution_options(synchronize_session=False)
        )
        self.db.commit()
        if result.rowcount == 0:
            # The stale sweep failed this variant while we were rendering; its verdict stands.
            logger.warning(
                "variant_completed_after_sweep",
                extra={"order_id": order_id, "variant_id": variant_id, "variant_number": number},
            )
            return VARIANT_FAILED
        variants_generated_total.inc()
        logger.info("variant_generated", extra={"order_id": order_id, "variant_id": variant_id, "variant_number": number})
        return VARIANT_COMPLETE

    def _build_request(self, order: Order, variant: SongVariant) -> AudioGenerationRequest:
        customization = None
        if order.customization_id:
            customization = (
                self.db.query(Customization)
                .filter(Customization.id == order.customization_id)
                .one_or_none()
            )
        if customization is None:
            raise GenerationError(f"customization not found for order {order.id}")
        tweak = (
            self.db.query(CustomizationTweak)
            .filter(
                CustomizationTweak.order_id == order.id,
                CustomizationTweak.created_at <= variant.created_at,
            )
            .order_by(CustomizationTweak.created_at.desc())
            .first()
        )
        brief = brief_from_customization(customization, tweak)
        return AudioGenerationRequest(prompt=build_prompt(brief), duration_ms=brief.song_length * 1000)

    def _mark_failed(self, order_id: str, variant_id: str, variant_number: int, error: Exception) -> None:
        failure_type = _failure_type(error)
        result = self.db.execute(
            update(SongVariant)
            .where(SongVariant.id == variant_id, SongVariant.generation_status == VARIANT_GENERATING)
            .values(
                generation_status=VARIANT_FAILED,
                completed_at=datetime.now(timezone.utc),
                updated_at=datetime.now(timezone.utc),
            )
            .execution_options(synchronize_session=False)
        )
        if result.rowcount > 0:
            FailureRecoveryService(self.db).record_failed_job(
                JOB_TYPE_SONG_GENERATION,
                {"orderId": order_id, "variantNumber": variant_number, "variantId": variant_id},
                error,
            )
        self.db.commit()
        variants_failed_total.labels(failure_type=failure_type).inc()
        logger.error(
            "variant_generation_failed",
            extra={
                "order_id": order_id,
                "variant_id": variant_id,
                "variant_number": variant_number,
                "failure_type": failure_type,
                "error": str(error) or type(error).__name__,
            },
        )


def _failure_type(error: Exception) -> str:
    if isinstance(error, AudioGenerationError):
        return error.detail.get("failure_type") or FailureType.TRANSPORT_TRANSIENT.value
    if isinstance(error, pybreaker.CircuitBreakerError):
        return FailureType.CIRCUIT_OPEN.value
    return "internal"
