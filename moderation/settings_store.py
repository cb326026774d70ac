"""
Escalation settings sources.

The gateway and scheduler receive a store at construction and read a fresh
EscalationSettings value from it; nothing else holds these numbers.
"""
import logging

from pydantic import ValidationError
from redis.asyncio import Redis

from moderation.domain import EscalationSettings
from moderation.errors import ReportValidationError
from moderation.settings import Settings

logger = logging.getLogger(__name__)

SETTINGS_KEY = "moderation:settings"


def settings_from_env(settings: Settings) -> EscalationSettings:
    return EscalationSettings(
        auto_escalation_hours=settings.AUTO_ESCALATION_HOURS,
        admin_report_escalation_hours=settings.ADMIN_REPORT_ESCALATION_HOURS,
        reminder_before_escalation_hours=settings.REMINDER_BEFORE_ESCALATION_HOURS,
    )


class StaticSettingsStore:
    def __init__(self, value: EscalationSettings):
        self.value = value

    async def get(self) -> EscalationSettings:
        return self.value


class RedisSettingsStore:
    """Admin overrides kept in a Redis hash on top of environment defaults."""

    def __init__(self, redis: Redis, defaults: EscalationSettings):
        self.redis = redis
        self.defaults = defaults

    async def get(self) -> EscalationSettings:
        overrides = await self.redis.hgetall(SETTINGS_KEY)
        if not overrides:
            return self.defaults
        known = {
            k: v for k, v in overrides.items() if k in EscalationSettings.model_fields
        }
        try:
            return EscalationSettings.model_validate(
                {**self.defaults.model_dump(), **known}
            )
        except ValidationError:
            logger.warning(f"Ignoring invalid moderation settings in {SETTINGS_KEY}")
            return self.defaults

    async def update(self, changes: dict) -> EscalationSettings:
        """
        Validate and persist a partial update.

        Raises:
            ReportValidationError: a value is not a positive finite number.
        """
        current = await self.get()
        try:
            updated = EscalationSettings.model_validate(
                {**current.model_dump(), **{k: v for k, v in changes.items() if v is not None}}
            )
        except ValidationError as exc:
            raise ReportValidationError(
                [err["msg"].removeprefix("Value error, ") for err in exc.errors()]
            )
        await self.redis.hset(
            SETTINGS_KEY, mapping={k: str(v) for k, v in updated.model_dump().items()}
        )
        logger.info(f"Moderation settings updated: {updated.model_dump()}")
        return updated
