"""Bot registry: credential resolution and admin lifecycle."""

import hmac
from datetime import datetime, timezone

from sqlalchemy import or_, select, update
from sqlalchemy.exc import IntegrityError

from botpay.common.errors import AuthenticationError, DuplicateKey, ValidationError
from botpay.common.logging import logger
from botpay.services.registry.models import Bot
from botpay.services.registry.schemas import BotCredentials, BotRegisterRequest


def _credentials(bot: Bot) -> BotCredentials:
    return BotCredentials(
        bot_id=bot.bot_id,
        name=bot.name,
        token=bot.token,
        api_key=bot.api_key,
        webhook_secret=bot.webhook_secret,
        allowed_currencies=tuple(code.upper() for code in (bot.allowed_currencies or [])),
    )


class BotRegistry:
    """Resolves bot tokens to credentials and manages bot records."""

    def __init__(self, session_factory, default_currencies: list[str]) -> None:
        self.session_factory = session_factory
        self.default_currencies = [code.upper() for code in default_currencies]

    def authenticate(self, token: str | None) -> BotCredentials:
        """Resolve an `x-bot-token` value to an active bot."""

        if not token:
            raise AuthenticationError("Missing bot token header")
        with self.session_factory() as db:
            bot = db.execute(select(Bot).where(Bot.token == token)).scalar_one_or_none()
            if bot is None or not hmac.compare_digest(bot.token, token) or not bot.is_active:
                raise AuthenticationError("Invalid bot token or bot is inactive")
            db.execute(
                update(Bot).where(Bot.bot_id == bot.bot_id).values(last_used_at=datetime.now(timezone.utc))
            )
            db.commit()
            return _credentials(bot)

    def credentials_for(self, bot_id: str) -> BotCredentials | None:
        """Credentials by immutable id, regardless of active flag."""

        with self.session_factory() as db:
            bot = db.get(Bot, bot_id)
            return _credentials(bot) if bot else None

    def register(self, req: BotRegisterRequest, registered_by: str) -> Bot:
        currencies = [code.strip().upper() for code in (req.allowed_currencies or self.default_currencies)]
        if not currencies or any(not code for code in currencies):
            raise ValidationError("allowedCurrencies must list at least one currency code")

        with self.session_factory() as db:
            existing = db.execute(
                select(Bot).where(or_(Bot.name == req.name, Bot.token == req.token))
            ).scalar_one_or_none()
            if existing:
                raise DuplicateKey("Bot with this name or token already exists")
            bot = Bot(
                name=req.name,
                token=req.token,
                api_key=req.use_gateway.api_key,
                webhook_secret=req.use_gateway.webhook_secret,
                allowed_currencies=currencies,
                is_active=True,
                registered_by=registered_by,
            )
            db.add(bot)
            try:
                db.commit()
            except IntegrityError as exc:
                db.rollback()
                raise DuplicateKey("Bot with this name or token already exists") from exc
        logger.info("bot_registered name=%s bot_id=%s", bot.name, bot.bot_id)
        return bot

    def list_bots(self) -> list[Bot]:
        with self.session_factory() as db:
            return list(db.execute(select(Bot).order_by(Bot.created_at)).scalars())

    def set_active(self, name: str, active: bool) -> Bot | None:
        with self.session_factory() as db:
            bot = db.execute(select(Bot).where(Bot.name == name)).scalar_one_or_none()
            if bot is None:
                return None
            bot.is_active = active
            db.commit()
        logger.info("bot_active_changed name=%s active=%s", name, active)
        return bot
