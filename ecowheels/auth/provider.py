"""Identity provider: credential and federated sign-in, sessions, sign-out."""

import inspect
from datetime import datetime, timedelta, timezone
from typing import Any, Awaitable, Callable
from uuid import uuid4

from jose import JWTError, jwt
from passlib.context import CryptContext

from ecowheels.auth.session import Credential, DriverSession
from ecowheels.config import get_settings
from ecowheels.errors import AuthenticationError, ConflictError, InvalidInputError
from ecowheels.models.driver import Driver, DriverStatus
from ecowheels.state.documents import DRIVERS, DocumentStore, WritePlan
from ecowheels.state.manager import StateManager
from ecowheels.utils.logging import get_logger

logger = get_logger(__name__)

pwd_context = CryptContext(schemes=["pbkdf2_sha256"], deprecated="auto")

MIN_PASSWORD_LENGTH = 8

AuthStateCallback = Callable[[str, DriverSession | None], Awaitable[None] | None]


class AuthStateSubscription:
    """Handle returned by ``on_auth_state_changed``."""

    def __init__(self, provider: "IdentityProvider", callback: AuthStateCallback):
        self._provider = provider
        self.callback = callback

    def unsubscribe(self) -> None:
        self._provider._remove_listener(self.callback)


class IdentityProvider:
    """Issues driver identities and the sessions bound to them."""

    def __init__(self, state_manager: StateManager, store: DocumentStore):
        self.state = state_manager
        self.store = store
        self.settings = get_settings()
        self._listeners: list[AuthStateCallback] = []

    def _account_key(self, uid: str) -> str:
        return f"account:{uid}"

    def _email_key(self, email: str) -> str:
        return f"account:email:{email.lower()}"

    def _session_key(self, session_id: str) -> str:
        return f"session:{session_id}"

    # Listeners

    def on_auth_state_changed(self, callback: AuthStateCallback) -> AuthStateSubscription:
        """Register a callback for sign-in (session) and sign-out (None) events."""
        self._listeners.append(callback)
        return AuthStateSubscription(self, callback)

    def _remove_listener(self, callback: AuthStateCallback) -> None:
        if callback in self._listeners:
            self._listeners.remove(callback)

    async def _notify(self, uid: str, session: DriverSession | None) -> None:
        for callback in list(self._listeners):
            try:
                result = callback(uid, session)
                if inspect.isawaitable(result):
                    await result
            except Exception as e:
                logger.error("auth_listener_failed", uid=uid, error=str(e))

    # Accounts

    async def sign_up(
        self,
        email: str,
        password: str,
        profile: dict[str, Any] | None = None,
    ) -> Credential:
        """Create an account and its driver profile, then open a session."""
        if len(password) < MIN_PASSWORD_LENGTH:
            raise InvalidInputError(
                f"Password must be at least {MIN_PASSWORD_LENGTH} characters"
            )

        email = email.lower()
        uid = str(uuid4())
        driver = Driver(uid=uid, email=email, status=DriverStatus.OFFLINE, **(profile or {}))
        if not await self.state.set_if_absent(self._email_key(email), uid):
            raise ConflictError("Email already registered")

        try:
            await self.state.set(
                self._account_key(uid),
                {
                    "uid": uid,
                    "email": email,
                    "password_hash": pwd_context.hash(password),
                    "provider": "password",
                    "created_at": datetime.now(timezone.utc).isoformat(),
                },
            )
            await self.store.set(DRIVERS, uid, driver.model_dump(mode="json"))
        except BaseException:
            # Release the email so the driver can register again
            logger.error("driver_registration_failed", uid=uid)
            await self.state.delete(self._account_key(uid))
            await self.state.delete(self._email_key(email))
            raise

        logger.info("driver_registered", uid=uid, provider="password")
        return await self._open_session(uid, email, "password")

    async def sign_in(self, email: str, password: str) -> Credential:
        """Verify email and password credentials."""
        uid = await self.state.get(self._email_key(email))
        account = await self.state.get(self._account_key(str(uid))) if uid else None

        if (
            not account
            or not account.get("password_hash")
            or not pwd_context.verify(password, account["password_hash"])
        ):
            logger.warning("sign_in_failed", email=email.lower())
            raise AuthenticationError("Invalid credentials")

        credential = await self._open_session(account["uid"], account["email"], "password")
        await self._mark_presence(credential.session, DriverStatus.ONLINE)
        return credential

    async def federated_sign_in(self, id_token: str) -> Credential:
        """Sign in with a token issued by the federated identity broker."""
        if not self.settings.federated_secret:
            raise AuthenticationError("Federated sign-in is not configured")

        try:
            claims = jwt.decode(
                id_token,
                self.settings.federated_secret,
                algorithms=[self.settings.jwt_algorithm],
                audience=self.settings.federated_audience,
            )
        except JWTError as e:
            logger.warning("federated_token_rejected", error=str(e))
            raise AuthenticationError("Invalid federated identity token") from e

        email = claims.get("email")
        if not email:
            raise AuthenticationError("Federated identity has no email address")
        email = email.lower()
        provider = claims.get("provider", "google")

        uid = await self.state.get(self._email_key(email))
        if uid is None:
            uid = str(uuid4())
            if not await self.state.set_if_absent(self._email_key(email), uid):
                uid = await self.state.get(self._email_key(email))
            else:
                await self.state.set(
                    self._account_key(uid),
                    {
                        "uid": uid,
                        "email": email,
                        "provider": provider,
                        "subject": claims.get("sub"),
                        "created_at": datetime.now(timezone.utc).isoformat(),
                    },
                )
                logger.info("driver_registered", uid=uid, provider=provider)
        uid = str(uid)

        if await self.store.get(DRIVERS, uid) is None:
            driver = Driver(
                uid=uid,
                email=email,
                full_name=claims.get("name"),
                photo_url=claims.get("picture"),
            )
            await self.store.set(DRIVERS, uid, driver.model_dump(mode="json"))

        credential = await self._open_session(uid, email, provider)
        await self._mark_presence(credential.session, DriverStatus.ONLINE)
        return credential

    async def sign_out(self, session: DriverSession) -> None:
        """End the session and mark the driver offline."""
        if session.invalidated:
            return

        await self._mark_presence(session, DriverStatus.OFFLINE)
        await self.state.delete(self._session_key(session.session_id))
        session.invalidate()

        logger.info("driver_signed_out", uid=session.uid, session_id=session.session_id)
        await self._notify(session.uid, None)

    # Sessions

    async def _open_session(self, uid: str, email: str | None, provider: str) -> Credential:
        now = datetime.now(timezone.utc)
        expires_at = now + timedelta(minutes=self.settings.access_token_expire_minutes)
        session_id = uuid4().hex

        await self.state.set(
            self._session_key(session_id),
            {"uid": uid, "email": email, "provider": provider, "created_at": now.isoformat()},
            ttl=self.settings.access_token_expire_minutes * 60,
        )

        token = jwt.encode(
            {"sub": uid, "sid": session_id, "exp": expires_at},
            self.settings.secret_key,
            algorithm=self.settings.jwt_algorithm,
        )

        session = DriverSession(
            session_id=session_id,
            uid=uid,
            email=email,
            provider=provider,
            created_at=now,
            expires_at=expires_at,
            profile=await self._load_profile(uid),
        )

        logger.info("driver_signed_in", uid=uid, provider=provider, session_id=session_id)
        await self._notify(uid, session)
        return Credential(uid=uid, access_token=token, expires_at=expires_at, session=session)

    async def resolve_session(self, token: str) -> DriverSession:
        """Rebuild the session behind an access token."""
        try:
            claims = jwt.decode(
                token,
                self.settings.secret_key,
                algorithms=[self.settings.jwt_algorithm],
            )
        except JWTError as e:
            raise AuthenticationError("Invalid or expired token") from e

        session_id = claims.get("sid")
        record = await self.state.get(self._session_key(session_id)) if session_id else None
        if not record or record.get("uid") != claims.get("sub"):
            raise AuthenticationError("Session has ended, please sign in again")

        return DriverSession(
            session_id=session_id,
            uid=record["uid"],
            email=record.get("email"),
            provider=record.get("provider", "password"),
            created_at=datetime.fromisoformat(record["created_at"]),
            expires_at=datetime.fromtimestamp(claims["exp"], tz=timezone.utc),
            profile=await self._load_profile(record["uid"]),
        )

    async def _load_profile(self, uid: str) -> Driver | None:
        data = await self.store.get(DRIVERS, uid)
        return Driver.model_validate(data) if data else None

    async def _mark_presence(self, session: DriverSession, status: DriverStatus) -> None:
        now = datetime.now(timezone.utc)
        field = "last_logged_in" if status == DriverStatus.ONLINE else "last_logged_out"

        def plan(current: dict[str, Any] | None) -> WritePlan:
            base = current or Driver(uid=session.uid, email=session.email).model_dump(mode="json")
            return WritePlan(updates={**base, "status": status, field: now})

        result = await self.store.transact(DRIVERS, session.uid, plan)
        session.profile = Driver.model_validate(result.document)
