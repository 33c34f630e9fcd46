"""Driver profile: reads, document uploads and profile completion."""

from datetime import datetime, timezone
from typing import Any, Callable

from ecowheels.auth.session import DriverSession
from ecowheels.errors import InvalidInputError, NotFoundError
from ecowheels.models.driver import (
    DocumentRef,
    DocumentType,
    Driver,
    ProfileCompletion,
    ProfileUpdate,
)
from ecowheels.state.documents import DRIVERS, DocumentStore, WritePlan
from ecowheels.storage import FileStorage
from ecowheels.utils.logging import get_logger

logger = get_logger(__name__)

REQUIRED_FIELDS = {
    "full_name": "Full name",
    "phone_number": "Phone number",
    "vehicle_type": "Vehicle type",
}


class ProfileService:
    """Manages the driver document keyed by the session uid."""

    def __init__(
        self,
        store: DocumentStore,
        storage: FileStorage,
        clock: Callable[[], datetime] | None = None,
    ):
        self.store = store
        self.storage = storage
        self._clock = clock or (lambda: datetime.now(timezone.utc))

    async def get_profile(self, session: DriverSession) -> Driver:
        session.require_active()
        data = await self.store.get(DRIVERS, session.uid)
        if data is None:
            raise NotFoundError("Driver profile not found")
        driver = Driver.model_validate(data)
        session.profile = driver
        return driver

    async def _merge(
        self, session: DriverSession, build: Callable[[Driver], dict[str, Any]]
    ) -> Driver:
        def plan(current: dict[str, Any] | None) -> WritePlan:
            if current is None:
                raise NotFoundError("Driver profile not found")
            return WritePlan(updates=build(Driver.model_validate(current)))

        result = await self.store.transact(DRIVERS, session.uid, plan)
        driver = Driver.model_validate(result.document)
        session.profile = driver
        return driver

    async def upload_document(
        self,
        session: DriverSession,
        document_type: DocumentType | str,
        filename: str,
        data: bytes,
        content_type: str | None = None,
    ) -> DocumentRef:
        """
        Store a license or insurance document and attach it to the profile.

        Args:
            session: Active driver session
            document_type: Which required document this is
            filename: Original file name, kept for display
            data: File contents
            content_type: MIME type reported by the client

        Returns:
            Reference to the stored document with its download URL
        """
        session.require_active()
        try:
            document_type = DocumentType(document_type)
        except ValueError as e:
            raise InvalidInputError(f"Unknown document type: {document_type}") from e
        if not data:
            raise InvalidInputError("Please select a file")

        now = self._clock()
        stamp = int(now.timestamp() * 1000)
        path = f"driver-documents/{session.uid}/{document_type.value}-{stamp}"
        handle = await self.storage.upload(path, data, content_type)
        document = DocumentRef(
            name=filename or document_type.value,
            path=handle.path,
            url=await self.storage.get_download_url(handle),
            uploaded_at=now,
        )

        def build(driver: Driver) -> dict[str, Any]:
            documents = driver.documents.model_copy(update={document_type.value: document})
            return {"documents": documents.model_dump(mode="json"), "updated_at": now}

        await self._merge(session, build)
        logger.info(
            "document_uploaded",
            driver_id=session.uid,
            document_type=document_type.value,
            path=handle.path,
            size=handle.size,
        )
        return document

    async def update_profile(self, session: DriverSession, update: ProfileUpdate) -> Driver:
        """Change editable fields without touching completion status."""
        session.require_active()
        fields = update.model_dump(exclude_unset=True, exclude_none=True)
        return await self._merge(session, lambda driver: {**fields, "updated_at": self._clock()})

    async def complete_profile(self, session: DriverSession, update: ProfileUpdate) -> Driver:
        """Apply the update and mark the profile complete.

        Full name, phone number, vehicle type and both documents are required.
        """
        session.require_active()
        fields = {
            key: value.strip() if isinstance(value, str) else value
            for key, value in update.model_dump(exclude_unset=True, exclude_none=True).items()
        }

        def build(driver: Driver) -> dict[str, Any]:
            merged = driver.model_copy(update=fields)
            missing = [label for key, label in REQUIRED_FIELDS.items() if not getattr(merged, key)]
            if missing:
                raise InvalidInputError(
                    f"Please fill in all required fields: {', '.join(missing)}"
                )
            missing_documents = merged.documents.missing()
            if missing_documents:
                raise InvalidInputError(
                    "Please upload all required documents: "
                    + ", ".join(d.value for d in missing_documents)
                )
            return {
                **fields,
                "profile_completion_status": ProfileCompletion.COMPLETE,
                "updated_at": self._clock(),
            }

        driver = await self._merge(session, build)
        logger.info("profile_completed", driver_id=session.uid, vehicle_type=driver.vehicle_type)
        return driver