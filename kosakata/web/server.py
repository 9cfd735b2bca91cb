"""FastAPI application serving the Kosakata admin and learner clients."""

from __future__ import annotations

import contextvars
import logging
import uuid
from datetime import datetime
from typing import Any, Callable, Dict, List, Optional, Type, TypeVar

from fastapi import Depends, FastAPI, Query, Request, status
from fastapi.middleware.cors import CORSMiddleware
from fastapi.staticfiles import StaticFiles
from pydantic import BaseModel, ConfigDict, Field, ValidationError
from starlette.datastructures import FormData
from starlette.types import ASGIApp, Receive, Scope, Send

from ..config import AppConfig
from ..services.accounts import AdminService, LearnerService
from ..services.auth import ROLE_ADMIN, TokenService
from ..services.culture import CultureService
from ..services.dashboard import DashboardService
from ..services.entries import EntryService, TopicService, VocabularyInput
from ..services.errors import PermissionDenied, ValidationFailure
from ..services.events import emit_db_event, emit_structured_event
from ..services.periods import DEFAULT_PERIOD, Period
from ..services.storage import (
    AdminRecord,
    ContentRepository,
    CultureEntryRecord,
    CultureTopicRecord,
    EntryRecord,
    LanguageRecord,
    LearnerRecord,
    TopicRecord,
    VisitorLogRecord,
    VocabularyRecord,
)
from ..services.uploads import (
    CULTURE_ENTRY_UPLOADS,
    CULTURE_TOPIC_UPLOADS,
    ENTRY_UPLOADS,
    UploadBatch,
    UploadPolicy,
    collect_form_files,
    store_uploads,
)
from .dependencies import require_admin, require_superadmin
from .errors import ApiError, install_error_handlers, translate_error

ModelT = TypeVar("ModelT", bound=BaseModel)

UPLOADS_MOUNT = "/uploads"

_REQUEST_ID_VAR: contextvars.ContextVar[Optional[str]] = contextvars.ContextVar(
    "kosakata_request_id",
    default=None,
)
_ACTOR_VAR: contextvars.ContextVar[Optional[str]] = contextvars.ContextVar(
    "kosakata_actor",
    default=None,
)


def _new_correlation_id() -> str:
    return uuid.uuid4().hex


def _collect_correlation_context() -> Dict[str, str]:
    context: Dict[str, str] = {}
    request_id = _REQUEST_ID_VAR.get()
    if request_id:
        context["request_id"] = str(request_id)
    actor = _ACTOR_VAR.get()
    if actor:
        context["actor"] = str(actor)
    return context


class RequestContextMiddleware:
    """Assign a correlation identifier to each request and expose it via contextvars."""

    def __init__(self, app: ASGIApp) -> None:
        self.app = app

    async def __call__(self, scope: Scope, receive: Receive, send: Send) -> None:
        if scope.get("type") != "http":
            await self.app(scope, receive, send)
            return

        request_id = _new_correlation_id()
        scope_state = scope.get("state")
        if scope_state is None:
            scope_state = {}
            scope["state"] = scope_state
        if isinstance(scope_state, dict):
            scope_state["request_id"] = request_id
        else:
            setattr(scope_state, "request_id", request_id)

        method = scope.get("method")
        actor = f"request:{method.upper()}" if isinstance(method, str) else "request"
        request_token = _REQUEST_ID_VAR.set(request_id)
        actor_token = _ACTOR_VAR.set(actor)
        try:
            await self.app(scope, receive, send)
        finally:
            _ACTOR_VAR.reset(actor_token)
            _REQUEST_ID_VAR.reset(request_token)


class ContextualLoggerAdapter(logging.LoggerAdapter):
    """Logger adapter that injects correlation context into records."""

    def process(self, msg: Any, kwargs: Dict[str, Any]) -> tuple[Any, Dict[str, Any]]:  # type: ignore[override]
        extra: Dict[str, Any] = dict(self.extra)
        provided = kwargs.get("extra")
        if isinstance(provided, dict):
            extra.update(provided)
        for key, value in _collect_correlation_context().items():
            extra.setdefault(key, value)
        kwargs["extra"] = extra
        return msg, kwargs


LOGGER = ContextualLoggerAdapter(logging.getLogger(__name__), {})
EVENT_LOGGER = ContextualLoggerAdapter(logging.getLogger("kosakata.web.events"), {})


def _log_event(message: str, **context: Any) -> None:
    emit_structured_event(
        "APP_EVENT",
        message,
        payload=context,
        correlation=_collect_correlation_context(),
        logger=EVENT_LOGGER,
    )


def _repository_event_emitter(event_type: str, message: str, **kwargs: Any) -> None:
    correlation = _collect_correlation_context()
    if event_type == "DB_QUERY":
        emit_db_event(message, correlation=correlation, logger=EVENT_LOGGER, **kwargs)
    else:
        emit_structured_event(event_type, message, correlation=correlation, logger=EVENT_LOGGER, **kwargs)


# ----------------------------------------------------------------------
# Payloads
# ----------------------------------------------------------------------
class TopicPayload(BaseModel):
    name: str


class VocabularyItemPayload(BaseModel):
    model_config = ConfigDict(populate_by_name=True)

    id: Optional[int] = Field(default=None, alias="_id")
    vocab: str
    language_code: Optional[str] = Field(default=None, alias="languageCode")
    new_audio_index: Optional[int] = Field(default=None, alias="newAudioIndex")


class EntryDataPayload(BaseModel):
    model_config = ConfigDict(populate_by_name=True)

    vocabularies: List[VocabularyItemPayload] = Field(default_factory=list, alias="entryVocabularies")


class LocalizedValue(BaseModel):
    model_config = ConfigDict(populate_by_name=True)

    language_code: str = Field(default="", alias="languageCode")
    value: str = ""


class CultureTopicDataPayload(BaseModel):
    name: Optional[List[LocalizedValue]] = None


class CultureEntryDataPayload(BaseModel):
    title: Optional[List[LocalizedValue]] = None
    description: Optional[List[LocalizedValue]] = None


class LearnerPayload(BaseModel):
    model_config = ConfigDict(populate_by_name=True)

    name: str = Field(alias="learnerName")
    city: str = Field(default="", alias="learnerCity")


class VisitorLogPayload(BaseModel):
    model_config = ConfigDict(populate_by_name=True)

    learner_id: int = Field(alias="learnerId")
    topic_id: Optional[int] = Field(default=None, alias="topicId")


class LoginPayload(BaseModel):
    model_config = ConfigDict(populate_by_name=True)

    email: str = Field(default="", alias="adminEmail")
    password: str = Field(default="", alias="adminPassword")


class AdminCreatePayload(BaseModel):
    model_config = ConfigDict(populate_by_name=True)

    name: str = Field(alias="adminName")
    email: str = Field(alias="adminEmail")
    password: str = Field(alias="adminPassword")
    role: str = ROLE_ADMIN


class AdminUpdatePayload(BaseModel):
    model_config = ConfigDict(populate_by_name=True)

    name: Optional[str] = Field(default=None, alias="adminName")
    email: Optional[str] = Field(default=None, alias="adminEmail")
    role: Optional[str] = None
    new_password: Optional[str] = Field(default=None, alias="newPassword")
    confirm_password: Optional[str] = Field(default=None, alias="confirmPassword")


class PasswordChangePayload(BaseModel):
    model_config = ConfigDict(populate_by_name=True)

    new_password: str = Field(default="", alias="newPassword")
    confirm_password: str = Field(default="", alias="confirmPassword")


class SettingsPayload(BaseModel):
    model_config = ConfigDict(populate_by_name=True)

    max_admins: int = Field(alias="maxAdmins")


# ----------------------------------------------------------------------
# Serialisation
# ----------------------------------------------------------------------
def _media_url(relative_path: Optional[str]) -> Optional[str]:
    if not relative_path:
        return None
    return f"{UPLOADS_MOUNT}/{relative_path.lstrip('/')}"


def _localized(values: List[LocalizedValue]) -> List[Dict[str, str]]:
    return [value.model_dump(by_alias=True) for value in values]


def _serialize_language(record: LanguageRecord) -> Dict[str, Any]:
    return {"_id": record.id, "languageName": record.name, "languageCode": record.code}


def _serialize_topic(record: TopicRecord) -> Dict[str, Any]:
    return {"_id": record.id, "name": record.name, "position": record.position}


def _serialize_vocabulary(record: VocabularyRecord) -> Dict[str, Any]:
    return {
        "_id": record.id,
        "vocab": record.vocab,
        "audioUrl": _media_url(record.audio_path),
        "language": record.language_code,
        "translation": list(record.translation_ids),
    }


def _serialize_entry(entries: EntryService, record: EntryRecord) -> Dict[str, Any]:
    return {
        "_id": record.id,
        "topic": record.topic_id,
        "position": record.position,
        "entryImagePath": _media_url(record.image_path),
        "entryVocabularies": [
            _serialize_vocabulary(vocabulary) for vocabulary in entries.vocabularies_for(record)
        ],
    }


def _serialize_culture_topic(record: CultureTopicRecord) -> Dict[str, Any]:
    return {
        "_id": record.id,
        "name": record.name,
        "imagePath": _media_url(record.image_path),
        "createdAt": record.created_at,
        "updatedAt": record.updated_at,
    }


def _serialize_culture_entry(record: CultureEntryRecord) -> Dict[str, Any]:
    return {
        "_id": record.id,
        "cultureTopic": record.culture_topic_id,
        "title": record.title,
        "description": record.description,
        "imagePath": _media_url(record.image_path),
        "videoUrl": _media_url(record.video_path),
        "createdAt": record.created_at,
        "updatedAt": record.updated_at,
    }


def _serialize_learner(record: LearnerRecord) -> Dict[str, Any]:
    return {
        "_id": record.id,
        "learnerName": record.name,
        "learnerCity": record.city,
        "createdAt": record.created_at,
    }


def _serialize_visitor_log(record: VisitorLogRecord) -> Dict[str, Any]:
    return {
        "_id": record.id,
        "learner": record.learner_id,
        "topic": record.topic_id,
        "timestamp": record.timestamp,
    }


def _serialize_admin(record: AdminRecord) -> Dict[str, Any]:
    return {
        "_id": record.id,
        "adminName": record.name,
        "adminEmail": record.email,
        "role": record.role,
        "createdAt": record.created_at,
    }


def _parse_form_json(
    form: FormData, field: str, model: Type[ModelT], *, required: bool = True
) -> ModelT:
    """Validate the JSON document sent in the text part *field* of a form."""

    raw = form.get(field)
    if not isinstance(raw, str) or not raw.strip():
        if required:
            raise ValidationFailure(f"Form field '{field}' is required.")
        return model()
    try:
        return model.model_validate_json(raw)
    except ValidationError as error:
        first = error.errors()[0] if error.errors() else {}
        location = ".".join(str(part) for part in first.get("loc", ())) or field
        raise ValidationFailure(
            f"Invalid '{field}' ({location}): {first.get('msg', 'malformed JSON')}"
        ) from error


def _account_error(error: Exception, message: str) -> ApiError:
    """Account routes report rejected input as 400 instead of 500."""

    if isinstance(error, ValidationFailure):
        return ApiError(400, str(error))
    return translate_error(error, message)


def _vocabulary_inputs(payload: EntryDataPayload) -> List[VocabularyInput]:
    return [
        VocabularyInput(
            vocab=item.vocab,
            language_code=item.language_code,
            new_audio_index=item.new_audio_index,
            id=item.id,
        )
        for item in payload.vocabularies
    ]


def create_app(
    repository: ContentRepository,
    *,
    config: AppConfig,
    root_path: str | None = None,
    clock: Callable[[], datetime] = datetime.now,
) -> FastAPI:
    """Return a configured FastAPI application."""

    app = FastAPI(
        title="Kosakata",
        description="Multilingual vocabulary and culture content service",
        root_path=(root_path or "").rstrip("/"),
    )

    configure_emitter = getattr(repository, "configure_event_emitter", None)
    if callable(configure_emitter):
        configure_emitter(_repository_event_emitter)

    app.add_middleware(RequestContextMiddleware)
    app.add_middleware(
        CORSMiddleware,
        allow_origins=["*"],
        allow_methods=["*"],
        allow_headers=["*"],
    )
    install_error_handlers(app, production=config.is_production)

    uploads_root = config.uploads_root
    topics = TopicService(repository, uploads_root=uploads_root)
    entries = EntryService(repository, uploads_root=uploads_root)
    culture = CultureService(repository, uploads_root=uploads_root)
    learners = LearnerService(repository, clock=clock)
    admins = AdminService(repository, TokenService(config.secret_key))
    dashboard = DashboardService(repository, clock=clock)

    app.state.config = config
    app.state.repository = repository
    app.state.admin_service = admins

    app.mount(
        UPLOADS_MOUNT,
        StaticFiles(directory=uploads_root, check_dir=False),
        name="uploads",
    )

    async def _store(policy: UploadPolicy, form: FormData) -> UploadBatch:
        return await store_uploads(
            policy,
            collect_form_files(form.multi_items()),
            root=uploads_root,
            default_max_bytes=config.max_upload_bytes,
        )

    # ------------------------------------------------------------------
    # Languages
    # ------------------------------------------------------------------
    @app.get("/api/languages")
    async def list_languages() -> Dict[str, Any]:
        languages = [_serialize_language(record) for record in repository.list_languages()]
        return {"count": len(languages), "data": languages}

    # ------------------------------------------------------------------
    # Topics
    # ------------------------------------------------------------------
    @app.get("/api/topics")
    async def list_topics() -> Dict[str, Any]:
        records = [_serialize_topic(record) for record in topics.list_topics()]
        return {"count": len(records), "data": records}

    @app.get("/api/topics/{topic_id}")
    async def get_topic(topic_id: int) -> Dict[str, Any]:
        try:
            record = topics.get_topic(topic_id)
        except Exception as error:
            raise translate_error(error, "Failed to fetch the topic.") from error
        return {"data": _serialize_topic(record)}

    @app.post("/api/topics", status_code=status.HTTP_201_CREATED)
    async def create_topic(
        payload: TopicPayload, admin: AdminRecord = Depends(require_admin)
    ) -> Dict[str, Any]:
        _log_event("Creating topic", name=payload.name, admin_id=admin.id)
        try:
            record = topics.create_topic(payload.name)
        except Exception as error:
            raise translate_error(error, "Failed to create the topic.") from error
        return {"message": "Topic created.", "data": _serialize_topic(record)}

    @app.put("/api/topics/{topic_id}")
    async def update_topic(
        topic_id: int, payload: TopicPayload, admin: AdminRecord = Depends(require_admin)
    ) -> Dict[str, Any]:
        _log_event("Renaming topic", topic_id=topic_id, admin_id=admin.id)
        try:
            record = topics.rename_topic(topic_id, payload.name)
        except Exception as error:
            raise translate_error(error, "Failed to update the topic.") from error
        return {"message": "Topic updated.", "data": _serialize_topic(record)}

    @app.delete("/api/topics/{topic_id}")
    async def delete_topic(
        topic_id: int, admin: AdminRecord = Depends(require_admin)
    ) -> Dict[str, Any]:
        _log_event("Deleting topic", topic_id=topic_id, admin_id=admin.id)
        try:
            removed = topics.delete_topic(topic_id)
        except Exception as error:
            raise translate_error(error, "Failed to delete the topic.") from error
        _log_event("Deleted topic", topic_id=topic_id, removed_files=removed)
        return {"message": "Topic and all of its entries deleted."}

    # ------------------------------------------------------------------
    # Entries
    # ------------------------------------------------------------------
    @app.get("/api/topics/{topic_id}/entries")
    async def list_entries(topic_id: int) -> Dict[str, Any]:
        try:
            records = entries.list_entries(topic_id)
        except Exception as error:
            raise translate_error(error, "Failed to fetch entries.") from error
        data = [_serialize_entry(entries, record) for record in records]
        return {"count": len(data), "data": data}

    @app.get("/api/entries/{entry_id}")
    async def get_entry(entry_id: int) -> Dict[str, Any]:
        try:
            record = entries.get_entry(entry_id)
        except Exception as error:
            raise translate_error(error, "Failed to fetch the entry.") from error
        return {"data": _serialize_entry(entries, record)}

    @app.post("/api/topics/{topic_id}/entries", status_code=status.HTTP_201_CREATED)
    async def create_entry(
        topic_id: int, request: Request, admin: AdminRecord = Depends(require_admin)
    ) -> Dict[str, Any]:
        _log_event("Creating entry", topic_id=topic_id, admin_id=admin.id)
        form = await request.form()
        try:
            payload = _parse_form_json(form, "entryData", EntryDataPayload)
            batch = await _store(ENTRY_UPLOADS, form)
            record = entries.create_entry(topic_id, _vocabulary_inputs(payload), batch)
        except Exception as error:
            api_error = translate_error(error, "An error occurred while creating the entry.")
            if api_error.status_code == 404:
                api_error = ApiError(500, "An error occurred while creating the entry.", api_error.message)
            raise api_error from error
        finally:
            await form.close()
        _log_event("Created entry", entry_id=record.id, topic_id=topic_id)
        return {"message": "Entry created.", "data": _serialize_entry(entries, record)}

    @app.put("/api/entries/{entry_id}")
    async def update_entry(
        entry_id: int, request: Request, admin: AdminRecord = Depends(require_admin)
    ) -> Dict[str, Any]:
        _log_event("Updating entry", entry_id=entry_id, admin_id=admin.id)
        form = await request.form()
        try:
            payload = _parse_form_json(form, "entryData", EntryDataPayload)
            batch = await _store(ENTRY_UPLOADS, form)
            record = entries.update_entry(entry_id, _vocabulary_inputs(payload), batch)
        except Exception as error:
            raise translate_error(error, "An error occurred while updating the entry.") from error
        finally:
            await form.close()
        return {"message": "Entry updated.", "data": _serialize_entry(entries, record)}

    @app.delete("/api/entries/{entry_id}")
    async def delete_entry(
        entry_id: int, admin: AdminRecord = Depends(require_admin)
    ) -> Dict[str, Any]:
        _log_event("Deleting entry", entry_id=entry_id, admin_id=admin.id)
        try:
            entries.delete_entry(entry_id)
        except Exception as error:
            raise translate_error(error, "Failed to delete the entry.") from error
        return {"message": "Entry deleted."}

    # ------------------------------------------------------------------
    # Culture topics
    # ------------------------------------------------------------------
    @app.get("/api/culture-topics")
    async def list_culture_topics() -> Dict[str, Any]:
        data = [_serialize_culture_topic(record) for record in culture.list_topics()]
        return {"count": len(data), "data": data}

    @app.get("/api/culture-topics/{topic_id}")
    async def get_culture_topic(topic_id: int) -> Dict[str, Any]:
        try:
            record = culture.get_topic(topic_id)
        except Exception as error:
            raise translate_error(error, "Failed to fetch the culture topic.") from error
        return {"data": _serialize_culture_topic(record)}

    @app.post("/api/culture-topics", status_code=status.HTTP_201_CREATED)
    async def create_culture_topic(
        request: Request, admin: AdminRecord = Depends(require_admin)
    ) -> Dict[str, Any]:
        _log_event("Creating culture topic", admin_id=admin.id)
        form = await request.form()
        try:
            payload = _parse_form_json(form, "topicData", CultureTopicDataPayload)
            batch = await _store(CULTURE_TOPIC_UPLOADS, form)
            record = culture.create_topic(_localized(payload.name or []), batch)
        except Exception as error:
            raise translate_error(error, "Failed to create the culture topic.") from error
        finally:
            await form.close()
        return {"message": "Culture topic created.", "data": _serialize_culture_topic(record)}

    @app.put("/api/culture-topics/{topic_id}")
    async def update_culture_topic(
        topic_id: int, request: Request, admin: AdminRecord = Depends(require_admin)
    ) -> Dict[str, Any]:
        _log_event("Updating culture topic", topic_id=topic_id, admin_id=admin.id)
        form = await request.form()
        try:
            payload = _parse_form_json(form, "topicData", CultureTopicDataPayload, required=False)
            batch = await _store(CULTURE_TOPIC_UPLOADS, form)
            record = culture.update_topic(topic_id, _localized(payload.name or []), batch)
        except Exception as error:
            raise translate_error(error, "Failed to update the culture topic.") from error
        finally:
            await form.close()
        return {"message": "Culture topic updated.", "data": _serialize_culture_topic(record)}

    @app.delete("/api/culture-topics/{topic_id}")
    async def delete_culture_topic(
        topic_id: int, admin: AdminRecord = Depends(require_superadmin)
    ) -> Dict[str, Any]:
        _log_event("Deleting culture topic", topic_id=topic_id, admin_id=admin.id)
        try:
            removed = culture.delete_topic(topic_id)
        except Exception as error:
            raise translate_error(error, "Failed to delete the culture topic.") from error
        _log_event("Deleted culture topic", topic_id=topic_id, removed_files=removed)
        return {"message": "Culture topic and all of its entries deleted."}

    # ------------------------------------------------------------------
    # Culture entries
    # ------------------------------------------------------------------
    @app.get("/api/culture-topics/{topic_id}/entries")
    async def list_culture_entries(topic_id: int) -> Dict[str, Any]:
        try:
            records = culture.list_entries(topic_id)
        except Exception as error:
            raise translate_error(error, "Failed to fetch culture entries.") from error
        data = [_serialize_culture_entry(record) for record in records]
        return {"count": len(data), "data": data}

    @app.get("/api/culture-topics/{topic_id}/entries/{entry_id}")
    async def get_culture_entry(topic_id: int, entry_id: int) -> Dict[str, Any]:
        try:
            record = culture.get_entry(entry_id, topic_id=topic_id)
        except Exception as error:
            raise translate_error(error, "Failed to fetch the culture entry.") from error
        return {"data": _serialize_culture_entry(record)}

    @app.post("/api/culture-topics/{topic_id}/entries", status_code=status.HTTP_201_CREATED)
    async def create_culture_entry(
        topic_id: int, request: Request, admin: AdminRecord = Depends(require_admin)
    ) -> Dict[str, Any]:
        _log_event("Creating culture entry", topic_id=topic_id, admin_id=admin.id)
        form = await request.form()
        try:
            payload = _parse_form_json(form, "entryData", CultureEntryDataPayload)
            batch = await _store(CULTURE_ENTRY_UPLOADS, form)
            record = culture.create_entry(
                topic_id,
                title=_localized(payload.title or []),
                description=_localized(payload.description or []),
                batch=batch,
            )
        except Exception as error:
            api_error = translate_error(error, "Failed to create the culture entry.")
            if api_error.status_code == 404:
                api_error = ApiError(500, "Failed to create the culture entry.", api_error.message)
            raise api_error from error
        finally:
            await form.close()
        return {"message": "Culture entry created.", "data": _serialize_culture_entry(record)}

    @app.put("/api/culture-topics/{topic_id}/entries/{entry_id}")
    async def update_culture_entry(
        topic_id: int, entry_id: int, request: Request, admin: AdminRecord = Depends(require_admin)
    ) -> Dict[str, Any]:
        _log_event("Updating culture entry", topic_id=topic_id, entry_id=entry_id, admin_id=admin.id)
        form = await request.form()
        try:
            payload = _parse_form_json(form, "entryData", CultureEntryDataPayload, required=False)
            batch = await _store(CULTURE_ENTRY_UPLOADS, form)
            record = culture.update_entry(
                entry_id,
                title=_localized(payload.title or []),
                description=_localized(payload.description or []),
                batch=batch,
                topic_id=topic_id,
            )
        except Exception as error:
            raise translate_error(error, "Failed to update the culture entry.") from error
        finally:
            await form.close()
        return {"message": "Culture entry updated.", "data": _serialize_culture_entry(record)}

    @app.delete("/api/culture-topics/{topic_id}/entries/{entry_id}")
    async def delete_culture_entry(
        topic_id: int, entry_id: int, admin: AdminRecord = Depends(require_admin)
    ) -> Dict[str, Any]:
        _log_event("Deleting culture entry", topic_id=topic_id, entry_id=entry_id, admin_id=admin.id)
        try:
            culture.delete_entry(entry_id, topic_id=topic_id)
        except Exception as error:
            raise translate_error(error, "Failed to delete the culture entry.") from error
        return {"message": "Culture entry deleted."}

    # ------------------------------------------------------------------
    # Learners and visits
    # ------------------------------------------------------------------
    @app.post("/api/learners", status_code=status.HTTP_201_CREATED)
    async def register_learner(payload: LearnerPayload) -> Dict[str, Any]:
        try:
            record = learners.register(payload.name, payload.city)
        except Exception as error:
            raise translate_error(error, "Failed to register the learner.") from error
        return {"message": "Learner registered.", "data": _serialize_learner(record)}

    @app.get("/api/learners")
    async def list_learners() -> Dict[str, Any]:
        data = [_serialize_learner(record) for record in learners.list_learners()]
        return {"count": len(data), "data": data}

    @app.delete("/api/learners/{learner_id}")
    async def delete_learner(
        learner_id: int, admin: AdminRecord = Depends(require_admin)
    ) -> Dict[str, Any]:
        _log_event("Deleting learner", learner_id=learner_id, admin_id=admin.id)
        try:
            learners.delete_learner(learner_id)
        except Exception as error:
            raise translate_error(error, "Failed to delete the learner.") from error
        return {"message": "Learner deleted."}

    @app.post("/api/visitor-logs", status_code=status.HTTP_201_CREATED)
    async def record_visit(payload: VisitorLogPayload) -> Dict[str, Any]:
        try:
            record = learners.record_visit(payload.learner_id, payload.topic_id)
        except Exception as error:
            raise translate_error(error, "Failed to record the visit.") from error
        return {"message": "Visit recorded.", "data": _serialize_visitor_log(record)}

    # ------------------------------------------------------------------
    # Admins
    # ------------------------------------------------------------------
    @app.post("/api/admins/login")
    async def login(payload: LoginPayload) -> Dict[str, Any]:
        try:
            admin, token = admins.authenticate(payload.email, payload.password)
        except ValidationFailure as error:
            raise ApiError(400, str(error)) from error
        except PermissionDenied as error:
            raise ApiError(401, str(error)) from error
        return {"message": "Login successful.", **_serialize_admin(admin), "token": token}

    @app.get("/api/admins/profile")
    async def admin_profile(admin: AdminRecord = Depends(require_admin)) -> Dict[str, Any]:
        return {"data": _serialize_admin(admin)}

    @app.get("/api/admins")
    async def list_admins(admin: AdminRecord = Depends(require_admin)) -> Dict[str, Any]:
        data = [_serialize_admin(record) for record in admins.list_admins()]
        return {"count": len(data), "data": data}

    @app.post("/api/admins", status_code=status.HTTP_201_CREATED)
    async def create_admin(
        payload: AdminCreatePayload, admin: AdminRecord = Depends(require_superadmin)
    ) -> Dict[str, Any]:
        _log_event("Creating admin", email=payload.email, role=payload.role, admin_id=admin.id)
        try:
            record = admins.create_admin(payload.name, payload.email, payload.password, payload.role)
        except Exception as error:
            raise _account_error(error, "Failed to create the admin.") from error
        return {"message": "Admin created.", "data": _serialize_admin(record)}

    @app.put("/api/admins/{admin_id}")
    async def update_admin(
        admin_id: int, payload: AdminUpdatePayload, admin: AdminRecord = Depends(require_admin)
    ) -> Dict[str, Any]:
        _log_event("Updating admin", target_id=admin_id, admin_id=admin.id)
        try:
            record = admins.update_admin(
                admin,
                admin_id,
                name=payload.name,
                email=payload.email,
                role=payload.role,
                new_password=payload.new_password,
                confirm_password=payload.confirm_password,
            )
        except Exception as error:
            raise _account_error(error, "Failed to update the admin.") from error
        return {"message": "Admin updated.", "data": _serialize_admin(record)}

    @app.put("/api/admins/{admin_id}/change-password")
    async def change_admin_password(
        admin_id: int, payload: PasswordChangePayload, admin: AdminRecord = Depends(require_admin)
    ) -> Dict[str, Any]:
        _log_event("Changing admin password", target_id=admin_id, admin_id=admin.id)
        try:
            admins.change_password(admin, admin_id, payload.new_password, payload.confirm_password)
        except Exception as error:
            raise _account_error(error, "Failed to change the password.") from error
        return {"message": "Password updated."}

    @app.delete("/api/admins/{admin_id}")
    async def delete_admin(
        admin_id: int, admin: AdminRecord = Depends(require_superadmin)
    ) -> Dict[str, Any]:
        _log_event("Deleting admin", target_id=admin_id, admin_id=admin.id)
        try:
            admins.delete_admin(admin_id)
        except Exception as error:
            raise translate_error(error, "Failed to delete the admin.") from error
        return {"message": "Admin deleted."}

    # ------------------------------------------------------------------
    # Settings
    # ------------------------------------------------------------------
    @app.get("/api/settings")
    async def get_settings(admin: AdminRecord = Depends(require_admin)) -> Dict[str, Any]:
        return {"maxAdmins": admins.max_admins()}

    @app.put("/api/settings")
    async def update_settings(
        payload: SettingsPayload, admin: AdminRecord = Depends(require_superadmin)
    ) -> Dict[str, Any]:
        _log_event("Updating settings", max_admins=payload.max_admins, admin_id=admin.id)
        try:
            limit = admins.set_max_admins(payload.max_admins)
        except Exception as error:
            raise _account_error(error, "Failed to update the settings.") from error
        return {"message": "Settings updated.", "maxAdmins": limit}

    # ------------------------------------------------------------------
    # Dashboard
    # ------------------------------------------------------------------
    @app.get("/api/dashboard")
    async def dashboard_stats(
        visitors_period: Period = Query(DEFAULT_PERIOD, alias="visitorsPeriod"),
        unique_visitors_period: Period = Query(DEFAULT_PERIOD, alias="uniqueVisitorsPeriod"),
        city_period: Period = Query(DEFAULT_PERIOD, alias="cityPeriod"),
        topic_period: Period = Query(DEFAULT_PERIOD, alias="topicPeriod"),
        admin: AdminRecord = Depends(require_admin),
    ) -> Dict[str, Any]:
        try:
            return dashboard.stats(
                visitors_period=visitors_period,
                unique_visitors_period=unique_visitors_period,
                city_period=city_period,
                topic_period=topic_period,
            )
        except Exception as error:
            LOGGER.exception("Dashboard statistics failed")
            raise ApiError(
                500, "Failed to fetch statistics.", f"{error.__class__.__name__}: {error}"
            ) from error

    LOGGER.debug("Application created with uploads at %s", uploads_root)
    return app


__all__ = ["ContextualLoggerAdapter", "RequestContextMiddleware", "UPLOADS_MOUNT", "create_app"]
