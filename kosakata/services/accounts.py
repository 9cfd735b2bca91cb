"""Learners, visitor logs and admin accounts."""

from __future__ import annotations

import logging
from datetime import datetime
from typing import Any, Callable, Dict, List, Optional, Tuple

from .auth import ROLE_ADMIN, ROLE_SUPERADMIN, ROLES, TokenService, hash_password, verify_password
from .errors import NotFoundError, PermissionDenied, ValidationFailure
from .storage import AdminRecord, ContentRepository, LearnerRecord, VisitorLogRecord

LOGGER = logging.getLogger(__name__)

MIN_PASSWORD_LENGTH = 6
DEFAULT_MAX_ADMINS = 5
MAX_ADMINS_SETTING = "maxAdmins"


class LearnerService:
    def __init__(
        self, repository: ContentRepository, *, clock: Callable[[], datetime] = datetime.now
    ) -> None:
        self._repository = repository
        self._clock = clock

    def register(self, name: str, city: str = "") -> LearnerRecord:
        cleaned = (name or "").strip()
        if not cleaned:
            raise ValidationFailure("Learner name is required.")
        learner_id = self._repository.add_learner(cleaned, (city or "").strip())
        learner = self._repository.get_learner(learner_id)
        assert learner is not None
        return learner

    def list_learners(self) -> List[LearnerRecord]:
        return self._repository.list_learners()

    def delete_learner(self, learner_id: int) -> None:
        if not self._repository.remove_learner(learner_id):
            raise NotFoundError("Learner not found.")
        LOGGER.info("Deleted learner id=%s and their visits", learner_id)

    def record_visit(self, learner_id: int, topic_id: Optional[int]) -> VisitorLogRecord:
        """Append a visit stamped with the service clock."""

        if self._repository.get_learner(learner_id) is None:
            raise NotFoundError("Learner not found.")
        if topic_id is not None and self._repository.get_topic(topic_id) is None:
            raise NotFoundError("Topic not found.")
        log_id = self._repository.add_visitor_log(learner_id, topic_id, self._clock())
        record = self._repository.get_visitor_log(log_id)
        assert record is not None
        return record


class AdminService:
    """Admin accounts, password login and access tokens."""

    def __init__(self, repository: ContentRepository, tokens: TokenService) -> None:
        self._repository = repository
        self._tokens = tokens

    @property
    def tokens(self) -> TokenService:
        return self._tokens

    def authenticate(self, email: str, password: str) -> Tuple[AdminRecord, str]:
        """Return the admin and a fresh access token, or raise ``PermissionDenied``."""

        if not email or not password:
            raise ValidationFailure("Email and password are required.")
        admin = self._repository.find_admin_by_email(email)
        if admin is None or not verify_password(password, admin.password_hash):
            LOGGER.warning("Failed login attempt for %s", email.strip().lower())
            raise PermissionDenied("Invalid email or password.")
        LOGGER.info("Admin id=%s logged in", admin.id)
        return admin, self._tokens.create_access_token(admin.id)

    def resolve_token(self, token: str) -> Optional[AdminRecord]:
        admin_id = self._tokens.verify_access_token(token)
        if admin_id is None:
            return None
        return self._repository.get_admin(admin_id)

    def list_admins(self) -> List[AdminRecord]:
        return self._repository.list_admins()

    def create_admin(
        self, name: str, email: str, password: str, role: str = ROLE_ADMIN
    ) -> AdminRecord:
        limit = self.max_admins()
        if self._repository.count_admins() >= limit:
            raise PermissionDenied(f"The maximum number of admins ({limit}) has been reached.")
        cleaned_name = (name or "").strip()
        cleaned_email = (email or "").strip().lower()
        if not cleaned_name or not cleaned_email or not password:
            raise ValidationFailure("Name, email and password are required.")
        if role not in ROLES:
            raise ValidationFailure(f"Unknown role '{role}'. Expected one of: {', '.join(ROLES)}.")
        if self._repository.find_admin_by_email(cleaned_email) is not None:
            raise ValidationFailure("An admin with this email already exists.")
        admin_id = self._repository.add_admin(
            cleaned_name, cleaned_email, hash_password(password), role
        )
        LOGGER.info("Created %s account id=%s for %s", role, admin_id, cleaned_email)
        admin = self._repository.get_admin(admin_id)
        assert admin is not None
        return admin

    def _target(self, actor: AdminRecord, admin_id: int, action: str) -> AdminRecord:
        if actor.role != ROLE_SUPERADMIN and actor.id != admin_id:
            raise PermissionDenied(f"You can only {action} your own account.")
        admin = self._repository.get_admin(admin_id)
        if admin is None:
            raise NotFoundError("Admin not found.")
        return admin

    @staticmethod
    def _checked_password(new_password: str, confirm_password: str) -> str:
        if new_password != confirm_password:
            raise ValidationFailure("The new password and its confirmation do not match.")
        if len(new_password) < MIN_PASSWORD_LENGTH:
            raise ValidationFailure(
                f"The new password must be at least {MIN_PASSWORD_LENGTH} characters long."
            )
        return hash_password(new_password)

    def update_admin(
        self,
        actor: AdminRecord,
        admin_id: int,
        *,
        name: Optional[str] = None,
        email: Optional[str] = None,
        role: Optional[str] = None,
        new_password: Optional[str] = None,
        confirm_password: Optional[str] = None,
    ) -> AdminRecord:
        """Edit an account as *actor*.

        Admins may only edit themselves. Only a superadmin changes roles, and
        never demotes their own account. The password changes only when both
        password fields are given. Blank fields keep their current value.
        """

        admin = self._target(actor, admin_id, "edit")
        changes: Dict[str, Any] = {}
        if name and name.strip():
            changes["name"] = name.strip()
        if email and email.strip():
            cleaned_email = email.strip().lower()
            owner = self._repository.find_admin_by_email(cleaned_email)
            if owner is not None and owner.id != admin.id:
                raise ValidationFailure("An admin with this email already exists.")
            changes["email"] = cleaned_email
        if role and actor.role == ROLE_SUPERADMIN:
            if role not in ROLES:
                raise ValidationFailure(f"Unknown role '{role}'. Expected one of: {', '.join(ROLES)}.")
            if actor.id == admin.id and role != ROLE_SUPERADMIN:
                raise ValidationFailure("A superadmin cannot demote their own role.")
            changes["role"] = role
        if new_password and confirm_password:
            changes["password_hash"] = self._checked_password(new_password, confirm_password)

        self._repository.update_admin(admin.id, **changes)
        LOGGER.info("Admin id=%s updated admin id=%s (%s)", actor.id, admin.id, ", ".join(sorted(changes)))
        updated = self._repository.get_admin(admin.id)
        assert updated is not None
        return updated

    def change_password(
        self, actor: AdminRecord, admin_id: int, new_password: str, confirm_password: str
    ) -> None:
        if not new_password or not confirm_password:
            raise ValidationFailure("The new password and its confirmation are required.")
        if new_password != confirm_password:
            raise ValidationFailure("The new password and its confirmation do not match.")
        admin = self._target(actor, admin_id, "change the password of")
        self._repository.update_admin(
            admin.id, password_hash=self._checked_password(new_password, confirm_password)
        )
        LOGGER.info("Admin id=%s changed the password of admin id=%s", actor.id, admin.id)

    def max_admins(self) -> int:
        return int(self._repository.get_setting(MAX_ADMINS_SETTING, DEFAULT_MAX_ADMINS))

    def set_max_admins(self, value: int) -> int:
        if isinstance(value, bool) or not isinstance(value, int) or value < 1:
            raise ValidationFailure("The admin limit must be a whole number of at least 1.")
        self._repository.set_setting(MAX_ADMINS_SETTING, value)
        LOGGER.info("Admin limit set to %d", value)
        return value

    def delete_admin(self, admin_id: int) -> None:
        admin = self._repository.get_admin(admin_id)
        if admin is None:
            raise NotFoundError("Admin not found.")
        if admin.role == ROLE_SUPERADMIN:
            raise PermissionDenied("Superadmin accounts cannot be deleted.")
        self._repository.remove_admin(admin_id)
        LOGGER.info("Deleted admin id=%s", admin_id)


__all__ = ["AdminService", "DEFAULT_MAX_ADMINS", "LearnerService", "MIN_PASSWORD_LENGTH"]
