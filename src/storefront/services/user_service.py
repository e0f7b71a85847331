import logging
from typing import Any, Dict, List, Optional

from storefront.core.exceptions import ValidationError
from storefront.models import User
from storefront.repositories.user_repository import UserRepository
from storefront.schemas.webhooks import AuthUserData
from storefront.utils.date_utils import DateUtils
from storefront.utils.validators import ValidationUtils

logger = logging.getLogger(__name__)

ROLES = ("customer", "admin")


class UserService:
    """
    User profiles and the auth-provider lifecycle

    Business Rules:
    - Users are created and refreshed only by the lifecycle webhook
    - New users are customers
    - Deleting a user removes their addresses, wishlist and cart
    """

    def __init__(self, session):
        self.repo = UserRepository(session)

    def get_by_id(self, user_id: int) -> User:
        return self.repo.get_or_404(user_id, message="User not found")

    def update_profile(self, user: User, updates: Dict[str, Any]) -> User:
        for field in ("first_name", "last_name", "phone"):
            if field in updates:
                setattr(user, field, ValidationUtils.sanitize_text(updates[field]))
        self.repo.flush()
        self.repo.commit()
        logger.info(f"Updated profile for user {user.id}")
        return user

    def update_marketing_prefs(self, user: User, email_newsletter: bool, sms_notifications: bool) -> User:
        user.marketing_prefs = {
            "email_newsletter": email_newsletter,
            "sms_notifications": sms_notifications,
        }
        self.repo.flush()
        self.repo.commit()
        logger.info(f"Updated marketing preferences for user {user.id}")
        return user

    # ---------------------------------------------------------------- admin

    def list_customers_with_stats(self, search: Optional[str] = None, limit: int = 50) -> Dict[str, Any]:
        rows = self.repo.list_customers_with_stats(search=search, limit=limit)
        users: List[Dict[str, Any]] = []
        for row in rows:
            users.append({
                **row["user"].to_dict(),
                "total_orders": row["total_orders"],
                "total_spent": row["total_spent"],
                "last_order_date": DateUtils.to_iso_string(row["last_order_date"]),
            })

        return {
            "users": users,
            "total_count": self.repo.count_customers(),
            "new_this_month": self.repo.count_customers_since(DateUtils.start_of_month()),
        }

    def update_role(self, user_id: int, role: str) -> User:
        if role not in ROLES:
            raise ValidationError(f"Role must be one of: {', '.join(ROLES)}")
        user = self.get_by_id(user_id)
        user.role = role
        self.repo.flush()
        self.repo.commit()
        logger.info(f"Set role of user {user_id} to {role}")
        return user

    def update_admin_info(self, user_id: int, updates: Dict[str, Any]) -> User:
        """Back-office fields: tags, notes and phone"""
        user = self.get_by_id(user_id)
        if "tags" in updates:
            user.tags = [tag.strip() for tag in updates["tags"] if tag and tag.strip()]
        if "notes" in updates:
            user.notes = ValidationUtils.sanitize_text(updates["notes"], ValidationUtils.MAX_TEXT_LENGTH)
        if "phone" in updates:
            user.phone = ValidationUtils.sanitize_text(updates["phone"])
        self.repo.flush()
        self.repo.commit()
        logger.info(f"Updated admin info for user {user_id}")
        return user

    def delete_user(self, user_id: int) -> bool:
        user = self.repo.get_by_id(user_id)
        if user is None:
            return False
        self.repo.delete_with_dependents(user)
        self.repo.commit()
        logger.info(f"Deleted user {user_id}")
        return True

    # ------------------------------------------------------------ lifecycle

    def upsert_from_auth_provider(self, data: AuthUserData) -> User:
        """
        Create or refresh a user from a user.created / user.updated event

        Existing users keep their role; only profile fields are refreshed.
        """
        try:
            email = ValidationUtils.normalize_email(data.primary_email)
        except ValueError:
            # Phone-only accounts carry no usable email address.
            email = data.primary_email

        user = self.repo.get_by_auth_subject(data.id)
        if user is not None:
            user.email = email
            user.first_name = data.first_name
            user.last_name = data.last_name
            user.avatar_url = data.image_url
            self.repo.flush()
            self.repo.commit()
            logger.info(f"Refreshed user {user.id} from auth provider")
            return user

        user = self.repo.add(User(
            auth_subject=data.id,
            email=email,
            first_name=data.first_name,
            last_name=data.last_name,
            avatar_url=data.image_url,
            role="customer",
        ))
        self.repo.commit()
        logger.info(f"Created user {user.id} for auth subject {data.id}")
        return user

    def delete_by_auth_subject(self, auth_subject: str) -> bool:
        user = self.repo.get_by_auth_subject(auth_subject)
        if user is None:
            logger.info(f"User delete event for unknown auth subject {auth_subject}")
            return False
        user_id = user.id
        self.repo.delete_with_dependents(user)
        self.repo.commit()
        logger.info(f"Deleted user {user_id} for auth subject {auth_subject}")
        return True
