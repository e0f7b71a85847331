import logging
from typing import Any, Dict, List

from storefront.core.exceptions import NotFoundError
from storefront.models import Address
from storefront.repositories.user_repository import AddressRepository

logger = logging.getLogger(__name__)

ADDRESS_FIELDS = (
    "label", "recipient_name", "phone", "type", "street", "apartment",
    "city", "state", "zip_code", "country",
)

NOT_OWNED = "Address not found or unauthorized"


class AddressService:
    """
    Saved addresses

    Business Rules:
    - At most one default address per user: every other default is cleared first
    - Users can only change their own addresses
    """

    def __init__(self, session):
        self.repo = AddressRepository(session)

    def list_for_user(self, user_id: int) -> List[Address]:
        return self.repo.list_for_user(user_id)

    def get_owned(self, user_id: int, address_id: int) -> Address:
        address = self.repo.get_by_id(address_id)
        if address is None or address.user_id != user_id:
            raise NotFoundError("Address", message=NOT_OWNED)
        return address

    def add(self, user_id: int, data: Dict[str, Any]) -> Address:
        is_default = bool(data.get("is_default"))
        if is_default:
            self.repo.clear_default(user_id)

        fields = {field: data[field] for field in ADDRESS_FIELDS if field in data}
        address = self.repo.add(Address(user_id=user_id, is_default=is_default, **fields))
        self.repo.commit()
        logger.info(f"Added address {address.id} for user {user_id} (default={is_default})")
        return address

    def update(self, user_id: int, address_id: int, updates: Dict[str, Any]) -> Address:
        address = self.get_owned(user_id, address_id)

        if updates.get("is_default"):
            self.repo.clear_default(user_id, except_id=address_id)
        if "is_default" in updates:
            address.is_default = bool(updates["is_default"])
        for field in ADDRESS_FIELDS:
            if field in updates:
                setattr(address, field, updates[field])

        self.repo.flush()
        self.repo.commit()
        logger.info(f"Updated address {address_id} for user {user_id}")
        return address

    def delete(self, user_id: int, address_id: int) -> None:
        address = self.get_owned(user_id, address_id)
        self.repo.delete(address)
        self.repo.commit()
        logger.info(f"Deleted address {address_id} for user {user_id}")

    def set_default(self, user_id: int, address_id: int) -> Address:
        address = self.get_owned(user_id, address_id)
        self.repo.clear_default(user_id, except_id=address_id)
        address.is_default = True
        self.repo.flush()
        self.repo.commit()
        logger.info(f"Set address {address_id} as default for user {user_id}")
        return address
