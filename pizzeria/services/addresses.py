"""
Pizzeria — Customer address book

At most one address per user is the default. Lists come back default first,
then newest first; the selected address is the default or, failing that, the
newest one.
"""
from datetime import datetime, timezone

from sqlalchemy import select, update
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.ext.asyncio import AsyncSession

from pizzeria.core.exceptions import InvalidRequest, PersistenceError
from pizzeria.models import Address, Order
from pizzeria.schemas.user import AddressCreate, AddressList, AddressOut, AddressUpdate


class AddressBook:
    def __init__(self, db: AsyncSession):
        self.db = db

    async def list_for_user(self, user_id: str) -> AddressList:
        result = await self.db.execute(
            select(Address)
            .where(Address.user_id == user_id)
            .order_by(Address.is_default.desc(), Address.created_at.desc())
        )
        addresses = [AddressOut.model_validate(a) for a in result.scalars().all()]
        return AddressList(
            addresses=addresses,
            selected_address_id=addresses[0].id if addresses else None,
        )

    async def add(self, user_id: str, data: AddressCreate) -> AddressOut:
        if data.is_default:
            await self._clear_default(user_id)
        address = Address(user_id=user_id, created_at=datetime.now(timezone.utc), **data.model_dump())
        self.db.add(address)
        await self._commit()
        return AddressOut.model_validate(address)

    async def update(self, user_id: str, address_id: str, data: AddressUpdate) -> AddressOut:
        address = await self._owned(user_id, address_id)
        changes = data.model_dump(exclude_unset=True)
        if changes.get("is_default"):
            await self._clear_default(user_id, keep=address_id)
        for field, value in changes.items():
            setattr(address, field, value)
        await self._commit()
        return AddressOut.model_validate(address)

    async def delete(self, user_id: str, address_id: str) -> None:
        address = await self._owned(user_id, address_id)
        in_use = await self.db.scalar(select(Order.id).where(Order.address_id == address_id).limit(1))
        if in_use:
            raise InvalidRequest("Address is used by an order and cannot be deleted.")
        await self.db.delete(address)
        await self._commit()

    async def _owned(self, user_id: str, address_id: str) -> Address:
        address = await self.db.get(Address, address_id)
        if address is None or address.user_id != user_id:
            raise InvalidRequest(f"Unknown address '{address_id}'.")
        return address

    async def _clear_default(self, user_id: str, keep: str | None = None) -> None:
        stmt = update(Address).where(Address.user_id == user_id, Address.is_default.is_(True))
        if keep:
            stmt = stmt.where(Address.id != keep)
        await self.db.execute(stmt.values(is_default=False).execution_options(synchronize_session="fetch"))

    async def _commit(self) -> None:
        try:
            await self.db.commit()
        except SQLAlchemyError as exc:
            await self.db.rollback()
            raise PersistenceError(f"Could not save address: {exc}") from exc
