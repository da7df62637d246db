"""
Pizzeria — Customer addresses
"""
from fastapi import APIRouter, Depends, status
from sqlalchemy.ext.asyncio import AsyncSession

from pizzeria.api.deps import current_user
from pizzeria.db.database import get_db
from pizzeria.models import User
from pizzeria.schemas.user import AddressCreate, AddressList, AddressOut, AddressUpdate
from pizzeria.services.addresses import AddressBook

router = APIRouter(prefix="/addresses", tags=["addresses"])


@router.get("", response_model=AddressList)
async def list_addresses(user: User = Depends(current_user), db: AsyncSession = Depends(get_db)):
    return await AddressBook(db).list_for_user(user.id)


@router.post("", response_model=AddressOut, status_code=status.HTTP_201_CREATED)
async def add_address(
    payload: AddressCreate,
    user: User = Depends(current_user),
    db: AsyncSession = Depends(get_db),
):
    return await AddressBook(db).add(user.id, payload)


@router.patch("/{address_id}", response_model=AddressOut)
async def update_address(
    address_id: str,
    payload: AddressUpdate,
    user: User = Depends(current_user),
    db: AsyncSession = Depends(get_db),
):
    return await AddressBook(db).update(user.id, address_id, payload)


@router.delete("/{address_id}", status_code=status.HTTP_204_NO_CONTENT)
async def delete_address(address_id: str, user: User = Depends(current_user), db: AsyncSession = Depends(get_db)):
    await AddressBook(db).delete(user.id, address_id)
