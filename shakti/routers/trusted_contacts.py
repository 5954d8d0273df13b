from fastapi import APIRouter, Depends, status
from sqlalchemy.orm import Session
from typing import List

from shakti.database.database import get_db
from shakti.crud import crud
from shakti.schemas import trusted_contacts as schema
from shakti.utils.security import get_current_user
from shakti.models.models import User

router = APIRouter(
    prefix="/contacts",
    tags=["Trusted Contacts"],
    dependencies=[Depends(get_current_user)]
)


# ---------------- GET ALL CONTACTS ----------------
@router.get("/", response_model=List[schema.TrustedContactOut])
def get_trusted_contacts(
    db: Session = Depends(get_db),
    current_user: User = Depends(get_current_user)
):
    return crud.get_trusted_contacts(db, current_user.id)


# ---------------- PRIMARY CONTACT ----------------
@router.get("/primary", response_model=schema.PrimaryContactOut)
def get_primary_contact(
    db: Session = Depends(get_db),
    current_user: User = Depends(get_current_user)
):
    """Returns {"primaryContact": null} when no contact is marked primary."""
    contact = crud.get_primary_contact(db, current_user.id)
    return schema.PrimaryContactOut(
        primary_contact=schema.TrustedContactOut.model_validate(contact) if contact else None
    )


# ---------------- CREATE CONTACT ----------------
@router.post("/", response_model=schema.TrustedContactOut, status_code=status.HTTP_201_CREATED)
def create_trusted_contact(
    contact: schema.TrustedContactCreate,
    db: Session = Depends(get_db),
    current_user: User = Depends(get_current_user)
):
    """
    Add a trusted contact.
    - Phone numbers must be unique within the user's list.
    - isPrimary=true clears the flag on every other contact.
    """
    return crud.create_trusted_contact(db, current_user.id, contact)


# ---------------- BULK IMPORT ----------------
@router.post("/import", response_model=schema.TrustedContactImportOut, status_code=status.HTTP_201_CREATED)
def import_trusted_contacts(
    body: schema.TrustedContactImportRequest,
    db: Session = Depends(get_db),
    current_user: User = Depends(get_current_user)
):
    imported, skipped = crud.import_trusted_contacts(db, current_user.id, body.contacts)
    return schema.TrustedContactImportOut(
        imported=[schema.TrustedContactOut.model_validate(c) for c in imported],
        skipped=skipped,
        total_imported=len(imported),
        total_skipped=len(skipped),
    )


# ---------------- UPDATE CONTACT ----------------
@router.put("/{contact_id}", response_model=schema.TrustedContactOut)
def update_trusted_contact(
    contact_id: int,
    updates: schema.TrustedContactUpdate,
    db: Session = Depends(get_db),
    current_user: User = Depends(get_current_user)
):
    return crud.update_trusted_contact(db, current_user.id, contact_id, updates)


# ---------------- SET PRIMARY ----------------
@router.put("/{contact_id}/primary", response_model=schema.TrustedContactOut)
def set_primary_contact(
    contact_id: int,
    db: Session = Depends(get_db),
    current_user: User = Depends(get_current_user)
):
    return crud.set_primary_contact(db, current_user.id, contact_id)


# ---------------- DELETE CONTACT ----------------
@router.delete("/{contact_id}", status_code=status.HTTP_200_OK)
def delete_trusted_contact(
    contact_id: int,
    db: Session = Depends(get_db),
    current_user: User = Depends(get_current_user)
):
    crud.delete_trusted_contact(db, current_user.id, contact_id)
    return {"message": "Contact deleted successfully"}
