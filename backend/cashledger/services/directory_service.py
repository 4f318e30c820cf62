# Overview: User directory lookups used to attribute sessions and postings.

from __future__ import annotations

from ..extensions import db
from ..models import Company, PointOfSale, User
from cashledger.errors import MissingCompanyError, NotFoundError


def resolve_user(user_name: str | None) -> User:
    """Active user by user_name, or NotFoundError("user")."""
    name = (user_name or "").strip()
    if not name:
        raise NotFoundError("user")
    user = db.session.query(User).filter_by(user_name=name).first()
    if not user or not user.is_active:
        raise NotFoundError("user")
    return user


def get_point_of_sale(point_of_sale_id: int | None) -> PointOfSale:
    pos = db.session.get(PointOfSale, point_of_sale_id) if point_of_sale_id else None
    if not pos:
        raise NotFoundError("pointOfSale")
    return pos


def resolve_company_id(point_of_sale: PointOfSale) -> int:
    """
    Company owning a register, through its branch.

    Resolved once per request; callers pass the id explicitly afterwards.
    """
    company_id = point_of_sale.company_id
    if company_id is None or db.session.get(Company, company_id) is None:
        raise MissingCompanyError()
    return company_id
