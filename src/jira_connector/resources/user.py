from __future__ import annotations

import logging
from typing import Any, Dict, List, Mapping, Optional, Tuple

from ..errors import ValidationError, wrap_error
from ..models import (
    ACCOUNT_TYPE_HUMAN,
    ACCOUNT_TYPE_SERVICE,
    ACCOUNT_TYPE_UNSPECIFIED,
    USER_STATUS_DISABLED,
    USER_STATUS_ENABLED,
    USER_STATUS_UNSPECIFIED,
    Resource,
    ResourceId,
)
from ..pagination import (
    RESOURCE_PAGE_SIZE,
    PageState,
    get_page_token_from_offset,
    get_token,
    is_last_page,
    parse_page_token,
)
from .base import RESOURCE_TYPE_USER, ResourceBuilder

ACCOUNT_TYPES = {
    "atlassian": ACCOUNT_TYPE_HUMAN,
    "app": ACCOUNT_TYPE_SERVICE,
    "customer": ACCOUNT_TYPE_HUMAN,
}

logger = logging.getLogger(__name__)


def map_account_type(account_type: Optional[str]) -> str:
    return ACCOUNT_TYPES.get(account_type or "", ACCOUNT_TYPE_UNSPECIFIED)


def user_id(account_id: str) -> ResourceId:
    return ResourceId(resource_type=RESOURCE_TYPE_USER.id, resource=account_id)


def user_resource(user: Mapping[str, Any]) -> Resource:
    display_name = str(user.get("displayName") or "")
    email = str(user.get("emailAddress") or "")
    account_id = str(user.get("accountId") or "")
    names = display_name.split(" ")
    profile: Dict[str, Any] = {
        "login": email,
        "first_name": names[0],
        "user_id": account_id,
    }
    if len(names) > 1:
        profile["last_name"] = names[1]
    trait: Dict[str, Any] = {
        "status": USER_STATUS_ENABLED if user.get("active") else USER_STATUS_DISABLED,
        "account_type": map_account_type(user.get("accountType")),
    }
    if email:
        trait["emails"] = [{"address": email, "primary": True}]
    return Resource(
        id=user_id(account_id),
        display_name=display_name,
        profile=profile,
        traits={"user": trait},
    )


def admin_user_resource(user: Mapping[str, Any]) -> Resource:
    email = str(user.get("email") or "")
    status = USER_STATUS_UNSPECIFIED
    if user.get("status") == "active":
        status = USER_STATUS_ENABLED
    elif user.get("status") == "deactivated":
        status = USER_STATUS_DISABLED
    return Resource(
        id=user_id(str(user.get("accountId") or "")),
        display_name=email,
        profile={
            "account_id": user.get("accountId"),
            "account_type": user.get("accountType"),
            "username": user.get("name"),
            "email_verified": bool(user.get("emailVerified")),
        },
        traits={
            "user": {
                "status": status,
                "login": email,
                "emails": [{"address": email, "primary": True}],
            }
        },
    )


def build_create_account_body(login: str, profile: Optional[Mapping[str, Any]]) -> Dict[str, Any]:
    if not login:
        raise ValidationError("jira-connector: account login is required")
    products: List[str] = []
    raw_products = (profile or {}).get("products")
    if raw_products is not None:
        if not isinstance(raw_products, list):
            raise ValidationError(f"products field is not a list: {type(raw_products).__name__}")
        for product in raw_products:
            if not isinstance(product, str):
                raise ValidationError(f"invalid product type: {type(product).__name__}")
            products.append(product)
    return {"email": login, "products": products}


class UserBuilder(ResourceBuilder):
    RESOURCE_TYPE = RESOURCE_TYPE_USER

    def __init__(self, client: Any, *, skip_customer_users: bool = False, **kwargs: Any) -> None:
        super().__init__(client, **kwargs)
        self.skip_customer_users = skip_customer_users

    def list(self, page_token: str = "") -> Tuple[List[Resource], str]:
        if self.admin_client is not None:
            return self._list_site_users(page_token)
        bag, offset = parse_page_token(page_token, RESOURCE_TYPE_USER.id)
        try:
            users = self.client.find_users(offset, RESOURCE_PAGE_SIZE)
        except Exception as exc:
            raise wrap_error(exc, "failed to list users") from exc

        resources: List[Resource] = []
        for user in users:
            if self.skip_customer_users and user.get("accountType") == "customer":
                continue
            resources.append(user_resource(user))

        if is_last_page(len(users), RESOURCE_PAGE_SIZE):
            return resources, ""
        return resources, get_page_token_from_offset(bag, offset + RESOURCE_PAGE_SIZE)

    def _list_site_users(self, page_token: str) -> Tuple[List[Resource], str]:
        bag, cursor = get_token(page_token, RESOURCE_TYPE_USER.id)
        resources: List[Resource] = []
        site_id = bag.resource_type_id()
        if site_id == RESOURCE_TYPE_USER.id:
            bag.pop()
            for candidate in self.site_ids:
                bag.push(PageState(resource_type_id=candidate))
        else:
            try:
                users, next_cursor = self.admin_client.list_users(site_id, cursor)
            except Exception as exc:
                raise wrap_error(exc, "failed to list site users") from exc
            resources = [admin_user_resource(user) for user in users]
            bag.next(next_cursor)
        return resources, bag.marshal()

    def create_account(self, login: str, profile: Optional[Mapping[str, Any]] = None) -> Resource:
        body = build_create_account_body(login, profile)
        try:
            user = self.client.create_user(body["email"], body["products"])
        except Exception as exc:
            raise wrap_error(exc, "failed to create user") from exc
        logger.info("jira_account_created", extra={"accountId": user.get("accountId")})
        return user_resource(user)
