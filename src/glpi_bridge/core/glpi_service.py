"""Simplified operations over the GLPI REST API.

Searches go through the criteria translator; membership and ownership
checks guard access to tickets, groups and profiles.
"""

import asyncio
from collections import Counter
from enum import Enum, IntEnum
from typing import Any, Dict, Iterable, List, Optional

from pydantic import BaseModel

from ..api_clients.criteria import (
    DEFAULT_FORCE_DISPLAY,
    DEFAULT_LIMIT,
    CriterionInput,
    CriterionLink,
    SearchCriterion,
    SearchType
)
from ..api_clients.glpi import GlpiClient
from ..exceptions import AccessDeniedError, ValidationError
from ..utils.logging import get_logger


class TicketField(IntEnum):
    """Search option ids of the GLPI ``Ticket`` item type."""
    NAME = 1
    ID = 2
    PRIORITY = 3
    REQUESTER = 4
    TECHNICIAN = 5
    TECHNICIAN_GROUP = 8
    STATUS = 12
    OPEN_DATE = 15
    LAST_UPDATE = 19
    REQUESTER_GROUP = 71


class TicketScope(str, Enum):
    """Which of a user's tickets to list."""
    ALL = "all"
    REQUESTED = "requested"
    ASSIGNED = "assigned"


TICKET_STATUSES = {
    1: "New",
    2: "Processing (assigned)",
    3: "Processing (planned)",
    4: "Pending",
    5: "Solved",
    6: "Closed",
}

TICKET_PRIORITIES = {
    1: "Very low",
    2: "Low",
    3: "Medium",
    4: "High",
    5: "Very high",
    6: "Major",
}

STATS_WINDOW = 1000


class TicketCreate(BaseModel):
    """Fields accepted when opening a ticket on behalf of a user."""
    title: str
    content: str
    urgency: Optional[int] = None
    impact: Optional[int] = None
    priority: Optional[int] = None
    category: Optional[int] = None
    type: Optional[int] = None


class TicketUpdate(BaseModel):
    """Fields accepted when updating a ticket."""
    title: Optional[str] = None
    content: Optional[str] = None
    urgency: Optional[int] = None
    impact: Optional[int] = None
    priority: Optional[int] = None
    status: Optional[int] = None


def _ticket_input(ticket: BaseModel) -> Dict[str, Any]:
    """Translate ticket DTO names to GLPI column names."""
    data = ticket.model_dump(exclude_none=True)
    if "title" in data:
        data["name"] = data.pop("title")
    if "category" in data:
        data["itilcategories_id"] = data.pop("category")
    return data


def _rows(result: Any) -> List[Dict[str, Any]]:
    """Result rows of a search response; GLPI omits ``data`` when nothing matched."""
    if isinstance(result, dict):
        return result.get("data") or []
    return []


def _total(result: Any) -> int:
    if isinstance(result, dict):
        return int(result.get("totalcount", 0) or 0)
    return 0


def _as_list(result: Any) -> List[Dict[str, Any]]:
    return result if isinstance(result, list) else []


class GlpiService:
    """Facade over the GLPI client for the bridge's REST surface."""

    def __init__(self, client: GlpiClient):
        self.client = client
        self.logger = get_logger(self.__class__.__name__)

    # Pass-through reads

    async def list_users(self) -> Any:
        return await self.client.list_items("User")

    async def get_user_by_id(self, user_id: int) -> Any:
        return await self.client.get_item("User", user_id)

    async def list_tickets(self) -> Any:
        return await self.client.list_items("Ticket")

    async def search(
        self,
        item_type: str,
        criteria: Optional[Iterable[CriterionInput]] = None,
        force_display: Optional[Iterable[int]] = None,
        limit: int = DEFAULT_LIMIT,
        offset: int = 0
    ) -> Any:
        """Criteria search on any item type; the raw result is passed through."""
        return await self.client.search(
            item_type,
            criteria,
            force_display,
            limit=limit,
            offset=offset
        )

    # Tickets

    async def get_user_tickets(
        self,
        user_id: int,
        scope: TicketScope = TicketScope.ALL,
        limit: int = DEFAULT_LIMIT,
        offset: int = 0
    ) -> Any:
        """Tickets the user requested, is assigned to, or both."""
        scope = TicketScope(scope)
        criteria: List[SearchCriterion] = []

        if scope in (TicketScope.ALL, TicketScope.REQUESTED):
            criteria.append(SearchCriterion(
                field=TicketField.REQUESTER,
                searchtype=SearchType.EQUALS,
                value=user_id
            ))
        if scope in (TicketScope.ALL, TicketScope.ASSIGNED):
            criteria.append(SearchCriterion(
                field=TicketField.TECHNICIAN,
                searchtype=SearchType.EQUALS,
                value=user_id,
                link=CriterionLink.OR if criteria else None
            ))

        return await self.search("Ticket", criteria, DEFAULT_FORCE_DISPLAY, limit, offset)

    async def get_user_requested_tickets(self, user_id: int, limit: int = DEFAULT_LIMIT, offset: int = 0) -> Any:
        return await self.get_user_tickets(user_id, TicketScope.REQUESTED, limit, offset)

    async def get_user_assigned_tickets(self, user_id: int, limit: int = DEFAULT_LIMIT, offset: int = 0) -> Any:
        return await self.get_user_tickets(user_id, TicketScope.ASSIGNED, limit, offset)

    async def _ensure_ticket_access(self, ticket_id: int, user_id: int) -> None:
        actors = _as_list(await self.client.get_sub_items("Ticket", ticket_id, "Ticket_User"))
        if not any(actor.get("users_id") == user_id for actor in actors):
            self.logger.warning("Ticket access denied", ticket_id=ticket_id, user_id=user_id)
            raise AccessDeniedError(f"Access denied: user {user_id} is not an actor of ticket {ticket_id}")

    async def get_ticket_by_id(self, ticket_id: int, user_id: int) -> Any:
        await self._ensure_ticket_access(ticket_id, user_id)
        return await self.client.get_item("Ticket", ticket_id)

    async def create_ticket_for_user(self, user_id: int, ticket: TicketCreate) -> Any:
        data = _ticket_input(ticket)
        data["_users_id_requester"] = user_id
        result = await self.client.create_item("Ticket", data)
        self.logger.info("Ticket created", user_id=user_id, result=result)
        return result

    async def update_ticket(self, ticket_id: int, user_id: int, ticket: TicketUpdate) -> Any:
        await self._ensure_ticket_access(ticket_id, user_id)
        data = _ticket_input(ticket)
        if not data:
            raise ValidationError("No ticket fields to update")
        return await self.client.update_item("Ticket", ticket_id, data)

    async def delete_ticket(self, ticket_id: int, user_id: int) -> Any:
        await self._ensure_ticket_access(ticket_id, user_id)
        result = await self.client.delete_item("Ticket", ticket_id)
        self.logger.info("Ticket deleted", ticket_id=ticket_id, user_id=user_id)
        return result

    def get_ticket_statuses(self) -> List[Dict[str, Any]]:
        return [{"id": key, "name": name} for key, name in TICKET_STATUSES.items()]

    def get_ticket_priorities(self) -> List[Dict[str, Any]]:
        return [{"id": key, "name": name} for key, name in TICKET_PRIORITIES.items()]

    async def get_ticket_search_options(self) -> Any:
        return await self.client.list_search_options("Ticket")

    # Groups

    async def get_user_groups(self, user_id: int) -> List[Dict[str, Any]]:
        return _as_list(await self.client.get_sub_items("User", user_id, "Group_User"))

    async def _ensure_group_member(self, group_id: int, user_id: int) -> None:
        groups = await self.get_user_groups(user_id)
        if not any(group.get("groups_id") == group_id for group in groups):
            self.logger.warning("Group access denied", group_id=group_id, user_id=user_id)
            raise AccessDeniedError("Access denied: User is not a member of this group")

    async def get_group_by_id(self, group_id: int, user_id: int) -> Any:
        await self._ensure_group_member(group_id, user_id)
        return await self.client.get_item("Group", group_id)

    async def get_group_tickets(
        self,
        group_id: int,
        user_id: int,
        limit: int = DEFAULT_LIMIT,
        offset: int = 0
    ) -> Any:
        """Tickets assigned to or requested by a group the user belongs to."""
        await self._ensure_group_member(group_id, user_id)
        criteria = [
            SearchCriterion(field=TicketField.TECHNICIAN_GROUP, searchtype=SearchType.EQUALS, value=group_id),
            SearchCriterion(
                field=TicketField.REQUESTER_GROUP,
                searchtype=SearchType.EQUALS,
                value=group_id,
                link=CriterionLink.OR
            ),
        ]
        return await self.search("Ticket", criteria, DEFAULT_FORCE_DISPLAY, limit, offset)

    async def get_group_users(self, group_id: int, user_id: int) -> Any:
        await self._ensure_group_member(group_id, user_id)
        return await self.client.get_sub_items("Group", group_id, "Group_User")

    # Profiles

    async def get_user_profiles(self, user_id: int) -> List[Dict[str, Any]]:
        return _as_list(await self.client.get_sub_items("User", user_id, "Profile_User"))

    async def get_profile_by_id(self, profile_id: int, user_id: int) -> Any:
        profiles = await self.get_user_profiles(user_id)
        if not any(profile.get("profiles_id") == profile_id for profile in profiles):
            self.logger.warning("Profile access denied", profile_id=profile_id, user_id=user_id)
            raise AccessDeniedError("Access denied: User does not have this profile")
        return await self.client.get_item("Profile", profile_id)

    # Dashboard

    @staticmethod
    def _count_by_status(rows: List[Dict[str, Any]]) -> Dict[str, int]:
        counts = Counter(row.get(str(int(TicketField.STATUS))) for row in rows)
        return {
            TICKET_STATUSES.get(status, str(status)): count
            for status, count in sorted(counts.items(), key=lambda item: str(item[0]))
        }

    async def get_user_ticket_stats(self, user_id: int) -> Dict[str, Any]:
        """Totals and per-status counts of requested and assigned tickets."""
        display = [TicketField.ID, TicketField.STATUS]
        requested, assigned = await asyncio.gather(
            self.client.search(
                "Ticket",
                [SearchCriterion(field=TicketField.REQUESTER, searchtype=SearchType.EQUALS, value=user_id)],
                display,
                limit=STATS_WINDOW
            ),
            self.client.search(
                "Ticket",
                [SearchCriterion(field=TicketField.TECHNICIAN, searchtype=SearchType.EQUALS, value=user_id)],
                display,
                limit=STATS_WINDOW
            ),
        )

        return {
            "totalRequested": _total(requested),
            "totalAssigned": _total(assigned),
            "requestedByStatus": self._count_by_status(_rows(requested)),
            "assignedByStatus": self._count_by_status(_rows(assigned)),
        }

    async def get_user_recent_activity(self, user_id: int, limit: int = 10) -> Dict[str, Any]:
        """The user's most recently updated requested tickets."""
        result = await self.client.search(
            "Ticket",
            [SearchCriterion(field=TicketField.REQUESTER, searchtype=SearchType.EQUALS, value=user_id)],
            [TicketField.ID, TicketField.NAME, TicketField.STATUS, TicketField.LAST_UPDATE],
            limit=limit,
            sort=TicketField.LAST_UPDATE,
            order="DESC"
        )
        return {"recentTickets": _rows(result)}

    async def get_user_overview(self, user_id: int) -> Dict[str, Any]:
        """Combined dashboard view; any failing read fails the whole overview."""
        stats, recent, groups, profiles = await asyncio.gather(
            self.get_user_ticket_stats(user_id),
            self.get_user_recent_activity(user_id),
            self.get_user_groups(user_id),
            self.get_user_profiles(user_id),
        )

        return {
            "user": {"glpiId": user_id},
            "tickets": {
                "stats": stats,
                "recent": recent["recentTickets"],
            },
            "groups": groups,
            "profiles": profiles,
            "summary": {
                "totalTickets": stats["totalRequested"] + stats["totalAssigned"],
                "totalRequested": stats["totalRequested"],
                "totalAssigned": stats["totalAssigned"],
                "groupCount": len(groups),
                "profileCount": len(profiles),
            },
        }
