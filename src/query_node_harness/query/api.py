"""
api.py
------
Query node read API used by fixtures.

Each method issues one query document and returns the projected entity as a
plain ``dict``, the first row of a list query, or ``None`` when the index has
no match (yet).  Event records are addressed by ``"<block>-<indexInBlock>"``
and group-scoped entities by ``"<group>-<runtimeId>"``.
"""

from __future__ import annotations
import logging
from typing import Any, Callable, Dict, List, Optional, Union

from query_node_harness.chain.groups import WorkingGroup
from query_node_harness.query.client import QueryNodeClient
from query_node_harness.query.polling import try_query_with_timeout
from query_node_harness.utils.helpers import entity_id, event_id, to_query_datetime

MATCH_TYPES = ("eq", "lt", "lte", "gt", "gte")

EVENT_GENERIC_FIELDS = """
  id
  event {
    inBlock {
      number
      timestamp
      network
    }
    inExtrinsic
    indexInBlock
    type
  }
"""

OPENING_METADATA_FIELDS = """
  shortDescription
  description
  hiringLimit
  expectedEnding
  applicationDetails
  applicationFormQuestions {
    question
    type
    index
  }
"""

APPLICATION_STATUS_FIELDS = """
  status {
    __typename
    ... on ApplicationStatusCancelled {
      openingCancelledEventId
    }
    ... on ApplicationStatusWithdrawn {
      applicationWithdrawnEventId
    }
    ... on ApplicationStatusAccepted {
      openingFilledEventId
    }
    ... on ApplicationStatusRejected {
      openingFilledEventId
    }
  }
"""

GROUP_METADATA_FIELDS = """
  id
  status
  statusMessage
  about
  description
  setAtBlock {
    number
  }
"""


def _check_match_type(match_type: str) -> str:
    if match_type not in MATCH_TYPES:
        raise ValueError(f"match_type must be one of {MATCH_TYPES}, got {match_type!r}")
    return match_type


def _first(rows: Optional[List[Dict[str, Any]]]) -> Optional[Dict[str, Any]]:
    return rows[0] if rows else None


class QueryNodeApi:
    """Typed queries against the query node GraphQL schema."""

    def __init__(self, client: QueryNodeClient, log: Optional[logging.Logger] = None) -> None:
        self.client = client
        self.log = log or logging.getLogger("query_node_harness.query_node_api")
        self.query_log = self.log.getChild("query")
        self.try_log = self.log.getChild("try")

    async def _run(self, document: str, variables: Dict[str, Any]) -> Dict[str, Any]:
        return await self.client.aquery(document, variables)

    async def try_query_with_timeout(
        self,
        query: Callable[[], Any],
        assert_valid: Callable[[Any], Any],
        timeout_ms: Optional[int] = None,
        retry_ms: Optional[int] = None,
        label: Optional[str] = None,
    ):
        """Poll ``query`` until ``assert_valid`` passes (see :mod:`.polling`)."""
        return await try_query_with_timeout(
            query, assert_valid, timeout_ms, retry_ms, label=label, log=self.try_log
        )

    # ------------------------------------------------------------------
    # Memberships
    # ------------------------------------------------------------------
    async def get_member_by_id(self, member_id: int) -> Optional[Dict[str, Any]]:
        document = """
          query($id: ID!) {
            membershipByUniqueInput(where: { id: $id }) {
              id
              handle
              metadata {
                name
                about
              }
              controllerAccount
              rootAccount
              registeredAtBlock {
                number
                timestamp
                network
              }
              registeredAtTime
              entry
              isVerified
              inviteCount
              invitedBy {
                id
              }
              invitees {
                id
              }
              boundAccounts
            }
          }
        """
        self.query_log.debug("Executing get_member_by_id(%s)", member_id)
        data = await self._run(document, {"id": str(member_id)})
        return data.get("membershipByUniqueInput")

    async def get_membership_bought_events(self, member_id: int) -> List[Dict[str, Any]]:
        document = f"""
          query($memberId: ID!) {{
            membershipBoughtEvents(where: {{ newMemberId_eq: $memberId }}) {{
              {EVENT_GENERIC_FIELDS}
              newMember {{
                id
              }}
              rootAccount
              controllerAccount
              handle
              referrer {{
                id
              }}
            }}
          }}
        """
        self.query_log.debug("Executing get_membership_bought_events(%s)", member_id)
        data = await self._run(document, {"memberId": str(member_id)})
        return data.get("membershipBoughtEvents") or []

    # FIXME: cross-filtering by block is not supported by the index yet, snapshots are matched by time
    async def get_membership_system_snapshot(
        self, timestamp_ms: int, match_type: str = "eq"
    ) -> Optional[Dict[str, Any]]:
        _check_match_type(match_type)
        document = f"""
          query($time: DateTime!) {{
            membershipSystemSnapshots(where: {{ snapshotTime_{match_type}: $time }}, orderBy: snapshotTime_DESC, limit: 1) {{
              snapshotBlock {{
                timestamp
                network
                number
              }}
              snapshotTime
              referralCut
              invitedInitialBalance
              defaultInviteCount
              membershipPrice
            }}
          }}
        """
        self.query_log.debug("Executing get_membership_system_snapshot(%s %s)", match_type, timestamp_ms)
        data = await self._run(document, {"time": to_query_datetime(timestamp_ms)})
        return _first(data.get("membershipSystemSnapshots"))

    async def _get_event(self, collection: str, extra_fields: str, block_number: int, index_in_block: int):
        document = f"""
          query($eventId: ID!) {{
            {collection}(where: {{ id_eq: $eventId }}) {{
              {EVENT_GENERIC_FIELDS}
              {extra_fields}
            }}
          }}
        """
        eid = event_id(block_number, index_in_block)
        self.query_log.debug("Executing %s(%s)", collection, eid)
        data = await self._run(document, {"eventId": eid})
        return _first(data.get(collection))

    async def get_referral_cut_updated_event(self, block_number: int, index_in_block: int):
        return await self._get_event("referralCutUpdatedEvents", "newValue", block_number, index_in_block)

    async def get_membership_price_updated_event(self, block_number: int, index_in_block: int):
        return await self._get_event("membershipPriceUpdatedEvents", "newPrice", block_number, index_in_block)

    async def get_initial_invitation_balance_updated_event(self, block_number: int, index_in_block: int):
        return await self._get_event(
            "initialInvitationBalanceUpdatedEvents", "newInitialBalance", block_number, index_in_block
        )

    async def get_initial_invitation_count_updated_event(self, block_number: int, index_in_block: int):
        return await self._get_event(
            "initialInvitationCountUpdatedEvents", "newInitialInvitationCount", block_number, index_in_block
        )

    # ------------------------------------------------------------------
    # Working groups: entities
    # ------------------------------------------------------------------
    async def get_opening_by_id(self, opening_id: int, group: WorkingGroup) -> Optional[Dict[str, Any]]:
        document = f"""
          query($openingId: ID!) {{
            workingGroupOpeningByUniqueInput(where: {{ id: $openingId }}) {{
              id
              runtimeId
              group {{
                name
                leader {{
                  runtimeId
                }}
              }}
              applications {{
                id
                runtimeId
                {APPLICATION_STATUS_FIELDS}
              }}
              type
              status {{
                __typename
                ... on OpeningStatusFilled {{
                  openingFilledEventId
                }}
                ... on OpeningStatusCancelled {{
                  openingCancelledEventId
                }}
              }}
              metadata {{
                {OPENING_METADATA_FIELDS}
              }}
              stakeAmount
              unstakingPeriod
              rewardPerBlock
              createdAtBlock {{
                number
                timestamp
                network
              }}
              createdAt
            }}
          }}
        """
        oid = entity_id(group, opening_id)
        self.query_log.debug("Executing get_opening_by_id(%s)", oid)
        data = await self._run(document, {"openingId": oid})
        return data.get("workingGroupOpeningByUniqueInput")

    async def get_application_by_id(self, application_id: int, group: WorkingGroup) -> Optional[Dict[str, Any]]:
        document = f"""
          query($applicationId: ID!) {{
            workingGroupApplicationByUniqueInput(where: {{ id: $applicationId }}) {{
              id
              runtimeId
              createdAtBlock {{
                number
                timestamp
                network
              }}
              createdAt
              opening {{
                id
                runtimeId
              }}
              applicant {{
                id
              }}
              roleAccount
              rewardAccount
              stakingAccount
              {APPLICATION_STATUS_FIELDS}
              answers {{
                question {{
                  question
                }}
                answer
              }}
              stake
            }}
          }}
        """
        aid = entity_id(group, application_id)
        self.query_log.debug("Executing get_application_by_id(%s)", aid)
        data = await self._run(document, {"applicationId": aid})
        return data.get("workingGroupApplicationByUniqueInput")

    async def get_upcoming_opening_by_created_in_event_id(self, created_in_event_id: str) -> Optional[Dict[str, Any]]:
        return await self._get_upcoming_opening("createdInEventId_eq", created_in_event_id)

    async def get_upcoming_opening_by_id(self, upcoming_opening_id: str) -> Optional[Dict[str, Any]]:
        return await self._get_upcoming_opening("id_eq", upcoming_opening_id)

    async def _get_upcoming_opening(self, where_field: str, value: str):
        document = f"""
          query($value: ID!) {{
            upcomingWorkingGroupOpenings(where: {{ {where_field}: $value }}) {{
              id
              group {{
                name
              }}
              metadata {{
                {OPENING_METADATA_FIELDS}
              }}
              expectedStart
              stakeAmount
              rewardPerBlock
              createdAtBlock {{
                number
                timestamp
                network
              }}
              createdAt
            }}
          }}
        """
        self.query_log.debug("Executing upcomingWorkingGroupOpenings(%s=%s)", where_field, value)
        data = await self._run(document, {"value": value})
        return _first(data.get("upcomingWorkingGroupOpenings"))

    async def get_working_group(self, group: Union[WorkingGroup, str]) -> Optional[Dict[str, Any]]:
        name = group.value if isinstance(group, WorkingGroup) else group
        document = f"""
          query($name: String!) {{
            workingGroupByUniqueInput(where: {{ name: $name }}) {{
              name
              metadata {{
                {GROUP_METADATA_FIELDS}
              }}
              leader {{
                id
                runtimeId
              }}
              budget
            }}
          }}
        """
        self.query_log.debug("Executing get_working_group(%s)", name)
        data = await self._run(document, {"name": name})
        return data.get("workingGroupByUniqueInput") or None

    # FIXME: use block heights once the index supports it
    async def get_group_meta_snapshot(
        self, timestamp_ms: int, match_type: str = "eq", group: Optional[WorkingGroup] = None
    ) -> Optional[Dict[str, Any]]:
        """Most recent group metadata snapshot matching ``createdAt <match_type> timestamp``.

        Groups are updated concurrently, so pass ``group`` to restrict the
        lookup to one group's snapshots.
        """
        _check_match_type(match_type)
        variables: Dict[str, Any] = {"timestamp": to_query_datetime(timestamp_ms)}
        group_filter, group_arg = "", ""
        if group is not None:
            group_filter, group_arg = ", group: { name_eq: $group }", ", $group: String!"
            variables["group"] = str(group)
        document = f"""
          query($timestamp: DateTime!{group_arg}) {{
            workingGroupMetadata(where: {{ createdAt_{match_type}: $timestamp{group_filter} }}, orderBy: createdAt_DESC, limit: 1) {{
              {GROUP_METADATA_FIELDS}
            }}
          }}
        """
        self.query_log.debug("Executing get_group_meta_snapshot(%s, %s, %s)", timestamp_ms, match_type, group)
        data = await self._run(document, variables)
        return _first(data.get("workingGroupMetadata"))

    # ------------------------------------------------------------------
    # Working groups: events
    # ------------------------------------------------------------------
    async def get_applied_on_opening_event(self, block_number: int, index_in_block: int):
        return await self._get_event(
            "appliedOnOpeningEvents",
            """
              group { name }
              opening { id runtimeId }
              application { id runtimeId }
            """,
            block_number,
            index_in_block,
        )

    async def get_opening_added_event(self, block_number: int, index_in_block: int):
        return await self._get_event(
            "openingAddedEvents",
            """
              group { name }
              opening { id runtimeId }
            """,
            block_number,
            index_in_block,
        )

    async def get_opening_filled_event(self, block_number: int, index_in_block: int):
        return await self._get_event(
            "openingFilledEvents",
            """
              group { name }
              opening { id runtimeId }
              workersHired {
                id
                runtimeId
                group { name }
                membership { id }
                roleAccount
                rewardAccount
                stakeAccount
                status { __typename }
                isLead
                stake
                hiredAtBlock { number timestamp network }
                hiredAtTime
                application { id runtimeId }
              }
            """,
            block_number,
            index_in_block,
        )

    async def get_application_withdrawn_event(self, block_number: int, index_in_block: int):
        return await self._get_event(
            "applicationWithdrawnEvents",
            """
              group { name }
              application { id runtimeId }
            """,
            block_number,
            index_in_block,
        )

    async def get_opening_cancelled_event(self, block_number: int, index_in_block: int):
        return await self._get_event(
            "openingCanceledEvents",
            """
              group { name }
              opening { id runtimeId }
            """,
            block_number,
            index_in_block,
        )

    async def get_status_text_changed_event(self, block_number: int, index_in_block: int):
        return await self._get_event(
            "statusTextChangedEvents",
            """
              group { name }
              metadata
              result {
                __typename
                ... on UpcomingOpeningAdded { upcomingOpeningId }
                ... on UpcomingOpeningRemoved { upcomingOpeningId }
                ... on WorkingGroupMetadataSet { metadataId }
                ... on InvalidActionMetadata { reason }
              }
            """,
            block_number,
            index_in_block,
        )
