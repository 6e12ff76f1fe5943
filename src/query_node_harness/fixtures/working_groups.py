"""
working_groups.py
-----------------
Fixtures for the working-group lifecycle: openings, applications, hiring,
upcoming openings and group status metadata.

Every fixture follows the same recipe.  ``execute()`` picks the signer (sudo
or the group lead), composes the call on the group's pallet, tops the signer
up with the estimated fee and waits for finalisation.  The query node checks
then poll the entity (or event) the transaction should have produced and
compare it with the event details read from the chain.
"""

from __future__ import annotations
import asyncio
from dataclasses import dataclass, field, replace
from typing import Any, Dict, List, Mapping, Optional, Sequence, Tuple, Union

from query_node_harness.chain.events import (
    AppliedOnOpeningEventDetails,
    EventDetails,
    MemberContext,
    OpeningAddedEventDetails,
    OpeningFilledEventDetails,
)
from query_node_harness.chain.groups import WorkingGroup
from query_node_harness.errors import ChainSubmissionError, EntityNotFoundError
from query_node_harness.fixtures.base import BaseFixture, fixture_logger
from query_node_harness.utils import metadata as meta
from query_node_harness.utils.helpers import entity_id, from_query_datetime, now_ms
from query_node_harness.utils.validators import (
    assert_equal,
    assert_event_matches,
    assert_is_none,
    assert_one_of,
    assert_typename,
    require,
    typename,
)

# Runtime minimums of the test chain
MIN_APPLICATION_STAKE = 2000
MIN_UNSTAKING_PERIOD = 43201
LEADER_OPENING_STAKE = 2000
DEFAULT_REWARD_PER_BLOCK = 10


def default_opening_metadata() -> Dict[str, Any]:
    return {
        "short_description": "Test opening",
        "description": "# Test opening",
        "expected_ending_timestamp": now_ms() + 60,
        "hiring_limit": 1,
        "application_details": "- This is automatically created opening, do not apply!",
        "application_form_questions": [
            {"question": "Question 1?", "type": meta.TEXT},
            {"question": "Question 2?", "type": meta.TEXTAREA},
        ],
    }


@dataclass(frozen=True)
class OpeningParams:
    stake: int = MIN_APPLICATION_STAKE
    unstaking_period: int = MIN_UNSTAKING_PERIOD
    reward: int = DEFAULT_REWARD_PER_BLOCK
    metadata: Dict[str, Any] = field(default_factory=default_opening_metadata)

    @classmethod
    def with_overrides(cls, overrides: Union["OpeningParams", Mapping[str, Any], None] = None) -> "OpeningParams":
        """Defaults with ``overrides`` merged on top (metadata merged key by key)."""
        if isinstance(overrides, OpeningParams):
            return overrides
        params = cls()
        if not overrides:
            return params
        overrides = dict(overrides)
        metadata = {**params.metadata, **(overrides.pop("metadata", None) or {})}
        return replace(params, metadata=metadata, **overrides)


# ────────────────────────────────────────────────────────────────────────────
# Results
# ────────────────────────────────────────────────────────────────────────────
@dataclass(frozen=True)
class TxEventResult:
    tx_hash: str
    event: EventDetails


@dataclass(frozen=True)
class CreateOpeningResult(TxEventResult):
    opening_id: int = 0


@dataclass(frozen=True)
class ApplyOnOpeningResult(TxEventResult):
    application_id: int = 0


@dataclass(frozen=True)
class FillOpeningResult(TxEventResult):
    accepted_applications: Tuple[Dict[str, Any], ...] = ()
    application_stakes: Tuple[int, ...] = ()
    lead_before: Optional[int] = None


@dataclass(frozen=True)
class WithdrawApplicationsResult:
    tx_hashes: Tuple[str, ...]
    events: Tuple[EventDetails, ...]


@dataclass(frozen=True)
class StatusTextResult(TxEventResult):
    metadata: str = "0x"


@dataclass(frozen=True)
class CreateUpcomingOpeningResult(StatusTextResult):
    upcoming_opening_id: Optional[str] = None


# ────────────────────────────────────────────────────────────────────────────
# Shared base
# ────────────────────────────────────────────────────────────────────────────
class WorkingGroupFixture(BaseFixture):
    def __init__(self, api, query, group: WorkingGroup) -> None:
        super().__init__(api, query, log=fixture_logger(type(self).__name__, group))
        self.group = group

    async def _send_as_lead(self, function: str, params: Dict[str, Any]):
        account = await self.api.get_lead_role_key(self.group)
        call = await self.api.compose_group(self.group, function, params)
        return await self.api.send_with_fee(call, account)

    async def _send_as_sudo(self, function: str, params: Dict[str, Any]):
        account = await self.api.sudo_key()
        call = await self.api.compose_sudo(await self.api.compose_group(self.group, function, params))
        return await self.api.send_with_fee(call, account)

    def _poll(self, query, assert_valid, label: str):
        return self.query.try_query_with_timeout(query, assert_valid, label=f"{label}.{self.group}")


def assert_opening_metadata(q_meta: Optional[dict], expected: Dict[str, Any], label: str) -> None:
    require(q_meta, f"{label} metadata")
    assert_equal(q_meta["shortDescription"], expected.get("short_description"), f"{label} shortDescription")
    assert_equal(q_meta["description"], expected.get("description"), f"{label} description")
    ending = q_meta.get("expectedEnding")
    assert_equal(
        from_query_datetime(ending) if ending else None,
        expected.get("expected_ending_timestamp"),
        f"{label} expectedEnding",
    )
    assert_equal(q_meta["hiringLimit"], expected.get("hiring_limit"), f"{label} hiringLimit")
    assert_equal(q_meta["applicationDetails"], expected.get("application_details"), f"{label} applicationDetails")
    questions = sorted(q_meta.get("applicationFormQuestions") or [], key=lambda q: q["index"])
    assert_equal(
        [{"question": q["question"], "type": meta.question_type_from_query_node(q["type"])} for q in questions],
        list(expected.get("application_form_questions") or []),
        f"{label} applicationFormQuestions",
    )


# ────────────────────────────────────────────────────────────────────────────
# Openings
# ────────────────────────────────────────────────────────────────────────────
class CreateOpeningFixture(WorkingGroupFixture):
    def __init__(self, api, query, group: WorkingGroup, opening_params=None, as_sudo: bool = False) -> None:
        super().__init__(api, query, group)
        self.params = OpeningParams.with_overrides(opening_params)
        self.as_sudo = as_sudo

    async def _execute(self) -> CreateOpeningResult:
        params = {
            "description": meta.metadata_to_bytes(meta.opening_metadata(self.params.metadata)),
            "opening_type": "Leader" if self.as_sudo else "Regular",
            "stake_policy": {
                "stake_amount": self.params.stake,
                "leaving_unstaking_period": self.params.unstaking_period,
            },
            "reward_per_block": self.params.reward,
        }
        send = self._send_as_sudo if self.as_sudo else self._send_as_lead
        tx = await send("add_opening", params)
        event = self.api.retrieve_opening_added_event_details(tx, self.group)
        self.log.debug("Opening created (id: %d)", event.opening_id)
        return CreateOpeningResult(tx_hash=tx.tx_hash, event=event, opening_id=event.opening_id)

    def _assert_opening(self, event: OpeningAddedEventDetails, q_opening: Optional[dict]) -> None:
        label = f"Opening {entity_id(self.group, event.opening_id)}"
        require(q_opening, label)
        assert_equal(q_opening["runtimeId"], event.opening_id, f"{label} runtimeId")
        assert_equal(q_opening["createdAtBlock"]["number"], event.block_number, f"{label} createdAtBlock")
        assert_equal(q_opening["group"]["name"], self.group.value, f"{label} group")
        assert_equal(q_opening["rewardPerBlock"], str(self.params.reward), f"{label} rewardPerBlock")
        assert_equal(q_opening["type"], "LEADER" if self.as_sudo else "REGULAR", f"{label} type")
        assert_typename(q_opening["status"], "OpeningStatusOpen", f"{label} status")
        assert_equal(q_opening["stakeAmount"], str(self.params.stake), f"{label} stakeAmount")
        assert_equal(q_opening["unstakingPeriod"], self.params.unstaking_period, f"{label} unstakingPeriod")
        assert_opening_metadata(q_opening["metadata"], self.params.metadata, label)

    async def run_query_node_checks(self, result: CreateOpeningResult) -> None:
        await super().run_query_node_checks(result)
        event = result.event
        await self._poll(
            lambda: self.query.get_opening_by_id(event.opening_id, self.group),
            lambda q: self._assert_opening(event, q),
            "get_opening_by_id",
        )
        q_event = await self.query.get_opening_added_event(event.block_number, event.index_in_block)
        assert_event_matches(q_event, event, result.tx_hash, "OpeningAdded", self.group)
        assert_equal(q_event["opening"]["runtimeId"], event.opening_id, "OpeningAdded event opening.runtimeId")


class CancelOpeningFixture(WorkingGroupFixture):
    def __init__(self, api, query, group: WorkingGroup, opening_id: int) -> None:
        super().__init__(api, query, group)
        self.opening_id = opening_id

    async def _execute(self) -> TxEventResult:
        tx = await self._send_as_lead("cancel_opening", {"opening_id": self.opening_id})
        event = self.api.retrieve_working_groups_event_details(tx, self.group, "OpeningCanceled")
        self.log.debug("Opening %d cancelled", self.opening_id)
        return TxEventResult(tx_hash=tx.tx_hash, event=event)

    def _assert_event(self, result: TxEventResult, q_event: Optional[dict]) -> None:
        assert_event_matches(q_event, result.event, result.tx_hash, "OpeningCanceled", self.group)
        assert_equal(q_event["opening"]["runtimeId"], self.opening_id, "OpeningCanceled event opening.runtimeId")

    async def run_query_node_checks(self, result: TxEventResult) -> None:
        await super().run_query_node_checks(result)
        event = result.event
        q_event = await self._poll(
            lambda: self.query.get_opening_cancelled_event(event.block_number, event.index_in_block),
            lambda q: self._assert_event(result, q),
            "get_opening_cancelled_event",
        )
        label = f"Opening {entity_id(self.group, self.opening_id)}"
        q_opening = require(await self.query.get_opening_by_id(self.opening_id, self.group), label)
        assert_typename(q_opening["status"], "OpeningStatusCancelled", f"{label} status")
        assert_equal(q_opening["status"]["openingCancelledEventId"], q_event["id"], f"{label} openingCancelledEventId")
        # Applications withdrawn before the cancellation keep their status
        for q_app in q_opening["applications"]:
            app_label = f"Application {q_app['id']}"
            status = assert_one_of(
                typename(q_app["status"]),
                ["ApplicationStatusWithdrawn", "ApplicationStatusCancelled"],
                f"{app_label} status",
            )
            if status == "ApplicationStatusCancelled":
                assert_equal(
                    q_app["status"]["openingCancelledEventId"], q_event["id"], f"{app_label} openingCancelledEventId"
                )


# ────────────────────────────────────────────────────────────────────────────
# Applications
# ────────────────────────────────────────────────────────────────────────────
class ApplyOnOpeningFixture(WorkingGroupFixture):
    def __init__(
        self,
        api,
        query,
        group: WorkingGroup,
        applicant: MemberContext,
        staking_account: str,
        opening_id: int,
        opening_metadata: Dict[str, Any],
    ) -> None:
        super().__init__(api, query, group)
        self.applicant = applicant
        self.staking_account = staking_account
        self.opening_id = opening_id
        self.opening_metadata = opening_metadata

    @property
    def answers(self) -> List[str]:
        questions = self.opening_metadata.get("application_form_questions") or []
        return [f"Answer {i}" for i in range(len(questions))]

    async def _execute(self) -> ApplyOnOpeningResult:
        opening = await self.api.get_opening(self.group, self.opening_id)
        stake = int(opening["stake_policy"]["stake_amount"])
        balance = await self.api.get_balance(self.staking_account)
        if balance <= stake:
            raise ChainSubmissionError(
                f"Staking account {self.staking_account} balance {balance} does not exceed opening stake {stake}"
            )

        call = await self.api.compose_group(
            self.group,
            "apply_on_opening",
            {
                "p": {
                    "member_id": self.applicant.member_id,
                    "opening_id": self.opening_id,
                    "role_account_id": self.applicant.account,
                    "reward_account_id": self.applicant.account,
                    "description": meta.metadata_to_bytes(meta.application_metadata(self.answers)),
                    "stake_parameters": {"stake": stake, "staking_account_id": self.staking_account},
                }
            },
        )
        tx = await self.api.send_with_fee(call, self.applicant.account)
        event = self.api.retrieve_applied_on_opening_event_details(tx, self.group)
        self.log.debug("Application submitted (id: %d)", event.application_id)
        return ApplyOnOpeningResult(tx_hash=tx.tx_hash, event=event, application_id=event.application_id)

    def _assert_application(self, event: AppliedOnOpeningEventDetails, q_app: Optional[dict]) -> None:
        label = f"Application {entity_id(self.group, event.application_id)}"
        require(q_app, label)
        assert_equal(q_app["runtimeId"], event.application_id, f"{label} runtimeId")
        assert_equal(q_app["createdAtBlock"]["number"], event.block_number, f"{label} createdAtBlock")
        assert_equal(q_app["opening"]["runtimeId"], self.opening_id, f"{label} opening.runtimeId")
        assert_equal(q_app["applicant"]["id"], str(self.applicant.member_id), f"{label} applicant")
        assert_equal(q_app["roleAccount"], self.applicant.account, f"{label} roleAccount")
        assert_equal(q_app["rewardAccount"], self.applicant.account, f"{label} rewardAccount")
        assert_equal(q_app["stakingAccount"], self.staking_account, f"{label} stakingAccount")
        assert_typename(q_app["status"], "ApplicationStatusPending", f"{label} status")
        assert_equal(q_app["stake"], str(event.stake), f"{label} stake")
        questions = [q["question"] for q in self.opening_metadata.get("application_form_questions") or []]
        assert_equal(
            [{"question": a["question"]["question"], "answer": a["answer"]} for a in q_app["answers"]],
            [{"question": q, "answer": a} for q, a in zip(questions, self.answers)],
            f"{label} answers",
        )

    async def run_query_node_checks(self, result: ApplyOnOpeningResult) -> None:
        await super().run_query_node_checks(result)
        event = result.event
        await self._poll(
            lambda: self.query.get_application_by_id(event.application_id, self.group),
            lambda q: self._assert_application(event, q),
            "get_application_by_id",
        )
        q_event = await self.query.get_applied_on_opening_event(event.block_number, event.index_in_block)
        assert_event_matches(q_event, event, result.tx_hash, "AppliedOnOpening", self.group)
        assert_equal(q_event["opening"]["runtimeId"], self.opening_id, "AppliedOnOpening event opening.runtimeId")
        assert_equal(
            q_event["application"]["runtimeId"], event.application_id, "AppliedOnOpening event application.runtimeId"
        )


class WithdrawApplicationsFixture(WorkingGroupFixture):
    """Withdraw a batch of applications, each signed by its own role account."""

    def __init__(
        self, api, query, group: WorkingGroup, accounts: Sequence[str], application_ids: Sequence[int]
    ) -> None:
        super().__init__(api, query, group)
        if len(accounts) != len(application_ids):
            raise ValueError("accounts and application_ids must have the same length")
        if not application_ids:
            raise ValueError("At least one application must be withdrawn")
        self.accounts = list(accounts)
        self.application_ids = list(application_ids)

    async def _execute(self) -> WithdrawApplicationsResult:
        calls = await asyncio.gather(
            *(
                self.api.compose_group(self.group, "withdraw_application", {"application_id": app_id})
                for app_id in self.application_ids
            )
        )
        fee = await self.api.estimate_tx_fee(calls[0], self.accounts[0])
        await asyncio.gather(*(self.api.treasury_transfer_balance(a, fee) for a in self.accounts))
        txs = await asyncio.gather(*(self.api.sign_and_send(c, a) for c, a in zip(calls, self.accounts)))
        events = [
            self.api.retrieve_working_groups_event_details(tx, self.group, "ApplicationWithdrawn") for tx in txs
        ]
        self.log.debug("Applications withdrawn: %s", self.application_ids)
        return WithdrawApplicationsResult(tx_hashes=tuple(t.tx_hash for t in txs), events=tuple(events))

    def _assert_event(self, application_id: int, event: EventDetails, tx_hash: str, q_event: Optional[dict]) -> None:
        assert_event_matches(q_event, event, tx_hash, "ApplicationWithdrawn", self.group)
        assert_equal(
            q_event["application"]["runtimeId"], application_id, "ApplicationWithdrawn event application.runtimeId"
        )

    async def _check_application(self, application_id: int, q_event: dict) -> None:
        label = f"Application {entity_id(self.group, application_id)}"
        q_app = require(await self.query.get_application_by_id(application_id, self.group), label)
        assert_typename(q_app["status"], "ApplicationStatusWithdrawn", f"{label} status")
        assert_equal(
            q_app["status"]["applicationWithdrawnEventId"], q_event["id"], f"{label} applicationWithdrawnEventId"
        )

    async def run_query_node_checks(self, result: WithdrawApplicationsResult) -> None:
        await super().run_query_node_checks(result)
        polls = [
            self._poll(
                lambda ev=event: self.query.get_application_withdrawn_event(ev.block_number, ev.index_in_block),
                lambda q, app_id=app_id, ev=event, tx_hash=tx_hash: self._assert_event(app_id, ev, tx_hash, q),
                "get_application_withdrawn_event",
            )
            for app_id, event, tx_hash in zip(self.application_ids, result.events, result.tx_hashes)
        ]
        q_events = await asyncio.gather(*polls)
        await asyncio.gather(
            *(self._check_application(app_id, q_event) for app_id, q_event in zip(self.application_ids, q_events))
        )


# ────────────────────────────────────────────────────────────────────────────
# Hiring
# ────────────────────────────────────────────────────────────────────────────
class _FillOpeningFixture(WorkingGroupFixture):
    """Fill ``opening_id`` with ``accepted_application_ids``; the rest get rejected."""

    hires_lead = False

    def __init__(self, api, query, group: WorkingGroup, opening_id: int, accepted_application_ids: Sequence[int]) -> None:
        super().__init__(api, query, group)
        self.opening_id = opening_id
        self.accepted_application_ids = list(accepted_application_ids)

    async def _send_fill(self, params: Dict[str, Any]):
        raise NotImplementedError

    async def _execute(self) -> FillOpeningResult:
        applications = await asyncio.gather(
            *(self.api.get_application(self.group, app_id) for app_id in self.accepted_application_ids)
        )
        stakes = await asyncio.gather(
            *(self.api.get_staked_balance(str(a["staking_account_id"]), self.group.lock_id) for a in applications)
        )
        lead_before = None if self.hires_lead else await self.api.get_current_lead(self.group)
        tx = await self._send_fill(
            {"opening_id": self.opening_id, "successful_application_ids": sorted(self.accepted_application_ids)}
        )
        event = self.api.retrieve_opening_filled_event_details(tx, self.group)
        missing = [a for a in self.accepted_application_ids if a not in event.application_id_to_worker_id]
        if missing:
            raise ChainSubmissionError(f"OpeningFilled event has no worker for application(s) {missing}")
        self.log.debug("Opening %d filled, hired: %s", self.opening_id, event.application_id_to_worker_id)
        return FillOpeningResult(
            tx_hash=tx.tx_hash,
            event=event,
            accepted_applications=tuple(applications),
            application_stakes=tuple(int(s) for s in stakes),
            lead_before=lead_before,
        )

    def _assert_hired_worker(
        self, event: OpeningFilledEventDetails, application_id: int, application: dict, stake: int, q_worker: dict
    ) -> None:
        label = f"Worker {q_worker.get('id')}"
        assert_equal(q_worker["group"]["name"], self.group.value, f"{label} group")
        assert_equal(q_worker["membership"]["id"], str(application["member_id"]), f"{label} membership")
        assert_equal(q_worker["roleAccount"], str(application["role_account_id"]), f"{label} roleAccount")
        assert_equal(q_worker["rewardAccount"], str(application["reward_account_id"]), f"{label} rewardAccount")
        assert_equal(q_worker["stakeAccount"], str(application["staking_account_id"]), f"{label} stakeAccount")
        assert_typename(q_worker["status"], "WorkerStatusActive", f"{label} status")
        assert_equal(q_worker["isLead"], self.hires_lead, f"{label} isLead")
        assert_equal(q_worker["stake"], str(stake), f"{label} stake")
        assert_equal(q_worker["hiredAtBlock"]["number"], event.block_number, f"{label} hiredAtBlock")
        assert_equal(q_worker["application"]["runtimeId"], application_id, f"{label} application.runtimeId")

    def _assert_event(self, result: FillOpeningResult, q_event: Optional[dict]) -> None:
        event = result.event
        assert_event_matches(q_event, event, result.tx_hash, "OpeningFilled", self.group)
        assert_equal(q_event["opening"]["runtimeId"], self.opening_id, "OpeningFilled event opening.runtimeId")
        hired = {w["runtimeId"]: w for w in q_event["workersHired"]}
        for app_id, application, stake in zip(
            self.accepted_application_ids, result.accepted_applications, result.application_stakes
        ):
            worker_id = event.application_id_to_worker_id[app_id]
            if worker_id not in hired:
                raise EntityNotFoundError(f"Query node: worker {worker_id} not found in OpeningFilled.workersHired")
            self._assert_hired_worker(event, app_id, application, stake, hired[worker_id])

    def _assert_leader(self, result: FillOpeningResult, q_opening: dict, q_event: dict) -> None:
        leader = q_opening["group"].get("leader")
        if self.hires_lead:
            require(leader, "Group leader")
            assert_equal(leader["runtimeId"], q_event["workersHired"][0]["runtimeId"], "Group leader runtimeId")
        else:
            assert_equal(leader and leader["runtimeId"], result.lead_before, "Group leader runtimeId")

    async def run_query_node_checks(self, result: FillOpeningResult) -> None:
        await super().run_query_node_checks(result)
        event = result.event
        q_event = await self._poll(
            lambda: self.query.get_opening_filled_event(event.block_number, event.index_in_block),
            lambda q: self._assert_event(result, q),
            "get_opening_filled_event",
        )

        label = f"Opening {entity_id(self.group, self.opening_id)}"
        q_opening = require(await self.query.get_opening_by_id(self.opening_id, self.group), label)
        assert_typename(q_opening["status"], "OpeningStatusFilled", f"{label} status")
        assert_equal(q_opening["status"]["openingFilledEventId"], q_event["id"], f"{label} openingFilledEventId")

        # Every application on the opening is decided by the same event
        accepted = set(self.accepted_application_ids)
        seen = set()
        for q_app in q_opening["applications"]:
            app_label = f"Application {q_app['id']}"
            expected = "ApplicationStatusAccepted" if q_app["runtimeId"] in accepted else "ApplicationStatusRejected"
            assert_typename(q_app["status"], expected, f"{app_label} status")
            assert_equal(q_app["status"]["openingFilledEventId"], q_event["id"], f"{app_label} openingFilledEventId")
            seen.add(q_app["runtimeId"])
        missing = sorted(accepted - seen)
        if missing:
            raise EntityNotFoundError(f"Query node: applications {missing} not found in opening {q_opening['id']}")

        self._assert_leader(result, q_opening, q_event)


class SudoFillLeadOpeningFixture(_FillOpeningFixture):
    hires_lead = True

    async def _send_fill(self, params: Dict[str, Any]):
        return await self._send_as_sudo("fill_opening", params)


class FillOpeningFixture(_FillOpeningFixture):
    """The group lead fills a regular opening; the leader stays the same."""

    async def _send_fill(self, params: Dict[str, Any]):
        return await self._send_as_lead("fill_opening", params)


# ────────────────────────────────────────────────────────────────────────────
# Status text actions (upcoming openings, group metadata)
# ────────────────────────────────────────────────────────────────────────────
class _StatusTextFixture(WorkingGroupFixture):
    expected_result = ""

    def action(self):
        raise NotImplementedError

    async def _set_status_text(self) -> Tuple[Any, str, EventDetails]:
        metadata = meta.metadata_to_bytes(self.action())
        tx = await self._send_as_lead("set_status_text", {"status_text": metadata})
        event = self.api.retrieve_working_groups_event_details(tx, self.group, "StatusTextChanged")
        return tx, metadata, event

    async def _execute(self) -> StatusTextResult:
        tx, metadata, event = await self._set_status_text()
        return StatusTextResult(tx_hash=tx.tx_hash, event=event, metadata=metadata)

    def _assert_event(self, result: StatusTextResult, q_event: Optional[dict]) -> None:
        assert_event_matches(q_event, result.event, result.tx_hash, "StatusTextChanged", self.group)
        assert_equal(q_event["metadata"], result.metadata, "StatusTextChanged event metadata")
        require(q_event.get("result"), "StatusTextChanged event result")
        assert_typename(q_event["result"], self.expected_result, "StatusTextChanged event result")

    async def _poll_event(self, result: StatusTextResult) -> dict:
        event = result.event
        return await self._poll(
            lambda: self.query.get_status_text_changed_event(event.block_number, event.index_in_block),
            lambda q: self._assert_event(result, q),
            "get_status_text_changed_event",
        )


class CreateUpcomingOpeningFixture(_StatusTextFixture):
    expected_result = "UpcomingOpeningAdded"

    def __init__(self, api, query, group: WorkingGroup, opening_params=None, expected_start_ms: Optional[int] = None) -> None:
        super().__init__(api, query, group)
        self.params = OpeningParams.with_overrides(opening_params)
        self.expected_start_ms = expected_start_ms if expected_start_ms is not None else now_ms() + 3600

    def action(self):
        return meta.add_upcoming_opening_action(
            self.params.metadata, self.expected_start_ms, self.params.stake, self.params.reward
        )

    async def _execute(self) -> CreateUpcomingOpeningResult:
        tx, metadata, event = await self._set_status_text()
        self.log.debug("Upcoming opening announced in event %s", event.event_id)
        return CreateUpcomingOpeningResult(tx_hash=tx.tx_hash, event=event, metadata=metadata)

    def _assert_upcoming_opening(self, event: EventDetails, q_upcoming: Optional[dict]) -> None:
        label = f"Upcoming opening created in {event.event_id}"
        require(q_upcoming, label)
        assert_equal(from_query_datetime(q_upcoming["expectedStart"]), self.expected_start_ms, f"{label} expectedStart")
        assert_equal(q_upcoming["group"]["name"], self.group.value, f"{label} group")
        assert_equal(q_upcoming["rewardPerBlock"], str(self.params.reward), f"{label} rewardPerBlock")
        assert_equal(q_upcoming["stakeAmount"], str(self.params.stake), f"{label} stakeAmount")
        assert_equal(q_upcoming["createdAtBlock"]["number"], event.block_number, f"{label} createdAtBlock")
        assert_opening_metadata(q_upcoming["metadata"], self.params.metadata, label)

    async def run_query_node_checks(self, result: CreateUpcomingOpeningResult) -> CreateUpcomingOpeningResult:
        await super().run_query_node_checks(result)
        q_event = await self._poll_event(result)
        q_upcoming = await self.query.get_upcoming_opening_by_created_in_event_id(q_event["id"])
        self._assert_upcoming_opening(result.event, q_upcoming)
        assert_equal(q_event["result"]["upcomingOpeningId"], q_upcoming["id"], "UpcomingOpeningAdded upcomingOpeningId")
        return replace(result, upcoming_opening_id=q_upcoming["id"])


class RemoveUpcomingOpeningFixture(_StatusTextFixture):
    expected_result = "UpcomingOpeningRemoved"

    def __init__(self, api, query, group: WorkingGroup, upcoming_opening_id: str) -> None:
        super().__init__(api, query, group)
        self.upcoming_opening_id = upcoming_opening_id

    def action(self):
        return meta.remove_upcoming_opening_action(self.upcoming_opening_id)

    def _assert_event(self, result: StatusTextResult, q_event: Optional[dict]) -> None:
        super()._assert_event(result, q_event)
        assert_equal(
            q_event["result"]["upcomingOpeningId"], self.upcoming_opening_id, "UpcomingOpeningRemoved upcomingOpeningId"
        )

    async def run_query_node_checks(self, result: StatusTextResult) -> None:
        await super().run_query_node_checks(result)
        await self._poll_event(result)
        q_upcoming = await self.query.get_upcoming_opening_by_id(self.upcoming_opening_id)
        assert_is_none(q_upcoming, f"Upcoming opening {self.upcoming_opening_id}")


# proto field -> query node field
GROUP_METADATA_FIELDS = {
    "description": "description",
    "about": "about",
    "status": "status",
    "status_message": "statusMessage",
}


def expected_group_metadata(previous: Optional[dict], update: Mapping[str, Any]) -> Dict[str, Any]:
    """Metadata the query node should hold after ``update``.

    Fields the update leaves unset keep their value from the previous
    snapshot.  An explicit empty string is a value and overrides it.
    """
    previous = previous or {}
    expected = {q_field: previous.get(q_field) for q_field in GROUP_METADATA_FIELDS.values()}
    for field_name, q_field in GROUP_METADATA_FIELDS.items():
        if update.get(field_name) is not None:
            expected[q_field] = update[field_name]
    return expected


class UpdateGroupStatusFixture(_StatusTextFixture):
    expected_result = "WorkingGroupMetadataSet"

    def __init__(self, api, query, group: WorkingGroup, metadata: Mapping[str, Any]) -> None:
        super().__init__(api, query, group)
        unknown = set(metadata) - set(GROUP_METADATA_FIELDS)
        if unknown:
            raise ValueError(f"Unknown group metadata fields: {sorted(unknown)}")
        self.metadata = dict(metadata)

    def action(self):
        return meta.set_group_metadata_action(self.metadata)

    async def run_query_node_checks(self, result: StatusTextResult) -> None:
        await super().run_query_node_checks(result)
        event = result.event
        q_event = await self._poll_event(result)

        before = await self.query.get_group_meta_snapshot(event.block_timestamp, "lt", self.group)
        after = require(
            await self.query.get_group_meta_snapshot(event.block_timestamp, "eq", self.group),
            "WorkingGroupMetadata snapshot",
        )
        for q_field, value in expected_group_metadata(before, self.metadata).items():
            assert_equal(after[q_field], value, f"WorkingGroupMetadata {q_field}")
        assert_equal(after["setAtBlock"]["number"], event.block_number, "WorkingGroupMetadata setAtBlock")

        q_group = require(await self.query.get_working_group(self.group), f"Group {self.group.value}")
        require(q_group.get("metadata"), f"Group {self.group.value} metadata")
        assert_equal(q_group["metadata"]["id"], after["id"], f"Group {self.group.value} metadata.id")
        assert_equal(q_event["result"]["metadataId"], after["id"], "WorkingGroupMetadataSet metadataId")
