"""
metadata.py
-----------
Protobuf messages attached to working-group extrinsics.

Openings, applications and ``set_status_text`` actions carry their metadata
as serialised protobuf bytes.  The message set is small and fixed, so the
descriptors are declared here and the message classes are generated at
import time instead of shipping generated ``_pb2`` modules.

The query node stores the raw bytes of a status-text action as a ``0x`` hex
string, which is what :func:`metadata_to_bytes` produces.
"""

from __future__ import annotations
from typing import Any, Dict, Optional

from google.protobuf import descriptor_pb2, descriptor_pool, json_format, message_factory

_F = descriptor_pb2.FieldDescriptorProto
_PACKAGE = "metadata"

# Input types of application form questions
TEXTAREA = 0
TEXT = 1


def _field(name: str, number: int, kind: int, *, repeated: bool = False, type_name: str = "", oneof: Optional[int] = None):
    field = _F(
        name=name,
        number=number,
        type=kind,
        label=_F.LABEL_REPEATED if repeated else _F.LABEL_OPTIONAL,
    )
    if type_name:
        field.type_name = f".{_PACKAGE}.{type_name}"
    if oneof is not None:
        field.oneof_index = oneof
    return field


def _build_file() -> descriptor_pb2.FileDescriptorProto:
    fd = descriptor_pb2.FileDescriptorProto(name="working_group.proto", package=_PACKAGE, syntax="proto2")

    opening = fd.message_type.add(name="OpeningMetadata")
    question = opening.nested_type.add(name="ApplicationFormQuestion")
    question.enum_type.add(name="InputType").value.extend(
        [
            descriptor_pb2.EnumValueDescriptorProto(name="TEXTAREA", number=TEXTAREA),
            descriptor_pb2.EnumValueDescriptorProto(name="TEXT", number=TEXT),
        ]
    )
    question.field.extend(
        [
            _field("question", 1, _F.TYPE_STRING),
            _field("type", 2, _F.TYPE_ENUM, type_name="OpeningMetadata.ApplicationFormQuestion.InputType"),
        ]
    )
    opening.field.extend(
        [
            _field("short_description", 1, _F.TYPE_STRING),
            _field("description", 2, _F.TYPE_STRING),
            _field("hiring_limit", 3, _F.TYPE_UINT32),
            _field("expected_ending_timestamp", 4, _F.TYPE_UINT64),
            _field("application_details", 5, _F.TYPE_STRING),
            _field(
                "application_form_questions",
                6,
                _F.TYPE_MESSAGE,
                repeated=True,
                type_name="OpeningMetadata.ApplicationFormQuestion",
            ),
        ]
    )

    fd.message_type.add(name="UpcomingOpeningMetadata").field.extend(
        [
            _field("expected_start", 1, _F.TYPE_UINT64),
            _field("reward_per_block", 2, _F.TYPE_UINT64),
            _field("min_application_stake", 3, _F.TYPE_UINT64),
            _field("metadata", 4, _F.TYPE_MESSAGE, type_name="OpeningMetadata"),
        ]
    )
    fd.message_type.add(name="ApplicationMetadata").field.extend(
        [_field("answers", 1, _F.TYPE_STRING, repeated=True)]
    )
    fd.message_type.add(name="WorkingGroupMetadata").field.extend(
        [
            _field("description", 1, _F.TYPE_STRING),
            _field("about", 2, _F.TYPE_STRING),
            _field("status", 3, _F.TYPE_STRING),
            _field("status_message", 4, _F.TYPE_STRING),
        ]
    )
    fd.message_type.add(name="SetGroupMetadata").field.extend(
        [_field("new_metadata", 1, _F.TYPE_MESSAGE, type_name="WorkingGroupMetadata")]
    )
    fd.message_type.add(name="AddUpcomingOpening").field.extend(
        [_field("metadata", 1, _F.TYPE_MESSAGE, type_name="UpcomingOpeningMetadata")]
    )
    fd.message_type.add(name="RemoveUpcomingOpening").field.extend([_field("id", 1, _F.TYPE_STRING)])

    action = fd.message_type.add(name="WorkingGroupMetadataAction")
    action.oneof_decl.add(name="action")
    action.field.extend(
        [
            _field("set_group_metadata", 1, _F.TYPE_MESSAGE, type_name="SetGroupMetadata", oneof=0),
            _field("add_upcoming_opening", 2, _F.TYPE_MESSAGE, type_name="AddUpcomingOpening", oneof=0),
            _field("remove_upcoming_opening", 3, _F.TYPE_MESSAGE, type_name="RemoveUpcomingOpening", oneof=0),
        ]
    )
    return fd


_pool = descriptor_pool.DescriptorPool()
_pool.Add(_build_file())


def message_class(name: str):
    """Generated message class for ``name`` (e.g. ``"OpeningMetadata"``)."""
    return message_factory.GetMessageClass(_pool.FindMessageTypeByName(f"{_PACKAGE}.{name}"))


def build(name: str, fields: Dict[str, Any]):
    """Create a ``name`` message from a dict of proto field names.

    Fields set to ``None`` are left unset, so partial updates (e.g. a group
    metadata change touching only ``status``) serialise only what was given.
    """
    cleaned = _drop_none(fields)
    return json_format.ParseDict(cleaned, message_class(name)())


def _drop_none(value: Any) -> Any:
    if isinstance(value, dict):
        return {k: _drop_none(v) for k, v in value.items() if v is not None}
    if isinstance(value, list):
        return [_drop_none(v) for v in value]
    return value


def metadata_to_bytes(message) -> str:
    """Serialise ``message`` to the ``0x``-prefixed hex form used on chain."""
    return "0x" + message.SerializeToString().hex()


def question_type_from_query_node(kind: str) -> int:
    """Map the query node's ``ApplicationFormQuestionType`` to ``InputType``."""
    return TEXT if kind == "TEXT" else TEXTAREA


# ────────────────────────────────────────────────────────────────────────────
# Message builders used by the fixtures
# ────────────────────────────────────────────────────────────────────────────
def opening_metadata(meta: Dict[str, Any]):
    return build("OpeningMetadata", meta)


def application_metadata(answers: list[str]):
    return build("ApplicationMetadata", {"answers": answers})


def add_upcoming_opening_action(opening_meta: Dict[str, Any], expected_start: int, stake: int, reward: int):
    return build(
        "WorkingGroupMetadataAction",
        {
            "add_upcoming_opening": {
                "metadata": {
                    "metadata": opening_meta,
                    "expected_start": expected_start,
                    "min_application_stake": stake,
                    "reward_per_block": reward,
                }
            }
        },
    )


def remove_upcoming_opening_action(upcoming_opening_id: str):
    return build("WorkingGroupMetadataAction", {"remove_upcoming_opening": {"id": upcoming_opening_id}})


def set_group_metadata_action(group_meta: Dict[str, Any]):
    return build("WorkingGroupMetadataAction", {"set_group_metadata": {"new_metadata": group_meta}})
