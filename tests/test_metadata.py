from query_node_harness.utils import metadata as meta


def _parse(name, hex_bytes):
    msg = meta.message_class(name)()
    msg.ParseFromString(bytes.fromhex(hex_bytes[2:]))
    return msg


def test_metadata_to_bytes_is_0x_hex():
    msg = meta.build("ApplicationMetadata", {"answers": ["a"]})
    encoded = meta.metadata_to_bytes(msg)
    # field 1, length-delimited, 1 byte "a"
    assert encoded == "0x0a0161"


def test_empty_message_serialises_to_0x():
    assert meta.metadata_to_bytes(meta.build("WorkingGroupMetadata", {})) == "0x"


def test_opening_metadata_fields():
    encoded = meta.metadata_to_bytes(
        meta.opening_metadata(
            {
                "short_description": "Test opening",
                "hiring_limit": 2,
                "expected_ending_timestamp": 1_700_000_000_000,
                "application_form_questions": [{"question": "Q?", "type": meta.TEXT}],
            }
        )
    )
    msg = _parse("OpeningMetadata", encoded)
    assert msg.short_description == "Test opening"
    assert msg.hiring_limit == 2
    assert msg.expected_ending_timestamp == 1_700_000_000_000
    assert msg.application_form_questions[0].question == "Q?"
    assert msg.application_form_questions[0].type == meta.TEXT
    assert not msg.HasField("description")


def test_partial_group_metadata_only_sets_given_fields():
    action = meta.set_group_metadata_action({"status": "Testing", "status_message": "", "about": None})
    msg = _parse("WorkingGroupMetadataAction", meta.metadata_to_bytes(action))
    assert msg.WhichOneof("action") == "set_group_metadata"
    new_meta = msg.set_group_metadata.new_metadata
    assert new_meta.status == "Testing"
    assert new_meta.HasField("status_message")
    assert not new_meta.HasField("about")
    assert not new_meta.HasField("description")


def test_upcoming_opening_actions():
    add = meta.add_upcoming_opening_action({"short_description": "Soon"}, 1234, 2000, 10)
    assert add.WhichOneof("action") == "add_upcoming_opening"
    upcoming = add.add_upcoming_opening.metadata
    assert (upcoming.expected_start, upcoming.min_application_stake, upcoming.reward_per_block) == (1234, 2000, 10)
    assert upcoming.metadata.short_description == "Soon"

    remove = meta.remove_upcoming_opening_action("upcoming-1")
    assert remove.WhichOneof("action") == "remove_upcoming_opening"
    assert remove.remove_upcoming_opening.id == "upcoming-1"


def test_question_type_from_query_node():
    assert meta.question_type_from_query_node("TEXT") == meta.TEXT
    assert meta.question_type_from_query_node("TEXTAREA") == meta.TEXTAREA
