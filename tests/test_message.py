"""Unit tests for the Message envelope and channel document encoding."""

from datetime import datetime, timezone

from bson import ObjectId

from mongo_pubsub.errors import DeliveredError
from mongo_pubsub.message import Message, decode_document, encode_document


def test_message_defaults_id_and_timestamp():
    message = Message(event="Posts", message={"a": 1})
    assert message.timestamp.tzinfo is timezone.utc
    assert message.message_id.startswith("Posts_")
    assert Message(event="Posts", message=None).message_id != message.message_id


def test_to_dict():
    ts = datetime(2024, 1, 2, 3, 4, 5, tzinfo=timezone.utc)
    message = Message(event="Posts", message=[1], message_id="m1", timestamp=ts)
    assert message.to_dict() == {
        "message_id": "m1",
        "event": "Posts",
        "message": [1],
        "timestamp": "2024-01-02T03:04:05+00:00",
        "metadata": {},
    }


def test_encode_data_and_error():
    assert encode_document("Posts", {"a": 1}) == {"event": "Posts", "message": {"a": 1}}
    assert encode_document("Posts", ValueError("bad")) == {
        "event": "Posts",
        "error": {"type": "ValueError", "message": "bad"},
    }


def test_decode_uses_object_id_for_id_and_time():
    doc_id = ObjectId()
    message = decode_document({"_id": doc_id, "event": "Posts", "message": {"a": 1}})
    assert isinstance(message, Message)
    assert message.message_id == str(doc_id)
    assert message.timestamp == doc_id.generation_time
    assert message.message == {"a": 1}


def test_decode_error_document():
    value = decode_document({"_id": ObjectId(), "event": "Posts", "error": {"type": "ValueError", "message": "bad"}})
    assert isinstance(value, DeliveredError)
    assert value.error_type == "ValueError"
    assert str(value) == "bad"
